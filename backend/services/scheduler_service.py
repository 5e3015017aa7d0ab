"""Periodic maintenance jobs run on an APScheduler background thread.

Each job opens its own session through ``session_factory`` and records its
last run and last error on the task entry so the API can report them.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from threading import Lock
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import exists, text
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import NotFoundError
from backend.database import SessionLocal
from backend.models.appointment import ACTIVE_STATUSES, Appointment
from backend.models.notification import Notification, NotificationStatus, NotificationType
from backend.services.notification_service import NotificationService
from backend.services.queue_service import MAX_ATTEMPTS, notification_queue

logger = logging.getLogger(__name__)

NOTIFICATION_RETENTION_DAYS = 30
FAILED_JOB_RETENTION_DAYS = 7
STALE_PENDING_MINUTES = 5
DELIVERED_AFTER_HOURS = 1
STATUS_UPDATE_BATCH = 50
RETRY_AFTER_MINUTES = 30
RETRY_BATCH = 10
FAILED_WARNING_THRESHOLD = 50
PENDING_WARNING_THRESHOLD = 100


def send_due_reminders(db: Session) -> int:
    """Send REMINDER notifications for tomorrow's active appointments.

    Appointments that already have a reminder (other than a failed one) are
    skipped. Pending notifications whose delivery time passed without a run,
    e.g. across a restart, are delivered here as well.
    """
    tomorrow = date.today() + timedelta(days=1)
    window_start = datetime.combine(tomorrow, time.min)
    window_end = window_start + timedelta(days=1)

    has_reminder = exists().where(
        Notification.appointment_id == Appointment.id,
        Notification.type == NotificationType.REMINDER,
        Notification.status != NotificationStatus.FAILED,
    )
    appointment_ids = [
        row.id
        for row in db.query(Appointment.id)
        .filter(
            Appointment.start_time >= window_start,
            Appointment.start_time < window_end,
            Appointment.status.in_(ACTIVE_STATUSES),
            ~has_reminder,
        )
        .all()
    ]

    service = NotificationService(db)
    sent = 0
    for appointment_id in appointment_ids:
        try:
            if service.send_appointment_notification(appointment_id, NotificationType.REMINDER):
                sent += 1
        except Exception:  # one bad appointment must not stop the batch
            db.rollback()
            logger.exception('Error sending reminder for appointment %s', appointment_id)

    stale_before = datetime.now() - timedelta(minutes=STALE_PENDING_MINUTES)
    stale_ids = [
        row.id
        for row in db.query(Notification.id)
        .filter(Notification.status == NotificationStatus.PENDING, Notification.scheduled_at <= stale_before)
        .all()
    ]
    for notification_id in stale_ids:
        service.deliver(notification_id)

    logger.info(
        'Reminder task completed: %s reminders sent for %s appointments, %s overdue notifications delivered',
        sent, len(appointment_ids), len(stale_ids),
    )
    return sent + len(stale_ids)


def cleanup_old_records(db: Session) -> int:
    cutoff = datetime.now() - timedelta(days=NOTIFICATION_RETENTION_DAYS)
    removed = (
        db.query(Notification)
        .filter(
            Notification.created_at < cutoff,
            Notification.status.in_((NotificationStatus.DELIVERED, NotificationStatus.FAILED)),
        )
        .delete(synchronize_session=False)
    )
    db.commit()

    removed += notification_queue.cleanup_failed_jobs(FAILED_JOB_RETENTION_DAYS)
    logger.info('Cleanup task completed: %s items cleaned', removed)
    return removed


def check_health(db: Session) -> dict:
    warnings = []
    try:
        db.execute(text('SELECT 1'))
        database_ok = True
    except Exception as exc:  # reported, not raised
        database_ok = False
        warnings.append(f'Database check failed: {exc}')
        logger.error('Health check: database unavailable: %s', exc)

    queue = notification_queue.stats()
    if queue['failed'] > FAILED_WARNING_THRESHOLD:
        warnings.append(f"High number of failed jobs in queue: {queue['failed']}")
    if queue['pending'] > PENDING_WARNING_THRESHOLD:
        warnings.append(f"High number of pending jobs in queue: {queue['pending']}")
    for warning in warnings:
        logger.warning(warning)

    pending = failed = 0
    if database_ok:
        pending = db.query(Notification).filter(Notification.status == NotificationStatus.PENDING).count()
        failed = db.query(Notification).filter(Notification.status == NotificationStatus.FAILED).count()

    return {
        'database': database_ok,
        'pending_notifications': pending,
        'failed_notifications': failed,
        'warnings': warnings,
    }


def mark_sent_as_delivered(db: Session) -> int:
    """Providers are not polled; SENT notifications count as delivered after an hour."""
    cutoff = datetime.now() - timedelta(hours=DELIVERED_AFTER_HOURS)
    notifications = (
        db.query(Notification)
        .filter(Notification.status == NotificationStatus.SENT, Notification.sent_at < cutoff)
        .order_by(Notification.sent_at.asc())
        .limit(STATUS_UPDATE_BATCH)
        .all()
    )
    now = datetime.now()
    for notification in notifications:
        notification.status = NotificationStatus.DELIVERED
        notification.delivered_at = now
    db.commit()

    if notifications:
        logger.info('Notification status update completed: %s notifications updated', len(notifications))
    return len(notifications)


def retry_failed_notifications(db: Session) -> int:
    cutoff = datetime.now() - timedelta(minutes=RETRY_AFTER_MINUTES)
    notification_ids = [
        row.id
        for row in db.query(Notification.id)
        .filter(
            Notification.status == NotificationStatus.FAILED,
            Notification.retry_count < MAX_ATTEMPTS,
            Notification.updated_at < cutoff,
        )
        .order_by(Notification.updated_at.asc())
        .limit(RETRY_BATCH)
        .all()
    ]

    service = NotificationService(db)
    for notification_id in notification_ids:
        service.resend(notification_id, count_retry=True)

    if notification_ids:
        logger.info('Failed notification retry completed: %s notifications retried', len(notification_ids))
    return len(notification_ids)


@dataclass
class ScheduledTask:
    name: str
    schedule: str
    description: str
    func: Callable[[Session], object]
    trigger: str
    trigger_args: dict
    enabled: bool = True
    running: bool = False
    last_run_at: datetime | None = None
    last_error: str | None = None
    last_result: object = field(default=None, repr=False)


def default_tasks() -> dict[str, ScheduledTask]:
    tasks = [
        ScheduledTask(
            'appointment-reminders', '0 * * * *', "Send reminders for tomorrow's appointments",
            send_due_reminders, 'cron', {'minute': 0},
        ),
        ScheduledTask(
            'daily-cleanup', '0 2 * * *', 'Remove old notifications and failed queue jobs',
            cleanup_old_records, 'cron', {'hour': 2, 'minute': 0},
        ),
        ScheduledTask(
            'health-check', '*/5 * * * *', 'Check the database and the notification queue',
            check_health, 'interval', {'minutes': 5},
        ),
        ScheduledTask(
            'notification-status-update', '*/10 * * * *', 'Mark sent notifications as delivered',
            mark_sent_as_delivered, 'interval', {'minutes': 10},
        ),
        ScheduledTask(
            'failed-job-retry', '*/30 * * * *', 'Retry failed notifications',
            retry_failed_notifications, 'interval', {'minutes': 30},
        ),
    ]
    return {task.name: task for task in tasks}


class SchedulerService:
    def __init__(self, session_factory=SessionLocal, timezone: str | None = config.SCHEDULER_TIMEZONE):
        self.session_factory = session_factory
        self.timezone = timezone
        self.scheduler: BackgroundScheduler | None = None
        self.tasks = default_tasks()
        self._lock = Lock()

    @property
    def is_running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self) -> None:
        if self.is_running:
            logger.warning('Scheduler already running')
            return

        self.scheduler = BackgroundScheduler(timezone=self.timezone) if self.timezone else BackgroundScheduler()
        for task in self.tasks.values():
            self.scheduler.add_job(
                self.run_task,
                task.trigger,
                args=[task.name],
                id=task.name,
                max_instances=1,
                coalesce=True,
                **task.trigger_args,
            )
            if not task.enabled:
                self.scheduler.pause_job(task.name)
            logger.info('Scheduled task: %s (%s, enabled: %s)', task.name, task.schedule, task.enabled)

        self.scheduler.start()
        notification_queue.attach_scheduler(self.scheduler)
        logger.info('Scheduler started with %s tasks', len(self.tasks))

    def stop(self) -> None:
        if not self.is_running:
            return
        notification_queue.detach_scheduler()
        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        logger.info('Scheduler stopped')

    def run_task(self, name: str):
        task = self._get_task(name)
        with self._lock:
            task.running = True

        db = self.session_factory()
        try:
            logger.debug('Running task: %s', name)
            result = task.func(db)
            task.last_error = None
            task.last_result = result
            return result
        except Exception as exc:  # recorded on the task; the scheduler thread keeps going
            db.rollback()
            task.last_error = str(exc)
            logger.exception('Task %s failed', name)
            return None
        finally:
            db.close()
            with self._lock:
                task.running = False
                task.last_run_at = datetime.now()

    def run_task_manually(self, name: str):
        logger.info('Running task manually: %s', name)
        task = self._get_task(name)
        result = self.run_task(name)
        return {'task': name, 'result': result, 'error': task.last_error}

    def toggle_task(self, name: str, enabled: bool) -> ScheduledTask:
        task = self._get_task(name)
        if task.enabled == enabled:
            return task

        task.enabled = enabled
        if self.is_running:
            if enabled:
                self.scheduler.resume_job(name)
            else:
                self.scheduler.pause_job(name)
        logger.info('Task %s: %s', 'enabled' if enabled else 'disabled', name)
        return task

    def tasks_status(self) -> list[dict]:
        statuses = []
        for task in self.tasks.values():
            job = self.scheduler.get_job(task.name) if self.is_running else None
            statuses.append({
                'name': task.name,
                'schedule': task.schedule,
                'description': task.description,
                'enabled': task.enabled,
                'running': task.running,
                'next_run_time': job.next_run_time if job is not None else None,
                'last_run_at': task.last_run_at,
                'last_error': task.last_error,
            })
        return statuses

    def stats(self) -> dict:
        return {
            'initialized': self.is_running,
            'total_tasks': len(self.tasks),
            'enabled_tasks': sum(1 for task in self.tasks.values() if task.enabled),
            'running_tasks': sum(1 for task in self.tasks.values() if task.running),
        }

    def health(self) -> dict:
        db = self.session_factory()
        try:
            return check_health(db)
        finally:
            db.close()

    def _get_task(self, name: str) -> ScheduledTask:
        task = self.tasks.get(name)
        if task is None:
            raise NotFoundError(f'Task "{name}" not found', code='TASK_NOT_FOUND')
        return task


scheduler_service = SchedulerService()
