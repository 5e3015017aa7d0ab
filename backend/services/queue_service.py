"""In-process job queue for notification delivery.

Jobs run synchronously in the caller's thread unless they carry a delay; delayed
jobs become one-off APScheduler ``date`` jobs when a scheduler is attached.
Without a scheduler they stay deferred and the hourly reminder task picks the
underlying notifications up once they are due. Failed jobs are retried with an
exponential backoff on the same scheduler.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable

from backend.database import SessionLocal

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_BACKOFF_SECONDS = 30
FAILED_JOB_RETENTION_DAYS = 7


@dataclass
class QueueJob:
    id: str
    type: str
    data: dict
    created_at: datetime = field(default_factory=datetime.now)
    scheduled_at: datetime | None = None
    attempts: int = 0
    error: str | None = None
    failed_at: datetime | None = None


class NotificationQueue:
    def __init__(self, session_factory=SessionLocal, retry_backoff_seconds: float = RETRY_BACKOFF_SECONDS):
        self.session_factory = session_factory
        self.retry_backoff_seconds = retry_backoff_seconds
        self.scheduler = None
        self._handlers: dict[str, Callable[[dict], None]] = {}
        self._lock = Lock()
        self._pending: dict[str, QueueJob] = {}
        self._failed: list[QueueJob] = []
        self._processing = 0
        self._completed = 0

    def register(self, job_type: str, handler: Callable[[dict], None]) -> None:
        self._handlers[job_type] = handler

    def attach_scheduler(self, scheduler) -> None:
        self.scheduler = scheduler

    def detach_scheduler(self) -> None:
        self.scheduler = None

    def add_job(self, job_type: str, data: dict, delay_seconds: float = 0) -> str:
        if job_type not in self._handlers:
            raise ValueError(f'Unknown job type: {job_type}')

        job = QueueJob(id=f'job_{uuid.uuid4().hex[:12]}', type=job_type, data=data)

        if delay_seconds > 0:
            job.scheduled_at = datetime.now() + timedelta(seconds=delay_seconds)
            with self._lock:
                self._pending[job.id] = job
            if self.scheduler is not None:
                self._schedule(job, job.id)
            else:
                logger.info('Job %s (%s) deferred until %s; no scheduler attached', job.id, job.type, job.scheduled_at)
            return job.id

        self.execute(job)
        return job.id

    def retry_delay(self, attempts: int) -> float:
        """Seconds to wait after the given number of failed attempts."""
        return self.retry_backoff_seconds * 2 ** (attempts - 1)

    def execute(self, job: QueueJob) -> bool:
        """Run a job, retrying failures up to ``MAX_ATTEMPTS`` times.

        With a scheduler attached each retry is a new ``date`` job after an
        exponential backoff and this call returns ``False`` while the job is
        pending again. Without one, retries run back to back in this thread.
        """
        handler = self._handlers[job.type]
        with self._lock:
            self._pending.pop(job.id, None)
            self._processing += 1

        succeeded = False
        retry_at = None
        try:
            while job.attempts < MAX_ATTEMPTS:
                job.attempts += 1
                try:
                    handler(job.data)
                except Exception as exc:  # handlers talk to the database and providers
                    job.error = str(exc)
                    logger.exception('Job %s (%s) failed on attempt %s', job.id, job.type, job.attempts)
                    if job.attempts < MAX_ATTEMPTS and self.scheduler is not None:
                        retry_at = datetime.now() + timedelta(seconds=self.retry_delay(job.attempts))
                        break
                else:
                    succeeded = True
                    break
        finally:
            with self._lock:
                self._processing -= 1
                if succeeded:
                    self._completed += 1
                elif retry_at is not None:
                    job.scheduled_at = retry_at
                    self._pending[job.id] = job
                else:
                    job.failed_at = datetime.now()
                    self._failed.append(job)

        if retry_at is not None:
            self._schedule(job, f'{job.id}:retry{job.attempts}')
        elif not succeeded:
            logger.error('Job %s (%s) failed permanently: %s', job.id, job.type, job.error)
        return succeeded

    def _schedule(self, job: QueueJob, scheduler_job_id: str) -> None:
        # Retries get their own id; the job that just fired may not be removed yet.
        self.scheduler.add_job(
            self.execute,
            'date',
            run_date=job.scheduled_at,
            args=[job],
            id=scheduler_job_id,
            misfire_grace_time=None,
        )
        logger.debug('Job %s (%s) scheduled for %s', job.id, job.type, job.scheduled_at)

    def stats(self) -> dict:
        with self._lock:
            return {
                'pending': len(self._pending),
                'processing': self._processing,
                'completed': self._completed,
                'failed': len(self._failed),
            }

    def failed_jobs(self) -> list[QueueJob]:
        with self._lock:
            return list(self._failed)

    def cleanup_failed_jobs(self, older_than_days: int = FAILED_JOB_RETENTION_DAYS) -> int:
        cutoff = datetime.now() - timedelta(days=older_than_days)
        with self._lock:
            kept = [job for job in self._failed if job.failed_at and job.failed_at >= cutoff]
            removed = len(self._failed) - len(kept)
            self._failed = kept

        logger.info('Cleaned up %s failed jobs older than %s days', removed, older_than_days)
        return removed

    def status(self) -> dict:
        return {
            'enabled': True,
            'scheduler_attached': self.scheduler is not None,
            'job_types': sorted(self._handlers),
        }

    def reset(self) -> None:
        with self._lock:
            self._pending.clear()
            self._failed.clear()
            self._processing = 0
            self._completed = 0


notification_queue = NotificationQueue()
