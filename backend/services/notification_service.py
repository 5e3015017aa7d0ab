"""Patient notifications: message templates, records and delivery."""

import logging
import re
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from backend.core.errors import BadRequestError, NotFoundError
from backend.core.pagination import Page, PageParams, paginate
from backend.models.appointment import ACTIVE_STATUSES, Appointment
from backend.models.notification import (
    Notification,
    NotificationChannel,
    NotificationStatus,
    NotificationType,
)
from backend.models.system_config import SystemConfig
from backend.services.email_service import email_service
from backend.services.queue_service import MAX_ATTEMPTS, notification_queue
from backend.services.whatsapp_service import whatsapp_service

logger = logging.getLogger(__name__)

DELIVER_JOB = 'deliver_notification'
DEFAULT_REMINDER_HOURS = 24

DEFAULT_CLINIC_NAME = 'Dental Clinic'
DEFAULT_CLINIC_ADDRESS = 'Address not configured'
DEFAULT_CLINIC_PHONE = 'Phone not configured'

SORTABLE_COLUMNS = {
    'created_at': Notification.created_at,
    'scheduled_at': Notification.scheduled_at,
    'sent_at': Notification.sent_at,
    'status': Notification.status,
}

TEMPLATES = {
    NotificationType.CONFIRMATION: {
        'whatsapp': (
            'Hello {{patientName}}!\n\n'
            'Your appointment has been confirmed:\n\n'
            'Date: {{date}}\n'
            'Time: {{time}}\n'
            'Professional: {{professional}}\n'
            'Treatment: {{treatment}}\n\n'
            '{{clinicAddress}}\n'
            '{{clinicPhone}}\n\n'
            'Please arrive 10 minutes early. See you soon!\n\n'
            '{{clinicName}}'
        ),
        'subject': 'Appointment confirmation - {{clinicName}}',
        'text': (
            'Hello {{patientName}},\n\n'
            'Your appointment has been confirmed:\n\n'
            'Date: {{date}}\n'
            'Time: {{time}}\n'
            'Professional: {{professional}}\n'
            'Treatment: {{treatment}}\n\n'
            '{{clinicAddress}}\n'
            '{{clinicPhone}}\n\n'
            'Please arrive 10 minutes before your appointment.\n\n'
            'Regards,\n'
            '{{clinicName}}'
        ),
    },
    NotificationType.REMINDER: {
        'whatsapp': (
            'Hello {{patientName}}!\n\n'
            'This is a reminder of your appointment TOMORROW:\n\n'
            '{{date}}\n'
            '{{time}}\n'
            '{{professional}}\n'
            '{{treatment}}\n\n'
            '{{clinicAddress}}\n\n'
            'Please confirm your attendance by replying to this message.\n\n'
            '{{clinicName}}\n'
            '{{clinicPhone}}'
        ),
        'subject': 'Appointment reminder - Tomorrow - {{clinicName}}',
        'text': (
            'Hello {{patientName}},\n\n'
            'This is a reminder that you have an appointment TOMORROW:\n\n'
            'Date: {{date}}\n'
            'Time: {{time}}\n'
            'Professional: {{professional}}\n'
            'Treatment: {{treatment}}\n\n'
            '{{clinicAddress}}\n'
            '{{clinicPhone}}\n\n'
            'Please confirm your attendance.\n\n'
            'Regards,\n'
            '{{clinicName}}'
        ),
    },
    NotificationType.CANCELLATION: {
        'whatsapp': (
            'Hello {{patientName}},\n\n'
            'Your appointment on {{date}} at {{time}} with {{professional}} has been cancelled.\n\n'
            'To reschedule, contact us at {{clinicPhone}}.\n\n'
            '{{clinicName}}'
        ),
        'subject': 'Appointment cancelled - {{clinicName}}',
        'text': (
            'Hello {{patientName}},\n\n'
            'Your appointment has been cancelled:\n\n'
            'Date: {{date}}\n'
            'Time: {{time}}\n'
            'Professional: {{professional}}\n\n'
            'To reschedule, contact us at {{clinicPhone}}.\n\n'
            'Regards,\n'
            '{{clinicName}}'
        ),
    },
    NotificationType.MODIFICATION: {
        'whatsapp': (
            'Hello {{patientName}},\n\n'
            'Your appointment has been changed.\n\n'
            'NEW TIME:\n'
            '{{date}}\n'
            '{{time}}\n'
            '{{professional}}\n'
            '{{treatment}}\n\n'
            '{{clinicAddress}}\n\n'
            '{{clinicName}}\n'
            '{{clinicPhone}}'
        ),
        'subject': 'Appointment changed - {{clinicName}}',
        'text': (
            'Hello {{patientName}},\n\n'
            'Your appointment has been changed.\n\n'
            'NEW TIME:\n'
            'Date: {{date}}\n'
            'Time: {{time}}\n'
            'Professional: {{professional}}\n'
            'Treatment: {{treatment}}\n\n'
            '{{clinicAddress}}\n'
            '{{clinicPhone}}\n\n'
            'Regards,\n'
            '{{clinicName}}'
        ),
    },
    NotificationType.CUSTOM: {
        'whatsapp': '{{message}}',
        'subject': '{{subject}}',
        'text': '{{message}}',
    },
}

_PLACEHOLDER_RE = re.compile(r'{{(\w+)}}')


def process_template(template: str, variables: dict[str, str]) -> str:
    """Replace ``{{name}}`` placeholders; known names with empty values become ''."""

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        return variables[name] or ''

    return _PLACEHOLDER_RE.sub(replace, template)


def render(notification_type: NotificationType, channel: NotificationChannel, variables: dict) -> tuple[str | None, str]:
    """Return ``(subject, message)`` for the channel; WhatsApp has no subject."""
    template = TEMPLATES[NotificationType(notification_type)]
    if NotificationChannel(channel) == NotificationChannel.WHATSAPP:
        return None, process_template(template['whatsapp'], variables)
    return process_template(template['subject'], variables), process_template(template['text'], variables)


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, notification_id: int) -> Notification:
        notification = self.db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError('Notification not found', code='NOTIFICATION_NOT_FOUND')
        return notification

    def clinic_info(self) -> dict[str, str]:
        rows = (
            self.db.query(SystemConfig)
            .filter(SystemConfig.key.in_(('CLINIC_NAME', 'CLINIC_ADDRESS', 'CLINIC_PHONE')))
            .all()
        )
        values = {row.key: row.value for row in rows}
        return {
            'name': values.get('CLINIC_NAME') or DEFAULT_CLINIC_NAME,
            'address': values.get('CLINIC_ADDRESS') or DEFAULT_CLINIC_ADDRESS,
            'phone': values.get('CLINIC_PHONE') or DEFAULT_CLINIC_PHONE,
        }

    def channel_enabled(self, channel: NotificationChannel) -> bool:
        key = f'ENABLE_{NotificationChannel(channel).value}_NOTIFICATIONS'
        row = self.db.query(SystemConfig).filter(SystemConfig.key == key).first()
        return row is None or row.value.strip().lower() != 'false'

    def reminder_hours(self) -> int:
        row = self.db.query(SystemConfig).filter(SystemConfig.key == 'REMINDER_HOURS_BEFORE').first()
        if row is None or not row.value.strip().isdigit():
            return DEFAULT_REMINDER_HOURS
        return int(row.value)

    def template_vars(self, appointment: Appointment, custom_message: str | None = None) -> dict[str, str]:
        clinic = self.clinic_info()
        return {
            'patientName': appointment.patient.full_name,
            'date': appointment.start_time.strftime('%A, %d/%m/%Y'),
            'time': appointment.start_time.strftime('%H:%M'),
            'professional': appointment.professional.full_name,
            'treatment': appointment.treatment_type.name if appointment.treatment_type else '',
            'clinicName': clinic['name'],
            'clinicAddress': clinic['address'],
            'clinicPhone': clinic['phone'],
            'message': custom_message or '',
            'subject': custom_message or '',
        }

    def _load_appointment(self, appointment_id: int) -> Appointment:
        appointment = (
            self.db.query(Appointment)
            .options(
                joinedload(Appointment.patient),
                joinedload(Appointment.professional),
                joinedload(Appointment.treatment_type),
            )
            .filter(Appointment.id == appointment_id)
            .first()
        )
        if appointment is None:
            raise NotFoundError('Appointment not found', code='APPOINTMENT_NOT_FOUND')
        return appointment

    def send_appointment_notification(
        self,
        appointment_id: int,
        notification_type: NotificationType,
        custom_message: str | None = None,
        channels: list[NotificationChannel] | None = None,
    ) -> list[Notification]:
        """Create one notification per reachable channel and hand each to the queue."""
        appointment = self._load_appointment(appointment_id)
        patient = appointment.patient
        channels = {
            channel for channel in (channels or (NotificationChannel.WHATSAPP, NotificationChannel.EMAIL))
            if self.channel_enabled(channel)
        }
        variables = self.template_vars(appointment, custom_message)

        recipients = []
        if NotificationChannel.WHATSAPP in channels and patient.phone:
            recipients.append((NotificationChannel.WHATSAPP, patient.phone))
        if NotificationChannel.EMAIL in channels and patient.email:
            recipients.append((NotificationChannel.EMAIL, patient.email))

        if not recipients:
            logger.warning('No contact methods available for patient %s', patient.id)
            return []

        notifications = []
        for channel, recipient in recipients:
            subject, message = render(notification_type, channel, variables)
            notifications.append(Notification(
                type=notification_type,
                channel=channel,
                recipient=recipient,
                subject=subject,
                message=message,
                status=NotificationStatus.PENDING,
                patient_id=patient.id,
                appointment_id=appointment.id,
                scheduled_at=datetime.now(),
            ))
        self.db.add_all(notifications)
        self.db.commit()

        for notification in notifications:
            notification_queue.add_job(DELIVER_JOB, {'notification_id': notification.id})
            logger.info('%s notification %s queued via %s', notification_type.value, notification.id, notification.channel.value)

        for notification in notifications:
            self.db.refresh(notification)
        return notifications

    def schedule_reminders(self, appointment_id: int) -> list[Notification]:
        """Queue REMINDER notifications to go out ahead of the appointment.

        The message body is rendered at delivery time so it reflects any change
        made to the appointment in the meantime.
        """
        appointment = self._load_appointment(appointment_id)
        patient = appointment.patient
        reminder_time = appointment.start_time - timedelta(hours=self.reminder_hours())
        now = datetime.now()

        if reminder_time <= now:
            logger.info('Reminder time for appointment %s already passed; not scheduled', appointment.id)
            return []

        notifications = []
        if patient.phone and self.channel_enabled(NotificationChannel.WHATSAPP):
            notifications.append((NotificationChannel.WHATSAPP, patient.phone))
        if patient.email and self.channel_enabled(NotificationChannel.EMAIL):
            notifications.append((NotificationChannel.EMAIL, patient.email))

        records = [
            Notification(
                type=NotificationType.REMINDER,
                channel=channel,
                recipient=recipient,
                message='',
                status=NotificationStatus.PENDING,
                patient_id=patient.id,
                appointment_id=appointment.id,
                scheduled_at=reminder_time,
            )
            for channel, recipient in notifications
        ]
        self.db.add_all(records)
        self.db.commit()

        delay = (reminder_time - now).total_seconds()
        for record in records:
            notification_queue.add_job(DELIVER_JOB, {'notification_id': record.id}, delay_seconds=delay)

        logger.info('Reminders scheduled for appointment %s at %s', appointment.id, reminder_time)
        return records

    def deliver(self, notification_id: int) -> Notification:
        """Send a PENDING notification through its channel and record the outcome."""
        notification = self.get(notification_id)
        if notification.status != NotificationStatus.PENDING:
            logger.debug('Notification %s is %s; skipping delivery', notification.id, notification.status.value)
            return notification

        appointment = None
        if notification.appointment_id is not None:
            appointment = self._load_appointment(notification.appointment_id)

        if notification.type == NotificationType.REMINDER and appointment is not None \
                and appointment.status not in ACTIVE_STATUSES:
            # Never retried: the appointment no longer needs a reminder.
            notification.retry_count = MAX_ATTEMPTS
            return self.update_status(notification, NotificationStatus.FAILED, error='Appointment is no longer active')

        if not notification.message and appointment is not None:
            notification.subject, notification.message = render(
                notification.type, notification.channel, self.template_vars(appointment)
            )

        if notification.channel == NotificationChannel.WHATSAPP:
            result = whatsapp_service.send_message(notification.recipient, notification.message)
        else:
            result = email_service.send_email(notification.recipient, notification.subject or '', notification.message)

        if result.success:
            return self.update_status(notification, NotificationStatus.SENT, message_id=result.message_id)
        return self.update_status(notification, NotificationStatus.FAILED, error=result.error)

    def update_status(
        self,
        notification: Notification,
        status: NotificationStatus,
        message_id: str | None = None,
        error: str | None = None,
    ) -> Notification:
        notification.status = status
        now = datetime.now()
        if status == NotificationStatus.SENT:
            notification.sent_at = now
        elif status == NotificationStatus.DELIVERED:
            notification.delivered_at = now
        if message_id:
            notification.external_id = message_id
        if error:
            notification.error_message = error

        self.db.commit()
        self.db.refresh(notification)
        logger.debug('Notification %s -> %s', notification.id, status.value)
        return notification

    def list_notifications(
        self,
        params: PageParams,
        status: NotificationStatus | None = None,
        notification_type: NotificationType | None = None,
        channel: NotificationChannel | None = None,
        patient_id: int | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Page:
        query = self.db.query(Notification)
        if status is not None:
            query = query.filter(Notification.status == status)
        if notification_type is not None:
            query = query.filter(Notification.type == notification_type)
        if channel is not None:
            query = query.filter(Notification.channel == channel)
        if patient_id is not None:
            query = query.filter(Notification.patient_id == patient_id)
        if start_date is not None:
            query = query.filter(Notification.created_at >= start_date)
        if end_date is not None:
            query = query.filter(Notification.created_at <= end_date)
        return paginate(query, params, SORTABLE_COLUMNS, default_sort='created_at', default_order='desc')

    def resend(self, notification_id: int, count_retry: bool = False) -> Notification:
        """Requeue a FAILED notification.

        Manual resends start the retry budget over; automatic retries
        (``count_retry=True``) consume one attempt of it.
        """
        notification = self.get(notification_id)
        if notification.status != NotificationStatus.FAILED:
            raise BadRequestError('Only failed notifications can be resent')

        notification.status = NotificationStatus.PENDING
        notification.retry_count = (notification.retry_count or 0) + 1 if count_retry else 0
        notification.error_message = None
        notification.sent_at = None
        notification.delivered_at = None
        self.db.commit()

        notification_queue.add_job(DELIVER_JOB, {'notification_id': notification.id})
        logger.info('Failed notification %s resent', notification.id)

        self.db.refresh(notification)
        return notification

    def stats(self) -> dict:
        by_status = dict(
            self.db.query(Notification.status, func.count(Notification.id)).group_by(Notification.status).all()
        )
        by_type = dict(
            self.db.query(Notification.type, func.count(Notification.id)).group_by(Notification.type).all()
        )
        by_channel = dict(
            self.db.query(Notification.channel, func.count(Notification.id)).group_by(Notification.channel).all()
        )
        return {
            'total': sum(by_status.values()),
            'pending': by_status.get(NotificationStatus.PENDING, 0),
            'sent': by_status.get(NotificationStatus.SENT, 0),
            'delivered': by_status.get(NotificationStatus.DELIVERED, 0),
            'failed': by_status.get(NotificationStatus.FAILED, 0),
            'by_type': {key.value: value for key, value in by_type.items()},
            'by_channel': {key.value: value for key, value in by_channel.items()},
        }

    def service_status(self) -> dict:
        return {
            'whatsapp': whatsapp_service.status(),
            'email': email_service.status(),
            'queue': {**notification_queue.status(), **notification_queue.stats()},
        }


def deliver_notification_job(data: dict) -> None:
    db = notification_queue.session_factory()
    try:
        NotificationService(db).deliver(data['notification_id'])
    finally:
        db.close()


notification_queue.register(DELIVER_JOB, deliver_notification_job)
