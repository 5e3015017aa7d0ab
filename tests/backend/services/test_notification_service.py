from datetime import datetime, timedelta

import pytest

from backend.core.errors import BadRequestError, NotFoundError
from backend.core.pagination import PageParams
from backend.models.appointment import AppointmentStatus
from backend.models.notification import (
    Notification,
    NotificationChannel,
    NotificationStatus,
    NotificationType,
)
from backend.models.system_config import SystemConfig
from backend.services.delivery import DeliveryResult
from backend.services.email_service import email_service
from backend.services.notification_service import NotificationService, process_template, render
from backend.services.queue_service import MAX_ATTEMPTS
from backend.services.whatsapp_service import whatsapp_service

START = datetime(2030, 1, 7, 9, 0)


@pytest.fixture
def appointment(make_patient, make_professional, make_treatment_type, make_appointment):
    professional = make_professional()
    treatment_type = make_treatment_type(professional)
    patient = make_patient(first_name='Ana', last_name='Lopez')
    return make_appointment(patient, treatment_type, START, START + timedelta(minutes=30))


@pytest.fixture
def sent_messages(monkeypatch: pytest.MonkeyPatch) -> list:
    sent = []

    def fake_whatsapp(to: str, message: str) -> DeliveryResult:
        sent.append(('WHATSAPP', to, message))
        return DeliveryResult(success=True, message_id='SM123')

    def fake_email(to: str, subject: str, text: str, html: str | None = None) -> DeliveryResult:
        sent.append(('EMAIL', to, subject))
        return DeliveryResult(success=True, message_id='<abc@smtp>')

    monkeypatch.setattr(whatsapp_service, 'send_message', fake_whatsapp)
    monkeypatch.setattr(email_service, 'send_email', fake_email)
    return sent


def pending_notification(db, appointment, **overrides) -> Notification:
    values = {
        'type': NotificationType.REMINDER,
        'channel': NotificationChannel.WHATSAPP,
        'recipient': appointment.patient.phone,
        'message': '',
        'status': NotificationStatus.PENDING,
        'patient_id': appointment.patient_id,
        'appointment_id': appointment.id,
        'scheduled_at': datetime.now(),
    }
    values.update(overrides)
    notification = Notification(**values)
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def test_process_template_replaces_known_placeholders() -> None:
    result = process_template('Hi {{name}}, see {{missing}}{{empty}}!', {'name': 'Ana', 'empty': None})

    assert result == 'Hi Ana, see {{missing}}!'


def test_render_whatsapp_has_no_subject() -> None:
    subject, message = render(NotificationType.CANCELLATION, NotificationChannel.WHATSAPP, {
        'patientName': 'Ana Lopez',
        'date': 'Monday, 07/01/2030',
        'time': '09:00',
        'professional': 'Laura Gomez',
        'clinicPhone': '555-0100',
        'clinicName': 'Smile Clinic',
    })

    assert subject is None
    assert 'Your appointment on Monday, 07/01/2030 at 09:00 with Laura Gomez has been cancelled.' in message


def test_render_email_fills_subject() -> None:
    subject, message = render(NotificationType.CONFIRMATION, NotificationChannel.EMAIL, {
        'patientName': 'Ana Lopez',
        'clinicName': 'Smile Clinic',
    })

    assert subject == 'Appointment confirmation - Smile Clinic'
    assert message.startswith('Hello Ana Lopez,')


def test_send_appointment_notification_delivers_on_every_channel(db, appointment, sent_messages) -> None:
    notifications = NotificationService(db).send_appointment_notification(
        appointment.id, NotificationType.CONFIRMATION,
    )

    assert {notification.channel for notification in notifications} == {
        NotificationChannel.WHATSAPP, NotificationChannel.EMAIL,
    }
    assert all(notification.status == NotificationStatus.SENT for notification in notifications)
    assert all(notification.sent_at is not None for notification in notifications)
    assert {channel for channel, _, _ in sent_messages} == {'WHATSAPP', 'EMAIL'}
    whatsapp = next(n for n in notifications if n.channel == NotificationChannel.WHATSAPP)
    assert whatsapp.external_id == 'SM123'
    assert 'Hello Ana Lopez!' in whatsapp.message
    assert 'Dental Clinic' in whatsapp.message


def test_send_appointment_notification_uses_clinic_configuration(db, appointment, sent_messages) -> None:
    db.add(SystemConfig(key='CLINIC_NAME', value='Smile Clinic'))
    db.commit()

    notifications = NotificationService(db).send_appointment_notification(
        appointment.id, NotificationType.CONFIRMATION, channels=[NotificationChannel.EMAIL],
    )

    assert len(notifications) == 1
    assert notifications[0].subject == 'Appointment confirmation - Smile Clinic'


def test_disabled_channel_is_skipped(db, appointment, sent_messages) -> None:
    db.add(SystemConfig(key='ENABLE_EMAIL_NOTIFICATIONS', value='false'))
    db.commit()

    notifications = NotificationService(db).send_appointment_notification(
        appointment.id, NotificationType.CONFIRMATION,
    )

    assert [notification.channel for notification in notifications] == [NotificationChannel.WHATSAPP]


def test_patient_without_email_only_gets_whatsapp(db, appointment, sent_messages) -> None:
    appointment.patient.email = None
    db.commit()

    notifications = NotificationService(db).send_appointment_notification(
        appointment.id, NotificationType.MODIFICATION,
    )

    assert [notification.channel for notification in notifications] == [NotificationChannel.WHATSAPP]


def test_provider_failure_marks_notification_failed(db, appointment) -> None:
    notifications = NotificationService(db).send_appointment_notification(
        appointment.id, NotificationType.CONFIRMATION, channels=[NotificationChannel.WHATSAPP],
    )

    assert notifications[0].status == NotificationStatus.FAILED
    assert notifications[0].error_message == 'WhatsApp service not available'


def test_schedule_reminders_creates_pending_records(db, appointment) -> None:
    reminders = NotificationService(db).schedule_reminders(appointment.id)

    assert len(reminders) == 2
    assert all(reminder.status == NotificationStatus.PENDING for reminder in reminders)
    assert all(reminder.message == '' for reminder in reminders)
    assert all(reminder.scheduled_at == START - timedelta(hours=24) for reminder in reminders)


def test_schedule_reminders_honours_configured_lead_time(db, appointment) -> None:
    db.add(SystemConfig(key='REMINDER_HOURS_BEFORE', value='48'))
    db.commit()

    reminders = NotificationService(db).schedule_reminders(appointment.id)

    assert reminders[0].scheduled_at == START - timedelta(hours=48)


def test_schedule_reminders_skips_when_reminder_time_passed(db, appointment) -> None:
    appointment.start_time = datetime.now() + timedelta(hours=2)
    appointment.end_time = appointment.start_time + timedelta(minutes=30)
    db.commit()

    assert NotificationService(db).schedule_reminders(appointment.id) == []


def test_deliver_renders_reminder_at_send_time(db, appointment, sent_messages) -> None:
    notification = pending_notification(db, appointment)

    delivered = NotificationService(db).deliver(notification.id)

    assert delivered.status == NotificationStatus.SENT
    assert 'This is a reminder of your appointment TOMORROW' in delivered.message
    assert '09:00' in delivered.message


def test_deliver_fails_reminder_for_cancelled_appointment(db, appointment, sent_messages) -> None:
    appointment.status = AppointmentStatus.CANCELLED
    db.commit()
    notification = pending_notification(db, appointment)

    delivered = NotificationService(db).deliver(notification.id)

    assert delivered.status == NotificationStatus.FAILED
    assert delivered.retry_count == MAX_ATTEMPTS
    assert delivered.error_message == 'Appointment is no longer active'
    assert sent_messages == []


def test_deliver_leaves_non_pending_notifications_alone(db, appointment, sent_messages) -> None:
    notification = pending_notification(db, appointment, status=NotificationStatus.SENT, message='Hi')

    delivered = NotificationService(db).deliver(notification.id)

    assert delivered.status == NotificationStatus.SENT
    assert sent_messages == []


def test_resend_requeues_failed_notification_and_resets_retries(db, appointment, sent_messages) -> None:
    notification = pending_notification(
        db, appointment, status=NotificationStatus.FAILED, retry_count=2, error_message='timeout',
    )

    resent = NotificationService(db).resend(notification.id)

    assert resent.status == NotificationStatus.SENT
    assert resent.retry_count == 0
    assert resent.error_message is None


def test_automatic_resend_consumes_a_retry(db, appointment) -> None:
    notification = pending_notification(db, appointment, status=NotificationStatus.FAILED, retry_count=1)

    resent = NotificationService(db).resend(notification.id, count_retry=True)

    assert resent.retry_count == 2
    assert resent.status == NotificationStatus.FAILED


def test_resend_rejects_notifications_that_did_not_fail(db, appointment) -> None:
    notification = pending_notification(db, appointment)

    with pytest.raises(BadRequestError):
        NotificationService(db).resend(notification.id)


def test_get_missing_notification(db) -> None:
    with pytest.raises(NotFoundError) as exception_info:
        NotificationService(db).get(123)

    assert exception_info.value.code == 'NOTIFICATION_NOT_FOUND'


def test_list_and_stats_group_notifications(db, appointment) -> None:
    pending_notification(db, appointment)
    pending_notification(db, appointment, status=NotificationStatus.FAILED, channel=NotificationChannel.EMAIL)
    service = NotificationService(db)

    failed = service.list_notifications(PageParams(), status=NotificationStatus.FAILED)
    stats = service.stats()

    assert failed.total == 1
    assert failed.items[0].channel == NotificationChannel.EMAIL
    assert stats['total'] == 2
    assert stats['pending'] == 1
    assert stats['failed'] == 1
    assert stats['by_channel'] == {'WHATSAPP': 1, 'EMAIL': 1}
    assert stats['by_type'] == {'REMINDER': 2}
