from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin, require_staff
from backend.core.errors import DeliveryFailedError
from backend.core.pagination import PageParams, pagination_params
from backend.core.rate_limit import general_limiter, notification_limiter
from backend.database import get_db
from backend.models.notification import NotificationChannel, NotificationStatus, NotificationType
from backend.schemas.common import ApiResponse, PaginatedResponse, paginated
from backend.schemas.notification import (
    NotificationResponse,
    NotificationStats,
    ScheduleRemindersRequest,
    SendAppointmentNotification,
    ServiceStatus,
    TestEmailRequest,
    TestWhatsAppRequest,
)
from backend.services.email_service import email_service
from backend.services.notification_service import NotificationService
from backend.services.queue_service import notification_queue
from backend.services.whatsapp_service import whatsapp_service

router = APIRouter(tags=['notifications'], dependencies=[Depends(require_staff), Depends(general_limiter)])


def _many(notifications) -> list[NotificationResponse]:
    return [NotificationResponse.model_validate(notification) for notification in notifications]


@router.post(
    '/send-appointment',
    response_model=ApiResponse[list[NotificationResponse]],
    dependencies=[Depends(notification_limiter)],
)
def send_appointment_notification(data: SendAppointmentNotification, db: Session = Depends(get_db)):
    notifications = NotificationService(db).send_appointment_notification(
        data.appointment_id, data.type, data.custom_message, data.channels
    )
    return ApiResponse[list[NotificationResponse]](
        message=f'{len(notifications)} notifications queued',
        data=_many(notifications),
    )


@router.post(
    '/schedule-reminders',
    response_model=ApiResponse[list[NotificationResponse]],
    dependencies=[Depends(notification_limiter)],
)
def schedule_reminders(data: ScheduleRemindersRequest, db: Session = Depends(get_db)):
    notifications = NotificationService(db).schedule_reminders(data.appointment_id)
    return ApiResponse[list[NotificationResponse]](
        message=f'{len(notifications)} reminders scheduled',
        data=_many(notifications),
    )


@router.get('', response_model=PaginatedResponse[NotificationResponse])
def list_notifications(
    params: PageParams = Depends(pagination_params),
    notification_status: NotificationStatus | None = Query(default=None, alias='status'),
    notification_type: NotificationType | None = Query(default=None, alias='type'),
    channel: NotificationChannel | None = Query(default=None),
    patient_id: int | None = Query(default=None, alias='patientId'),
    start_date: datetime | None = Query(default=None, alias='startDate'),
    end_date: datetime | None = Query(default=None, alias='endDate'),
    db: Session = Depends(get_db),
):
    page = NotificationService(db).list_notifications(
        params,
        status=notification_status,
        notification_type=notification_type,
        channel=channel,
        patient_id=patient_id,
        start_date=start_date,
        end_date=end_date,
    )
    return paginated(page, NotificationResponse, 'Notifications retrieved')


@router.post(
    '/{notification_id}/resend',
    response_model=ApiResponse[NotificationResponse],
    dependencies=[Depends(notification_limiter)],
)
def resend_notification(notification_id: int, db: Session = Depends(get_db)):
    notification = NotificationService(db).resend(notification_id)
    return ApiResponse[NotificationResponse](
        message='Notification resent',
        data=NotificationResponse.model_validate(notification),
    )


@router.get('/stats', response_model=ApiResponse[NotificationStats])
def notification_stats(db: Session = Depends(get_db)):
    stats = NotificationService(db).stats()
    return ApiResponse[NotificationStats](message='Notification statistics', data=NotificationStats(**stats))


@router.get('/queue-stats', response_model=ApiResponse[dict])
def queue_stats():
    return ApiResponse[dict](message='Queue statistics', data=notification_queue.stats())


@router.get('/service-status', response_model=ApiResponse[ServiceStatus])
def service_status(db: Session = Depends(get_db)):
    status_report = NotificationService(db).service_status()
    return ApiResponse[ServiceStatus](message='Notification service status', data=ServiceStatus(**status_report))


@router.post('/test-whatsapp', response_model=ApiResponse[dict], dependencies=[Depends(require_admin)])
def test_whatsapp(data: TestWhatsAppRequest, db: Session = Depends(get_db)):
    clinic = NotificationService(db).clinic_info()
    message = data.message or f'Test message from {clinic["name"]}. WhatsApp notifications are working.'
    result = whatsapp_service.send_message(data.phone, message)
    if not result.success:
        raise DeliveryFailedError(f'WhatsApp test failed: {result.error}')
    return ApiResponse[dict](message='WhatsApp test message sent', data={'messageId': result.message_id})


@router.post('/test-email', response_model=ApiResponse[dict], dependencies=[Depends(require_admin)])
def test_email(data: TestEmailRequest, db: Session = Depends(get_db)):
    clinic = NotificationService(db).clinic_info()
    result = email_service.send_test_email(data.email, clinic['name'])
    if not result.success:
        raise DeliveryFailedError(f'Email test failed: {result.error}')
    return ApiResponse[dict](message='Test email sent', data={'messageId': result.message_id})


@router.delete('/cleanup-failed', response_model=ApiResponse[dict], dependencies=[Depends(require_admin)])
def cleanup_failed_jobs(days: int = Query(default=7, ge=0, le=365)):
    removed = notification_queue.cleanup_failed_jobs(days)
    return ApiResponse[dict](message=f'{removed} failed jobs removed', data={'removed': removed})
