from datetime import datetime

from pydantic import EmailStr, Field

from backend.models.notification import NotificationChannel, NotificationStatus, NotificationType
from backend.schemas.common import CamelModel


class SendAppointmentNotification(CamelModel):
    appointment_id: int
    type: NotificationType
    channels: list[NotificationChannel] = Field(
        default_factory=lambda: [NotificationChannel.WHATSAPP, NotificationChannel.EMAIL],
        min_length=1,
    )
    custom_message: str | None = Field(default=None, max_length=1000)


class ScheduleRemindersRequest(CamelModel):
    appointment_id: int


class TestWhatsAppRequest(CamelModel):
    phone: str = Field(pattern=r'^\+?[1-9]\d{1,14}$')
    message: str | None = Field(default=None, max_length=1000)


class TestEmailRequest(CamelModel):
    email: EmailStr


class NotificationResponse(CamelModel):
    id: int
    type: NotificationType
    channel: NotificationChannel
    recipient: str
    subject: str | None = None
    message: str
    status: NotificationStatus
    patient_id: int
    appointment_id: int | None = None
    external_id: str | None = None
    error_message: str | None = None
    retry_count: int
    scheduled_at: datetime | None = None
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime | None = None


class NotificationStats(CamelModel):
    total: int
    pending: int
    sent: int
    delivered: int
    failed: int
    by_type: dict[str, int]
    by_channel: dict[str, int]


class ServiceStatus(CamelModel):
    whatsapp: dict
    email: dict
    queue: dict
