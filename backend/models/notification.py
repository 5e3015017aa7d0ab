"""Notification model definitions."""

import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from backend.database import Base


class NotificationType(str, enum.Enum):
    CONFIRMATION = 'CONFIRMATION'
    REMINDER = 'REMINDER'
    CANCELLATION = 'CANCELLATION'
    MODIFICATION = 'MODIFICATION'
    CUSTOM = 'CUSTOM'


class NotificationChannel(str, enum.Enum):
    WHATSAPP = 'WHATSAPP'
    EMAIL = 'EMAIL'


class NotificationStatus(str, enum.Enum):
    PENDING = 'PENDING'
    SENT = 'SENT'
    DELIVERED = 'DELIVERED'
    FAILED = 'FAILED'


class Notification(Base):
    """A message sent, or queued to be sent, to a patient."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(Enum(NotificationType, name='notification_type'), nullable=False)
    channel = Column(Enum(NotificationChannel, name='notification_channel'), nullable=False)
    recipient = Column(String(255), nullable=False)
    subject = Column(String(255))
    message = Column(Text, nullable=False, default='')
    status = Column(
        Enum(NotificationStatus, name='notification_status'),
        nullable=False,
        default=NotificationStatus.PENDING,
    )
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.id"))
    external_id = Column(String(100))
    error_message = Column(Text)
    retry_count = Column(Integer, nullable=False, default=0)
    scheduled_at = Column(DateTime)
    sent_at = Column(DateTime)
    delivered_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    patient = relationship("Patient", back_populates="notifications")
    appointment = relationship("Appointment", back_populates="notifications")
