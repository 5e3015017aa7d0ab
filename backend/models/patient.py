"""Patient model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from backend.database import Base


class Patient(Base):
    """Represents a clinic patient."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(255))
    phone = Column(String(30), unique=True, nullable=False)
    document = Column(String(20), unique=True, nullable=False)
    date_of_birth = Column(Date)
    address = Column(String(255))
    notes = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    appointments = relationship("Appointment", back_populates="patient")
    notifications = relationship("Notification", back_populates="patient")

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'
