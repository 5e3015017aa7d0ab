"""Professional, working hour and schedule block model definitions."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from backend.database import Base


class Professional(Base):
    """Represents a practitioner who receives appointments."""
    __tablename__ = "professionals"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(255))
    phone = Column(String(30))
    license = Column(String(50), unique=True, nullable=False)
    specialties = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    working_hours = relationship(
        "WorkingHour",
        back_populates="professional",
        cascade="all, delete-orphan",
        order_by="WorkingHour.day_of_week",
    )
    schedule_blocks = relationship("ScheduleBlock", back_populates="professional", cascade="all, delete-orphan")
    treatment_types = relationship("TreatmentType", back_populates="professional")
    appointments = relationship("Appointment", back_populates="professional")

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'


class WorkingHour(Base):
    """Weekly working window; day_of_week runs 0 (Sunday) to 6 (Saturday)."""
    __tablename__ = "working_hours"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("professionals.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    professional = relationship("Professional", back_populates="working_hours")

    __table_args__ = (
        UniqueConstraint('professional_id', 'day_of_week', name='uq_working_hours_professional_day'),
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='chk_working_hours_day'),
        CheckConstraint('start_time < end_time', name='chk_working_hours_range'),
    )


class ScheduleBlock(Base):
    """A period during which the professional takes no appointments."""
    __tablename__ = "schedule_blocks"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("professionals.id"), nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(Text)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.now)

    professional = relationship("Professional", back_populates="schedule_blocks")

    __table_args__ = (
        CheckConstraint('start_date < end_date', name='chk_schedule_block_range'),
    )
