"""Treatment type model definitions."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from backend.database import Base


class TreatmentType(Base):
    """A treatment offered by one professional; duration is in minutes."""
    __tablename__ = "treatment_types"

    id = Column(Integer, primary_key=True, index=True)
    professional_id = Column(Integer, ForeignKey("professionals.id"), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(String(500))
    duration = Column(Integer, nullable=False, default=30)
    price = Column(Numeric(10, 2))
    color = Column(String(7))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    professional = relationship("Professional", back_populates="treatment_types")
    appointments = relationship("Appointment", back_populates="treatment_type")

    __table_args__ = (
        UniqueConstraint('professional_id', 'name', name='uq_treatment_type_professional_name'),
    )
