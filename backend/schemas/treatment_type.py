from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_serializer

from backend.schemas.common import CamelModel

COLOR_PATTERN = r'^#[0-9A-Fa-f]{6}$'


class TreatmentTypeCreate(CamelModel):
    professional_id: int
    name: str = Field(min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    duration: int = Field(default=30, ge=5, le=480)
    price: Decimal | None = Field(default=None, ge=0)
    color: str | None = Field(default=None, pattern=COLOR_PATTERN)


class TreatmentTypeUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    duration: int | None = Field(default=None, ge=5, le=480)
    price: Decimal | None = Field(default=None, ge=0)
    color: str | None = Field(default=None, pattern=COLOR_PATTERN)
    is_active: bool | None = None


class TreatmentTypeDuplicate(CamelModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)


class TreatmentTypeResponse(CamelModel):
    id: int
    professional_id: int
    name: str
    description: str | None = None
    duration: int
    price: Decimal | None = None
    color: str | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_serializer('price')
    def serialize_price(self, value: Decimal | None) -> float | None:
        return float(value) if value is not None else None


class TreatmentTypeStats(CamelModel):
    total_appointments: int
    upcoming_appointments: int
    completed_appointments: int
    average_duration: int
    total_revenue: float


class TreatmentTypeUsage(CamelModel):
    treatment_type: TreatmentTypeResponse
    appointment_count: int
