from datetime import datetime, time

from pydantic import EmailStr, Field, field_validator, model_validator

from backend.schemas.common import CamelModel
from backend.schemas.patient import PHONE_PATTERN


def _validate_specialties(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    cleaned = [item.strip() for item in value if isinstance(item, str)]
    if not cleaned or any(not item for item in cleaned) or len(cleaned) != len(value):
        raise ValueError('At least one specialty is required and every specialty must be a non-empty string.')
    return cleaned


class ProfessionalCreate(CamelModel):
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    license: str = Field(min_length=3, max_length=20)
    specialties: list[str]

    check_specialties = field_validator('specialties')(_validate_specialties)


class ProfessionalUpdate(CamelModel):
    first_name: str | None = Field(default=None, min_length=2, max_length=50)
    last_name: str | None = Field(default=None, min_length=2, max_length=50)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    license: str | None = Field(default=None, min_length=3, max_length=20)
    specialties: list[str] | None = None
    is_active: bool | None = None

    check_specialties = field_validator('specialties')(_validate_specialties)


class WorkingHourIn(CamelModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    is_active: bool = True

    @model_validator(mode='after')
    def check_range(self):
        if self.end_time <= self.start_time:
            raise ValueError('End time must be after start time.')
        return self


class WorkingHoursUpdate(CamelModel):
    working_hours: list[WorkingHourIn]

    @field_validator('working_hours')
    @classmethod
    def check_duplicate_days(cls, value: list[WorkingHourIn]) -> list[WorkingHourIn]:
        days = [item.day_of_week for item in value]
        if len(days) != len(set(days)):
            raise ValueError('Working hours cannot repeat a day of the week.')
        return value


class WorkingHourResponse(CamelModel):
    id: int
    professional_id: int
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool


class ScheduleBlockCreate(CamelModel):
    title: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    start_date: datetime
    end_date: datetime

    @model_validator(mode='after')
    def check_range(self):
        if self.end_date <= self.start_date:
            raise ValueError('Block end must be after block start.')
        return self


class ScheduleBlockResponse(CamelModel):
    id: int
    professional_id: int
    title: str
    description: str | None = None
    start_date: datetime
    end_date: datetime
    created_at: datetime | None = None


class ProfessionalResponse(CamelModel):
    id: int
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    license: str
    specialties: list[str]
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProfessionalDetailResponse(ProfessionalResponse):
    working_hours: list[WorkingHourResponse] = []


class ProfessionalStats(CamelModel):
    total_appointments: int
    upcoming_appointments: int
    completed_appointments: int
    cancelled_appointments: int
    treatment_types: int
    working_days: int
