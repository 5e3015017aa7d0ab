from datetime import date, datetime

from pydantic import Field, field_validator, model_validator

from backend.models.appointment import AppointmentStatus
from backend.schemas.common import CamelModel
from backend.services.availability import as_naive

MAX_NOTES_LENGTH = 500
MAX_OBSERVATIONS_LENGTH = 1000


class AppointmentCreate(CamelModel):
    patient_id: int
    professional_id: int
    treatment_type_id: int
    start_time: datetime
    end_time: datetime
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)

    # Stored and compared as naive local time.
    @field_validator('start_time', 'end_time')
    @classmethod
    def to_local_time(cls, value: datetime) -> datetime:
        return as_naive(value)

    @model_validator(mode='after')
    def check_times(self):
        if self.start_time <= datetime.now():
            raise ValueError('Appointments must be scheduled in the future.')
        if self.end_time <= self.start_time:
            raise ValueError('End time must be after start time.')
        return self


class AppointmentUpdate(CamelModel):
    treatment_type_id: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: AppointmentStatus | None = None
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)
    observations: str | None = Field(default=None, max_length=MAX_OBSERVATIONS_LENGTH)

    @field_validator('start_time', 'end_time')
    @classmethod
    def to_local_time(cls, value: datetime | None) -> datetime | None:
        return as_naive(value) if value is not None else None

    @model_validator(mode='after')
    def check_times(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError('End time must be after start time.')
        return self


class AppointmentStatusChange(CamelModel):
    status: AppointmentStatus
    observations: str | None = Field(default=None, max_length=MAX_OBSERVATIONS_LENGTH)


class AppointmentPatient(CamelModel):
    id: int
    first_name: str
    last_name: str
    phone: str
    email: str | None = None


class AppointmentProfessional(CamelModel):
    id: int
    first_name: str
    last_name: str
    specialties: list[str] = []


class AppointmentTreatmentType(CamelModel):
    id: int
    name: str
    duration: int
    color: str | None = None


class AppointmentResponse(CamelModel):
    id: int
    patient_id: int
    professional_id: int
    treatment_type_id: int
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    notes: str | None = None
    observations: str | None = None
    created_by_id: int | None = None
    updated_by_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    patient: AppointmentPatient | None = None
    professional: AppointmentProfessional | None = None
    treatment_type: AppointmentTreatmentType | None = None


class TimeSlotResponse(CamelModel):
    start_time: datetime
    end_time: datetime


class AvailabilityResponse(CamelModel):
    available: bool
    professional_id: int
    start_time: datetime
    end_time: datetime


class AppointmentFilters(CamelModel):
    start_date: date | None = None
    end_date: date | None = None
    professional_id: int | None = None
    patient_id: int | None = None
    status: AppointmentStatus | None = None
    treatment_type_id: int | None = None


class AppointmentStats(CamelModel):
    total: int
    scheduled: int
    confirmed: int
    cancelled: int
    completed: int
    no_show: int
