from datetime import date, datetime

from pydantic import EmailStr, Field, field_validator

from backend.schemas.common import CamelModel

PHONE_PATTERN = r'^\+?[1-9]\d{1,14}$'
MAX_AGE_YEARS = 120


def _strip(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip()


def _validate_document(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not 7 <= len(normalized) <= 20:
        raise ValueError('Document must be between 7 and 20 characters.')
    if not normalized.isalnum():
        raise ValueError('Document may only contain letters and numbers.')
    return normalized


def _validate_birth_date(value: date | None) -> date | None:
    if value is None:
        return None
    today = date.today()
    if value > today or today.year - value.year > MAX_AGE_YEARS:
        raise ValueError('Invalid date of birth.')
    return value


class PatientCreate(CamelModel):
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    email: EmailStr | None = None
    phone: str = Field(pattern=PHONE_PATTERN)
    document: str
    date_of_birth: date | None = None
    address: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=500)

    strip_text = field_validator('first_name', 'last_name', 'address', 'notes', mode='before')(_strip)
    check_document = field_validator('document')(_validate_document)
    check_birth_date = field_validator('date_of_birth')(_validate_birth_date)


class PatientUpdate(CamelModel):
    first_name: str | None = Field(default=None, min_length=2, max_length=50)
    last_name: str | None = Field(default=None, min_length=2, max_length=50)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    document: str | None = None
    date_of_birth: date | None = None
    address: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=500)
    is_active: bool | None = None

    strip_text = field_validator('first_name', 'last_name', 'address', 'notes', mode='before')(_strip)
    check_document = field_validator('document')(_validate_document)
    check_birth_date = field_validator('date_of_birth')(_validate_birth_date)


class PatientResponse(CamelModel):
    id: int
    first_name: str
    last_name: str
    email: str | None = None
    phone: str
    document: str
    date_of_birth: date | None = None
    address: str | None = None
    notes: str | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PatientStats(CamelModel):
    total: int
    active: int
    inactive: int
    new_this_month: int


class AvailabilityCheckResponse(CamelModel):
    available: bool
