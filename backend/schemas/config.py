from datetime import datetime

from pydantic import EmailStr, Field

from backend.schemas.common import CamelModel


class ConfigItem(CamelModel):
    key: str = Field(min_length=1, max_length=100, pattern=r'^[A-Z][A-Z0-9_]*$')
    value: str
    description: str | None = Field(default=None, max_length=255)


class ConfigValueUpdate(CamelModel):
    value: str
    description: str | None = Field(default=None, max_length=255)


class ConfigBulkUpdate(CamelModel):
    configs: list[ConfigItem] = Field(min_length=1)


class ConfigResponse(CamelModel):
    id: int
    key: str
    value: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ClinicConfig(CamelModel):
    name: str
    address: str
    phone: str
    email: str
    website: str
    description: str


class ClinicConfigUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    address: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=30)
    email: EmailStr | None = None
    website: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=1000)


class RecentActivity(CamelModel):
    type: str
    description: str
    timestamp: datetime


class DashboardStats(CamelModel):
    today_appointments: int
    week_appointments: int
    month_appointments: int
    total_patients: int
    active_patients: int
    total_professionals: int
    active_professionals: int
    appointment_stats: dict[str, int]
    notification_stats: dict[str, int]
    recent_activity: list[RecentActivity]
