from datetime import datetime

from backend.schemas.common import CamelModel


class TaskStatus(CamelModel):
    name: str
    schedule: str
    description: str
    enabled: bool
    running: bool
    next_run_time: datetime | None = None
    last_run_at: datetime | None = None
    last_error: str | None = None


class SchedulerStatus(CamelModel):
    running: bool
    tasks: list[TaskStatus]


class HealthReport(CamelModel):
    database: bool
    pending_notifications: int
    failed_notifications: int
    warnings: list[str]
