import logging
from datetime import datetime

from sqlalchemy.orm import Session

from backend.core.errors import BadRequestError, DuplicateResourceError, NotFoundError, ScheduleConflictError
from backend.core.pagination import Page, PageParams, paginate
from backend.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus
from backend.models.professional import Professional, ScheduleBlock, WorkingHour
from backend.models.treatment_type import TreatmentType
from backend.schemas.professional import (
    ProfessionalCreate,
    ProfessionalUpdate,
    ScheduleBlockCreate,
    WorkingHourIn,
)

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    'first_name': Professional.first_name,
    'last_name': Professional.last_name,
    'license': Professional.license,
    'created_at': Professional.created_at,
}


def validate_working_hours(working_hours: list[WorkingHourIn]) -> None:
    for hour in working_hours:
        if not 0 <= hour.day_of_week <= 6:
            raise BadRequestError('Day of week must be between 0 (Sunday) and 6 (Saturday)')
        if hour.end_time <= hour.start_time:
            raise BadRequestError('End time must be after start time')

    days = [hour.day_of_week for hour in working_hours]
    if len(days) != len(set(days)):
        raise BadRequestError('Working hours cannot repeat a day of the week')


class ProfessionalService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, professional_id: int) -> Professional:
        professional = self.db.get(Professional, professional_id)
        if professional is None:
            raise NotFoundError('Professional not found', code='PROFESSIONAL_NOT_FOUND')
        return professional

    def create(self, data: ProfessionalCreate) -> Professional:
        self._ensure_license_available(data.license)

        professional = Professional(
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            email=data.email.lower() if data.email else None,
            phone=data.phone,
            license=data.license.strip(),
            specialties=data.specialties,
        )
        self.db.add(professional)
        self.db.commit()
        self.db.refresh(professional)

        logger.info('Professional created: %s (%s)', professional.full_name, professional.license)
        return professional

    def list_professionals(self, params: PageParams, include_inactive: bool = False) -> Page:
        query = self.db.query(Professional)
        if not include_inactive:
            query = query.filter(Professional.is_active.is_(True))
        return paginate(query, params, SORTABLE_COLUMNS, default_sort='first_name')

    def get_active(self) -> list[Professional]:
        return (
            self.db.query(Professional)
            .filter(Professional.is_active.is_(True))
            .order_by(Professional.first_name.asc(), Professional.last_name.asc())
            .all()
        )

    def update(self, professional_id: int, data: ProfessionalUpdate) -> Professional:
        professional = self.get(professional_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get('license') and changes['license'] != professional.license:
            self._ensure_license_available(changes['license'], exclude_id=professional.id)
        if changes.get('email'):
            changes['email'] = changes['email'].lower()

        for field, value in changes.items():
            setattr(professional, field, value)

        self.db.commit()
        self.db.refresh(professional)
        logger.info('Professional updated: %s', professional.full_name)
        return professional

    def delete(self, professional_id: int) -> None:
        professional = self.get(professional_id)

        active = (
            self.db.query(Appointment.id)
            .filter(Appointment.professional_id == professional.id, Appointment.status.in_(ACTIVE_STATUSES))
            .first()
        )
        if active is not None:
            raise BadRequestError('Cannot delete a professional with scheduled or confirmed appointments')

        professional.is_active = False
        self.db.commit()
        logger.info('Professional deactivated: %s', professional.full_name)

    def set_working_hours(self, professional_id: int, working_hours: list[WorkingHourIn]) -> list[WorkingHour]:
        """Replace every working-hour row of the professional with ``working_hours``."""
        professional = self.get(professional_id)
        validate_working_hours(working_hours)

        # Old rows go first so the (professional, day) unique constraint holds.
        professional.working_hours.clear()
        self.db.flush()

        rows = [
            WorkingHour(
                professional_id=professional.id,
                day_of_week=hour.day_of_week,
                start_time=hour.start_time,
                end_time=hour.end_time,
                is_active=hour.is_active,
            )
            for hour in working_hours
        ]
        professional.working_hours.extend(rows)
        self.db.commit()

        logger.info('Working hours set for professional %s: %s days', professional.id, len(rows))
        return sorted(rows, key=lambda row: row.day_of_week)

    def get_working_hours(self, professional_id: int) -> list[WorkingHour]:
        self.get(professional_id)
        return (
            self.db.query(WorkingHour)
            .filter(WorkingHour.professional_id == professional_id, WorkingHour.is_active.is_(True))
            .order_by(WorkingHour.day_of_week.asc())
            .all()
        )

    def create_schedule_block(self, professional_id: int, data: ScheduleBlockCreate) -> ScheduleBlock:
        professional = self.get(professional_id)
        if data.end_date <= data.start_date:
            raise BadRequestError('Block end must be after block start')

        conflicting = (
            self.db.query(Appointment.id)
            .filter(
                Appointment.professional_id == professional.id,
                Appointment.status.in_(ACTIVE_STATUSES),
                Appointment.start_time < data.end_date,
                Appointment.end_time > data.start_date,
            )
            .first()
        )
        if conflicting is not None:
            raise ScheduleConflictError('The schedule block conflicts with existing appointments')

        block = ScheduleBlock(
            professional_id=professional.id,
            title=data.title.strip(),
            description=data.description.strip() if data.description else None,
            start_date=data.start_date,
            end_date=data.end_date,
        )
        self.db.add(block)
        self.db.commit()
        self.db.refresh(block)

        logger.info('Schedule block created for professional %s: %s', professional.id, block.title)
        return block

    def get_schedule_blocks(
        self,
        professional_id: int,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[ScheduleBlock]:
        self.get(professional_id)
        query = self.db.query(ScheduleBlock).filter(ScheduleBlock.professional_id == professional_id)
        if start_date is not None:
            query = query.filter(ScheduleBlock.end_date >= start_date)
        if end_date is not None:
            query = query.filter(ScheduleBlock.start_date <= end_date)
        return query.order_by(ScheduleBlock.start_date.asc()).all()

    def delete_schedule_block(self, block_id: int) -> None:
        block = self.db.get(ScheduleBlock, block_id)
        if block is None:
            raise NotFoundError('Schedule block not found')

        self.db.delete(block)
        self.db.commit()
        logger.info('Schedule block deleted: %s', block.title)

    def stats(self, professional_id: int) -> dict:
        self.get(professional_id)
        appointments = self.db.query(Appointment).filter(Appointment.professional_id == professional_id)

        return {
            'total_appointments': appointments.count(),
            'upcoming_appointments': appointments.filter(
                Appointment.start_time >= datetime.now(),
                Appointment.status.in_(ACTIVE_STATUSES),
            ).count(),
            'completed_appointments': appointments.filter(
                Appointment.status == AppointmentStatus.COMPLETED
            ).count(),
            'cancelled_appointments': appointments.filter(
                Appointment.status == AppointmentStatus.CANCELLED
            ).count(),
            'treatment_types': self.db.query(TreatmentType).filter(
                TreatmentType.professional_id == professional_id,
                TreatmentType.is_active.is_(True),
            ).count(),
            'working_days': self.db.query(WorkingHour).filter(
                WorkingHour.professional_id == professional_id,
                WorkingHour.is_active.is_(True),
            ).count(),
        }

    def _ensure_license_available(self, license_number: str, exclude_id: int | None = None) -> None:
        query = self.db.query(Professional.id).filter(Professional.license == license_number.strip())
        if exclude_id is not None:
            query = query.filter(Professional.id != exclude_id)
        if query.first() is not None:
            raise DuplicateResourceError('A professional with this license already exists')
