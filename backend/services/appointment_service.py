"""Appointment booking: availability, conflict checks and status changes.

The interval arithmetic lives in ``backend.services.availability``; this module
loads the rows it works on and orchestrates create/update so that the
check-then-write sequence runs while the professional row is locked.
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from backend.core.errors import (
    BadRequestError,
    NotFoundError,
    OutsideWorkingHoursError,
    ScheduleConflictError,
)
from backend.core.pagination import Page, PageParams, paginate
from backend.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus
from backend.models.notification import NotificationType
from backend.models.patient import Patient
from backend.models.professional import Professional, ScheduleBlock, WorkingHour
from backend.models.treatment_type import TreatmentType
from backend.schemas.appointment import AppointmentCreate, AppointmentFilters, AppointmentUpdate
from backend.services import availability
from backend.services.availability import TERMINAL_STATUSES, TimeSlot
from backend.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    'start_time': Appointment.start_time,
    'end_time': Appointment.end_time,
    'status': Appointment.status,
    'created_at': Appointment.created_at,
}

STATUS_NOTIFICATIONS = {
    AppointmentStatus.CONFIRMED: NotificationType.CONFIRMATION,
    AppointmentStatus.CANCELLED: NotificationType.CANCELLATION,
}


def _with_relations(query):
    return query.options(
        joinedload(Appointment.patient),
        joinedload(Appointment.professional),
        joinedload(Appointment.treatment_type),
    )


class AppointmentService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, appointment_id: int) -> Appointment:
        appointment = _with_relations(self.db.query(Appointment)).filter(Appointment.id == appointment_id).first()
        if appointment is None:
            raise NotFoundError('Appointment not found', code='APPOINTMENT_NOT_FOUND')
        return appointment

    def create(self, data: AppointmentCreate, user_id: int | None = None) -> Appointment:
        start_time = availability.as_naive(data.start_time)
        end_time = availability.as_naive(data.end_time)
        if end_time <= start_time:
            raise BadRequestError('End time must be after start time')

        patient = self.db.get(Patient, data.patient_id)
        if patient is None or not patient.is_active:
            raise NotFoundError('Patient not found or inactive', code='PATIENT_NOT_FOUND')

        professional = self._lock_professional(data.professional_id)
        if professional is None or not professional.is_active:
            raise NotFoundError('Professional not found or inactive', code='PROFESSIONAL_NOT_FOUND')

        self._get_bookable_treatment_type(data.treatment_type_id, professional.id)
        self._ensure_bookable(professional.id, start_time, end_time)

        appointment = Appointment(
            patient_id=patient.id,
            professional_id=professional.id,
            treatment_type_id=data.treatment_type_id,
            start_time=start_time,
            end_time=end_time,
            status=AppointmentStatus.SCHEDULED,
            notes=data.notes,
            created_by_id=user_id,
        )
        self.db.add(appointment)
        self.db.commit()

        logger.info(
            'Appointment %s created: patient %s with professional %s at %s',
            appointment.id, patient.id, professional.id, start_time,
        )
        self._schedule_reminders(appointment.id)
        return self.get(appointment.id)

    def list_appointments(self, params: PageParams, filters: AppointmentFilters | None = None) -> Page:
        query = _with_relations(self.db.query(Appointment))
        filters = filters or AppointmentFilters()

        if filters.start_date is not None:
            query = query.filter(Appointment.start_time >= datetime.combine(filters.start_date, time.min))
        if filters.end_date is not None:
            query = query.filter(
                Appointment.start_time < datetime.combine(filters.end_date + timedelta(days=1), time.min)
            )
        if filters.professional_id is not None:
            query = query.filter(Appointment.professional_id == filters.professional_id)
        if filters.patient_id is not None:
            query = query.filter(Appointment.patient_id == filters.patient_id)
        if filters.status is not None:
            query = query.filter(Appointment.status == filters.status)
        if filters.treatment_type_id is not None:
            query = query.filter(Appointment.treatment_type_id == filters.treatment_type_id)

        return paginate(query, params, SORTABLE_COLUMNS, default_sort='start_time')

    def update(self, appointment_id: int, data: AppointmentUpdate, user_id: int | None = None) -> Appointment:
        appointment = self.get(appointment_id)
        changes = data.model_dump(exclude_unset=True)
        previous_status = appointment.status
        new_status = changes.get('status')
        if new_status is not None and new_status != previous_status:
            availability.validate_status_transition(previous_status, new_status)

        if appointment.status in TERMINAL_STATUSES:
            raise BadRequestError(
                f'Appointment is {appointment.status.value} and can no longer be modified',
                code='APPOINTMENT_LOCKED',
            )

        start_time = availability.as_naive(changes.get('start_time') or appointment.start_time)
        end_time = availability.as_naive(changes.get('end_time') or appointment.end_time)
        if end_time <= start_time:
            raise BadRequestError('End time must be after start time')
        time_changed = start_time != appointment.start_time or end_time != appointment.end_time

        if changes.get('treatment_type_id') and changes['treatment_type_id'] != appointment.treatment_type_id:
            self._get_bookable_treatment_type(changes['treatment_type_id'], appointment.professional_id)

        if time_changed:
            self._lock_professional(appointment.professional_id)
            self._ensure_bookable(appointment.professional_id, start_time, end_time, exclude_id=appointment.id)

        if new_status is not None:
            appointment.status = new_status

        if changes.get('treatment_type_id'):
            appointment.treatment_type_id = changes['treatment_type_id']
        if 'notes' in changes:
            appointment.notes = changes['notes']
        if 'observations' in changes:
            appointment.observations = changes['observations']
        appointment.start_time = start_time
        appointment.end_time = end_time
        appointment.updated_by_id = user_id

        self.db.commit()
        logger.info('Appointment %s updated', appointment.id)

        if time_changed:
            self._notify(appointment.id, NotificationType.MODIFICATION)
        if appointment.status != previous_status and appointment.status in STATUS_NOTIFICATIONS:
            self._notify(appointment.id, STATUS_NOTIFICATIONS[appointment.status])
        return self.get(appointment.id)

    def change_status(
        self,
        appointment_id: int,
        new_status: AppointmentStatus,
        observations: str | None = None,
        user_id: int | None = None,
    ) -> Appointment:
        appointment = self.get(appointment_id)
        availability.validate_status_transition(appointment.status, new_status)

        previous_status = appointment.status
        appointment.status = new_status
        if observations is not None:
            appointment.observations = observations
        appointment.updated_by_id = user_id
        self.db.commit()

        logger.info('Appointment %s: %s -> %s', appointment.id, previous_status.value, new_status.value)
        if new_status in STATUS_NOTIFICATIONS:
            self._notify(appointment.id, STATUS_NOTIFICATIONS[new_status])
        return self.get(appointment.id)

    def get_available_slots(
        self,
        professional_id: int,
        target_date: date,
        treatment_type_id: int | None = None,
    ) -> list[TimeSlot]:
        professional = self.db.get(Professional, professional_id)
        if professional is None:
            raise NotFoundError('Professional not found', code='PROFESSIONAL_NOT_FOUND')

        working_hour = self._working_hour_for(professional_id, target_date)
        if working_hour is None:
            return []

        duration = availability.DEFAULT_SLOT_DURATION_MINUTES
        if treatment_type_id is not None:
            duration = self._get_bookable_treatment_type(treatment_type_id, professional_id).duration

        slots = availability.generate_slots(target_date, working_hour.start_time, working_hour.end_time, duration)

        day_start, day_end = availability.day_bounds(target_date)
        booked = (
            self.db.query(Appointment.start_time, Appointment.end_time)
            .filter(
                Appointment.professional_id == professional_id,
                Appointment.status.in_(ACTIVE_STATUSES),
                Appointment.start_time >= day_start,
                Appointment.start_time < day_end,
            )
            .all()
        )
        blocked = (
            self.db.query(ScheduleBlock.start_date, ScheduleBlock.end_date)
            .filter(
                ScheduleBlock.professional_id == professional_id,
                ScheduleBlock.start_date < day_end,
                ScheduleBlock.end_date > day_start,
            )
            .all()
        )
        return availability.remove_busy_slots(slots, [tuple(row) for row in booked + blocked])

    def check_availability(
        self,
        professional_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_appointment_id: int | None = None,
    ) -> bool:
        start_time = availability.as_naive(start_time)
        end_time = availability.as_naive(end_time)

        conflicts = self.db.query(Appointment.id).filter(
            Appointment.professional_id == professional_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_time < end_time,
            Appointment.end_time > start_time,
        )
        if exclude_appointment_id is not None:
            conflicts = conflicts.filter(Appointment.id != exclude_appointment_id)
        if conflicts.first() is not None:
            return False

        block = (
            self.db.query(ScheduleBlock.id)
            .filter(
                ScheduleBlock.professional_id == professional_id,
                ScheduleBlock.start_date < end_time,
                ScheduleBlock.end_date > start_time,
            )
            .first()
        )
        return block is None

    def is_within_working_hours(self, professional_id: int, start_time: datetime, end_time: datetime) -> bool:
        working_hour = self._working_hour_for(professional_id, start_time.date())
        if working_hour is None:
            return False
        return availability.is_within_working_hours(
            start_time, end_time, working_hour.start_time, working_hour.end_time
        )

    def today(self, professional_id: int | None = None) -> list[Appointment]:
        day_start, day_end = availability.day_bounds(date.today())
        query = _with_relations(self.db.query(Appointment)).filter(
            Appointment.start_time >= day_start,
            Appointment.start_time < day_end,
        )
        if professional_id is not None:
            query = query.filter(Appointment.professional_id == professional_id)
        return query.order_by(Appointment.start_time.asc()).all()

    def stats(self, start_date: date | None = None, end_date: date | None = None) -> dict:
        query = self.db.query(Appointment.status, func.count(Appointment.id))
        if start_date is not None:
            query = query.filter(Appointment.start_time >= datetime.combine(start_date, time.min))
        if end_date is not None:
            query = query.filter(Appointment.start_time < datetime.combine(end_date + timedelta(days=1), time.min))
        counts = dict(query.group_by(Appointment.status).all())

        return {
            'total': sum(counts.values()),
            'scheduled': counts.get(AppointmentStatus.SCHEDULED, 0),
            'confirmed': counts.get(AppointmentStatus.CONFIRMED, 0),
            'cancelled': counts.get(AppointmentStatus.CANCELLED, 0),
            'completed': counts.get(AppointmentStatus.COMPLETED, 0),
            'no_show': counts.get(AppointmentStatus.NO_SHOW, 0),
        }

    def _lock_professional(self, professional_id: int) -> Professional | None:
        # Serializes concurrent bookings for one professional until commit.
        return (
            self.db.query(Professional)
            .filter(Professional.id == professional_id)
            .with_for_update()
            .first()
        )

    def _get_bookable_treatment_type(self, treatment_type_id: int, professional_id: int) -> TreatmentType:
        treatment_type = self.db.get(TreatmentType, treatment_type_id)
        if treatment_type is None:
            raise NotFoundError('Treatment type not found', code='TREATMENT_TYPE_NOT_FOUND')
        if treatment_type.professional_id != professional_id or not treatment_type.is_active:
            raise ScheduleConflictError('Treatment type is not valid for this professional')
        return treatment_type

    def _ensure_bookable(
        self,
        professional_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_id: int | None = None,
    ) -> None:
        if not self.check_availability(professional_id, start_time, end_time, exclude_id):
            raise ScheduleConflictError('The selected time is not available')
        if not self.is_within_working_hours(professional_id, start_time, end_time):
            raise OutsideWorkingHoursError("The selected time is outside the professional's working hours")

    def _working_hour_for(self, professional_id: int, target_date: date) -> WorkingHour | None:
        return (
            self.db.query(WorkingHour)
            .filter(
                WorkingHour.professional_id == professional_id,
                WorkingHour.day_of_week == availability.day_of_week(target_date),
                WorkingHour.is_active.is_(True),
            )
            .first()
        )

    def _notify(self, appointment_id: int, notification_type: NotificationType) -> None:
        try:
            NotificationService(self.db).send_appointment_notification(appointment_id, notification_type)
        except Exception:  # notification failures never undo the appointment change
            self.db.rollback()
            logger.exception('Could not send %s notification for appointment %s', notification_type.value, appointment_id)

    def _schedule_reminders(self, appointment_id: int) -> None:
        try:
            NotificationService(self.db).schedule_reminders(appointment_id)
        except Exception:  # notification failures never undo the appointment change
            self.db.rollback()
            logger.exception('Could not schedule reminders for appointment %s', appointment_id)
