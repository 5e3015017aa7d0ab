import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.core.errors import BadRequestError, DuplicateResourceError, NotFoundError
from backend.core.pagination import Page, PageParams, paginate
from backend.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus
from backend.models.professional import Professional
from backend.models.treatment_type import TreatmentType
from backend.schemas.treatment_type import TreatmentTypeCreate, TreatmentTypeUpdate

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    'name': TreatmentType.name,
    'duration': TreatmentType.duration,
    'price': TreatmentType.price,
    'created_at': TreatmentType.created_at,
}
MIN_SEARCH_LENGTH = 2


class TreatmentTypeService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, treatment_type_id: int) -> TreatmentType:
        treatment_type = self.db.get(TreatmentType, treatment_type_id)
        if treatment_type is None:
            raise NotFoundError('Treatment type not found', code='TREATMENT_TYPE_NOT_FOUND')
        return treatment_type

    def create(self, data: TreatmentTypeCreate) -> TreatmentType:
        professional = self.db.get(Professional, data.professional_id)
        if professional is None or not professional.is_active:
            raise NotFoundError('Professional not found or inactive', code='PROFESSIONAL_NOT_FOUND')

        name = data.name.strip()
        self._ensure_name_available(professional.id, name)

        treatment_type = TreatmentType(
            professional_id=professional.id,
            name=name,
            description=data.description.strip() if data.description else None,
            duration=data.duration,
            price=data.price,
            color=data.color,
        )
        self.db.add(treatment_type)
        self.db.commit()
        self.db.refresh(treatment_type)

        logger.info('Treatment type created: %s for professional %s', treatment_type.name, professional.id)
        return treatment_type

    def list_treatment_types(
        self,
        params: PageParams,
        professional_id: int | None = None,
        include_inactive: bool = False,
    ) -> Page:
        query = self.db.query(TreatmentType)
        if professional_id is not None:
            query = query.filter(TreatmentType.professional_id == professional_id)
        if not include_inactive:
            query = query.filter(TreatmentType.is_active.is_(True))
        return paginate(query, params, SORTABLE_COLUMNS, default_sort='name')

    def by_professional(self, professional_id: int) -> list[TreatmentType]:
        return (
            self.db.query(TreatmentType)
            .filter(TreatmentType.professional_id == professional_id, TreatmentType.is_active.is_(True))
            .order_by(TreatmentType.name.asc())
            .all()
        )

    def update(self, treatment_type_id: int, data: TreatmentTypeUpdate) -> TreatmentType:
        treatment_type = self.get(treatment_type_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get('name'):
            changes['name'] = changes['name'].strip()
            if changes['name'] != treatment_type.name:
                self._ensure_name_available(treatment_type.professional_id, changes['name'], exclude_id=treatment_type.id)
        if 'description' in changes:
            changes['description'] = changes['description'].strip() if changes['description'] else None

        for field, value in changes.items():
            setattr(treatment_type, field, value)

        self.db.commit()
        self.db.refresh(treatment_type)
        logger.info('Treatment type updated: %s', treatment_type.name)
        return treatment_type

    def delete(self, treatment_type_id: int) -> None:
        treatment_type = self.get(treatment_type_id)

        active = (
            self.db.query(Appointment.id)
            .filter(Appointment.treatment_type_id == treatment_type.id, Appointment.status.in_(ACTIVE_STATUSES))
            .first()
        )
        if active is not None:
            raise BadRequestError('Cannot delete a treatment type with scheduled or confirmed appointments')

        treatment_type.is_active = False
        self.db.commit()
        logger.info('Treatment type deactivated: %s', treatment_type.name)

    def duplicate(self, treatment_type_id: int, new_name: str | None = None) -> TreatmentType:
        original = self.get(treatment_type_id)
        name = (new_name or f'{original.name} (Copy)').strip()
        self._ensure_name_available(original.professional_id, name)

        copy = TreatmentType(
            professional_id=original.professional_id,
            name=name,
            description=original.description,
            duration=original.duration,
            price=original.price,
            color=original.color,
        )
        self.db.add(copy)
        self.db.commit()
        self.db.refresh(copy)

        logger.info('Treatment type duplicated: %s -> %s', original.name, copy.name)
        return copy

    def stats(self, treatment_type_id: int) -> dict:
        treatment_type = self.get(treatment_type_id)
        appointments = self.db.query(Appointment).filter(Appointment.treatment_type_id == treatment_type.id)

        completed = appointments.filter(Appointment.status == AppointmentStatus.COMPLETED).count()
        price = float(treatment_type.price) if treatment_type.price is not None else 0.0

        return {
            'total_appointments': appointments.count(),
            'upcoming_appointments': appointments.filter(
                Appointment.start_time >= datetime.now(),
                Appointment.status.in_(ACTIVE_STATUSES),
            ).count(),
            'completed_appointments': completed,
            'average_duration': treatment_type.duration,
            # Revenue counts completed appointments only.
            'total_revenue': price * completed,
        }

    def search(self, term: str, professional_id: int | None = None, limit: int = 10) -> list[TreatmentType]:
        if not term or len(term.strip()) < MIN_SEARCH_LENGTH:
            return []

        query = self.db.query(TreatmentType).filter(
            TreatmentType.is_active.is_(True),
            TreatmentType.name.ilike(f'%{term.strip()}%'),
        )
        if professional_id is not None:
            query = query.filter(TreatmentType.professional_id == professional_id)
        return query.order_by(TreatmentType.name.asc()).limit(limit).all()

    def most_used(self, professional_id: int | None = None, limit: int = 5) -> list[tuple[TreatmentType, int]]:
        appointment_count = func.count(Appointment.id)
        query = (
            self.db.query(TreatmentType, appointment_count)
            .outerjoin(Appointment, Appointment.treatment_type_id == TreatmentType.id)
            .filter(TreatmentType.is_active.is_(True))
        )
        if professional_id is not None:
            query = query.filter(TreatmentType.professional_id == professional_id)

        rows = (
            query.group_by(TreatmentType.id)
            .order_by(appointment_count.desc(), TreatmentType.name.asc())
            .limit(limit)
            .all()
        )
        return [(treatment_type, count) for treatment_type, count in rows]

    def _ensure_name_available(self, professional_id: int, name: str, exclude_id: int | None = None) -> None:
        query = self.db.query(TreatmentType.id).filter(
            TreatmentType.professional_id == professional_id,
            TreatmentType.name == name,
        )
        if exclude_id is not None:
            query = query.filter(TreatmentType.id != exclude_id)
        if query.first() is not None:
            raise DuplicateResourceError('A treatment type with this name already exists for the professional')
