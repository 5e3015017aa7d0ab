import logging
from datetime import date, datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from backend.core.errors import BadRequestError, DuplicateResourceError, NotFoundError
from backend.core.pagination import Page, PageParams, paginate
from backend.models.appointment import ACTIVE_STATUSES, Appointment
from backend.models.patient import Patient
from backend.schemas.patient import PatientCreate, PatientUpdate

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    'created_at': Patient.created_at,
    'first_name': Patient.first_name,
    'last_name': Patient.last_name,
    'document': Patient.document,
}
MIN_SEARCH_LENGTH = 2


def _search_filter(term: str, include_email: bool = True):
    pattern = f'%{term.strip()}%'
    columns = [Patient.first_name, Patient.last_name, Patient.document, Patient.phone]
    if include_email:
        columns.append(Patient.email)
    return or_(*(column.ilike(pattern) for column in columns))


class PatientService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, patient_id: int) -> Patient:
        patient = self.db.get(Patient, patient_id)
        if patient is None:
            raise NotFoundError('Patient not found', code='PATIENT_NOT_FOUND')
        return patient

    def create(self, data: PatientCreate) -> Patient:
        self._ensure_unique(document=data.document, phone=data.phone)

        patient = Patient(
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email.lower() if data.email else None,
            phone=data.phone,
            document=data.document,
            date_of_birth=data.date_of_birth,
            address=data.address,
            notes=data.notes,
        )
        self.db.add(patient)
        self.db.commit()
        self.db.refresh(patient)

        logger.info('Patient created: %s (%s)', patient.full_name, patient.document)
        return patient

    def list_patients(self, params: PageParams, search: str | None = None, is_active: bool | None = None) -> Page:
        query = self.db.query(Patient)
        if is_active is not None:
            query = query.filter(Patient.is_active.is_(is_active))
        if search:
            query = query.filter(_search_filter(search))
        return paginate(query, params, SORTABLE_COLUMNS, default_sort='created_at', default_order='desc')

    def update(self, patient_id: int, data: PatientUpdate) -> Patient:
        patient = self.get(patient_id)
        changes = data.model_dump(exclude_unset=True)

        self._ensure_unique(
            document=changes.get('document'),
            phone=changes.get('phone'),
            exclude_id=patient.id,
        )

        if changes.get('email'):
            changes['email'] = changes['email'].lower()
        for field, value in changes.items():
            setattr(patient, field, value)

        self.db.commit()
        self.db.refresh(patient)
        logger.info('Patient updated: %s (%s)', patient.full_name, patient.document)
        return patient

    def delete(self, patient_id: int) -> None:
        """Soft delete; refused while the patient still holds active appointments."""
        patient = self.get(patient_id)

        active = (
            self.db.query(Appointment.id)
            .filter(Appointment.patient_id == patient.id, Appointment.status.in_(ACTIVE_STATUSES))
            .first()
        )
        if active is not None:
            raise BadRequestError('Cannot delete a patient with scheduled or confirmed appointments')

        patient.is_active = False
        self.db.commit()
        logger.info('Patient deactivated: %s (%s)', patient.full_name, patient.document)

    def search(self, term: str, limit: int = 10) -> list[Patient]:
        if not term or len(term.strip()) < MIN_SEARCH_LENGTH:
            return []
        return (
            self.db.query(Patient)
            .filter(Patient.is_active.is_(True), _search_filter(term, include_email=False))
            .order_by(Patient.first_name.asc(), Patient.last_name.asc())
            .limit(limit)
            .all()
        )

    def appointment_history(self, patient_id: int) -> list[Appointment]:
        self.get(patient_id)
        return (
            self.db.query(Appointment)
            .options(joinedload(Appointment.professional), joinedload(Appointment.treatment_type))
            .filter(Appointment.patient_id == patient_id)
            .order_by(Appointment.start_time.desc())
            .all()
        )

    def is_document_available(self, document: str, exclude_id: int | None = None) -> bool:
        query = self.db.query(Patient.id).filter(Patient.document == document)
        if exclude_id is not None:
            query = query.filter(Patient.id != exclude_id)
        return query.first() is None

    def is_phone_available(self, phone: str, exclude_id: int | None = None) -> bool:
        query = self.db.query(Patient.id).filter(Patient.phone == phone)
        if exclude_id is not None:
            query = query.filter(Patient.id != exclude_id)
        return query.first() is None

    def stats(self) -> dict:
        start_of_month = datetime.combine(date.today().replace(day=1), datetime.min.time())
        total = self.db.query(Patient).count()
        active = self.db.query(Patient).filter(Patient.is_active.is_(True)).count()
        new_this_month = self.db.query(Patient).filter(Patient.created_at >= start_of_month).count()
        return {
            'total': total,
            'active': active,
            'inactive': total - active,
            'new_this_month': new_this_month,
        }

    def _ensure_unique(self, document: str | None, phone: str | None, exclude_id: int | None = None) -> None:
        if document is not None and not self.is_document_available(document, exclude_id):
            raise DuplicateResourceError('A patient with this document number already exists')
        if phone is not None and not self.is_phone_available(phone, exclude_id):
            raise DuplicateResourceError('A patient with this phone number already exists')
