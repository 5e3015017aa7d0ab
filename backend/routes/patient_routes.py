from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_staff
from backend.core.pagination import PageParams, pagination_params
from backend.core.rate_limit import general_limiter, search_limiter
from backend.database import get_db
from backend.schemas.appointment import AppointmentResponse
from backend.schemas.common import ApiResponse, MessageResponse, PaginatedResponse, paginated
from backend.schemas.patient import (
    AvailabilityCheckResponse,
    PatientCreate,
    PatientResponse,
    PatientStats,
    PatientUpdate,
)
from backend.services.patient_service import PatientService

router = APIRouter(tags=['patients'], dependencies=[Depends(require_staff), Depends(general_limiter)])


@router.post('', response_model=ApiResponse[PatientResponse], status_code=status.HTTP_201_CREATED)
def create_patient(data: PatientCreate, db: Session = Depends(get_db)):
    patient = PatientService(db).create(data)
    return ApiResponse[PatientResponse](message='Patient created successfully', data=PatientResponse.model_validate(patient))


@router.get('', response_model=PaginatedResponse[PatientResponse])
def list_patients(
    params: PageParams = Depends(pagination_params),
    search: str | None = Query(default=None, max_length=100),
    is_active: bool | None = Query(default=None, alias='isActive'),
    db: Session = Depends(get_db),
):
    page = PatientService(db).list_patients(params, search=search, is_active=is_active)
    return paginated(page, PatientResponse, 'Patients retrieved')


@router.get('/search', response_model=ApiResponse[list[PatientResponse]], dependencies=[Depends(search_limiter)])
def search_patients(
    q: str = Query(min_length=2, max_length=100),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
):
    patients = PatientService(db).search(q, limit=limit)
    return ApiResponse[list[PatientResponse]](
        message=f'{len(patients)} patients found',
        data=[PatientResponse.model_validate(patient) for patient in patients],
    )


@router.get('/stats', response_model=ApiResponse[PatientStats])
def patient_stats(db: Session = Depends(get_db)):
    return ApiResponse[PatientStats](message='Patient statistics', data=PatientStats(**PatientService(db).stats()))


@router.get('/check/document/{document}', response_model=ApiResponse[AvailabilityCheckResponse])
def check_document(
    document: str,
    exclude_id: int | None = Query(default=None, alias='excludeId'),
    db: Session = Depends(get_db),
):
    available = PatientService(db).is_document_available(document, exclude_id)
    return ApiResponse[AvailabilityCheckResponse](
        message='Document is available' if available else 'Document is already registered',
        data=AvailabilityCheckResponse(available=available),
    )


@router.get('/check/phone/{phone}', response_model=ApiResponse[AvailabilityCheckResponse])
def check_phone(
    phone: str,
    exclude_id: int | None = Query(default=None, alias='excludeId'),
    db: Session = Depends(get_db),
):
    available = PatientService(db).is_phone_available(phone, exclude_id)
    return ApiResponse[AvailabilityCheckResponse](
        message='Phone is available' if available else 'Phone is already registered',
        data=AvailabilityCheckResponse(available=available),
    )


@router.get('/{patient_id}', response_model=ApiResponse[PatientResponse])
def get_patient(patient_id: int, db: Session = Depends(get_db)):
    patient = PatientService(db).get(patient_id)
    return ApiResponse[PatientResponse](message='Patient retrieved', data=PatientResponse.model_validate(patient))


@router.put('/{patient_id}', response_model=ApiResponse[PatientResponse])
def update_patient(patient_id: int, data: PatientUpdate, db: Session = Depends(get_db)):
    patient = PatientService(db).update(patient_id, data)
    return ApiResponse[PatientResponse](message='Patient updated successfully', data=PatientResponse.model_validate(patient))


@router.delete('/{patient_id}', response_model=MessageResponse)
def delete_patient(patient_id: int, db: Session = Depends(get_db)):
    PatientService(db).delete(patient_id)
    return MessageResponse(message='Patient deactivated successfully')


@router.get('/{patient_id}/appointments', response_model=ApiResponse[list[AppointmentResponse]])
def patient_appointments(patient_id: int, db: Session = Depends(get_db)):
    appointments = PatientService(db).appointment_history(patient_id)
    return ApiResponse[list[AppointmentResponse]](
        message='Appointment history retrieved',
        data=[AppointmentResponse.model_validate(appointment) for appointment in appointments],
    )
