from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_staff
from backend.core.errors import BadRequestError
from backend.core.pagination import PageParams, pagination_params
from backend.core.rate_limit import appointment_limiter, general_limiter
from backend.database import get_db
from backend.models.appointment import AppointmentStatus
from backend.models.user import User
from backend.schemas.appointment import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentResponse,
    AppointmentStats,
    AppointmentStatusChange,
    AppointmentUpdate,
    AvailabilityResponse,
    TimeSlotResponse,
)
from backend.schemas.common import ApiResponse, PaginatedResponse, paginated
from backend.services import availability
from backend.services.appointment_service import AppointmentService

router = APIRouter(tags=['appointments'], dependencies=[Depends(require_staff), Depends(general_limiter)])


@router.post(
    '',
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(appointment_limiter)],
)
def create_appointment(
    data: AppointmentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    appointment = AppointmentService(db).create(data, user_id=current_user.id)
    return ApiResponse[AppointmentResponse](
        message='Appointment created successfully',
        data=AppointmentResponse.model_validate(appointment),
    )


@router.get('', response_model=PaginatedResponse[AppointmentResponse])
def list_appointments(
    params: PageParams = Depends(pagination_params),
    start_date: date | None = Query(default=None, alias='startDate'),
    end_date: date | None = Query(default=None, alias='endDate'),
    professional_id: int | None = Query(default=None, alias='professionalId'),
    patient_id: int | None = Query(default=None, alias='patientId'),
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    treatment_type_id: int | None = Query(default=None, alias='treatmentTypeId'),
    db: Session = Depends(get_db),
):
    filters = AppointmentFilters(
        start_date=start_date,
        end_date=end_date,
        professional_id=professional_id,
        patient_id=patient_id,
        status=appointment_status,
        treatment_type_id=treatment_type_id,
    )
    page = AppointmentService(db).list_appointments(params, filters)
    return paginated(page, AppointmentResponse, 'Appointments retrieved')


@router.get('/available-slots', response_model=ApiResponse[list[TimeSlotResponse]])
def available_slots(
    professional_id: int = Query(alias='professionalId'),
    target_date: date = Query(alias='date'),
    treatment_type_id: int | None = Query(default=None, alias='treatmentTypeId'),
    db: Session = Depends(get_db),
):
    slots = AppointmentService(db).get_available_slots(professional_id, target_date, treatment_type_id)
    return ApiResponse[list[TimeSlotResponse]](
        message=f'{len(slots)} available slots',
        data=[TimeSlotResponse(start_time=slot.start_time, end_time=slot.end_time) for slot in slots],
    )


@router.get('/check-availability', response_model=ApiResponse[AvailabilityResponse])
def check_availability(
    professional_id: int = Query(alias='professionalId'),
    start_time: datetime = Query(alias='startTime'),
    end_time: datetime = Query(alias='endTime'),
    exclude_appointment_id: int | None = Query(default=None, alias='excludeAppointmentId'),
    db: Session = Depends(get_db),
):
    start_time = availability.as_naive(start_time)
    end_time = availability.as_naive(end_time)
    if end_time <= start_time:
        raise BadRequestError('End time must be after start time')

    available = AppointmentService(db).check_availability(
        professional_id, start_time, end_time, exclude_appointment_id
    )
    return ApiResponse[AvailabilityResponse](
        message='Time is available' if available else 'Time is not available',
        data=AvailabilityResponse(
            available=available,
            professional_id=professional_id,
            start_time=start_time,
            end_time=end_time,
        ),
    )


@router.get('/today', response_model=ApiResponse[list[AppointmentResponse]])
def today_appointments(
    professional_id: int | None = Query(default=None, alias='professionalId'),
    db: Session = Depends(get_db),
):
    appointments = AppointmentService(db).today(professional_id)
    return ApiResponse[list[AppointmentResponse]](
        message="Today's appointments",
        data=[AppointmentResponse.model_validate(appointment) for appointment in appointments],
    )


@router.get('/stats', response_model=ApiResponse[AppointmentStats])
def appointment_stats(
    start_date: date | None = Query(default=None, alias='startDate'),
    end_date: date | None = Query(default=None, alias='endDate'),
    db: Session = Depends(get_db),
):
    stats = AppointmentService(db).stats(start_date, end_date)
    return ApiResponse[AppointmentStats](message='Appointment statistics', data=AppointmentStats(**stats))


@router.get('/{appointment_id}', response_model=ApiResponse[AppointmentResponse])
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    appointment = AppointmentService(db).get(appointment_id)
    return ApiResponse[AppointmentResponse](
        message='Appointment retrieved',
        data=AppointmentResponse.model_validate(appointment),
    )


@router.put('/{appointment_id}', response_model=ApiResponse[AppointmentResponse])
def update_appointment(
    appointment_id: int,
    data: AppointmentUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    appointment = AppointmentService(db).update(appointment_id, data, user_id=current_user.id)
    return ApiResponse[AppointmentResponse](
        message='Appointment updated successfully',
        data=AppointmentResponse.model_validate(appointment),
    )


@router.patch('/{appointment_id}/status', response_model=ApiResponse[AppointmentResponse])
def change_appointment_status(
    appointment_id: int,
    data: AppointmentStatusChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    appointment = AppointmentService(db).change_status(
        appointment_id, data.status, data.observations, user_id=current_user.id
    )
    return ApiResponse[AppointmentResponse](
        message=f'Appointment status changed to {appointment.status.value}',
        data=AppointmentResponse.model_validate(appointment),
    )
