from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin, require_staff
from backend.core.pagination import PageParams, pagination_params
from backend.core.rate_limit import general_limiter
from backend.database import get_db
from backend.schemas.common import ApiResponse, MessageResponse, PaginatedResponse, paginated
from backend.schemas.professional import (
    ProfessionalCreate,
    ProfessionalDetailResponse,
    ProfessionalResponse,
    ProfessionalStats,
    ProfessionalUpdate,
    ScheduleBlockCreate,
    ScheduleBlockResponse,
    WorkingHourResponse,
    WorkingHoursUpdate,
)
from backend.services.professional_service import ProfessionalService

router = APIRouter(tags=['professionals'], dependencies=[Depends(require_staff), Depends(general_limiter)])


@router.post(
    '',
    response_model=ApiResponse[ProfessionalResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_professional(data: ProfessionalCreate, db: Session = Depends(get_db)):
    professional = ProfessionalService(db).create(data)
    return ApiResponse[ProfessionalResponse](
        message='Professional created successfully',
        data=ProfessionalResponse.model_validate(professional),
    )


@router.get('', response_model=PaginatedResponse[ProfessionalResponse])
def list_professionals(
    params: PageParams = Depends(pagination_params),
    include_inactive: bool = Query(default=False, alias='includeInactive'),
    db: Session = Depends(get_db),
):
    page = ProfessionalService(db).list_professionals(params, include_inactive=include_inactive)
    return paginated(page, ProfessionalResponse, 'Professionals retrieved')


@router.get('/active', response_model=ApiResponse[list[ProfessionalResponse]])
def active_professionals(db: Session = Depends(get_db)):
    professionals = ProfessionalService(db).get_active()
    return ApiResponse[list[ProfessionalResponse]](
        message='Active professionals retrieved',
        data=[ProfessionalResponse.model_validate(professional) for professional in professionals],
    )


@router.delete('/schedule-blocks/{block_id}', response_model=MessageResponse, dependencies=[Depends(require_admin)])
def delete_schedule_block(block_id: int, db: Session = Depends(get_db)):
    ProfessionalService(db).delete_schedule_block(block_id)
    return MessageResponse(message='Schedule block deleted successfully')


@router.get('/{professional_id}', response_model=ApiResponse[ProfessionalDetailResponse])
def get_professional(professional_id: int, db: Session = Depends(get_db)):
    professional = ProfessionalService(db).get(professional_id)
    return ApiResponse[ProfessionalDetailResponse](
        message='Professional retrieved',
        data=ProfessionalDetailResponse.model_validate(professional),
    )


@router.put(
    '/{professional_id}',
    response_model=ApiResponse[ProfessionalResponse],
    dependencies=[Depends(require_admin)],
)
def update_professional(professional_id: int, data: ProfessionalUpdate, db: Session = Depends(get_db)):
    professional = ProfessionalService(db).update(professional_id, data)
    return ApiResponse[ProfessionalResponse](
        message='Professional updated successfully',
        data=ProfessionalResponse.model_validate(professional),
    )


@router.delete('/{professional_id}', response_model=MessageResponse, dependencies=[Depends(require_admin)])
def delete_professional(professional_id: int, db: Session = Depends(get_db)):
    ProfessionalService(db).delete(professional_id)
    return MessageResponse(message='Professional deactivated successfully')


@router.put(
    '/{professional_id}/working-hours',
    response_model=ApiResponse[list[WorkingHourResponse]],
    dependencies=[Depends(require_admin)],
)
def set_working_hours(professional_id: int, data: WorkingHoursUpdate, db: Session = Depends(get_db)):
    rows = ProfessionalService(db).set_working_hours(professional_id, data.working_hours)
    return ApiResponse[list[WorkingHourResponse]](
        message='Working hours updated successfully',
        data=[WorkingHourResponse.model_validate(row) for row in rows],
    )


@router.get('/{professional_id}/working-hours', response_model=ApiResponse[list[WorkingHourResponse]])
def get_working_hours(professional_id: int, db: Session = Depends(get_db)):
    rows = ProfessionalService(db).get_working_hours(professional_id)
    return ApiResponse[list[WorkingHourResponse]](
        message='Working hours retrieved',
        data=[WorkingHourResponse.model_validate(row) for row in rows],
    )


@router.post(
    '/{professional_id}/schedule-blocks',
    response_model=ApiResponse[ScheduleBlockResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_schedule_block(professional_id: int, data: ScheduleBlockCreate, db: Session = Depends(get_db)):
    block = ProfessionalService(db).create_schedule_block(professional_id, data)
    return ApiResponse[ScheduleBlockResponse](
        message='Schedule block created successfully',
        data=ScheduleBlockResponse.model_validate(block),
    )


@router.get('/{professional_id}/schedule-blocks', response_model=ApiResponse[list[ScheduleBlockResponse]])
def get_schedule_blocks(
    professional_id: int,
    start_date: datetime | None = Query(default=None, alias='startDate'),
    end_date: datetime | None = Query(default=None, alias='endDate'),
    db: Session = Depends(get_db),
):
    blocks = ProfessionalService(db).get_schedule_blocks(professional_id, start_date, end_date)
    return ApiResponse[list[ScheduleBlockResponse]](
        message='Schedule blocks retrieved',
        data=[ScheduleBlockResponse.model_validate(block) for block in blocks],
    )


@router.get('/{professional_id}/stats', response_model=ApiResponse[ProfessionalStats])
def professional_stats(professional_id: int, db: Session = Depends(get_db)):
    stats = ProfessionalService(db).stats(professional_id)
    return ApiResponse[ProfessionalStats](message='Professional statistics', data=ProfessionalStats(**stats))
