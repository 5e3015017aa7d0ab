from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin, require_staff
from backend.core.pagination import PageParams, pagination_params
from backend.core.rate_limit import general_limiter, search_limiter
from backend.database import get_db
from backend.schemas.common import ApiResponse, MessageResponse, PaginatedResponse, paginated
from backend.schemas.treatment_type import (
    TreatmentTypeCreate,
    TreatmentTypeDuplicate,
    TreatmentTypeResponse,
    TreatmentTypeStats,
    TreatmentTypeUpdate,
    TreatmentTypeUsage,
)
from backend.services.treatment_type_service import TreatmentTypeService

router = APIRouter(tags=['treatment-types'], dependencies=[Depends(require_staff), Depends(general_limiter)])


def _many(treatment_types) -> list[TreatmentTypeResponse]:
    return [TreatmentTypeResponse.model_validate(treatment_type) for treatment_type in treatment_types]


@router.post(
    '',
    response_model=ApiResponse[TreatmentTypeResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_treatment_type(data: TreatmentTypeCreate, db: Session = Depends(get_db)):
    treatment_type = TreatmentTypeService(db).create(data)
    return ApiResponse[TreatmentTypeResponse](
        message='Treatment type created successfully',
        data=TreatmentTypeResponse.model_validate(treatment_type),
    )


@router.get('', response_model=PaginatedResponse[TreatmentTypeResponse])
def list_treatment_types(
    params: PageParams = Depends(pagination_params),
    professional_id: int | None = Query(default=None, alias='professionalId'),
    include_inactive: bool = Query(default=False, alias='includeInactive'),
    db: Session = Depends(get_db),
):
    page = TreatmentTypeService(db).list_treatment_types(
        params, professional_id=professional_id, include_inactive=include_inactive
    )
    return paginated(page, TreatmentTypeResponse, 'Treatment types retrieved')


@router.get('/search', response_model=ApiResponse[list[TreatmentTypeResponse]], dependencies=[Depends(search_limiter)])
def search_treatment_types(
    q: str = Query(min_length=2, max_length=100),
    professional_id: int | None = Query(default=None, alias='professionalId'),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
):
    treatment_types = TreatmentTypeService(db).search(q, professional_id=professional_id, limit=limit)
    return ApiResponse[list[TreatmentTypeResponse]](
        message=f'{len(treatment_types)} treatment types found',
        data=_many(treatment_types),
    )


@router.get('/most-used', response_model=ApiResponse[list[TreatmentTypeUsage]])
def most_used_treatment_types(
    professional_id: int | None = Query(default=None, alias='professionalId'),
    limit: int = Query(default=5, ge=1, le=20),
    db: Session = Depends(get_db),
):
    rows = TreatmentTypeService(db).most_used(professional_id=professional_id, limit=limit)
    return ApiResponse[list[TreatmentTypeUsage]](
        message='Most used treatment types',
        data=[
            TreatmentTypeUsage(
                treatment_type=TreatmentTypeResponse.model_validate(treatment_type),
                appointment_count=count,
            )
            for treatment_type, count in rows
        ],
    )


@router.get('/professional/{professional_id}', response_model=ApiResponse[list[TreatmentTypeResponse]])
def treatment_types_by_professional(professional_id: int, db: Session = Depends(get_db)):
    treatment_types = TreatmentTypeService(db).by_professional(professional_id)
    return ApiResponse[list[TreatmentTypeResponse]](message='Treatment types retrieved', data=_many(treatment_types))


@router.get('/{treatment_type_id}', response_model=ApiResponse[TreatmentTypeResponse])
def get_treatment_type(treatment_type_id: int, db: Session = Depends(get_db)):
    treatment_type = TreatmentTypeService(db).get(treatment_type_id)
    return ApiResponse[TreatmentTypeResponse](
        message='Treatment type retrieved',
        data=TreatmentTypeResponse.model_validate(treatment_type),
    )


@router.put(
    '/{treatment_type_id}',
    response_model=ApiResponse[TreatmentTypeResponse],
    dependencies=[Depends(require_admin)],
)
def update_treatment_type(treatment_type_id: int, data: TreatmentTypeUpdate, db: Session = Depends(get_db)):
    treatment_type = TreatmentTypeService(db).update(treatment_type_id, data)
    return ApiResponse[TreatmentTypeResponse](
        message='Treatment type updated successfully',
        data=TreatmentTypeResponse.model_validate(treatment_type),
    )


@router.delete('/{treatment_type_id}', response_model=MessageResponse, dependencies=[Depends(require_admin)])
def delete_treatment_type(treatment_type_id: int, db: Session = Depends(get_db)):
    TreatmentTypeService(db).delete(treatment_type_id)
    return MessageResponse(message='Treatment type deactivated successfully')


@router.post(
    '/{treatment_type_id}/duplicate',
    response_model=ApiResponse[TreatmentTypeResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def duplicate_treatment_type(
    treatment_type_id: int,
    data: TreatmentTypeDuplicate | None = None,
    db: Session = Depends(get_db),
):
    copy = TreatmentTypeService(db).duplicate(treatment_type_id, data.name if data else None)
    return ApiResponse[TreatmentTypeResponse](
        message='Treatment type duplicated successfully',
        data=TreatmentTypeResponse.model_validate(copy),
    )


@router.get('/{treatment_type_id}/stats', response_model=ApiResponse[TreatmentTypeStats])
def treatment_type_stats(treatment_type_id: int, db: Session = Depends(get_db)):
    stats = TreatmentTypeService(db).stats(treatment_type_id)
    return ApiResponse[TreatmentTypeStats](message='Treatment type statistics', data=TreatmentTypeStats(**stats))
