from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin, require_staff
from backend.core.rate_limit import general_limiter
from backend.database import get_db
from backend.schemas.common import ApiResponse, MessageResponse
from backend.schemas.config import (
    ClinicConfig,
    ClinicConfigUpdate,
    ConfigBulkUpdate,
    ConfigResponse,
    ConfigValueUpdate,
    DashboardStats,
)
from backend.services.config_service import ConfigService

router = APIRouter(tags=['config'], dependencies=[Depends(require_staff), Depends(general_limiter)])


def _many(configs) -> list[ConfigResponse]:
    return [ConfigResponse.model_validate(config) for config in configs]


@router.get('', response_model=ApiResponse[list[ConfigResponse]])
def list_configs(db: Session = Depends(get_db)):
    return ApiResponse[list[ConfigResponse]](message='Configuration retrieved', data=_many(ConfigService(db).get_all()))


@router.put('', response_model=ApiResponse[list[ConfigResponse]], dependencies=[Depends(require_admin)])
def bulk_update_configs(data: ConfigBulkUpdate, db: Session = Depends(get_db)):
    configs = ConfigService(db).bulk_upsert(data.configs)
    return ApiResponse[list[ConfigResponse]](message=f'{len(configs)} configurations updated', data=_many(configs))


@router.get('/clinic', response_model=ApiResponse[ClinicConfig])
def get_clinic_config(db: Session = Depends(get_db)):
    return ApiResponse[ClinicConfig](message='Clinic configuration', data=ClinicConfig(**ConfigService(db).get_clinic()))


@router.put('/clinic', response_model=ApiResponse[ClinicConfig], dependencies=[Depends(require_admin)])
def update_clinic_config(data: ClinicConfigUpdate, db: Session = Depends(get_db)):
    clinic = ConfigService(db).update_clinic(data)
    return ApiResponse[ClinicConfig](message='Clinic configuration updated', data=ClinicConfig(**clinic))


@router.get('/dashboard', response_model=ApiResponse[DashboardStats])
def dashboard(db: Session = Depends(get_db)):
    return ApiResponse[DashboardStats](message='Dashboard statistics', data=DashboardStats(**ConfigService(db).dashboard()))


@router.get('/category/{category}', response_model=ApiResponse[list[ConfigResponse]])
def configs_by_category(category: str, db: Session = Depends(get_db)):
    configs = ConfigService(db).by_category(category)
    return ApiResponse[list[ConfigResponse]](message=f'{category.upper()} configuration', data=_many(configs))


@router.post('/reset', response_model=ApiResponse[list[ConfigResponse]], dependencies=[Depends(require_admin)])
def reset_configs(db: Session = Depends(get_db)):
    configs = ConfigService(db).reset_defaults()
    return ApiResponse[list[ConfigResponse]](message='Configuration reset to defaults', data=_many(configs))


@router.get('/export/all', response_model=ApiResponse[list[ConfigResponse]], dependencies=[Depends(require_admin)])
def export_configs(db: Session = Depends(get_db)):
    return ApiResponse[list[ConfigResponse]](message='Configuration exported', data=_many(ConfigService(db).export()))


@router.post('/import', response_model=ApiResponse[list[ConfigResponse]], dependencies=[Depends(require_admin)])
def import_configs(data: ConfigBulkUpdate, db: Session = Depends(get_db)):
    configs = ConfigService(db).import_configs(data.configs)
    return ApiResponse[list[ConfigResponse]](message=f'{len(configs)} configurations imported', data=_many(configs))


@router.get('/{key}', response_model=ApiResponse[ConfigResponse])
def get_config(key: str, db: Session = Depends(get_db)):
    config = ConfigService(db).get_by_key(key.upper())
    return ApiResponse[ConfigResponse](message='Configuration retrieved', data=ConfigResponse.model_validate(config))


@router.put('/{key}', response_model=ApiResponse[ConfigResponse], dependencies=[Depends(require_admin)])
def update_config(
    data: ConfigValueUpdate,
    key: str = Path(max_length=100, pattern=r'^[A-Za-z][A-Za-z0-9_]*$'),
    db: Session = Depends(get_db),
):
    config = ConfigService(db).upsert(key.upper(), data.value, data.description)
    return ApiResponse[ConfigResponse](message='Configuration updated', data=ConfigResponse.model_validate(config))


@router.delete('/{key}', response_model=MessageResponse, dependencies=[Depends(require_admin)])
def delete_config(key: str, db: Session = Depends(get_db)):
    ConfigService(db).delete(key.upper())
    return MessageResponse(message='Configuration deleted')
