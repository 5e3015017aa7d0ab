import logging
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.core.errors import register_exception_handlers
from backend.core.logging_config import configure_logging
from backend.database import init_db
from backend.routes import (
    appointment_routes,
    auth_routes,
    config_routes,
    notification_routes,
    patient_routes,
    professional_routes,
    scheduler_routes,
    treatment_type_routes,
)
from backend.services.scheduler_service import scheduler_service

configure_logging()
config.validate_runtime_config()

app = FastAPI(title='Clinic Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

register_exception_handlers(app)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize() -> None:
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')

    if config.SCHEDULER_ENABLED:
        scheduler_service.start()


@app.on_event('shutdown')
def shutdown() -> None:
    scheduler_service.stop()


@app.get('/api/health')
def health():
    return {
        'success': True,
        'message': 'Clinic Scheduling API running',
        'data': {
            'status': 'ok',
            'environment': config.APP_ENV,
            'timestamp': datetime.now().isoformat(),
            'scheduler': scheduler_service.is_running,
        },
    }


app.include_router(auth_routes.router, prefix='/api/auth')
app.include_router(patient_routes.router, prefix='/api/patients')
app.include_router(professional_routes.router, prefix='/api/professionals')
app.include_router(treatment_type_routes.router, prefix='/api/treatment-types')
app.include_router(appointment_routes.router, prefix='/api/appointments')
app.include_router(notification_routes.router, prefix='/api/notifications')
app.include_router(scheduler_routes.router, prefix='/api/scheduler')
app.include_router(config_routes.router, prefix='/api/config')
