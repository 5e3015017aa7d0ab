import logging
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL

engine_options = {'pool_pre_ping': True}
if DATABASE_URL.startswith('sqlite'):
    engine_options['connect_args'] = {'check_same_thread': False}

engine = create_engine(DATABASE_URL, **engine_options)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_indexes_checked = False

SCHEDULING_INDEXES = [
    ('appointments', 'CREATE INDEX IF NOT EXISTS idx_appointments_professional_range '
                     'ON appointments(professional_id, start_time, end_time)'),
    ('appointments', 'CREATE INDEX IF NOT EXISTS idx_appointments_status_start '
                     'ON appointments(status, start_time)'),
    ('schedule_blocks', 'CREATE INDEX IF NOT EXISTS idx_schedule_blocks_professional_range '
                        'ON schedule_blocks(professional_id, start_date, end_date)'),
    ('notifications', 'CREATE INDEX IF NOT EXISTS idx_notifications_status_created '
                      'ON notifications(status, created_at)'),
]


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_scheduling_indexes(bind=None) -> None:
    """Create the range-lookup indexes used by availability queries, once per process."""
    global _indexes_checked

    if _indexes_checked:
        return

    with _schema_lock:
        if _indexes_checked:
            return

        bind = bind or engine
        existing_tables = set(inspect(bind).get_table_names())

        with bind.begin() as connection:
            for table_name, statement in SCHEDULING_INDEXES:
                if table_name in existing_tables:
                    connection.execute(text(statement))

        _indexes_checked = True


def init_db() -> None:
    # Import models so every table is registered on Base.metadata.
    from backend.models import (  # noqa: F401
        appointment,
        notification,
        patient,
        professional,
        system_config,
        treatment_type,
        user,
    )

    Base.metadata.create_all(bind=engine)
    ensure_scheduling_indexes()
    logger.info('Database schema ready')
