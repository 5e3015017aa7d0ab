import os
from datetime import datetime, time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('SCHEDULER_ENABLED', 'false')

from backend.auth.jwt_handler import create_access_token  # noqa: E402
from backend.auth.passwords import hash_password  # noqa: E402
from backend.core.rate_limit import ALL_LIMITERS  # noqa: E402
from backend.database import Base, get_db  # noqa: E402
from backend.main import app  # noqa: E402
from backend.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from backend.models.notification import Notification  # noqa: E402,F401
from backend.models.patient import Patient  # noqa: E402
from backend.models.professional import Professional, WorkingHour  # noqa: E402
from backend.models.system_config import SystemConfig  # noqa: E402,F401
from backend.models.treatment_type import TreatmentType  # noqa: E402
from backend.models.user import User, UserRole  # noqa: E402
from backend.services.email_service import email_service  # noqa: E402
from backend.services.queue_service import notification_queue  # noqa: E402
from backend.services.scheduler_service import scheduler_service  # noqa: E402
from backend.services.whatsapp_service import whatsapp_service  # noqa: E402

TEST_PASSWORD = 'Secret123!'


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def isolated_background_services(session_factory, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(notification_queue, 'session_factory', session_factory)
    monkeypatch.setattr(scheduler_service, 'session_factory', session_factory)
    notification_queue.detach_scheduler()
    notification_queue.reset()
    for limiter in ALL_LIMITERS:
        limiter.clear()
    yield
    notification_queue.reset()


@pytest.fixture(autouse=True)
def offline_providers(monkeypatch: pytest.MonkeyPatch):
    # Local .env credentials must never reach Twilio or SMTP from the test suite.
    monkeypatch.setattr(whatsapp_service, 'account_sid', '')
    monkeypatch.setattr(whatsapp_service, 'auth_token', '')
    monkeypatch.setattr(email_service, 'username', '')
    monkeypatch.setattr(email_service, 'password', '')


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        # Not used as a context manager so startup hooks (schema, scheduler) stay off.
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(email: str = 'admin@clinic.example.com', role: UserRole = UserRole.ADMIN, **overrides) -> User:
        user = User(
            email=email,
            hashed_password=hash_password(overrides.pop('password', TEST_PASSWORD)),
            first_name=overrides.pop('first_name', 'Test'),
            last_name=overrides.pop('last_name', 'User'),
            role=role,
            **overrides,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers(make_user):
    def _headers(role: UserRole = UserRole.ADMIN, email: str | None = None) -> dict[str, str]:
        user = make_user(email=email or f'{role.value.lower()}@clinic.example.com', role=role)
        return {'Authorization': f'Bearer {create_access_token(user)}'}

    return _headers


@pytest.fixture
def make_patient(db):
    counter = {'value': 0}

    def _make(**overrides) -> Patient:
        counter['value'] += 1
        number = counter['value']
        values = {
            'first_name': 'Ana',
            'last_name': 'Lopez',
            'email': f'patient{number}@example.com',
            'phone': f'+54911666600{number:02d}',
            'document': f'3011122{number:02d}',
        }
        values.update(overrides)
        patient = Patient(**values)
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    return _make


@pytest.fixture
def make_professional(db):
    counter = {'value': 0}

    def _make(working_days=(1,), start: time = time(9, 0), end: time = time(12, 0), **overrides) -> Professional:
        counter['value'] += 1
        values = {
            'first_name': 'Laura',
            'last_name': 'Gomez',
            'license': f'MP-{1000 + counter["value"]}',
            'specialties': ['General Dentistry'],
        }
        values.update(overrides)
        professional = Professional(**values)
        professional.working_hours = [
            WorkingHour(day_of_week=day, start_time=start, end_time=end) for day in working_days
        ]
        db.add(professional)
        db.commit()
        db.refresh(professional)
        return professional

    return _make


@pytest.fixture
def make_treatment_type(db):
    def _make(professional: Professional, name: str = 'Consultation', duration: int = 30, **overrides) -> TreatmentType:
        treatment_type = TreatmentType(
            professional_id=professional.id,
            name=name,
            duration=duration,
            **overrides,
        )
        db.add(treatment_type)
        db.commit()
        db.refresh(treatment_type)
        return treatment_type

    return _make


@pytest.fixture
def make_appointment(db):
    def _make(
        patient: Patient,
        treatment_type: TreatmentType,
        start_time: datetime,
        end_time: datetime,
        status: AppointmentStatus = AppointmentStatus.SCHEDULED,
    ) -> Appointment:
        appointment = Appointment(
            patient_id=patient.id,
            professional_id=treatment_type.professional_id,
            treatment_type_id=treatment_type.id,
            start_time=start_time,
            end_time=end_time,
            status=status,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make
