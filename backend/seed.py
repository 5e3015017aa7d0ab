"""Create the schema and load demo data.

Run with ``python -m backend.seed``. Rows that already exist (matched on their
unique keys) are left untouched, so the script can be re-run safely.
"""

import logging
from datetime import date, time
from decimal import Decimal

from backend.auth.passwords import hash_password
from backend.core.logging_config import configure_logging
from backend.database import SessionLocal, init_db
from backend.models.patient import Patient
from backend.models.professional import Professional, WorkingHour
from backend.models.system_config import SystemConfig
from backend.models.treatment_type import TreatmentType
from backend.models.user import User, UserRole
from backend.services.config_service import DEFAULT_CONFIGS

logger = logging.getLogger(__name__)

DEMO_PASSWORD = 'Admin123!'

USERS = [
    ('admin@clinic.example.com', 'Clinic', 'Admin', UserRole.ADMIN),
    ('secretary@clinic.example.com', 'Front', 'Desk', UserRole.SECRETARY),
]

PROFESSIONALS = [
    {
        'first_name': 'Laura',
        'last_name': 'Gomez',
        'email': 'laura.gomez@clinic.example.com',
        'phone': '+5491155550001',
        'license': 'MP-12345',
        'specialties': ['General Dentistry', 'Endodontics'],
        'treatments': [
            ('Consultation', 30, Decimal('5000.00'), '#3B82F6'),
            ('Root Canal', 90, Decimal('45000.00'), '#EF4444'),
        ],
    },
    {
        'first_name': 'Martin',
        'last_name': 'Perez',
        'email': 'martin.perez@clinic.example.com',
        'phone': '+5491155550002',
        'license': 'MP-67890',
        'specialties': ['Orthodontics'],
        'treatments': [
            ('Orthodontic Check', 30, Decimal('8000.00'), '#10B981'),
            ('Braces Fitting', 60, Decimal('120000.00'), '#F59E0B'),
        ],
    },
]

# Monday to Friday
WORKDAYS = range(1, 6)

PATIENTS = [
    ('Ana', 'Lopez', 'ana.lopez@example.com', '+5491166660001', '30111222', date(1990, 4, 12)),
    ('Carlos', 'Diaz', 'carlos.diaz@example.com', '+5491166660002', '28333444', date(1985, 9, 3)),
    ('Sofia', 'Martinez', None, '+5491166660003', '40555666', date(2001, 1, 25)),
]


def seed(db) -> None:
    for email, first_name, last_name, role in USERS:
        if db.query(User).filter(User.email == email).first() is None:
            db.add(User(
                email=email,
                hashed_password=hash_password(DEMO_PASSWORD),
                first_name=first_name,
                last_name=last_name,
                role=role,
            ))

    for data in PROFESSIONALS:
        professional = db.query(Professional).filter(Professional.license == data['license']).first()
        if professional is not None:
            continue

        professional = Professional(
            first_name=data['first_name'],
            last_name=data['last_name'],
            email=data['email'],
            phone=data['phone'],
            license=data['license'],
            specialties=data['specialties'],
        )
        professional.working_hours = [
            WorkingHour(day_of_week=day, start_time=time(9, 0), end_time=time(17, 0)) for day in WORKDAYS
        ]
        professional.treatment_types = [
            TreatmentType(name=name, duration=duration, price=price, color=color)
            for name, duration, price, color in data['treatments']
        ]
        db.add(professional)

    for first_name, last_name, email, phone, document, date_of_birth in PATIENTS:
        if db.query(Patient).filter(Patient.document == document).first() is None:
            db.add(Patient(
                first_name=first_name,
                last_name=last_name,
                email=email,
                phone=phone,
                document=document,
                date_of_birth=date_of_birth,
            ))

    for key, value, description in DEFAULT_CONFIGS:
        if db.query(SystemConfig).filter(SystemConfig.key == key).first() is None:
            db.add(SystemConfig(key=key, value=value, description=description))

    db.commit()


def main() -> None:
    configure_logging()
    init_db()

    db = SessionLocal()
    try:
        seed(db)
    finally:
        db.close()

    logger.info('Seed data loaded. Demo users sign in with password %s', DEMO_PASSWORD)


if __name__ == '__main__':
    main()
