from datetime import datetime, time, timedelta

import pytest
from pydantic import ValidationError

from backend.core.errors import BadRequestError, DuplicateResourceError, ScheduleConflictError
from backend.core.pagination import PageParams
from backend.schemas.professional import (
    ProfessionalCreate,
    ProfessionalUpdate,
    ScheduleBlockCreate,
    WorkingHourIn,
    WorkingHoursUpdate,
)
from backend.services.professional_service import ProfessionalService, validate_working_hours

START = datetime(2030, 1, 7, 9, 0)


def test_create_professional(db) -> None:
    professional = ProfessionalService(db).create(ProfessionalCreate(
        first_name='Martin',
        last_name='Perez',
        email='Martin@Example.com',
        license='MP-67890',
        specialties=[' Orthodontics '],
    ))

    assert professional.email == 'martin@example.com'
    assert professional.specialties == ['Orthodontics']
    assert professional.is_active is True


def test_create_rejects_duplicate_license(db, make_professional) -> None:
    make_professional(license='MP-67890')

    with pytest.raises(DuplicateResourceError):
        ProfessionalService(db).create(ProfessionalCreate(
            first_name='Martin', last_name='Perez', license='MP-67890', specialties=['Orthodontics'],
        ))


@pytest.mark.parametrize('specialties', [[], [''], ['  ']])
def test_professional_schema_requires_specialties(specialties: list) -> None:
    with pytest.raises(ValidationError):
        ProfessionalCreate(first_name='Martin', last_name='Perez', license='MP-1', specialties=specialties)


def test_update_checks_license_against_other_professionals(db, make_professional) -> None:
    make_professional(license='MP-1111')
    professional = make_professional(license='MP-2222')
    service = ProfessionalService(db)

    assert service.update(professional.id, ProfessionalUpdate(license='MP-2222')).license == 'MP-2222'
    with pytest.raises(DuplicateResourceError):
        service.update(professional.id, ProfessionalUpdate(license='MP-1111'))


def test_list_excludes_inactive_unless_asked(db, make_professional) -> None:
    make_professional(first_name='Laura')
    make_professional(first_name='Martin', is_active=False)
    service = ProfessionalService(db)

    assert service.list_professionals(PageParams()).total == 1
    assert service.list_professionals(PageParams(), include_inactive=True).total == 2
    assert [professional.first_name for professional in service.get_active()] == ['Laura']


def test_set_working_hours_replaces_existing_rows(db, make_professional) -> None:
    professional = make_professional(working_days=(1, 2, 3))
    service = ProfessionalService(db)

    rows = service.set_working_hours(professional.id, [
        WorkingHourIn(day_of_week=5, start_time=time(14, 0), end_time=time(18, 0)),
        WorkingHourIn(day_of_week=1, start_time=time(8, 0), end_time=time(12, 0)),
    ])

    assert [row.day_of_week for row in rows] == [1, 5]
    stored = service.get_working_hours(professional.id)
    assert [(row.day_of_week, row.start_time) for row in stored] == [(1, time(8, 0)), (5, time(14, 0))]


def test_validate_working_hours_rejects_repeated_days() -> None:
    with pytest.raises(BadRequestError):
        validate_working_hours([
            WorkingHourIn(day_of_week=1, start_time=time(8, 0), end_time=time(12, 0)),
            WorkingHourIn(day_of_week=1, start_time=time(14, 0), end_time=time(18, 0)),
        ])


@pytest.mark.parametrize(
    'working_hours',
    [
        [{'dayOfWeek': 7, 'startTime': '09:00', 'endTime': '12:00'}],
        [{'dayOfWeek': 1, 'startTime': '12:00', 'endTime': '09:00'}],
        [
            {'dayOfWeek': 1, 'startTime': '09:00', 'endTime': '12:00'},
            {'dayOfWeek': 1, 'startTime': '13:00', 'endTime': '17:00'},
        ],
    ],
)
def test_working_hours_schema_rejects_invalid_rows(working_hours: list) -> None:
    with pytest.raises(ValidationError):
        WorkingHoursUpdate.model_validate({'workingHours': working_hours})


def test_schedule_block_cannot_cover_active_appointment(
    db, make_patient, make_professional, make_treatment_type, make_appointment,
) -> None:
    professional = make_professional()
    make_appointment(make_patient(), make_treatment_type(professional), START, START + timedelta(minutes=30))

    with pytest.raises(ScheduleConflictError):
        ProfessionalService(db).create_schedule_block(professional.id, ScheduleBlockCreate(
            title='Conference', start_date=START - timedelta(hours=1), end_date=START + timedelta(hours=1),
        ))


def test_schedule_blocks_can_be_created_listed_and_deleted(db, make_professional) -> None:
    professional = make_professional()
    service = ProfessionalService(db)

    block = service.create_schedule_block(professional.id, ScheduleBlockCreate(
        title=' Vacation ', start_date=START, end_date=START + timedelta(days=5),
    ))

    assert block.title == 'Vacation'
    assert [item.id for item in service.get_schedule_blocks(professional.id, start_date=START)] == [block.id]
    assert service.get_schedule_blocks(professional.id, start_date=START + timedelta(days=10)) == []

    service.delete_schedule_block(block.id)

    assert service.get_schedule_blocks(professional.id) == []


def test_delete_soft_deletes_professional(db, make_professional) -> None:
    professional = make_professional()

    ProfessionalService(db).delete(professional.id)

    db.refresh(professional)
    assert professional.is_active is False


def test_stats_counts_treatments_and_working_days(db, make_professional, make_treatment_type) -> None:
    professional = make_professional(working_days=(1, 2, 3, 4, 5))
    make_treatment_type(professional)

    stats = ProfessionalService(db).stats(professional.id)

    assert stats['treatment_types'] == 1
    assert stats['working_days'] == 5
    assert stats['total_appointments'] == 0
