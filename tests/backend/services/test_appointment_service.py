from datetime import date, datetime, time, timedelta

import pytest

from backend.core.errors import (
    BadRequestError,
    InvalidStatusTransitionError,
    NotFoundError,
    OutsideWorkingHoursError,
    ScheduleConflictError,
)
from backend.core.pagination import PageParams
from backend.models.appointment import AppointmentStatus
from backend.models.notification import Notification, NotificationStatus, NotificationType
from backend.models.professional import ScheduleBlock
from backend.schemas.appointment import AppointmentCreate, AppointmentFilters, AppointmentUpdate
from backend.services.appointment_service import AppointmentService
from backend.services.queue_service import notification_queue

# Monday
DAY = date(2030, 1, 7)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime.combine(day, time(hour, minute))


@pytest.fixture
def clinic(make_patient, make_professional, make_treatment_type):
    professional = make_professional()
    return {
        'patient': make_patient(),
        'professional': professional,
        'treatment_type': make_treatment_type(professional),
    }


def booking(clinic, start: datetime, minutes: int = 30, **overrides) -> AppointmentCreate:
    values = {
        'patient_id': clinic['patient'].id,
        'professional_id': clinic['professional'].id,
        'treatment_type_id': clinic['treatment_type'].id,
        'start_time': start,
        'end_time': start + timedelta(minutes=minutes),
    }
    values.update(overrides)
    return AppointmentCreate(**values)


def test_create_books_appointment_and_schedules_reminders(db, clinic) -> None:
    appointment = AppointmentService(db).create(booking(clinic, at(9)), user_id=None)

    assert appointment.status == AppointmentStatus.SCHEDULED
    assert appointment.start_time == at(9)
    assert appointment.end_time == at(9, 30)
    assert appointment.patient.id == clinic['patient'].id
    assert appointment.treatment_type.name == 'Consultation'

    reminders = db.query(Notification).filter(Notification.appointment_id == appointment.id).all()
    assert {reminder.channel.value for reminder in reminders} == {'WHATSAPP', 'EMAIL'}
    assert all(reminder.type == NotificationType.REMINDER for reminder in reminders)
    assert all(reminder.status == NotificationStatus.PENDING for reminder in reminders)
    assert all(reminder.scheduled_at == at(9) - timedelta(hours=24) for reminder in reminders)
    assert notification_queue.stats()['pending'] == 2


def test_create_rejects_overlapping_appointment(db, clinic, make_appointment) -> None:
    make_appointment(clinic['patient'], clinic['treatment_type'], at(9), at(9, 30))

    with pytest.raises(ScheduleConflictError):
        AppointmentService(db).create(booking(clinic, at(9, 15)))


def test_create_allows_back_to_back_appointments(db, clinic, make_appointment) -> None:
    make_appointment(clinic['patient'], clinic['treatment_type'], at(9), at(9, 30))

    appointment = AppointmentService(db).create(booking(clinic, at(9, 30)))

    assert appointment.start_time == at(9, 30)


def test_cancelled_appointments_do_not_hold_their_slot(db, clinic, make_appointment) -> None:
    make_appointment(
        clinic['patient'], clinic['treatment_type'], at(9), at(9, 30), status=AppointmentStatus.CANCELLED,
    )

    appointment = AppointmentService(db).create(booking(clinic, at(9)))

    assert appointment.status == AppointmentStatus.SCHEDULED


def test_create_rejects_time_inside_schedule_block(db, clinic) -> None:
    db.add(ScheduleBlock(
        professional_id=clinic['professional'].id,
        title='Training',
        start_date=at(10),
        end_date=at(11),
    ))
    db.commit()

    with pytest.raises(ScheduleConflictError):
        AppointmentService(db).create(booking(clinic, at(10, 30)))


def test_create_checks_conflicts_before_working_hours(db, clinic, make_appointment) -> None:
    make_appointment(clinic['patient'], clinic['treatment_type'], at(11, 30), at(12))

    with pytest.raises(ScheduleConflictError):
        AppointmentService(db).create(booking(clinic, at(11, 45)))


@pytest.mark.parametrize(
    'start',
    [
        at(12),
        at(8, 30),
        at(9, day=date(2030, 1, 8)),
    ],
)
def test_create_rejects_time_outside_working_hours(db, clinic, start: datetime) -> None:
    with pytest.raises(OutsideWorkingHoursError):
        AppointmentService(db).create(booking(clinic, start))


def test_create_rejects_treatment_type_of_another_professional(
    db, clinic, make_professional, make_treatment_type,
) -> None:
    other_treatment = make_treatment_type(make_professional(), name='Whitening')

    with pytest.raises(ScheduleConflictError) as exception_info:
        AppointmentService(db).create(booking(clinic, at(9), treatment_type_id=other_treatment.id))

    assert exception_info.value.message == 'Treatment type is not valid for this professional'


def test_create_rejects_inactive_patient(db, clinic) -> None:
    clinic['patient'].is_active = False
    db.commit()

    with pytest.raises(NotFoundError) as exception_info:
        AppointmentService(db).create(booking(clinic, at(9)))

    assert exception_info.value.code == 'PATIENT_NOT_FOUND'


def test_create_rejects_unknown_professional(db, clinic) -> None:
    with pytest.raises(NotFoundError) as exception_info:
        AppointmentService(db).create(booking(clinic, at(9), professional_id=9999))

    assert exception_info.value.code == 'PROFESSIONAL_NOT_FOUND'


def test_get_available_slots_skips_booked_times(db, clinic, make_appointment) -> None:
    make_appointment(clinic['patient'], clinic['treatment_type'], at(10), at(10, 30))

    slots = AppointmentService(db).get_available_slots(
        clinic['professional'].id, DAY, clinic['treatment_type'].id,
    )

    assert [slot.start_time for slot in slots] == [at(9), at(9, 30), at(10, 30), at(11), at(11, 30)]


def test_get_available_slots_uses_treatment_duration(db, clinic, make_treatment_type) -> None:
    long_treatment = make_treatment_type(clinic['professional'], name='Root Canal', duration=90)

    slots = AppointmentService(db).get_available_slots(clinic['professional'].id, DAY, long_treatment.id)

    assert [slot.start_time for slot in slots] == [at(9), at(9, 30), at(10), at(10, 30)]
    assert slots[-1].end_time == at(12)


def test_get_available_slots_is_empty_on_days_off(db, clinic) -> None:
    assert AppointmentService(db).get_available_slots(clinic['professional'].id, date(2030, 1, 8)) == []


def block(db, professional_id: int, start: datetime, end: datetime) -> None:
    db.add(ScheduleBlock(professional_id=professional_id, title='Blocked', start_date=start, end_date=end))
    db.commit()


def test_get_available_slots_skips_blocked_time(db, clinic) -> None:
    block(db, clinic['professional'].id, at(10), at(11))

    slots = AppointmentService(db).get_available_slots(clinic['professional'].id, DAY)

    assert [slot.start_time for slot in slots] == [at(9), at(9, 30), at(11), at(11, 30)]


def test_get_available_slots_is_empty_under_a_multi_day_block(db, clinic) -> None:
    block(db, clinic['professional'].id, at(0, day=date(2030, 1, 5)), at(0, day=date(2030, 1, 9)))

    assert AppointmentService(db).get_available_slots(clinic['professional'].id, DAY) == []


@pytest.mark.parametrize('start_hour, end_hour', [(8, 9), (12, 13)])
def test_get_available_slots_ignores_blocks_touching_working_hours(db, clinic, start_hour, end_hour) -> None:
    block(db, clinic['professional'].id, at(start_hour), at(end_hour))

    slots = AppointmentService(db).get_available_slots(clinic['professional'].id, DAY)

    assert len(slots) == 6


def test_get_available_slots_rejects_unknown_treatment_type(db, clinic) -> None:
    with pytest.raises(NotFoundError) as exception_info:
        AppointmentService(db).get_available_slots(clinic['professional'].id, DAY, 999)

    assert exception_info.value.code == 'TREATMENT_TYPE_NOT_FOUND'


def test_get_available_slots_rejects_other_professionals_treatment(
    db, clinic, make_professional, make_treatment_type,
) -> None:
    other = make_treatment_type(make_professional(), name='Surgery', duration=60)

    with pytest.raises(ScheduleConflictError):
        AppointmentService(db).get_available_slots(clinic['professional'].id, DAY, other.id)


def test_check_availability_can_exclude_an_appointment(db, clinic, make_appointment) -> None:
    appointment = make_appointment(clinic['patient'], clinic['treatment_type'], at(9), at(9, 30))
    service = AppointmentService(db)

    assert service.check_availability(clinic['professional'].id, at(9), at(9, 30)) is False
    assert service.check_availability(clinic['professional'].id, at(9), at(9, 30), appointment.id) is True


def test_update_moves_appointment_over_its_own_slot(db, clinic, make_appointment) -> None:
    appointment = make_appointment(clinic['patient'], clinic['treatment_type'], at(9), at(9, 30))

    updated = AppointmentService(db).update(
        appointment.id, AppointmentUpdate(start_time=at(9, 15), end_time=at(9, 45)),
    )

    assert updated.start_time == at(9, 15)
    modifications = db.query(Notification).filter(Notification.type == NotificationType.MODIFICATION).count()
    assert modifications == 2


def test_update_rejects_move_onto_another_appointment(db, clinic, make_appointment) -> None:
    make_appointment(clinic['patient'], clinic['treatment_type'], at(10), at(10, 30))
    appointment = make_appointment(clinic['patient'], clinic['treatment_type'], at(9), at(9, 30))

    with pytest.raises(ScheduleConflictError):
        AppointmentService(db).update(
            appointment.id, AppointmentUpdate(start_time=at(10), end_time=at(10, 30)),
        )


@pytest.mark.parametrize(
    'status',
    [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW],
)
def test_update_refuses_appointments_in_final_status(
    db, clinic, make_appointment, status: AppointmentStatus,
) -> None:
    appointment = make_appointment(clinic['patient'], clinic['treatment_type'], at(9), at(9, 30), status=status)

    with pytest.raises(BadRequestError) as exception_info:
        AppointmentService(db).update(appointment.id, AppointmentUpdate(notes='Late change'))

    assert exception_info.value.code == 'APPOINTMENT_LOCKED'


def test_update_status_change_on_final_appointment_is_an_invalid_transition(db, clinic, make_appointment) -> None:
    appointment = make_appointment(
        clinic['patient'], clinic['treatment_type'], at(9), at(9, 30), status=AppointmentStatus.CANCELLED,
    )

    with pytest.raises(InvalidStatusTransitionError) as exception_info:
        AppointmentService(db).update(appointment.id, AppointmentUpdate(status=AppointmentStatus.CONFIRMED))

    assert str(exception_info.value) == 'Invalid status transition: CANCELLED -> CONFIRMED'


def test_update_with_unchanged_status_skips_transition_check(db, clinic, make_appointment) -> None:
    appointment = make_appointment(clinic['patient'], clinic['treatment_type'], at(9), at(9, 30))

    updated = AppointmentService(db).update(
        appointment.id, AppointmentUpdate(status=AppointmentStatus.SCHEDULED, notes='Bring x-rays'),
    )

    assert updated.status == AppointmentStatus.SCHEDULED
    assert updated.notes == 'Bring x-rays'


def test_change_status_confirms_and_notifies(db, clinic, make_appointment) -> None:
    appointment = make_appointment(clinic['patient'], clinic['treatment_type'], at(9), at(9, 30))

    updated = AppointmentService(db).change_status(appointment.id, AppointmentStatus.CONFIRMED, 'Called patient')

    assert updated.status == AppointmentStatus.CONFIRMED
    assert updated.observations == 'Called patient'
    confirmations = db.query(Notification).filter(Notification.type == NotificationType.CONFIRMATION).count()
    assert confirmations == 2


def test_change_status_rejects_skipping_confirmation(db, clinic, make_appointment) -> None:
    appointment = make_appointment(clinic['patient'], clinic['treatment_type'], at(9), at(9, 30))

    with pytest.raises(InvalidStatusTransitionError):
        AppointmentService(db).change_status(appointment.id, AppointmentStatus.COMPLETED)


def test_get_missing_appointment_raises_not_found(db) -> None:
    with pytest.raises(NotFoundError) as exception_info:
        AppointmentService(db).get(404)

    assert exception_info.value.code == 'APPOINTMENT_NOT_FOUND'


def test_list_appointments_filters_by_status(db, clinic, make_appointment) -> None:
    make_appointment(clinic['patient'], clinic['treatment_type'], at(9), at(9, 30))
    make_appointment(
        clinic['patient'], clinic['treatment_type'], at(10), at(10, 30), status=AppointmentStatus.CANCELLED,
    )

    page = AppointmentService(db).list_appointments(
        PageParams(), AppointmentFilters(status=AppointmentStatus.CANCELLED),
    )

    assert page.total == 1
    assert page.items[0].start_time == at(10)


def test_stats_counts_by_status(db, clinic, make_appointment) -> None:
    make_appointment(clinic['patient'], clinic['treatment_type'], at(9), at(9, 30))
    make_appointment(
        clinic['patient'], clinic['treatment_type'], at(10), at(10, 30), status=AppointmentStatus.NO_SHOW,
    )

    stats = AppointmentService(db).stats(start_date=DAY, end_date=DAY)

    assert stats['total'] == 2
    assert stats['scheduled'] == 1
    assert stats['no_show'] == 1
    assert stats['confirmed'] == 0
