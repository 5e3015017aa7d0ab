from datetime import datetime, timedelta

import pytest

from backend.models.user import UserRole

START = datetime(2030, 1, 7, 9, 0)

NEW_PROFESSIONAL = {
    'firstName': 'Martin',
    'lastName': 'Perez',
    'email': 'martin.perez@example.com',
    'license': 'MP-67890',
    'specialties': ['Orthodontics'],
}


@pytest.mark.parametrize(('role', 'expected_status'), [(UserRole.SECRETARY, 403), (UserRole.ADMIN, 201)])
def test_create_professional_is_admin_only(client, auth_headers, role: UserRole, expected_status: int) -> None:
    response = client.post('/api/professionals', headers=auth_headers(role), json=NEW_PROFESSIONAL)

    assert response.status_code == expected_status


def test_secretary_can_read_professionals(client, auth_headers, make_professional) -> None:
    make_professional(first_name='Laura')
    make_professional(first_name='Martin', is_active=False)
    headers = auth_headers(UserRole.SECRETARY)

    listed = client.get('/api/professionals', headers=headers)
    everyone = client.get('/api/professionals', headers=headers, params={'includeInactive': 'true'})
    active = client.get('/api/professionals/active', headers=headers)

    assert listed.json()['pagination']['total'] == 1
    assert everyone.json()['pagination']['total'] == 2
    assert [professional['firstName'] for professional in active.json()['data']] == ['Laura']


def test_professional_detail_includes_working_hours(client, auth_headers, make_professional) -> None:
    professional = make_professional(working_days=(1, 3))

    response = client.get(f'/api/professionals/{professional.id}', headers=auth_headers())

    hours = response.json()['data']['workingHours']
    assert [(hour['dayOfWeek'], hour['startTime'], hour['endTime']) for hour in hours] == [
        (1, '09:00:00', '12:00:00'),
        (3, '09:00:00', '12:00:00'),
    ]


def test_replace_working_hours(client, auth_headers, make_professional) -> None:
    professional = make_professional(working_days=(1, 2))
    headers = auth_headers()

    response = client.put(
        f'/api/professionals/{professional.id}/working-hours',
        headers=headers,
        json={'workingHours': [
            {'dayOfWeek': 5, 'startTime': '14:00', 'endTime': '18:00'},
            {'dayOfWeek': 3, 'startTime': '08:00', 'endTime': '12:00'},
        ]},
    )
    stored = client.get(f'/api/professionals/{professional.id}/working-hours', headers=headers)

    assert response.status_code == 200
    assert [hour['dayOfWeek'] for hour in response.json()['data']] == [3, 5]
    assert [(hour['dayOfWeek'], hour['startTime']) for hour in stored.json()['data']] == [
        (3, '08:00:00'),
        (5, '14:00:00'),
    ]


def test_working_hours_reject_inverted_range(client, auth_headers, make_professional) -> None:
    professional = make_professional()

    response = client.put(
        f'/api/professionals/{professional.id}/working-hours',
        headers=auth_headers(),
        json={'workingHours': [{'dayOfWeek': 1, 'startTime': '12:00', 'endTime': '09:00'}]},
    )

    assert response.status_code == 400
    assert response.json()['code'] == 'VALIDATION_ERROR'


def test_schedule_blocks_lifecycle(client, auth_headers, make_professional) -> None:
    professional = make_professional()
    headers = auth_headers()

    created = client.post(f'/api/professionals/{professional.id}/schedule-blocks', headers=headers, json={
        'title': 'Conference',
        'startDate': START.isoformat(),
        'endDate': (START + timedelta(days=2)).isoformat(),
    })
    block_id = created.json()['data']['id']
    listed = client.get(f'/api/professionals/{professional.id}/schedule-blocks', headers=headers)
    deleted = client.delete(f'/api/professionals/schedule-blocks/{block_id}', headers=headers)
    missing = client.delete(f'/api/professionals/schedule-blocks/{block_id}', headers=headers)

    assert created.status_code == 201
    assert [block['title'] for block in listed.json()['data']] == ['Conference']
    assert deleted.status_code == 200
    assert missing.status_code == 404


def test_schedule_block_over_appointment_conflicts(
    client, auth_headers, make_patient, make_professional, make_treatment_type, make_appointment,
) -> None:
    professional = make_professional()
    make_appointment(make_patient(), make_treatment_type(professional), START, START + timedelta(minutes=30))

    response = client.post(f'/api/professionals/{professional.id}/schedule-blocks', headers=auth_headers(), json={
        'title': 'Vacation',
        'startDate': START.isoformat(),
        'endDate': (START + timedelta(days=7)).isoformat(),
    })

    assert response.status_code == 409
    assert response.json()['code'] == 'SCHEDULE_CONFLICT'


def test_professional_stats(client, auth_headers, make_professional, make_treatment_type) -> None:
    professional = make_professional(working_days=(1, 2, 3))
    make_treatment_type(professional)

    response = client.get(f'/api/professionals/{professional.id}/stats', headers=auth_headers())

    assert response.json()['data'] == {
        'totalAppointments': 0,
        'upcomingAppointments': 0,
        'completedAppointments': 0,
        'cancelledAppointments': 0,
        'treatmentTypes': 1,
        'workingDays': 3,
    }


def test_treatment_type_crud(client, auth_headers, make_professional) -> None:
    professional = make_professional()
    headers = auth_headers()

    created = client.post('/api/treatment-types', headers=headers, json={
        'professionalId': professional.id,
        'name': 'Cleaning',
        'duration': 45,
        'price': 7500.5,
        'color': '#10B981',
    })
    treatment_type_id = created.json()['data']['id']
    duplicate = client.post('/api/treatment-types', headers=headers, json={
        'professionalId': professional.id,
        'name': 'Cleaning',
    })
    copy = client.post(f'/api/treatment-types/{treatment_type_id}/duplicate', headers=headers)
    updated = client.put(f'/api/treatment-types/{treatment_type_id}', headers=headers, json={'duration': 60})
    by_professional = client.get(f'/api/treatment-types/professional/{professional.id}', headers=headers)
    deleted = client.delete(f'/api/treatment-types/{treatment_type_id}', headers=headers)

    assert created.status_code == 201
    assert created.json()['data']['price'] == 7500.5
    assert duplicate.status_code == 409
    assert copy.json()['data']['name'] == 'Cleaning (Copy)'
    assert updated.json()['data']['duration'] == 60
    assert sorted(item['name'] for item in by_professional.json()['data']) == ['Cleaning', 'Cleaning (Copy)']
    assert deleted.status_code == 200


def test_treatment_type_writes_are_admin_only(client, auth_headers, make_professional) -> None:
    response = client.post('/api/treatment-types', headers=auth_headers(UserRole.SECRETARY), json={
        'professionalId': make_professional().id,
        'name': 'Cleaning',
    })

    assert response.status_code == 403
