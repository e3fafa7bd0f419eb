from datetime import timedelta

import pytest

from opd.exceptions import Conflict, InUse, InvalidArgument, NotFound
from opd.models import Room, User, Visit
from opd.services import rooms, visits

pytestmark = pytest.mark.django_db


def test_create_trims_and_rejects_blank(today):
    room = rooms.create('  206 ', 'Psychiatry')
    assert room.room_number == '206'
    with pytest.raises(InvalidArgument):
        rooms.create('   ')


def test_duplicate_active_number_conflicts_until_deleted(today):
    room = rooms.create('206')
    with pytest.raises(Conflict):
        rooms.create('206')
    rooms.delete(room.id)
    assert rooms.create('206').room_number == '206'


def test_inactive_number_can_be_reused(today):
    room = rooms.create('206')
    rooms.deactivate(room.id)
    again = rooms.create('206')
    assert again.is_active
    assert rooms.find_by_identifier('206') == again


def test_delete_blocked_by_doctor_in_room_today(today, doctor_factory):
    room = rooms.create('206')
    doctor_factory('Mehta', room='206')
    with pytest.raises(InUse) as exc:
        rooms.delete(room.id, force=True)
    assert exc.value.detail['doctors'] == ['Mehta']
    assert Room.objects.filter(id=room.id).exists()


def test_delete_blocked_by_patients_today_even_with_force(today, patient_factory):
    room = rooms.create('206')
    patient = patient_factory('Anita', assigned_room='206')
    visits.create_visit(patient.id, None, '206', today, Visit.TYPE_FIRST)
    with pytest.raises(InUse) as exc:
        rooms.delete(room.id, force=True)
    assert exc.value.detail['patientsToday'] == 1
    assert exc.value.detail['patientNames'] == ['Anita']


def test_historical_references_need_force_and_are_cleared(today, at, patient_factory, doctor_factory):
    room = rooms.create('206')
    with at(today - timedelta(days=7)):
        patient = patient_factory('Old patient', assigned_room='206')
        visit = visits.create_visit(patient.id, None, '206', today - timedelta(days=7), Visit.TYPE_FIRST)
        stale_doctor = doctor_factory(room='206')

    with pytest.raises(InUse) as exc:
        rooms.delete(room.id)
    assert exc.value.detail['historicalPatients'] == 1

    rooms.delete(room.id, force=True)
    assert not Room.objects.filter(id=room.id).exists()
    patient.refresh_from_db()
    visit.refresh_from_db()
    stale_doctor.refresh_from_db()
    assert patient.assigned_room is None
    assert visit.room_no is None
    assert stale_doctor.current_room is None


def test_deactivate_blocked_while_in_use(today, doctor_factory):
    room = rooms.create('206')
    doctor_factory(room='206')
    with pytest.raises(InUse):
        rooms.deactivate(room.id)


def test_update_renumber_conflict_and_reactivation(today):
    a = rooms.create('206')
    b = rooms.create('211')
    with pytest.raises(Conflict):
        rooms.update(b.id, room_number='206')
    rooms.update(a.id, is_active=False)
    rooms.update(b.id, room_number='206', description='Moved')
    b.refresh_from_db()
    assert (b.room_number, b.description) == ('206', 'Moved')
    with pytest.raises(Conflict):
        rooms.update(a.id, is_active=True)


def test_missing_room(today):
    with pytest.raises(NotFound):
        rooms.get_room(12345)
    with pytest.raises(NotFound):
        rooms.delete(12345)


def test_list_filters_and_annotates_occupant(today, doctor_factory):
    rooms.create('201', 'General')
    rooms.create('206', 'Psychiatry')
    inactive = rooms.create('300')
    rooms.deactivate(inactive.id)
    doctor = doctor_factory('Mehta', room='206')

    entries, total = rooms.list_rooms(is_active=True)
    assert total == 2
    assert [e.room.room_number for e in entries] == ['201', '206']
    assert entries[1].doctor == doctor
    assert entries[0].doctor is None

    entries, total = rooms.list_rooms(search='psych')
    assert total == 1 and entries[0].room.room_number == '206'

    entries, total = rooms.list_rooms(page=2, page_size=2)
    assert total == 3
    assert [e.room.room_number for e in entries] == ['300']


def test_stats_counts_today_only(today, at, doctor_factory, patient_factory):
    for number in ('201', '206', '211'):
        rooms.create(number)
    doctor_factory(room='206')
    with at(today - timedelta(days=1)):
        doctor_factory(room='211')
    patient = patient_factory()
    visits.create_visit(patient.id, None, '201', today, Visit.TYPE_FIRST)

    assert rooms.stats() == {
        'totalRooms': 3,
        'occupiedRooms': 1,
        'roomsWithPatients': 1,
        'availableRooms': 2,
    }


def test_stats_are_cached_until_a_room_write(today):
    rooms.create('201')
    assert rooms.stats()['totalRooms'] == 1
    Room.objects.create(room_number='999')
    assert rooms.stats()['totalRooms'] == 1
    rooms.create('202')
    assert rooms.stats()['totalRooms'] == 3


def test_room_without_selection_time_is_not_occupied(today):
    rooms.create('206')
    User.objects.create_user(username='clerk', password='x', role=User.ROLE_WELFARE,
                             current_room='206')
    assert rooms.stats()['occupiedRooms'] == 0


def test_list_counts_todays_patients_and_filters_available(today, doctor_factory, patient_factory):
    for number in ('201', '206', '211'):
        rooms.create(number)
    doctor_factory('Mehta', room='206')
    moved, waiting = patient_factory('Moved'), patient_factory('Waiting')
    visits.create_visit(moved.id, None, '206', today, Visit.TYPE_FIRST)
    visits.create_visit(moved.id, None, '211', today, Visit.TYPE_FIRST)
    visits.create_visit(waiting.id, None, '206', today, Visit.TYPE_FIRST)
    visits.create_visit(waiting.id, None, '201', today - timedelta(days=1), Visit.TYPE_FIRST)

    entries, _ = rooms.list_rooms()
    assert {e.room.room_number: e.patients_today for e in entries} == {'201': 0, '206': 1, '211': 1}
    assert rooms.format_room(entries[1])['patientsToday'] == 1

    entries, total = rooms.list_rooms(available=True)
    assert total == 2
    assert [e.room.room_number for e in entries] == ['201', '211']
    entries, total = rooms.list_rooms(available=False)
    assert [e.room.room_number for e in entries] == ['206']


def test_entry_for_single_room(today, doctor_factory, patient_factory):
    room = rooms.create('206')
    doctor = doctor_factory(room='206')
    visits.create_visit(patient_factory().id, doctor.id, '206', today, Visit.TYPE_FIRST)
    entry = rooms.entry_for(room)
    assert (entry.doctor, entry.patients_today) == (doctor, 1)
