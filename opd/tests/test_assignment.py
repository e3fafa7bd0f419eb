from datetime import timedelta

import pytest
from django.db import DatabaseError

from opd.exceptions import Internal, InvalidArgument, NotFound, RoomNotSelected
from opd.models import AuditEvent, Patient, Room, User, Visit
from opd.services import assignment, patients, visits

from .conftest import ist

pytestmark = pytest.mark.django_db


@pytest.fixture
def clinic(today, room_factory, doctor_factory):
    """Rooms 206 and 211 staffed today, 215 empty."""
    for number in ('206', '211', '215'):
        room_factory(number)
    return {
        'a': doctor_factory('Asha', room='206', assigned_at=ist(today, 9)),
        'b': doctor_factory('Bilal', room='211', assigned_at=ist(today, 9)),
    }


@pytest.mark.parametrize('value', [0, -3, 'abc', '1.5', None, True, 2.5])
def test_ids_must_be_positive_integers(value):
    with pytest.raises(InvalidArgument):
        assignment.positive_id(value, 'patientId')


def test_numeric_string_id_is_accepted():
    assert assignment.positive_id('42', 'patientId') == 42


def test_assign_requires_room_today(today, doctor_factory, patient_factory):
    doctor = doctor_factory()
    patient = patient_factory()
    with pytest.raises(RoomNotSelected):
        assignment.assign_patient_to_doctor_room(patient.id, doctor.id)
    assert not Visit.objects.exists()


def test_assign_uses_doctor_room_or_explicit_room(clinic, patient_factory):
    patient = patient_factory()
    visit = assignment.assign_patient_to_doctor_room(patient.id, clinic['a'].id)
    assert (visit.room_no, visit.assigned_doctor_id) == ('206', clinic['a'].id)

    again = assignment.assign_patient_to_doctor_room(patient.id, clinic['a'].id, explicit_room='215')
    assert again.id == visit.id
    assert again.room_no == '215'
    assert Visit.objects.filter(patient=patient).count() == 1
    patient.refresh_from_db()
    assert patient.assigned_room is None


def test_assign_unknown_patient(clinic):
    with pytest.raises(NotFound):
        assignment.assign_patient_to_doctor_room(99999, clinic['a'].id)


def test_existing_patient_goes_to_requesters_room_not_previous_one(clinic, patient_factory, last_week):
    patient = patient_factory(assigned_room='211', assigned_doctor=clinic['b'], assigned_doctor_name='Bilal')
    visits.create_visit(patient.id, clinic['b'].id, '211', last_week, Visit.TYPE_FIRST)

    visit, visit_type = assignment.create_visit_for_existing_patient(patient.id, clinic['a'].id, explicit_room='211')

    assert visit_type == Visit.TYPE_FOLLOW_UP
    assert (visit.room_no, visit.assigned_doctor_id, visit.visit_date) == ('206', clinic['a'].id, last_week + timedelta(days=7))
    patient.refresh_from_db()
    assert (patient.assigned_room, patient.assigned_doctor_id, patient.assigned_doctor_name) == ('206', clinic['a'].id, 'Asha')


def test_room_occupant_takes_precedence_over_requester(clinic, today, doctor_factory, patient_factory):
    later = doctor_factory('Chitra', room='206', assigned_at=ist(today, 10))
    patient = patient_factory()
    visit, visit_type = assignment.create_visit_for_existing_patient(patient.id, clinic['a'].id)
    assert visit_type == Visit.TYPE_FIRST
    assert visit.assigned_doctor_id == later.id


def test_second_visit_request_same_day_updates_in_place(clinic, patient_factory):
    patient = patient_factory()
    first, _ = assignment.create_visit_for_existing_patient(patient.id, clinic['a'].id)
    second, visit_type = assignment.create_visit_for_existing_patient(patient.id, clinic['b'].id)
    assert second.id == first.id
    assert (second.room_no, second.assigned_doctor_id) == ('211', clinic['b'].id)
    assert visit_type == Visit.TYPE_FIRST


def test_change_to_same_room_writes_nothing(clinic, patient_factory):
    patient = patient_factory(assigned_room='206', assigned_doctor=clinic['a'])
    change = assignment.change_patient_room(patient.id, ' 206 ')
    assert change.changed is False
    assert change.visit is None
    assert not Visit.objects.exists()
    assert not AuditEvent.objects.exists()


def test_change_to_unstaffed_room_drops_doctor_and_notes_the_move(clinic, today, patient_factory):
    patient = patient_factory(assigned_room='211', assigned_doctor=clinic['b'], assigned_doctor_name='Bilal')
    visits.create_visit(patient.id, clinic['b'].id, '211', today, Visit.TYPE_FIRST, notes='walk-in')
    nurse = User.objects.create_user(username='nurse', password='x', role=User.ROLE_WELFARE, first_name='Nina')

    change = assignment.change_patient_room(patient.id, '215', actor=nurse)

    assert change.changed is True
    assert (change.old_room, change.new_room) == ('211', '215')
    assert change.old_doctor_id == clinic['b'].id
    assert change.new_doctor_id is None
    assert change.visit.assigned_doctor_id is None
    assert change.visit.notes.startswith('walk-in\n[Room changed from "211" to "215" by Nina at ')
    patient.refresh_from_db()
    assert (patient.assigned_room, patient.assigned_doctor_id, patient.assigned_doctor_name) == ('215', None, '')
    event = AuditEvent.objects.get(action='room_change')
    assert event.user == nurse
    assert event.detail['oldRoom'] == '211' and event.detail['newRoom'] == '215'


def test_change_to_staffed_room_binds_its_doctor(clinic, patient_factory):
    patient = patient_factory()
    change = assignment.change_patient_room(patient.id, '211')
    assert change.new_doctor_id == clinic['b'].id
    assert change.visit.visit_type == Visit.TYPE_FIRST
    assert 'from "None" to "211" by Unknown' in change.visit.notes


def test_change_to_missing_or_blank_room(clinic, patient_factory):
    patient = patient_factory()
    with pytest.raises(NotFound):
        assignment.change_patient_room(patient.id, '999')
    with pytest.raises(InvalidArgument):
        assignment.change_patient_room(patient.id, '  ')


def test_selecting_room_claims_its_patients(today, room_factory, doctor_factory, patient_factory):
    room_factory('215')
    patient = patient_factory()
    assignment.change_patient_room(patient.id, '215')
    doctor = doctor_factory('Dev')

    selection = assignment.select_room(doctor.id, '215')

    assert selection.claimed == 1
    assert visits.find_for_patient_on_date(patient.id, today).assigned_doctor_id == doctor.id
    patient.refresh_from_db()
    assert patient.assigned_doctor_id == doctor.id
    assert AuditEvent.objects.filter(action='room_select', object_id=doctor.id).exists()


def test_completed_visits_are_not_claimed(today, room_factory, doctor_factory, patient_factory):
    room_factory('215')
    patient = patient_factory()
    assignment.change_patient_room(patient.id, '215')
    assignment.mark_visit_completed(patient.id)
    assert assignment.select_room(doctor_factory().id, '215').claimed == 0


def test_leave_room(clinic):
    assignment.leave_room(clinic['a'].id)
    with pytest.raises(RoomNotSelected):
        assignment.assign_patient_to_doctor_room(1, clinic['a'].id)


def test_mark_completed_without_visit_uses_acting_doctor(clinic, patient_factory):
    patient = patient_factory()
    visit = assignment.mark_visit_completed(patient.id, actor=clinic['a'])
    assert visit.visit_status == Visit.STATUS_COMPLETED
    assert visit.assigned_doctor_id == clinic['a'].id
    assert assignment.mark_visit_completed(patient.id, actor=clinic['a']) is None


def test_start_visit(clinic, patient_factory):
    patient = patient_factory()
    with pytest.raises(NotFound):
        assignment.start_visit(patient.id)
    assignment.assign_patient_to_doctor_room(patient.id, clinic['a'].id)
    assert assignment.start_visit(patient.id).visit_status == Visit.STATUS_IN_PROGRESS


def test_register_by_doctor_places_in_their_room(clinic):
    patient, visit = assignment.register_patient(name='Meera', sex='F', age=31, actor=clinic['b'])
    assert patient.assigned_room == '211'
    assert (visit.room_no, visit.assigned_doctor_id, visit.visit_type) == ('211', clinic['b'].id, Visit.TYPE_FIRST)
    assert AuditEvent.objects.filter(action='patient_register', object_id=patient.id).exists()


def test_register_by_staff_needs_a_room(clinic):
    clerk = User.objects.create_user(username='clerk', password='x', role=User.ROLE_WELFARE)
    with pytest.raises(InvalidArgument):
        assignment.register_patient(name='Meera', sex='F', age=31, actor=clerk)
    patient, visit = assignment.register_patient(name='Meera', sex='F', age=31, room='206', actor=clerk)
    assert visit.assigned_doctor_id == clinic['a'].id
    assert patient.assigned_doctor_name == 'Asha'
    assert Patient.objects.count() == 1


def test_register_is_rolled_back_when_doctor_has_no_room(today, doctor_factory):
    doctor = doctor_factory()
    with pytest.raises(RoomNotSelected):
        assignment.register_patient(name='Meera', sex='F', age=31, actor=doctor)
    assert not Patient.objects.exists()


def test_storage_failure_surfaces_as_internal(clinic, patient_factory, monkeypatch):
    patient = patient_factory()

    def boom(*args, **kwargs):
        raise DatabaseError('disk full')

    monkeypatch.setattr(visits, 'create_visit', boom)
    with pytest.raises(Internal) as exc:
        assignment.assign_patient_to_doctor_room(patient.id, clinic['a'].id)
    assert isinstance(exc.value.__cause__, DatabaseError)


def test_change_to_deactivated_current_room_is_a_no_op(today, room_factory, patient_factory):
    room_factory('206')
    patient = patient_factory(assigned_room='206')
    Room.objects.filter(room_number='206').update(is_active=False)

    change = assignment.change_patient_room(patient.id, '206')

    assert change.changed is False
    assert not Visit.objects.exists()
    assert not AuditEvent.objects.exists()


def _lock_after(monkeypatch, other_writer):
    """Run ``other_writer(patient_id)`` once, just before the next patient lock is taken."""
    real_lock = patients.lock_patient
    done = []

    def lock(patient_id):
        if not done:
            done.append(patient_id)
            other_writer(patient_id)
        return real_lock(patient_id)

    monkeypatch.setattr(patients, 'lock_patient', lock)


def test_claim_skips_patient_moved_away_before_the_lock(clinic, today, doctor_factory, patient_factory,
                                                        monkeypatch):
    patient = patient_factory()
    assignment.change_patient_room(patient.id, '215')
    dev = doctor_factory('Dev')
    _lock_after(monkeypatch, lambda pid: assignment.change_patient_room(pid, '211'))

    selection = assignment.select_room(dev.id, '215')

    assert selection.claimed == 0
    visit = visits.find_for_patient_on_date(patient.id, today)
    patient.refresh_from_db()
    assert visit.room_no == '211'
    assert visit.assigned_doctor_id == patient.assigned_doctor_id == clinic['b'].id


def test_claim_still_takes_patient_updated_in_place_before_the_lock(today, room_factory, doctor_factory,
                                                                   patient_factory, monkeypatch):
    room_factory('215')
    patient = patient_factory()
    assignment.change_patient_room(patient.id, '215')
    dev = doctor_factory('Dev')
    _lock_after(monkeypatch, lambda pid: visits.create_visit(pid, None, '215', today, Visit.TYPE_FOLLOW_UP))

    assert assignment.select_room(dev.id, '215').claimed == 1
    assert visits.find_for_patient_on_date(patient.id, today).assigned_doctor_id == dev.id


def test_assign_after_concurrent_assign_keeps_one_visit_of_the_day(clinic, today, patient_factory, monkeypatch):
    patient = patient_factory()
    _lock_after(monkeypatch, lambda pid: assignment.assign_patient_to_doctor_room(pid, clinic['b'].id))

    visit = assignment.assign_patient_to_doctor_room(patient.id, clinic['a'].id)

    assert Visit.objects.filter(patient=patient, visit_date=today).count() == 1
    assert (visit.room_no, visit.assigned_doctor_id, visit.visit_type) == ('206', clinic['a'].id, Visit.TYPE_FIRST)


def test_existing_patient_visit_after_concurrent_move_updates_in_place(clinic, today, patient_factory, monkeypatch):
    patient = patient_factory()
    _lock_after(monkeypatch, lambda pid: assignment.change_patient_room(pid, '215'))

    visit, _ = assignment.create_visit_for_existing_patient(patient.id, clinic['a'].id)

    assert Visit.objects.filter(patient=patient, visit_date=today).count() == 1
    patient.refresh_from_db()
    assert (visit.room_no, patient.assigned_room) == ('206', '206')
    assert visit.assigned_doctor_id == patient.assigned_doctor_id == clinic['a'].id
