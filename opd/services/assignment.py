"""
Placing patients with today's room/doctor pair.

Every operation here is one short read-modify-write sequence run in a
single transaction.  The patient row is locked before the visit of the
day is looked up, which serialises concurrent placements of the same
patient; any storage failure rolls the whole block back and surfaces
as :class:`opd.exceptions.Internal`.

Precedence rule: a patient placed in a room belongs to whichever doctor
sits in that room today, not to whoever pressed the button.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional, Tuple

from django.db import DatabaseError, transaction

from opd.exceptions import Internal, InvalidArgument, NotFound, RoomNotSelected
from opd.models import Patient, Room, User, Visit
from opd.services import clock, doctors, patients, rooms, visits
from opd.services.audit import log_action
from opd.services.broadcast import rooms_changed_on_commit

logger = logging.getLogger(__name__)


@dataclass
class RoomChange:
    changed: bool
    patient: Patient
    visit: Optional[Visit]
    old_room: Optional[str]
    new_room: str
    old_doctor_id: Optional[int] = None
    old_doctor_name: Optional[str] = None
    new_doctor_id: Optional[int] = None
    new_doctor_name: Optional[str] = None


@dataclass
class RoomSelection:
    doctor: User
    room: str
    claimed: int


def positive_id(value, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidArgument(f'{name} must be a positive integer')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f'{name} must be a positive integer')
    if number <= 0 or str(number) != str(value).strip():
        raise InvalidArgument(f'{name} must be a positive integer')
    return number


def _actor_name(actor: Optional[User]) -> str:
    return actor.display_name if actor is not None else 'Unknown'


@contextmanager
def _atomic(operation: str) -> Iterator[None]:
    try:
        with transaction.atomic():
            yield
    except DatabaseError as exc:
        logger.exception('%s failed', operation)
        raise Internal(f'{operation} failed') from exc


def _require_room(doctor_id: int) -> doctors.RoomStatus:
    status = doctors.has_room_today(doctor_id)
    if not status.has_room:
        raise RoomNotSelected()
    return status


def _upsert_today_visit(patient: Patient, room: Optional[str], doctor_id: Optional[int],
                        note: str = '') -> Visit:
    """Update the visit of the day in place or create it ``scheduled``.

    The caller holds the patient lock.
    """
    today = clock.today()
    visit = visits.find_for_patient_on_date(patient.id, today)
    if visit is None:
        return visits.create_visit(patient.id, doctor_id, room, today, visits.next_visit_type(patient.id), notes=note)
    visit.room_no = room
    visit.assigned_doctor_id = doctor_id
    update_fields = ['room_no', 'assigned_doctor', 'updated_at']
    if note:
        visit.notes = f'{visit.notes}\n{note}' if visit.notes else note
        update_fields.append('notes')
    visit.save(update_fields=update_fields)
    return visit


def _placement_changed(patient: Patient, room: Optional[str]) -> None:
    rooms.invalidate_stats()
    rooms_changed_on_commit('patient_placed', {'patientId': patient.id, 'room': room})


def assign_patient_to_doctor_room(patient_id, doctor_id, explicit_room: Optional[str] = None) -> Visit:
    """Put the patient's visit of the day with the doctor and a room.

    The room is ``explicit_room`` when given, else the doctor's room.
    The patient's cached binding is left to the caller.
    """
    patient_id = positive_id(patient_id, 'patientId')
    doctor_id = positive_id(doctor_id, 'doctorId')
    status = _require_room(doctor_id)
    room = (explicit_room or '').strip() or status.room
    with _atomic('assign patient'):
        patient = patients.lock_patient(patient_id)
        visit = _upsert_today_visit(patient, room, doctor_id)
    _placement_changed(patient, room)
    logger.info('patient assigned', extra={'patient_id': patient_id, 'doctor_id': doctor_id, 'room': room})
    return visit


def create_visit_for_existing_patient(patient_id, requesting_doctor_id,
                                      explicit_room: Optional[str] = None) -> Tuple[Visit, str]:
    """Start today's visit in the requesting doctor's room.

    The patient's previously stored room is never reused, and a supplied
    ``explicit_room`` is only logged.  The visit goes to the doctor who
    sits in that room today, which may not be the requester.
    """
    patient_id = positive_id(patient_id, 'patientId')
    requesting_doctor_id = positive_id(requesting_doctor_id, 'doctorId')
    status = _require_room(requesting_doctor_id)
    room = status.room
    if explicit_room and explicit_room.strip() and explicit_room.strip() != room:
        logger.warning(
            'explicit room ignored, using the doctor\'s room',
            extra={'patient_id': patient_id, 'requested_room': explicit_room.strip(), 'room': room},
        )
    with _atomic('create visit'):
        patient = patients.lock_patient(patient_id)
        doctor = doctors.find_doctor_in_room_today(room) or doctors.get_doctor(requesting_doctor_id)
        today = clock.today()
        visit = visits.find_for_patient_on_date(patient_id, today)
        if visit is None:
            visit = visits.create_visit(patient_id, doctor.id, room, today, visits.next_visit_type(patient_id))
        else:
            visit.room_no = room
            visit.assigned_doctor = doctor
            visit.save(update_fields=['room_no', 'assigned_doctor', 'updated_at'])
        patients.bind(patient, room, doctor)
    _placement_changed(patient, room)
    logger.info('visit created for patient', extra={
        'patient_id': patient_id, 'doctor_id': doctor.id, 'requested_by': requesting_doctor_id,
        'room': room, 'visit_type': visit.visit_type,
    })
    return visit, visit.visit_type


def change_patient_room(patient_id, new_room: str, actor: Optional[User] = None) -> RoomChange:
    """Move a patient to ``new_room`` and hand them to its doctor today.

    Same room as the current one is a no-op.  The room may be unstaffed,
    in which case the patient is left without a doctor.
    """
    patient_id = positive_id(patient_id, 'patientId')
    new_room = (new_room or '').strip()
    if not new_room:
        raise InvalidArgument('Room number is required')
    with _atomic('change patient room'):
        patient = patients.lock_patient(patient_id)
        old_room = patient.assigned_room
        old_doctor_id, old_doctor_name = patient.assigned_doctor_id, patient.assigned_doctor_name or None
        if old_room == new_room:
            # compared before the room lookup: the cached room may have been deactivated since
            return RoomChange(changed=False, patient=patient, visit=None, old_room=old_room, new_room=new_room,
                              old_doctor_id=old_doctor_id, old_doctor_name=old_doctor_name,
                              new_doctor_id=old_doctor_id, new_doctor_name=old_doctor_name)
        if not Room.objects.filter(room_number=new_room, is_active=True).exists():
            raise NotFound(f'Room "{new_room}" not found')
        new_doctor = doctors.find_doctor_in_room_today(new_room)
        patients.bind(patient, new_room, new_doctor)
        stamp = clock.now().astimezone(clock.zone()).isoformat(timespec='seconds')
        note = f'[Room changed from "{old_room or "None"}" to "{new_room}" by {_actor_name(actor)} at {stamp}]'
        visit = _upsert_today_visit(patient, new_room, new_doctor.id if new_doctor else None, note=note)
        log_action(user=actor, action='room_change', object_type='patient', object_id=patient.id, detail={
            'oldRoom': old_room, 'newRoom': new_room,
            'oldDoctorId': old_doctor_id, 'newDoctorId': new_doctor.id if new_doctor else None,
            'visitId': visit.id,
        })
    _placement_changed(patient, new_room)
    logger.info('patient room changed', extra={
        'patient_id': patient_id, 'old_room': old_room, 'new_room': new_room,
        'doctor_id': new_doctor.id if new_doctor else None,
    })
    return RoomChange(
        changed=True, patient=patient, visit=visit, old_room=old_room, new_room=new_room,
        old_doctor_id=old_doctor_id, old_doctor_name=old_doctor_name,
        new_doctor_id=new_doctor.id if new_doctor else None,
        new_doctor_name=new_doctor.display_name if new_doctor else None,
    )


def mark_visit_completed(patient_id, visit_date: Optional[date] = None,
                         actor: Optional[User] = None) -> Optional[Visit]:
    """Mark the patient seen; ``None`` means the visit was already completed.

    A missing visit is created already completed, using the patient's
    cached room/doctor (or the acting doctor) as its room and doctor.
    """
    patient_id = positive_id(patient_id, 'patientId')
    visit_date = visit_date or clock.today()
    with _atomic('mark visit completed'):
        patient = patients.lock_patient(patient_id)
        fallback_doctor_id = patient.assigned_doctor_id
        if fallback_doctor_id is None and actor is not None and actor.is_doctor:
            fallback_doctor_id = actor.id
        visit = visits.mark_completed_today(patient_id, visit_date, fallback_doctor_id, patient.assigned_room)
    if visit is not None:
        _placement_changed(patient, visit.room_no)
    return visit


def start_visit(patient_id) -> Visit:
    patient_id = positive_id(patient_id, 'patientId')
    with _atomic('start visit'):
        patients.lock_patient(patient_id)
        visit = visits.find_for_patient_on_date(patient_id, clock.today())
        if visit is None:
            raise NotFound(f'No visit today for patient {patient_id}')
        visits.transition(visit, Visit.STATUS_IN_PROGRESS)
    return visit


def claim_room_patients(doctor: User, room: str) -> int:
    """Hand today's patients in ``room`` to ``doctor``; returns how many moved.

    The first read only nominates candidates.  Each patient is locked and
    its visit of the day read again, so a patient moved elsewhere in the
    meantime is left alone.
    """
    today = clock.today()
    claimed = 0
    for patient_id in visits.authoritative_visits_on(today, room_no=room):
        patient = patients.lock_patient(patient_id)
        visit = visits.find_for_patient_on_date(patient_id, today)
        if visit is None or visit.room_no != room or visit.is_completed:
            continue
        if visit.assigned_doctor_id == doctor.id:
            continue
        visit.assigned_doctor = doctor
        visit.save(update_fields=['assigned_doctor', 'updated_at'])
        if patient.assigned_room == room:
            patients.bind(patient, room, doctor)
        claimed += 1
    return claimed


def select_room(doctor_id, room_number: str, actor: Optional[User] = None) -> RoomSelection:
    """The doctor sits in ``room_number`` today and takes over its patients."""
    doctor_id = positive_id(doctor_id, 'doctorId')
    room_number = (room_number or '').strip()
    if not room_number:
        raise InvalidArgument('Room number is required')
    with _atomic('select room'):
        doctor = doctors.set_room_for_today(doctor_id, room_number)
        claimed = claim_room_patients(doctor, room_number)
        log_action(user=actor or doctor, action='room_select', object_type='user', object_id=doctor.id,
                   detail={'room': room_number, 'claimedPatients': claimed})
    rooms.invalidate_stats()
    rooms_changed_on_commit('room_selected', {'doctorId': doctor.id, 'room': room_number})
    return RoomSelection(doctor=doctor, room=room_number, claimed=claimed)


def leave_room(doctor_id, actor: Optional[User] = None) -> User:
    doctor_id = positive_id(doctor_id, 'doctorId')
    with _atomic('leave room'):
        previous = doctors.has_room_today(doctor_id).room
        doctor = doctors.clear_room(doctor_id)
        log_action(user=actor or doctor, action='room_leave', object_type='user', object_id=doctor.id,
                   detail={'room': previous})
    rooms.invalidate_stats()
    rooms_changed_on_commit('room_left', {'doctorId': doctor.id, 'room': previous})
    return doctor


def register_patient(*, name: str, sex: str = '', age: Optional[int] = None, cr_no: Optional[str] = None,
                     room: Optional[str] = None, actor: Optional[User] = None) -> Tuple[Patient, Visit]:
    """Intake: create the patient record and place it in a room.

    A doctor places the patient in their own room for today; any other
    staff member must name the room.  Nothing is kept if placement fails.
    """
    with _atomic('register patient'):
        patient = patients.create_patient(name=name, sex=sex, age=age, cr_no=cr_no)
        if actor is not None and actor.is_doctor:
            visit, _ = create_visit_for_existing_patient(patient.id, actor.id, explicit_room=room)
        else:
            if not (room or '').strip():
                raise InvalidArgument('Room is required')
            visit = change_patient_room(patient.id, room, actor=actor).visit
        log_action(user=actor, action='patient_register', object_type='patient', object_id=patient.id,
                   detail={'room': visit.room_no, 'doctorId': visit.assigned_doctor_id})
    patient.refresh_from_db()
    return patient, visit


def format_room_change(change: RoomChange) -> dict:
    return {
        'roomChanged': change.changed,
        'oldRoom': change.old_room,
        'newRoom': change.new_room,
        'oldDoctorId': change.old_doctor_id,
        'oldDoctorName': change.old_doctor_name,
        'newDoctorId': change.new_doctor_id,
        'newDoctorName': change.new_doctor_name,
        'patient': patients.format_patient(change.patient),
        'visit': visits.format_visit(change.visit) if change.visit else None,
    }
