"""
Which room each doctor is sitting in today.

The room lives on the doctor's user row together with the time it was
selected.  Nothing ever clears it at midnight; every reader compares
the selection time with :func:`opd.services.clock.today` instead.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from django.contrib.auth import get_user_model

from opd.exceptions import InvalidArgument, NotFound
from opd.models import Room
from opd.services import clock

logger = logging.getLogger(__name__)

User = get_user_model()


@dataclass(frozen=True)
class RoomStatus:
    has_room: bool
    room: Optional[str] = None
    assigned_at: Optional[datetime] = None


def get_doctor(doctor_id: int) -> User:
    doctor = User.objects.filter(id=doctor_id).first()
    if doctor is None:
        raise NotFound(f'Doctor {doctor_id} not found')
    return doctor


def has_room_today(doctor_id: int) -> RoomStatus:
    doctor = get_doctor(doctor_id)
    return room_status(doctor)


def room_status(doctor: User) -> RoomStatus:
    room, assigned_at = doctor.current_room, doctor.room_assignment_time
    if not room or assigned_at is None or clock.civil_date(assigned_at) != clock.today():
        return RoomStatus(has_room=False)
    return RoomStatus(has_room=True, room=room, assigned_at=assigned_at)


def set_room_for_today(doctor_id: int, room_number: str) -> User:
    """Overwrite the doctor's room and stamp it with the current time.

    Two doctors may hold the same room; :func:`find_doctor_in_room_today`
    decides who owns it.
    """
    doctor = get_doctor(doctor_id)
    if not doctor.is_doctor:
        raise InvalidArgument(f'User {doctor_id} is not a doctor')
    room_number = (room_number or '').strip()
    if not Room.objects.filter(room_number=room_number, is_active=True).exists():
        raise NotFound(f'Room "{room_number}" not found')
    previous = doctor.current_room if room_status(doctor).has_room else None
    doctor.current_room = room_number
    doctor.room_assignment_time = clock.now()
    doctor.save(update_fields=['current_room', 'room_assignment_time'])
    logger.info('room selected', extra={'doctor_id': doctor.id, 'room': room_number, 'previous_room': previous})
    return doctor


def clear_room(doctor_id: int) -> User:
    doctor = get_doctor(doctor_id)
    doctor.current_room = None
    doctor.room_assignment_time = None
    doctor.save(update_fields=['current_room', 'room_assignment_time'])
    logger.info('room cleared', extra={'doctor_id': doctor.id})
    return doctor


def _doctors_today():
    start, end = clock.day_bounds(clock.today())
    return User.objects.filter(
        current_room__isnull=False,
        room_assignment_time__gte=start,
        room_assignment_time__lt=end,
    )


def find_doctor_in_room_today(room_number: str) -> Optional[User]:
    """The doctor occupying ``room_number`` today, or ``None``.

    When several doctors picked the same room today the latest
    selection wins (ties broken by the higher id).
    """
    candidates = list(
        _doctors_today().filter(current_room=room_number).order_by('-room_assignment_time', '-id')[:2]
    )
    if not candidates:
        return None
    if len(candidates) > 1:
        logger.warning(
            'several doctors in one room, latest selection wins',
            extra={'room': room_number, 'doctor_id': candidates[0].id, 'other_doctor_id': candidates[1].id},
        )
    return candidates[0]


def occupied_rooms_today() -> Dict[str, User]:
    """Room number -> occupying doctor, same tie-break as above."""
    occupied: Dict[str, User] = {}
    for doctor in _doctors_today().order_by('room_assignment_time', 'id'):
        occupied[doctor.current_room] = doctor
    return occupied
