"""
Room directory: create, rename, deactivate and delete consulting rooms.

Room numbers are unique among active rooms; the partial unique
constraint on :class:`opd.models.Room` backs the application check so
two concurrent creates cannot both win.  Removing a room is refused
while a doctor sits in it today or patients are placed in it today.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import Q

from opd.exceptions import Conflict, InUse, InvalidArgument, NotFound
from opd.models import Patient, Room, User, Visit
from opd.services import clock, doctors, visits

logger = logging.getLogger(__name__)

STATS_CACHE_KEY = 'rooms:stats'


@dataclass
class RoomReferences:
    room_number: str
    patients_today: list[str] = field(default_factory=list)
    doctors_today: list[str] = field(default_factory=list)
    historical_patients: int = 0
    visits: int = 0
    stale_doctors: int = 0

    @property
    def live(self) -> bool:
        return bool(self.patients_today or self.doctors_today)

    @property
    def historical(self) -> bool:
        return bool(self.historical_patients or self.visits or self.stale_doctors)

    def as_detail(self) -> dict:
        return {
            'roomNumber': self.room_number,
            'patientsToday': len(self.patients_today),
            'patientNames': self.patients_today[:10],
            'doctors': self.doctors_today,
            'historicalPatients': self.historical_patients,
            'visits': self.visits,
        }


@dataclass
class RoomEntry:
    room: Room
    doctor: Optional[User]
    patients_today: int = 0


def _clean_number(room_number: Optional[str]) -> str:
    room_number = (room_number or '').strip()
    if not room_number:
        raise InvalidArgument('Room number is required')
    return room_number


def invalidate_stats() -> None:
    cache.delete(STATS_CACHE_KEY)


def get_room(room_id: int) -> Room:
    room = Room.objects.filter(id=room_id).first()
    if room is None:
        raise NotFound(f'Room {room_id} not found')
    return room


def find_by_identifier(room_number: str) -> Optional[Room]:
    """Active room with that number, else the newest inactive one."""
    return (
        Room.objects.filter(room_number=(room_number or '').strip())
        .order_by('-is_active', '-id')
        .first()
    )


def _ensure_number_free(room_number: str, exclude_id: Optional[int] = None) -> None:
    qs = Room.objects.filter(room_number=room_number, is_active=True)
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    if qs.exists():
        raise Conflict(f'Room number "{room_number}" already exists')


def create(room_number: str, description: str = '', is_active: bool = True) -> Room:
    room_number = _clean_number(room_number)
    if is_active:
        _ensure_number_free(room_number)
    try:
        with transaction.atomic():
            room = Room.objects.create(
                room_number=room_number, description=(description or '').strip(), is_active=is_active
            )
    except IntegrityError as exc:
        raise Conflict(f'Room number "{room_number}" already exists') from exc
    invalidate_stats()
    logger.info('room created', extra={'room_id': room.id, 'room': room.room_number})
    return room


def references(room: Room) -> RoomReferences:
    number = room.room_number
    today = clock.today()
    start, end = clock.day_bounds(today)
    today_patients = Patient.objects.filter(
        Q(visits__visit_date=today, visits__room_no=number)
        | Q(assigned_room=number, created_at__gte=start, created_at__lt=end)
    ).distinct()
    today_ids = set(today_patients.values_list('id', flat=True))
    sitting = [d.display_name for d in User.objects.filter(
        current_room=number, room_assignment_time__gte=start, room_assignment_time__lt=end,
    ).order_by('-room_assignment_time')]
    return RoomReferences(
        room_number=number,
        patients_today=[p.name for p in today_patients.order_by('id')],
        doctors_today=sitting,
        historical_patients=Patient.objects.filter(assigned_room=number).exclude(id__in=today_ids).count(),
        visits=Visit.objects.filter(room_no=number).exclude(patient_id__in=today_ids).count(),
        stale_doctors=User.objects.filter(current_room=number).exclude(
            room_assignment_time__gte=start, room_assignment_time__lt=end,
        ).count(),
    )


def _clear_references(room_number: str) -> None:
    Patient.objects.filter(assigned_room=room_number).update(assigned_room=None)
    User.objects.filter(current_room=room_number).update(current_room=None, room_assignment_time=None)
    Visit.objects.filter(room_no=room_number).update(room_no=None)


def _lock_room(room_id: int) -> Room:
    room = Room.objects.select_for_update().filter(id=room_id).first()
    if room is None:
        raise NotFound(f'Room {room_id} not found')
    return room


def _shadowed(room: Room) -> bool:
    """An inactive room whose number now belongs to another active room."""
    return not room.is_active and Room.objects.filter(
        room_number=room.room_number, is_active=True,
    ).exclude(id=room.id).exists()


def delete(room_id: int, force: bool = False) -> RoomReferences:
    """Permanently remove a room.

    Live references (patients placed today, a doctor in the room today)
    always block.  Older references block unless ``force`` is set, in
    which case they are cleared first.
    """
    with transaction.atomic():
        room = _lock_room(room_id)
        if _shadowed(room):
            # the references by number belong to the active room
            refs = RoomReferences(room_number=room.room_number)
        else:
            refs = references(room)
        if refs.live:
            raise InUse(
                f'Cannot delete room "{room.room_number}": it is in use today',
                detail=refs.as_detail(),
            )
        if refs.historical:
            if not force:
                raise InUse(
                    f'Cannot delete room "{room.room_number}": patients were assigned to it before',
                    detail=refs.as_detail(),
                )
            _clear_references(room.room_number)
        room.delete()
    invalidate_stats()
    logger.info('room deleted', extra={'room_id': room_id, 'room': refs.room_number, 'force': force})
    return refs


def update(room_id: int, *, room_number: Optional[str] = None, description: Optional[str] = None,
           is_active: Optional[bool] = None) -> Room:
    """Renumber, describe, activate or deactivate a room.

    Renumbering and deactivating are refused while the room is in use
    today; the new number must be free among active rooms.
    """
    if room_number is not None:
        room_number = _clean_number(room_number)
    try:
        with transaction.atomic():
            room = _lock_room(room_id)
            renumbered = room_number is not None and room_number != room.room_number
            if room.is_active and (renumbered or is_active is False):
                refs = references(room)
                if refs.live:
                    raise InUse(
                        f'Room "{room.room_number}" is in use today',
                        detail=refs.as_detail(),
                    )
            if renumbered:
                room.room_number = room_number
            if description is not None:
                room.description = description.strip()
            if is_active is not None:
                room.is_active = is_active
            if room.is_active:
                _ensure_number_free(room.room_number, exclude_id=room.id)
            room.save()
    except IntegrityError as exc:
        raise Conflict(f'Room number "{room_number}" already exists') from exc
    invalidate_stats()
    logger.info('room updated', extra={'room_id': room.id, 'room': room.room_number, 'active': room.is_active})
    return room


def deactivate(room_id: int) -> Room:
    """Soft delete; blocked by the same live references as :func:`delete`."""
    return update(room_id, is_active=False)


def patients_today_by_room() -> dict[str, int]:
    """room number -> patients whose visit of the day is in that room."""
    counts: dict[str, int] = {}
    for visit in visits.authoritative_visits_on(clock.today()).values():
        if visit.room_no:
            counts[visit.room_no] = counts.get(visit.room_no, 0) + 1
    return counts


def entry_for(room: Room) -> RoomEntry:
    """A single room with today's occupant and patient count."""
    if not room.is_active:
        return RoomEntry(room=room, doctor=None)
    return RoomEntry(
        room=room,
        doctor=doctors.find_doctor_in_room_today(room.room_number),
        patients_today=patients_today_by_room().get(room.room_number, 0),
    )


def list_rooms(*, is_active: Optional[bool] = None, available: Optional[bool] = None,
               search: Optional[str] = None, page: int = 1, page_size: int = 20) -> tuple[list[RoomEntry], int]:
    """Rooms ordered by number with today's occupant and patient count.

    ``available=True`` keeps active rooms no doctor has selected today,
    ``available=False`` the occupied ones.
    """
    qs = Room.objects.all()
    if is_active is not None:
        qs = qs.filter(is_active=is_active)
    occupied = doctors.occupied_rooms_today()
    if available is True:
        qs = qs.filter(is_active=True).exclude(room_number__in=list(occupied))
    elif available is False:
        qs = qs.filter(is_active=True, room_number__in=list(occupied))
    if search:
        qs = qs.filter(Q(room_number__icontains=search) | Q(description__icontains=search))
    total = qs.count()
    page = max(1, int(page or 1))
    page_size = min(100, max(1, int(page_size or 20)))
    start = (page - 1) * page_size
    counts = patients_today_by_room()
    entries = []
    for room in qs.order_by('room_number', 'id')[start:start + page_size]:
        if room.is_active:
            entries.append(RoomEntry(room, occupied.get(room.room_number), counts.get(room.room_number, 0)))
        else:
            entries.append(RoomEntry(room, None))
    return entries, total


def stats() -> dict:
    cached = cache.get(STATS_CACHE_KEY)
    if cached is not None:
        return cached
    total = Room.objects.filter(is_active=True).count()
    occupied = len(doctors.occupied_rooms_today())
    with_patients = len(patients_today_by_room())
    data = {
        'totalRooms': total,
        'occupiedRooms': occupied,
        'roomsWithPatients': with_patients,
        'availableRooms': max(0, total - occupied),
    }
    cache.set(STATS_CACHE_KEY, data, settings.OPD_STATS_CACHE_SECONDS)
    return data


def format_room(entry: RoomEntry) -> dict:
    room, doctor = entry.room, entry.doctor
    return {
        'id': room.id,
        'roomNumber': room.room_number,
        'description': room.description,
        'isActive': room.is_active,
        'doctorId': doctor.id if doctor else None,
        'doctorName': doctor.display_name if doctor else None,
        'patientsToday': entry.patients_today,
        'createdAt': room.created_at.isoformat() if room.created_at else None,
        'updatedAt': room.updated_at.isoformat() if room.updated_at else None,
    }
