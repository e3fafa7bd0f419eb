"""
Visit lifecycle: scheduled -> in_progress -> completed.

``in_progress`` is optional and ``completed`` is terminal.  Visits from
earlier days that were never closed are swept to ``completed`` by
:func:`auto_complete_stale`; that sweep does not distinguish a visit
that was attended from one that was simply left open.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from django.db.models import QuerySet

from opd.exceptions import InvalidArgument
from opd.models import Visit
from opd.services import clock

logger = logging.getLogger(__name__)


def _can_transition(current: str, new: str) -> bool:
    """Return True if a visit may move from ``current`` to ``new``."""
    transitions = {
        Visit.STATUS_SCHEDULED: [Visit.STATUS_IN_PROGRESS, Visit.STATUS_COMPLETED],
        Visit.STATUS_IN_PROGRESS: [Visit.STATUS_COMPLETED],
        Visit.STATUS_COMPLETED: [],
    }
    return new in transitions.get(current, [])


def create_visit(patient_id: int, doctor_id: Optional[int], room_no: Optional[str], visit_date: date,
                 visit_type: str, notes: str = '', status: str = Visit.STATUS_SCHEDULED) -> Visit:
    return Visit.objects.create(
        patient_id=patient_id,
        assigned_doctor_id=doctor_id,
        room_no=room_no,
        visit_date=visit_date,
        visit_type=visit_type,
        visit_status=status,
        notes=notes or '',
    )


def get_visit_count(patient_id: int) -> int:
    return Visit.objects.filter(patient_id=patient_id).count()


def next_visit_type(patient_id: int) -> str:
    """Classify a visit about to be created; never re-evaluated afterwards."""
    return Visit.TYPE_FIRST if get_visit_count(patient_id) == 0 else Visit.TYPE_FOLLOW_UP


def find_for_patient_on_date(patient_id: int, visit_date: date) -> Optional[Visit]:
    """The visit of the day: the most recently created row for that date."""
    return (
        Visit.objects.filter(patient_id=patient_id, visit_date=visit_date)
        .order_by('-created_at', '-id')
        .first()
    )


def authoritative_visits_on(visit_date: date, **filters) -> dict[int, Visit]:
    """patient id -> visit of the day for every patient with a visit on ``visit_date``."""
    latest: dict[int, Visit] = {}
    rows = Visit.objects.filter(visit_date=visit_date, **filters).order_by('created_at', 'id')
    for visit in rows:
        latest[visit.patient_id] = visit
    return latest


def transition(visit: Visit, new_status: str) -> Visit:
    if not _can_transition(visit.visit_status, new_status):
        raise InvalidArgument(f'Cannot move visit from {visit.visit_status} to {new_status}')
    visit.visit_status = new_status
    visit.save(update_fields=['visit_status', 'updated_at'])
    return visit


def mark_completed_today(patient_id: int, visit_date: date, fallback_doctor_id: Optional[int],
                         fallback_room: Optional[str]) -> Optional[Visit]:
    """Complete the day's visit, creating it already completed if missing.

    Returns ``None`` when the visit of the day is already completed.
    Callers serialise on the patient row before calling this.
    """
    visit = find_for_patient_on_date(patient_id, visit_date)
    if visit is None:
        visit = create_visit(
            patient_id, fallback_doctor_id, fallback_room, visit_date,
            next_visit_type(patient_id), status=Visit.STATUS_COMPLETED,
        )
        logger.info('visit created as completed', extra={'patient_id': patient_id, 'visit_id': visit.id})
        return visit
    if visit.is_completed:
        return None
    transition(visit, Visit.STATUS_COMPLETED)
    logger.info('visit completed', extra={'patient_id': patient_id, 'visit_id': visit.id})
    return visit


def auto_complete_stale() -> int:
    """Close every unfinished visit dated before today; returns the number closed.

    A single conditional UPDATE, so concurrent callers cannot close the
    same row twice and a second run reports zero.
    """
    count = (
        Visit.objects.filter(visit_date__lt=clock.today())
        .exclude(visit_status=Visit.STATUS_COMPLETED)
        .update(visit_status=Visit.STATUS_COMPLETED, updated_at=clock.now())
    )
    if count:
        logger.info('stale visits auto-completed', extra={'count': count})
    return count


def history(patient_id: int) -> QuerySet:
    return (
        Visit.objects.filter(patient_id=patient_id)
        .select_related('assigned_doctor')
        .order_by('-visit_date', '-created_at', '-id')
    )


def format_visit(visit: Visit) -> dict:
    doctor = visit.assigned_doctor if visit.assigned_doctor_id else None
    return {
        'id': visit.id,
        'patientId': visit.patient_id,
        'visitDate': visit.visit_date.isoformat(),
        'roomNo': visit.room_no,
        'assignedDoctorId': visit.assigned_doctor_id,
        'assignedDoctorName': doctor.display_name if doctor else None,
        'visitType': visit.visit_type,
        'visitStatus': visit.visit_status,
        'notes': visit.notes,
        'createdAt': visit.created_at.isoformat() if visit.created_at else None,
        'updatedAt': visit.updated_at.isoformat() if visit.updated_at else None,
    }
