"""
Patient records and their cached room/doctor binding.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from django.conf import settings
from django.db.models import Q

from opd.exceptions import NotFound
from opd.models import Patient, User, Visit
from opd.services import clock, visits

logger = logging.getLogger(__name__)


@dataclass
class PatientDay:
    patient: Patient
    visit: Optional[Visit]


def get_patient(patient_id: int) -> Patient:
    patient = Patient.objects.select_related('assigned_doctor').filter(id=patient_id).first()
    if patient is None:
        raise NotFound(f'Patient {patient_id} not found')
    return patient


def lock_patient(patient_id: int) -> Patient:
    """Fetch the patient row locked for update.

    Must run inside a transaction.  Everything that finds-or-creates the
    visit of the day takes this lock first, so two requests for the same
    patient cannot both create a "today" visit.
    """
    patient = Patient.objects.select_for_update().filter(id=patient_id).first()
    if patient is None:
        raise NotFound(f'Patient {patient_id} not found')
    return patient


def create_patient(*, name: str, sex: str = '', age: Optional[int] = None, cr_no: Optional[str] = None) -> Patient:
    patient = Patient.objects.create(name=name, sex=sex or '', age=age, cr_no=cr_no or None)
    logger.info('patient registered', extra={'patient_id': patient.id})
    return patient


def bind(patient: Patient, room: Optional[str], doctor: Optional[User]) -> Patient:
    """Write the cached binding; the doctor name is copied, not linked."""
    patient.assigned_room = room
    patient.assigned_doctor = doctor
    patient.assigned_doctor_name = doctor.display_name if doctor else ''
    patient.save(update_fields=['assigned_room', 'assigned_doctor', 'assigned_doctor_name', 'updated_at'])
    return patient


def list_patients(*, day: Optional[date] = None, room: Optional[str] = None, search: Optional[str] = None,
                  page: int = 1, page_size: int = 20) -> tuple[list[PatientDay], int]:
    """One page of patients with their visit of ``day`` (default today), newest first.

    With ``room`` only patients whose visit of the day is in that room
    are returned.  ``search`` matches name or CR number.
    """
    if settings.OPD_AUTO_COMPLETE_ON_READ:
        visits.auto_complete_stale()
    day = day or clock.today()
    qs = Patient.objects.select_related('assigned_doctor')
    if room:
        # narrow in SQL, then keep only those whose latest visit of the day is still in the room
        qs = qs.filter(visits__visit_date=day, visits__room_no=room).distinct()
        latest = visits.authoritative_visits_on(day, patient__in=qs.values('id'))
        in_room = [pid for pid, v in latest.items() if v.room_no == room]
        qs = Patient.objects.select_related('assigned_doctor').filter(id__in=in_room)
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(cr_no__icontains=search))
    total = qs.count()
    page = max(1, int(page or 1))
    page_size = min(100, max(1, int(page_size or 20)))
    start = (page - 1) * page_size
    rows = list(qs.order_by('-id')[start:start + page_size])
    day_visits = visits.authoritative_visits_on(day, patient__in=[p.id for p in rows])
    return [PatientDay(patient=p, visit=day_visits.get(p.id)) for p in rows], total


def format_patient(patient: Patient) -> dict:
    return {
        'id': patient.id,
        'name': patient.name,
        'sex': patient.sex,
        'age': patient.age,
        'crNo': patient.cr_no,
        'assignedRoom': patient.assigned_room,
        'assignedDoctorId': patient.assigned_doctor_id,
        'assignedDoctorName': patient.assigned_doctor_name or None,
        'createdAt': patient.created_at.isoformat() if patient.created_at else None,
    }
