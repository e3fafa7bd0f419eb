"""
Database models for the outpatient department.

The models cover the pieces of the daily room assignment workflow:
staff users (doctors carry their room for the day), consulting rooms,
registered patients with their cached room/doctor binding, and one
visit row per patient per operating day.  Day scoped fields are never
cleared by a job; whether they count as "today" is decided at read
time through :mod:`opd.services.clock`.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import Q


class User(AbstractUser):
    """Staff account with a role and the room selected for the day.

    ``current_room`` and ``room_assignment_time`` are only meaningful
    together: a doctor has a room today iff the assignment time falls
    on today's civil date.  A value left over from a previous day stays
    in place until the doctor selects a room again.
    """
    ROLE_ADMIN = 'admin'
    ROLE_FACULTY = 'faculty'
    ROLE_RESIDENT = 'resident'
    ROLE_WELFARE = 'welfare_officer'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_FACULTY, 'Faculty'),
        (ROLE_RESIDENT, 'Resident'),
        (ROLE_WELFARE, 'Welfare Officer'),
    ]
    DOCTOR_ROLES = frozenset({ROLE_FACULTY, ROLE_RESIDENT})

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_RESIDENT)
    current_room = models.CharField(max_length=20, null=True, blank=True)
    room_assignment_time = models.DateTimeField(null=True, blank=True)

    class Meta(AbstractUser.Meta):
        indexes = [
            models.Index(fields=['current_room', 'room_assignment_time'], name='opd_user_current_b6f1c2_idx'),
        ]

    @property
    def is_doctor(self) -> bool:
        return self.role in self.DOCTOR_ROLES

    @property
    def display_name(self) -> str:
        return self.get_full_name() or self.username

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Room(models.Model):
    """A consulting room identified by a human assigned number (e.g. '206')."""
    room_number = models.CharField(max_length=20)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['room_number']
        constraints = [
            models.UniqueConstraint(
                fields=['room_number'],
                condition=Q(is_active=True),
                name='uniq_active_room_number',
            ),
        ]

    def __str__(self) -> str:
        return self.room_number if self.is_active else f"{self.room_number} (inactive)"


class Patient(models.Model):
    """A registered outpatient.

    ``assigned_room``, ``assigned_doctor`` and ``assigned_doctor_name``
    are a one way cache written when the patient is placed or moved.
    They are not recomputed if the doctor later changes rooms.
    """
    SEX_CHOICES = [
        ('M', 'Male'),
        ('F', 'Female'),
        ('O', 'Other'),
    ]
    name = models.CharField(max_length=255)
    sex = models.CharField(max_length=1, choices=SEX_CHOICES, blank=True)
    age = models.PositiveIntegerField(null=True, blank=True)
    cr_no = models.CharField(max_length=32, unique=True, null=True, blank=True,
                             help_text="Central registration (record) number")
    assigned_room = models.CharField(max_length=20, null=True, blank=True, db_index=True)
    assigned_doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='assigned_patients'
    )
    assigned_doctor_name = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} (#{self.id})"


class Visit(models.Model):
    """One day's encounter for a patient.

    Several rows may exist for the same (patient, visit_date); read
    paths treat the most recently created one as the visit of the day.
    """
    TYPE_FIRST = 'first_visit'
    TYPE_FOLLOW_UP = 'follow_up'
    TYPE_CHOICES = [
        (TYPE_FIRST, 'First visit'),
        (TYPE_FOLLOW_UP, 'Follow up'),
    ]

    STATUS_SCHEDULED = 'scheduled'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='visits')
    visit_date = models.DateField()
    room_no = models.CharField(max_length=20, null=True, blank=True)
    assigned_doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='visits'
    )
    visit_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_FIRST)
    visit_status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SCHEDULED)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['patient', 'visit_date', 'created_at'], name='opd_visit_patient_4e9a10_idx'),
            models.Index(fields=['visit_status', 'visit_date'], name='opd_visit_visit_s_8c2d31_idx'),
            models.Index(fields=['visit_date', 'room_no'], name='opd_visit_visit_d_1f7b52_idx'),
        ]

    @property
    def is_completed(self) -> bool:
        return self.visit_status == self.STATUS_COMPLETED

    def __str__(self) -> str:
        return f"visit p={self.patient_id} {self.visit_date:%F} {self.visit_status}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='opd_auditev_action_3b5e7a_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='opd_auditev_object__9d4c6e_idx'),
        ]

    def __str__(self):
        return f"{self.action}:{self.object_type}#{self.object_id}"
