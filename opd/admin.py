"""
Django admin registrations for the outpatient models.

Lets superusers inspect rooms, doctors' room selections, patients and
their visits during development and support.
"""

from django.contrib import admin

from .models import AuditEvent, Patient, Room, User, Visit


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'current_room', 'room_assignment_time', 'is_staff')
    list_filter = ('role',)
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ('room_number', 'description', 'is_active', 'updated_at')
    list_filter = ('is_active',)
    search_fields = ('room_number', 'description')


class VisitInline(admin.TabularInline):
    model = Visit
    extra = 0
    fields = ('visit_date', 'room_no', 'assigned_doctor', 'visit_type', 'visit_status')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('name', 'cr_no', 'sex', 'age', 'assigned_room', 'assigned_doctor_name', 'created_at')
    search_fields = ('name', 'cr_no')
    inlines = [VisitInline]


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ('patient', 'visit_date', 'room_no', 'assigned_doctor', 'visit_type', 'visit_status')
    list_filter = ('visit_status', 'visit_type', 'visit_date')
    search_fields = ('patient__name', 'patient__cr_no', 'room_no')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'object_type', 'object_id', 'user', 'created_at')
    list_filter = ('action', 'object_type')
