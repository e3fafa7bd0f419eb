"""
URL mappings for the outpatient API.

Trailing slashes are deliberately omitted (``APPEND_SLASH = False``).
"""
from django.urls import path, include
from .views import doctors
from .views import health
from .views import patients
from .views import rooms
from .views import visits


urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz),
    # Rooms
    path('api/rooms', rooms.rooms, name='rooms'),
    path('api/rooms/stats', rooms.room_stats, name='room_stats'),
    path('api/rooms/<int:room_id>', rooms.room_detail, name='room_detail'),
    # Doctor's room for the day
    path('api/doctor/room', doctors.my_room, name='doctor_room'),
    path('api/doctor/room/select', doctors.select_room, name='doctor_room_select'),
    path('api/doctor/room/leave', doctors.leave_room, name='doctor_room_leave'),
    # Patients
    path('api/patients', patients.list_patients, name='patients'),
    path('api/patients/register', patients.register_patient, name='patient_register'),
    path('api/patients/assign', patients.assign_patient, name='patient_assign'),
    path('api/patients/visit', patients.existing_patient_visit, name='patient_visit'),
    path('api/patients/change-room', patients.change_room, name='patient_change_room'),
    # Visits
    path('api/visits/complete', visits.mark_completed, name='visit_complete'),
    path('api/visits/start', visits.start_visit, name='visit_start'),
    path('api/patients/<int:patient_id>/visits', visits.visit_history, name='visit_history'),
]
