"""
Patient placement endpoints.

Registration places the new patient in a room straight away; existing
patients are placed in the requesting doctor's room for today or moved
between rooms.  A doctor who has not picked a room today gets a
``room_not_selected`` error, never a generic failure.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsDoctorRole
from ..serializers.patient import (
    AssignPatientSerializer,
    ChangeRoomSerializer,
    ExistingPatientVisitSerializer,
    PatientListQuerySerializer,
    PatientRegisterSerializer,
)
from ..services import assignment, patients as patient_service
from ..services.visits import format_visit


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_patients(request):
    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    page = q.validated_data.get('page') or 1
    page_size = q.validated_data.get('pageSize') or 20
    rows, total = patient_service.list_patients(
        day=q.validated_data.get('date'),
        room=(q.validated_data.get('room') or '').strip() or None,
        search=(q.validated_data.get('search') or '').strip() or None,
        page=page,
        page_size=page_size,
    )
    data = []
    for row in rows:
        item = patient_service.format_patient(row.patient)
        item['visit'] = format_visit(row.visit) if row.visit else None
        data.append(item)
    return Response({
        'ok': True,
        'data': data,
        'pagination': {'total': total, 'page': page, 'pageSize': page_size},
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def register_patient(request):
    data = PatientRegisterSerializer(data=request.data)
    data.is_valid(raise_exception=True)
    patient, visit = assignment.register_patient(
        name=data.validated_data['name'],
        sex=data.validated_data['sex'],
        age=data.validated_data['age'],
        cr_no=data.validated_data.get('crNo') or None,
        room=data.validated_data.get('room') or None,
        actor=request.user,
    )
    return Response({
        'ok': True,
        'data': {'patient': patient_service.format_patient(patient), 'visit': format_visit(visit)},
    }, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def assign_patient(request):
    """Place a patient with a doctor (the caller unless ``doctorId`` is given)."""
    data = AssignPatientSerializer(data=request.data)
    data.is_valid(raise_exception=True)
    visit = assignment.assign_patient_to_doctor_room(
        data.validated_data['patientId'],
        data.validated_data.get('doctorId') or request.user.id,
        explicit_room=data.validated_data.get('room') or None,
    )
    return Response({'ok': True, 'data': format_visit(visit)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def existing_patient_visit(request):
    data = ExistingPatientVisitSerializer(data=request.data)
    data.is_valid(raise_exception=True)
    visit, visit_type = assignment.create_visit_for_existing_patient(
        data.validated_data['patientId'],
        request.user.id,
        explicit_room=data.validated_data.get('room') or None,
    )
    return Response({'ok': True, 'data': {'visit': format_visit(visit), 'visitType': visit_type}}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_room(request):
    data = ChangeRoomSerializer(data=request.data)
    data.is_valid(raise_exception=True)
    change = assignment.change_patient_room(
        data.validated_data['patientId'], data.validated_data['room'], actor=request.user,
    )
    if not change.changed:
        message = 'Patient is already in this room'
    else:
        message = f'Patient room changed from "{change.old_room or "None"}" to "{change.new_room}"'
        if change.new_doctor_name:
            message += f'. Now assigned to Dr. {change.new_doctor_name}'
    return Response({'ok': True, 'message': message, 'data': assignment.format_room_change(change)})
