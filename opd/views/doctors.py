"""
A doctor's room for the day: select, inspect, leave.
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsDoctorRole
from ..serializers.room import SelectRoomSerializer
from ..services import assignment, doctors


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def select_room(request):
    data = SelectRoomSerializer(data=request.data)
    data.is_valid(raise_exception=True)
    selection = assignment.select_room(request.user.id, data.validated_data['room'], actor=request.user)
    return Response({
        'ok': True,
        'data': {
            'doctorId': selection.doctor.id,
            'room': selection.room,
            'assignedAt': selection.doctor.room_assignment_time.isoformat(),
            'claimedPatients': selection.claimed,
        },
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def my_room(request):
    status = doctors.has_room_today(request.user.id)
    return Response({
        'ok': True,
        'data': {
            'hasRoom': status.has_room,
            'room': status.room,
            'assignedAt': status.assigned_at.isoformat() if status.assigned_at else None,
        },
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def leave_room(request):
    assignment.leave_room(request.user.id, actor=request.user)
    return Response({'ok': True})
