from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsDoctorRole
from ..serializers.patient import VisitActionSerializer
from ..services import assignment, patients, visits


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def mark_completed(request):
    data = VisitActionSerializer(data=request.data)
    data.is_valid(raise_exception=True)
    visit = assignment.mark_visit_completed(
        data.validated_data['patientId'], data.validated_data.get('date'), actor=request.user,
    )
    if visit is None:
        return Response({'ok': True, 'alreadyCompleted': True, 'data': None})
    return Response({'ok': True, 'alreadyCompleted': False, 'data': visits.format_visit(visit)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def start_visit(request):
    data = VisitActionSerializer(data=request.data)
    data.is_valid(raise_exception=True)
    visit = assignment.start_visit(data.validated_data['patientId'])
    return Response({'ok': True, 'data': visits.format_visit(visit)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def visit_history(request, patient_id: int):
    patients.get_patient(patient_id)
    return Response({'ok': True, 'data': [visits.format_visit(v) for v in visits.history(patient_id)]})
