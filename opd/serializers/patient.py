import bleach
from rest_framework import serializers


class PatientRegisterSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    sex = serializers.ChoiceField(choices=['M', 'F', 'O'])
    age = serializers.IntegerField(min_value=0, max_value=130)
    crNo = serializers.CharField(required=False, allow_blank=True, max_length=32)
    room = serializers.CharField(required=False, allow_blank=True, max_length=20)

    def validate_name(self, v):
        v = bleach.clean((v or '').strip(), tags=set(), strip=True)
        if len(v) < 2:
            raise serializers.ValidationError('Name must be at least 2 characters')
        return v

    def validate_crNo(self, v):
        return bleach.clean((v or '').strip(), tags=set(), strip=True)

    def validate_room(self, v):
        return bleach.clean((v or '').strip(), tags=set(), strip=True)


class AssignPatientSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    doctorId = serializers.IntegerField(required=False, min_value=1)
    room = serializers.CharField(required=False, allow_blank=True, max_length=20)


class ExistingPatientVisitSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    room = serializers.CharField(required=False, allow_blank=True, max_length=20)


class ChangeRoomSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    room = serializers.CharField(max_length=20)

    def validate_room(self, v):
        v = bleach.clean((v or '').strip(), tags=set(), strip=True)
        if not v:
            raise serializers.ValidationError('Room number is required')
        return v


class PatientListQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
    room = serializers.CharField(required=False, allow_blank=True, max_length=20)
    search = serializers.CharField(required=False, allow_blank=True, max_length=50)
    page = serializers.IntegerField(required=False, min_value=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=100)


class VisitActionSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    date = serializers.DateField(required=False)
