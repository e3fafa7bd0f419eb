import bleach
from rest_framework import serializers


def _clean(value):
    return bleach.clean((value or '').strip(), tags=set(), strip=True)


class RoomCreateSerializer(serializers.Serializer):
    roomNumber = serializers.CharField(max_length=20)
    description = serializers.CharField(required=False, allow_blank=True, max_length=500)
    isActive = serializers.BooleanField(required=False, default=True)

    def validate_roomNumber(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('Room number is required')
        return v

    def validate_description(self, v):
        return _clean(v)


class RoomUpdateSerializer(serializers.Serializer):
    roomNumber = serializers.CharField(required=False, max_length=20)
    description = serializers.CharField(required=False, allow_blank=True, max_length=500)
    isActive = serializers.BooleanField(required=False)

    def validate_roomNumber(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('Room number is required')
        return v

    def validate_description(self, v):
        return _clean(v)


class RoomListQuerySerializer(serializers.Serializer):
    isActive = serializers.BooleanField(required=False, allow_null=True, default=None)
    available = serializers.BooleanField(required=False, allow_null=True, default=None)
    search = serializers.CharField(required=False, allow_blank=True, max_length=50)
    page = serializers.IntegerField(required=False, min_value=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=100)


class SelectRoomSerializer(serializers.Serializer):
    room = serializers.CharField(max_length=20)

    def validate_room(self, v):
        return _clean(v)
