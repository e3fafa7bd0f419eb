"""
Room directory endpoints.

Any authenticated staff member may browse rooms and their statistics;
creating, editing and deleting rooms is reserved to administrators.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsAdminOrReadOnly
from ..serializers.room import RoomCreateSerializer, RoomListQuerySerializer, RoomUpdateSerializer
from ..services import rooms as room_service
from ..services.audit import log_action


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnly])
def rooms(request):
    if request.method == 'POST':
        data = RoomCreateSerializer(data=request.data)
        data.is_valid(raise_exception=True)
        room = room_service.create(
            data.validated_data['roomNumber'],
            data.validated_data.get('description', ''),
            is_active=data.validated_data.get('isActive', True),
        )
        log_action(user=request.user, action='room_create', object_type='room', object_id=room.id,
                   detail={'roomNumber': room.room_number})
        entry = room_service.RoomEntry(room=room, doctor=None)
        return Response({'ok': True, 'data': room_service.format_room(entry)}, status=201)

    q = RoomListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    page = q.validated_data.get('page') or 1
    page_size = q.validated_data.get('pageSize') or 20
    entries, total = room_service.list_rooms(
        is_active=q.validated_data.get('isActive'),
        available=q.validated_data.get('available'),
        search=(q.validated_data.get('search') or '').strip() or None,
        page=page,
        page_size=page_size,
    )
    return Response({
        'ok': True,
        'data': [room_service.format_room(e) for e in entries],
        'pagination': {'total': total, 'page': page, 'pageSize': page_size},
    })


@api_view(['GET', 'PATCH', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnly])
def room_detail(request, room_id: int):
    if request.method == 'GET':
        room = room_service.get_room(room_id)
        return Response({'ok': True, 'data': room_service.format_room(room_service.entry_for(room))})

    if request.method == 'DELETE':
        force = str(request.query_params.get('force') or request.data.get('force') or '').lower() in {'1', 'true', 'yes'}
        refs = room_service.delete(room_id, force=force)
        log_action(user=request.user, action='room_delete', object_type='room', object_id=room_id,
                   detail={**refs.as_detail(), 'force': force})
        return Response({'ok': True, 'data': {'id': room_id, 'roomNumber': refs.room_number}})

    data = RoomUpdateSerializer(data=request.data, partial=True)
    data.is_valid(raise_exception=True)
    room = room_service.update(
        room_id,
        room_number=data.validated_data.get('roomNumber'),
        description=data.validated_data.get('description'),
        is_active=data.validated_data.get('isActive'),
    )
    log_action(user=request.user, action='room_update', object_type='room', object_id=room.id,
               detail={k: v for k, v in data.validated_data.items()})
    return Response({'ok': True, 'data': room_service.format_room(room_service.entry_for(room))})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def room_stats(request):
    return Response({'ok': True, 'data': room_service.stats()})
