"""Room board notifications over the Channels layer."""
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction

from opd.services import clock

ROOMS_GROUP = "rooms"


def send_rooms_changed(event: str, payload: Dict[str, Any]) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    message = {"type": "rooms.changed", "event": event, "ts": clock.now().isoformat(), **payload}
    async_to_sync(channel_layer.group_send)(ROOMS_GROUP, message)


def rooms_changed_on_commit(event: str, payload: Dict[str, Any]) -> None:
    """Broadcast once the surrounding transaction commits (never on rollback)."""
    transaction.on_commit(lambda: send_rooms_changed(event, payload))
