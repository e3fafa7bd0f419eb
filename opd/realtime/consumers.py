import json
from channels.generic.websocket import AsyncWebsocketConsumer

from opd.services.broadcast import ROOMS_GROUP


class RoomBoardConsumer(AsyncWebsocketConsumer):
    """Pushes room/doctor/patient placement changes to the room board."""

    async def connect(self):
        await self.channel_layer.group_add(ROOMS_GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected"}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(ROOMS_GROUP, self.channel_name)

    async def rooms_changed(self, event):
        # event: {"type": "rooms.changed", "event": "...", "ts": "...", ...}
        await self.send(json.dumps(event))
