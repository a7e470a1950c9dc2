from fastapi import Request

from logging_config import get_logger
from realtime.dispatcher import FanoutDispatcher
from realtime.protocol import EventProtocolHandler
from realtime.registry import ConnectionRegistry
from realtime.rooms import RoomDirectory

logger = get_logger(__name__)


class ChatHub:
    """Owns the live-chat state of one server process.

    Built once by the app lifespan and handed to the websocket endpoint and the
    request handlers; nothing here is module-global.
    """

    def __init__(self, relay_factory=None):
        self.registry = ConnectionRegistry()
        self.rooms = RoomDirectory(self.registry)
        self.dispatcher = FanoutDispatcher(self.rooms)
        # relay_factory(dispatcher) -> object with dispatch/start/stop
        self.relay = relay_factory(self.dispatcher) if relay_factory else None
        self.protocol = EventProtocolHandler(self.registry, self.rooms, self.fanout)

    @property
    def fanout(self):
        """Where new events for a conversation go: the relay if there is one, else local fan-out."""
        return self.relay if self.relay is not None else self.dispatcher

    def dispatch(self, conversation_id: int, event):
        self.fanout.dispatch(conversation_id, event)

    def start(self):
        if self.relay is not None:
            self.relay.start()
        logger.info(f"Chat hub started ({'redis relay' if self.relay else 'local'} fan-out)")

    async def stop(self):
        if self.relay is not None:
            await self.relay.stop()
        connections = self.registry.connections()
        for connection in connections:
            await self.protocol.close(connection)
        logger.info(f"Chat hub stopped, closed {len(connections)} connections")

    def stats(self) -> dict:
        return {"rooms": self.rooms.room_count(), "connections": len(self.registry)}


def get_hub(request: Request) -> ChatHub:
    return request.app.state.hub
