import asyncio

from logging_config import get_logger
from realtime.registry import ConnectionClosedError
from realtime.rooms import RoomDirectory
from schemas.events import WireModel

logger = get_logger(__name__)


class FanoutDispatcher:
    def __init__(self, rooms: RoomDirectory):
        self.rooms = rooms

    def dispatch(self, conversation_id: int, event: WireModel) -> int:
        """Queue ``event`` for every current member of the conversation's room.

        Never raises and never waits on the network: each member's writer task
        does the actual send. A member that is closed or backed up is skipped and
        logged. Returns how many members the frame was queued for.
        """
        members = self.rooms.members_of(conversation_id)
        if not members:
            logger.debug(f"No members in conversation {conversation_id}, dropping {event.type} event")
            return 0

        text = event.to_wire()
        delivered = 0
        for connection in members:
            try:
                connection.send(text)
                delivered += 1
            except ConnectionClosedError:
                logger.debug(f"Skipping connection {connection.connection_id} in conversation {conversation_id}: not open")
            except asyncio.QueueFull:
                logger.warning(f"Connection {connection.connection_id} is too far behind, dropped {event.type} event for conversation {conversation_id}")
            except Exception as e:
                logger.error(f"Error queueing {event.type} event for connection {connection.connection_id} in conversation {conversation_id}: {e}", exc_info=True)

        logger.debug(f"Dispatched {event.type} event to {delivered}/{len(members)} members of conversation {conversation_id}")
        return delivered
