from typing import Dict, FrozenSet, Iterable

from logging_config import get_logger
from realtime.registry import Connection, ConnectionRegistry

logger = get_logger(__name__)


class RoomDirectory:
    """conversation id -> connections currently subscribed to its live events.

    A room exists only while it has members. Every method is synchronous, so on a
    single event loop no two calls can interleave and each one sees a consistent
    member set.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry
        # Format: {conversation_id: {connection_id: connection}}
        self._rooms: Dict[int, Dict[str, Connection]] = {}

    def __contains__(self, conversation_id: int) -> bool:
        return conversation_id in self._rooms

    def room_count(self) -> int:
        return len(self._rooms)

    def join(self, conversation_id: int, connection: Connection):
        if connection.connection_id not in self.registry:
            # Nothing would remove it on disconnect
            logger.warning(f"Ignoring join to conversation {conversation_id} from unregistered connection {connection.connection_id}")
            return
        room = self._rooms.setdefault(conversation_id, {})
        if connection.connection_id not in room:
            room[connection.connection_id] = connection
            logger.info(f"Connection {connection.connection_id} (user {connection.user_id}) joined conversation {conversation_id} ({len(room)} members)")
        self.registry.record_join(connection.connection_id, conversation_id)

    def leave(self, conversation_id: int, connection_id: str):
        self.registry.record_leave(connection_id, conversation_id)
        room = self._rooms.get(conversation_id)
        if room is None or connection_id not in room:
            return
        del room[connection_id]
        logger.info(f"Connection {connection_id} left conversation {conversation_id} ({len(room)} members)")
        if not room:
            del self._rooms[conversation_id]
            logger.debug(f"Conversation {conversation_id} has no members left, room removed")

    def leave_all(self, connection_id: str, conversation_ids: Iterable[int]):
        for conversation_id in conversation_ids:
            self.leave(conversation_id, connection_id)

    def members_of(self, conversation_id: int) -> FrozenSet[Connection]:
        room = self._rooms.get(conversation_id)
        if not room:
            return frozenset()
        return frozenset(room.values())
