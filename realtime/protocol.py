from pydantic import ValidationError

from logging_config import get_logger
from realtime.registry import Connection, ConnectionRegistry
from realtime.rooms import RoomDirectory
from schemas.events import JoinChatEvent, LeaveChatEvent, TypingEvent, UserTypingEvent, decode_inbound

logger = get_logger(__name__)


class EventProtocolHandler:
    """Routes decoded websocket frames to the room directory or the fan-out.

    Stateless between frames; the only per-connection state it touches is the
    claimed user id.
    """

    def __init__(self, registry: ConnectionRegistry, rooms: RoomDirectory, fanout):
        self.registry = registry
        self.rooms = rooms
        # Anything with dispatch(conversation_id, event): the local dispatcher or the redis relay
        self.fanout = fanout

    def open(self, websocket) -> Connection:
        connection = Connection(websocket)
        connection.start()
        self.registry.register(connection)
        logger.info(f"Connection {connection.connection_id} opened")
        return connection

    def handle_frame(self, connection: Connection, raw: str):
        try:
            event = decode_inbound(raw)
        except ValidationError as e:
            logger.warning(f"Dropping malformed frame from connection {connection.connection_id}: {e.errors(include_url=False)}")
            return

        if isinstance(event, JoinChatEvent):
            connection.user_id = event.user_id
            self.rooms.join(event.conversation_id, connection)
        elif isinstance(event, LeaveChatEvent):
            self.rooms.leave(event.conversation_id, connection.connection_id)
        elif isinstance(event, TypingEvent):
            self.fanout.dispatch(event.conversation_id, UserTypingEvent(
                conversation_id=event.conversation_id,
                user_id=connection.user_id,
                is_typing=event.is_typing,
            ))
        else:
            logger.warning(f"No route for {type(event).__name__} from connection {connection.connection_id}")

    async def close(self, connection: Connection):
        conversation_ids = self.registry.unregister(connection.connection_id)
        self.rooms.leave_all(connection.connection_id, conversation_ids)
        await connection.close()
        logger.info(f"Connection {connection.connection_id} closed, removed from {len(conversation_ids)} conversations")
