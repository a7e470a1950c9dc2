"""Live connections and the conversations each one has joined.

The registry keeps the inverse of the room directory (connection -> conversation ids)
so a disconnect only touches the rooms the connection was actually in.
"""
import asyncio
import enum
import uuid
from typing import Dict, FrozenSet, List, Optional, Set

from constants import MAX_PENDING_FRAMES, SEND_TIMEOUT_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionState(enum.Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ConnectionClosedError(Exception):
    """Raised when a frame is queued on a connection that is no longer open."""


class Connection:
    """One client websocket plus the writer task that owns sends to it.

    Frames are queued by ``send`` and written one at a time by a single writer,
    so every frame reaches the client in the order it was queued.
    """

    def __init__(self, websocket, connection_id: Optional[str] = None,
                 send_timeout: float = SEND_TIMEOUT_SECONDS, max_pending: int = MAX_PENDING_FRAMES):
        self.connection_id = connection_id or str(uuid.uuid4())
        self.websocket = websocket
        self.user_id: Optional[str] = None
        self.state = ConnectionState.OPEN
        self.send_timeout = send_timeout
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._writer: Optional[asyncio.Task] = None

    def __repr__(self):
        return f"Connection({self.connection_id!r}, user_id={self.user_id!r}, state={self.state.value})"

    def __eq__(self, other):
        if not isinstance(other, Connection):
            return NotImplemented
        return self.connection_id == other.connection_id

    def __hash__(self):
        return hash(self.connection_id)

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    def start(self):
        """Start the writer task. Must be called from inside the event loop."""
        if self._writer is None or self._writer.done():
            self._writer = asyncio.create_task(self._drain_outbox(), name=f"ws-writer-{self.connection_id}")

    def send(self, text: str):
        """Queue a frame without waiting for the network.

        Raises ConnectionClosedError if the connection is not open and
        asyncio.QueueFull if the client has fallen too far behind.
        """
        if not self.is_open:
            raise ConnectionClosedError(f"Connection {self.connection_id} is {self.state.value}")
        self._outbox.put_nowait(text)

    async def _drain_outbox(self):
        while True:
            text = await self._outbox.get()
            try:
                if self.is_open:
                    await asyncio.wait_for(self.websocket.send_text(text), timeout=self.send_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Send to connection {self.connection_id} timed out after {self.send_timeout}s, frame dropped")
            except Exception as e:
                # Stop accepting new frames, the receive loop will notice the close and clean up
                logger.warning(f"Send to connection {self.connection_id} failed: {e}")
                if self.state is ConnectionState.OPEN:
                    self.state = ConnectionState.CLOSING
            finally:
                self._outbox.task_done()

    async def flush(self):
        """Wait until every queued frame has been written or dropped."""
        await self._outbox.join()

    async def close(self):
        if self.state is ConnectionState.OPEN:
            self.state = ConnectionState.CLOSING
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
        self._writer = None
        self.state = ConnectionState.CLOSED


class ConnectionRegistry:
    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._memberships: Dict[str, Set[int]] = {}

    def __len__(self):
        return len(self._connections)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def register(self, connection: Connection):
        connection.state = ConnectionState.OPEN
        self._connections[connection.connection_id] = connection
        self._memberships.setdefault(connection.connection_id, set())
        logger.debug(f"Registered connection {connection.connection_id} (live connections: {len(self._connections)})")

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def record_join(self, connection_id: str, conversation_id: int):
        memberships = self._memberships.get(connection_id)
        if memberships is None:
            return
        memberships.add(conversation_id)

    def record_leave(self, connection_id: str, conversation_id: int):
        memberships = self._memberships.get(connection_id)
        if memberships is None:
            return
        memberships.discard(conversation_id)

    def conversations_of(self, connection_id: str) -> FrozenSet[int]:
        return frozenset(self._memberships.get(connection_id, ()))

    def unregister(self, connection_id: str) -> FrozenSet[int]:
        """Forget a connection and return every conversation it was still in."""
        conversation_ids = frozenset(self._memberships.pop(connection_id, ()))
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            connection.state = ConnectionState.CLOSED
            logger.debug(f"Unregistered connection {connection_id}, was in {len(conversation_ids)} conversations")
        return conversation_ids
