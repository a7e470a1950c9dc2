import asyncio
from typing import Optional

from pydantic import ValidationError

from logging_config import get_logger
from realtime.dispatcher import FanoutDispatcher
from schemas.events import WireModel, decode_outbound

logger = get_logger(__name__)


class RedisRelay:
    """Fan-out across server instances through Redis pub/sub.

    ``dispatch`` publishes to the conversation's channel instead of delivering
    locally. Every instance runs one listener on the channel pattern and hands
    whatever arrives to its own FanoutDispatcher, so each instance only writes to
    the websockets it holds. One listener processes messages in arrival order,
    which keeps per-conversation ordering equal to Redis channel ordering.
    """

    def __init__(self, backend, dispatcher: FanoutDispatcher, poll_timeout: float = 1.0):
        self.backend = backend
        self.dispatcher = dispatcher
        self.poll_timeout = poll_timeout
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None

    def dispatch(self, conversation_id: int, event: WireModel):
        try:
            subscribers = self.backend.publish_message(conversation_id, event.to_wire())
            logger.debug(f"Relayed {event.type} event for conversation {conversation_id} to {subscribers} instances")
        except Exception as e:
            logger.error(f"Error relaying {event.type} event for conversation {conversation_id}: {e}", exc_info=True)

    def start(self):
        # Subscribe before the listener task exists so nothing published after start() is missed
        self._pubsub = self.backend.subscribe_to_chats()
        self._task = asyncio.create_task(self._listen(), name="redis-relay-listener")
        logger.info("Redis relay listener started")

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Redis relay listener stopped")

    def _next_message(self):
        """Blocking call to get next message from Redis pub/sub with timeout."""
        try:
            return self._pubsub.get_message(timeout=self.poll_timeout, ignore_subscribe_messages=True)
        except Exception as e:
            logger.error(f"Error in pubsub.get_message(): {e}", exc_info=True)
            return None

    async def _listen(self):
        loop = asyncio.get_running_loop()
        poll = None
        try:
            while True:
                poll = loop.run_in_executor(None, self._next_message)
                # Shielded so cancelling the listener leaves the executor poll running to completion
                message = await asyncio.shield(poll)
                if message is None:
                    continue
                self.handle_pubsub_message(message)
        except asyncio.CancelledError:
            logger.info("Redis relay listener task cancelled")
            raise
        finally:
            if poll is not None and not poll.done():
                # get_message() is still running in its thread, the pub/sub may only be closed after it returns
                await asyncio.wait([poll])
            try:
                self._pubsub.close()
                logger.debug("Closed relay pub/sub connection")
            except Exception as e:
                logger.error(f"Error closing relay pub/sub: {e}")

    def handle_pubsub_message(self, message: dict):
        if message.get("type") not in ("message", "pmessage"):
            return
        channel = message.get("channel", "")
        try:
            conversation_id = int(channel.rsplit(":", 1)[-1])
            event = decode_outbound(message["data"])
        except (ValueError, KeyError, ValidationError) as e:
            logger.warning(f"Dropping unreadable relay message on channel {channel}: {e}")
            return
        self.dispatcher.dispatch(conversation_id, event)
