import redis
import json
from datetime import datetime
from typing import Iterable, List, Optional
from fastapi import Request
from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD
from redis_keys import (
    REDIS_USER_KEY,
    REDIS_USER_CHATS_KEY,
    REDIS_CHAT_SEQ_KEY,
    REDIS_CHAT_META_KEY,
    REDIS_CHAT_PARTICIPANTS_KEY,
    REDIS_CHAT_MESSAGES_KEY,
    REDIS_DIRECT_CHAT_KEY,
    REDIS_MESSAGE_SEQ_KEY,
    REDIS_CHAT_CHANNEL,
    REDIS_CHAT_CHANNEL_PATTERN,
)
from schemas.chats import Chat, ChatWithParticipants, MessageWithSender, Participant, User
from schemas.events import ChatMessage
from logging_config import get_logger

logger = get_logger(__name__)

RECENT_MESSAGES_LIMIT = 10


def create_redis_client() -> redis.Redis:
    try:
        client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
        # Test connection
        client.ping()
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        return client
    except Exception as e:
        logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
        raise


def _to_hash(data: dict) -> dict:
    # Redis hashes hold strings only, skip None values
    result = {}
    for k, v in data.items():
        if v is None:
            continue
        if isinstance(v, bool):
            result[k] = "1" if v else "0"
        elif isinstance(v, (dict, list)):
            result[k] = json.dumps(v)
        else:
            result[k] = str(v)
    return result


class RedisBackend:
    """Durable users, chats, participants and messages, plus the relay pub/sub channel."""

    def __init__(self, redis_client: Optional[redis.Redis] = None, pubsub_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client or create_redis_client()
        # pubsub() checks out its own connection from this client's pool
        self.pubsub_client = pubsub_client or self.redis_client
        logger.info("Initializing RedisBackend")

    def ping(self) -> bool:
        return bool(self.redis_client.ping())

    # Users

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.redis_client.hgetall(REDIS_USER_KEY.format(user_id=user_id))
        if not data:
            logger.debug(f"User {user_id} not found in Redis")
            return None
        return User(**data)

    def upsert_user(self, user: User) -> User:
        key = REDIS_USER_KEY.format(user_id=user.id)
        now = datetime.now().isoformat()
        existing = self.redis_client.hgetall(key)
        data = user.model_dump()
        data["created_at"] = existing.get("created_at", now) if existing else now
        data["updated_at"] = now
        self.redis_client.hset(key, mapping=_to_hash(data))
        logger.debug(f"Upserted user {user.id}")
        return User(**data)

    def list_users(self, user_ids: Iterable[str]) -> List[User]:
        users = []
        for user_id in user_ids:
            user = self.get_user(user_id)
            if user:
                users.append(user)
        return users

    # Chats

    def create_chat(self, name: Optional[str], is_group: bool, participant_ids: Iterable[str]) -> Chat:
        chat_id = int(self.redis_client.incr(REDIS_CHAT_SEQ_KEY))
        now = datetime.now()
        chat = Chat(id=chat_id, name=name, is_group=is_group, created_at=now.isoformat(), updated_at=now.isoformat())
        logger.info(f"Creating chat {chat_id} (group={is_group}, name={name})")

        pipe = self.redis_client.pipeline()
        pipe.hset(REDIS_CHAT_META_KEY.format(chat_id=chat_id), mapping=_to_hash(chat.model_dump()))
        # dict.fromkeys keeps order and drops duplicate ids
        for user_id in dict.fromkeys(participant_ids):
            pipe.hset(REDIS_CHAT_PARTICIPANTS_KEY.format(chat_id=chat_id), user_id, now.isoformat())
            pipe.zadd(REDIS_USER_CHATS_KEY.format(user_id=user_id), {str(chat_id): now.timestamp()})
        pipe.execute()
        return chat

    def _get_chat_meta(self, chat_id: int) -> Optional[Chat]:
        data = self.redis_client.hgetall(REDIS_CHAT_META_KEY.format(chat_id=chat_id))
        if not data:
            return None
        data["is_group"] = data.get("is_group") == "1"
        return Chat(**data)

    def get_participants(self, chat_id: int) -> List[Participant]:
        rows = self.redis_client.hgetall(REDIS_CHAT_PARTICIPANTS_KEY.format(chat_id=chat_id))
        return [
            Participant(chat_id=chat_id, user_id=user_id, joined_at=joined_at, user=self.get_user(user_id))
            for user_id, joined_at in rows.items()
        ]

    def is_participant(self, chat_id: int, user_id: str) -> bool:
        return bool(self.redis_client.hexists(REDIS_CHAT_PARTICIPANTS_KEY.format(chat_id=chat_id), user_id))

    def get_chat(self, chat_id: int) -> Optional[ChatWithParticipants]:
        logger.debug(f"Fetching chat {chat_id}")
        chat = self._get_chat_meta(chat_id)
        if not chat:
            logger.debug(f"Chat {chat_id} not found in Redis")
            return None
        return ChatWithParticipants(
            **chat.model_dump(),
            participants=self.get_participants(chat_id),
            messages=self._recent_messages(chat_id, RECENT_MESSAGES_LIMIT),
        )

    def get_user_chats(self, user_id: str) -> List[ChatWithParticipants]:
        chat_ids = self.redis_client.zrevrange(REDIS_USER_CHATS_KEY.format(user_id=user_id), 0, -1)
        chats = []
        for chat_id in chat_ids:
            chat = self._get_chat_meta(int(chat_id))
            if not chat:
                continue
            chats.append(ChatWithParticipants(
                **chat.model_dump(),
                participants=self.get_participants(chat.id),
                messages=self._recent_messages(chat.id, 1),
            ))
        logger.debug(f"User {user_id} has {len(chats)} chats")
        return chats

    def get_or_create_direct_chat(self, user_id: str, other_user_id: str) -> Chat:
        first, second = sorted((user_id, other_user_id))
        key = REDIS_DIRECT_CHAT_KEY.format(first=first, second=second)
        existing = self.redis_client.get(key)
        if existing:
            chat = self._get_chat_meta(int(existing))
            if chat:
                return chat
        chat = self.create_chat(None, False, [user_id, other_user_id])
        self.redis_client.set(key, chat.id)
        return chat

    # Messages

    def _recent_messages(self, chat_id: int, limit: int) -> List[ChatMessage]:
        raw = self.redis_client.lrange(REDIS_CHAT_MESSAGES_KEY.format(chat_id=chat_id), -limit, -1)
        return [ChatMessage.model_validate_json(item) for item in raw]

    def get_chat_messages(self, chat_id: int) -> List[MessageWithSender]:
        raw = self.redis_client.lrange(REDIS_CHAT_MESSAGES_KEY.format(chat_id=chat_id), 0, -1)
        senders = {}
        messages = []
        for item in raw:
            message = MessageWithSender.model_validate_json(item)
            if message.sender_id not in senders:
                senders[message.sender_id] = self.get_user(message.sender_id)
            message.sender = senders[message.sender_id]
            messages.append(message)
        return messages

    def create_message(self, chat_id: int, sender_id: str, content: str, message_type: str = "text") -> ChatMessage:
        message_id = int(self.redis_client.incr(REDIS_MESSAGE_SEQ_KEY))
        now = datetime.now()
        message = ChatMessage(
            id=message_id,
            chat_id=chat_id,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            created_at=now.isoformat(),
        )
        pipe = self.redis_client.pipeline()
        pipe.rpush(REDIS_CHAT_MESSAGES_KEY.format(chat_id=chat_id), message.model_dump_json())
        pipe.hset(REDIS_CHAT_META_KEY.format(chat_id=chat_id), "updated_at", now.isoformat())
        for user_id in self.redis_client.hkeys(REDIS_CHAT_PARTICIPANTS_KEY.format(chat_id=chat_id)):
            pipe.zadd(REDIS_USER_CHATS_KEY.format(user_id=user_id), {str(chat_id): now.timestamp()})
        pipe.execute()
        logger.debug(f"Message {message_id} stored in chat {chat_id}")
        return message

    # Pub/Sub

    def get_chat_channel_name(self, chat_id: int) -> str:
        """Get the Redis pub/sub channel name for a chat."""
        return REDIS_CHAT_CHANNEL.format(chat_id=chat_id)

    def publish_message(self, chat_id: int, payload: str) -> int:
        """Publish an already serialized event to the chat's channel."""
        channel = self.get_chat_channel_name(chat_id)
        subscribers = self.redis_client.publish(channel, payload)
        logger.debug(f"Published message to chat {chat_id} channel {channel}, {subscribers} subscribers")
        return subscribers

    def subscribe_to_chats(self):
        """Create a pubsub subscriber for every chat channel."""
        logger.debug(f"Subscribing to Redis channel pattern {REDIS_CHAT_CHANNEL_PATTERN}")
        pubsub = self.pubsub_client.pubsub()
        pubsub.psubscribe(REDIS_CHAT_CHANNEL_PATTERN)
        return pubsub


def get_backend(request: Request) -> RedisBackend:
    return request.app.state.backend
