"""Pytest configuration and shared fixtures."""

import asyncio
import json
from datetime import datetime
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from realtime.hub import ChatHub
from realtime.registry import Connection, ConnectionRegistry
from realtime.rooms import RoomDirectory
from schemas.chats import Chat, ChatWithParticipants, MessageWithSender, Participant, User
from schemas.events import ChatMessage


class FakeWebSocket:
    """Records frames written by a connection's writer task."""

    def __init__(self, fail: bool = False, delays: Optional[List[float]] = None):
        self.sent: List[str] = []
        self.fail = fail
        self.delays = list(delays or [])

    async def send_text(self, text: str):
        if self.delays:
            await asyncio.sleep(self.delays.pop(0))
        if self.fail:
            raise RuntimeError("socket is closing")
        self.sent.append(text)

    @property
    def events(self) -> List[dict]:
        return [json.loads(text) for text in self.sent]


class InMemoryBackend:
    """Dict-backed stand-in for RedisBackend used by the request-layer tests."""

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.chats: Dict[int, Chat] = {}
        self.participants: Dict[int, Dict[str, str]] = {}
        self.messages: Dict[int, List[ChatMessage]] = {}
        self.direct: Dict[tuple, int] = {}
        self._next_chat_id = 1
        self._next_message_id = 1

    def ping(self):
        return True

    def _now(self) -> str:
        return datetime.now().isoformat()

    def get_user(self, user_id):
        return self.users.get(user_id)

    def upsert_user(self, user):
        now = self._now()
        stored = user.model_copy(update={"created_at": now, "updated_at": now})
        self.users[user.id] = stored
        return stored

    def list_users(self, user_ids):
        return [self.users[user_id] for user_id in user_ids if user_id in self.users]

    def create_chat(self, name, is_group, participant_ids, chat_id=None):
        if chat_id is None:
            chat_id = self._next_chat_id
        self._next_chat_id = max(self._next_chat_id, chat_id) + 1
        now = self._now()
        chat = Chat(id=chat_id, name=name, is_group=is_group, created_at=now, updated_at=now)
        self.chats[chat_id] = chat
        self.participants[chat_id] = {user_id: now for user_id in participant_ids}
        self.messages[chat_id] = []
        return chat

    def is_participant(self, chat_id, user_id):
        return user_id in self.participants.get(chat_id, {})

    def get_chat(self, chat_id):
        chat = self.chats.get(chat_id)
        if chat is None:
            return None
        participants = [
            Participant(chat_id=chat_id, user_id=user_id, joined_at=joined_at, user=self.users.get(user_id))
            for user_id, joined_at in self.participants[chat_id].items()
        ]
        return ChatWithParticipants(**chat.model_dump(), participants=participants, messages=self.messages[chat_id][-10:])

    def get_user_chats(self, user_id):
        return [self.get_chat(chat_id) for chat_id in self.chats if self.is_participant(chat_id, user_id)]

    def get_or_create_direct_chat(self, user_id, other_user_id):
        key = tuple(sorted((user_id, other_user_id)))
        if key in self.direct:
            return self.chats[self.direct[key]]
        chat = self.create_chat(None, False, [user_id, other_user_id])
        self.direct[key] = chat.id
        return chat

    def get_chat_messages(self, chat_id):
        return [
            MessageWithSender(**message.model_dump(), sender=self.users.get(message.sender_id))
            for message in self.messages.get(chat_id, [])
        ]

    def create_message(self, chat_id, sender_id, content, message_type="text"):
        message = ChatMessage(
            id=self._next_message_id,
            chat_id=chat_id,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            created_at=self._now(),
        )
        self._next_message_id += 1
        self.messages[chat_id].append(message)
        return message


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def rooms(registry) -> RoomDirectory:
    return RoomDirectory(registry)


@pytest.fixture
def make_connection(registry):
    """Registered connection whose writer is not started; frames stay queued."""

    def _make(connection_id: Optional[str] = None) -> Connection:
        connection = Connection(FakeWebSocket(), connection_id=connection_id)
        registry.register(connection)
        return connection

    return _make


@pytest_asyncio.fixture
async def hub():
    hub = ChatHub()
    hub.start()
    yield hub
    await hub.stop()


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()
