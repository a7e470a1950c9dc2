"""Tests for EventProtocolHandler frame routing and disconnect cleanup."""

import json

import pytest

from realtime.hub import ChatHub
from realtime.registry import ConnectionState
from conftest import FakeWebSocket


def frame(**fields) -> str:
    return json.dumps(fields)


@pytest.mark.asyncio
class TestEventProtocolHandler:

    async def test_open_registers_connection(self, hub: ChatHub):
        connection = hub.protocol.open(FakeWebSocket())

        assert connection.connection_id in hub.registry
        assert connection.state is ConnectionState.OPEN
        assert connection.user_id is None

    async def test_join_chat_stamps_user_and_joins_room(self, hub: ChatHub):
        connection = hub.protocol.open(FakeWebSocket())

        hub.protocol.handle_frame(connection, frame(type="join_chat", conversationId=42, userId="A"))

        assert connection.user_id == "A"
        assert connection in hub.rooms.members_of(42)
        assert hub.registry.conversations_of(connection.connection_id) == frozenset({42})

    async def test_join_chat_accepts_chat_id_alias(self, hub: ChatHub):
        connection = hub.protocol.open(FakeWebSocket())

        hub.protocol.handle_frame(connection, frame(type="join_chat", chatId=7, userId="A"))

        assert connection in hub.rooms.members_of(7)

    async def test_last_join_wins_for_user_id(self, hub: ChatHub):
        connection = hub.protocol.open(FakeWebSocket())

        hub.protocol.handle_frame(connection, frame(type="join_chat", conversationId=1, userId="A"))
        hub.protocol.handle_frame(connection, frame(type="join_chat", conversationId=2, userId="B"))

        assert connection.user_id == "B"
        assert connection in hub.rooms.members_of(1)
        assert connection in hub.rooms.members_of(2)

    async def test_leave_chat_removes_membership(self, hub: ChatHub):
        connection = hub.protocol.open(FakeWebSocket())
        hub.protocol.handle_frame(connection, frame(type="join_chat", conversationId=5, userId="A"))

        hub.protocol.handle_frame(connection, frame(type="leave_chat", conversationId=5))
        hub.protocol.handle_frame(connection, frame(type="leave_chat", conversationId=5))

        assert 5 not in hub.rooms

    async def test_typing_fans_out_with_claimed_user(self, hub: ChatHub):
        typist_ws, reader_ws = FakeWebSocket(), FakeWebSocket()
        typist = hub.protocol.open(typist_ws)
        reader = hub.protocol.open(reader_ws)
        hub.protocol.handle_frame(typist, frame(type="join_chat", conversationId=5, userId="A"))
        hub.protocol.handle_frame(reader, frame(type="join_chat", conversationId=5, userId="B"))

        hub.protocol.handle_frame(typist, frame(type="typing", conversationId=5, isTyping=True))
        await typist.flush()
        await reader.flush()

        expected = {"type": "user_typing", "conversationId": 5, "userId": "A", "isTyping": True}
        assert reader_ws.events == [expected]
        assert typist_ws.events == [expected]

    async def test_typing_from_non_member_still_reaches_room(self, hub: ChatHub):
        outsider = hub.protocol.open(FakeWebSocket())
        reader_ws = FakeWebSocket()
        reader = hub.protocol.open(reader_ws)
        hub.protocol.handle_frame(reader, frame(type="join_chat", conversationId=5, userId="B"))

        hub.protocol.handle_frame(outsider, frame(type="typing", chatId=5, isTyping=False))
        await reader.flush()

        assert reader_ws.events == [
            {"type": "user_typing", "conversationId": 5, "userId": None, "isTyping": False},
        ]

    @pytest.mark.parametrize("raw", [
        "not json",
        frame(type="explode", conversationId=5),
        frame(type="join_chat", conversationId=5),
        frame(type="join_chat", conversationId="five", userId="A"),
        frame(type="typing", conversationId=5),
        frame(conversationId=5),
        "[]",
        frame(type="join_chat", conversationId=True, userId="A"),
        frame(type="join_chat", conversationId="5", userId="A"),
        frame(type="join_chat", conversationId=5.0, userId="A"),
        frame(type="join_chat", conversationId=5, userId=7),
        frame(type="join_chat", conversation_id=5, userId="A"),
        frame(type="join_chat", conversationId=5, user_id="A"),
    ])
    async def test_malformed_frames_are_dropped(self, hub: ChatHub, raw):
        connection = hub.protocol.open(FakeWebSocket())

        hub.protocol.handle_frame(connection, raw)

        assert connection.is_open
        assert hub.rooms.room_count() == 0
        assert connection.user_id is None

    @pytest.mark.parametrize("raw", [
        frame(type="typing", conversationId=5, isTyping="yes"),
        frame(type="typing", conversationId=5, isTyping=1),
        frame(type="typing", conversationId="5", isTyping=True),
        frame(type="typing", conversation_id=5, isTyping=True),
        frame(type="leave_chat", conversation_id=5),
    ])
    async def test_mistyped_frames_reach_nobody(self, hub: ChatHub, raw):
        reader_ws = FakeWebSocket()
        reader = hub.protocol.open(reader_ws)
        hub.protocol.handle_frame(reader, frame(type="join_chat", conversationId=5, userId="B"))

        hub.protocol.handle_frame(reader, raw)
        await reader.flush()

        assert reader_ws.events == []
        assert hub.rooms.members_of(5) == frozenset({reader})

    async def test_close_leaves_every_room(self, hub: ChatHub):
        connection = hub.protocol.open(FakeWebSocket())
        other = hub.protocol.open(FakeWebSocket())
        for conversation_id in (5, 7, 9):
            hub.protocol.handle_frame(connection, frame(type="join_chat", conversationId=conversation_id, userId="C"))
        hub.protocol.handle_frame(other, frame(type="join_chat", conversationId=9, userId="D"))

        await hub.protocol.close(connection)

        for conversation_id in (5, 7, 9):
            assert connection not in hub.rooms.members_of(conversation_id)
        assert hub.rooms.room_count() == 1
        assert hub.rooms.members_of(9) == frozenset({other})
        assert connection.connection_id not in hub.registry
        assert connection.state is ConnectionState.CLOSED

    async def test_close_twice_is_harmless(self, hub: ChatHub):
        connection = hub.protocol.open(FakeWebSocket())
        hub.protocol.handle_frame(connection, frame(type="join_chat", conversationId=5, userId="A"))

        await hub.protocol.close(connection)
        await hub.protocol.close(connection)

        assert hub.stats() == {"rooms": 0, "connections": 0}

    async def test_hub_stop_closes_open_connections(self):
        hub = ChatHub()
        hub.start()
        connection = hub.protocol.open(FakeWebSocket())
        hub.protocol.handle_frame(connection, frame(type="join_chat", conversationId=5, userId="A"))

        await hub.stop()

        assert hub.stats() == {"rooms": 0, "connections": 0}
        assert connection.state is ConnectionState.CLOSED
