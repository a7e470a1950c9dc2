"""Frames exchanged over the chat websocket.

Inbound and outbound frames are closed tagged unions discriminated by ``type``.
Field names are snake_case in Python and camelCase on the wire.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)


class ChatMessage(WireModel):
    id: int
    chat_id: int
    sender_id: str
    content: str
    message_type: str = "text"
    created_at: str


# Inbound

class InboundModel(WireModel):
    # Frames come from untrusted clients: no type coercion, wire names only
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=False, strict=True)


class JoinChatEvent(InboundModel):
    type: Literal["join_chat"]
    conversation_id: int = Field(validation_alias=AliasChoices("conversationId", "chatId"))
    user_id: str


class LeaveChatEvent(InboundModel):
    type: Literal["leave_chat"]
    conversation_id: int = Field(validation_alias=AliasChoices("conversationId", "chatId"))


class TypingEvent(InboundModel):
    type: Literal["typing"]
    conversation_id: int = Field(validation_alias=AliasChoices("conversationId", "chatId"))
    is_typing: bool


InboundEvent = Annotated[
    Union[JoinChatEvent, LeaveChatEvent, TypingEvent],
    Field(discriminator="type"),
]


# Outbound

class NewMessageEvent(WireModel):
    type: Literal["new_message"] = "new_message"
    message: ChatMessage


class UserTypingEvent(WireModel):
    type: Literal["user_typing"] = "user_typing"
    conversation_id: int
    # None when the connection typed before sending join_chat
    user_id: Optional[str] = None
    is_typing: bool


OutboundEvent = Annotated[
    Union[NewMessageEvent, UserTypingEvent],
    Field(discriminator="type"),
]

inbound_adapter = TypeAdapter(InboundEvent)
outbound_adapter = TypeAdapter(OutboundEvent)


def decode_inbound(raw: str):
    """Parse one inbound frame. Raises ``pydantic.ValidationError`` on bad JSON, unknown type or bad fields."""
    return inbound_adapter.validate_json(raw)


def decode_outbound(raw: str):
    return outbound_adapter.validate_json(raw)
