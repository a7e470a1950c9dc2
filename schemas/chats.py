from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional

from schemas.events import ChatMessage


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(CamelModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

class Participant(CamelModel):
    chat_id: int
    user_id: str
    joined_at: str
    user: Optional[User] = None

class Chat(CamelModel):
    id: int
    name: Optional[str] = None
    is_group: bool = False
    created_at: str
    updated_at: str

class ChatWithParticipants(Chat):
    participants: List[Participant] = []
    messages: List[ChatMessage] = []

class SendMessageRequest(CamelModel):
    content: str = Field(min_length=1)
    message_type: Optional[str] = "text"

class DirectChatRequest(CamelModel):
    other_user_id: str = Field(min_length=1)

class GroupChatRequest(CamelModel):
    name: str = Field(min_length=1)
    participant_ids: List[str]

class MessageWithSender(ChatMessage):
    sender: Optional[User] = None

class SampleUsersResponse(BaseModel):
    message: str
    users: List[User]

class HealthResponse(BaseModel):
    status: str
    store: str
    rooms: int
    connections: int
