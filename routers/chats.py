from fastapi import APIRouter, Depends, HTTPException
from typing import List
from auth import get_current_user_id
from backend import RedisBackend, get_backend
from realtime.hub import ChatHub, get_hub
from schemas.chats import ChatWithParticipants, DirectChatRequest, GroupChatRequest, MessageWithSender, SendMessageRequest
from schemas.events import ChatMessage, NewMessageEvent
from logging_config import get_logger

logger = get_logger(__name__)

chats_router = APIRouter(prefix="/api/chats", tags=["chats"])


def _require_participant(backend: RedisBackend, chat_id: int, user_id: str):
    if not backend.is_participant(chat_id, user_id):
        logger.warning(f"User {user_id} denied access to chat {chat_id}")
        raise HTTPException(status_code=403, detail="Access denied")


@chats_router.get("", response_model=List[ChatWithParticipants])
async def list_chats(user_id: str = Depends(get_current_user_id), backend: RedisBackend = Depends(get_backend)):
    try:
        return backend.get_user_chats(user_id)
    except Exception as e:
        logger.error(f"Error fetching chats for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch chats")


@chats_router.get("/{chat_id}/messages", response_model=List[MessageWithSender])
async def list_messages(chat_id: int, user_id: str = Depends(get_current_user_id), backend: RedisBackend = Depends(get_backend)):
    _require_participant(backend, chat_id, user_id)
    try:
        return backend.get_chat_messages(chat_id)
    except Exception as e:
        logger.error(f"Error fetching messages for chat {chat_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch messages")


@chats_router.post("/{chat_id}/messages", response_model=ChatMessage)
async def send_message(
    chat_id: int,
    body: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    backend: RedisBackend = Depends(get_backend),
    hub: ChatHub = Depends(get_hub),
):
    # Persist first, then push to whoever is connected to the chat right now
    _require_participant(backend, chat_id, user_id)
    try:
        message = backend.create_message(chat_id, user_id, body.content, body.message_type or "text")
    except Exception as e:
        logger.error(f"Error sending message to chat {chat_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to send message")

    hub.dispatch(chat_id, NewMessageEvent(message=message))
    logger.info(f"Message {message.id} from {user_id} stored and dispatched to chat {chat_id}")
    return message


@chats_router.post("/direct", response_model=ChatWithParticipants)
async def create_direct_chat(body: DirectChatRequest, user_id: str = Depends(get_current_user_id), backend: RedisBackend = Depends(get_backend)):
    logger.info(f"Direct chat request from {user_id} with {body.other_user_id}")
    try:
        chat = backend.get_or_create_direct_chat(user_id, body.other_user_id)
        return backend.get_chat(chat.id)
    except Exception as e:
        logger.error(f"Error creating/getting direct chat: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create or get chat")


@chats_router.post("/group", response_model=ChatWithParticipants)
async def create_group_chat(body: GroupChatRequest, user_id: str = Depends(get_current_user_id), backend: RedisBackend = Depends(get_backend)):
    logger.info(f"Group chat '{body.name}' requested by {user_id} with {len(body.participant_ids)} participants")
    try:
        # Creator is always a participant
        chat = backend.create_chat(body.name, True, [user_id, *body.participant_ids])
        return backend.get_chat(chat.id)
    except Exception as e:
        logger.error(f"Error creating group chat: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create group chat")
