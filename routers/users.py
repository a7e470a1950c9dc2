from fastapi import APIRouter, Depends, HTTPException
from typing import List
from auth import get_current_user_id
from backend import RedisBackend, get_backend
from schemas.chats import SampleUsersResponse, User
from logging_config import get_logger

logger = get_logger(__name__)

users_router = APIRouter(prefix="/api", tags=["users"])

SAMPLE_USERS = [
    User(id="sample-user-1", email="john.doe@example.com", first_name="John", last_name="Doe",
         profile_image_url="https://api.dicebear.com/7.x/avatars/svg?seed=John"),
    User(id="sample-user-2", email="jane.smith@example.com", first_name="Jane", last_name="Smith",
         profile_image_url="https://api.dicebear.com/7.x/avatars/svg?seed=Jane"),
    User(id="sample-user-3", email="mike.johnson@example.com", first_name="Mike", last_name="Johnson",
         profile_image_url="https://api.dicebear.com/7.x/avatars/svg?seed=Mike"),
    User(id="sample-user-4", email="sarah.wilson@example.com", first_name="Sarah", last_name="Wilson",
         profile_image_url="https://api.dicebear.com/7.x/avatars/svg?seed=Sarah"),
]


@users_router.get("/auth/user", response_model=User)
async def current_user(user_id: str = Depends(get_current_user_id), backend: RedisBackend = Depends(get_backend)):
    user = backend.get_user(user_id)
    if not user:
        logger.warning(f"Authenticated user {user_id} has no profile")
        raise HTTPException(status_code=404, detail="User not found")
    return user


@users_router.get("/users", response_model=List[User])
async def list_users(user_id: str = Depends(get_current_user_id), backend: RedisBackend = Depends(get_backend)):
    # Only the sample users are listed for starting new chats
    return backend.list_users(user.id for user in SAMPLE_USERS)


@users_router.post("/create-sample-users", response_model=SampleUsersResponse)
async def create_sample_users(user_id: str = Depends(get_current_user_id), backend: RedisBackend = Depends(get_backend)):
    logger.info(f"Sample users requested by {user_id}")
    try:
        created = [backend.upsert_user(user) for user in SAMPLE_USERS]
    except Exception as e:
        logger.error(f"Error creating sample users: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create sample users")
    return SampleUsersResponse(message="Sample users created", users=created)
