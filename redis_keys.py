REDIS_USER_KEY = "user:{user_id}" # user id - profile hash
REDIS_USER_CHATS_KEY = "user:chats:{user_id}" # user id - sorted set of chat ids scored by updated_at
REDIS_CHAT_SEQ_KEY = "chat:seq" # counter for chat ids
REDIS_CHAT_META_KEY = "chat:meta:{chat_id}" # chat id - hash
REDIS_CHAT_PARTICIPANTS_KEY = "chat:participants:{chat_id}" # chat id - hash user_id -> joined_at
REDIS_CHAT_MESSAGES_KEY = "chat:messages:{chat_id}" # chat id - list of message JSON, append order
REDIS_DIRECT_CHAT_KEY = "chat:direct:{first}:{second}" # sorted user id pair - direct chat id
REDIS_MESSAGE_SEQ_KEY = "message:seq" # counter for message ids
REDIS_CHAT_CHANNEL = "chat:channel:{chat_id}" # chat id - pub/sub channel name
REDIS_CHAT_CHANNEL_PATTERN = "chat:channel:*"

# **Example `chat:meta:{id}` hash fields**
# - `id` = integer
# - `name` = group name (absent for direct chats)
# - `is_group` = "1" / "0"
# - `created_at` = ISO timestamp
# - `updated_at` = ISO timestamp, bumped on every new message
