import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Websocket upgrade path clients connect to
WS_PATH = os.getenv("WS_PATH", "/ws")

# Upper bound on a single frame write to one connection
SEND_TIMEOUT_SECONDS = float(os.getenv("SEND_TIMEOUT_SECONDS", 5.0))
# Frames queued for one connection before new ones are dropped
MAX_PENDING_FRAMES = int(os.getenv("MAX_PENDING_FRAMES", 256))

# "local" fans out in-process, "redis" relays through pub/sub for multi-instance deployments
FANOUT_BACKEND = os.getenv("FANOUT_BACKEND", "local").strip().lower()

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]
