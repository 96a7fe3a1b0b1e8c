import os
import string

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# "redis" or "none"
SNAPSHOT_BACKEND = os.getenv("SNAPSHOT_BACKEND", "redis").lower()
SNAPSHOT_FLUSH_INTERVAL_SECONDS = float(os.getenv("SNAPSHOT_FLUSH_INTERVAL_SECONDS", 5))

MESSAGE_TTL_MS = int(os.getenv("MESSAGE_TTL_MS", 10 * 60 * 1000))
COMPACT_INTERVAL_SECONDS = float(os.getenv("COMPACT_INTERVAL_SECONDS", 60))

INVITE_CODE_LENGTH = int(os.getenv("INVITE_CODE_LENGTH", 6))
INVITE_CODE_ALPHABET = os.getenv("INVITE_CODE_ALPHABET", string.ascii_uppercase + string.digits)
INVITE_RESOLVES_OFFLINE = os.getenv("INVITE_RESOLVES_OFFLINE", "false").lower() in ("1", "true", "yes")

DISPLAY_NAME_MAX_CHARS = int(os.getenv("DISPLAY_NAME_MAX_CHARS", 64))
MESSAGE_MAX_CHARS = int(os.getenv("MESSAGE_MAX_CHARS", 4000))

ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", None)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
