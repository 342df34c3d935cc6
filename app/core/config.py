import os
from typing import List
from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Durable local storage for the current session
SESSION_STORE_PATH = os.getenv("SESSION_STORE_PATH", ".community/session.json")
SESSION_STORAGE_KEY = "community.session"

AVATAR_BUCKET = os.getenv("AVATAR_BUCKET", "avatars")
AVATAR_MAX_BYTES = int(os.getenv("AVATAR_MAX_BYTES", str(5 * 1024 * 1024)))
AVATAR_MIME_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}

DEFAULT_SIGNUP_ALLOWLIST = "admin@example.com,user1@example.com,user2@example.com,test@example.com"


def parse_allowlist(raw: str) -> List[str]:
    return [email.strip().lower() for email in raw.split(",") if email.strip()]


# Empty list means the signup gate is not enforced
SIGNUP_ALLOWLIST = parse_allowlist(os.getenv("SIGNUP_ALLOWLIST", DEFAULT_SIGNUP_ALLOWLIST))
