"""
Configuration constants for the application.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
env_path = Path(__file__).resolve().parent.parent.parent / '.env'
load_dotenv(dotenv_path=env_path)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"[CONFIG] {name}={raw!r} is not an integer, using {default}", flush=True)
        return default


# Push gateway (FCM relay or similar). Empty URL disables push delivery;
# in-app notifications are always persisted regardless.
PUSH_GATEWAY_URL = os.getenv("PUSH_GATEWAY_URL", "").strip()
PUSH_GATEWAY_KEY = os.getenv("PUSH_GATEWAY_KEY", "")
PUSH_TIMEOUT_SECONDS = _int_env("PUSH_TIMEOUT_SECONDS", 5)

# Gamification
POINTS_PER_LEVEL = _int_env("POINTS_PER_LEVEL", 1000)

# Notifications older than this are removed by the purge endpoint / script
NOTIFICATION_RETENTION_DAYS = _int_env("NOTIFICATION_RETENTION_DAYS", 30)

ENABLE_DEBUG_ROUTES = os.getenv("ENABLE_DEBUG_ROUTES", "0") == "1"

# Auth. A missing secret is only tolerated outside production.
SECRET_KEY = os.getenv("SECRET_KEY", os.getenv("JWT_SECRET_KEY", ""))
IS_PRODUCTION = os.getenv("ENVIRONMENT", "").lower() == "production"
ACCESS_TOKEN_EXPIRE_MINUTES = _int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)
PBKDF2_ITERATIONS = _int_env("PBKDF2_ITERATIONS", 100_000)
