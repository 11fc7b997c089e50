"""
Environment configuration for the ID-card backend.

Values are read from the process environment, with a local ``.env`` file
loaded first when present. Everything is collected into a single
``Settings`` object that the app builds once at import time.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()

DEFAULT_CORS_ORIGINS: List[str] = [
    "http://localhost:5173",  # local dev frontend (Vite)
    "http://localhost:8080",
    "https://sonafaculty-idcard-portal.netlify.app",  # no trailing slash
]

CORS_METHODS: List[str] = ["GET", "POST", "PATCH", "DELETE"]


def env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean flag such as ``USE_TRANSACTIONS=true``."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def env_list(name: str, default: List[str]) -> List[str]:
    """Read a comma-separated list, falling back to ``default`` when unset."""
    raw = os.getenv(name, "")
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items or list(default)


class Settings(BaseModel):
    mongo_uri: str = os.getenv("MONGO_URI", "mongodb://localhost:27017/idcards")
    mongo_db_name: Optional[str] = os.getenv("MONGO_DB_NAME") or None
    store_backend: str = os.getenv("STORE_BACKEND", "mongo").strip().lower()

    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "5000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    cors_origins: List[str] = env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)

    # fail fast if the store is not reachable
    server_selection_timeout_ms: int = int(os.getenv("SERVER_SELECTION_TIMEOUT_MS", "5000"))
    socket_timeout_ms: int = int(os.getenv("SOCKET_TIMEOUT_MS", "45000"))
    max_pool_size: int = int(os.getenv("MAX_POOL_SIZE", "10"))
    faculty_check_timeout_ms: int = int(os.getenv("FACULTY_CHECK_TIMEOUT_MS", "1000"))

    use_transactions: bool = env_flag("USE_TRANSACTIONS")
    reject_unknown_status: bool = env_flag("REJECT_UNKNOWN_STATUS")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
