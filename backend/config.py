from __future__ import annotations

import os
from pathlib import Path
from typing import List

BASE_DIR = Path(__file__).resolve().parent
SMARTHOME_ENV = os.getenv("SMARTHOME_ENV", "dev").strip().lower()
APP_ENV = os.getenv("APP_ENV", SMARTHOME_ENV).strip().lower()
SERVICE_VERSION = os.getenv("APP_VERSION") or "dev"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
SEED_ON_STARTUP = os.getenv("SEED_ON_STARTUP", "0").strip() == "1"

_default_db = "smarthome_test.db" if SMARTHOME_ENV == "test" else "smarthome.db"
DEFAULT_SQLITE_URL = f"sqlite:///{(BASE_DIR / _default_db).as_posix()}"
DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_SQLITE_URL)

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def get_allowed_origins() -> List[str]:
    env_origins = [
        origin.strip()
        for origin in os.getenv("ALLOWED_ORIGINS", "").split(",")
        if origin.strip()
    ]
    if not env_origins:
        return list(DEFAULT_ALLOWED_ORIGINS)
    if any(origin == "*" for origin in env_origins):
        raise ValueError("ALLOWED_ORIGINS cannot contain '*' when allow_credentials=True")
    return env_origins


JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALG", "HS256")
ACCESS_TOKEN_TTL_MIN = int(os.getenv("ACCESS_TOKEN_TTL_MIN", "15"))
REFRESH_TOKEN_TTL_DAYS = int(os.getenv("REFRESH_TOKEN_TTL_DAYS", "14"))
