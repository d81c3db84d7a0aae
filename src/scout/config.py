from __future__ import annotations

"""Environment-driven settings for the gateway and its collaborators.

Each config is a plain dataclass with a ``from_env()`` constructor so tests can
build one directly with explicit values.

Env vars:
- SCOUT_MIN_TURN_INTERVAL_MS (default 2000)
- SCOUT_DAILY_MESSAGE_CAP (default 50)
- SCOUT_MAX_MESSAGE_LENGTH (default 2000)
- SCOUT_HISTORY_WINDOW (default 20)
- SCOUT_DOCUMENT_LIMIT (default 20)
- SCOUT_STORAGE_DIR, SCOUT_PUBLIC_BASE_URL, SCOUT_UPLOAD_URL_EXPIRES_SEC
- ADMIN_EMAILS (comma separated)
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional


MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        return default


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def admin_emails() -> List[str]:
    raw = os.getenv("ADMIN_EMAILS") or ""
    return [e.strip().lower() for e in raw.split(",") if e.strip()]


@dataclass
class GatewayConfig:
    min_turn_interval_ms: int = 2000
    daily_message_cap: int = 50
    max_message_length: int = 2000
    max_attachments: int = 3
    max_attachment_bytes: int = MAX_ATTACHMENT_BYTES
    history_window: int = 20
    summary_threshold: int = 30
    document_limit: int = 20
    max_tool_rounds: int = 3
    revision_cooldown_minutes: int = 5
    admin_emails: List[str] = field(default_factory=list)

    @staticmethod
    def from_env() -> "GatewayConfig":
        return GatewayConfig(
            min_turn_interval_ms=env_int("SCOUT_MIN_TURN_INTERVAL_MS", 2000),
            daily_message_cap=env_int("SCOUT_DAILY_MESSAGE_CAP", 50),
            max_message_length=env_int("SCOUT_MAX_MESSAGE_LENGTH", 2000),
            history_window=env_int("SCOUT_HISTORY_WINDOW", 20),
            document_limit=env_int("SCOUT_DOCUMENT_LIMIT", 20),
            admin_emails=admin_emails(),
        )


@dataclass
class StorageConfig:
    root_dir: str
    public_base_url: str
    secret: str
    url_expires_sec: int = 600
    max_file_bytes: int = MAX_ATTACHMENT_BYTES

    @staticmethod
    def from_env(secret: Optional[str] = None) -> "StorageConfig":
        return StorageConfig(
            root_dir=os.getenv("SCOUT_STORAGE_DIR", os.path.join("run", "storage")),
            public_base_url=(os.getenv("SCOUT_PUBLIC_BASE_URL") or "http://localhost:8000").rstrip("/"),
            secret=secret or os.getenv("JWT_SECRET", "dev-secret-change-me"),
            url_expires_sec=env_int("SCOUT_UPLOAD_URL_EXPIRES_SEC", 600),
        )


@dataclass
class ClientConfig:
    base_url: str
    token: Optional[str] = None
    response_timeout_sec: float = 90.0
    slow_response_sec: float = 10.0
    typing_tick_ms: int = 15

    @staticmethod
    def from_env() -> "ClientConfig":
        return ClientConfig(
            base_url=(os.getenv("SCOUT_API_URL") or "http://localhost:8000").rstrip("/"),
            token=os.getenv("SCOUT_API_TOKEN") or None,
            response_timeout_sec=float(env_int("SCOUT_RESPONSE_TIMEOUT_SEC", 90)),
            slow_response_sec=float(env_int("SCOUT_SLOW_RESPONSE_SEC", 10)),
            typing_tick_ms=env_int("SCOUT_TYPING_TICK_MS", 15),
        )
