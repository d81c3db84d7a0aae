from __future__ import annotations

"""Rate limiting derived from persisted conversation history.

Nothing is counted in process: both checks read the store, so they hold across
server instances and observe a turn persisted moments earlier by the same path.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from ..config import GatewayConfig, env_flag
from ..domain.errors import RateLimited
from ..infrastructure.conversation_store import ConversationStore


def check_turn_interval(
    store: ConversationStore,
    author_id: str,
    cfg: GatewayConfig,
    now: Optional[datetime] = None,
) -> None:
    """Reject when the caller's latest persisted user turn is younger than the minimum interval.

    Raises:
        RateLimited with retry_after_seconds set to the remaining wait.
    """
    if env_flag("SCOUT_RATE_LIMIT_DISABLED"):
        return
    last = store.latest_user_turn_at(author_id)
    if last is None:
        return
    now = now or datetime.now(timezone.utc)
    age_ms = (now - last).total_seconds() * 1000
    if age_ms < cfg.min_turn_interval_ms:
        remaining = (cfg.min_turn_interval_ms - age_ms) / 1000
        raise RateLimited(retry_after_seconds=int(remaining) + 1)


def check_daily_cap(
    store: ConversationStore,
    project_id: str,
    cfg: GatewayConfig,
    now: Optional[datetime] = None,
) -> None:
    if env_flag("SCOUT_RATE_LIMIT_DISABLED"):
        return
    now = now or datetime.now(timezone.utc)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if store.count_user_turns_since(project_id, day_start) >= cfg.daily_message_cap:
        retry_after = int((day_start + timedelta(days=1) - now).total_seconds())
        raise RateLimited(
            f"daily message limit reached ({cfg.daily_message_cap} messages per project per day). try again tomorrow.",
            retry_after_seconds=retry_after,
        )
