"""Markdown transcript export."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable, Optional

from ..services.briefs import strip_brief
from .models import ConversationTurn

_UNSAFE_NAME = re.compile(r"[^a-z0-9_-]", re.IGNORECASE)


def export_markdown(project_name: str, turns: Iterable[ConversationTurn], exported_at: Optional[datetime] = None) -> str:
    exported_at = exported_at or datetime.now(timezone.utc)
    header = f"# Scout Conversation: {project_name}\n\nExported: {exported_at.isoformat()}\n\n---\n\n"
    blocks = []
    for turn in turns:
        role = "**you**" if turn.role == "user" else "**scout**"
        ts = f" _({turn.created_at})_" if turn.created_at else ""
        blocks.append(f"{role}{ts}\n\n{strip_brief(turn.text)}")
    return header + "\n\n---\n\n".join(blocks)


def export_filename(project_name: str, exported_at: Optional[datetime] = None) -> str:
    exported_at = exported_at or datetime.now(timezone.utc)
    safe = _UNSAFE_NAME.sub("-", project_name).lower()
    return f"scout-{safe}-{exported_at.date().isoformat()}.md"
