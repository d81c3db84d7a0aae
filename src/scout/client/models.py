"""In-memory records owned by the client conversation engine."""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .renderer import StreamBuffer


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class AttachmentRef:
    file_name: str
    mime_type: str
    byte_size: int
    # 0-100 while uploading, None once complete or failed
    upload_progress: Optional[int] = 0
    thumbnail_url: Optional[str] = None
    error: Optional[str] = None

    def set_progress(self, percent: int) -> None:
        if self.error is None:
            self.upload_progress = max(0, min(100, int(percent)))

    def complete(self) -> None:
        self.upload_progress = None

    def fail(self, message: str) -> None:
        self.upload_progress = None
        self.error = message


@dataclass
class ConversationTurn:
    id: int
    role: str  # user | assistant
    text: str
    created_at: str = field(default_factory=_now_iso)
    attachments: List[AttachmentRef] = field(default_factory=list)
    is_error: bool = False
    is_structured_brief: bool = False

    @classmethod
    def from_record(cls, turn_id: int, record: Dict[str, Any]) -> "ConversationTurn":
        """Build a turn from a persisted ``/projects/{id}/messages`` item."""
        attachments = [
            AttachmentRef(
                file_name=a.get("file_name", ""),
                mime_type=a.get("mime_type", ""),
                byte_size=int(a.get("file_size") or 0),
                upload_progress=None,
            )
            for a in record.get("attachments") or []
        ]
        return cls(
            id=turn_id,
            role=record.get("role", "assistant"),
            text=record.get("content", ""),
            created_at=str(record.get("created_at") or _now_iso()),
            attachments=attachments,
            is_structured_brief=bool(record.get("edit_brief_md")),
        )


class TurnIds:
    """Monotonic per-session turn ids, never derived from list positions."""

    def __init__(self, start: int = 0) -> None:
        self._counter = itertools.count(start)

    def next(self) -> int:
        return next(self._counter)


@dataclass
class StreamSession:
    """State of the one request in flight; discarded when the turn settles."""

    buffer: StreamBuffer = field(default_factory=StreamBuffer)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    tool_status_label: Optional[str] = None
    slow_response: bool = False
    slow_timer: Optional[asyncio.TimerHandle] = None
    timed_out: bool = False
    errored: bool = False

    @property
    def done(self) -> bool:
        return self.buffer.done

    @property
    def chars_revealed(self) -> int:
        return self.buffer.revealed

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()
