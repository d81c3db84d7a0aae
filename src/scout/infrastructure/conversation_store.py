from __future__ import annotations

from datetime import UTC, datetime
from threading import RLock
from typing import Dict, List, Optional, Protocol
import logging
import os
import uuid

from ..domain.models import ConversationTurn, MessageAttachment


logger = logging.getLogger("scout.store")


class ConversationStore(Protocol):
    def add_turn(
        self,
        project_id: str,
        role: str,
        content: str,
        *,
        author_id: Optional[str] = None,
        attachments: Optional[List[MessageAttachment]] = None,
        edit_brief_md: Optional[str] = None,
        turn_id: Optional[str] = None,
    ) -> ConversationTurn: ...

    def get_turn(self, turn_id: str) -> Optional[ConversationTurn]: ...

    def list_turns(self, project_id: str, limit: Optional[int] = None) -> List[ConversationTurn]: ...

    def count_turns(self, project_id: str) -> int: ...

    def latest_user_turn_at(self, author_id: str) -> Optional[datetime]: ...

    def count_user_turns_since(self, project_id: str, since: datetime) -> int: ...

    def count_briefs(self, project_id: str) -> int: ...

    def list_briefs(self, project_id: str, limit: int = 10) -> List[ConversationTurn]: ...


class InMemoryConversationStore:
    """Process-local turn storage. Turn ids are insert-once."""

    def __init__(self) -> None:
        self._turns: Dict[str, ConversationTurn] = {}
        self._by_project: Dict[str, List[str]] = {}
        self._lock = RLock()

    def _now(self) -> datetime:
        return datetime.now(UTC)

    def add_turn(
        self,
        project_id: str,
        role: str,
        content: str,
        *,
        author_id: Optional[str] = None,
        attachments: Optional[List[MessageAttachment]] = None,
        edit_brief_md: Optional[str] = None,
        turn_id: Optional[str] = None,
    ) -> ConversationTurn:
        with self._lock:
            tid = turn_id or uuid.uuid4().hex
            existing = self._turns.get(tid)
            if existing is not None:
                logger.info("turn_already_persisted", extra={"turn_id": tid})
                return existing
            turn = ConversationTurn(
                turn_id=tid,
                project_id=project_id,
                author_id=author_id,
                role=role,  # type: ignore[arg-type]
                content=content,
                created_at=self._now(),
                attachments=list(attachments or []),
                edit_brief_md=edit_brief_md,
            )
            self._turns[tid] = turn
            self._by_project.setdefault(project_id, []).append(tid)
            return turn

    def get_turn(self, turn_id: str) -> Optional[ConversationTurn]:
        with self._lock:
            return self._turns.get(turn_id)

    def list_turns(self, project_id: str, limit: Optional[int] = None) -> List[ConversationTurn]:
        with self._lock:
            ids = self._by_project.get(project_id, [])
            if limit is not None:
                ids = ids[-limit:] if limit > 0 else []
            return [self._turns[tid] for tid in ids]

    def count_turns(self, project_id: str) -> int:
        with self._lock:
            return len(self._by_project.get(project_id, []))

    def latest_user_turn_at(self, author_id: str) -> Optional[datetime]:
        with self._lock:
            latest: Optional[datetime] = None
            for turn in self._turns.values():
                if turn.role != "user" or turn.author_id != author_id:
                    continue
                if latest is None or turn.created_at > latest:
                    latest = turn.created_at
            return latest

    def count_user_turns_since(self, project_id: str, since: datetime) -> int:
        with self._lock:
            return sum(
                1
                for tid in self._by_project.get(project_id, [])
                if self._turns[tid].role == "user" and self._turns[tid].created_at >= since
            )

    def count_briefs(self, project_id: str) -> int:
        with self._lock:
            return sum(1 for tid in self._by_project.get(project_id, []) if self._turns[tid].edit_brief_md)

    def list_briefs(self, project_id: str, limit: int = 10) -> List[ConversationTurn]:
        with self._lock:
            briefs = [self._turns[tid] for tid in self._by_project.get(project_id, []) if self._turns[tid].edit_brief_md]
            # Newest first
            return list(reversed(briefs))[: max(0, limit)]


_store: ConversationStore | None = None


def get_conversation_store() -> ConversationStore:
    global _store
    if _store is not None:
        return _store
    impl = os.getenv("SCOUT_STORE_IMPL", "memory").lower()
    if impl == "mongo":
        from .conversation_store_mongo import MongoConversationStore

        _store = MongoConversationStore()
        return _store
    _store = InMemoryConversationStore()
    return _store
