from __future__ import annotations

from datetime import UTC, datetime
from threading import RLock
from typing import Dict, List, Optional, Protocol, Tuple
import os
import uuid

from ..domain.models import Notification


class NotificationStore(Protocol):
    def add(self, user_id: str, project_id: str, turn_id: str, type: str, title: str, body: str) -> Optional[Notification]:
        """Insert one notification; returns None if (turn_id, type, user_id) already exists."""
        ...

    def list_for_user(self, user_id: str) -> List[Notification]: ...

    def list_for_turn(self, turn_id: str) -> List[Notification]: ...


class InMemoryNotificationStore:
    def __init__(self) -> None:
        self._items: Dict[Tuple[str, str, str], Notification] = {}
        self._lock = RLock()

    def add(self, user_id: str, project_id: str, turn_id: str, type: str, title: str, body: str) -> Optional[Notification]:
        key = (turn_id, type, user_id)
        with self._lock:
            if key in self._items:
                return None
            item = Notification(
                notification_id=uuid.uuid4().hex,
                user_id=user_id,
                project_id=project_id,
                turn_id=turn_id,
                type=type,
                title=title,
                body=body,
                created_at=datetime.now(UTC),
            )
            self._items[key] = item
            return item

    def list_for_user(self, user_id: str) -> List[Notification]:
        with self._lock:
            return sorted(
                (n for n in self._items.values() if n.user_id == user_id),
                key=lambda n: n.created_at,
                reverse=True,
            )

    def list_for_turn(self, turn_id: str) -> List[Notification]:
        with self._lock:
            return [n for n in self._items.values() if n.turn_id == turn_id]


class MongoNotificationStore:
    def __init__(self) -> None:
        from pymongo import ASCENDING

        from .conversation_store_mongo import get_mongo_db

        self._items = get_mongo_db()["notifications"]
        self._items.create_index(
            [("turn_id", ASCENDING), ("type", ASCENDING), ("user_id", ASCENDING)],
            unique=True,
        )
        self._items.create_index("user_id")

    def add(self, user_id: str, project_id: str, turn_id: str, type: str, title: str, body: str) -> Optional[Notification]:
        from pymongo.errors import DuplicateKeyError

        item = Notification(
            notification_id=uuid.uuid4().hex,
            user_id=user_id,
            project_id=project_id,
            turn_id=turn_id,
            type=type,
            title=title,
            body=body,
            created_at=datetime.now(UTC),
        )
        try:
            self._items.insert_one(item.model_dump())
        except DuplicateKeyError:
            return None
        return item

    def list_for_user(self, user_id: str) -> List[Notification]:
        cursor = self._items.find({"user_id": user_id}).sort("created_at", -1)
        return [self._to_item(doc) for doc in cursor]

    def list_for_turn(self, turn_id: str) -> List[Notification]:
        return [self._to_item(doc) for doc in self._items.find({"turn_id": turn_id})]

    def _to_item(self, doc: dict) -> Notification:
        data = dict(doc)
        data.pop("_id", None)
        return Notification(**data)


_store: NotificationStore | None = None


def get_notification_store() -> NotificationStore:
    global _store
    if _store is not None:
        return _store
    if os.getenv("SCOUT_STORE_IMPL", "memory").lower() == "mongo":
        _store = MongoNotificationStore()
    else:
        _store = InMemoryNotificationStore()
    return _store
