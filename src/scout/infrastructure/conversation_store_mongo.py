from __future__ import annotations

from datetime import UTC, datetime
import os
from typing import Any, Dict, List, Optional
import uuid

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from ..domain.models import ConversationTurn, MessageAttachment


_client: MongoClient | None = None


def get_mongo_db() -> Database:
    global _client
    if _client is None:
        mongo_url = os.getenv("MONGO_URL", "mongodb://localhost:27017")
        _client = MongoClient(mongo_url, serverSelectionTimeoutMS=2000, tz_aware=True)
    return _client[os.getenv("MONGO_DB", "scout")]


class MongoConversationStore:
    def __init__(self, db: Optional[Database] = None) -> None:
        db = db if db is not None else get_mongo_db()
        self._turns = db["scout_messages"]
        self._turns.create_index("turn_id", unique=True)
        self._turns.create_index([("project_id", ASCENDING), ("created_at", ASCENDING)])
        self._turns.create_index([("author_id", ASCENDING), ("role", ASCENDING), ("created_at", DESCENDING)])

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
        doc = {
            "turn_id": turn_id or uuid.uuid4().hex,
            "project_id": project_id,
            "author_id": author_id,
            "role": role,
            "content": content,
            "created_at": datetime.now(UTC),
            "attachments": [a.model_dump() for a in attachments or []],
            "edit_brief_md": edit_brief_md,
        }
        try:
            self._turns.insert_one(doc)
        except DuplicateKeyError:
            existing = self._turns.find_one({"turn_id": doc["turn_id"]})
            if existing:
                return self._to_turn(existing)
            raise
        return self._to_turn(doc)

    def get_turn(self, turn_id: str) -> Optional[ConversationTurn]:
        doc = self._turns.find_one({"turn_id": turn_id})
        return self._to_turn(doc) if doc else None

    def list_turns(self, project_id: str, limit: Optional[int] = None) -> List[ConversationTurn]:
        if limit is not None and limit <= 0:
            return []
        cursor = self._turns.find({"project_id": project_id}).sort("created_at", DESCENDING)
        if limit is not None:
            cursor = cursor.limit(limit)
        docs = list(cursor)
        docs.reverse()
        return [self._to_turn(doc) for doc in docs]

    def count_turns(self, project_id: str) -> int:
        return int(self._turns.count_documents({"project_id": project_id}))

    def latest_user_turn_at(self, author_id: str) -> Optional[datetime]:
        doc = self._turns.find_one(
            {"author_id": author_id, "role": "user"},
            sort=[("created_at", DESCENDING)],
            projection={"created_at": 1},
        )
        return doc["created_at"] if doc else None

    def count_user_turns_since(self, project_id: str, since: datetime) -> int:
        return int(
            self._turns.count_documents({"project_id": project_id, "role": "user", "created_at": {"$gte": since}})
        )

    def count_briefs(self, project_id: str) -> int:
        return int(self._turns.count_documents({"project_id": project_id, "edit_brief_md": {"$ne": None}}))

    def list_briefs(self, project_id: str, limit: int = 10) -> List[ConversationTurn]:
        cursor = (
            self._turns.find({"project_id": project_id, "edit_brief_md": {"$ne": None}})
            .sort("created_at", DESCENDING)
            .limit(max(1, limit))
        )
        return [self._to_turn(doc) for doc in cursor]

    def _to_turn(self, doc: Dict[str, Any]) -> ConversationTurn:
        data = dict(doc)
        data.pop("_id", None)
        return ConversationTurn(**data)
