from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, List, Optional
import uuid

from pymongo import ReturnDocument
from pymongo.database import Database

from ..domain.models import Manifest, Narrative, Project, ProjectCreate
from .conversation_store_mongo import get_mongo_db


class MongoProjectRepository:
    def __init__(self, db: Optional[Database] = None) -> None:
        db = db if db is not None else get_mongo_db()
        self._projects = db["projects"]
        self._manifests = db["manifests"]
        self._narratives = db["project_narratives"]
        self._projects.create_index("project_id", unique=True)
        self._manifests.create_index("project_id", unique=True)
        self._narratives.create_index([("project_id", 1), ("version", -1)])

    def list(self) -> List[Project]:
        return [self._to_project(doc) for doc in self._projects.find().sort("created_at", 1)]

    def get(self, project_id: str) -> Optional[Project]:
        doc = self._projects.find_one({"project_id": project_id})
        return self._to_project(doc) if doc else None

    def create(self, payload: ProjectCreate) -> Project:
        now = datetime.now(UTC)
        project = Project(
            project_id=f"PRJ-{now.year}-{uuid.uuid4().hex[:8]}",
            created_at=now,
            updated_at=now,
            **payload.model_dump(),
        )
        self._projects.insert_one(project.model_dump())
        return project

    def compare_and_set_status(
        self,
        project_id: str,
        expected: str,
        new_status: str,
        revision_cooldown_until: Optional[datetime] = None,
    ) -> bool:
        update: Dict[str, Any] = {"status": new_status, "updated_at": datetime.now(UTC)}
        if revision_cooldown_until is not None:
            update["revision_cooldown_until"] = revision_cooldown_until
        doc = self._projects.find_one_and_update(
            {"project_id": project_id, "status": expected},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        return doc is not None

    def bump_revision_cooldown(self, project_id: str, until: datetime) -> bool:
        result = self._projects.update_one(
            {"project_id": project_id},
            {"$set": {"revision_cooldown_until": until, "updated_at": datetime.now(UTC)}},
        )
        return result.matched_count > 0

    def get_manifest(self, project_id: str) -> Optional[Manifest]:
        doc = self._manifests.find_one({"project_id": project_id})
        if not doc:
            return None
        doc.pop("_id", None)
        return Manifest(**doc)

    def save_manifest(self, manifest: Manifest) -> Manifest:
        self._manifests.replace_one({"project_id": manifest.project_id}, manifest.model_dump(), upsert=True)
        return manifest

    def save_narrative(self, narrative: Narrative) -> Narrative:
        self._narratives.replace_one({"narrative_id": narrative.narrative_id}, narrative.model_dump(), upsert=True)
        return narrative

    def get_latest_narrative(self, project_id: str) -> Optional[Narrative]:
        doc = self._narratives.find_one(
            {"project_id": project_id, "status": {"$ne": "superseded"}},
            sort=[("version", -1)],
        )
        if not doc:
            return None
        doc.pop("_id", None)
        return Narrative(**doc)

    def _to_project(self, doc: Dict[str, Any]) -> Project:
        data = dict(doc)
        data.pop("_id", None)
        return Project(**data)
