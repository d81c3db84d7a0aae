from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Dict, List, Optional, Protocol
from threading import RLock
from ..domain.models import Manifest, Narrative, Project, ProjectCreate


class ProjectRepository(Protocol):
    def list(self) -> List[Project]: ...
    def get(self, project_id: str) -> Optional[Project]: ...
    def create(self, payload: ProjectCreate) -> Project: ...
    def compare_and_set_status(
        self,
        project_id: str,
        expected: str,
        new_status: str,
        revision_cooldown_until: Optional[datetime] = None,
    ) -> bool: ...
    def bump_revision_cooldown(self, project_id: str, until: datetime) -> bool: ...
    def get_manifest(self, project_id: str) -> Optional[Manifest]: ...
    def save_manifest(self, manifest: Manifest) -> Manifest: ...
    def save_narrative(self, narrative: Narrative) -> Narrative: ...
    def get_latest_narrative(self, project_id: str) -> Optional[Narrative]: ...


class InMemoryProjectRepository:
    """Process-local project records.

    Status writes go through ``compare_and_set_status`` so a concurrent change
    made elsewhere is never overwritten.
    """

    def __init__(self) -> None:
        self._projects: Dict[str, Project] = {}
        self._manifests: Dict[str, Manifest] = {}
        self._narratives: Dict[str, List[Narrative]] = {}
        self._counter: int = 0
        self._lock = RLock()

    def _generate_project_id(self) -> str:
        self._counter += 1
        year = datetime.now(UTC).year
        return f"PRJ-{year}-{self._counter:04d}"

    def list(self) -> List[Project]:
        with self._lock:
            return list(self._projects.values())

    def get(self, project_id: str) -> Optional[Project]:
        with self._lock:
            proj = self._projects.get(project_id)
            return proj.model_copy() if proj else None

    def create(self, payload: ProjectCreate) -> Project:
        with self._lock:
            pid = self._generate_project_id()
            now = datetime.now(UTC)
            project = Project(
                project_id=pid,
                project_name=payload.project_name,
                company_name=payload.company_name,
                owner_id=payload.owner_id,
                status=payload.status,
                description=payload.description,
                target_audience=payload.target_audience,
                created_at=now,
                updated_at=now,
            )
            self._projects[pid] = project
            return project.model_copy()

    def compare_and_set_status(
        self,
        project_id: str,
        expected: str,
        new_status: str,
        revision_cooldown_until: Optional[datetime] = None,
    ) -> bool:
        with self._lock:
            proj = self._projects.get(project_id)
            if proj is None or proj.status != expected:
                return False
            proj.status = new_status
            if revision_cooldown_until is not None:
                proj.revision_cooldown_until = revision_cooldown_until
            proj.updated_at = datetime.now(UTC)
            return True

    def bump_revision_cooldown(self, project_id: str, until: datetime) -> bool:
        with self._lock:
            proj = self._projects.get(project_id)
            if proj is None:
                return False
            proj.revision_cooldown_until = until
            proj.updated_at = datetime.now(UTC)
            return True

    def get_manifest(self, project_id: str) -> Optional[Manifest]:
        with self._lock:
            return self._manifests.get(project_id)

    def save_manifest(self, manifest: Manifest) -> Manifest:
        with self._lock:
            self._manifests[manifest.project_id] = manifest
            return manifest

    def save_narrative(self, narrative: Narrative) -> Narrative:
        with self._lock:
            versions = self._narratives.setdefault(narrative.project_id, [])
            versions[:] = [n for n in versions if n.narrative_id != narrative.narrative_id]
            versions.append(narrative)
            return narrative

    def get_latest_narrative(self, project_id: str) -> Optional[Narrative]:
        with self._lock:
            live = [n for n in self._narratives.get(project_id, []) if n.status != "superseded"]
            return max(live, key=lambda n: n.version) if live else None


_repo: ProjectRepository | None = None


def get_repo() -> ProjectRepository:
    global _repo
    if _repo is not None:
        return _repo
    impl = os.getenv("SCOUT_STORE_IMPL", "memory").lower()
    if impl == "mongo":
        from .repository_mongo import MongoProjectRepository

        _repo = MongoProjectRepository()
    else:
        _repo = InMemoryProjectRepository()
    return _repo
