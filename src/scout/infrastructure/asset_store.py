from __future__ import annotations

from datetime import UTC, datetime
from threading import RLock
from typing import Dict, Iterable, List, Optional, Protocol
import os
import uuid

from ..domain.models import BrandAsset


class AssetStore(Protocol):
    def create(
        self,
        project_id: str,
        *,
        category: str,
        file_name: str,
        mime_type: str,
        file_size: int,
        storage_path: str,
        source: str = "upload",
    ) -> BrandAsset: ...

    def get_many(self, asset_ids: Iterable[str], project_id: str) -> List[BrandAsset]: ...

    def link_to_message(self, asset_ids: Iterable[str], project_id: str, turn_id: str) -> int: ...

    def list_for_project(self, project_id: str) -> List[BrandAsset]: ...


def summarize_assets(assets: Iterable[BrandAsset]) -> Optional[dict]:
    """Count assets per category plus revision uploads. None when there are no assets."""
    items = list(assets)
    if not items:
        return None
    by_category: Dict[str, int] = {}
    for a in items:
        by_category[a.category] = by_category.get(a.category, 0) + 1
    return {
        "total": len(items),
        "by_category": by_category,
        "revision_count": sum(1 for a in items if a.source == "revision"),
    }


class InMemoryAssetStore:
    def __init__(self) -> None:
        self._assets: Dict[str, BrandAsset] = {}
        self._lock = RLock()

    def create(
        self,
        project_id: str,
        *,
        category: str,
        file_name: str,
        mime_type: str,
        file_size: int,
        storage_path: str,
        source: str = "upload",
    ) -> BrandAsset:
        asset = BrandAsset(
            asset_id=uuid.uuid4().hex,
            project_id=project_id,
            category=category,
            source=source,
            file_name=file_name,
            mime_type=mime_type,
            file_size=file_size,
            storage_path=storage_path,
            created_at=datetime.now(UTC),
        )
        with self._lock:
            self._assets[asset.asset_id] = asset
        return asset

    def get_many(self, asset_ids: Iterable[str], project_id: str) -> List[BrandAsset]:
        with self._lock:
            out = []
            for aid in asset_ids:
                asset = self._assets.get(aid)
                # Records belonging to another project are invisible
                if asset is not None and asset.project_id == project_id:
                    out.append(asset)
            return out

    def link_to_message(self, asset_ids: Iterable[str], project_id: str, turn_id: str) -> int:
        linked = 0
        with self._lock:
            for aid in asset_ids:
                asset = self._assets.get(aid)
                if asset is None or asset.project_id != project_id:
                    continue
                asset.linked_message_id = turn_id
                linked += 1
        return linked

    def list_for_project(self, project_id: str) -> List[BrandAsset]:
        with self._lock:
            return sorted(
                (a for a in self._assets.values() if a.project_id == project_id),
                key=lambda a: a.created_at,
            )


class MongoAssetStore:
    def __init__(self) -> None:
        from .conversation_store_mongo import get_mongo_db

        self._assets = get_mongo_db()["brand_assets"]
        self._assets.create_index("asset_id", unique=True)
        self._assets.create_index("project_id")

    def create(
        self,
        project_id: str,
        *,
        category: str,
        file_name: str,
        mime_type: str,
        file_size: int,
        storage_path: str,
        source: str = "upload",
    ) -> BrandAsset:
        asset = BrandAsset(
            asset_id=uuid.uuid4().hex,
            project_id=project_id,
            category=category,
            source=source,
            file_name=file_name,
            mime_type=mime_type,
            file_size=file_size,
            storage_path=storage_path,
            created_at=datetime.now(UTC),
        )
        self._assets.insert_one(asset.model_dump())
        return asset

    def get_many(self, asset_ids: Iterable[str], project_id: str) -> List[BrandAsset]:
        ids = list(asset_ids)
        if not ids:
            return []
        cursor = self._assets.find({"asset_id": {"$in": ids}, "project_id": project_id})
        return [self._to_asset(doc) for doc in cursor]

    def link_to_message(self, asset_ids: Iterable[str], project_id: str, turn_id: str) -> int:
        ids = list(asset_ids)
        if not ids:
            return 0
        result = self._assets.update_many(
            {"asset_id": {"$in": ids}, "project_id": project_id},
            {"$set": {"linked_message_id": turn_id}},
        )
        return int(result.modified_count)

    def list_for_project(self, project_id: str) -> List[BrandAsset]:
        cursor = self._assets.find({"project_id": project_id}).sort("created_at", 1)
        return [self._to_asset(doc) for doc in cursor]

    def _to_asset(self, doc: dict) -> BrandAsset:
        data = dict(doc)
        data.pop("_id", None)
        return BrandAsset(**data)


_store: AssetStore | None = None


def get_asset_store() -> AssetStore:
    global _store
    if _store is not None:
        return _store
    if os.getenv("SCOUT_STORE_IMPL", "memory").lower() == "mongo":
        _store = MongoAssetStore()
    else:
        _store = InMemoryAssetStore()
    return _store
