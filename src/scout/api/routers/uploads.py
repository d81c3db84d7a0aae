from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from ...client.routing import ALL_ALLOWED_MIME_TYPES, BRAND_CATEGORIES, is_upload_enabled, route_file
from ...config import MAX_ATTACHMENT_BYTES
from ...domain.errors import InvalidInput, NotFound
from ...domain.models import Project, UploadRequest, UploadTicket
from ...infrastructure.asset_store import AssetStore, get_asset_store
from ...infrastructure.object_storage import ObjectStorage, get_object_storage, safe_file_name
from ...infrastructure.repository import ProjectRepository, get_repo
from ...security.auth import User
from ...security.rbac import Permission, can_access_project, require_permission

router = APIRouter(tags=["uploads"])


def _load_project(project_id: str, user: User, repo: ProjectRepository) -> Project:
    project = repo.get(project_id)
    if project is None or not can_access_project(user, project):
        raise NotFound()
    return project


def _check_file(req: UploadRequest) -> None:
    if req.file_type not in ALL_ALLOWED_MIME_TYPES:
        raise InvalidInput(f"file type not allowed: {req.file_type}")
    if req.file_size <= 0:
        raise InvalidInput("file_name, file_size, and file_type are required")
    if req.file_size > MAX_ATTACHMENT_BYTES:
        raise InvalidInput("file too large. max 20MB per file.")


@router.post("/projects/{project_id}/documents", response_model=UploadTicket)
def create_document_upload(
    project_id: str,
    req: UploadRequest,
    user: User = Depends(require_permission(Permission.ASSET_UPLOAD)),
    repo: ProjectRepository = Depends(get_repo),
    storage: ObjectStorage = Depends(get_object_storage),
) -> UploadTicket:
    _load_project(project_id, user, repo)
    _check_file(req)
    path = f"{project_id}/{int(time.time() * 1000)}_{safe_file_name(req.file_name)}"
    signed = storage.create_signed_upload("documents", path, req.file_type, MAX_ATTACHMENT_BYTES)
    return UploadTicket(bucket="documents", **signed)


@router.post("/projects/{project_id}/brand-assets", response_model=UploadTicket)
def create_brand_asset_upload(
    project_id: str,
    req: UploadRequest,
    user: User = Depends(require_permission(Permission.ASSET_UPLOAD)),
    repo: ProjectRepository = Depends(get_repo),
    storage: ObjectStorage = Depends(get_object_storage),
    assets: AssetStore = Depends(get_asset_store),
) -> UploadTicket:
    project = _load_project(project_id, user, repo)
    if not is_upload_enabled(project.status):
        raise InvalidInput(f"uploads are not available while the project is {project.status}")
    _check_file(req)
    category = req.category or route_file(req.file_name).category or "other"
    if category not in BRAND_CATEGORIES:
        raise InvalidInput(f"invalid category: {category}")
    if req.source not in ("upload", "revision"):
        raise InvalidInput(f"invalid source: {req.source}")

    safe_name = safe_file_name(req.file_name)
    path = f"{project_id}/{category}/{int(time.time() * 1000)}_{safe_name}"
    signed = storage.create_signed_upload("brand-assets", path, req.file_type, MAX_ATTACHMENT_BYTES)
    asset = assets.create(
        project_id,
        category=category,
        file_name=safe_name,
        mime_type=req.file_type,
        file_size=req.file_size,
        storage_path=path,
        source=req.source,
    )
    return UploadTicket(bucket="brand-assets", asset=asset, **signed)


@router.put("/storage/upload/{token}")
async def upload_object(
    token: str,
    request: Request,
    storage: ObjectStorage = Depends(get_object_storage),
) -> dict:
    data = await request.body()
    stored = await run_in_threadpool(storage.put_object, token, data)
    return {"name": stored.name, "size": stored.size}
