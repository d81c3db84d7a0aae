"""Upload orchestrator: signed-URL handshake, then a direct PUT with progress.

Each file is independent of chat state and of the other files in the same
message. A failed file yields ``UploadResult(ok=False)``; it never raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Optional

import httpx

from ..domain.errors import UploadFailed
from .routing import FileRoute, route_file, validate_file

logger = logging.getLogger("scout.client")

ProgressCallback = Callable[[int], None]

_ASSET_FIELDS = ("asset_id", "file_name", "mime_type", "file_size", "storage_path")


@dataclass
class UploadResult:
    ok: bool
    error: Optional[str] = None
    asset: Optional[Dict[str, Any]] = None
    path: Optional[str] = None


def error_message(resp: httpx.Response, fallback: str) -> str:
    try:
        data = resp.json()
    except ValueError:
        return fallback
    if isinstance(data, dict):
        return data.get("error") or data.get("detail") or fallback
    return fallback


class UploadOrchestrator:
    def __init__(self, http: httpx.AsyncClient, *, chunk_size: int = 64 * 1024) -> None:
        self._http = http
        self._chunk_size = max(chunk_size, 1)

    async def _body(self, data: bytes, on_progress: Optional[ProgressCallback]) -> AsyncIterator[bytes]:
        total = len(data)
        sent = 0
        while sent < total:
            chunk = data[sent : sent + self._chunk_size]
            sent += len(chunk)
            yield chunk
            if on_progress is not None:
                on_progress(round(sent * 100 / total))

    async def upload(
        self,
        project_id: str,
        file_name: str,
        mime_type: str,
        data: bytes,
        *,
        route: Optional[FileRoute] = None,
        source: str = "revision",
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        rejection = validate_file(file_name, mime_type, len(data))
        if rejection:
            return UploadResult(ok=False, error=rejection)

        route = route or route_file(file_name)
        payload: Dict[str, Any] = {"file_name": file_name, "file_size": len(data), "file_type": mime_type}
        if route.bucket == "documents":
            endpoint = f"/projects/{project_id}/documents"
        else:
            endpoint = f"/projects/{project_id}/brand-assets"
            payload.update({"category": route.category, "source": source})

        try:
            if on_progress is not None:
                on_progress(0)
            resp = await self._http.post(endpoint, json=payload)
            if resp.status_code >= 400:
                return UploadResult(ok=False, error=error_message(resp, "failed to prepare upload."))
            ticket = resp.json()
            put = await self._http.put(
                ticket["signed_url"],
                content=self._body(data, on_progress),
                headers={"Content-Type": mime_type, "Content-Length": str(len(data))},
            )
            if put.status_code >= 400:
                return UploadResult(ok=False, error=error_message(put, "upload to storage failed."))
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            logger.warning("upload_failed file=%s error=%s", file_name, exc)
            return UploadResult(ok=False, error=UploadFailed.public_message)

        if on_progress is not None:
            on_progress(100)
        asset = ticket.get("asset")
        if asset:
            asset = {k: asset.get(k) for k in _ASSET_FIELDS}
        return UploadResult(ok=True, asset=asset, path=ticket.get("path"))
