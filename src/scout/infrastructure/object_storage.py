from __future__ import annotations

"""Object storage for uploaded files.

The bundled backend keeps bytes on local disk and hands out signed upload
URLs whose token is a short-lived JWT naming the bucket, path and size limit.
A client PUTs the raw bytes straight to that URL, bypassing the gateway's
own request size limits.
"""

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Protocol
import logging
import re

import jwt

from ..config import StorageConfig
from ..domain.errors import InvalidInput, Unauthorized
from ..domain.models import StoredObject


logger = logging.getLogger("scout.storage")

BUCKETS = ("documents", "brand-assets")
_UPLOAD_AUDIENCE = "scout-upload"
_SAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9._-]")


def safe_file_name(name: str) -> str:
    return _SAFE_NAME_RE.sub("_", name)


class ObjectStorage(Protocol):
    def create_signed_upload(self, bucket: str, path: str, content_type: str, max_bytes: int) -> Dict[str, str]: ...

    def put_object(self, token: str, data: bytes) -> StoredObject: ...

    def list_objects(self, bucket: str, prefix: str, limit: int = 100) -> List[StoredObject]: ...

    def read_object(self, bucket: str, path: str) -> Optional[bytes]: ...


class LocalObjectStorage:
    def __init__(self, cfg: StorageConfig) -> None:
        self._cfg = cfg
        self._root = Path(cfg.root_dir).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, bucket: str, path: str) -> Path:
        if bucket not in BUCKETS:
            raise InvalidInput(f"unknown bucket: {bucket}")
        base = (self._root / bucket).resolve()
        target = (base / path).resolve()
        if base != target and base not in target.parents:
            raise InvalidInput("invalid storage path")
        return target

    def create_signed_upload(self, bucket: str, path: str, content_type: str, max_bytes: int) -> Dict[str, str]:
        self._resolve(bucket, path)
        now = datetime.now(UTC)
        payload = {
            "aud": _UPLOAD_AUDIENCE,
            "bucket": bucket,
            "path": path,
            "content_type": content_type,
            "max_bytes": int(max_bytes),
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self._cfg.url_expires_sec)).timestamp()),
        }
        token = jwt.encode(payload, self._cfg.secret, algorithm="HS256")
        return {
            "token": token,
            "path": path,
            "signed_url": f"{self._cfg.public_base_url}/storage/upload/{token}",
        }

    def put_object(self, token: str, data: bytes) -> StoredObject:
        try:
            claims = jwt.decode(token, self._cfg.secret, algorithms=["HS256"], audience=_UPLOAD_AUDIENCE)
        except jwt.ExpiredSignatureError:
            raise Unauthorized("upload url expired")
        except jwt.InvalidTokenError:
            raise Unauthorized("invalid upload url")
        if len(data) > int(claims.get("max_bytes", self._cfg.max_file_bytes)):
            raise InvalidInput("file too large. max 20MB per file.")
        target = self._resolve(claims["bucket"], claims["path"])
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("object_stored", extra={"bucket": claims["bucket"], "path": claims["path"], "size": len(data)})
        return StoredObject(name=target.name, size=len(data), created_at=datetime.now(UTC))

    def list_objects(self, bucket: str, prefix: str, limit: int = 100) -> List[StoredObject]:
        folder = self._resolve(bucket, prefix)
        if not folder.is_dir():
            return []
        items = []
        for entry in folder.iterdir():
            if not entry.is_file():
                continue
            st = entry.stat()
            items.append(
                StoredObject(
                    name=entry.name,
                    size=st.st_size,
                    created_at=datetime.fromtimestamp(st.st_mtime, UTC),
                )
            )
        items.sort(key=lambda o: (o.created_at, o.name))
        return items[: max(0, limit)]

    def read_object(self, bucket: str, path: str) -> Optional[bytes]:
        target = self._resolve(bucket, path)
        if not target.is_file():
            return None
        return target.read_bytes()


_storage: ObjectStorage | None = None


def get_object_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        _storage = LocalObjectStorage(StorageConfig.from_env())
    return _storage
