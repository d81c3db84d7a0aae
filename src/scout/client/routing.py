"""Attachment router: where a staged file goes and whether it may be staged."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import MAX_ATTACHMENT_BYTES


@dataclass(frozen=True)
class FileRoute:
    bucket: str  # "documents" | "brand-assets"
    category: Optional[str]  # None for the documents bucket
    label: str


_IMAGERY = FileRoute("brand-assets", "hero", "imagery")
_FONT = FileRoute("brand-assets", "font", "font")
DEFAULT_ROUTE = FileRoute("brand-assets", "other", "file")

ROUTE_MAP: Dict[str, FileRoute] = {
    ".png": _IMAGERY,
    ".jpg": _IMAGERY,
    ".jpeg": _IMAGERY,
    ".webp": _IMAGERY,
    ".gif": _IMAGERY,
    ".svg": FileRoute("brand-assets", "logo", "logo"),
    ".pdf": FileRoute("documents", None, "document"),
    ".pptx": FileRoute("documents", None, "presentation"),
    ".docx": FileRoute("documents", None, "document"),
    ".xlsx": FileRoute("documents", None, "spreadsheet"),
    ".txt": FileRoute("documents", None, "text file"),
    ".csv": FileRoute("documents", None, "data file"),
    ".woff": _FONT,
    ".woff2": _FONT,
    ".ttf": _FONT,
    ".otf": _FONT,
}

BRAND_CATEGORIES = ("logo", "hero", "team", "background", "font", "other")

ALL_ALLOWED_MIME_TYPES = (
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/gif",
    "image/svg+xml",
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
    "text/csv",
    "font/woff",
    "font/woff2",
    "font/ttf",
    "font/otf",
    "application/font-woff",
    "application/font-woff2",
    "application/x-font-ttf",
    "application/x-font-otf",
)

UPLOAD_DISABLED_STATUSES = ("requested", "live")


def route_file(file_name: str) -> FileRoute:
    if "." not in file_name:
        return DEFAULT_ROUTE
    ext = "." + file_name.rsplit(".", 1)[-1].lower()
    return ROUTE_MAP.get(ext, DEFAULT_ROUTE)


def is_upload_enabled(status: Optional[str]) -> bool:
    return bool(status) and status not in UPLOAD_DISABLED_STATUSES


def validate_file(file_name: str, mime_type: str, size: int, max_file_bytes: int = MAX_ATTACHMENT_BYTES) -> Optional[str]:
    """Return a user-facing rejection message, or None when the file may be staged."""
    if mime_type not in ALL_ALLOWED_MIME_TYPES:
        return f'"{file_name}" - unsupported format'
    if size > max_file_bytes:
        return f'"{file_name}" - too large, 20MB max per file'
    return None


def stage_files(
    staged_bytes: int,
    candidates: Sequence[Tuple[str, str, int]],
    max_message_bytes: int = MAX_ATTACHMENT_BYTES,
) -> Tuple[List[int], Optional[str]]:
    """Pick which of ``(name, mime, size)`` candidates can join the staged set.

    An invalid file rejects the whole batch. Once the per-message total would
    be exceeded, the remaining files are left out. Returns the accepted
    indexes and an error message, if any.
    """
    accepted: List[int] = []
    running = staged_bytes
    for i, (name, mime, size) in enumerate(candidates):
        err = validate_file(name, mime, size)
        if err:
            return [], err
        if running + size > max_message_bytes:
            return accepted, "20MB max per message"
        running += size
        accepted.append(i)
    return accepted, None
