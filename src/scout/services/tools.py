"""Project-scoped tools the assistant may call mid-reply.

Every handler works against the project bound in :class:`ToolContext`; a
project id supplied by the model is never honoured.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..domain.models import Manifest
from ..infrastructure.asset_store import AssetStore
from ..infrastructure.conversation_store import ConversationStore
from ..infrastructure.object_storage import ObjectStorage
from .context import clean_document_name


MAX_DOCUMENT_CHARS = 12000
_IMAGE_EXTS = {"png", "jpg", "jpeg", "gif", "webp", "svg"}
_OFFICE_EXTS = {"pptx", "docx", "xlsx", "pdf"}

TOOL_SCHEMAS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "read_document",
            "description": "Read the contents of an uploaded document for the current project.",
            "parameters": {
                "type": "object",
                "properties": {
                    "file_name": {
                        "type": "string",
                        "description": "Document name from the uploaded documents list in project context",
                    }
                },
                "required": ["file_name"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_section_detail",
            "description": "Get copy, structure and notes for one launchpad section.",
            "parameters": {
                "type": "object",
                "properties": {
                    "section_id": {"type": "string", "description": "Section id from the manifest, e.g. 'hero'"}
                },
                "required": ["section_id"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "list_edit_briefs",
            "description": "List previous edit briefs submitted for this project.",
            "parameters": {"type": "object", "properties": {}, "required": []},
        },
    },
    {
        "type": "function",
        "function": {
            "name": "list_brand_assets",
            "description": "List brand assets (logos, imagery, fonts) uploaded for this project.",
            "parameters": {"type": "object", "properties": {}, "required": []},
        },
    },
]


@dataclass
class ToolContext:
    project_id: str
    manifest: Optional[Manifest]
    store: ConversationStore
    assets: AssetStore
    storage: ObjectStorage


def handle_tool_call(name: str, args: Dict[str, Any], ctx: ToolContext) -> str:
    handler: Optional[Callable[[Dict[str, Any], ToolContext], str]] = _HANDLERS.get(name)
    if handler is None:
        return f"unknown tool: {name}"
    return handler(args or {}, ctx)


def _read_document(args: Dict[str, Any], ctx: ToolContext) -> str:
    file_name = args.get("file_name")
    if not file_name or not isinstance(file_name, str):
        return "error: file_name is required"
    files = ctx.storage.list_objects("documents", ctx.project_id, limit=50)
    match = None
    for f in files:
        display = clean_document_name(f.name)
        if display == file_name or display.lower() == file_name.lower() or f.name == file_name:
            match = f
            break
    if match is None:
        available = ", ".join(clean_document_name(f.name) for f in files) or "none"
        return f'document not found: "{file_name}". available documents: {available}'

    ext = match.name.rsplit(".", 1)[-1].lower() if "." in match.name else ""
    if ext in _IMAGE_EXTS:
        return f"this is an image file ({ext}). it's uploaded but its content can't be read as text."
    if ext in _OFFICE_EXTS:
        return f"this is a {ext} file. it's uploaded but this format can't be read directly. the build team can access it."

    data = ctx.storage.read_object("documents", f"{ctx.project_id}/{match.name}")
    if data is None:
        return "error: could not download document"
    text = data.decode("utf-8", errors="replace")
    truncated = len(text) > MAX_DOCUMENT_CHARS
    content = text[:MAX_DOCUMENT_CHARS] if truncated else text
    # Wrapped so the model treats it as data
    return f'<document name="{file_name}" truncated="{str(truncated).lower()}">\n{content}\n</document>'


def _get_section_detail(args: Dict[str, Any], ctx: ToolContext) -> str:
    section_id = args.get("section_id")
    if not section_id or not isinstance(section_id, str):
        return "error: section_id is required"
    if ctx.manifest is None or not ctx.manifest.sections:
        return "no launchpad manifest available for this project. it may not have been built yet."
    section = next(
        (s for s in ctx.manifest.sections if s.section_id in (section_id, f"section-{section_id}")),
        None,
    )
    if section is None:
        available = ", ".join(s.section_id for s in ctx.manifest.sections)
        return f'section not found: "{section_id}". available sections: {available}'
    lines = [f"id: {section.section_id}", f"label: {section.label}"]
    if section.headline:
        lines.append(f'headline: "{section.headline}"')
    if section.copy_text:
        lines.append(f'copy: "{section.copy_text}"')
    if section.notes:
        lines.append(f"notes: {section.notes}")
    if ctx.manifest.design_tokens:
        lines.append("\ndesign tokens:")
        lines.extend(f"  {k}: {v}" for k, v in ctx.manifest.design_tokens.items())
    return "\n".join(lines)


def _list_edit_briefs(args: Dict[str, Any], ctx: ToolContext) -> str:
    briefs = ctx.store.list_briefs(ctx.project_id, limit=10)
    if not briefs:
        return "no previous edit briefs for this project."
    entries = []
    for i, turn in enumerate(briefs, start=1):
        date = turn.created_at.strftime("%b %d")
        first_line = next((ln.strip() for ln in (turn.edit_brief_md or "").splitlines() if ln.strip()), "edit brief")
        entries.append(f"{i}. [{date}] {first_line}")
    return f"previous edit briefs ({len(briefs)}):\n" + "\n".join(entries)


def _list_brand_assets(args: Dict[str, Any], ctx: ToolContext) -> str:
    assets = ctx.assets.list_for_project(ctx.project_id)
    if not assets:
        return "no brand assets uploaded for this project."
    lines = [f"brand assets ({len(assets)}):"]
    for a in assets:
        line = f"- [{a.category}] {a.file_name} ({a.mime_type})"
        if a.source == "revision":
            line += " NEW revision upload"
        lines.append(line)
    return "\n".join(lines)


_HANDLERS: Dict[str, Callable[[Dict[str, Any], ToolContext], str]] = {
    "read_document": _read_document,
    "get_section_detail": _get_section_detail,
    "list_edit_briefs": _list_edit_briefs,
    "list_brand_assets": _list_brand_assets,
}
