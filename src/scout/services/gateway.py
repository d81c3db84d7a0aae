"""Conversation gateway: one request, one streamed assistant turn.

``open_turn`` performs every check that can still fail with an HTTP status
(rate limit, validation, project access, daily cap), gathers context and
persists the user's turn. ``relay`` then streams frames; nothing it does can
change the response status, so failures there become an ``error`` frame.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import uuid
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from ..config import GatewayConfig
from ..domain.errors import InvalidInput, NotFound, ScoutError, UpstreamStreamError
from ..domain.models import MessageAttachment, Project, ScoutRequest
from ..infrastructure.asset_store import AssetStore, get_asset_store, summarize_assets
from ..infrastructure.conversation_store import ConversationStore, get_conversation_store
from ..infrastructure.notification_store import NotificationStore, get_notification_store
from ..infrastructure.object_storage import ObjectStorage, get_object_storage
from ..infrastructure.repository import ProjectRepository, get_repo
from ..observability.metrics import STREAMS
from ..security.auth import User
from ..security.rate_limit import check_daily_cap, check_turn_interval
from ..security.rbac import can_access_project
from .context import ProjectContext, build_system_prompt, clean_document_name, sanitize_history, summarize_history
from .llm import ChatProvider, get_provider
from .pipeline import SideEffectPipeline
from .streaming import encode_frame
from .tools import ToolContext, handle_tool_call


logger = logging.getLogger("scout.gateway")

IMAGE_MIME_TYPES = {"image/png", "image/jpeg", "image/webp", "image/gif"}


@dataclass
class TurnPlan:
    project: Project
    user_turn_id: str
    assistant_turn_id: str
    system_prompt: str
    messages: List[Dict[str, Any]]
    tool_context: ToolContext


def _attachment_line(a: MessageAttachment) -> str:
    size_mb = a.file_size / (1024 * 1024)
    if a.mime_type in IMAGE_MIME_TYPES:
        return f"[attached image: {a.file_name}, {size_mb:.1f}MB]"
    return f"[attached file: {a.file_name}, {a.mime_type}, {size_mb:.1f}MB; available as brand asset for the build team]"


def _text_block(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


class ConversationGateway:
    def __init__(
        self,
        store: ConversationStore,
        repo: ProjectRepository,
        assets: AssetStore,
        storage: ObjectStorage,
        notifications: NotificationStore,
        provider: ChatProvider,
        cfg: GatewayConfig,
        pipeline: Optional[SideEffectPipeline] = None,
    ) -> None:
        self._store = store
        self._repo = repo
        self._assets = assets
        self._storage = storage
        self._provider = provider
        self._cfg = cfg
        self._pipeline = pipeline or SideEffectPipeline(store, notifications, repo, cfg)

    def _validate(self, body: Any) -> ScoutRequest:
        if not isinstance(body, dict):
            raise InvalidInput("invalid json body")
        try:
            req = ScoutRequest.model_validate(body)
        except ValidationError:
            raise InvalidInput("invalid request body")
        if not req.project_id:
            raise InvalidInput("project_id is required")
        message = (req.message or "").strip()
        if not req.attachments and not message:
            raise InvalidInput("message is required")
        if req.message and len(req.message) > self._cfg.max_message_length:
            raise InvalidInput(f"message must be {self._cfg.max_message_length} characters or fewer")
        if len(req.attachments) > self._cfg.max_attachments:
            raise InvalidInput(f"max {self._cfg.max_attachments} attachments per message")
        if sum(max(a.file_size, 0) for a in req.attachments) > self._cfg.max_attachment_bytes:
            raise InvalidInput("attachments exceed 20MB total limit")
        return req

    async def open_turn(self, user: User, body: Any) -> TurnPlan:
        # Rate limit first: nothing is persisted before this check
        await run_in_threadpool(check_turn_interval, self._store, user.id, self._cfg)
        req = self._validate(body)
        project_id = req.project_id or ""

        project = await run_in_threadpool(self._repo.get, project_id)
        if project is None or not can_access_project(user, project):
            raise NotFound()
        await run_in_threadpool(check_daily_cap, self._store, project_id, self._cfg)

        asset_ids = [a.asset_id for a in req.attachments if a.asset_id]
        manifest, narrative, documents, history, brief_count, project_assets, verified = await asyncio.gather(
            run_in_threadpool(self._repo.get_manifest, project_id),
            run_in_threadpool(self._repo.get_latest_narrative, project_id),
            run_in_threadpool(self._storage.list_objects, "documents", project_id, self._cfg.document_limit),
            run_in_threadpool(self._store.list_turns, project_id),
            run_in_threadpool(self._store.count_briefs, project_id),
            run_in_threadpool(self._assets.list_for_project, project_id),
            run_in_threadpool(self._assets.get_many, asset_ids, project_id),
        )

        recent, summary = summarize_history(
            history,
            threshold=self._cfg.summary_threshold,
            recent_window=self._cfg.history_window,
        )
        ctx = ProjectContext(
            project=project,
            manifest=manifest,
            document_names=[clean_document_name(d.name) for d in documents],
            brief_count=brief_count,
            brand_assets=summarize_assets(project_assets),
            conversation_summary=summary,
            narrative=narrative,
        )

        # Paths come from the asset records, never from the client
        attachments = [
            MessageAttachment(
                asset_id=a.asset_id,
                file_name=a.file_name,
                mime_type=a.mime_type,
                file_size=a.file_size,
                storage_path=a.storage_path,
            )
            for a in verified
        ]
        count = len(req.attachments)
        message_text = (req.message or "").strip() or f"[{count} file{'s' if count > 1 else ''} attached]"

        user_turn_id = uuid.uuid4().hex
        try:
            await run_in_threadpool(
                self._store.add_turn,
                project_id,
                "user",
                message_text,
                author_id=user.id,
                attachments=attachments,
                turn_id=user_turn_id,
            )
            if attachments:
                await run_in_threadpool(
                    self._assets.link_to_message,
                    [a.asset_id for a in attachments if a.asset_id],
                    project_id,
                    user_turn_id,
                )
        except Exception:
            logger.exception("user_turn_persist_failed", extra={"project_id": project_id})

        current = await self._user_content(attachments, message_text)
        messages = sanitize_history(
            [{"role": t.role, "content": t.content} for t in recent] + [{"role": "user", "content": current}]
        )
        return TurnPlan(
            project=project,
            user_turn_id=user_turn_id,
            assistant_turn_id=uuid.uuid4().hex,
            system_prompt=build_system_prompt(ctx),
            messages=messages,
            tool_context=ToolContext(
                project_id=project_id,
                manifest=manifest,
                store=self._store,
                assets=self._assets,
                storage=self._storage,
            ),
        )

    async def _user_content(self, attachments: List[MessageAttachment], message_text: str) -> Any:
        """Current user message: plain text, or content blocks when an image could be loaded."""
        if not attachments:
            return message_text
        loaded = await asyncio.gather(*(self._image_blocks(a) for a in attachments))
        blocks = [block for group in loaded for block in group] + [_text_block(message_text)]
        if any(b["type"] == "image_url" for b in blocks):
            return blocks
        return "\n".join(b["text"] for b in blocks)

    async def _image_blocks(self, a: MessageAttachment) -> List[Dict[str, Any]]:
        if a.mime_type not in IMAGE_MIME_TYPES or not a.storage_path:
            return [_text_block(_attachment_line(a))]
        try:
            data = await run_in_threadpool(self._storage.read_object, "brand-assets", a.storage_path)
        except (ScoutError, OSError):
            logger.warning("attachment_load_failed", extra={"asset_id": a.asset_id})
            return [_text_block(f"[attached image: {a.file_name}, failed to load]")]
        if data is None:
            return [_text_block(f"[attached image: {a.file_name}, could not load for preview]")]
        url = f"data:{a.mime_type};base64,{base64.b64encode(data).decode('ascii')}"
        return [{"type": "image_url", "image_url": {"url": url}}, _text_block(_attachment_line(a))]

    async def relay(
        self,
        plan: TurnPlan,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[str]:
        parts: List[str] = []

        async def run_tool(name: str, args: Dict[str, Any]) -> str:
            return await run_in_threadpool(handle_tool_call, name, args, plan.tool_context)

        try:
            async with aclosing(self._provider.stream(plan.system_prompt, plan.messages, run_tool)) as events:
                async for event in events:
                    if is_disconnected is not None and await is_disconnected():
                        logger.info("client_disconnected", extra={"turn_id": plan.assistant_turn_id})
                        STREAMS.labels(outcome="cancelled").inc()
                        return
                    if event.type == "text":
                        parts.append(event.text)
                        yield encode_frame("chunk", text=event.text)
                    else:
                        yield encode_frame(event.type, tool=event.tool)
        except (asyncio.CancelledError, GeneratorExit):
            STREAMS.labels(outcome="cancelled").inc()
            raise
        except Exception:
            logger.exception("llm_stream_failed", extra={"turn_id": plan.assistant_turn_id})
            STREAMS.labels(outcome="error").inc()
            yield encode_frame("error", message=UpstreamStreamError.public_message)
            return

        full_text = "".join(parts)
        if full_text.strip():
            await run_in_threadpool(self._pipeline.run, plan.assistant_turn_id, plan.project, full_text)
        STREAMS.labels(outcome="completed").inc()
        yield encode_frame("done", turn_id=plan.assistant_turn_id)


_gateway: ConversationGateway | None = None


def get_gateway() -> ConversationGateway:
    global _gateway
    if _gateway is None:
        _gateway = ConversationGateway(
            store=get_conversation_store(),
            repo=get_repo(),
            assets=get_asset_store(),
            storage=get_object_storage(),
            notifications=get_notification_store(),
            provider=get_provider(),
            cfg=GatewayConfig.from_env(),
        )
    return _gateway
