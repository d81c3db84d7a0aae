"""Client conversation engine.

Owns the turn list for one project conversation and runs one turn at a time:
``IDLE -> SUBMITTING -> STREAMING -> IDLE``, with a detour through ``ERROR``
when a turn fails. Network reading and typing playback run as two tasks that
only share the session's :class:`StreamBuffer`; the assistant turn is appended
once the renderer has revealed everything and the stream has finished.

Cancellation (``cancel()``, or ``close()`` on teardown) is silent: nothing is
appended and no error is shown.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from ..config import ClientConfig
from ..domain.errors import InvalidInput, NotFound, RateLimited, ScoutError, Unauthorized, UploadFailed
from ..services.briefs import has_brief
from ..services.streaming import parse_frame_line
from .greeting import build_greeting, prompt_suggestions
from .models import AttachmentRef, ConversationTurn, StreamSession, TurnIds
from .renderer import StreamBuffer, TypingRenderer, play_text
from .routing import FileRoute, is_upload_enabled, route_file, stage_files
from .scroll import AutoScroller
from .uploads import UploadOrchestrator, UploadResult, error_message

logger = logging.getLogger("scout.client")

GENERIC_ERROR = "something went wrong. try again."
TIMEOUT_ERROR = "scout took too long to respond. try again."
SLOW_NOTICE = "still working on this. hang tight."

TOOL_LABELS = {
    "read_document": "reading your documents",
    "get_section_detail": "reviewing section details",
    "list_edit_briefs": "checking previous briefs",
    "list_brand_assets": "checking brand assets",
}

_STATUS_ERRORS = {400: InvalidInput, 401: Unauthorized, 403: Unauthorized, 404: NotFound}


def tool_label(name: Optional[str]) -> str:
    return TOOL_LABELS.get(name or "", "thinking")


class EngineState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    STREAMING = "streaming"
    ERROR = "error"


@dataclass
class StagedFile:
    file_name: str
    mime_type: str
    data: bytes
    route: FileRoute

    @property
    def byte_size(self) -> int:
        return len(self.data)


def make_http_client(cfg: ClientConfig) -> httpx.AsyncClient:
    headers = {"Authorization": f"Bearer {cfg.token}"} if cfg.token else {}
    return httpx.AsyncClient(
        base_url=cfg.base_url,
        headers=headers,
        timeout=httpx.Timeout(cfg.response_timeout_sec, connect=10.0),
    )


def _raise_for_status(resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return
    message = error_message(resp, GENERIC_ERROR)
    if resp.status_code == 429:
        raise RateLimited(message, retry_after_seconds=int(resp.headers.get("Retry-After") or 1))
    raise _STATUS_ERRORS.get(resp.status_code, ScoutError)(message)


def _route_summary(staged: StagedFile) -> str:
    if staged.route.bucket == "documents":
        return f"{staged.file_name} → documents"
    return f"{staged.file_name} → brand assets ({staged.route.label})"


class ConversationEngine:
    def __init__(
        self,
        project_id: str,
        project_name: str,
        *,
        http: httpx.AsyncClient,
        config: ClientConfig,
        project_status: Optional[str] = None,
        initial_messages: Optional[Sequence[Dict[str, Any]]] = None,
        uploader: Optional[UploadOrchestrator] = None,
        scroller: Optional[AutoScroller] = None,
        on_change: Optional[Callable[[], None]] = None,
        on_brief_detected: Optional[Callable[[ConversationTurn], None]] = None,
    ) -> None:
        self.project_id = project_id
        self.project_name = project_name
        self.project_status = project_status
        self._http = http
        self._cfg = config
        self._uploader = uploader or UploadOrchestrator(http)
        self._scroller = scroller
        self._on_change = on_change
        self._on_brief_detected = on_brief_detected

        records = list(initial_messages or [])
        self._ids = TurnIds(start=len(records))
        self.turns: List[ConversationTurn] = [ConversationTurn.from_record(i, r) for i, r in enumerate(records)]
        self.state = EngineState.IDLE
        self.session: Optional[StreamSession] = None
        self.staged: List[StagedFile] = []
        self.staging_error: Optional[str] = None
        self.streaming_text = ""
        self.greeting_text = ""
        self._greeting_playing = False

    # -- view state ---------------------------------------------------------

    @property
    def upload_enabled(self) -> bool:
        return is_upload_enabled(self.project_status)

    @property
    def can_send(self) -> bool:
        if self._greeting_playing or self.session is not None:
            return False
        return self.state in (EngineState.IDLE, EngineState.ERROR)

    @property
    def suggestions(self) -> List[str]:
        return prompt_suggestions(self.project_status)

    @property
    def status_label(self) -> Optional[str]:
        """Tool or slow-response notice, shown only while no reply text is visible."""
        session = self.session
        if session is None or session.buffer.revealed:
            return None
        if session.tool_status_label:
            return session.tool_status_label
        return SLOW_NOTICE if session.slow_response else None

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _append_turn(self, role: str, text: str, **kwargs: Any) -> ConversationTurn:
        turn = ConversationTurn(id=self._ids.next(), role=role, text=text, **kwargs)
        self.turns.append(turn)
        self._changed()
        return turn

    # -- history and greeting -------------------------------------------------

    async def load_history(self, limit: int = 100) -> List[ConversationTurn]:
        if self.turns:
            return self.turns
        resp = await self._http.get(f"/projects/{self.project_id}/messages", params={"limit": limit})
        _raise_for_status(resp)
        for record in resp.json():
            self.turns.append(ConversationTurn.from_record(self._ids.next(), record))
        self._changed()
        return self.turns

    async def play_greeting(self) -> Optional[ConversationTurn]:
        """Type the local greeting. Skipped when the conversation has history.

        Sending is blocked until the greeting turn is appended.
        """
        if self.turns:
            return None

        def reveal(visible: str) -> None:
            self.greeting_text = visible
            self._changed()

        self._greeting_playing = True
        try:
            text = await play_text(
                build_greeting(self.project_name, self.project_status),
                tick_ms=self._cfg.typing_tick_ms,
                on_reveal=reveal,
            )
        finally:
            self._greeting_playing = False
            self.greeting_text = ""
        return self._append_turn("assistant", text)

    # -- staging ------------------------------------------------------------

    def stage(self, files: Sequence[Tuple[str, str, bytes]]) -> Optional[str]:
        """Stage ``(name, mime, data)`` files. Returns the rejection message, if any."""
        if not self.upload_enabled:
            self.staging_error = "uploads are not available right now"
            return self.staging_error
        staged_bytes = sum(f.byte_size for f in self.staged)
        accepted, error = stage_files(staged_bytes, [(name, mime, len(data)) for name, mime, data in files])
        for i in accepted:
            name, mime, data = files[i]
            self.staged.append(StagedFile(name, mime, data, route_file(name)))
        self.staging_error = error
        self._changed()
        return error

    def unstage(self, index: int) -> None:
        if 0 <= index < len(self.staged):
            del self.staged[index]
            self.staging_error = None
            self._changed()

    # -- submission -----------------------------------------------------------

    async def submit_prompt(self, prompt: str) -> Optional[ConversationTurn]:
        """Prompt-suggestion click: sends right away unless a turn is in flight."""
        await asyncio.sleep(0)
        if not self.can_send:
            return None
        return await self.send(prompt)

    async def send(self, text: str) -> Optional[ConversationTurn]:
        """Run one turn. Returns the assistant turn, or None when nothing was appended."""
        message = text.strip()
        if not self.can_send or (not message and not self.staged):
            return None
        staged, self.staged = self.staged, []

        session = StreamSession()
        self.session = session
        self.state = EngineState.SUBMITTING
        refs = [AttachmentRef(s.file_name, s.mime_type, s.byte_size) for s in staged]
        self._append_turn("user", message, attachments=refs)
        if self._scroller is not None:
            self._scroller.force_to_bottom()

        try:
            uploads = asyncio.get_running_loop().create_task(self._upload_staged(staged, refs, message))
            if not await self._await_unless_cancelled(uploads, session) or session.cancelled:
                uploads.cancel()
                await asyncio.gather(uploads, return_exceptions=True)
                for ref in refs:
                    if ref.upload_progress is not None:
                        ref.fail("upload cancelled")
                return None
            outgoing, assets = uploads.result()
            return await self._run_stream(session, outgoing, assets)
        finally:
            self.session = None
            self.streaming_text = ""
            if self.state != EngineState.ERROR:
                self.state = EngineState.IDLE
            self._changed()

    def cancel(self) -> None:
        if self.session is not None:
            self.session.cancel()

    def close(self) -> None:
        """Teardown: an in-flight turn is dropped silently."""
        self.cancel()

    async def _upload_staged(
        self,
        staged: List[StagedFile],
        refs: List[AttachmentRef],
        message: str,
    ) -> Tuple[str, List[Dict[str, Any]]]:
        if not staged:
            return message, []

        async def upload_one(item: StagedFile, ref: AttachmentRef) -> UploadResult:
            def progress(percent: int) -> None:
                ref.set_progress(percent)
                self._changed()

            result = await self._uploader.upload(
                self.project_id,
                item.file_name,
                item.mime_type,
                item.data,
                route=item.route,
                on_progress=progress,
            )
            if result.ok:
                ref.complete()
            else:
                logger.info("attachment_upload_failed file=%s error=%s", item.file_name, result.error)
                ref.fail(UploadFailed.public_message)
            self._changed()
            return result

        results = await asyncio.gather(*(upload_one(s, r) for s, r in zip(staged, refs)))
        summary = ", ".join(_route_summary(s) for s, r in zip(staged, results) if r.ok)
        assets = [r.asset for r in results if r.ok and r.asset]
        if not summary:
            return message or "(attached files)", assets
        return f"{message}\n[uploaded: {summary}]".strip(), assets

    async def _await_unless_cancelled(
        self,
        task: "asyncio.Task[Any]",
        session: StreamSession,
        timeout: Optional[float] = None,
    ) -> bool:
        """Wait for ``task``; False when the session was cancelled or time ran out first."""
        cancel_wait = asyncio.ensure_future(session.cancel_event.wait())
        try:
            done, _ = await asyncio.wait({task, cancel_wait}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_wait.cancel()
        return task in done

    async def _run_stream(
        self,
        session: StreamSession,
        message: str,
        assets: List[Dict[str, Any]],
    ) -> Optional[ConversationTurn]:
        loop = asyncio.get_running_loop()
        session.slow_timer = loop.call_later(self._cfg.slow_response_sec, self._mark_slow, session)

        def reveal(visible: str) -> None:
            self.streaming_text = visible
            self._changed()

        renderer = TypingRenderer(session.buffer, tick_ms=self._cfg.typing_tick_ms, on_reveal=reveal)
        body: Dict[str, Any] = {"project_id": self.project_id, "message": message}
        if assets:
            body["attachments"] = assets
        network = loop.create_task(self._read_stream(session, body, renderer))

        try:
            finished = await self._await_unless_cancelled(network, session, self._cfg.response_timeout_sec)
            if not finished:
                session.timed_out = not session.cancelled
                network.cancel()
                await asyncio.gather(network, return_exceptions=True)
                if session.cancelled or not session.buffer.arrived:
                    await renderer.stop()
                    if session.cancelled:
                        return None
                    return self._error_turn(TIMEOUT_ERROR)
                # Keep what arrived before the ceiling
                session.buffer.mark_done()

            error = network.exception() if network.done() and not network.cancelled() else None
            if error is not None:
                await renderer.stop()
                return self._error_turn(error.message if isinstance(error, ScoutError) else GENERIC_ERROR)

            render = renderer.start()
            if not await self._await_unless_cancelled(render, session):
                await renderer.stop()
                return None
            return self._finish_turn(render.result(), session)
        finally:
            self._clear_slow(session)
            if not network.done():
                network.cancel()

    async def _read_stream(self, session: StreamSession, body: Dict[str, Any], renderer: TypingRenderer) -> None:
        buf: StreamBuffer = session.buffer
        async with self._http.stream("POST", "/scout", json=body) as resp:
            if resp.status_code >= 400:
                await resp.aread()
                _raise_for_status(resp)
            self.state = EngineState.STREAMING
            renderer.start()
            try:
                async for line in resp.aiter_lines():
                    frame = parse_frame_line(line)
                    if frame is None:
                        continue
                    kind = frame["type"]
                    if kind == "chunk":
                        if frame.get("text"):
                            buf.append(frame["text"])
                    elif kind == "tool_start":
                        session.tool_status_label = tool_label(frame.get("tool"))
                        self._clear_slow(session)
                    elif kind == "tool_done":
                        session.tool_status_label = None
                    elif kind == "error":
                        session.tool_status_label = None
                        if not buf.arrived:
                            session.errored = True
                            buf.append(frame.get("message") or GENERIC_ERROR)
                        break
                    elif kind == "done":
                        session.tool_status_label = None
                        self._clear_slow(session)
                        break
                    self._changed()
            except httpx.HTTPError:
                if not buf.arrived:
                    raise
                logger.warning("stream_interrupted project_id=%s", self.project_id)
        buf.mark_done()

    def _mark_slow(self, session: StreamSession) -> None:
        if self.session is session and not session.done:
            session.slow_response = True
            self._changed()

    def _clear_slow(self, session: StreamSession) -> None:
        if session.slow_timer is not None:
            session.slow_timer.cancel()
            session.slow_timer = None
        session.slow_response = False

    def _error_turn(self, message: str) -> ConversationTurn:
        self.state = EngineState.ERROR
        return self._append_turn("assistant", message, is_error=True)

    def _finish_turn(self, text: str, session: StreamSession) -> ConversationTurn:
        if session.errored:
            return self._error_turn(text)
        turn = self._append_turn("assistant", text, is_structured_brief=has_brief(text))
        if turn.is_structured_brief and self._on_brief_detected is not None:
            self._on_brief_detected(turn)
        return turn
