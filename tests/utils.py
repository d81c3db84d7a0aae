from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.scout.config import GatewayConfig
from src.scout.domain.models import Project, ProjectCreate
from src.scout.infrastructure.asset_store import get_asset_store
from src.scout.infrastructure.conversation_store import get_conversation_store
from src.scout.infrastructure.notification_store import get_notification_store
from src.scout.infrastructure.object_storage import get_object_storage
from src.scout.infrastructure.repository import get_repo
from src.scout.security.auth import User, create_access_token, register_user
from src.scout.services.gateway import ConversationGateway
from src.scout.services.llm import RelayEvent
from src.scout.services.pipeline import SideEffectPipeline
from src.scout.services.streaming import parse_frame_line


def auth_headers(email: str, *, name: str = "Test User", roles: Optional[List[str]] = None) -> Tuple[Dict[str, str], User]:
    """Register an account and return bearer headers for it."""
    user = register_user(email, name, roles=roles)
    return {"Authorization": f"Bearer {create_access_token(user)}"}, user


def make_project(owner: User, *, status: str = "review", name: str = "Acme Launch") -> Project:
    return get_repo().create(ProjectCreate(project_name=name, company_name="Acme", owner_id=owner.id, status=status))


def parse_frames(body: str) -> List[Dict[str, Any]]:
    frames = []
    for line in body.splitlines():
        frame = parse_frame_line(line)
        if frame is not None:
            frames.append(frame)
    return frames


def text_events(*parts: str) -> List[RelayEvent]:
    return [RelayEvent(type="text", text=p) for p in parts]


class FakeProvider:
    """Scripted chat provider.

    ``tool_start`` events run the real tool runner before the matching
    ``tool_done`` is yielded. ``error`` is raised after the scripted events.
    """

    def __init__(self, events: Sequence[RelayEvent], *, error: Optional[Exception] = None, on_open=None) -> None:
        self.events = list(events)
        self.error = error
        self.on_open = on_open
        self.calls: List[Tuple[str, List[Dict[str, str]]]] = []
        self.tool_results: List[str] = []
        self.closed = False

    async def stream(self, system, messages, tool_runner):
        self.calls.append((system, list(messages)))
        if self.on_open is not None:
            self.on_open()
        try:
            for event in self.events:
                if event.type == "tool_start":
                    yield event
                    self.tool_results.append(await tool_runner(event.tool, {}))
                    yield RelayEvent(type="tool_done", tool=event.tool)
                    continue
                yield event
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


@dataclass
class Harness:
    gateway: ConversationGateway
    provider: FakeProvider
    cfg: GatewayConfig
    emails: List[Tuple[str, str, str]] = field(default_factory=list)

    @property
    def store(self):
        return get_conversation_store()

    @property
    def repo(self):
        return get_repo()

    @property
    def notifications(self):
        return get_notification_store()

    @property
    def assets(self):
        return get_asset_store()


def build_harness(provider: FakeProvider, cfg: Optional[GatewayConfig] = None) -> Harness:
    cfg = cfg or GatewayConfig(admin_emails=["admin@example.com"])
    emails: List[Tuple[str, str, str]] = []

    def send_email(recipient: str, project_name: str, brief: str) -> bool:
        emails.append((recipient, project_name, brief))
        return True

    pipeline = SideEffectPipeline(
        get_conversation_store(),
        get_notification_store(),
        get_repo(),
        cfg,
        send_email=send_email,
        dispatch=lambda job: job(),
    )
    gateway = ConversationGateway(
        store=get_conversation_store(),
        repo=get_repo(),
        assets=get_asset_store(),
        storage=get_object_storage(),
        notifications=get_notification_store(),
        provider=provider,
        cfg=cfg,
        pipeline=pipeline,
    )
    return Harness(gateway=gateway, provider=provider, cfg=cfg, emails=emails)
