"""Side effects of a completed assistant reply.

Runs once per completed stream, keyed on the assistant turn id the gateway
allocated up front. The store inserts a turn id at most once and notifications
are unique per (turn id, type, recipient), so running it again for the same
turn adds nothing.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from ..config import GatewayConfig
from ..domain.models import ConversationTurn, Project
from ..infrastructure.conversation_store import ConversationStore
from ..infrastructure.events import publish_event
from ..infrastructure.notification_store import NotificationStore
from ..infrastructure.repository import ProjectRepository
from ..observability.metrics import NOTIFICATIONS
from ..security.auth import User, find_accounts_by_emails
from .briefs import extract_brief
from .mailer import send_brief_notice


logger = logging.getLogger("scout.pipeline")

NOTIFICATION_TYPE = "brief_submitted"

# Brief emails run here, off the request that produced the brief
_mail_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="scout-mail")


def _submit_background(job: Callable[[], None]) -> None:
    _mail_executor.submit(job)


@dataclass
class PipelineResult:
    turn: Optional[ConversationTurn]
    brief: Optional[str] = None
    notified: int = 0
    status_changed: bool = False


class SideEffectPipeline:
    def __init__(
        self,
        store: ConversationStore,
        notifications: NotificationStore,
        repo: ProjectRepository,
        cfg: GatewayConfig,
        *,
        send_email: Callable[[str, str, str], bool] = send_brief_notice,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        dispatch: Callable[[Callable[[], None]], None] = _submit_background,
    ) -> None:
        self._store = store
        self._notifications = notifications
        self._repo = repo
        self._cfg = cfg
        self._send_email = send_email
        self._now = now
        self._dispatch = dispatch

    def run(self, turn_id: str, project: Project, text: str) -> PipelineResult:
        brief = extract_brief(text)
        try:
            turn = self._store.add_turn(
                project.project_id,
                "assistant",
                text,
                edit_brief_md=brief,
                turn_id=turn_id,
            )
        except Exception:
            # Text already reached the caller; nothing to roll back
            logger.exception("assistant_turn_persist_failed", extra={"turn_id": turn_id})
            return PipelineResult(turn=None, brief=brief)

        if brief is None:
            return PipelineResult(turn=turn)

        publish_event(
            "brief.submitted",
            {"project_id": project.project_id, "turn_id": turn_id, "status": project.status},
        )
        status_changed = self._transition_status(project)
        notified = self._notify_admins(turn_id, project, brief)
        return PipelineResult(turn=turn, brief=brief, notified=notified, status_changed=status_changed)

    def resolve_admins(self) -> List[User]:
        return find_accounts_by_emails(self._cfg.admin_emails)

    def _notify_admins(self, turn_id: str, project: Project, brief: str) -> int:
        summary = next((ln.strip("# ").strip() for ln in brief.splitlines() if ln.strip("# ").strip()), "")
        body = f"scout generated a brief for {project.project_name}: {summary or 'edit brief submitted'}"
        created = 0
        for admin in self.resolve_admins():
            try:
                item = self._notifications.add(
                    admin.id,
                    project.project_id,
                    turn_id,
                    NOTIFICATION_TYPE,
                    "new edit brief",
                    body,
                )
            except Exception:
                logger.exception("notification_insert_failed", extra={"turn_id": turn_id, "user_id": admin.id})
                continue
            if item is None:
                logger.info("notification_already_sent", extra={"turn_id": turn_id, "user_id": admin.id})
                continue
            created += 1
            NOTIFICATIONS.labels(type=NOTIFICATION_TYPE).inc()
            self._queue_email(turn_id, admin, project.project_name, brief)
        return created

    def _transition_status(self, project: Project) -> bool:
        cooldown_until = self._now() + timedelta(minutes=self._cfg.revision_cooldown_minutes)
        try:
            if self._repo.compare_and_set_status(project.project_id, "review", "revision", cooldown_until):
                logger.info("status_transitioned", extra={"project_id": project.project_id, "to": "revision"})
                return True
            self._repo.bump_revision_cooldown(project.project_id, cooldown_until)
        except Exception:
            logger.exception("status_transition_failed", extra={"project_id": project.project_id})
        return False

    def _queue_email(self, turn_id: str, admin: User, project_name: str, brief: str) -> None:
        def job() -> None:
            try:
                self._send_email(admin.email, project_name, brief)
            except Exception:
                logger.exception("brief_email_failed", extra={"turn_id": turn_id, "user_id": admin.id})

        try:
            self._dispatch(job)
        except RuntimeError:
            # Executor already shut down
            logger.exception("brief_email_not_queued", extra={"turn_id": turn_id, "user_id": admin.id})
