from __future__ import annotations

from typing import Any, List

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from ...domain.errors import NotFound
from ...domain.models import ConversationTurn, Notification
from ...infrastructure.conversation_store import ConversationStore, get_conversation_store
from ...infrastructure.notification_store import NotificationStore, get_notification_store
from ...infrastructure.repository import ProjectRepository, get_repo
from ...security.auth import User, get_current_user
from ...security.rbac import Permission, can_access_project, require_permission
from ...services.gateway import ConversationGateway, get_gateway

router = APIRouter(tags=["scout"])


@router.post("/scout")
async def scout_turn(
    request: Request,
    user: User = Depends(require_permission(Permission.CHAT_WRITE)),
    gateway: ConversationGateway = Depends(get_gateway),
) -> StreamingResponse:
    body: Any
    try:
        body = await request.json()
    except ValueError:
        body = None
    plan = await gateway.open_turn(user, body)
    return StreamingResponse(
        gateway.relay(plan, request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/projects/{project_id}/messages", response_model=List[ConversationTurn])
def list_messages(
    project_id: str,
    limit: int = Query(100, ge=1, le=500),
    user: User = Depends(require_permission(Permission.PROJECT_READ)),
    repo: ProjectRepository = Depends(get_repo),
    store: ConversationStore = Depends(get_conversation_store),
) -> List[ConversationTurn]:
    project = repo.get(project_id)
    if project is None or not can_access_project(user, project):
        raise NotFound()
    return store.list_turns(project_id, limit=limit)


@router.get("/notifications", response_model=List[Notification])
async def list_notifications(
    user: User = Depends(get_current_user),
    notifications: NotificationStore = Depends(get_notification_store),
) -> List[Notification]:
    return await run_in_threadpool(notifications.list_for_user, user.id)
