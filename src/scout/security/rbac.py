from __future__ import annotations

"""RBAC helpers: role permissions and project ownership checks."""
from enum import Enum
from typing import Set, Callable
from fastapi import Depends, HTTPException, status

from .auth import User, get_current_user
from ..domain.models import Project


class Permission(str, Enum):
    PROJECT_READ = "project:read"
    CHAT_WRITE = "chat:write"
    ASSET_UPLOAD = "asset:upload"
    ADMIN = "admin:*"


ROLE_PERMISSIONS = {
    "viewer": {Permission.PROJECT_READ},
    "client": {Permission.PROJECT_READ, Permission.CHAT_WRITE, Permission.ASSET_UPLOAD},
    "admin": {Permission.ADMIN},
}


def user_permissions(user: User) -> Set[Permission]:
    perms: Set[Permission] = set()
    for role in user.roles:
        perms |= ROLE_PERMISSIONS.get(role, set())
    return perms


def _is_authorized(user: User, required: Permission) -> bool:
    perms = user_permissions(user)
    if Permission.ADMIN in perms:
        return True
    return required in perms


def can_access_project(user: User, project: Project) -> bool:
    """Owners see their own projects; admins see everything."""
    if Permission.ADMIN in user_permissions(user):
        return True
    return project.owner_id == user.id


def require_permission(required: Permission) -> Callable[[User], User]:
    """FastAPI dependency to enforce a single permission on a route."""

    def dependency(user: User = Depends(get_current_user)) -> User:
        if not _is_authorized(user, required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user

    return dependency
