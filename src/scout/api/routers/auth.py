from __future__ import annotations

from fastapi import APIRouter, Depends

from ...security.auth import User, get_current_user
from ...security.rbac import user_permissions

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me")
def me(user: User = Depends(get_current_user)) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "roles": user.roles,
        "is_admin": user.is_admin,
        "permissions": sorted(p.value for p in user_permissions(user)),
    }
