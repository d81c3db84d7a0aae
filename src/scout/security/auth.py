from __future__ import annotations

"""Authentication utilities: JWT handling and the account directory.

This module provides:
- Pydantic model for the authenticated caller
- An in-memory account directory (email -> id, name, roles)
- JWT encode/decode helpers
- FastAPI dependency resolving the current user from a bearer token

Env vars:
- JWT_SECRET (required in prod; default for dev)
- JWT_EXPIRES_MIN (default 60)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Dict, Iterable, List, Optional

import os
import logging
import uuid
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr


logger = logging.getLogger("scout.auth")
bearer_scheme = HTTPBearer(auto_error=False)


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val


@dataclass
class JwtConfig:
    secret: str
    algorithm: str = "HS256"
    expires_min: int = 60

    @staticmethod
    def from_env() -> "JwtConfig":
        secret = _get_env("JWT_SECRET", "dev-secret-change-me")
        expires = int(os.getenv("JWT_EXPIRES_MIN", "60"))
        return JwtConfig(secret=secret, expires_min=expires)


class User(BaseModel):
    id: str
    email: EmailStr
    name: str
    roles: list[str]

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles


# Account directory (email -> {id, name, roles}); stands in for the identity provider
USERS: Dict[str, Dict[str, object]] = {}
_USERS_LOCK = RLock()


def register_user(email: str, name: str, roles: Optional[list[str]] = None, user_id: Optional[str] = None) -> User:
    """Add an account to the directory. Open registrations get the ``client`` role."""
    email_l = email.lower()
    with _USERS_LOCK:
        if email_l in USERS:
            raise ValueError("User already exists")
        effective_roles = roles or ["client"]
        uid = user_id or uuid.uuid4().hex
        USERS[email_l] = {"id": uid, "name": name, "roles": effective_roles}
    return User(id=uid, email=email_l, name=name, roles=effective_roles)


def find_accounts_by_emails(emails: Iterable[str]) -> List[User]:
    """Direct directory lookup for a set of addresses; unknown addresses are skipped."""
    out: List[User] = []
    with _USERS_LOCK:
        for email in emails:
            email_l = (email or "").strip().lower()
            rec = USERS.get(email_l)
            if rec is None:
                continue
            out.append(
                User(
                    id=str(rec["id"]),
                    email=email_l,
                    name=str(rec.get("name", email_l)),
                    roles=list(rec.get("roles", [])),  # type: ignore[arg-type]
                )
            )
    return out


def create_access_token(user: User, cfg: Optional[JwtConfig] = None) -> str:
    cfg = cfg or JwtConfig.from_env()
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=cfg.expires_min)
    payload = {
        "sub": user.id,
        "email": user.email,
        "name": user.name,
        "roles": user.roles,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, cfg.secret, algorithm=cfg.algorithm)


def decode_token(token: str, cfg: Optional[JwtConfig] = None) -> User:
    cfg = cfg or JwtConfig.from_env()
    try:
        data = jwt.decode(token, cfg.secret, algorithms=[cfg.algorithm])
        return User(
            id=str(data["sub"]),
            email=data["email"],
            name=data.get("name", ""),
            roles=list(data.get("roles", [])),
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except (jwt.InvalidTokenError, KeyError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> User:
    """Resolve the caller from a bearer token; anything else is a 401."""
    if creds is None or not creds.scheme or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    return decode_token(creds.credentials)
