import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from src.scout.api.main import app
from src.scout.security.auth import JwtConfig, create_access_token, decode_token, find_accounts_by_emails, register_user

from tests.utils import auth_headers


client = TestClient(app)


def test_me_requires_a_bearer_token():
    r = client.get("/auth/me")
    assert r.status_code == 401
    r = client.get("/auth/me", headers={"Authorization": "Bearer nonsense"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid token"


def test_me_returns_profile_and_permissions():
    headers, user = auth_headers("Owner@Example.com", name="Owner")
    r = client.get("/auth/me", headers=headers)
    assert r.status_code == 200
    data = r.json()
    assert data["id"] == user.id
    assert data["email"] == "owner@example.com"
    assert data["is_admin"] is False
    assert data["permissions"] == ["asset:upload", "chat:write", "project:read"]


def test_expired_token_is_rejected():
    user = register_user("late@example.com", "Late")
    token = create_access_token(user, JwtConfig(secret="dev-secret-change-me", expires_min=-1))
    with pytest.raises(HTTPException) as exc:
        decode_token(token, JwtConfig(secret="dev-secret-change-me"))
    assert exc.value.detail == "Token expired"


def test_register_rejects_duplicates_and_lookup_is_case_insensitive():
    admin = register_user("Admin@Example.com", "Admin", roles=["admin"])
    with pytest.raises(ValueError):
        register_user("admin@example.com", "Again")

    found = find_accounts_by_emails(["ADMIN@example.com", "missing@example.com", ""])
    assert [u.id for u in found] == [admin.id]
    assert found[0].is_admin is True
