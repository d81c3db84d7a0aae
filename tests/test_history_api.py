from fastapi.testclient import TestClient

from src.scout.api.main import app
from src.scout.infrastructure.conversation_store import get_conversation_store
from src.scout.infrastructure.notification_store import get_notification_store

from tests.utils import auth_headers, make_project


client = TestClient(app)


def test_messages_are_listed_oldest_first_with_limit():
    headers, user = auth_headers("owner@example.com")
    project = make_project(user)
    store = get_conversation_store()
    for i in range(3):
        store.add_turn(project.project_id, "user" if i % 2 == 0 else "assistant", f"m{i}")

    r = client.get(f"/projects/{project.project_id}/messages", headers=headers)
    assert r.status_code == 200
    assert [m["content"] for m in r.json()] == ["m0", "m1", "m2"]

    r = client.get(f"/projects/{project.project_id}/messages?limit=2", headers=headers)
    assert [m["content"] for m in r.json()] == ["m1", "m2"]


def test_messages_of_another_owner_are_not_found():
    _headers, owner = auth_headers("owner@example.com")
    other_headers, _ = auth_headers("other@example.com")
    project = make_project(owner)

    r = client.get(f"/projects/{project.project_id}/messages", headers=other_headers)
    assert r.status_code == 404


def test_admins_read_their_notifications():
    admin_headers, admin = auth_headers("admin@example.com", roles=["admin"])
    get_notification_store().add(admin.id, "PRJ-1", "t-1", "brief_submitted", "new edit brief", "body")

    r = client.get("/notifications", headers=admin_headers)
    assert r.status_code == 200
    [item] = r.json()
    assert item["turn_id"] == "t-1"
    assert item["title"] == "new edit brief"
