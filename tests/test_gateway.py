from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from fastapi.testclient import TestClient

from src.scout.api.main import app
from src.scout.config import GatewayConfig
from src.scout.domain.models import Narrative
from src.scout.infrastructure.object_storage import get_object_storage
from src.scout.infrastructure.repository import get_repo
from src.scout.services.gateway import get_gateway
from src.scout.services.llm import RelayEvent
from src.scout.security.auth import register_user

from tests.utils import FakeProvider, auth_headers, build_harness, make_project, parse_frames, text_events


client = TestClient(app)

BRIEF_REPLY = (
    "got it. here's what i'll send over.\n"
    "---EDIT_BRIEF---\n"
    "# swap the hero image\n"
    "- use the new team photo\n"
    "---END_BRIEF---\n"
    "the team will pick this up."
)


def _install(provider, cfg=None):
    harness = build_harness(provider, cfg)
    app.dependency_overrides[get_gateway] = lambda: harness.gateway
    return harness


def test_scout_requires_bearer_token():
    _install(FakeProvider(text_events("hi")))
    r = client.post("/scout", json={"project_id": "PRJ-1", "message": "hi"})
    assert r.status_code == 401


def test_viewers_cannot_submit_turns():
    harness = _install(FakeProvider(text_events("hi")))
    headers, viewer = auth_headers("viewer@example.com", roles=["viewer"])
    project = make_project(viewer)

    r = client.post("/scout", json={"project_id": project.project_id, "message": "hi"}, headers=headers)

    assert r.status_code == 403
    assert harness.store.list_turns(project.project_id) == []
    assert harness.provider.calls == []


def test_scout_rejects_invalid_json_body():
    _install(FakeProvider(text_events("hi")))
    headers, _ = auth_headers("owner@example.com")
    r = client.post("/scout", content=b"not json", headers={**headers, "Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json() == {"error": "invalid json body"}


def test_scout_requires_project_id_and_message():
    _install(FakeProvider(text_events("hi")))
    headers, user = auth_headers("owner@example.com")
    project = make_project(user)

    r = client.post("/scout", json={"message": "hi"}, headers=headers)
    assert r.status_code == 400
    assert r.json()["error"] == "project_id is required"

    r = client.post("/scout", json={"project_id": project.project_id, "message": "   "}, headers=headers)
    assert r.status_code == 400
    assert r.json()["error"] == "message is required"


def test_scout_rejects_oversized_message_and_attachment_count():
    _install(FakeProvider(text_events("hi")))
    headers, user = auth_headers("owner@example.com")
    project = make_project(user)

    r = client.post("/scout", json={"project_id": project.project_id, "message": "x" * 2001}, headers=headers)
    assert r.status_code == 400
    assert r.json()["error"] == "message must be 2000 characters or fewer"

    attachment = {"file_name": "a.png", "mime_type": "image/png", "file_size": 10}
    r = client.post(
        "/scout",
        json={"project_id": project.project_id, "message": "hi", "attachments": [attachment] * 4},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["error"] == "max 3 attachments per message"


def test_scout_hides_projects_owned_by_someone_else():
    harness = _install(FakeProvider(text_events("hi")))
    owner_headers, owner = auth_headers("owner@example.com")
    other_headers, _ = auth_headers("other@example.com")
    project = make_project(owner)

    r = client.post("/scout", json={"project_id": "PRJ-0000-9999", "message": "hi"}, headers=owner_headers)
    assert r.status_code == 404

    r = client.post("/scout", json={"project_id": project.project_id, "message": "hi"}, headers=other_headers)
    assert r.status_code == 404
    assert r.json() == {"error": "project not found"}
    assert harness.store.count_turns(project.project_id) == 0


def test_stream_relays_chunks_then_done_and_persists_both_turns():
    harness = _install(FakeProvider(text_events("hello ", "there")))
    headers, user = auth_headers("owner@example.com")
    project = make_project(user)

    r = client.post("/scout", json={"project_id": project.project_id, "message": "walk me through it"}, headers=headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")

    frames = parse_frames(r.text)
    assert [f["type"] for f in frames] == ["chunk", "chunk", "done"]
    assert "".join(f["text"] for f in frames if f["type"] == "chunk") == "hello there"

    turns = harness.store.list_turns(project.project_id)
    assert [(t.role, t.content) for t in turns] == [("user", "walk me through it"), ("assistant", "hello there")]
    assert frames[-1]["turn_id"] == turns[1].turn_id
    assert turns[0].author_id == user.id


def test_narrative_under_review_reaches_the_system_prompt():
    provider = FakeProvider(text_events("section 2 is the turn."))
    _install(provider)
    headers, user = auth_headers("owner@example.com")
    project = make_project(user, status="narrative_review")
    get_repo().save_narrative(
        Narrative(
            narrative_id="n-1",
            project_id=project.project_id,
            version=1,
            content="acme helps small teams ship.",
            created_at=datetime.now(UTC),
        )
    )

    r = client.post("/scout", json={"project_id": project.project_id, "message": "thoughts?"}, headers=headers)
    assert r.status_code == 200

    system, _messages = provider.calls[0]
    assert "narrative is ready for review (version 1)" in system
    assert "acme helps small teams ship." in system


def test_user_turn_is_persisted_before_the_model_stream_opens():
    seen = []
    provider = FakeProvider(text_events("ok"))
    harness = _install(provider)
    headers, user = auth_headers("owner@example.com")
    project = make_project(user)
    provider.on_open = lambda: seen.extend(t.content for t in harness.store.list_turns(project.project_id))

    r = client.post("/scout", json={"project_id": project.project_id, "message": "first"}, headers=headers)
    assert r.status_code == 200
    assert seen == ["first"]
    # The current message closes the history handed to the model
    _system, messages = provider.calls[0]
    assert messages[-1] == {"role": "user", "content": "first"}


def test_second_message_inside_the_interval_is_rate_limited():
    harness = _install(FakeProvider(text_events("ok")))
    headers, user = auth_headers("owner@example.com")
    project = make_project(user)

    first = client.post("/scout", json={"project_id": project.project_id, "message": "one"}, headers=headers)
    assert first.status_code == 200
    second = client.post("/scout", json={"project_id": project.project_id, "message": "two"}, headers=headers)
    assert second.status_code == 429
    assert int(second.headers["Retry-After"]) >= 1

    user_turns = [t for t in harness.store.list_turns(project.project_id) if t.role == "user"]
    assert [t.content for t in user_turns] == ["one"]


def test_daily_cap_counts_every_author_on_the_project():
    harness = _install(FakeProvider(text_events("ok")), GatewayConfig(daily_message_cap=2))
    headers, user = auth_headers("owner@example.com")
    project = make_project(user)
    for i in range(2):
        harness.store.add_turn(project.project_id, "user", f"earlier {i}", author_id="teammate")

    r = client.post("/scout", json={"project_id": project.project_id, "message": "one more"}, headers=headers)
    assert r.status_code == 429
    assert r.json()["error"].startswith("daily message limit reached (2 messages per project per day)")


def test_brief_reply_notifies_admins_and_moves_review_to_revision():
    harness = _install(FakeProvider(text_events(BRIEF_REPLY)))
    admin = register_user("admin@example.com", "Admin", roles=["admin"])
    headers, user = auth_headers("owner@example.com")
    project = make_project(user, status="review")

    r = client.post("/scout", json={"project_id": project.project_id, "message": "swap the hero"}, headers=headers)
    assert r.status_code == 200
    assert parse_frames(r.text)[-1]["type"] == "done"

    updated = harness.repo.get(project.project_id)
    assert updated.status == "revision"
    assert updated.revision_cooldown_until is not None
    assert updated.revision_cooldown_until > datetime.now(UTC)

    assistant = harness.store.list_turns(project.project_id)[-1]
    assert assistant.edit_brief_md == "# swap the hero image\n- use the new team photo"

    items = harness.notifications.list_for_user(admin.id)
    assert len(items) == 1
    assert items[0].type == "brief_submitted"
    assert items[0].title == "new edit brief"
    assert items[0].body == "scout generated a brief for Acme Launch: swap the hero image"
    assert items[0].turn_id == assistant.turn_id
    assert harness.emails == [("admin@example.com", "Acme Launch", assistant.edit_brief_md)]


def test_brief_on_a_live_project_leaves_it_live():
    harness = _install(FakeProvider(text_events(BRIEF_REPLY)))
    register_user("admin@example.com", "Admin", roles=["admin"])
    headers, user = auth_headers("owner@example.com")
    project = make_project(user, status="live")

    r = client.post("/scout", json={"project_id": project.project_id, "message": "small tweak"}, headers=headers)
    assert r.status_code == 200

    updated = harness.repo.get(project.project_id)
    assert updated.status == "live"
    assert updated.revision_cooldown_until is not None


def test_tool_round_emits_tool_frames_and_runs_project_tools():
    provider = FakeProvider([RelayEvent(type="tool_start", tool="list_edit_briefs")] + text_events("none yet."))
    _install(provider)
    headers, user = auth_headers("owner@example.com")
    project = make_project(user)

    r = client.post("/scout", json={"project_id": project.project_id, "message": "any briefs?"}, headers=headers)
    frames = parse_frames(r.text)
    assert [f["type"] for f in frames] == ["tool_start", "tool_done", "chunk", "done"]
    assert frames[0]["tool"] == "list_edit_briefs"
    assert provider.tool_results == ["no previous edit briefs for this project."]


def test_provider_failure_mid_stream_becomes_error_frame_without_persisting():
    harness = _install(FakeProvider(text_events("partial "), error=RuntimeError("upstream reset")))
    headers, user = auth_headers("owner@example.com")
    project = make_project(user)

    r = client.post("/scout", json={"project_id": project.project_id, "message": "hi"}, headers=headers)
    assert r.status_code == 200
    frames = parse_frames(r.text)
    assert [f["type"] for f in frames] == ["chunk", "error"]
    assert frames[-1]["message"] == "scout hit a snag mid-reply. try again."
    assert [t.role for t in harness.store.list_turns(project.project_id)] == ["user"]


def test_attachments_are_resolved_from_asset_records():
    provider = FakeProvider(text_events("nice logo."))
    harness = _install(provider)
    headers, user = auth_headers("owner@example.com")
    project = make_project(user)
    other = make_project(user, name="Other")
    asset = harness.assets.create(
        project.project_id,
        category="logo",
        file_name="logo.png",
        mime_type="image/png",
        file_size=2048,
        storage_path=f"{project.project_id}/logo/1_logo.png",
        source="revision",
    )
    foreign = harness.assets.create(
        other.project_id,
        category="logo",
        file_name="theirs.png",
        mime_type="image/png",
        file_size=10,
        storage_path=f"{other.project_id}/logo/1_theirs.png",
    )

    body = {
        "project_id": project.project_id,
        "message": "",
        "attachments": [
            {"asset_id": asset.asset_id, "file_name": "logo.png", "mime_type": "image/png", "file_size": 2048, "storage_path": "../elsewhere"},
            {"asset_id": foreign.asset_id, "file_name": "theirs.png", "mime_type": "image/png", "file_size": 10},
        ],
    }
    r = client.post("/scout", json=body, headers=headers)
    assert r.status_code == 200

    user_turn = harness.store.list_turns(project.project_id)[0]
    assert user_turn.content == "[2 files attached]"
    assert [a.storage_path for a in user_turn.attachments] == [asset.storage_path]
    assert harness.assets.get_many([asset.asset_id], project.project_id)[0].linked_message_id == user_turn.turn_id

    _system, messages = provider.calls[0]
    assert messages[-1]["content"] == "[attached image: logo.png, could not load for preview]\n[2 files attached]"


def test_stored_images_are_sent_to_the_model_as_image_blocks():
    provider = FakeProvider(text_events("nice logo."))
    harness = _install(provider)
    headers, user = auth_headers("owner@example.com")
    project = make_project(user)
    path = f"{project.project_id}/logo/1_logo.png"
    storage = get_object_storage()
    upload = storage.create_signed_upload("brand-assets", path, "image/png", 1024)
    storage.put_object(upload["token"], b"\x89PNG fake")
    image = harness.assets.create(
        project.project_id,
        category="logo",
        file_name="logo.png",
        mime_type="image/png",
        file_size=10,
        storage_path=path,
    )
    pdf = harness.assets.create(
        project.project_id,
        category="guidelines",
        file_name="brand.pdf",
        mime_type="application/pdf",
        file_size=2048,
        storage_path=f"{project.project_id}/guidelines/1_brand.pdf",
    )

    body = {
        "project_id": project.project_id,
        "message": "use these",
        "attachments": [
            {"asset_id": image.asset_id, "file_name": "logo.png", "mime_type": "image/png", "file_size": 10},
            {"asset_id": pdf.asset_id, "file_name": "brand.pdf", "mime_type": "application/pdf", "file_size": 2048},
        ],
    }
    r = client.post("/scout", json=body, headers=headers)
    assert r.status_code == 200

    _system, messages = provider.calls[0]
    blocks = messages[-1]["content"]
    assert blocks[0]["type"] == "image_url"
    assert blocks[0]["image_url"]["url"] == "data:image/png;base64,iVBORyBmYWtl"
    assert [b["text"] for b in blocks[1:]] == [
        "[attached image: logo.png, 0.0MB]",
        "[attached file: brand.pdf, application/pdf, 0.0MB; available as brand asset for the build team]",
        "use these",
    ]
    assert harness.store.list_turns(project.project_id)[0].content == "use these"


def _open_and_relay(harness, user, project_id, stop_after):
    async def run():
        plan = await harness.gateway.open_turn(user, {"project_id": project_id, "message": "hi"})
        checks = {"n": 0}

        async def is_disconnected():
            checks["n"] += 1
            return checks["n"] > stop_after

        return [frame async for frame in harness.gateway.relay(plan, is_disconnected)]

    return asyncio.run(run())


def test_client_disconnect_cancels_upstream_and_persists_no_reply():
    provider = FakeProvider(text_events("one ", "two ", "three"))
    harness = build_harness(provider)
    _headers, user = auth_headers("owner@example.com")
    project = make_project(user)

    frames = _open_and_relay(harness, user, project.project_id, stop_after=1)

    assert len(frames) == 1
    assert provider.closed is True
    assert [t.role for t in harness.store.list_turns(project.project_id)] == ["user"]


def test_closing_the_relay_early_leaves_no_assistant_turn():
    provider = FakeProvider(text_events("one ", "two"))
    harness = build_harness(provider)
    _headers, user = auth_headers("owner@example.com")
    project = make_project(user)

    async def run():
        plan = await harness.gateway.open_turn(user, {"project_id": project.project_id, "message": "hi"})
        relay = harness.gateway.relay(plan)
        first = await relay.__anext__()
        await relay.aclose()
        return first

    first = asyncio.run(run())
    assert '"chunk"' in first
    assert provider.closed is True
    assert [t.role for t in harness.store.list_turns(project.project_id)] == ["user"]
