from datetime import UTC, datetime

from src.scout.client.export import export_filename, export_markdown
from src.scout.client.greeting import build_greeting, input_placeholder, prompt_suggestions
from src.scout.client.models import AttachmentRef, ConversationTurn, TurnIds
from src.scout.client.scroll import AutoScroller, Viewport


def test_scroll_follows_only_when_already_near_bottom():
    view = Viewport(scroll_top=450, scroll_height=1000, client_height=500)
    scroller = AutoScroller(view)

    assert scroller.content_grew(1200) is True
    assert view.scroll_top == 700

    scroller.user_scrolled(100)
    assert scroller.content_grew(1400) is False
    assert view.scroll_top == 100


def test_send_forces_scroll_to_bottom():
    view = Viewport(scroll_top=0, scroll_height=2000, client_height=500)
    AutoScroller(view).force_to_bottom()
    assert view.scroll_top == 1500


def test_greeting_depends_on_status():
    default = build_greeting("Acme", "in_progress")
    assert default.startswith("hey. i'm scout, your project assistant for Acme.")
    assert "\n\n" in default
    assert "ready for review" in build_greeting("Acme", "revision")
    assert "story arc" in build_greeting("Acme", "narrative_review")
    assert "{project_name}" not in build_greeting("Acme", None)


def test_prompt_suggestions_depend_on_status():
    assert prompt_suggestions(None)[0] == "walk me through my pitchapp"
    assert prompt_suggestions("review") == ["walk me through it", "i have feedback", "what stands out?"]
    assert prompt_suggestions("narrative_review")[0] == "walk me through the story"
    assert input_placeholder(0) == "describe what you'd like to change..."
    assert input_placeholder(2) == "what should i do with these?"


def test_turn_ids_are_monotonic():
    ids = TurnIds(start=3)
    assert [ids.next(), ids.next(), ids.next()] == [3, 4, 5]


def test_attachment_progress_ends_in_complete_or_error():
    ref = AttachmentRef("a.png", "image/png", 10)
    ref.set_progress(140)
    assert ref.upload_progress == 100
    ref.complete()
    assert ref.upload_progress is None and ref.error is None

    failed = AttachmentRef("b.png", "image/png", 10)
    failed.fail("upload failed. try again")
    failed.set_progress(50)
    assert failed.upload_progress is None
    assert failed.error == "upload failed. try again"


def test_export_strips_briefs_and_separates_turns():
    turns = [
        ConversationTurn(id=0, role="user", text="swap the hero", created_at="2026-03-02T10:00:00+00:00"),
        ConversationTurn(
            id=1,
            role="assistant",
            text="sending it.\n---EDIT_BRIEF---\nhero swap\n---END_BRIEF---",
            created_at="",
        ),
    ]
    doc = export_markdown("Acme Launch", turns, exported_at=datetime(2026, 3, 2, 12, 0, tzinfo=UTC))

    assert doc == (
        "# Scout Conversation: Acme Launch\n\n"
        "Exported: 2026-03-02T12:00:00+00:00\n\n---\n\n"
        "**you** _(2026-03-02T10:00:00+00:00)_\n\nswap the hero"
        "\n\n---\n\n"
        "**scout**\n\nsending it."
    )


def test_export_filename_is_safe():
    when = datetime(2026, 3, 2, tzinfo=UTC)
    assert export_filename("Acme Launch / V2", when) == "scout-acme-launch---v2-2026-03-02.md"


def test_turn_from_record_reads_persisted_fields():
    turn = ConversationTurn.from_record(
        7,
        {
            "role": "assistant",
            "content": "done",
            "created_at": "2026-03-02T10:00:00Z",
            "attachments": [{"file_name": "a.png", "mime_type": "image/png", "file_size": 12}],
            "edit_brief_md": "brief",
        },
    )
    assert turn.id == 7
    assert turn.is_structured_brief is True
    assert turn.attachments[0].byte_size == 12
    assert turn.attachments[0].upload_progress is None
