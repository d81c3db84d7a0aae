"""Locally generated first turn and the prompt chips shown under it."""

from __future__ import annotations

from typing import List, Optional

_INTRO = "hey. i'm scout, your project assistant for {project_name}."

GREETING_LINES = [
    _INTRO,
    "i can help you request edits, check on progress, or answer questions about your launchpad. "
    "describe what you need and i'll get it queued.",
]

REVIEW_GREETING_LINES = [
    _INTRO,
    "your launchpad is ready for review. i can walk you through it, take notes on what you'd like changed, "
    "or submit edit briefs to the build team.",
    "you can also drop images or documents here if you want to swap visuals.",
]

NARRATIVE_GREETING_LINES = [
    _INTRO,
    "your story arc is ready for review. i can walk you through the narrative, explain why we structured it "
    "this way, or take notes on what you'd like changed.",
]

DEFAULT_PROMPTS = [
    "walk me through my pitchapp",
    "i have changes",
    "what can you help with?",
    "explain this section",
]

REVIEW_PROMPTS = [
    "walk me through it",
    "i have feedback",
    "what stands out?",
]

NARRATIVE_REVIEW_PROMPTS = [
    "walk me through the story",
    "why this opening?",
    "i'd change something",
    "what's the strongest part?",
]


def greeting_lines(status: Optional[str]) -> List[str]:
    if status == "narrative_review":
        return NARRATIVE_GREETING_LINES
    if status in ("review", "revision"):
        return REVIEW_GREETING_LINES
    return GREETING_LINES


def build_greeting(project_name: str, status: Optional[str]) -> str:
    return "\n\n".join(line.replace("{project_name}", project_name) for line in greeting_lines(status))


def prompt_suggestions(status: Optional[str]) -> List[str]:
    if status == "narrative_review":
        return list(NARRATIVE_REVIEW_PROMPTS)
    if status in ("review", "revision"):
        return list(REVIEW_PROMPTS)
    return list(DEFAULT_PROMPTS)


def input_placeholder(staged_count: int) -> str:
    if staged_count == 1:
        return "what should i do with this?"
    if staged_count > 1:
        return "what should i do with these?"
    return "describe what you'd like to change..."
