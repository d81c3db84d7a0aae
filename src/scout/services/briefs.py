"""Structured edit-brief markers inside assistant replies."""

import re
from typing import Optional

BRIEF_START = "---EDIT_BRIEF---"
BRIEF_END = "---END_BRIEF---"

_BRIEF_BLOCK_RE = re.compile(re.escape(BRIEF_START) + r".*?" + re.escape(BRIEF_END), re.DOTALL)


def extract_brief(text: str) -> Optional[str]:
    """Return the trimmed text between the first start marker and the next end marker.

    A reply carrying only one of the two markers has no brief.
    """
    start = text.find(BRIEF_START)
    if start == -1:
        return None
    end = text.find(BRIEF_END, start + len(BRIEF_START))
    if end == -1:
        return None
    return text[start + len(BRIEF_START):end].strip()


def has_brief(text: str) -> bool:
    return extract_brief(text) is not None


def strip_brief(text: str) -> str:
    """Remove every complete marker block, leaving the conversational text."""
    return _BRIEF_BLOCK_RE.sub("", text).strip()
