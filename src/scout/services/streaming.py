"""Frame codec for the conversation stream.

Each frame is one ``data: {json}`` line followed by a blank line. Frame types:
``chunk`` (text), ``tool_start``/``tool_done`` (tool), ``done`` and ``error`` (error).
"""

import json
from typing import Any, Dict, Optional

FRAME_TYPES = ("chunk", "tool_start", "tool_done", "done", "error")
_PREFIX = "data: "


def encode_frame(frame_type: str, **data: Any) -> str:
    if frame_type not in FRAME_TYPES:
        raise ValueError(f"unknown frame type: {frame_type}")
    payload: Dict[str, Any] = {"type": frame_type}
    payload.update(data)
    return f"{_PREFIX}{json.dumps(payload, ensure_ascii=False)}\n\n"


def parse_frame_line(line: str) -> Optional[Dict[str, Any]]:
    """Decode one line of the stream. Blank lines, comments and malformed JSON yield None."""
    line = line.strip()
    if not line.startswith(_PREFIX.strip()):
        return None
    raw = line[len(_PREFIX.strip()):].strip()
    if not raw:
        return None
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(frame, dict) or frame.get("type") not in FRAME_TYPES:
        return None
    return frame
