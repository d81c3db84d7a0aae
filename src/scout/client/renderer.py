"""Typing playback, decoupled from network arrival.

The network side appends to a :class:`StreamBuffer` at whatever pace text
arrives. A :class:`TypingRenderer` task reveals it at a fixed rate. The two
only share the buffer's ``arrived`` and ``revealed`` cursors, both of which
only move forward.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional


class StreamBuffer:
    def __init__(self) -> None:
        self._text = ""
        self._revealed = 0
        self._done = False

    @property
    def text(self) -> str:
        return self._text

    @property
    def arrived(self) -> int:
        return len(self._text)

    @property
    def revealed(self) -> int:
        return self._revealed

    @property
    def visible(self) -> str:
        return self._text[: self._revealed]

    @property
    def done(self) -> bool:
        return self._done

    @property
    def fully_revealed(self) -> bool:
        return self._revealed >= len(self._text)

    def append(self, text: str) -> None:
        if self._done:
            raise RuntimeError("stream buffer is closed")
        self._text += text

    def mark_done(self) -> None:
        self._done = True

    def reveal(self, count: int = 1) -> int:
        self._revealed = min(self._revealed + count, len(self._text))
        return self._revealed


class TypingRenderer:
    """Fixed-rate consumer of a stream buffer.

    Reveals ``chars_per_tick`` characters every ``tick_ms``, waits at the end
    of the buffer while the stream is open, and returns the full text once the
    buffer is both done and fully revealed.
    """

    def __init__(
        self,
        buffer: StreamBuffer,
        *,
        tick_ms: int = 15,
        chars_per_tick: int = 1,
        on_reveal: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.buffer = buffer
        self._tick = max(tick_ms, 0) / 1000.0
        self._chars_per_tick = max(chars_per_tick, 1)
        self._on_reveal = on_reveal
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def run(self) -> str:
        buf = self.buffer
        while True:
            if not buf.fully_revealed:
                buf.reveal(self._chars_per_tick)
                if self._on_reveal is not None:
                    self._on_reveal(buf.visible)
            elif buf.done:
                return buf.text
            await asyncio.sleep(self._tick)

    async def stop(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


async def play_text(text: str, *, tick_ms: int = 15, on_reveal: Optional[Callable[[str], None]] = None) -> str:
    """Type out a text that is already complete (the local greeting)."""
    buf = StreamBuffer()
    buf.append(text)
    buf.mark_done()
    return await TypingRenderer(buf, tick_ms=tick_ms, on_reveal=on_reveal).run()
