from __future__ import annotations

from dataclasses import dataclass

NEAR_BOTTOM_PX = 60.0


@dataclass
class Viewport:
    scroll_top: float = 0.0
    scroll_height: float = 0.0
    client_height: float = 0.0

    @property
    def bottom_gap(self) -> float:
        return self.scroll_height - self.scroll_top - self.client_height

    def scroll_to_bottom(self) -> None:
        self.scroll_top = max(self.scroll_height - self.client_height, 0.0)


class AutoScroller:
    """Follow new content only when the reader was already at the bottom."""

    def __init__(self, viewport: Viewport, threshold: float = NEAR_BOTTOM_PX) -> None:
        self.viewport = viewport
        self.threshold = threshold

    def is_near_bottom(self) -> bool:
        return self.viewport.bottom_gap < self.threshold

    def content_grew(self, new_scroll_height: float) -> bool:
        """Apply a new content height; returns True when the view followed it."""
        follow = self.is_near_bottom()
        self.viewport.scroll_height = new_scroll_height
        if follow:
            self.viewport.scroll_to_bottom()
        return follow

    def user_scrolled(self, scroll_top: float) -> None:
        self.viewport.scroll_top = max(scroll_top, 0.0)

    def force_to_bottom(self) -> None:
        self.viewport.scroll_to_bottom()
