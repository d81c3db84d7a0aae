from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

import redis


logger = logging.getLogger("scout.events")


class _RedisPublisher:
    def __init__(self, url: str) -> None:
        self._url = url
        self._client: Optional[redis.Redis] = None
        self._connect()

    def _connect(self) -> None:
        try:
            self._client = redis.Redis.from_url(self._url, socket_timeout=0.5)
            self._client.ping()
        except redis.RedisError:
            logger.warning("event_bus_unavailable", extra={"url": self._url})
            self._client = None

    def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        if not self._client:
            self._connect()
        if not self._client:
            return
        try:
            self._client.publish(channel, json.dumps(payload, default=str))
        except redis.RedisError:
            logger.warning("event_publish_failed", extra={"channel": channel})
            self._client = None


_publisher: Optional[_RedisPublisher] = None


def _get_publisher() -> Optional[_RedisPublisher]:
    global _publisher
    if _publisher is not None:
        return _publisher
    url = os.getenv("REDIS_URL")
    if not url:
        return None
    _publisher = _RedisPublisher(url)
    return _publisher


def publish_event(event_type: str, payload: Dict[str, Any]) -> None:
    """Fire-and-forget publish to ``scout.events.<type>``; a no-op without REDIS_URL."""
    publisher = _get_publisher()
    if not publisher:
        return
    publisher.publish(f"scout.events.{event_type}", payload)


def reset_publisher() -> None:
    global _publisher
    _publisher = None
