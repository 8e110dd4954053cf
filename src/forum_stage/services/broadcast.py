"""Publish/subscribe channel used to push live updates to clients."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Protocol

import redis

from forum_stage.core.settings import Settings, settings

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    def publish(
        self, channel: str, data: dict[str, Any], user_ids: Iterable[int] | None = None
    ) -> None: ...


def _envelope(data: dict[str, Any], user_ids: Iterable[int] | None) -> dict[str, Any]:
    message: dict[str, Any] = {"data": data}
    if user_ids is not None:
        message["user_ids"] = sorted(int(uid) for uid in user_ids)
    return message


class RedisPublisher:
    """Publishes JSON envelopes on Redis channels.

    ``user_ids`` restricts delivery to the listed users; the websocket relay
    subscribed to the channel enforces it.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> RedisPublisher:
        return cls(redis.from_url(url, decode_responses=True))

    def publish(
        self, channel: str, data: dict[str, Any], user_ids: Iterable[int] | None = None
    ) -> None:
        receivers = self._redis.publish(channel, json.dumps(_envelope(data, user_ids)))
        logger.debug("Published to %s (%s receivers)", channel, receivers)


@dataclass
class PublishedMessage:
    channel: str
    data: dict[str, Any]
    user_ids: list[int] | None = None


@dataclass
class MemoryPublisher:
    """Keeps published messages in memory; used in tests and local runs."""

    messages: list[PublishedMessage] = field(default_factory=list)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def publish(
        self, channel: str, data: dict[str, Any], user_ids: Iterable[int] | None = None
    ) -> None:
        ids = _envelope(data, user_ids).get("user_ids")
        with self._lock:
            self.messages.append(PublishedMessage(channel, dict(data), ids))

    def on_channel(self, channel: str) -> list[PublishedMessage]:
        with self._lock:
            return [message for message in self.messages if message.channel == channel]


_PUBLISHER: Publisher | None = None


def build_publisher(config: Settings) -> Publisher:
    if config.cache_backend == "memory":
        return MemoryPublisher()
    return RedisPublisher.from_url(config.redis_url)


def get_publisher() -> Publisher:
    """Return the process-wide publisher."""
    global _PUBLISHER
    if _PUBLISHER is None:
        _PUBLISHER = build_publisher(settings)
    return _PUBLISHER
