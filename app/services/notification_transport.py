"""Live push of notifications to connected sessions over Redis pub/sub.

Best effort: a recipient that is not subscribed simply reads the
notifications table on next load.
"""
import json
import logging

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)


class RedisTransport:
    def __init__(self, url: str, timeout_s: float, prefix: str):
        self.url = url
        self.timeout_s = timeout_s
        self.prefix = prefix
        self._client = None

    def _redis(self):
        if self._client is None:
            self._client = redis.Redis.from_url(
                self.url, socket_timeout=self.timeout_s, socket_connect_timeout=self.timeout_s,
            )
        return self._client

    def channel(self, recipient_id: str) -> str:
        return f"{self.prefix}:{recipient_id}"

    def publish(self, recipient_id: str, payload: dict) -> int:
        """Returns the number of live subscribers that received the message."""
        return self._redis().publish(self.channel(recipient_id), json.dumps(payload, default=str))


class NullTransport:
    def publish(self, recipient_id: str, payload: dict) -> int:
        return 0


_transport = None


def get_transport():
    global _transport
    if _transport is None:
        if settings.NOTIFY_PUSH_ENABLED:
            _transport = RedisTransport(settings.REDIS_URL, settings.NOTIFY_PUSH_TIMEOUT_S, settings.NOTIFY_CHANNEL_PREFIX)
        else:
            _transport = NullTransport()
    return _transport


def set_transport(transport) -> None:
    global _transport
    _transport = transport
