"""Registry of live push channels, at most one per client key."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from relaybox.relay.errors import TransportError

logger = logging.getLogger(__name__)

Record = dict[str, Any]


class Channel(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def send(self, record: Record) -> None:
        """Deliver a record. Raises TransportError on failure."""
        ...


class ConnectionRegistry:
    def __init__(self) -> None:
        self._channels: dict[str, Channel] = {}

    def register(self, key: str, channel: Channel) -> Channel | None:
        """Associate channel with key. Returns the channel it replaced, if any."""
        previous = self._channels.get(key)
        self._channels[key] = channel
        if previous is not None and previous is not channel:
            logger.info("Replacing existing connection for %s", key)
            return previous
        return None

    def unregister(self, key: str, channel: Channel | None = None) -> bool:
        """Drop the association for key.

        When channel is given, only that exact channel is removed, so a stale
        socket closing late cannot evict its replacement.
        """
        current = self._channels.get(key)
        if current is None or (channel is not None and current is not channel):
            return False
        del self._channels[key]
        logger.info("Connection closed for %s", key)
        return True

    async def try_send(self, key: str, record: Record) -> bool:
        """Push record to key's channel. Returns whether it was delivered.

        A closed or failing channel is unregistered.
        """
        channel = self._channels.get(key)
        if channel is None:
            return False
        if not channel.is_open:
            self.unregister(key, channel)
            return False
        try:
            await channel.send(record)
        except TransportError:
            logger.warning("Push to %s failed, dropping connection", key, exc_info=True)
            self.unregister(key, channel)
            return False
        return True

    def __contains__(self, key: object) -> bool:
        return key in self._channels

    def __len__(self) -> int:
        return len(self._channels)
