"""Delivery orchestration for the relay.

A producer drops a record for a client key; the relay hands it to whatever is
already listening for that key (a push connection first, then held polls) and
only buffers it in the mailbox when nobody is.

One RelayService is built per process and shared by every handler.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from relaybox.config import Settings
from relaybox.relay.connections import Channel, ConnectionRegistry
from relaybox.relay.errors import MissingKeyError
from relaybox.relay.frontend import FrontendChannel
from relaybox.relay.mailbox import InMemoryMailboxStore, MailboxStore
from relaybox.relay.waiters import WaiterRegistry

logger = logging.getLogger(__name__)

Record = dict[str, Any]

KEY_FIELD = "localip"


class Delivery(str, Enum):
    PUSHED = "pushed"
    FULFILLED = "fulfilled"
    STORED = "stored"


def validate_key(key: object) -> str:
    if not isinstance(key, str) or not key.strip():
        raise MissingKeyError()
    return key


class RelayService:
    def __init__(
        self,
        settings: Settings,
        mailbox: MailboxStore | None = None,
    ) -> None:
        self.settings = settings
        self.mailbox = InMemoryMailboxStore() if mailbox is None else mailbox
        self.waiters = WaiterRegistry()
        self.connections = ConnectionRegistry()
        self.frontend = FrontendChannel(
            timeout=settings.frontend_poll_timeout,
            ttl=settings.frontend_data_ttl,
        )

    # ──────────────────────────────────────────
    # Producer side
    # ──────────────────────────────────────────

    async def produce(self, key: str, record: Record) -> Delivery:
        """Deliver record to key, preferring live listeners over the mailbox."""
        key = validate_key(key)

        if await self.connections.try_send(key, record):
            logger.info("Pushed data to connected client %s", key)
            return Delivery.PUSHED

        if self.waiters.fulfill_all(key, record):
            return Delivery.FULFILLED

        await self.mailbox.put(key, record)
        logger.info("Stored data for %s until it is picked up", key)
        return Delivery.STORED

    async def submit(self, record: Record) -> Delivery:
        """Relay a producer record keyed by its own `localip` field.

        The record also feeds the frontend display.
        """
        delivery = await self.produce(record.get(KEY_FIELD), record)  # type: ignore[arg-type]
        await self.frontend.publish(record)
        return delivery

    # ──────────────────────────────────────────
    # Consumer side
    # ──────────────────────────────────────────

    async def poll(self, key: str, timeout: float | None = None) -> Record | None:
        """Return the pending record for key, holding up to timeout for one.

        Returns None when the hold window passes with nothing delivered.
        """
        key = validate_key(key)
        entry = await self.mailbox.take(key)
        if entry is not None:
            return entry.record

        waiter = self.waiters.register(
            key, self.settings.poll_timeout if timeout is None else timeout
        )
        record = await waiter.wait()
        if record is None:
            logger.debug("Poll for %s timed out", key)
        return record

    async def connect(self, key: str, channel: Channel) -> Delivery | None:
        """Register a push channel for key and drain any pending record onto it."""
        key = validate_key(key)
        self.connections.register(key, channel)
        logger.info("Client connected for %s", key)

        entry = await self.mailbox.take(key)
        if entry is None:
            return None
        if await self.connections.try_send(key, entry.record):
            logger.info("Delivered pending data to %s on connect", key)
            return Delivery.PUSHED
        # Send failed: put it back with its original age
        await self.mailbox.put(key, entry.record, inserted_at=entry.inserted_at)
        return Delivery.STORED

    def disconnect(self, key: str, channel: Channel | None = None) -> None:
        self.connections.unregister(key, channel)

    # ──────────────────────────────────────────
    # Housekeeping
    # ──────────────────────────────────────────

    async def sweep(self, now: float | None = None) -> int:
        removed = await self.mailbox.sweep(self.settings.data_ttl, now)
        removed += await self.frontend.sweep(now)
        return removed

    async def close(self) -> None:
        await self.mailbox.close()

    async def stats(self) -> dict[str, int]:
        return {
            "pending": await self.mailbox.count(),
            "waiting": self.waiters.count(),
            "connections": len(self.connections),
            "frontend_pending": await self.frontend.pending(),
            "frontend_waiting": self.frontend.waiting,
        }
