"""Unkeyed display feed: one pending slot and one list of held requests."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from relaybox.relay.mailbox import InMemoryMailboxStore
from relaybox.relay.waiters import WaiterRegistry

logger = logging.getLogger(__name__)

Record = dict[str, Any]

_SLOT = "frontend"


class FrontendChannel:
    def __init__(self, timeout: float, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.timeout = timeout
        self.ttl = ttl
        self._slot = InMemoryMailboxStore(clock=clock)
        self._waiters = WaiterRegistry()

    async def publish(self, record: Record) -> None:
        if self._waiters.fulfill_all(_SLOT, record):
            return
        await self._slot.put(_SLOT, record)

    async def poll(self) -> Record | None:
        entry = await self._slot.take(_SLOT)
        if entry is not None:
            return entry.record
        return await self._waiters.register(_SLOT, self.timeout).wait()

    async def sweep(self, now: float | None = None) -> int:
        return await self._slot.sweep(self.ttl, now)

    async def pending(self) -> int:
        return await self._slot.count()

    @property
    def waiting(self) -> int:
        return self._waiters.count()
