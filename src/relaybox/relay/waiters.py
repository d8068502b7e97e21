"""Held long-poll requests waiting for a record.

Each waiter wraps a one-shot future. Whichever of fulfillment, deadline or
cancellation happens first settles it; the others become no-ops.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)

Record = dict[str, Any]


class Waiter:
    def __init__(self, registry: WaiterRegistry, key: str, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        self.key = key
        self.deadline = loop.time() + timeout
        self._registry = registry
        self._future: asyncio.Future[Record] = loop.create_future()

    @property
    def resolved(self) -> bool:
        return self._future.done()

    def fulfill(self, record: Record) -> bool:
        """Complete the waiter with a record. Returns False if it already settled."""
        if self._future.done():
            return False
        self._future.set_result(record)
        return True

    async def wait(self) -> Record | None:
        """Suspend until fulfilled or the deadline passes.

        Returns the record, or None on timeout. Cancellation of the caller
        propagates after the waiter is removed from the registry.
        """
        remaining = max(0.0, self.deadline - asyncio.get_running_loop().time())
        try:
            return await asyncio.wait_for(self._future, timeout=remaining)
        except asyncio.TimeoutError:
            return None
        finally:
            self._registry.discard(self)


class WaiterRegistry:
    def __init__(self) -> None:
        self._waiters: dict[str, list[Waiter]] = {}

    def register(self, key: str, timeout: float) -> Waiter:
        waiter = Waiter(self, key, timeout)
        self._waiters.setdefault(key, []).append(waiter)
        return waiter

    def discard(self, waiter: Waiter) -> None:
        waiters = self._waiters.get(waiter.key)
        if not waiters:
            return
        try:
            waiters.remove(waiter)
        except ValueError:
            pass
        if not waiters:
            del self._waiters[waiter.key]

    def fulfill_all(self, key: str, record: Record) -> int:
        """Hand the same record to every waiter for key.

        The set is detached before delivery so a waiter registered during
        fan-out lands in a fresh set. Returns how many waiters received it.
        """
        waiters = self._waiters.pop(key, [])
        delivered = sum(1 for w in waiters if w.fulfill(record))
        if delivered:
            logger.info("Sent data to %d waiting client(s) for %s", delivered, key)
        return delivered

    def count(self, key: str | None = None) -> int:
        if key is not None:
            return len(self._waiters.get(key, ()))
        return sum(len(ws) for ws in self._waiters.values())

    def __contains__(self, key: object) -> bool:
        return key in self._waiters
