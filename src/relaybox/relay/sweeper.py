import asyncio
import logging

from relaybox.relay.service import RelayService

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Periodically purges mailbox entries older than their TTL.

    The sweep period is independent of the TTL, so an entry can outlive its
    TTL by up to one interval before it is removed.
    """

    def __init__(self, relay: RelayService, interval: float) -> None:
        self.relay = relay
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="relay-expiry-sweeper")
        logger.info("Expiry sweeper started (every %ss)", self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                removed = await self.relay.sweep()
                if removed:
                    logger.info("Swept %d stale record(s)", removed)
            except Exception:
                logger.exception("Expiry sweep failed")
