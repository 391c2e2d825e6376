"""
Background refresh poller.

Triggers a controller refresh shortly after startup and then on a fixed
interval. Each refresh runs in the default executor so blocking log reads
stay off the event loop; the resulting snapshot is published back on the
loop thread, so observers never see a half-applied update.
"""

import asyncio
import logging
from typing import Optional

from .monitor import UsageMonitorController

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 6.0       # seconds
DEFAULT_INITIAL_DELAY = 1.0  # seconds


class RefreshPoller:
    """Periodically refreshes a UsageMonitorController."""

    def __init__(
        self,
        controller: UsageMonitorController,
        interval: float = DEFAULT_INTERVAL,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        if initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")
        self.controller = controller
        self.interval = interval
        self.initial_delay = initial_delay
        self.refresh_count = 0
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("Refresh poller started (interval=%ss, initial delay=%ss)", self.interval, self.initial_delay)

    async def stop(self) -> None:
        """Stop the poller. A refresh already running in the executor completes."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Refresh poller stopped")

    async def _poll_loop(self) -> None:
        # Awaiting each refresh before sleeping keeps ticks from overlapping
        await asyncio.sleep(self.initial_delay)
        while self._running:
            await self.refresh_once()
            await asyncio.sleep(self.interval)

    async def refresh_once(self) -> None:
        """Compute in the executor, publish on the loop thread.

        A failing refresh is logged and the previous snapshot stays published;
        the next tick runs as scheduled.
        """
        loop = asyncio.get_running_loop()
        try:
            snapshot = await loop.run_in_executor(None, self.controller.compute_snapshot)
            if snapshot is not None:
                self.controller.publish(snapshot)
        except Exception:
            logger.exception("Refresh failed, keeping previous snapshot")
        finally:
            self.refresh_count += 1
