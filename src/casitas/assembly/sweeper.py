"""Recurring sweep of abandoned upload sessions."""

import asyncio
import logging
from typing import Optional

from casitas.assembly.service import ChunkAssemblyService

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Periodically discards sessions older than the retention window.

    Started and stopped by the application lifespan. ``run_once`` performs
    a single pass and is what tests drive directly.
    """

    def __init__(self, service: ChunkAssemblyService, interval_seconds: float):
        self.service = service
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="session-sweeper")
        logger.info("Session sweeper started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to exit."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Session sweeper stopped")

    async def run_once(self) -> list[str]:
        """Sweep expired sessions once.

        Returns:
            Upload ids of the removed sessions
        """
        return await self.service.sweep_expired()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception as e:
                # A failed pass must not end the loop; the next one retries
                logger.error(f"Session sweep failed: {e}", exc_info=True)
