"""Connectivity detection for the offline upload queue."""

import asyncio
import logging
from typing import Optional

from casitas.client.transfer import ChunkTransferClient
from casitas.client.worker import ConnectivityLost, ConnectivityRestored, QueueWorker

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Probes the upload service health endpoint and reports transitions.

    Only changes are sent to the worker: ``ConnectivityRestored`` when the
    service becomes reachable, ``ConnectivityLost`` when it stops being so.
    """

    def __init__(self, client: ChunkTransferClient, worker: QueueWorker, interval_seconds: float = 15):
        self.client = client
        self.worker = worker
        self.interval_seconds = interval_seconds
        self.online: Optional[bool] = None
        self._task: Optional[asyncio.Task] = None

    async def check_once(self) -> bool:
        """Probe once and notify the worker if the state changed."""
        healthy = await self.client.is_healthy()
        if healthy and self.online is not True:
            await self.worker.send(ConnectivityRestored())
        elif not healthy and self.online is not False:
            await self.worker.send(ConnectivityLost())
        self.online = healthy
        return healthy

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="connectivity-monitor")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.check_once()
            except Exception as e:
                logger.error(f"Connectivity check failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)
