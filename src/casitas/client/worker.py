"""Background worker owning the offline upload queue.

Foreground code never touches the queue directly: it sends typed messages
to the worker and awaits the reply. The worker processes the queue when
connectivity comes back, when an item is enqueued while online, and on a
periodic poll.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

from casitas.client.offline_queue import OfflineUploadQueue
from casitas.client.queue_storage import QueuedUploadItem
from casitas.models.status import QueueItemStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnqueueUpload:
    file: Union[Path, bytes]
    record_id: str
    field_name: Optional[str]
    file_name: Optional[str] = None


@dataclass(frozen=True)
class GetSnapshot:
    pass


@dataclass(frozen=True)
class GetStatus:
    pass


@dataclass(frozen=True)
class ProcessQueue:
    pass


@dataclass(frozen=True)
class ConnectivityRestored:
    pass


@dataclass(frozen=True)
class ConnectivityLost:
    pass


QueueMessage = Union[EnqueueUpload, GetSnapshot, GetStatus, ProcessQueue, ConnectivityRestored, ConnectivityLost]


@dataclass(frozen=True)
class UploadFinished:
    """Event published for every item a processing run settles."""

    item_id: str
    status: QueueItemStatus
    record_id: str
    field_name: Optional[str]
    url: Optional[str] = None
    error: Optional[str] = None


Listener = Callable[[UploadFinished], None]


class QueueWorker:
    """Runs the offline queue in its own asyncio tasks."""

    def __init__(self, queue: OfflineUploadQueue, poll_interval_seconds: float = 30, online: bool = True):
        self.queue = queue
        self.poll_interval_seconds = poll_interval_seconds
        self.online = online
        self._inbox: Optional[asyncio.Queue] = None
        self._tasks: list[asyncio.Task] = []
        self._drain_task: Optional[asyncio.Task] = None
        self._rerun = False
        self._listeners: list[Listener] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def subscribe(self, listener: Listener) -> None:
        """Register a callback for finished uploads."""
        self._listeners.append(listener)

    def start(self) -> None:
        if self.running:
            return
        self._inbox = asyncio.Queue()
        self._tasks = [
            asyncio.create_task(self._serve(), name="upload-queue-inbox"),
            asyncio.create_task(self._poll(), name="upload-queue-poll"),
        ]
        logger.info("Upload queue worker started", extra={"online": self.online})

    async def stop(self) -> None:
        """Cancel the worker tasks, including a processing run in flight."""
        tasks = list(self._tasks)
        if self._drain_task is not None:
            tasks.append(self._drain_task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        self._drain_task = None
        logger.info("Upload queue worker stopped")

    async def send(self, message: QueueMessage) -> Any:
        """Deliver a message to the worker and wait for its reply.

        Errors raised while handling the message are re-raised here.
        """
        if self._inbox is None:
            raise RuntimeError("Queue worker is not running")
        reply = asyncio.get_running_loop().create_future()
        await self._inbox.put((message, reply))
        return await reply

    async def wait_idle(self) -> None:
        """Wait until no processing run is active."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.shield(self._drain_task)

    async def _serve(self) -> None:
        while True:
            message, reply = await self._inbox.get()
            try:
                result = self._handle(message)
            except Exception as e:
                if not reply.done():
                    reply.set_exception(e)
            else:
                if not reply.done():
                    reply.set_result(result)

    def _handle(self, message: QueueMessage) -> Any:
        if isinstance(message, EnqueueUpload):
            item = self.queue.enqueue(
                message.file, message.record_id, message.field_name, file_name=message.file_name
            )
            if self.online:
                self._trigger()
            return item
        if isinstance(message, GetSnapshot):
            return self.queue.get_queue()
        if isinstance(message, GetStatus):
            return self.queue.get_status()
        if isinstance(message, ProcessQueue):
            if self.online:
                self._trigger()
            return None
        if isinstance(message, ConnectivityRestored):
            logger.info("Connectivity restored, processing upload queue")
            self.online = True
            self._trigger()
            return None
        if isinstance(message, ConnectivityLost):
            logger.info("Connectivity lost, uploads will wait in the queue")
            self.online = False
            return None
        raise TypeError(f"Unsupported queue message: {message!r}")

    def _trigger(self) -> None:
        """Start a processing run, or ask the active one to run again."""
        if self._drain_task is not None and not self._drain_task.done():
            self._rerun = True
            return
        self._drain_task = asyncio.create_task(self._drain(), name="upload-queue-drain")

    async def _drain(self) -> None:
        while True:
            self._rerun = False
            try:
                processed = await self.queue.process_queue()
            except Exception as e:
                logger.error(f"Upload queue run failed: {e}", exc_info=True)
                processed = []
            self._publish(processed)
            if not (self._rerun and self.online):
                return

    def _publish(self, items: list[QueuedUploadItem]) -> None:
        for item in items:
            event = UploadFinished(
                item_id=item.id,
                status=item.status,
                record_id=item.record_id,
                field_name=item.field_name,
                url=item.result_url,
                error=item.error_message,
            )
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception as e:
                    logger.error(f"Upload listener failed: {e}", exc_info=True)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval_seconds)
            if self.online:
                self._trigger()
