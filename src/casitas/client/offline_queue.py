"""Offline upload queue.

Upload requests are accepted without network access, persisted to disk,
and replayed through the chunk transfer client when processing is
triggered. A failed item is marked ``error`` and left in place; it is not
tried again until ``retry_failed`` is called.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import replace
from pathlib import Path
from typing import Dict, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from casitas.client.exceptions import InvalidUploadError, TransferError
from casitas.client.queue_storage import QueuedUploadItem, QueueStorage, new_item_id
from casitas.client.transfer import ChunkTransferClient, ProgressUpdate
from casitas.models.status import QueueItemStatus, UploadStatus

logger = logging.getLogger(__name__)


class OfflineUploadQueue:
    """Durable FIFO of upload requests."""

    def __init__(
        self,
        storage: QueueStorage,
        client: ChunkTransferClient,
        max_attempts: int = 3,
        retry_wait_seconds: float = 2.0,
        max_retry_wait_seconds: float = 10.0,
    ):
        self.storage = storage
        self.client = client
        self.max_attempts = max_attempts
        self.retry_wait_seconds = retry_wait_seconds
        self.max_retry_wait_seconds = max_retry_wait_seconds
        self._items: Dict[str, QueuedUploadItem] = {}
        self._processing = asyncio.Lock()
        self.reload()

    def reload(self) -> None:
        """Rebuild the in-memory view from storage.

        Items interrupted while ``uploading`` go back to ``pending`` so the
        next run picks them up again.
        """
        self._items = {}
        for item in self.storage.load_all():
            if item.status == QueueItemStatus.UPLOADING:
                item.transition(QueueItemStatus.PENDING)
                item.progress = 0
                self.storage.save(item)
                logger.info("Re-queued interrupted upload", extra={"item_id": item.id})
            self._items[item.id] = item

    def enqueue(
        self,
        file: Path | bytes,
        record_id: str,
        field_name: Optional[str],
        *,
        file_name: Optional[str] = None,
        item_id: Optional[str] = None,
    ) -> QueuedUploadItem:
        """Persist a new ``pending`` upload request.

        An existing item with the same id is overwritten.

        Raises:
            InvalidUploadError: If the payload is empty or record_id is blank
        """
        if not record_id or not record_id.strip():
            raise InvalidUploadError("record_id is required")
        if isinstance(file, (bytes, bytearray)):
            if not file_name:
                raise InvalidUploadError("file_name is required when queueing bytes")
            size = len(file)
        else:
            file = Path(file)
            file_name = file_name or file.name
            size = file.stat().st_size if file.is_file() else 0
        if size <= 0:
            raise InvalidUploadError(f"Cannot queue empty file {file_name}")

        item_id = item_id or new_item_id()
        item = QueuedUploadItem(
            id=item_id,
            file_name=file_name,
            payload_path=self.storage.store_payload(item_id, file),
            record_id=record_id,
            field_name=field_name,
            sequence=self.storage.next_sequence(),
        )
        self.storage.save(item)
        self._items.pop(item_id, None)
        self._items[item_id] = item

        logger.info(
            f"Upload queued: {file_name}",
            extra={"item_id": item_id, "record_id": record_id, "field_name": field_name, "size_bytes": size},
        )
        return replace(item)

    def get_queue(self) -> list[QueuedUploadItem]:
        """Snapshot of every item in insertion order."""
        ordered = sorted(self._items.values(), key=lambda item: item.sequence)
        return [replace(item) for item in ordered]

    def get_status(self) -> dict[str, int]:
        """Number of items per status, plus the total."""
        counts = Counter(item.status for item in self._items.values())
        status = {s.value: counts.get(s, 0) for s in QueueItemStatus}
        status["total"] = len(self._items)
        return status

    async def process_queue(self) -> list[QueuedUploadItem]:
        """Upload every pending item in insertion order.

        A run requested while another is active returns immediately.

        Returns:
            Snapshots of the items processed by this run
        """
        if self._processing.locked():
            logger.debug("Queue processing already running, skipping trigger")
            return []

        async with self._processing:
            pending = [i for i in self.get_queue() if i.status == QueueItemStatus.PENDING]
            if pending:
                logger.info(f"Processing {len(pending)} queued uploads")
            processed = []
            for snapshot in pending:
                item = self._items.get(snapshot.id)
                if item is None or item.status != QueueItemStatus.PENDING:
                    continue
                await self._process_item(item)
                processed.append(replace(item))
            return processed

    def retry_failed(self) -> int:
        """Return every ``error`` item to ``pending``.

        Returns:
            Number of items re-queued
        """
        retried = 0
        for item in self._items.values():
            if item.status == QueueItemStatus.ERROR:
                item.transition(QueueItemStatus.PENDING)
                item.progress = 0
                item.attempts = 0
                self.storage.save(item)
                retried += 1
        return retried

    def clear(self, item_id: Optional[str] = None, *, completed_only: bool = False) -> int:
        """Remove items and their payloads.

        Args:
            item_id: Remove only this item
            completed_only: Remove only completed items

        Returns:
            Number of items removed
        """
        targets = [
            item for item in self._items.values()
            if (item_id is None or item.id == item_id)
            and (not completed_only or item.status == QueueItemStatus.COMPLETED)
            and item.status != QueueItemStatus.UPLOADING
        ]
        for item in targets:
            self.storage.delete(item.id)
            del self._items[item.id]
        return len(targets)

    async def _process_item(self, item: QueuedUploadItem) -> None:
        item.transition(QueueItemStatus.UPLOADING)
        item.progress = 0
        self.storage.save(item)

        def on_progress(update: ProgressUpdate) -> None:
            if update.status == UploadStatus.UPLOADING:
                item.progress = update.progress
                self.storage.save(item)

        log_extra = {"item_id": item.id, "record_id": item.record_id, "field_name": item.field_name}
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.retry_wait_seconds, max=self.max_retry_wait_seconds),
                retry=retry_if_exception_type(TransferError),
                reraise=True,
            ):
                with attempt:
                    item.attempts += 1
                    self.storage.save(item)
                    url = await self.client.upload(
                        Path(item.payload_path),
                        item.record_id,
                        on_progress,
                        file_name=item.file_name,
                        field_name=item.field_name,
                        upload_id=item.id,
                    )
        except Exception as e:
            # Failures become item state; the run goes on with the next item
            item.transition(QueueItemStatus.ERROR)
            item.error_message = str(e) or type(e).__name__
            self.storage.save(item)
            logger.error(
                f"Queued upload failed after {item.attempts} attempts: {item.error_message}",
                extra=log_extra,
                exc_info=not isinstance(e, TransferError),
            )
            return

        item.transition(QueueItemStatus.COMPLETED)
        item.progress = 100
        item.result_url = url
        self.storage.save(item)
        logger.info("Queued upload completed", extra={**log_extra, "url": url})
