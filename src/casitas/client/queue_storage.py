"""Durable storage for the offline upload queue."""

import json
import logging
import os
import re
import shutil
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

from casitas.client.exceptions import InvalidQueueTransitionError
from casitas.models.status import QUEUE_TRANSITIONS, QueueItemStatus

logger = logging.getLogger(__name__)


def new_item_id() -> str:
    """Creation-time based queue item id."""
    return f"upload_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class QueuedUploadItem:
    """One upload request waiting in, or processed by, the offline queue."""

    id: str
    file_name: str
    payload_path: str
    record_id: str
    field_name: Optional[str]
    sequence: int
    status: QueueItemStatus = QueueItemStatus.PENDING
    progress: float = 0
    result_url: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 0
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def transition(self, new_status: QueueItemStatus) -> None:
        """Move to ``new_status`` if the transition table allows it.

        Raises:
            InvalidQueueTransitionError: On an illegal transition
        """
        if new_status not in QUEUE_TRANSITIONS[self.status]:
            raise InvalidQueueTransitionError(
                f"Queue item {self.id} cannot go from {self.status.value} to {new_status.value}"
            )
        self.status = new_status
        if new_status != QueueItemStatus.COMPLETED:
            self.result_url = None
        if new_status != QueueItemStatus.ERROR:
            self.error_message = None
        self.updated_at = _now()

    def to_dict(self) -> Dict[str, Any]:
        return {**asdict(self), "status": self.status.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueuedUploadItem":
        return cls(**{**data, "status": QueueItemStatus(data["status"])})


class QueueStorage:
    """Directory holding one JSON document and one payload file per item.

    Documents are replaced atomically so a crash mid-write leaves the
    previous version intact.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self._lock = threading.Lock()
        self._sequence = 0

    def _document_path(self, item_id: str) -> Path:
        return self.root / f"{self._sanitize_id(item_id)}.json"

    def _payload_path(self, item_id: str) -> Path:
        return self.root / f"{self._sanitize_id(item_id)}.bin"

    def store_payload(self, item_id: str, file: Path | bytes) -> str:
        """Copy the upload's bytes into the queue directory."""
        target = self._payload_path(item_id)
        self.root.mkdir(parents=True, exist_ok=True)
        if isinstance(file, (bytes, bytearray)):
            target.write_bytes(file)
        else:
            shutil.copyfile(file, target)
        return str(target)

    def next_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def save(self, item: QueuedUploadItem) -> None:
        """Write an item's document."""
        target = self._document_path(item.id)
        self.root.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_suffix(".json.tmp")
        with self._lock:
            tmp_path.write_text(json.dumps(item.to_dict(), ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, target)

    def load_all(self) -> list[QueuedUploadItem]:
        """Read every item, ordered by insertion."""
        if not self.root.exists():
            return []
        items = []
        for path in self.root.glob("*.json"):
            try:
                items.append(QueuedUploadItem.from_dict(json.loads(path.read_text(encoding="utf-8"))))
            except (OSError, ValueError, TypeError, KeyError) as e:
                logger.error(f"Skipping unreadable queue item {path.name}: {e}", extra={"path": str(path)})
        items.sort(key=lambda item: item.sequence)
        with self._lock:
            self._sequence = max([self._sequence, *(item.sequence for item in items)])
        return items

    def delete(self, item_id: str) -> None:
        """Remove an item's document and payload."""
        self._document_path(item_id).unlink(missing_ok=True)
        self._payload_path(item_id).unlink(missing_ok=True)

    @staticmethod
    def _sanitize_id(item_id: str) -> str:
        """Remove path traversal and dangerous characters."""
        return re.sub(r"[^a-zA-Z0-9._-]", "_", item_id)[:200]
