"""Upload progress tracking for UI observers."""

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from casitas.client.transfer import ProgressCallback, ProgressUpdate
from casitas.models.status import UploadStatus

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ":"


def progress_key(record_id: str, file_name: str) -> str:
    """Stable id for the upload of ``file_name`` into ``record_id``."""
    return f"{record_id}{KEY_SEPARATOR}{file_name}"


@dataclass
class UploadProgressRecord:
    """Last known state of one logical upload."""

    upload_id: str
    record_id: str
    file_name: str
    status: UploadStatus
    progress: float
    updated_at: str
    message: Optional[str] = None
    url: Optional[str] = None


class UploadProgressTracker:
    """Key-value store of upload progress, mirrored to a JSON file.

    Status changes are not validated: the finalize phases may arrive in any
    order, be skipped, or jump straight to ``error``. Reloading the file
    restores what observers saw, it does not resume any transfer.
    """

    def __init__(self, state_path: Optional[str | Path] = None):
        self.state_path = Path(state_path) if state_path else None
        self._records: Dict[str, UploadProgressRecord] = {}
        self._lock = threading.Lock()
        self._load()

    def start(self, upload_id: str, file_name: str, record_id: Optional[str] = None) -> UploadProgressRecord:
        """Insert a ``pending`` record for an upload."""
        if record_id is None:
            record_id = upload_id.split(KEY_SEPARATOR, 1)[0]
        record = UploadProgressRecord(
            upload_id=upload_id,
            record_id=record_id,
            file_name=file_name,
            status=UploadStatus.PENDING,
            progress=0,
            updated_at=_now(),
        )
        with self._lock:
            self._records[upload_id] = record
            self._persist()
        return record

    def update(
        self,
        upload_id: str,
        progress: float,
        status: UploadStatus | str,
        message: Optional[str] = None,
        url: Optional[str] = None,
    ) -> UploadProgressRecord:
        """Overwrite the progress and status of an upload.

        Raises:
            KeyError: If the upload was never started
            ValueError: If ``status`` is not a known status
        """
        status = UploadStatus(status)
        with self._lock:
            record = self._records[upload_id]
            record.progress = max(0.0, min(100.0, float(progress)))
            record.status = status
            record.message = message
            if url is not None:
                record.url = url
            record.updated_at = _now()
            self._persist()
            return record

    def get(self, upload_id: str) -> Optional[UploadProgressRecord]:
        with self._lock:
            return self._records.get(upload_id)

    def get_by_record(self, record_id: str) -> list[UploadProgressRecord]:
        """All uploads belonging to one inspection record."""
        with self._lock:
            return [r for r in self._records.values() if r.record_id == record_id]

    def all(self) -> list[UploadProgressRecord]:
        with self._lock:
            return list(self._records.values())

    def remove(self, upload_id: str) -> None:
        with self._lock:
            if self._records.pop(upload_id, None) is not None:
                self._persist()

    def clear_finished(self) -> int:
        """Drop completed and failed uploads.

        Returns:
            Number of records removed
        """
        finished = {UploadStatus.COMPLETED, UploadStatus.ERROR}
        with self._lock:
            done = [key for key, r in self._records.items() if r.status in finished]
            for key in done:
                del self._records[key]
            if done:
                self._persist()
        return len(done)

    def callback_for(self, upload_id: str) -> ProgressCallback:
        """Adapt this tracker into a transfer client progress callback."""

        def on_progress(update: ProgressUpdate) -> None:
            self.update(upload_id, update.progress, update.status, message=update.error, url=update.url)

        return on_progress

    def _load(self) -> None:
        if self.state_path is None or not self.state_path.exists():
            return
        try:
            raw = json.loads(self.state_path.read_text(encoding="utf-8"))
            for item in raw:
                item["status"] = UploadStatus(item["status"])
                record = UploadProgressRecord(**item)
                self._records[record.upload_id] = record
        except (OSError, ValueError, TypeError, KeyError) as e:
            # Progress is display state only; a corrupt file starts empty
            logger.warning(f"Discarding unreadable progress state: {e}", extra={"path": str(self.state_path)})
            self._records.clear()

    def _persist(self) -> None:
        if self.state_path is None:
            return
        payload = [{**asdict(r), "status": r.status.value} for r in self._records.values()]
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.state_path.with_suffix(self.state_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, self.state_path)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
