"""Local filesystem media store backend."""

import asyncio
import logging
import re
import shutil
from pathlib import Path
from typing import Optional
from uuid import uuid4

from casitas.media.base import MediaStore, MediaStoreError

logger = logging.getLogger(__name__)


class LocalMediaStore(MediaStore):
    """Local filesystem backend for development.

    Files are copied under ``base_path`` and addressed below ``base_url``,
    which is expected to be served by a static file server.
    """

    def __init__(self, base_path: str | Path, base_url: str):
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")

    @property
    def credentials_configured(self) -> bool:
        return True

    async def upload(self, file_path: str, folder: str, file_name: Optional[str] = None) -> str:
        """Copy a file into the media directory and return its URL."""
        safe_name = self._sanitize_filename(file_name or Path(file_path).name)
        relative = f"{folder.strip('/')}/{uuid4().hex}_{safe_name}"
        target = self.base_path / relative

        try:
            await asyncio.to_thread(self._copy, Path(file_path), target)
        except OSError as e:
            raise MediaStoreError(f"Local media copy failed: {e}") from e

        logger.debug("Stored media locally", extra={"target": str(target)})
        return f"{self.base_url}/{relative}"

    @staticmethod
    def _copy(source: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)

    def get_backend_name(self) -> str:
        return "local"

    @staticmethod
    def _sanitize_filename(filename: str) -> str:
        """Remove path traversal and dangerous characters."""
        safe = filename.replace("../", "").replace("..\\", "")
        safe = safe.replace("/", "_").replace("\\", "_")
        safe = re.sub(r"[^a-zA-Z0-9._-]", "_", safe)
        return safe[:255]
