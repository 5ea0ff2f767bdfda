"""Google Cloud Storage media store backend."""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional
from uuid import uuid4

from google.api_core.exceptions import GoogleAPIError
from google.cloud import storage

from casitas.media.base import MediaStore, MediaStoreConfigError, MediaStoreError

logger = logging.getLogger(__name__)


class GCSMediaStore(MediaStore):
    """Google Cloud Storage backend."""

    def __init__(self, bucket_name: str, project_id: str = ""):
        self.bucket_name = bucket_name
        self.project_id = project_id
        self._client: Optional[storage.Client] = None
        self._bucket: Optional[storage.Bucket] = None

    @property
    def credentials_configured(self) -> bool:
        return bool(self.bucket_name)

    def _get_bucket(self) -> storage.Bucket:
        """Lazy-load and cache GCS bucket."""
        if self._bucket is None:
            if not self.bucket_name:
                raise MediaStoreConfigError("GCS_BUCKET_NAME not configured")

            self._client = storage.Client(project=self.project_id or None)
            self._bucket = self._client.bucket(self.bucket_name)

        return self._bucket

    def get_blob_path(self, file_path: str, folder: str, file_name: Optional[str] = None) -> str:
        """Blob path under ``folder``, unique per stored file."""
        safe_name = self._sanitize_filename(file_name or Path(file_path).name)
        return f"{folder.strip('/')}/{uuid4().hex}_{safe_name}"

    async def upload(self, file_path: str, folder: str, file_name: Optional[str] = None) -> str:
        """Upload a file to the bucket and return its public URL."""
        bucket = self._get_bucket()
        blob_path = self.get_blob_path(file_path, folder, file_name)
        blob = bucket.blob(blob_path)

        try:
            await asyncio.to_thread(blob.upload_from_filename, file_path)
        except GoogleAPIError as e:
            logger.error(
                f"Failed to upload to GCS: {e}",
                extra={"bucket": self.bucket_name, "blob_path": blob_path},
            )
            raise MediaStoreError(f"GCS upload failed: {e}") from e

        url = f"https://storage.googleapis.com/{self.bucket_name}/{blob_path}"
        logger.info("Uploaded to GCS", extra={"bucket": self.bucket_name, "blob_path": blob_path})
        return url

    def get_backend_name(self) -> str:
        return "gcs"

    @staticmethod
    def _sanitize_filename(filename: str) -> str:
        """Remove path traversal and dangerous characters."""
        safe = filename.replace("../", "").replace("..\\", "")
        safe = safe.replace("/", "_").replace("\\", "_")
        safe = re.sub(r"[^a-zA-Z0-9._-]", "_", safe)
        return safe[:255]
