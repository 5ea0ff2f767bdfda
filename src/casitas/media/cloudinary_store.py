"""Cloudinary media store backend."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import cloudinary.exceptions
import cloudinary.uploader

from casitas.media.base import MediaStore, MediaStoreConfigError, MediaStoreError

logger = logging.getLogger(__name__)

AUTO_OPTIMIZE_TRANSFORMATION = "f_auto,q_auto"


class CloudinaryMediaStore(MediaStore):
    """Cloudinary backend using the official SDK.

    Credentials are passed on every call instead of through the SDK's
    global configuration, so several stores can coexist in one process.
    """

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        auto_optimize: bool = True,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.auto_optimize = auto_optimize

    @property
    def credentials_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    async def upload(self, file_path: str, folder: str, file_name: Optional[str] = None) -> str:
        """Upload a file to Cloudinary and return its secure URL."""
        if not self.credentials_configured:
            raise MediaStoreConfigError("Cloudinary credentials are not configured")

        naming = {}
        if file_name:
            naming = {"use_filename": True, "unique_filename": True, "filename_override": file_name}

        try:
            result = await asyncio.to_thread(
                cloudinary.uploader.upload,
                file_path,
                folder=folder,
                resource_type="auto",
                cloud_name=self.cloud_name,
                api_key=self.api_key,
                api_secret=self.api_secret,
                secure=True,
                **naming,
            )
        except cloudinary.exceptions.Error as e:
            logger.error(
                f"Cloudinary rejected upload: {e}",
                extra={"file_name": Path(file_path).name, "folder": folder},
            )
            raise MediaStoreError(f"Cloudinary upload failed: {e}") from e
        except OSError as e:
            raise MediaStoreError(f"Cloudinary upload failed: {e}") from e

        secure_url = result.get("secure_url")
        if not secure_url:
            raise MediaStoreError("Cloudinary response did not include a secure_url")

        url = self.optimize_url(secure_url) if self.auto_optimize else secure_url
        logger.info(
            "Uploaded to Cloudinary",
            extra={"folder": folder, "public_id": result.get("public_id"), "url": url},
        )
        return url

    @staticmethod
    def optimize_url(secure_url: str) -> str:
        """Insert automatic format and quality selection into a delivery URL."""
        marker = "/upload/"
        if marker not in secure_url or f"{marker}{AUTO_OPTIMIZE_TRANSFORMATION}/" in secure_url:
            return secure_url
        return secure_url.replace(marker, f"{marker}{AUTO_OPTIMIZE_TRANSFORMATION}/", 1)

    def get_backend_name(self) -> str:
        return "cloudinary"
