"""Media store selection."""

from casitas.core.config import Settings, settings as default_settings
from casitas.media.base import MediaStore
from casitas.media.cloudinary_store import CloudinaryMediaStore
from casitas.media.gcs import GCSMediaStore
from casitas.media.local import LocalMediaStore


def get_media_store(settings: Settings = default_settings) -> MediaStore:
    """Build the media store named by MEDIA_BACKEND.

    Raises:
        ValueError: If MEDIA_BACKEND names an unknown backend
    """
    backend = settings.MEDIA_BACKEND.lower()

    if backend == "cloudinary":
        return CloudinaryMediaStore(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=settings.CLOUDINARY_API_SECRET,
            auto_optimize=settings.CLOUDINARY_AUTO_OPTIMIZE,
        )
    if backend == "gcs":
        return GCSMediaStore(bucket_name=settings.GCS_BUCKET_NAME, project_id=settings.GCP_PROJECT_ID)
    if backend == "local":
        return LocalMediaStore(base_path=settings.LOCAL_MEDIA_PATH, base_url=settings.LOCAL_MEDIA_BASE_URL)

    raise ValueError(f"Unknown MEDIA_BACKEND: {settings.MEDIA_BACKEND}")
