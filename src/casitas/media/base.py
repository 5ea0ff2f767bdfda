"""Abstract media store interface."""

from abc import ABC, abstractmethod
from typing import Optional


class MediaStoreError(Exception):
    """Exception raised when the media store rejects or fails an upload."""
    pass


class MediaStoreConfigError(MediaStoreError):
    """Exception raised when the media store is missing configuration."""
    pass


class MediaStore(ABC):
    """Abstract base class for permanent media storage backends."""

    @abstractmethod
    async def upload(self, file_path: str, folder: str, file_name: Optional[str] = None) -> str:
        """Store a local file permanently.

        Args:
            file_path: Path of the assembled file on local disk
            folder: Destination folder, see ``build_folder_path``
            file_name: Original name of the file, used where the backend names objects

        Returns:
            Permanent URL of the stored object
        """
        pass

    @abstractmethod
    def get_backend_name(self) -> str:
        """Return backend identifier."""
        pass

    @property
    @abstractmethod
    def credentials_configured(self) -> bool:
        """Whether the backend has the credentials it needs."""
        pass
