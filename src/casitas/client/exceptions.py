"""Custom exceptions for the upload client side."""

from typing import Optional


class TransferError(Exception):
    """Base exception for a failed chunked transfer.

    Carries the protocol phase that failed (``init``, ``chunk`` or
    ``finalize``) and the HTTP status when the service answered.
    """

    phase = "transfer"

    def __init__(self, message: str, status_code: Optional[int] = None, upload_id: Optional[str] = None):
        self.status_code = status_code
        self.upload_id = upload_id
        super().__init__(message)


class SessionInitError(TransferError):
    """Exception raised when the service is unreachable or rejects init."""

    phase = "init"


class ChunkTransferError(TransferError):
    """Exception raised when sending a chunk fails."""

    phase = "chunk"

    def __init__(
        self,
        message: str,
        chunk_index: int,
        status_code: Optional[int] = None,
        upload_id: Optional[str] = None,
    ):
        self.chunk_index = chunk_index
        super().__init__(message, status_code=status_code, upload_id=upload_id)


class FinalizeError(TransferError):
    """Exception raised when finalize fails on the service."""

    phase = "finalize"


class InvalidUploadError(ValueError):
    """Exception raised when an upload request is unusable before any I/O."""
    pass


class InvalidQueueTransitionError(Exception):
    """Exception raised on an illegal queue item status change."""
    pass
