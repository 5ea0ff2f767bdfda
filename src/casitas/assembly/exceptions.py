"""Custom exceptions for the chunk assembly service.

Every exception carries the HTTP status it maps to and renders its own
JSON error body, so routes only need to let them propagate.
"""

from typing import Any


class AssemblyError(Exception):
    """Base exception for the chunk assembly service."""

    status_code = 500

    def to_body(self) -> dict[str, Any]:
        return {"error": str(self)}


class MissingFieldsError(AssemblyError):
    """Exception raised when a request lacks required fields."""

    status_code = 400

    def __init__(self, fields: list[str]):
        self.fields = fields
        super().__init__(f"Missing required fields: {', '.join(fields)}")

    def to_body(self) -> dict[str, Any]:
        return {"error": str(self), "fields": self.fields}


class InvalidChunkError(AssemblyError):
    """Exception raised when chunk metadata is inconsistent with the session."""

    status_code = 400


class NoChunkDataError(AssemblyError):
    """Exception raised when a chunk request carries no binary payload."""

    status_code = 400


class UploadTooLargeError(AssemblyError):
    """Exception raised when the declared file size exceeds the limit."""

    status_code = 400


class SessionNotFoundError(AssemblyError):
    """Exception raised when an upload id does not reference a live session."""

    status_code = 404

    def __init__(self, upload_id: str):
        self.upload_id = upload_id
        super().__init__(f"Upload session not found: {upload_id}")


class MissingChunkError(AssemblyError):
    """Exception raised when finalize finds an unpopulated chunk slot."""

    status_code = 400

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"Missing chunk {index}")

    def to_body(self) -> dict[str, Any]:
        return {"error": str(self), "missingChunk": self.index}


class UnknownRecordError(AssemblyError):
    """Exception raised when the target inspection record does not exist."""

    status_code = 404

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


class FinalizeInProgressError(AssemblyError):
    """Exception raised when a session is already being finalized."""

    status_code = 409


class InvalidTransitionError(AssemblyError):
    """Exception raised on an illegal session state transition."""

    status_code = 409


class DownstreamError(AssemblyError):
    """Exception raised when a finalize step fails in a collaborator.

    The body names the failing step and reports whether media store
    credentials are configured, so operators can tell a missing
    configuration apart from an unreachable service.
    """

    status_code = 500

    def __init__(self, step: str, details: str, media_backend: str, credentials_configured: bool):
        self.step = step
        self.details = details
        self.media_backend = media_backend
        self.credentials_configured = credentials_configured
        super().__init__(f"Finalize failed during {step}")

    def to_body(self) -> dict[str, Any]:
        return {
            "error": str(self),
            "step": self.step,
            "details": self.details,
            "mediaStore": {
                "backend": self.media_backend,
                "credentialsConfigured": self.credentials_configured,
            },
        }


class InvalidFieldError(AssemblyError):
    """Exception raised when a request names an unknown evidence slot."""

    status_code = 400
