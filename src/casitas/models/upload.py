"""Upload wire models.

Field names on the wire are camelCase, as the browser client sends them.
Required fields are declared optional here so that a missing field is
answered with the service's own 400 error instead of a validation 422.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class InitUploadRequest(_WireModel):
    """Request model for opening an upload session."""

    upload_id: Optional[str] = Field(None, alias="uploadId")
    file_name: Optional[str] = Field(None, alias="fileName")
    file_size: Optional[int] = Field(None, alias="fileSize")
    record_id: Optional[str] = Field(None, alias="recordId")
    total_chunks: Optional[int] = Field(None, alias="totalChunks")
    field_name: Optional[str] = Field(None, alias="fieldName")

    def missing_fields(self) -> list[str]:
        """Wire names of required fields that are absent or blank."""
        missing = []
        for name, alias in (
            ("upload_id", "uploadId"),
            ("file_name", "fileName"),
            ("file_size", "fileSize"),
            ("record_id", "recordId"),
        ):
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(alias)
        return missing


class FinalizeUploadRequest(_WireModel):
    """Request model for finalizing an upload session."""

    upload_id: Optional[str] = Field(None, alias="uploadId")
    file_name: Optional[str] = Field(None, alias="fileName")
    record_id: Optional[str] = Field(None, alias="recordId")
    field_name: Optional[str] = Field(None, alias="fieldName")


class MessageResponse(BaseModel):
    """Acknowledgement returned by init."""

    message: str


class ChunkResponse(_WireModel):
    """Acknowledgement returned for every stored chunk."""

    message: str
    received_chunks: int = Field(..., alias="receivedChunks")
    total_chunks: Optional[int] = Field(None, alias="totalChunks")


class FinalizeResponse(BaseModel):
    """Permanent URL of the assembled upload."""

    url: str
