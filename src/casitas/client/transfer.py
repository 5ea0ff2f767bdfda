"""Client for the chunked upload protocol."""

import asyncio
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

import httpx

from casitas.client.exceptions import (
    ChunkTransferError,
    FinalizeError,
    InvalidUploadError,
    SessionInitError,
    TransferError,
)
from casitas.models.status import UploadStatus

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1MB


@dataclass
class ProgressUpdate:
    """Progress report emitted while an upload advances."""

    status: UploadStatus
    progress: float
    url: Optional[str] = None
    error: Optional[str] = None


ProgressCallback = Callable[[ProgressUpdate], None]


class _FileSource:
    """Random access to the bytes of a path or an in-memory payload."""

    def __init__(self, file: Path | bytes, file_name: Optional[str]):
        if isinstance(file, (bytes, bytearray)):
            if not file_name:
                raise InvalidUploadError("file_name is required when uploading bytes")
            self._data: Optional[bytes] = bytes(file)
            self._path: Optional[Path] = None
            self.name = file_name
            self.size = len(file)
        else:
            path = Path(file)
            if not path.is_file():
                raise InvalidUploadError(f"File not found: {path}")
            self._data = None
            self._path = path
            self.name = file_name or path.name
            self.size = path.stat().st_size

    def read(self, offset: int, length: int) -> bytes:
        if self._data is not None:
            return self._data[offset:offset + length]
        with open(self._path, "rb") as f:
            f.seek(offset)
            return f.read(length)


def _error_message(response: httpx.Response) -> str:
    """Extract the service's error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text or f"HTTP {response.status_code}"


class ChunkTransferClient:
    """Drives one file through init, chunk×N and finalize.

    Chunks are sent one at a time in index order. A failed request aborts
    the upload; retrying is left to the caller.
    """

    def __init__(
        self,
        base_url: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float = 60,
        check_health: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.check_health = check_health
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def is_healthy(self) -> bool:
        """Whether the upload service answers its health check."""
        async with self._client() as client:
            return await self._is_healthy(client)

    async def upload(
        self,
        file: Path | bytes,
        record_id: str,
        on_progress: Optional[ProgressCallback] = None,
        *,
        file_name: Optional[str] = None,
        field_name: Optional[str] = None,
        upload_id: Optional[str] = None,
    ) -> str:
        """Upload a file and attach it to an inspection record.

        Args:
            file: Path of the file, or its content as bytes
            record_id: Inspection record receiving the evidence
            on_progress: Called after every chunk and on completion or failure
            file_name: Name to report; required for bytes
            field_name: Evidence slot to fill on the record
            upload_id: Session id; a new UUID when omitted

        Returns:
            Permanent URL of the uploaded file

        Raises:
            InvalidUploadError: If the file is empty or record_id is blank
            SessionInitError: If the service is unreachable or rejects init
            ChunkTransferError: If a chunk cannot be delivered
            FinalizeError: If finalize fails
        """
        if not record_id or not record_id.strip():
            raise InvalidUploadError("record_id is required")
        source = _FileSource(file, file_name)
        if source.size <= 0:
            raise InvalidUploadError(f"File {source.name} is empty")

        upload_id = upload_id or str(uuid4())
        total_chunks = math.ceil(source.size / self.chunk_size)
        log_extra = {"upload_id": upload_id, "record_id": record_id, "total_chunks": total_chunks}

        def emit(update: ProgressUpdate) -> None:
            if on_progress is not None:
                on_progress(update)

        try:
            async with self._client() as client:
                if self.check_health and not await self._is_healthy(client):
                    raise SessionInitError(
                        "Upload service is not available, try again later", upload_id=upload_id
                    )

                await self._post_json(
                    client,
                    "/upload/init",
                    {
                        "uploadId": upload_id,
                        "fileName": source.name,
                        "fileSize": source.size,
                        "recordId": record_id,
                        "totalChunks": total_chunks,
                        "fieldName": field_name,
                    },
                    SessionInitError,
                    upload_id,
                )
                logger.info(f"Upload started: {source.name}", extra=log_extra)

                for chunk_index in range(total_chunks):
                    data = await asyncio.to_thread(source.read, chunk_index * self.chunk_size, self.chunk_size)
                    await self._send_chunk(client, upload_id, chunk_index, total_chunks, data)
                    emit(
                        ProgressUpdate(
                            status=UploadStatus.UPLOADING,
                            progress=(chunk_index + 1) / total_chunks * 100,
                        )
                    )

                body = await self._post_json(
                    client,
                    "/upload/finalize",
                    {
                        "uploadId": upload_id,
                        "fileName": source.name,
                        "recordId": record_id,
                        "fieldName": field_name,
                    },
                    FinalizeError,
                    upload_id,
                )
        except TransferError as e:
            logger.warning(
                f"Upload failed during {e.phase}: {e}",
                extra={**log_extra, "phase": e.phase, "status_code": e.status_code},
            )
            emit(ProgressUpdate(status=UploadStatus.ERROR, progress=0, error=str(e)))
            raise

        url = body.get("url")
        if not url:
            error = FinalizeError("Finalize response did not include a url", upload_id=upload_id)
            emit(ProgressUpdate(status=UploadStatus.ERROR, progress=0, error=str(error)))
            raise error

        emit(ProgressUpdate(status=UploadStatus.COMPLETED, progress=100, url=url))
        logger.info(f"Upload completed: {source.name}", extra={**log_extra, "url": url})
        return url

    async def _is_healthy(self, client: httpx.AsyncClient) -> bool:
        try:
            response = await client.get("/health")
            body = response.json()
            return response.status_code == 200 and isinstance(body, dict) and body.get("status") == "ok"
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Upload service health check failed: {e}")
            return False

    async def _post_json(
        self,
        client: httpx.AsyncClient,
        path: str,
        payload: Dict[str, Any],
        error_type: type[TransferError],
        upload_id: str,
    ) -> Dict[str, Any]:
        payload = {key: value for key, value in payload.items() if value is not None}
        try:
            response = await client.post(path, json=payload)
        except httpx.HTTPError as e:
            raise error_type(f"Request to {path} failed: {e}", upload_id=upload_id) from e
        if response.is_error:
            raise error_type(_error_message(response), status_code=response.status_code, upload_id=upload_id)
        try:
            body = response.json()
        except ValueError as e:
            raise error_type(f"Invalid response from {path}", upload_id=upload_id) from e
        if not isinstance(body, dict):
            raise error_type(f"Invalid response from {path}", upload_id=upload_id)
        return body

    async def _send_chunk(
        self,
        client: httpx.AsyncClient,
        upload_id: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
    ) -> None:
        try:
            response = await client.post(
                "/upload/chunk",
                data={
                    "uploadId": upload_id,
                    "chunkIndex": str(chunk_index),
                    "totalChunks": str(total_chunks),
                },
                files={"chunk": (f"chunk-{chunk_index}", data, "application/octet-stream")},
            )
        except httpx.HTTPError as e:
            raise ChunkTransferError(
                f"Chunk {chunk_index} failed: {e}", chunk_index=chunk_index, upload_id=upload_id
            ) from e
        if response.is_error:
            raise ChunkTransferError(
                _error_message(response),
                chunk_index=chunk_index,
                status_code=response.status_code,
                upload_id=upload_id,
            )
