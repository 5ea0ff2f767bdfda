"""Chunk assembly service.

Owns the upload session lifecycle: sessions are opened by init, filled by
chunk requests in any order, and finalized by concatenating the chunks,
storing the result in the media store and attaching its URL to the
inspection record.
"""

import logging
from datetime import timedelta
from pathlib import Path
from typing import BinaryIO, Optional

from casitas.assembly.exceptions import (
    DownstreamError,
    FinalizeInProgressError,
    InvalidChunkError,
    InvalidFieldError,
    MissingChunkError,
    MissingFieldsError,
    NoChunkDataError,
    SessionNotFoundError,
    UnknownRecordError,
    UploadTooLargeError,
)
from casitas.assembly.scratch import ScratchStorage
from casitas.assembly.session_store import SessionStore, UploadSession
from casitas.core.config import Settings
from casitas.media.base import MediaStore, MediaStoreError
from casitas.media.factory import get_media_store
from casitas.media.folders import build_folder_path
from casitas.models.status import SessionState
from casitas.models.upload import FinalizeUploadRequest, InitUploadRequest
from casitas.records.base import RecordNotFoundError, RecordStore, RecordStoreError
from casitas.records.factory import get_record_store

logger = logging.getLogger(__name__)


class ChunkAssemblyService:
    """Server side of the chunked upload protocol."""

    def __init__(
        self,
        sessions: SessionStore,
        scratch: ScratchStorage,
        media_store: MediaStore,
        record_store: RecordStore,
        chunk_size: int,
        max_upload_bytes: int,
        folder_namespace: str,
        retention: timedelta,
    ):
        self.sessions = sessions
        self.scratch = scratch
        self.media_store = media_store
        self.record_store = record_store
        self.chunk_size = chunk_size
        self.max_upload_bytes = max_upload_bytes
        self.folder_namespace = folder_namespace
        self.retention = retention

    async def init_session(self, request: InitUploadRequest) -> UploadSession:
        """Open (or reset) the session for ``request.upload_id``."""
        missing = request.missing_fields()
        if missing:
            raise MissingFieldsError(missing)

        if request.file_size < 0:
            raise InvalidChunkError("fileSize must not be negative")
        if request.file_size > self.max_upload_bytes:
            raise UploadTooLargeError(
                f"File size exceeds maximum allowed size of {self.max_upload_bytes // (1024 * 1024)}MB"
            )
        if request.total_chunks is not None and request.total_chunks < 1:
            raise InvalidChunkError("totalChunks must be at least 1")
        self._check_field(request.field_name)

        upload_id = request.upload_id
        existing = self.sessions.get(upload_id)
        if existing is not None:
            if existing.state == SessionState.FINALIZING:
                raise FinalizeInProgressError(f"Upload {upload_id} is being finalized")
            if existing.holds_assembled_media:
                # A retried upload resumes at finalize instead of storing the media again
                logger.info(
                    "Re-init of upload session with assembled media, resuming at finalize",
                    extra={
                        "upload_id": upload_id,
                        "record_id": request.record_id,
                        "media_url": existing.media_url,
                    },
                )
                return existing
            logger.warning(
                "Re-init of existing upload session, discarding received chunks",
                extra={
                    "upload_id": upload_id,
                    "received_chunks": len(existing.chunks),
                    "received_bytes": existing.received_bytes,
                },
            )
            await self.scratch.remove_session_files(upload_id)

        session = UploadSession(
            upload_id=upload_id,
            file_name=request.file_name,
            declared_size=request.file_size,
            record_id=request.record_id,
            field_name=request.field_name,
            total_chunks=request.total_chunks,
            created_at=self.sessions.clock(),
        )
        self.sessions.set(session)

        logger.info(
            f"Upload session created: upload_id={upload_id}, record_id={request.record_id}, "
            f"size={request.file_size}",
            extra={"upload_id": upload_id, "record_id": request.record_id},
        )
        return session

    async def store_chunk(
        self,
        upload_id: str,
        chunk_index: int,
        total_chunks: Optional[int],
        data: Optional[BinaryIO],
    ) -> UploadSession:
        """Persist one chunk to scratch storage and record it on the session.

        Re-sending an index overwrites the earlier copy.
        """
        session = self.sessions.get(upload_id)
        if session is None:
            raise SessionNotFoundError(upload_id)
        if data is None:
            raise NoChunkDataError("No chunk data received")
        if session.state in (SessionState.FINALIZING, SessionState.FINALIZED):
            raise FinalizeInProgressError(f"Upload {upload_id} is being finalized")
        if session.holds_assembled_media:
            logger.debug(
                "Chunk for already assembled upload ignored",
                extra={"upload_id": upload_id, "chunk_index": chunk_index},
            )
            return session

        if total_chunks is not None:
            if total_chunks < 1:
                raise InvalidChunkError("totalChunks must be at least 1")
            if session.total_chunks is None:
                session.total_chunks = total_chunks
            elif session.total_chunks != total_chunks:
                raise InvalidChunkError(
                    f"totalChunks {total_chunks} does not match session total {session.total_chunks}"
                )
        expected = session.expected_chunks(self.chunk_size)
        if chunk_index < 0 or chunk_index >= expected:
            raise InvalidChunkError(f"chunkIndex {chunk_index} out of range 0..{expected - 1}")

        path, size = await self.scratch.write_chunk(upload_id, chunk_index, data)
        if size == 0:
            await self.scratch.remove([path])
            raise NoChunkDataError("Chunk payload is empty")

        # The session may have been reset or swept while the chunk was written
        if self.sessions.get(upload_id) is not session:
            await self.scratch.remove([path])
            raise SessionNotFoundError(upload_id)
        if session.state in (SessionState.FINALIZING, SessionState.FINALIZED):
            raise FinalizeInProgressError(f"Upload {upload_id} is being finalized")

        session.received_bytes += size - session.chunk_sizes.get(chunk_index, 0)
        session.chunks[chunk_index] = path
        session.chunk_sizes[chunk_index] = size
        if session.first_missing_chunk(self.chunk_size) is None:
            session.transition(SessionState.COMPLETE)
        else:
            session.transition(SessionState.RECEIVING)

        logger.debug(
            "Chunk stored",
            extra={
                "upload_id": upload_id,
                "chunk_index": chunk_index,
                "size_bytes": size,
                "received_chunks": len(session.chunks),
                "total_chunks": expected,
            },
        )
        return session

    async def finalize(self, request: FinalizeUploadRequest) -> str:
        """Assemble, store and attach an upload.

        Returns:
            Permanent URL of the stored file
        """
        if not request.upload_id:
            raise MissingFieldsError(["uploadId"])
        session = self.sessions.get(request.upload_id)
        if session is None:
            raise SessionNotFoundError(request.upload_id)
        if not request.record_id:
            raise MissingFieldsError(["recordId"])
        if session.state == SessionState.FINALIZING:
            raise FinalizeInProgressError(f"Upload {session.upload_id} is already being finalized")

        field_name = request.field_name or session.field_name
        self._check_field(field_name)
        if request.record_id != session.record_id:
            logger.warning(
                "Finalize record id differs from init record id",
                extra={
                    "upload_id": session.upload_id,
                    "init_record_id": session.record_id,
                    "finalize_record_id": request.record_id,
                },
            )

        # A retried finalize may already hold the assembled file or the media URL
        if not session.holds_assembled_media:
            missing = session.first_missing_chunk(self.chunk_size)
            if missing is not None:
                raise MissingChunkError(missing)

        session.transition(SessionState.FINALIZING)
        try:
            url = await self._store_media(session)
            await self._attach_to_record(session, request.record_id, field_name, url)
        except Exception:
            session.transition(self._resting_state(session))
            raise

        session.transition(SessionState.FINALIZED)
        self.sessions.delete(session.upload_id)

        logger.info(
            f"Upload finalized: upload_id={session.upload_id}, record_id={request.record_id}",
            extra={"upload_id": session.upload_id, "record_id": request.record_id, "url": url},
        )
        return url

    async def sweep_expired(self) -> list[str]:
        """Drop sessions older than the retention window and their scratch files.

        Returns:
            Upload ids of the removed sessions
        """
        expired = self.sessions.sweep(self.retention)
        for session in expired:
            await self.scratch.remove_session_files(session.upload_id)

        cutoff = self.sessions.clock() - self.retention
        live_ids = {s.upload_id for s in self.sessions.list_all()}
        await self.scratch.purge_stale(cutoff, live_ids)
        return [s.upload_id for s in expired]

    async def _store_media(self, session: UploadSession) -> str:
        """Steps 1 and 2 of finalize: concatenate chunks and upload the result."""
        if session.media_url:
            return session.media_url

        if session.assembled_path is None:
            ordered = [session.chunks[i] for i in range(session.expected_chunks(self.chunk_size))]
            try:
                assembled_path, size = await self.scratch.assemble(session.upload_id, ordered)
            except OSError as e:
                # Chunks consumed before the failure are gone and must be re-sent
                session.chunks = {i: p for i, p in session.chunks.items() if Path(p).exists()}
                session.chunk_sizes = {i: s for i, s in session.chunk_sizes.items() if i in session.chunks}
                session.received_bytes = sum(session.chunk_sizes.values())
                logger.error(
                    f"Failed to assemble chunks: {e}",
                    extra={"upload_id": session.upload_id},
                    exc_info=True,
                )
                raise self._downstream("assemble", e) from e
            session.assembled_path = assembled_path
            session.chunks = {}
            session.chunk_sizes = {}
            if session.declared_size and size != session.declared_size:
                logger.warning(
                    "Assembled size differs from declared size",
                    extra={
                        "upload_id": session.upload_id,
                        "declared_size": session.declared_size,
                        "assembled_size": size,
                    },
                )

        folder = build_folder_path(self.folder_namespace, self.sessions.clock())
        try:
            url = await self.media_store.upload(session.assembled_path, folder, session.file_name)
        except MediaStoreError as e:
            logger.error(
                f"Media store upload failed: {e}",
                extra={
                    "upload_id": session.upload_id,
                    "backend": self.media_store.get_backend_name(),
                    "credentials_configured": self.media_store.credentials_configured,
                },
            )
            raise self._downstream("media_upload", e) from e

        session.media_url = url
        await self.scratch.remove([session.assembled_path])
        session.assembled_path = None
        return url

    async def _attach_to_record(
        self, session: UploadSession, record_id: str, field_name: Optional[str], url: str
    ) -> None:
        """Steps 3 and 4 of finalize: look up the record and append the URL."""
        step = "record_lookup"
        try:
            await self.record_store.get_evidence_list(record_id)
            step = "record_update"
            await self.record_store.append_evidence(record_id, url, field_name)
        except RecordNotFoundError as e:
            self._log_orphan(session, record_id, url, step)
            raise UnknownRecordError(record_id) from e
        except RecordStoreError as e:
            self._log_orphan(session, record_id, url, step)
            raise self._downstream(step, e) from e

    def _log_orphan(self, session: UploadSession, record_id: str, url: str, step: str) -> None:
        logger.error(
            f"Stored media is not referenced by any record: {url}",
            extra={
                "upload_id": session.upload_id,
                "record_id": record_id,
                "orphaned_url": url,
                "step": step,
            },
        )

    def _resting_state(self, session: UploadSession) -> SessionState:
        """State a session returns to after a failed finalize."""
        if session.holds_assembled_media:
            return SessionState.COMPLETE
        if session.first_missing_chunk(self.chunk_size) is None:
            return SessionState.COMPLETE
        return SessionState.RECEIVING

    def _check_field(self, field_name: Optional[str]) -> None:
        try:
            self.record_store.validate_field(field_name)
        except ValueError as e:
            raise InvalidFieldError(str(e)) from e

    def _downstream(self, step: str, error: Exception) -> DownstreamError:
        return DownstreamError(
            step=step,
            details=str(error),
            media_backend=self.media_store.get_backend_name(),
            credentials_configured=self.media_store.credentials_configured,
        )


def build_assembly_service(settings: Settings) -> ChunkAssemblyService:
    """Wire the service from settings."""
    return ChunkAssemblyService(
        sessions=SessionStore(),
        scratch=ScratchStorage(settings.SCRATCH_DIR),
        media_store=get_media_store(settings),
        record_store=get_record_store(settings),
        chunk_size=settings.CHUNK_SIZE_BYTES,
        max_upload_bytes=settings.max_upload_bytes,
        folder_namespace=settings.MEDIA_FOLDER_NAMESPACE,
        retention=settings.session_retention,
    )
