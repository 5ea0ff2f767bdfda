"""Chunked upload API routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile

from casitas.assembly.exceptions import AssemblyError, InvalidChunkError, SessionNotFoundError
from casitas.assembly.service import ChunkAssemblyService
from casitas.models.upload import (
    ChunkResponse,
    FinalizeResponse,
    FinalizeUploadRequest,
    InitUploadRequest,
    MessageResponse,
)

router = APIRouter(prefix="/upload", tags=["upload"])
logger = logging.getLogger(__name__)


def get_assembly_service(request: Request) -> ChunkAssemblyService:
    """Service instance owned by the running application."""
    return request.app.state.assembly_service


@router.post("/init", response_model=MessageResponse)
async def init_upload(
    request: InitUploadRequest = Body(...),
    service: ChunkAssemblyService = Depends(get_assembly_service),
) -> MessageResponse:
    """Open an upload session."""
    try:
        session = await service.init_session(request)
        return MessageResponse(message=f"Upload session {session.upload_id} initialized")
    except AssemblyError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error during upload init: {e}", exc_info=True)
        raise AssemblyError("Internal server error") from e


@router.post("/chunk", response_model=ChunkResponse)
async def upload_chunk(
    chunk: Optional[UploadFile] = File(None),
    upload_id: Optional[str] = Form(None, alias="uploadId"),
    chunk_index: Optional[int] = Form(None, alias="chunkIndex"),
    total_chunks: Optional[int] = Form(None, alias="totalChunks"),
    service: ChunkAssemblyService = Depends(get_assembly_service),
) -> ChunkResponse:
    """Receive one chunk of an upload."""
    try:
        if not upload_id:
            raise SessionNotFoundError("")
        if chunk_index is None:
            raise InvalidChunkError("chunkIndex is required")

        session = await service.store_chunk(
            upload_id=upload_id,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            data=chunk.file if chunk is not None else None,
        )
        return ChunkResponse(
            message=f"Chunk {chunk_index} received",
            received_chunks=len(session.chunks),
            total_chunks=session.total_chunks,
        )
    except AssemblyError:
        raise
    except Exception as e:
        logger.error(
            f"Unexpected error while storing chunk: {e}",
            extra={"upload_id": upload_id, "chunk_index": chunk_index},
            exc_info=True,
        )
        raise AssemblyError("Error processing chunk") from e


@router.post("/finalize", response_model=FinalizeResponse)
async def finalize_upload(
    request: FinalizeUploadRequest = Body(...),
    service: ChunkAssemblyService = Depends(get_assembly_service),
) -> FinalizeResponse:
    """Assemble the chunks, store the file and attach it to the record."""
    try:
        url = await service.finalize(request)
        return FinalizeResponse(url=url)
    except AssemblyError:
        raise
    except Exception as e:
        logger.error(
            f"Unexpected error during finalize: {e}",
            extra={"upload_id": request.upload_id},
            exc_info=True,
        )
        raise AssemblyError("Internal server error") from e
