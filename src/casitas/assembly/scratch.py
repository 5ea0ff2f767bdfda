"""Scratch directory for chunk files and assembled uploads."""

import asyncio
import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterable

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 65536  # 64KB


class ScratchStorage:
    """Local filesystem area where chunks wait for finalize.

    Chunk files are named from a digest of the upload id and the chunk
    index, so a retried chunk overwrites its previous copy and two distinct
    upload ids never share a file.
    """

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)

    def chunk_path(self, upload_id: str, chunk_index: int) -> Path:
        return self.base_path / f"{self._stem(upload_id)}-{chunk_index}"

    def assembled_path(self, upload_id: str) -> Path:
        return self.base_path / f"{self._stem(upload_id)}.assembled"

    async def write_chunk(self, upload_id: str, chunk_index: int, data: BinaryIO) -> tuple[str, int]:
        """Persist one chunk, replacing any earlier copy of the same index.

        Returns:
            Tuple of (scratch path, bytes written)
        """
        target = self.chunk_path(upload_id, chunk_index)
        size = await asyncio.to_thread(self._write_stream, target, data)
        return str(target), size

    async def assemble(self, upload_id: str, chunk_paths: list[str]) -> tuple[str, int]:
        """Concatenate chunk files in the given order into one file.

        Each chunk file is deleted as soon as it has been copied.

        Returns:
            Tuple of (assembled path, total size)
        """
        target = self.assembled_path(upload_id)
        size = await asyncio.to_thread(self._concatenate, target, chunk_paths)
        logger.info(
            "Chunks assembled",
            extra={"upload_id": upload_id, "chunks": len(chunk_paths), "size_bytes": size},
        )
        return str(target), size

    async def remove(self, paths: Iterable[str | None]) -> None:
        """Delete files, ignoring ones that are already gone."""
        await asyncio.to_thread(self._unlink_all, [p for p in paths if p])

    async def remove_session_files(self, upload_id: str) -> int:
        """Delete every scratch file belonging to an upload id."""
        return await asyncio.to_thread(self._remove_session_files, upload_id)

    async def purge_stale(self, cutoff: datetime, keep_ids: set[str]) -> int:
        """Delete scratch files older than ``cutoff`` not owned by a live session.

        Returns:
            Number of files deleted
        """
        return await asyncio.to_thread(self._purge_stale, cutoff, keep_ids)

    def _write_stream(self, target: Path, data: BinaryIO) -> int:
        target.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        with open(target, "wb") as f:
            while chunk := data.read(COPY_BUFFER_SIZE):
                f.write(chunk)
                written += len(chunk)
        return written

    def _concatenate(self, target: Path, chunk_paths: list[str]) -> int:
        target.parent.mkdir(parents=True, exist_ok=True)
        total = 0
        with open(target, "wb") as out:
            for chunk_path in chunk_paths:
                with open(chunk_path, "rb") as f:
                    while block := f.read(COPY_BUFFER_SIZE):
                        out.write(block)
                        total += len(block)
                Path(chunk_path).unlink(missing_ok=True)
        return total

    @staticmethod
    def _unlink_all(paths: list[str]) -> None:
        for path in paths:
            Path(path).unlink(missing_ok=True)

    def _remove_session_files(self, upload_id: str) -> int:
        if not self.base_path.exists():
            return 0
        stem = self._stem(upload_id)
        removed = 0
        for path in self.base_path.iterdir():
            if self._owner_of(path.name) == stem:
                path.unlink(missing_ok=True)
                removed += 1
        return removed

    def _purge_stale(self, cutoff: datetime, keep_ids: set[str]) -> int:
        if not self.base_path.exists():
            return 0
        keep = {self._stem(upload_id) for upload_id in keep_ids}
        removed = 0
        for path in self.base_path.iterdir():
            if not path.is_file() or self._owner_of(path.name) in keep:
                continue
            modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            if modified < cutoff:
                path.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.info(f"Purged {removed} stale scratch files", extra={"scratch_dir": str(self.base_path)})
        return removed

    @staticmethod
    def _owner_of(file_name: str) -> str:
        """Upload id digest a scratch file name was derived from."""
        if file_name.endswith(".assembled"):
            return file_name[: -len(".assembled")]
        owner, _, index = file_name.rpartition("-")
        return owner if index.isdigit() else file_name

    @staticmethod
    def _stem(upload_id: str) -> str:
        """File name stem for an upload id; distinct ids never collide."""
        return hashlib.sha256(upload_id.encode("utf-8")).hexdigest()
