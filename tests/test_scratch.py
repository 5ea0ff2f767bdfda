"""Tests for scratch chunk storage."""

import io
import os
from datetime import datetime, timedelta, timezone

import pytest

from casitas.assembly.scratch import ScratchStorage


class TestScratchStorage:
    """Tests for the chunk scratch directory."""

    def test_distinct_ids_never_share_files(self, scratch):
        """Test ids that only differ in path characters get separate files."""
        ids = ["a/b", "a_b", "../x", "x", "p" * 200 + "1", "p" * 200 + "2"]

        names = {scratch.chunk_path(upload_id, 0).name for upload_id in ids}

        assert len(names) == len(ids)
        assert all(scratch.chunk_path(upload_id, 0).parent == scratch.base_path for upload_id in ids)

    def test_owner_of(self, scratch):
        """Test file names map back to their upload id digest."""
        stem = ScratchStorage._stem("u1")

        assert ScratchStorage._owner_of(scratch.chunk_path("u1", 3).name) == stem
        assert ScratchStorage._owner_of(scratch.assembled_path("u1").name) == stem
        assert ScratchStorage._owner_of("stray") == "stray"

    @pytest.mark.asyncio
    async def test_write_chunk_overwrites(self, scratch):
        """Test writing the same index twice keeps the last copy."""
        await scratch.write_chunk("u1", 0, io.BytesIO(b"first"))
        path, size = await scratch.write_chunk("u1", 0, io.BytesIO(b"second"))

        assert size == 6
        with open(path, "rb") as f:
            assert f.read() == b"second"

    @pytest.mark.asyncio
    async def test_assemble_concatenates_and_consumes_chunks(self, scratch):
        """Test assembly joins chunks in order and deletes them."""
        paths = []
        for index, data in enumerate([b"ab", b"cd", b"e"]):
            path, _ = await scratch.write_chunk("u1", index, io.BytesIO(data))
            paths.append(path)

        assembled, size = await scratch.assemble("u1", paths)

        assert size == 5
        with open(assembled, "rb") as f:
            assert f.read() == b"abcde"
        assert not any(os.path.exists(p) for p in paths)

    @pytest.mark.asyncio
    async def test_assemble_missing_chunk_raises(self, scratch):
        """Test a vanished chunk file surfaces as OSError."""
        path, _ = await scratch.write_chunk("u1", 0, io.BytesIO(b"ab"))

        with pytest.raises(OSError):
            await scratch.assemble("u1", [path, str(scratch.chunk_path("u1", 1))])

    @pytest.mark.asyncio
    async def test_remove_session_files(self, scratch):
        """Test only the named session's files are removed."""
        await scratch.write_chunk("u1", 0, io.BytesIO(b"a"))
        await scratch.write_chunk("u1", 1, io.BytesIO(b"b"))
        await scratch.write_chunk("u10", 0, io.BytesIO(b"c"))

        removed = await scratch.remove_session_files("u1")

        assert removed == 2
        assert list(scratch.base_path.iterdir()) == [scratch.chunk_path("u10", 0)]

    @pytest.mark.asyncio
    async def test_purge_stale_keeps_live_sessions(self, scratch):
        """Test old orphan files go while live sessions keep theirs."""
        orphan, _ = await scratch.write_chunk("gone", 0, io.BytesIO(b"a"))
        live, _ = await scratch.write_chunk("live", 0, io.BytesIO(b"b"))
        old = (datetime.now(timezone.utc) - timedelta(days=2)).timestamp()
        for path in (orphan, live):
            os.utime(path, (old, old))

        removed = await scratch.purge_stale(datetime.now(timezone.utc) - timedelta(days=1), {"live"})

        assert removed == 1
        assert not os.path.exists(orphan)
        assert os.path.exists(live)

    @pytest.mark.asyncio
    async def test_operations_on_missing_directory(self, tmp_path):
        """Test cleanup calls tolerate a scratch directory never created."""
        scratch = ScratchStorage(tmp_path / "absent")

        assert await scratch.remove_session_files("u1") == 0
        assert await scratch.purge_stale(datetime.now(timezone.utc), set()) == 0
        await scratch.remove([None, str(tmp_path / "absent" / "x")])
