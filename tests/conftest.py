"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from casitas.assembly.scratch import ScratchStorage
from casitas.assembly.service import ChunkAssemblyService
from casitas.assembly.session_store import SessionStore
from casitas.main import create_app
from casitas.media.base import MediaStore, MediaStoreError
from casitas.media.local import LocalMediaStore
from casitas.records.base import RecordStoreError
from casitas.records.memory import InMemoryRecordStore

CHUNK_SIZE = 1024 * 1024
MEDIA_BASE_URL = "https://media.example.com/casitas"
EVIDENCE_FIELDS = ["evidencia_01", "evidencia_02", "evidencia_03"]


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 3, 14, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FlakyMediaStore(MediaStore):
    """Media store failing a given number of uploads before delegating."""

    def __init__(self, inner: MediaStore, failures: int = 1):
        self.inner = inner
        self.failures = failures
        self.calls = 0

    @property
    def credentials_configured(self) -> bool:
        return False

    async def upload(self, file_path, folder, file_name=None):
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise MediaStoreError("media store unreachable")
        return await self.inner.upload(file_path, folder, file_name)

    def get_backend_name(self) -> str:
        return "flaky"


class FlakyRecordStore(InMemoryRecordStore):
    """In-memory record store failing a given number of evidence updates."""

    def __init__(self, evidence_fields, failures: int = 1):
        super().__init__(evidence_fields)
        self.failures = failures

    async def append_evidence(self, record_id, url, field_name=None):
        if self.failures > 0:
            self.failures -= 1
            raise RecordStoreError("record store unreachable")
        await super().append_evidence(record_id, url, field_name)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def record_store():
    """Record store holding inspection records r1 and r2."""
    store = InMemoryRecordStore(evidence_fields=EVIDENCE_FIELDS)
    store.create("r1", casita="101")
    store.create("r2", casita="102")
    return store


@pytest.fixture
def media_store(tmp_path):
    return LocalMediaStore(base_path=tmp_path / "media", base_url=MEDIA_BASE_URL)


@pytest.fixture
def scratch(tmp_path):
    return ScratchStorage(tmp_path / "scratch")


def make_service(scratch, media_store, record_store, clock) -> ChunkAssemblyService:
    return ChunkAssemblyService(
        sessions=SessionStore(clock=clock),
        scratch=scratch,
        media_store=media_store,
        record_store=record_store,
        chunk_size=CHUNK_SIZE,
        max_upload_bytes=10 * 1024 * 1024,
        folder_namespace="prueba-imagenes",
        retention=timedelta(hours=24),
    )


@pytest.fixture
def service(scratch, media_store, record_store, clock):
    return make_service(scratch, media_store, record_store, clock)


@pytest.fixture
def app(service):
    return create_app(service=service)


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)
