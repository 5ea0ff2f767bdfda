"""Record store selection."""

from casitas.core.config import Settings, settings as default_settings
from casitas.records.base import RecordStore
from casitas.records.memory import InMemoryRecordStore
from casitas.records.supabase import SupabaseRecordStore


def get_record_store(settings: Settings = default_settings) -> RecordStore:
    """Build the record store named by RECORD_BACKEND.

    Raises:
        ValueError: If RECORD_BACKEND names an unknown backend
    """
    backend = settings.RECORD_BACKEND.lower()

    if backend == "supabase":
        return SupabaseRecordStore(
            url=settings.SUPABASE_URL,
            api_key=settings.SUPABASE_KEY,
            table=settings.RECORDS_TABLE,
            evidence_column=settings.EVIDENCE_COLUMN,
            evidence_fields=settings.evidence_fields,
            timeout=settings.RECORD_STORE_TIMEOUT,
        )
    if backend == "memory":
        return InMemoryRecordStore(
            evidence_fields=settings.evidence_fields,
            evidence_column=settings.EVIDENCE_COLUMN,
        )

    raise ValueError(f"Unknown RECORD_BACKEND: {settings.RECORD_BACKEND}")
