"""In-memory record store for local development and tests."""

from typing import Any, Dict, Optional

from casitas.records.base import RecordNotFoundError, RecordStore


class InMemoryRecordStore(RecordStore):
    """Record store keeping inspection rows in a dict."""

    def __init__(self, evidence_fields: list[str], evidence_column: str = "evidencias"):
        super().__init__(evidence_fields)
        self.evidence_column = evidence_column
        self._records: Dict[str, Dict[str, Any]] = {}

    def create(self, record_id: str, **fields: Any) -> Dict[str, Any]:
        """Insert an inspection record with an empty evidence list."""
        record = {"id": record_id, self.evidence_column: [], **fields}
        for slot in self.evidence_fields:
            record.setdefault(slot, None)
        self._records[record_id] = record
        return record

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        return self._records.get(record_id)

    async def get_evidence_list(self, record_id: str) -> list[str]:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return list(record[self.evidence_column])

    async def append_evidence(self, record_id: str, url: str, field_name: Optional[str] = None) -> None:
        self.validate_field(field_name)
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        record[self.evidence_column] = [*record[self.evidence_column], url]
        if field_name:
            record[field_name] = url

    def get_backend_name(self) -> str:
        return "memory"
