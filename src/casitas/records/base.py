"""Abstract record store interface."""

from abc import ABC, abstractmethod
from typing import Optional


class RecordStoreError(Exception):
    """Exception raised when the record store cannot be read or written."""
    pass


class RecordNotFoundError(RecordStoreError):
    """Exception raised when an inspection record does not exist."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


class RecordStore(ABC):
    """Abstract base class for the store holding inspection records."""

    def __init__(self, evidence_fields: list[str]):
        self.evidence_fields = evidence_fields

    @abstractmethod
    async def get_evidence_list(self, record_id: str) -> list[str]:
        """Return the evidence URLs attached to a record.

        Raises:
            RecordNotFoundError: If the record does not exist
            RecordStoreError: If the store is unreachable
        """
        pass

    @abstractmethod
    async def append_evidence(self, record_id: str, url: str, field_name: Optional[str] = None) -> None:
        """Append a URL to a record's evidence list.

        When ``field_name`` names an evidence slot, that slot is set to the
        URL as well, replacing whatever it held.

        Raises:
            RecordNotFoundError: If the record does not exist
            RecordStoreError: If the store is unreachable
            ValueError: If ``field_name`` is not an evidence slot
        """
        pass

    @abstractmethod
    def get_backend_name(self) -> str:
        """Return backend identifier."""
        pass

    def validate_field(self, field_name: Optional[str]) -> None:
        if field_name is not None and field_name not in self.evidence_fields:
            raise ValueError(
                f"Unknown evidence field {field_name!r}; expected one of {', '.join(self.evidence_fields)}"
            )
