"""Supabase record store speaking PostgREST over HTTP."""

import logging
from typing import Any, Dict, Optional

import httpx

from casitas.records.base import RecordNotFoundError, RecordStore, RecordStoreError

logger = logging.getLogger(__name__)


class SupabaseRecordStore(RecordStore):
    """Record store backed by a Supabase table.

    Rows are addressed by their ``id`` column through the PostgREST API
    exposed at ``<SUPABASE_URL>/rest/v1``.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        table: str,
        evidence_column: str,
        evidence_fields: list[str],
        timeout: int = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(evidence_fields)
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.table = table
        self.evidence_column = evidence_column
        self.timeout = timeout
        self._transport = transport

    @property
    def table_url(self) -> str:
        return f"{self.url}/rest/v1/{self.table}"

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "x-application-name": "revision-casitas",
        }

    def _client(self) -> httpx.AsyncClient:
        if not self.url or not self.api_key:
            raise RecordStoreError("Supabase URL or key not configured")
        return httpx.AsyncClient(timeout=self.timeout, headers=self._headers(), transport=self._transport)

    async def _fetch_row(self, client: httpx.AsyncClient, record_id: str, columns: list[str]) -> Dict[str, Any]:
        response = await client.get(
            self.table_url,
            params={"id": f"eq.{record_id}", "select": ",".join(["id", *columns])},
        )
        response.raise_for_status()
        rows = response.json()
        if not rows:
            raise RecordNotFoundError(record_id)
        return rows[0]

    async def get_evidence_list(self, record_id: str) -> list[str]:
        try:
            async with self._client() as client:
                row = await self._fetch_row(client, record_id, [self.evidence_column])
        except httpx.HTTPError as e:
            logger.error(
                f"Supabase read failed: {e}",
                extra={"record_id": record_id, "table": self.table},
            )
            raise RecordStoreError(f"Supabase read failed: {e}") from e

        return list(row.get(self.evidence_column) or [])

    async def append_evidence(self, record_id: str, url: str, field_name: Optional[str] = None) -> None:
        self.validate_field(field_name)
        try:
            async with self._client() as client:
                row = await self._fetch_row(client, record_id, [self.evidence_column])
                evidence = list(row.get(self.evidence_column) or [])
                payload: Dict[str, Any] = {self.evidence_column: [*evidence, url]}
                if field_name:
                    payload[field_name] = url

                response = await client.patch(
                    self.table_url,
                    params={"id": f"eq.{record_id}"},
                    json=payload,
                    headers={"Prefer": "return=representation"},
                )
                response.raise_for_status()
                if not response.json():
                    # Row deleted between read and write
                    raise RecordNotFoundError(record_id)
        except httpx.HTTPError as e:
            logger.error(
                f"Supabase update failed: {e}",
                extra={"record_id": record_id, "table": self.table, "field_name": field_name},
            )
            raise RecordStoreError(f"Supabase update failed: {e}") from e

        logger.info(
            "Evidence appended to record",
            extra={"record_id": record_id, "field_name": field_name, "evidence_count": len(evidence) + 1},
        )

    def get_backend_name(self) -> str:
        return "supabase"
