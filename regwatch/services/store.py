from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from regwatch.schemas.documents import RegDocument, RegDocumentVersionIn

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base store error."""


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached."""


class StoreRequestError(StoreError):
    """Raised when the store rejects a request."""

    def __init__(self, method: str, path: str, status_code: int, body: str) -> None:
        super().__init__(f"{method} {path} failed with status {status_code}: {body[:200]}")
        self.status_code = status_code
        self.body = body


@dataclass(slots=True)
class RejectedRow:
    row_id: str | int | None
    reason: str


@dataclass(slots=True)
class DocumentPage:
    documents: list[RegDocument] = field(default_factory=list)
    rejected: list[RejectedRow] = field(default_factory=list)
    row_count: int = 0


class SupabaseStore:
    """Reads and writes tracked documents through Supabase's REST and storage APIs."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        *,
        documents_table: str = "reg_documents",
        versions_table: str = "reg_document_versions",
        snapshot_bucket: str = "regulations",
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.documents_table = documents_table
        self.versions_table = versions_table
        self.snapshot_bucket = snapshot_bucket
        self.headers = {
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def __aenter__(self) -> "SupabaseStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_pending_documents(self, limit: int = 20) -> list[RegDocument]:
        page = await self.fetch_document_page(["pending"], limit=limit)
        for rejected in page.rejected:
            await self._mark_unreadable(rejected)
        return page.documents

    async def fetch_document_page(
        self,
        statuses: Iterable[str],
        *,
        limit: int,
        offset: int = 0,
    ) -> DocumentPage:
        wanted = list(statuses)
        status_filter = f"eq.{wanted[0]}" if len(wanted) == 1 else f"in.({','.join(wanted)})"
        response = await self._request(
            "GET",
            f"/rest/v1/{self.documents_table}",
            params={
                "select": "*",
                "status": status_filter,
                "order": "id.asc",
                "limit": str(limit),
                "offset": str(offset),
            },
        )
        rows = response.json()
        page = DocumentPage(row_count=len(rows))
        for row in rows:
            try:
                page.documents.append(RegDocument.model_validate(row))
            except ValidationError as exc:
                row_id = row.get("id") if isinstance(row, dict) else None
                logger.warning("skipping unreadable document row id=%s: %s", row_id, exc)
                page.rejected.append(RejectedRow(row_id=row_id, reason=str(exc)))
        return page

    async def _mark_unreadable(self, rejected: RejectedRow) -> None:
        if not isinstance(rejected.row_id, (str, int)) or rejected.row_id == "":
            return
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            await self.update_document(
                rejected.row_id,
                {"status": "error", "last_checked_at": timestamp, "updated_at": timestamp},
            )
        except StoreError:
            logger.exception("could not mark unreadable document as error id=%s", rejected.row_id)

    async def update_document(self, document_id: str | int, fields: dict[str, Any]) -> None:
        await self._request(
            "PATCH",
            f"/rest/v1/{self.documents_table}",
            params={"id": f"eq.{document_id}"},
            json=fields,
            headers={"Prefer": "return=minimal"},
        )

    async def insert_version(self, row: RegDocumentVersionIn) -> None:
        await self._request(
            "POST",
            f"/rest/v1/{self.versions_table}",
            json=row.model_dump(mode="json"),
            headers={"Prefer": "return=minimal"},
        )

    async def fetch_version_numbers(self, document_id: str | int) -> list[int]:
        response = await self._request(
            "GET",
            f"/rest/v1/{self.versions_table}",
            params={
                "select": "version",
                "reg_document_id": f"eq.{document_id}",
                "order": "version.asc",
            },
        )
        return [int(row["version"]) for row in response.json()]

    async def upload_snapshot(self, path: str, pdf: bytes) -> None:
        # x-upsert overwrites an existing object at the same key.
        await self._request(
            "POST",
            f"/storage/v1/object/{self.snapshot_bucket}/{quote(path)}",
            content=pdf,
            headers={"Content-Type": "application/pdf", "x-upsert": "true"},
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        merged_headers = {**self.headers, **(headers or {})}
        try:
            response = await self._client.request(method, f"{self.base_url}{path}", headers=merged_headers, **kwargs)
        except httpx.HTTPError as exc:
            raise StoreUnavailableError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise StoreRequestError(method, path, response.status_code, response.text)
        return response
