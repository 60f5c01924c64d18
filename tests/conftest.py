from __future__ import annotations

from typing import Any

import pytest

from regwatch.schemas.documents import RegDocument, RegDocumentVersionIn
from regwatch.services.store import DocumentPage, StoreRequestError


class FakeStore:
    """In-memory stand-in for SupabaseStore recording every write."""

    def __init__(self) -> None:
        self.updates: list[tuple[Any, dict[str, Any]]] = []
        self.versions: list[RegDocumentVersionIn] = []
        self.uploads: dict[str, bytes] = {}
        self.upload_calls: list[str] = []
        self.fail_upload_for: set[str] = set()
        self.fail_insert = False
        self.fail_update_statuses: set[str] = set()
        self.version_numbers: dict[Any, list[int]] = {}
        self.documents: list[RegDocument] = []
        self.page_requests: list[tuple[list[str], int, int]] = []
        self.closed = False

    async def __aenter__(self) -> "FakeStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.closed = True

    async def update_document(self, document_id: Any, fields: dict[str, Any]) -> None:
        if fields.get("status") in self.fail_update_statuses:
            raise StoreRequestError("PATCH", "/rest/v1/reg_documents", 500, "update rejected")
        self.updates.append((document_id, dict(fields)))

    async def insert_version(self, row: RegDocumentVersionIn) -> None:
        if self.fail_insert:
            raise StoreRequestError("POST", "/rest/v1/reg_document_versions", 409, "duplicate version")
        self.versions.append(row)

    async def upload_snapshot(self, path: str, pdf: bytes) -> None:
        self.upload_calls.append(path)
        if any(path.startswith(prefix) for prefix in self.fail_upload_for):
            raise StoreRequestError("POST", f"/storage/v1/object/regulations/{path}", 400, "bucket not found")
        self.uploads[path] = pdf

    async def fetch_document_page(self, statuses, *, limit: int, offset: int = 0) -> DocumentPage:
        wanted = list(statuses)
        self.page_requests.append((wanted, limit, offset))
        matching = [document for document in self.documents if document.status in wanted]
        rows = matching[offset : offset + limit]
        return DocumentPage(documents=rows, row_count=len(rows))

    async def fetch_version_numbers(self, document_id: Any) -> list[int]:
        return list(self.version_numbers.get(document_id, []))

    def updates_for(self, document_id: Any) -> list[dict[str, Any]]:
        return [fields for doc_id, fields in self.updates if doc_id == document_id]


class FakeRenderer:
    """Serves canned page text per URL; raises for URLs listed in ``failures``."""

    def __init__(self, pages: dict[str, str], *, failures: dict[str, Exception] | None = None) -> None:
        self.pages = pages
        self.failures = failures or {}
        self.loaded: list[str] = []
        self.current: str | None = None
        self.pdf_calls = 0

    async def load(self, url: str) -> None:
        self.loaded.append(url)
        if url in self.failures:
            raise self.failures[url]
        self.current = url

    async def extract_text(self) -> str:
        assert self.current is not None
        return self.pages[self.current]

    async def title(self) -> str:
        return f"Title of {self.current}"

    async def snapshot_pdf(self) -> bytes:
        self.pdf_calls += 1
        return b"%PDF-1.7 " + (self.current or "").encode("utf-8")


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def make_renderer():
    def factory(pages: dict[str, str], failures: dict[str, Exception] | None = None) -> FakeRenderer:
        return FakeRenderer(pages, failures=failures)

    return factory
