from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

DocumentStatus = Literal["pending", "active", "error"]


class RegDocument(BaseModel):
    """A row of ``reg_documents`` as returned by the store."""

    model_config = ConfigDict(extra="ignore")

    id: str | int
    canonical_url: str
    status: DocumentStatus = "pending"
    latest_version: int | None = None
    content_hash: str | None = None
    title: str | None = None
    full_text: str | None = None
    snapshot_path: str | None = None
    retrieved_at: datetime | None = None
    last_checked_at: datetime | None = None
    updated_at: datetime | None = None


class RegDocumentVersionIn(BaseModel):
    """Insert payload for ``reg_document_versions``."""

    reg_document_id: str | int
    version: int
    snapshot_path: str
    full_text: str
    content_hash: str
    retrieved_at: datetime
