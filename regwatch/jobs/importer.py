from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any, Literal

from opentelemetry import trace

from regwatch.jobs.change_detector import detect_change, next_version, snapshot_path
from regwatch.schemas.documents import RegDocument, RegDocumentVersionIn
from regwatch.services.renderer import PageRenderer
from regwatch.services.store import StoreError, SupabaseStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

OutcomeKind = Literal["changed", "unchanged", "failed"]


@dataclass(slots=True)
class DocumentOutcome:
    document_id: str | int
    canonical_url: str
    kind: OutcomeKind
    version: int | None = None
    content_hash: str | None = None
    error: str | None = None


@dataclass(slots=True)
class BatchSummary:
    outcomes: list[DocumentOutcome] = field(default_factory=list)

    def count(self, kind: OutcomeKind) -> int:
        return sum(1 for outcome in self.outcomes if outcome.kind == kind)

    @property
    def changed(self) -> int:
        return self.count("changed")

    @property
    def unchanged(self) -> int:
        return self.count("unchanged")

    @property
    def failed(self) -> int:
        return self.count("failed")

    def as_dict(self) -> dict[str, Any]:
        return {
            "processed": len(self.outcomes),
            "changed": self.changed,
            "unchanged": self.unchanged,
            "failed": self.failed,
        }


async def process_batch(
    documents: Sequence[RegDocument],
    *,
    store: SupabaseStore,
    renderer: PageRenderer,
) -> BatchSummary:
    summary = BatchSummary()
    for document in documents:
        outcome = await process_document(document, store=store, renderer=renderer)
        summary.outcomes.append(outcome)
    return summary


async def process_document(
    document: RegDocument,
    *,
    store: SupabaseStore,
    renderer: PageRenderer,
    now: datetime | None = None,
) -> DocumentOutcome:
    with tracer.start_as_current_span("importer.process_document") as span:
        span.set_attribute("document.id", str(document.id))
        span.set_attribute("document.url", document.canonical_url)
        logger.info("processing document url=%s", document.canonical_url)
        try:
            return await _capture(document, store=store, renderer=renderer, now=now)
        except Exception as exc:
            logger.error("document failed url=%s reason=%s", document.canonical_url, exc)
            span.record_exception(exc)
            await _mark_failed(document, store=store, now=now)
            return DocumentOutcome(
                document_id=document.id,
                canonical_url=document.canonical_url,
                kind="failed",
                error=str(exc) or type(exc).__name__,
            )


async def _capture(
    document: RegDocument,
    *,
    store: SupabaseStore,
    renderer: PageRenderer,
    now: datetime | None,
) -> DocumentOutcome:
    await renderer.load(document.canonical_url)
    text = await renderer.extract_text()
    decision = detect_change(document.content_hash, text)

    if not decision.changed:
        await store.update_document(
            document.id,
            {"status": "active", "last_checked_at": _timestamp(now)},
        )
        logger.info("no change url=%s version=%s", document.canonical_url, document.latest_version)
        return DocumentOutcome(
            document_id=document.id,
            canonical_url=document.canonical_url,
            kind="unchanged",
            version=document.latest_version,
            content_hash=decision.content_hash,
        )

    version = next_version(document.latest_version, decision)
    if decision.first_capture and version > 1:
        logger.warning(
            "first capture reuses stored latest_version=%s for id=%s; version row may already exist",
            version,
            document.id,
        )

    pdf = await renderer.snapshot_pdf()
    path = snapshot_path(document.id, version)
    await store.upload_snapshot(path, pdf)
    title = await renderer.title()

    captured_at = now or datetime.now(timezone.utc)
    await store.update_document(
        document.id,
        {
            "title": title,
            "status": "active",
            "latest_version": version,
            "snapshot_path": path,
            "full_text": text,
            "content_hash": decision.content_hash,
            "retrieved_at": captured_at.isoformat(),
            "last_checked_at": captured_at.isoformat(),
            "updated_at": captured_at.isoformat(),
        },
    )

    try:
        await store.insert_version(
            RegDocumentVersionIn(
                reg_document_id=document.id,
                version=version,
                snapshot_path=path,
                full_text=text,
                content_hash=decision.content_hash,
                retrieved_at=captured_at,
            )
        )
    except StoreError:
        logger.error(
            "version row insert failed after document update id=%s version=%s; history is behind",
            document.id,
            version,
        )
        raise

    logger.info("saved version url=%s version=%s", document.canonical_url, version)
    return DocumentOutcome(
        document_id=document.id,
        canonical_url=document.canonical_url,
        kind="changed",
        version=version,
        content_hash=decision.content_hash,
    )


async def _mark_failed(document: RegDocument, *, store: SupabaseStore, now: datetime | None) -> None:
    timestamp = _timestamp(now)
    try:
        await store.update_document(
            document.id,
            {"status": "error", "last_checked_at": timestamp, "updated_at": timestamp},
        )
    except StoreError:
        logger.exception("could not mark document as error id=%s", document.id)


def _timestamp(now: datetime | None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()
