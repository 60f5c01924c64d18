"""Detect and repair divergence between document rows and their version history.

The importer updates ``reg_documents`` before inserting the matching
``reg_document_versions`` row, and the two writes are not transactional.
This pass compares each captured document's ``latest_version`` with the
version rows on file, reporting gaps. With ``--repair`` it back-fills the
latest version row from the document's current fields.
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
import logging
import sys

from regwatch.core.config import Settings, get_settings, require_store_credentials
from regwatch.core.telemetry import configure_importer_logging
from regwatch.schemas.documents import RegDocument, RegDocumentVersionIn
from regwatch.services.store import SupabaseStore

logger = logging.getLogger(__name__)

EXIT_DIVERGENT = 2


@dataclass(slots=True)
class VersionDivergence:
    document: RegDocument
    recorded_versions: list[int] = field(default_factory=list)

    @property
    def latest_version(self) -> int:
        return self.document.latest_version or 1

    @property
    def recorded_version(self) -> int | None:
        return max(self.recorded_versions) if self.recorded_versions else None

    @property
    def missing_versions(self) -> list[int]:
        """Version numbers below ``latest_version`` with no row on file."""
        recorded = set(self.recorded_versions)
        return [version for version in range(1, self.latest_version) if version not in recorded]

    @property
    def behind(self) -> bool:
        return self.recorded_version is None or self.recorded_version < self.latest_version

    @property
    def repairable(self) -> bool:
        doc = self.document
        complete = doc.content_hash and doc.snapshot_path and doc.full_text is not None and doc.retrieved_at
        return self.behind and bool(complete)

    @property
    def resolved_by_repair(self) -> bool:
        return self.repairable and not self.missing_versions


@dataclass(slots=True)
class ReconcileReport:
    divergences: list[VersionDivergence] = field(default_factory=list)
    scanned: int = 0
    unreadable: int = 0


async def find_version_divergences(store: SupabaseStore, *, page_size: int = 500) -> ReconcileReport:
    if page_size < 1:
        raise ValueError("page_size must be positive")
    report = ReconcileReport()
    offset = 0
    while True:
        page = await store.fetch_document_page(["active", "error"], limit=page_size, offset=offset)
        report.scanned += len(page.documents)
        report.unreadable += len(page.rejected)
        for document in page.documents:
            if not document.content_hash:
                continue
            recorded = await store.fetch_version_numbers(document.id)
            divergence = VersionDivergence(document=document, recorded_versions=recorded)
            if divergence.recorded_version != divergence.latest_version or divergence.missing_versions:
                report.divergences.append(divergence)
        if page.row_count < page_size:
            return report
        offset += page.row_count


async def repair_divergence(store: SupabaseStore, divergence: VersionDivergence) -> RegDocumentVersionIn:
    """Back-fill the row for ``latest_version``; lower gaps are left for manual review."""
    if not divergence.repairable:
        raise ValueError(f"divergence for document {divergence.document.id} cannot be repaired")

    document = divergence.document
    row = RegDocumentVersionIn(
        reg_document_id=document.id,
        version=divergence.latest_version,
        snapshot_path=document.snapshot_path or "",
        full_text=document.full_text or "",
        content_hash=document.content_hash or "",
        retrieved_at=document.retrieved_at,
    )
    await store.insert_version(row)
    logger.info("back-filled version row id=%s version=%s", document.id, row.version)
    return row


def render_report(report: ReconcileReport) -> str:
    header = f"scanned {report.scanned} document(s)"
    if report.unreadable:
        header += f", skipped {report.unreadable} unreadable row(s)"
    if not report.divergences:
        return f"{header}; version history consistent"

    lines = [f"{header}; {len(report.divergences)} diverge from their version history:"]
    for divergence in report.divergences:
        recorded = divergence.recorded_version if divergence.recorded_version is not None else "none"
        if divergence.resolved_by_repair:
            action = "repairable"
        elif divergence.repairable:
            action = "latest repairable, gaps need manual review"
        else:
            action = "manual review"
        line = (
            f"  {divergence.document.id} latest_version={divergence.latest_version} "
            f"recorded_version={recorded}"
        )
        if divergence.missing_versions:
            line += f" missing={','.join(str(version) for version in divergence.missing_versions)}"
        lines.append(f"{line} ({action})")
    return "\n".join(lines)


async def run_reconcile(settings: Settings, *, page_size: int, repair: bool) -> list[VersionDivergence]:
    supabase_url, service_role_key = require_store_credentials(settings)
    async with SupabaseStore(
        supabase_url,
        service_role_key,
        documents_table=settings.documents_table,
        versions_table=settings.versions_table,
        snapshot_bucket=settings.snapshot_bucket,
        timeout_seconds=settings.store_timeout_seconds,
    ) as store:
        report = await find_version_divergences(store, page_size=page_size)
        print(render_report(report))
        if not repair:
            return report.divergences

        remaining: list[VersionDivergence] = []
        for divergence in report.divergences:
            if divergence.repairable:
                await repair_divergence(store, divergence)
            if not divergence.resolved_by_repair:
                remaining.append(divergence)
        return remaining


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compare document rows with their version history.")
    parser.add_argument(
        "--page-size",
        type=int,
        default=settings.reconcile_batch_size,
        help="Number of documents fetched per request; every page is scanned",
    )
    parser.add_argument(
        "--repair",
        action="store_true",
        help=(
            "Insert the missing row for each document's latest_version from its current fields; "
            "gaps below the latest version are only reported"
        ),
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    args = build_parser(settings).parse_args(argv)
    configure_importer_logging()
    try:
        remaining = asyncio.run(run_reconcile(settings, page_size=args.page_size, repair=args.repair))
    except Exception:
        logger.exception("reconcile run failed")
        return 1
    return EXIT_DIVERGENT if remaining else 0


if __name__ == "__main__":
    sys.exit(main())
