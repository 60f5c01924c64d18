from __future__ import annotations

import asyncio
import logging
import sys

from opentelemetry import trace

from regwatch.core.config import Settings, get_settings, require_store_credentials
from regwatch.core.telemetry import (
    configure_importer_logging,
    setup_importer_telemetry,
    shutdown_importer_telemetry,
)
from regwatch.jobs.importer import BatchSummary, process_batch
from regwatch.services.renderer import launch_renderer
from regwatch.services.store import SupabaseStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def run_importer(settings: Settings) -> BatchSummary:
    supabase_url, service_role_key = require_store_credentials(settings)
    store = SupabaseStore(
        supabase_url,
        service_role_key,
        documents_table=settings.documents_table,
        versions_table=settings.versions_table,
        snapshot_bucket=settings.snapshot_bucket,
        timeout_seconds=settings.store_timeout_seconds,
    )

    async with store:
        with tracer.start_as_current_span("importer.run") as span:
            documents = await store.fetch_pending_documents(limit=settings.batch_size)
            span.set_attribute("importer.batch_size", len(documents))
            if not documents:
                logger.info("no pending documents")
                return BatchSummary()

            async with launch_renderer(
                headless=settings.browser_headless,
                navigation_timeout_seconds=settings.navigation_timeout_seconds,
                pdf_format=settings.pdf_format,
            ) as renderer:
                return await process_batch(documents, store=store, renderer=renderer)


def main() -> int:
    settings = get_settings()
    configure_importer_logging()
    telemetry_runtime = setup_importer_telemetry(settings)
    try:
        summary = asyncio.run(run_importer(settings))
    except Exception:
        logger.exception("importer run failed")
        return 1
    finally:
        shutdown_importer_telemetry(telemetry_runtime)

    logger.info(
        "importer run complete processed=%s changed=%s unchanged=%s failed=%s",
        len(summary.outcomes),
        summary.changed,
        summary.unchanged,
        summary.failed,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
