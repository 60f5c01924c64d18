from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging
from typing import Any

from playwright.async_api import async_playwright

logger = logging.getLogger(__name__)

BODY_TEXT_SCRIPT = "() => (document.body ? document.body.innerText : '')"


class PageRenderer:
    """One browser page reused for every document in a run."""

    def __init__(self, page: Any, *, navigation_timeout_seconds: float = 60.0, pdf_format: str = "A4") -> None:
        self.page = page
        self.navigation_timeout_seconds = navigation_timeout_seconds
        self.pdf_format = pdf_format

    async def load(self, url: str) -> None:
        await self.page.goto(
            url,
            wait_until="networkidle",
            timeout=self.navigation_timeout_seconds * 1000,
        )

    async def extract_text(self) -> str:
        text = await self.page.evaluate(BODY_TEXT_SCRIPT)
        return text if isinstance(text, str) else ""

    async def title(self) -> str:
        return await self.page.title()

    async def snapshot_pdf(self) -> bytes:
        # Captures the currently loaded page; call before the next load().
        return await self.page.pdf(format=self.pdf_format, print_background=True)


@asynccontextmanager
async def launch_renderer(
    *,
    headless: bool = True,
    navigation_timeout_seconds: float = 60.0,
    pdf_format: str = "A4",
) -> AsyncIterator[PageRenderer]:
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=headless)
        logger.debug("browser launched headless=%s", headless)
        try:
            page = await browser.new_page()
            yield PageRenderer(
                page,
                navigation_timeout_seconds=navigation_timeout_seconds,
                pdf_format=pdf_format,
            )
        finally:
            await browser.close()
