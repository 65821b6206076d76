"""Page loading and render stabilization.

This module provides the PageLoader class that puts one of the three input
variants (remote URL, inline HTML, local HTML file) into a page, then removes
timing nondeterminism: animations and transitions are zeroed out and font
loading is awaited so that repeated captures of static content match.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiofiles
from playwright.async_api import Page, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from ..models.capture import CaptureRequest, InputType
from ..errors import LoadError, FontWaitError

logger = logging.getLogger(__name__)


STABILIZE_CSS = """
*, *::before, *::after {
    animation-duration: 0s !important;
    transition-duration: 0s !important;
    animation-delay: 0s !important;
    transition-delay: 0s !important;
}
body::-webkit-scrollbar {
    display: none;
}
"""

FONTS_READY_SCRIPT = "() => document.fonts.ready.then(() => true)"


class PageLoader:
    """Loads render input into a page and stabilizes it for capture."""

    def __init__(
        self,
        load_timeout_ms: int = 60000,
        wait_until: str = "domcontentloaded",
        font_timeout_ms: Optional[int] = None,
    ):
        """Initialize page loader.

        Args:
            load_timeout_ms: Maximum time for navigation or set_content
            wait_until: Playwright load state that ends the load
            font_timeout_ms: Maximum time to wait for document.fonts.ready
                (defaults to the load timeout)
        """
        self.load_timeout_ms = load_timeout_ms
        self.wait_until = wait_until
        self.font_timeout_ms = font_timeout_ms or load_timeout_ms

    async def prepare(self, page: Page, request: CaptureRequest) -> None:
        """Load the request input, then stabilize the page.

        Raises:
            LoadError: If the content cannot be loaded in time
        """
        await self.load(page, request)
        await self.stabilize(page)
        await self.wait_for_fonts(page)

    async def load(self, page: Page, request: CaptureRequest) -> None:
        """Load the request input into the page.

        Args:
            page: Playwright page to load into
            request: Render request naming the input and its type

        Raises:
            LoadError: On navigation error, timeout or unreadable file
        """
        logger.info(f"Loading {request.input_type.value} input")
        load_options = {'wait_until': self.wait_until, 'timeout': self.load_timeout_ms}

        if request.input_type == InputType.FILE:
            markup = await self.read_markup_file(request.input)
        else:
            markup = request.input

        try:
            if request.input_type == InputType.URL:
                await page.goto(request.input, **load_options)
            else:
                await page.set_content(markup, **load_options)

        except PlaywrightTimeoutError as e:
            logger.error(f"Load timed out after {self.load_timeout_ms}ms")
            raise LoadError(f"Loading {request.input_type.value} input timed out after {self.load_timeout_ms}ms") from e
        except PlaywrightError as e:
            logger.error(f"Load failed: {e}")
            raise LoadError(f"Loading {request.input_type.value} input failed: {e}") from e

        logger.debug(f"Load completed ({self.wait_until})")

    async def read_markup_file(self, path: str) -> str:
        """Read a local HTML file as UTF-8 text.

        Raises:
            LoadError: If the file is missing or not valid UTF-8
        """
        file_path = Path(path)
        try:
            async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
                return await f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read HTML file {file_path}: {e}")
            raise LoadError(f"Cannot read HTML file {file_path}: {e}") from e

    async def stabilize(self, page: Page) -> None:
        """Disable animation and transition timing and hide the scrollbar."""
        await page.add_style_tag(content=STABILIZE_CSS)
        logger.debug("Stabilization styles injected")

    async def wait_for_fonts(self, page: Page) -> bool:
        """Wait for web fonts to finish loading.

        A failure to observe font readiness is not fatal; the capture
        proceeds with whatever fonts are available.

        Returns:
            True if font readiness was observed
        """
        try:
            await self._await_fonts_ready(page)
            logger.debug("Fonts loaded")
            return True
        except FontWaitError as e:
            logger.warning(f"{e}, proceeding anyway")
            return False

    async def _await_fonts_ready(self, page: Page) -> None:
        try:
            await asyncio.wait_for(
                page.evaluate(FONTS_READY_SCRIPT),
                timeout=self.font_timeout_ms / 1000.0
            )
        except asyncio.TimeoutError as e:
            raise FontWaitError(f"Fonts not ready after {self.font_timeout_ms}ms") from e
        except PlaywrightError as e:
            raise FontWaitError(f"Font loading check failed: {e}") from e
