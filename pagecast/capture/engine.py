"""Main renderer that coordinates all capture components.

This module provides the Renderer class that turns one CaptureRequest into an
encoded image: it opens an isolated browser context from the shared
BrowserFactory, loads and stabilizes the page, optionally scrolls and unrolls
dynamic content, optionally measures the content bounds, takes the
screenshot, and hands the bitmap to the image processor.
"""

import asyncio
import functools
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import aiofiles
from playwright.async_api import Page, Error as PlaywrightError

from .browser_factory import BrowserFactory, DEFAULT_USER_AGENT
from .bounds import ContentBoundsAnalyzer
from .console_observer import ConsoleObserver
from .page_loader import PageLoader
from .unroller import ContentUnroller
from ..errors import RenderError
from ..imaging.processor import DEFAULT_MAX_IMAGE_PIXELS, ImageProcessor
from ..models.capture import CaptureRequest, ContentBounds, ImageBuffer

logger = logging.getLogger(__name__)


class RendererConfig:
    """Configuration for the renderer pipeline."""

    def __init__(
        self,
        # Context
        viewport_height: int = 900,
        user_agent: Optional[str] = DEFAULT_USER_AGENT,

        # Load and scroll timing
        load_timeout_ms: int = 60000,
        network_idle_timeout_ms: int = 10000,
        scroll_step_delay_ms: int = 200,
        scroll_settle_delay_ms: int = 1000,
        scroll_reset_delay_ms: int = 1000,
        unroll_delay_ms: int = 500,
        max_scroll_iterations: int = 200,
        dynamic_settle_delay_ms: int = 1000,
        fast_settle_delay_ms: int = 200,

        # Heuristics
        background_tolerance_px: float = 50,
        min_scroll_container_px: int = 300,

        # Watermark
        watermark_inset_px: int = 20,
        watermark_min_font_size: int = 16,
        watermark_width_divisor: int = 40,

        # Imaging
        max_image_pixels: Optional[int] = DEFAULT_MAX_IMAGE_PIXELS,
    ):
        """Initialize renderer configuration.

        Args:
            viewport_height: Viewport height in CSS px for every context
            user_agent: User-Agent string for every context
            load_timeout_ms: Navigation / set_content timeout
            network_idle_timeout_ms: Bound on the dynamic-mode network idle wait
            scroll_step_delay_ms: Pause after each scroll step
            scroll_settle_delay_ms: Pause before deciding the page stopped growing
            scroll_reset_delay_ms: Pause after scrolling back to the top
            unroll_delay_ms: Pause for layout after unrolling a container
            max_scroll_iterations: Cap on scroll steps
            dynamic_settle_delay_ms: Final wait in dynamic mode
            fast_settle_delay_ms: Only wait in fast (static) mode
            background_tolerance_px: Background wrapper tolerance
            min_scroll_container_px: Minimum height of a scroll container
            watermark_inset_px: Distance of the label from the right/bottom edges
            watermark_min_font_size: Smallest watermark font size
            watermark_width_divisor: Font size is image width divided by this
            max_image_pixels: Largest screenshot decoded, None for no limit
        """
        self.viewport_height = viewport_height
        self.user_agent = user_agent

        self.load_timeout_ms = load_timeout_ms
        self.network_idle_timeout_ms = network_idle_timeout_ms
        self.scroll_step_delay_ms = scroll_step_delay_ms
        self.scroll_settle_delay_ms = scroll_settle_delay_ms
        self.scroll_reset_delay_ms = scroll_reset_delay_ms
        self.unroll_delay_ms = unroll_delay_ms
        self.max_scroll_iterations = max_scroll_iterations
        self.dynamic_settle_delay_ms = dynamic_settle_delay_ms
        self.fast_settle_delay_ms = fast_settle_delay_ms

        self.background_tolerance_px = background_tolerance_px
        self.min_scroll_container_px = min_scroll_container_px

        self.watermark_inset_px = watermark_inset_px
        self.watermark_min_font_size = watermark_min_font_size
        self.watermark_width_divisor = watermark_width_divisor

        self.max_image_pixels = max_image_pixels

    def context_options(self, request: CaptureRequest) -> Dict[str, Any]:
        """Browser context options for one request."""
        options = {
            'viewport': {'width': request.viewport_width, 'height': self.viewport_height},
            'device_scale_factor': request.scale,
        }
        if self.user_agent:
            options['user_agent'] = self.user_agent
        return options

    def create_page_loader(self) -> PageLoader:
        return PageLoader(load_timeout_ms=self.load_timeout_ms)

    def create_unroller(self) -> ContentUnroller:
        return ContentUnroller(
            network_idle_timeout_ms=self.network_idle_timeout_ms,
            step_delay_ms=self.scroll_step_delay_ms,
            settle_delay_ms=self.scroll_settle_delay_ms,
            reset_delay_ms=self.scroll_reset_delay_ms,
            unroll_delay_ms=self.unroll_delay_ms,
            min_container_height=self.min_scroll_container_px,
            max_iterations=self.max_scroll_iterations,
        )

    def create_bounds_analyzer(self) -> ContentBoundsAnalyzer:
        return ContentBoundsAnalyzer(background_tolerance=self.background_tolerance_px)

    def create_image_processor(self) -> ImageProcessor:
        return ImageProcessor(
            watermark_inset=self.watermark_inset_px,
            watermark_min_font_size=self.watermark_min_font_size,
            watermark_width_divisor=self.watermark_width_divisor,
            max_image_pixels=self.max_image_pixels,
        )


class Renderer:
    """Renders web content to images using a shared browser factory."""

    def __init__(self, browser_factory: BrowserFactory, config: Optional[RendererConfig] = None):
        """Initialize renderer.

        Args:
            browser_factory: Shared engine handle; not owned by the renderer
            config: Pipeline configuration (uses defaults if None)
        """
        self.browser_factory = browser_factory
        self.config = config or RendererConfig()

        self.loader = self.config.create_page_loader()
        self.unroller = self.config.create_unroller()
        self.analyzer = self.config.create_bounds_analyzer()
        self.processor = self.config.create_image_processor()

        self.stats = {
            'renders_attempted': 0,
            'renders_successful': 0,
            'renders_failed': 0,
            'smart_crop_fallbacks': 0,
            'total_duration_ms': 0.0,
        }

    async def render(self, request: CaptureRequest) -> ImageBuffer:
        """Render one request to an encoded image.

        Args:
            request: What to render and how

        Returns:
            Encoded image in the requested format

        Raises:
            LaunchError: If the browser has to be started and cannot be
            LoadError: If the input cannot be loaded in time
            ExtractionError: If cropping or watermarking fails
            EncodingError: If the final encode fails
            RenderError: If the screenshot itself fails
        """
        if self.browser_factory.browser is None:
            await self.browser_factory.start()

        logger.info(
            f"Render requested: {request.input_type.value}, format={request.format.value}, "
            f"scale={request.scale}, width={request.viewport_width}, "
            f"dynamic={request.dynamic_mode}, smart_crop={request.smart_crop}"
        )

        self.stats['renders_attempted'] += 1
        start_time = time.monotonic()

        try:
            async with self.browser_factory.page(**self.config.context_options(request)) as page:
                console = ConsoleObserver(page)
                raw, bounds = await self._capture(page, request)
                logger.debug(f"Browser console: {console.get_stats()}")

            result = await self._post_process(raw, bounds, request)

        except RenderError as e:
            self.stats['renders_failed'] += 1
            logger.error(f"Render failed: {e}")
            raise
        except Exception as e:
            self.stats['renders_failed'] += 1
            logger.error(f"Render failed: {e}")
            raise RenderError(f"Render failed: {e}") from e
        finally:
            self.stats['total_duration_ms'] += (time.monotonic() - start_time) * 1000

        self.stats['renders_successful'] += 1
        return result

    async def render_to_file(self, request: CaptureRequest, output_path: Union[str, Path]) -> ImageBuffer:
        """Render and write the encoded bytes to ``output_path``."""
        result = await self.render(request)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(output_path, 'wb') as f:
            await f.write(result.data)
        logger.info(f"Image saved: {output_path}")
        return result

    async def _capture(self, page: Page, request: CaptureRequest) -> Tuple[bytes, Optional[ContentBounds]]:
        await self.loader.prepare(page, request)

        if request.dynamic_mode:
            logger.info("Dynamic mode: processing dynamic content")
            if request.capture_full_page:
                await self.unroller.unroll(page)
            else:
                await self.unroller.wait_for_network_idle(page)
            await page.wait_for_timeout(self.config.dynamic_settle_delay_ms)
        else:
            logger.debug("Fast mode: brief stability wait")
            await page.wait_for_timeout(self.config.fast_settle_delay_ms)

        bounds = None
        if request.smart_crop:
            bounds = await self.analyzer.analyze(page, request.smart_crop_padding)
            if bounds is None:
                self.stats['smart_crop_fallbacks'] += 1

        logger.info(f"Taking screenshot with scale {request.scale}")
        try:
            raw = await page.screenshot(
                type='png',
                full_page=request.capture_full_page,
                scale='device',
            )
        except PlaywrightError as e:
            raise RenderError(f"Screenshot failed: {e}") from e

        return raw, bounds

    async def _post_process(
        self,
        raw: bytes,
        bounds: Optional[ContentBounds],
        request: CaptureRequest
    ) -> ImageBuffer:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            functools.partial(
                self.processor.process,
                raw,
                request.scale,
                bounds=bounds,
                watermark_text=request.watermark_text if request.wants_watermark else None,
                image_format=request.format,
                quality=request.quality,
            )
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get renderer statistics."""
        stats = dict(self.stats)
        stats['open_contexts'] = self.browser_factory.context_count
        stats['contexts_created'] = self.browser_factory.contexts_created
        return stats

    def __repr__(self) -> str:
        return (
            f"Renderer(attempted={self.stats['renders_attempted']}, "
            f"successful={self.stats['renders_successful']}, "
            f"failed={self.stats['renders_failed']})"
        )


def create_renderer(
    browser_factory: Optional[BrowserFactory] = None,
    **config_kwargs
) -> Renderer:
    """Create a renderer, with a default browser factory if none is given."""
    return Renderer(browser_factory or BrowserFactory(), RendererConfig(**config_kwargs))
