"""Shared browser handle and per-render context factory.

One ``BrowserFactory`` owns the long-lived Playwright driver and browser
process for the whole service. Launching is guarded by a lock so concurrent
first renders start exactly one browser. Each render gets a brand new browser
context sized for that request (viewport width, device scale factor, user
agent) which is closed as soon as the render is over, successful or not.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)

from ..errors import LaunchError

logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)

# Sandbox switches for containers; fixed hinting keeps glyph metrics stable
DEFAULT_LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
    '--font-render-hinting=none',
]

DEFAULT_VIEWPORT = {'width': 1200, 'height': 900}


class BrowserEngineType:
    """Playwright browser types the factory can launch."""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class BrowserConfig:
    """Launch switches and default context settings."""

    def __init__(
        self,
        engine: str = BrowserEngineType.CHROMIUM,
        headless: bool = True,
        launch_args: Optional[List[str]] = None,
        viewport: Optional[Dict[str, int]] = None,
        device_scale_factor: float = 1,
        user_agent: Optional[str] = DEFAULT_USER_AGENT,
        ignore_https_errors: bool = False,
        locale: Optional[str] = None,
        **launch_options
    ):
        """Initialize browser configuration.

        Args:
            engine: Playwright browser type name
            headless: Launch without a visible window
            launch_args: Command line switches; None means DEFAULT_LAUNCH_ARGS
            viewport: Context viewport used when a render does not set one
            device_scale_factor: Context scale used when a render does not set one
            user_agent: User-Agent header and navigator string for contexts
            ignore_https_errors: Accept invalid certificates in contexts
            locale: Context locale, e.g. 'en-US'
            **launch_options: Passed through to ``browser_type.launch()``
        """
        self.engine = engine
        self.headless = headless
        self.launch_args = list(DEFAULT_LAUNCH_ARGS if launch_args is None else launch_args)
        self.viewport = dict(viewport or DEFAULT_VIEWPORT)
        self.device_scale_factor = device_scale_factor
        self.user_agent = user_agent
        self.ignore_https_errors = ignore_https_errors
        self.locale = locale
        self.launch_options = launch_options

    def to_browser_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``browser_type.launch()``."""
        options: Dict[str, Any] = {'headless': self.headless}
        if self.launch_args:
            options['args'] = list(self.launch_args)
        options.update(self.launch_options)
        return options

    def to_context_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``browser.new_context()`` before overrides."""
        options: Dict[str, Any] = {
            'viewport': dict(self.viewport),
            'device_scale_factor': self.device_scale_factor,
        }
        if self.user_agent:
            options['user_agent'] = self.user_agent
        if self.ignore_https_errors:
            options['ignore_https_errors'] = True
        if self.locale:
            options['locale'] = self.locale
        return options


class BrowserFactory:
    """Owner of the shared browser process and factory for render contexts.

    Create one instance at startup and hand it to every ``Renderer``.
    Contexts are never pooled or reused, so cookies, storage and injected
    styles cannot leak from one render into the next.
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self._launch_lock = asyncio.Lock()
        self._context_count = 0
        self._contexts_created = 0

    async def start(self) -> None:
        """Launch the browser unless it is already running.

        Callers arriving while a launch is in flight wait on the lock and
        then find the browser already present.

        Raises:
            LaunchError: If the driver or browser process cannot be started;
                the factory is left stopped and ``start()`` may be retried
        """
        async with self._launch_lock:
            if self.browser is not None:
                logger.debug("Browser already running")
                return

            logger.info(f"Launching {self.config.engine} (headless={self.config.headless})")
            try:
                self.playwright = await async_playwright().start()
                browser_type = getattr(self.playwright, self.config.engine)
                self.browser = await browser_type.launch(**self.config.to_browser_options())
            except Exception as e:
                logger.error(f"Browser launch failed: {e}")
                await self._teardown()
                raise LaunchError(f"Browser launch failed: {e}") from e

            logger.info("Browser ready")

    async def stop(self) -> None:
        """Close the browser and the Playwright driver."""
        async with self._launch_lock:
            await self._teardown()
        logger.info("Browser stopped")

    async def _teardown(self) -> None:
        browser, self.browser = self.browser, None
        playwright, self.playwright = self.playwright, None

        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")

        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright driver: {e}")

        self._context_count = 0

    async def create_context(self, **overrides) -> BrowserContext:
        """Open a new isolated context; the caller must close it.

        Args:
            **overrides: Context options replacing the configured defaults

        Raises:
            RuntimeError: If ``start()`` has not been called
        """
        if self.browser is None:
            raise RuntimeError("Browser factory not started; call start() first")

        options = self.config.to_context_options()
        options.update(overrides)

        context = await self.browser.new_context(**options)
        self._context_count += 1
        self._contexts_created += 1
        logger.debug(
            f"Opened context #{self._contexts_created}: viewport={options['viewport']}, "
            f"scale={options['device_scale_factor']}"
        )
        return context

    @asynccontextmanager
    async def context(self, **overrides) -> AsyncGenerator[BrowserContext, None]:
        """Context that is closed on exit, including when the body raises."""
        context = await self.create_context(**overrides)
        try:
            yield context
        finally:
            try:
                await context.close()
            except Exception as e:
                logger.warning(f"Error closing browser context: {e}")
            self._context_count = max(0, self._context_count - 1)
            logger.debug(f"Closed context ({self._context_count} still open)")

    @asynccontextmanager
    async def page(self, **overrides) -> AsyncGenerator[Page, None]:
        """Single page living in its own disposable context."""
        async with self.context(**overrides) as context:
            yield await context.new_page()

    async def health_check(self) -> bool:
        """Open and close a blank page to prove the browser still responds."""
        if self.browser is None:
            return False
        try:
            async with self.page() as page:
                await page.goto("about:blank", timeout=5000)
        except Exception as e:
            logger.error(f"Browser health check failed: {e}")
            return False
        return True

    @property
    def is_running(self) -> bool:
        return self.browser is not None and self.browser.is_connected()

    @property
    def context_count(self) -> int:
        """Contexts currently open."""
        return self._context_count

    @property
    def contexts_created(self) -> int:
        """Contexts opened since construction."""
        return self._contexts_created

    def __repr__(self) -> str:
        return (
            f"BrowserFactory(engine={self.config.engine}, "
            f"running={self.is_running}, "
            f"contexts={self._context_count})"
        )


def create_default_factory(headless: bool = True) -> BrowserFactory:
    """Chromium factory with the default switches."""
    return BrowserFactory(BrowserConfig(engine=BrowserEngineType.CHROMIUM, headless=headless))
