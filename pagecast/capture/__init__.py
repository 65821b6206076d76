"""Browser capture pipeline for pagecast.

This package renders web content to images using Playwright: a shared
browser factory, per-request isolated contexts, page loading and
stabilization, lazy-load scrolling, and content bounds analysis for smart
cropping.

Main Components:
- Browser Factory: Browser lifecycle and isolated context creation
- Page Loader: Input loading, animation freezing and font waits
- Content Unroller: Lazy-load scrolling and scroll container unrolling
- Content Bounds: Layout snapshot and smart-crop heuristic
- Console Observer: Browser console forwarding to host logging
- Renderer: Orchestrated render of one request

Usage:
    from pagecast.capture import BrowserFactory, Renderer
    from pagecast.models import CaptureRequest

    factory = BrowserFactory()
    await factory.start()
    renderer = Renderer(factory)
    image = await renderer.render(CaptureRequest(input="https://example.com", input_type="url"))
"""

__all__ = [
    # Main components
    "Renderer",
    "RendererConfig",
    "BrowserFactory",
    "BrowserConfig",
    "BrowserEngineType",
    "PageLoader",
    "ContentUnroller",
    "ContentBoundsAnalyzer",
    "ConsoleObserver",

    # Pure helpers
    "compute_content_bounds",

    # Configuration
    "RendererSettings",
    "RendererConfigManager",
    "get_config",
    "load_settings",

    # Convenience functions
    "create_renderer",
    "create_renderer_from_config",
    "create_default_factory",
]

from .engine import (
    Renderer,
    RendererConfig,
    create_renderer,
)

from .browser_factory import (
    BrowserFactory,
    BrowserConfig,
    BrowserEngineType,
    create_default_factory,
)

from .page_loader import PageLoader
from .unroller import ContentUnroller
from .bounds import ContentBoundsAnalyzer, compute_content_bounds
from .console_observer import ConsoleObserver

from .config import (
    RendererSettings,
    RendererConfigManager,
    get_config,
    load_settings,
    create_renderer_from_config,
)
