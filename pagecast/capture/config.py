"""Configuration system for the renderer.

This module provides configuration management for browser, timing, bounds,
watermark and image settings, including YAML loading, validation, and
environment-specific overrides selected with ``PAGECAST_ENV``.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from .browser_factory import (
    BrowserConfig,
    BrowserEngineType,
    BrowserFactory,
    DEFAULT_LAUNCH_ARGS,
    DEFAULT_USER_AGENT,
)
from .engine import Renderer, RendererConfig
from ..imaging.processor import DEFAULT_MAX_IMAGE_PIXELS


ENV_VAR = 'PAGECAST_ENV'
VALID_ENVIRONMENTS = {'production', 'staging', 'development', 'test'}


class BrowserSettings(BaseModel):
    """Browser process and context settings."""

    engine: str = Field(default=BrowserEngineType.CHROMIUM)
    headless: bool = True
    launch_args: List[str] = Field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))
    user_agent: str = DEFAULT_USER_AGENT
    viewport_height: int = Field(default=900, gt=0)
    ignore_https_errors: bool = False

    @field_validator('engine')
    @classmethod
    def validate_engine(cls, v):
        valid = {BrowserEngineType.CHROMIUM, BrowserEngineType.FIREFOX, BrowserEngineType.WEBKIT}
        if v not in valid:
            raise ValueError(f"Engine must be one of: {valid}")
        return v


class TimingSettings(BaseModel):
    """Timeouts and waits, all in milliseconds."""

    load_timeout_ms: int = Field(default=60000, gt=0)
    network_idle_timeout_ms: int = Field(default=10000, ge=0)
    scroll_step_delay_ms: int = Field(default=200, ge=0)
    scroll_settle_delay_ms: int = Field(default=1000, ge=0)
    scroll_reset_delay_ms: int = Field(default=1000, ge=0)
    unroll_delay_ms: int = Field(default=500, ge=0)
    max_scroll_iterations: int = Field(default=200, gt=0)
    dynamic_settle_delay_ms: int = Field(default=1000, ge=0)
    fast_settle_delay_ms: int = Field(default=200, ge=0)


class BoundsSettings(BaseModel):
    """Smart crop and scroll target heuristics."""

    background_tolerance_px: float = Field(default=50, ge=0)
    min_scroll_container_px: int = Field(default=300, ge=0)


class WatermarkSettings(BaseModel):
    """Watermark label geometry."""

    inset_px: int = Field(default=20, ge=0)
    min_font_size: int = Field(default=16, gt=0)
    width_divisor: int = Field(default=40, gt=0)


class ImageSettings(BaseModel):
    """Screenshot decoding limits."""

    max_pixels: Optional[int] = Field(default=DEFAULT_MAX_IMAGE_PIXELS, gt=0)


class RendererSettings(BaseModel):
    """Root configuration for the renderer."""

    environment: str = Field(default="production", description="Environment name")
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    timing: TimingSettings = Field(default_factory=TimingSettings)
    bounds: BoundsSettings = Field(default_factory=BoundsSettings)
    watermark: WatermarkSettings = Field(default_factory=WatermarkSettings)
    image: ImageSettings = Field(default_factory=ImageSettings)
    environments: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Environment-specific overrides"
    )

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        if v not in VALID_ENVIRONMENTS:
            raise ValueError(f"Environment must be one of: {VALID_ENVIRONMENTS}")
        return v

    def effective(self) -> 'RendererSettings':
        """Settings with the active environment's overrides applied."""
        overrides = self.environments.get(self.environment)
        if not overrides:
            return self

        data = self.model_dump()
        for section, values in overrides.items():
            if isinstance(values, dict) and isinstance(data.get(section), dict):
                data[section].update(values)
            else:
                data[section] = values
        data['environments'] = {}
        return RendererSettings(**data)

    def get_browser_config(self) -> BrowserConfig:
        """Get browser configuration with environment overrides applied."""
        browser = self.effective().browser
        return BrowserConfig(
            engine=browser.engine,
            headless=browser.headless,
            launch_args=browser.launch_args,
            user_agent=browser.user_agent,
            ignore_https_errors=browser.ignore_https_errors,
        )

    def get_renderer_config(self) -> RendererConfig:
        """Get renderer configuration with environment overrides applied."""
        settings = self.effective()
        timing = settings.timing
        return RendererConfig(
            viewport_height=settings.browser.viewport_height,
            user_agent=settings.browser.user_agent,
            load_timeout_ms=timing.load_timeout_ms,
            network_idle_timeout_ms=timing.network_idle_timeout_ms,
            scroll_step_delay_ms=timing.scroll_step_delay_ms,
            scroll_settle_delay_ms=timing.scroll_settle_delay_ms,
            scroll_reset_delay_ms=timing.scroll_reset_delay_ms,
            unroll_delay_ms=timing.unroll_delay_ms,
            max_scroll_iterations=timing.max_scroll_iterations,
            dynamic_settle_delay_ms=timing.dynamic_settle_delay_ms,
            fast_settle_delay_ms=timing.fast_settle_delay_ms,
            background_tolerance_px=settings.bounds.background_tolerance_px,
            min_scroll_container_px=settings.bounds.min_scroll_container_px,
            watermark_inset_px=settings.watermark.inset_px,
            watermark_min_font_size=settings.watermark.min_font_size,
            watermark_width_divisor=settings.watermark.width_divisor,
            max_image_pixels=settings.image.max_pixels,
        )


def default_config_path() -> Path:
    """``config/renderer.yaml`` relative to the project root."""
    return Path(__file__).parent.parent.parent / "config" / "renderer.yaml"


class RendererConfigManager:
    """Manager for renderer configuration loading and caching."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to renderer config YAML file. Defaults to
                config/renderer.yaml; when that default is absent the
                built-in defaults are used.
        """
        self._explicit_path = config_path is not None
        self.config_path = Path(config_path) if config_path is not None else default_config_path()
        self._config: Optional[RendererSettings] = None
        self._loaded_env: Optional[str] = None

    def load_config(self, force_reload: bool = False) -> RendererSettings:
        """Load configuration from YAML file.

        Args:
            force_reload: Force reload even if already cached

        Returns:
            Loaded and validated configuration

        Raises:
            FileNotFoundError: If an explicitly given config file doesn't exist
            ValueError: If the YAML is invalid or validation fails
        """
        current_env = os.environ.get(ENV_VAR, 'production')

        if self._config is not None and not force_reload and current_env == self._loaded_env:
            return self._config

        if not self.config_path.exists():
            if self._explicit_path:
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
            config_data: Dict[str, Any] = {}
        else:
            try:
                with open(self.config_path, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {self.config_path}: {e}") from e

        config_data = copy.deepcopy(config_data)
        if current_env != 'production' or 'environment' not in config_data:
            config_data['environment'] = current_env

        try:
            self._config = RendererSettings(**config_data)
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}") from e

        self._loaded_env = current_env
        return self._config

    @property
    def config(self) -> RendererSettings:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    @property
    def environment(self) -> str:
        return self.config.environment


_config_manager: Optional[RendererConfigManager] = None


def get_config(config_path: Optional[Union[str, Path]] = None) -> RendererConfigManager:
    """Get global renderer configuration manager.

    Args:
        config_path: Path to config file (only used on first call)
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = RendererConfigManager(config_path)
    return _config_manager


def load_settings(config_path: Optional[Union[str, Path]] = None) -> RendererSettings:
    """Load settings from a specific file without touching the global manager."""
    return RendererConfigManager(config_path).load_config()


def create_renderer_from_config(config_path: Optional[Union[str, Path]] = None) -> Renderer:
    """Create a renderer and its browser factory from a YAML config file.

    Args:
        config_path: Path to renderer config YAML file

    Returns:
        Renderer wired to a new, not yet started BrowserFactory
    """
    settings = load_settings(config_path)
    return Renderer(
        BrowserFactory(settings.get_browser_config()),
        settings.get_renderer_config(),
    )
