"""Pydantic models for render requests, content bounds and image results.

This module defines the data models shared by the capture pipeline: the
immutable request describing what to render, the content bounds produced by
the smart-crop analyzer, the final encoded image buffer, and the console
messages forwarded from the browser.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class InputType(str, Enum):
    """Kinds of web content that can be rendered."""
    URL = "url"
    HTML = "html"
    FILE = "file"


class ImageFormat(str, Enum):
    """Output encodings supported by the post-processor."""
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"

    @property
    def is_lossy(self) -> bool:
        """Whether the quality parameter applies to this format."""
        return self in (ImageFormat.JPEG, ImageFormat.WEBP)

    @property
    def pillow_format(self) -> str:
        """Format name understood by ``PIL.Image.save``."""
        return self.value.upper()

    @property
    def file_suffix(self) -> str:
        return ".jpg" if self is ImageFormat.JPEG else f".{self.value}"


class ConsoleLevel(str, Enum):
    """Console log levels."""
    LOG = "log"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    DEBUG = "debug"
    TRACE = "trace"


class CaptureRequest(BaseModel):
    """A single render request.

    The model is frozen: once a capture begins nothing may change the
    settings it was started with.
    """

    model_config = ConfigDict(frozen=True)

    input: str = Field(description="URL, inline HTML markup, or path to a local HTML file")
    input_type: InputType = Field(description="How to interpret ``input``")
    format: ImageFormat = Field(default=ImageFormat.PNG, description="Output image format")
    quality: int = Field(default=100, ge=1, le=100, description="Quality for lossy formats")
    scale: float = Field(default=2.0, ge=1, description="Device scale factor")
    full_page: bool = Field(default=True, description="Capture the full scrollable page")
    smart_crop: bool = Field(default=False, description="Crop to the visual content bounds")
    smart_crop_padding: float = Field(default=0, ge=0, description="Padding around cropped content in CSS px")
    viewport_width: int = Field(default=1200, gt=0, description="Viewport width in CSS px")
    dynamic_mode: bool = Field(default=False, description="Wait out lazy-loaded and scrolling content")
    watermark_enabled: bool = Field(default=False, description="Stamp a watermark onto the image")
    watermark_text: str = Field(default="", description="Watermark label")

    @field_validator('format', mode='before')
    @classmethod
    def normalize_format(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v == 'jpg':
                return ImageFormat.JPEG
        return v

    @field_validator('input')
    @classmethod
    def validate_input(cls, v):
        if not v or not v.strip():
            raise ValueError("input must not be empty")
        return v

    @property
    def wants_watermark(self) -> bool:
        """True when a non-empty watermark was requested."""
        return self.watermark_enabled and bool(self.watermark_text)

    @property
    def capture_full_page(self) -> bool:
        """Smart crop always works from a full-page capture."""
        return self.full_page or self.smart_crop


class ContentBounds(BaseModel):
    """Bounding box of visual content in CSS pixels, document-absolute."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(ge=0)
    y: float = Field(ge=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


class ImageBuffer(BaseModel):
    """Encoded image bytes with their pixel dimensions."""

    data: bytes = Field(repr=False)
    format: ImageFormat
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    mode: str = Field(default="RGBA", description="Pillow colour mode of the encoded image")

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def size(self) -> tuple:
        return (self.width, self.height)


class ConsoleLog(BaseModel):
    """Console event forwarded from the rendering page."""

    level: ConsoleLevel = Field(description="Console log level")
    text: str = Field(description="Console message text")
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When console event occurred"
    )
    url: Optional[str] = Field(
        default=None,
        description="URL where console event originated"
    )
    line_number: Optional[int] = Field(
        default=None,
        description="Line number where event occurred"
    )

    @classmethod
    def from_playwright_message(cls, message):
        """Create ConsoleLog from Playwright console message."""
        level_map = {
            'log': ConsoleLevel.LOG,
            'info': ConsoleLevel.INFO,
            'warning': ConsoleLevel.WARN,
            'warn': ConsoleLevel.WARN,
            'error': ConsoleLevel.ERROR,
            'debug': ConsoleLevel.DEBUG,
            'trace': ConsoleLevel.TRACE,
        }

        level = level_map.get(message.type, ConsoleLevel.LOG)
        location = message.location

        return cls(
            level=level,
            text=message.text,
            url=location.get('url') if location else None,
            line_number=location.get('lineNumber') if location else None,
        )


class ScrollReport(BaseModel):
    """Summary returned by the in-page scroll and unroll script."""

    target: str = Field(default="window", description="'window' or 'element'")
    iterations: int = Field(default=0, ge=0)
    final_height: float = Field(default=0, ge=0)
    capped: bool = Field(default=False, description="Loop stopped at the iteration cap")
    unrolled: bool = Field(default=False, description="A scroll container was expanded")
    fallback: bool = Field(default=False, description="Window scrolling was forced after a detection failure")

    @model_validator(mode='after')
    def check_target(self):
        if self.target not in ('window', 'element'):
            raise ValueError(f"Unknown scroll target: {self.target}")
        return self
