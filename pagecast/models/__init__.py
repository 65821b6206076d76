"""Render data models package."""

from .capture import (
    InputType,
    ImageFormat,
    ConsoleLevel,
    CaptureRequest,
    ContentBounds,
    ImageBuffer,
    ConsoleLog,
    ScrollReport,
)

from .layout import (
    Rect,
    ElementBox,
    TextRun,
    LayoutSnapshot,
)

__all__ = [
    # Request / result models
    'InputType',
    'ImageFormat',
    'ConsoleLevel',
    'CaptureRequest',
    'ContentBounds',
    'ImageBuffer',
    'ConsoleLog',
    'ScrollReport',

    # Layout snapshot models
    'Rect',
    'ElementBox',
    'TextRun',
    'LayoutSnapshot',
]
