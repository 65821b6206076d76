"""Raster post-processing (crop, watermark, encode) built on Pillow."""

from .processor import (
    ImageProcessor,
    physical_crop_box,
    round_half_up,
    watermark_font_size,
)

__all__ = [
    'ImageProcessor',
    'physical_crop_box',
    'round_half_up',
    'watermark_font_size',
]
