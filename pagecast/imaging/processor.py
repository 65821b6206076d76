"""Raster post-processing for captured pages.

This module turns the raw full-page screenshot into the final image: it crops
to the smart-crop bounds (converting CSS pixels to device pixels), stamps the
watermark label in the bottom right corner, and encodes to the requested
format. All raster work is done with Pillow.
"""

import io
import logging
import math
import threading
import warnings
from contextlib import contextmanager
from typing import Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from ..models.capture import ContentBounds, ImageBuffer, ImageFormat
from ..errors import ExtractionError, EncodingError

logger = logging.getLogger(__name__)


WATERMARK_INSET = 20
WATERMARK_MIN_FONT_SIZE = 16
WATERMARK_WIDTH_DIVISOR = 40

# Covers a capped 200-step scroll (180,000 CSS px) at 1200 CSS px wide and scale 2
DEFAULT_MAX_IMAGE_PIXELS = 1_000_000_000

_pixel_limit_lock = threading.Lock()

WATERMARK_FONT_CANDIDATES = (
    "DejaVuSans-Bold.ttf",
    "Arial Bold.ttf",
    "arialbd.ttf",
    "LiberationSans-Bold.ttf",
    "Helvetica-Bold.ttf",
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return int(math.floor(value + 0.5))


def physical_crop_box(bounds: ContentBounds, scale: float) -> Tuple[int, int, int, int]:
    """Convert CSS-pixel bounds to a device-pixel ``(left, top, width, height)``."""
    return (
        round_half_up(bounds.x * scale),
        round_half_up(bounds.y * scale),
        round_half_up(bounds.width * scale),
        round_half_up(bounds.height * scale),
    )


@contextmanager
def pillow_pixel_limit(limit: Optional[int]):
    """Temporarily replace Pillow's decompression bomb limit.

    ``Image.MAX_IMAGE_PIXELS`` is process-global, so the swap is serialized
    and always restored.
    """
    with _pixel_limit_lock:
        previous = Image.MAX_IMAGE_PIXELS
        Image.MAX_IMAGE_PIXELS = limit
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", Image.DecompressionBombWarning)
                yield
        finally:
            Image.MAX_IMAGE_PIXELS = previous


def watermark_font_size(
    image_width: int,
    min_size: int = WATERMARK_MIN_FONT_SIZE,
    divisor: int = WATERMARK_WIDTH_DIVISOR
) -> int:
    return max(min_size, round_half_up(image_width / divisor))


class ImageProcessor:
    """Crops, watermarks and encodes captured bitmaps."""

    def __init__(
        self,
        watermark_inset: int = WATERMARK_INSET,
        watermark_min_font_size: int = WATERMARK_MIN_FONT_SIZE,
        watermark_width_divisor: int = WATERMARK_WIDTH_DIVISOR,
        font_candidates: Sequence[str] = WATERMARK_FONT_CANDIDATES,
        max_image_pixels: Optional[int] = DEFAULT_MAX_IMAGE_PIXELS,
    ):
        self.max_image_pixels = max_image_pixels
        self.watermark_inset = watermark_inset
        self.watermark_min_font_size = watermark_min_font_size
        self.watermark_width_divisor = watermark_width_divisor
        self.font_candidates = tuple(font_candidates)

    def process(
        self,
        raw: bytes,
        scale: float,
        bounds: Optional[ContentBounds] = None,
        watermark_text: Optional[str] = None,
        image_format: ImageFormat = ImageFormat.PNG,
        quality: int = 100,
    ) -> ImageBuffer:
        """Run the full post-processing chain on a raw screenshot.

        Args:
            raw: Encoded screenshot bytes at device-pixel resolution
            scale: Device scale factor the screenshot was taken with
            bounds: Smart-crop bounds in CSS pixels, or None for no crop
            watermark_text: Label to stamp, or None/empty for no watermark
            image_format: Output format
            quality: Quality for lossy formats

        Returns:
            Encoded image buffer

        Raises:
            ExtractionError: If decoding, cropping or compositing fails
            EncodingError: If the final encode fails
        """
        image = self.decode(raw)

        if bounds is not None:
            image = self.crop(image, bounds, scale)

        if watermark_text:
            image = self.apply_watermark(image, watermark_text)

        return self.encode(image, image_format, quality)

    def decode(self, raw: bytes) -> Image.Image:
        """Decode the screenshot, enforcing ``max_image_pixels`` (None: no limit)."""
        try:
            with pillow_pixel_limit(None):
                image = Image.open(io.BytesIO(raw))
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise ExtractionError(f"Cannot decode screenshot: {e}") from e

        pixels = image.width * image.height
        if self.max_image_pixels is not None and pixels > self.max_image_pixels:
            raise ExtractionError(
                f"Screenshot of {image.width}x{image.height} ({pixels} pixels) "
                f"exceeds the limit of {self.max_image_pixels} pixels"
            )

        try:
            image.load()
        except (OSError, ValueError) as e:
            raise ExtractionError(f"Cannot decode screenshot: {e}") from e
        return image

    def crop(self, image: Image.Image, bounds: ContentBounds, scale: float) -> Image.Image:
        """Extract the device-pixel region covered by ``bounds``.

        The region is clipped to the bitmap; padding can push the far edges
        past the page.
        """
        left, top, width, height = physical_crop_box(bounds, scale)
        right = min(left + width, image.width)
        bottom = min(top + height, image.height)

        logger.debug(f"Cropping area (scaled): x={left}, y={top}, w={width}, h={height}")

        if left >= image.width or top >= image.height or right <= left or bottom <= top:
            raise ExtractionError(
                f"Crop box {(left, top, width, height)} lies outside the "
                f"{image.width}x{image.height} screenshot"
            )

        try:
            with pillow_pixel_limit(None):
                cropped = image.crop((left, top, right, bottom))
            cropped.load()
        except (OSError, ValueError) as e:
            raise ExtractionError(f"Crop failed: {e}") from e

        logger.info(f"Cropped image to {cropped.width}x{cropped.height}")
        return cropped

    def load_font(self, size: int) -> ImageFont.ImageFont:
        """Bold sans-serif TrueType font, or Pillow's scalable default."""
        for name in self.font_candidates:
            try:
                return ImageFont.truetype(name, size)
            except OSError:
                continue
        logger.debug("No TrueType watermark font found, using Pillow default")
        return ImageFont.load_default(size=size)

    def watermark_position(self, image_size: Tuple[int, int], text_bbox: Tuple[int, int, int, int]) -> Tuple[int, int]:
        """Drawing origin that puts the text's right/bottom edges at the inset."""
        width, height = image_size
        return (
            width - self.watermark_inset - text_bbox[2],
            height - self.watermark_inset - text_bbox[3],
        )

    def apply_watermark(self, image: Image.Image, text: str) -> Image.Image:
        """Composite a semi-transparent label with a drop shadow onto the image."""
        font_size = watermark_font_size(
            image.width, self.watermark_min_font_size, self.watermark_width_divisor
        )
        logger.info(f"Adding watermark: {text!r} (font size {font_size})")

        try:
            base = image.convert("RGBA")
            font = self.load_font(font_size)

            measure = ImageDraw.Draw(base)
            bbox = measure.textbbox((0, 0), text, font=font)
            origin = self.watermark_position(base.size, bbox)

            shadow = Image.new("RGBA", base.size, (0, 0, 0, 0))
            ImageDraw.Draw(shadow).text(
                (origin[0] + 1, origin[1] + 1), text, font=font, fill=(0, 0, 0, 128)
            )
            shadow = shadow.filter(ImageFilter.GaussianBlur(radius=2))

            label = Image.new("RGBA", base.size, (0, 0, 0, 0))
            ImageDraw.Draw(label).text(origin, text, font=font, fill=(255, 255, 255, 204))

            composed = Image.alpha_composite(Image.alpha_composite(base, shadow), label)
        except (OSError, ValueError) as e:
            raise ExtractionError(f"Watermark compositing failed: {e}") from e

        return composed

    def encode(self, image: Image.Image, image_format: ImageFormat, quality: int = 100) -> ImageBuffer:
        """Encode to the target format; quality applies to lossy formats only."""
        save_options = {}
        if image_format == ImageFormat.JPEG:
            if image.mode != "RGB":
                image = self._flatten(image)
            save_options['quality'] = quality
        elif image_format == ImageFormat.WEBP:
            save_options['quality'] = quality

        buffer = io.BytesIO()
        try:
            image.save(buffer, format=image_format.pillow_format, **save_options)
        except (OSError, ValueError, KeyError) as e:
            raise EncodingError(f"Encoding to {image_format.value} failed: {e}") from e

        data = buffer.getvalue()
        logger.info(
            f"Image processing complete ({image.width}x{image.height}, "
            f"{image_format.value}, {len(data) / 1024:.2f} KB)"
        )
        return ImageBuffer(
            data=data,
            format=image_format,
            width=image.width,
            height=image.height,
            mode=image.mode,
        )

    def _flatten(self, image: Image.Image) -> Image.Image:
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            rgba = image.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.getchannel("A"))
            return background
        return image.convert("RGB")
