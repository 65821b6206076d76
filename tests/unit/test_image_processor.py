"""Unit tests for the image post-processor."""

import io
from unittest.mock import MagicMock

import pytest
from PIL import Image

from pagecast.errors import EncodingError, ExtractionError
from pagecast.imaging.processor import (
    ImageProcessor,
    pillow_pixel_limit,
    physical_crop_box,
    round_half_up,
    watermark_font_size,
)
from pagecast.models.capture import ContentBounds, ImageFormat


def open_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


class TestGeometryHelpers:
    """Tests for the rounding and scaling helpers."""

    @pytest.mark.parametrize("value,expected", [
        (0.5, 1), (1.5, 2), (2.5, 3), (2.49, 2), (3.0, 3), (0.0, 0),
    ])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_physical_crop_box_scales_css_pixels(self):
        bounds = ContentBounds(x=10, y=10, width=160, height=110)

        assert physical_crop_box(bounds, 2) == (20, 20, 320, 220)

    def test_physical_crop_box_rounds_fractional_scale(self):
        bounds = ContentBounds(x=10.25, y=0.5, width=100.5, height=33.3)

        assert physical_crop_box(bounds, 1.5) == (15, 1, 151, 50)

    @pytest.mark.parametrize("width,expected", [
        (100, 16), (640, 16), (660, 17), (1200, 30), (2400, 60),
    ])
    def test_watermark_font_size(self, width, expected):
        assert watermark_font_size(width) == expected


class TestCrop:
    """Tests for ImageProcessor.crop."""

    @pytest.fixture
    def processor(self):
        return ImageProcessor()

    def test_crop_at_scale(self, processor):
        image = Image.new("RGBA", (2400, 1800), (255, 255, 255, 255))
        bounds = ContentBounds(x=10, y=10, width=160, height=110)

        cropped = processor.crop(image, bounds, 2)

        assert cropped.size == (320, 220)

    def test_crop_takes_the_right_region(self, processor):
        image = Image.new("RGB", (200, 200), (255, 255, 255))
        image.paste((255, 0, 0), (40, 40, 140, 90))

        cropped = processor.crop(image, ContentBounds(x=40, y=40, width=100, height=50), 1)

        assert cropped.size == (100, 50)
        assert cropped.getpixel((0, 0)) == (255, 0, 0)
        assert cropped.getpixel((99, 49)) == (255, 0, 0)

    def test_crop_clipped_to_image(self, processor):
        image = Image.new("RGB", (300, 200))

        cropped = processor.crop(image, ContentBounds(x=100, y=50, width=500, height=500), 1)

        assert cropped.size == (200, 150)

    def test_crop_outside_image_raises(self, processor):
        image = Image.new("RGB", (300, 200))

        with pytest.raises(ExtractionError):
            processor.crop(image, ContentBounds(x=400, y=0, width=10, height=10), 1)


class TestWatermark:
    """Tests for watermark placement and compositing."""

    def test_position_uses_inset_and_text_extent(self):
        processor = ImageProcessor(watermark_inset=20)

        assert processor.watermark_position((1000, 800), (0, 3, 120, 30)) == (860, 750)

    def test_apply_watermark_changes_bottom_right_only(self):
        processor = ImageProcessor()
        image = Image.new("RGB", (800, 600), (0, 0, 128))

        marked = processor.apply_watermark(image, "Sample")

        assert marked.mode == "RGBA"
        assert marked.size == (800, 600)
        # Top left corner is untouched
        assert marked.getpixel((5, 5)) == (0, 0, 128, 255)
        # Something was drawn near the bottom right
        corner = marked.crop((400, 450, 800, 600))
        assert corner.getcolors(maxcolors=100000) != [(400 * 150, (0, 0, 128, 255))]

    def test_load_font_falls_back_to_default(self):
        processor = ImageProcessor(font_candidates=("definitely-missing-font.ttf",))

        font = processor.load_font(20)

        assert font is not None


class TestEncode:
    """Tests for format encoding."""

    @pytest.fixture
    def processor(self):
        return ImageProcessor()

    @pytest.fixture
    def image(self):
        return Image.new("RGBA", (64, 48), (10, 200, 30, 255))

    def test_encode_png(self, processor, image):
        result = processor.encode(image, ImageFormat.PNG, quality=10)

        assert result.format == ImageFormat.PNG
        assert result.data.startswith(b"\x89PNG")
        assert result.size == (64, 48)
        assert open_image(result.data).mode == "RGBA"

    def test_encode_jpeg_flattens_alpha(self, processor, image):
        result = processor.encode(image, ImageFormat.JPEG, quality=90)

        assert result.data[:3] == b"\xff\xd8\xff"
        assert result.mode == "RGB"
        assert open_image(result.data).format == "JPEG"

    def test_encode_webp(self, processor, image):
        result = processor.encode(image, ImageFormat.WEBP, quality=80)

        assert result.data[:4] == b"RIFF"
        assert result.data[8:12] == b"WEBP"

    def test_jpeg_quality_affects_size(self, processor):
        noisy = Image.effect_noise((256, 256), 64).convert("RGB")

        low = processor.encode(noisy, ImageFormat.JPEG, quality=10)
        high = processor.encode(noisy, ImageFormat.JPEG, quality=95)

        assert low.size_bytes < high.size_bytes

    def test_jpeg_flatten_uses_white_background(self, processor):
        transparent = Image.new("RGBA", (16, 16), (0, 0, 0, 0))

        result = processor.encode(transparent, ImageFormat.JPEG, quality=100)
        pixel = open_image(result.data).getpixel((8, 8))

        assert all(channel > 245 for channel in pixel)

    def test_encode_failure_raises(self, processor):
        image = MagicMock()
        image.mode = "RGB"
        image.save.side_effect = OSError("disk full")

        with pytest.raises(EncodingError, match="disk full"):
            processor.encode(image, ImageFormat.PNG)


class TestProcess:
    """Tests for the full post-processing chain."""

    @pytest.fixture
    def processor(self):
        return ImageProcessor()

    def test_no_crop_keeps_dimensions(self, processor, png_factory):
        result = processor.process(png_factory(2400, 1800), 2)

        assert result.size == (2400, 1800)
        assert result.format == ImageFormat.PNG

    def test_crop_and_watermark(self, processor, png_factory):
        bounds = ContentBounds(x=10, y=10, width=160, height=110)

        result = processor.process(
            png_factory(2400, 1800), 2,
            bounds=bounds,
            watermark_text="Draft",
            image_format=ImageFormat.JPEG,
            quality=85,
        )

        assert result.size == (320, 220)
        assert result.format == ImageFormat.JPEG

    def test_empty_watermark_text_skipped(self, processor, png_factory):
        raw = png_factory(100, 100, (1, 2, 3, 255))

        result = processor.process(raw, 1, watermark_text="")

        assert open_image(result.data).getcolors() == [(10000, (1, 2, 3, 255))]

    def test_garbage_input_raises(self, processor):
        with pytest.raises(ExtractionError):
            processor.process(b"not an image", 1)


def tall_png(width: int, height: int) -> bytes:
    """Encode a blank greyscale PNG; compresses well even at huge sizes."""
    buffer = io.BytesIO()
    Image.new("L", (width, height), 255).save(buffer, format="PNG")
    return buffer.getvalue()


class TestDecode:
    """Tests for screenshot decoding and the pixel limit."""

    @pytest.mark.slow
    def test_tall_page_beyond_pillow_default_limit(self):
        """A capped dynamic scroll at scale 2 still decodes and crops."""
        raw = tall_png(2400, 80000)
        processor = ImageProcessor()
        default_limit = Image.MAX_IMAGE_PIXELS

        image = processor.decode(raw)
        cropped = processor.crop(image, ContentBounds(x=0, y=0, width=1200, height=40000), 2)

        assert image.size == (2400, 80000)
        assert cropped.size == (2400, 80000)
        assert Image.MAX_IMAGE_PIXELS == default_limit

    def test_configured_limit_raises_extraction_error(self, png_factory):
        processor = ImageProcessor(max_image_pixels=100)

        with pytest.raises(ExtractionError, match="exceeds the limit of 100 pixels"):
            processor.process(png_factory(20, 20), 1)

    def test_no_limit(self, png_factory):
        processor = ImageProcessor(max_image_pixels=None)

        assert processor.decode(png_factory(20, 20)).size == (20, 20)

    def test_pixel_limit_restored_after_error(self):
        default_limit = Image.MAX_IMAGE_PIXELS

        with pytest.raises(RuntimeError):
            with pillow_pixel_limit(None):
                assert Image.MAX_IMAGE_PIXELS is None
                raise RuntimeError("decode failed")

        assert Image.MAX_IMAGE_PIXELS == default_limit
