"""Shared test fixtures and configuration for pagecast tests."""

import io
import sys
from pathlib import Path

import pytest
from PIL import Image

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pagecast.models.capture import CaptureRequest, InputType


def make_png(width: int, height: int, color=(255, 255, 255, 255)) -> bytes:
    """Encode a solid-colour RGBA PNG."""
    buffer = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_factory():
    """Build solid-colour PNG screenshots of a given device-pixel size."""
    return make_png


@pytest.fixture
def html_request():
    """Inline HTML request with default settings."""
    return CaptureRequest(
        input="<html><body><h1>Hello</h1></body></html>",
        input_type=InputType.HTML,
    )


@pytest.fixture
def url_request():
    """URL request with default settings."""
    return CaptureRequest(input="https://example.com", input_type=InputType.URL)


@pytest.fixture
def temp_html_file(tmp_path):
    """Temporary UTF-8 HTML file."""
    path = tmp_path / "page.html"
    path.write_text("<html><body><p>Café content</p></body></html>", encoding="utf-8")
    return path


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
