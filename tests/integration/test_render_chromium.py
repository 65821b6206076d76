"""End-to-end render tests against a real Chromium.

Skipped when no browser can be launched (run `playwright install chromium`).
"""

import io

import pytest
from PIL import Image

from pagecast.capture.browser_factory import BrowserFactory
from pagecast.capture.engine import Renderer, RendererConfig
from pagecast.capture.unroller import ContentUnroller
from pagecast.errors import LaunchError, LoadError
from pagecast.models.capture import CaptureRequest, ImageFormat, InputType


pytestmark = [pytest.mark.integration, pytest.mark.slow]


FAST_TIMING = dict(
    load_timeout_ms=15000,
    network_idle_timeout_ms=2000,
    scroll_step_delay_ms=50,
    scroll_settle_delay_ms=200,
    scroll_reset_delay_ms=50,
    unroll_delay_ms=50,
    dynamic_settle_delay_ms=50,
    fast_settle_delay_ms=50,
)

BOX_PAGE = """
<html><body style="margin:0;background:#fff">
<div style="position:absolute;left:40px;top:40px;width:100px;height:50px;background:#c00"></div>
</body></html>
"""

TALL_PAGE = """
<html><body style="margin:0">
<div style="height:3000px;background:linear-gradient(#fff,#00f)"></div>
</body></html>
"""

SCROLL_CONTAINER_PAGE = """
<html><body style="margin:0">
<div id="app" style="height:100vh;overflow:hidden">
<div id="feed" style="height:400px;overflow-y:auto">
""" + "".join(
    f'<div style="height:200px;background:#{(i * 37) % 256:02x}8080">item {i}</div>' for i in range(20)
) + """
</div>
</div>
</body></html>
"""


# Appends a 1000px block whenever the window reaches the bottom, four times
LAZY_FEED_PAGE = """
<html><body style="margin:0">
<div id="feed"><div style="height:1000px;background:#eee"></div></div>
<script>
let loaded = 0;
window.addEventListener("scroll", () => {
    const atBottom = window.scrollY + window.innerHeight >= document.documentElement.scrollHeight - 100;
    if (atBottom && loaded < 4) {
        loaded += 1;
        const block = document.createElement("div");
        block.style.height = "1000px";
        block.style.background = loaded % 2 ? "#ccf" : "#fcc";
        document.getElementById("feed").appendChild(block);
    }
});
</script>
</body></html>
"""

# Grows faster than the scroll loop can step through it
ENDLESS_FEED_PAGE = """
<html><body style="margin:0">
<div id="feed"><div style="height:1000px"></div></div>
<script>
setInterval(() => {
    const block = document.createElement("div");
    block.style.height = "1000px";
    document.getElementById("feed").appendChild(block);
}, 20);
</script>
</body></html>
"""


def decode(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


@pytest.fixture
async def renderer():
    factory = BrowserFactory()
    try:
        await factory.start()
    except LaunchError as e:
        pytest.skip(f"Chromium not available: {e}")
    try:
        yield Renderer(factory, RendererConfig(**FAST_TIMING))
    finally:
        await factory.stop()


@pytest.mark.asyncio
async def test_html_render_is_device_resolution(renderer):
    request = CaptureRequest(input=BOX_PAGE, input_type=InputType.HTML, full_page=False)

    result = await renderer.render(request)

    assert result.width == 2400
    assert result.height == 1800
    assert renderer.browser_factory.context_count == 0


@pytest.mark.asyncio
async def test_smart_crop_of_single_box(renderer):
    """100x50 box at (40, 40), 30px padding, scale 2."""
    request = CaptureRequest(
        input=BOX_PAGE, input_type=InputType.HTML,
        smart_crop=True, smart_crop_padding=30,
    )

    result = await renderer.render(request)

    assert result.size == (320, 220)
    image = decode(result.data).convert("RGB")
    centre = image.getpixel((160, 110))
    assert centre[0] > 150 and centre[1] < 60 and centre[2] < 60


@pytest.mark.asyncio
async def test_full_page_covers_document(renderer):
    request = CaptureRequest(input=TALL_PAGE, input_type=InputType.HTML, scale=1)

    result = await renderer.render(request)

    assert result.width == 1200
    assert result.height == 3000


@pytest.mark.asyncio
async def test_dynamic_mode_unrolls_scroll_container(renderer):
    request = CaptureRequest(
        input=SCROLL_CONTAINER_PAGE, input_type=InputType.HTML,
        scale=1, dynamic_mode=True,
    )

    result = await renderer.render(request)

    # All 20 items of 200px end up in the capture
    assert result.height >= 4000


@pytest.mark.asyncio
async def test_file_input_jpeg_with_watermark(renderer, tmp_path):
    path = tmp_path / "box.html"
    path.write_text(BOX_PAGE, encoding="utf-8")
    request = CaptureRequest(
        input=str(path), input_type=InputType.FILE, full_page=False,
        format="jpg", quality=80, watermark_enabled=True, watermark_text="Sample",
    )

    result = await renderer.render(request)

    assert result.format == ImageFormat.JPEG
    assert decode(result.data).format == "JPEG"


@pytest.mark.asyncio
async def test_unreachable_url_raises_load_error(renderer):
    request = CaptureRequest(input="http://127.0.0.1:9/", input_type=InputType.URL)

    with pytest.raises(LoadError):
        await renderer.render(request)

    assert renderer.browser_factory.context_count == 0


@pytest.mark.asyncio
async def test_repeated_capture_has_identical_dimensions(renderer):
    request = CaptureRequest(input=TALL_PAGE, input_type=InputType.HTML, scale=1.5)

    first = await renderer.render(request)
    second = await renderer.render(request)

    assert first.size == second.size == (1800, 4500)
    assert renderer.browser_factory.contexts_created == 2


def fast_unroller(**overrides):
    options = dict(
        network_idle_timeout_ms=2000,
        step_delay_ms=50,
        settle_delay_ms=200,
        reset_delay_ms=50,
        unroll_delay_ms=50,
    )
    options.update(overrides)
    return ContentUnroller(**options)


@pytest.mark.asyncio
async def test_scroll_loop_stops_when_page_stops_growing(renderer):
    async with renderer.browser_factory.page() as page:
        await page.set_content(LAZY_FEED_PAGE)

        report = await fast_unroller().unroll(page)

        assert report.target == "window"
        assert report.iterations > 1
        assert report.capped is False
        assert report.final_height == 5000
        assert await page.evaluate("window.scrollY") == 0


@pytest.mark.asyncio
async def test_scroll_loop_cap_on_endless_page(renderer):
    async with renderer.browser_factory.page() as page:
        await page.set_content(ENDLESS_FEED_PAGE)

        report = await fast_unroller(max_iterations=5).scroll_and_unroll(page)

        assert report.capped is True
        assert report.iterations == 5
        assert await page.evaluate("window.scrollY") == 0


@pytest.mark.asyncio
async def test_dynamic_render_includes_lazy_loaded_content(renderer):
    request = CaptureRequest(
        input=LAZY_FEED_PAGE, input_type=InputType.HTML,
        scale=1, dynamic_mode=True,
    )

    result = await renderer.render(request)

    assert result.size == (1200, 5000)
