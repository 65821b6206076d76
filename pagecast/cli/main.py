#!/usr/bin/env python3
"""Main CLI entry point for pagecast using Typer.

Renders one URL, inline HTML string or local HTML file to an image file
with the same pipeline the service layer uses. Useful for smoke testing a
machine's browser install and for one-off captures.
"""

import asyncio
import logging
from enum import IntEnum
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from .. import __version__
from ..capture.config import create_renderer_from_config
from ..errors import LaunchError, LoadError, RenderError
from ..models.capture import CaptureRequest, ImageBuffer, InputType


class ExitCode(IntEnum):
    """CLI exit codes."""
    SUCCESS = 0
    CONFIG_ERROR = 3      # Bad options or configuration file
    RUNTIME_ERROR = 4     # Browser launch or render failure
    TIMEOUT_ERROR = 5     # Content did not load in time


app = typer.Typer(
    name="pagecast",
    help="pagecast - render web pages and HTML to images",
    add_completion=False,
)


def detect_input_type(value: str) -> InputType:
    """Guess the input type: URLs by scheme, existing paths as files, else HTML."""
    lowered = value.strip().lower()
    if lowered.startswith(("http://", "https://", "file://", "data:")):
        return InputType.URL
    if len(value) < 4096 and "<" not in value and Path(value).is_file():
        return InputType.FILE
    return InputType.HTML


@app.callback()
def main():
    """
    pagecast - render web pages and HTML to images.
    """
    pass


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"pagecast v{__version__}")


@app.command()
def render(
    source: Annotated[
        str,
        typer.Argument(help="URL, HTML markup, or path to an HTML file")
    ],

    out: Annotated[
        Optional[Path],
        typer.Option("--out", "-o", help="Output image path (default: output.<format>)")
    ] = None,

    input_type: Annotated[
        Optional[str],
        typer.Option("--type", "-t", help="Input type: url, html or file (detected if omitted)")
    ] = None,

    image_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: png, jpeg (jpg) or webp")
    ] = "png",

    quality: Annotated[
        int,
        typer.Option("--quality", "-q", help="Quality for jpeg/webp (1-100)")
    ] = 100,

    scale: Annotated[
        float,
        typer.Option("--scale", "-s", help="Device scale factor")
    ] = 2.0,

    width: Annotated[
        int,
        typer.Option("--width", "-w", help="Viewport width in CSS pixels")
    ] = 1200,

    full_page: Annotated[
        bool,
        typer.Option("--full-page/--no-full-page", help="Capture the full scrollable page")
    ] = True,

    smart_crop: Annotated[
        bool,
        typer.Option("--smart-crop", help="Crop to the visual content")
    ] = False,

    padding: Annotated[
        float,
        typer.Option("--padding", help="Smart crop padding in CSS pixels")
    ] = 0,

    dynamic: Annotated[
        bool,
        typer.Option("--dynamic", help="Scroll through lazy-loaded content before capture")
    ] = False,

    watermark: Annotated[
        Optional[str],
        typer.Option("--watermark", help="Watermark text for the bottom right corner")
    ] = None,

    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Renderer configuration YAML")
    ] = None,

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,
):
    """
    Render a page or HTML to an image file.

    Examples:

        # Full page PNG of a URL at 2x
        pagecast render https://example.com -o example.png

        # Smart-cropped JPEG of a local file with a watermark
        pagecast render page.html --smart-crop --padding 30 -f jpg --watermark "Draft"

        # Lazy-loading page
        pagecast render https://example.com/feed --dynamic -o feed.webp -f webp
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        request = CaptureRequest(
            input=source,
            input_type=InputType(input_type) if input_type else detect_input_type(source),
            format=image_format,
            quality=quality,
            scale=scale,
            full_page=full_page,
            smart_crop=smart_crop,
            smart_crop_padding=padding,
            viewport_width=width,
            dynamic_mode=dynamic,
            watermark_enabled=bool(watermark),
            watermark_text=watermark or "",
        )
    except (ValidationError, ValueError) as e:
        typer.echo(f"❌ Invalid options: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    if out is None:
        out = Path("output").with_suffix(request.format.file_suffix)

    try:
        result = asyncio.run(_render(request, out, config))
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)
    except LoadError as e:
        typer.echo(f"❌ {e}", err=True)
        code = ExitCode.TIMEOUT_ERROR if "timed out" in str(e) else ExitCode.RUNTIME_ERROR
        raise typer.Exit(code=code.value)
    except (LaunchError, RenderError) as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)
    except OSError as e:
        typer.echo(f"❌ Cannot write {out}: {e}", err=True)
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)

    typer.echo(
        f"✅ Saved {out} ({result.width}x{result.height}px, "
        f"{result.size_bytes / 1024:.2f} KB)"
    )


async def _render(request: CaptureRequest, out: Path, config_path: Optional[Path]) -> ImageBuffer:
    renderer = create_renderer_from_config(config_path)
    try:
        await renderer.browser_factory.start()
        return await renderer.render_to_file(request, out)
    finally:
        await renderer.browser_factory.stop()


if __name__ == "__main__":
    app()
