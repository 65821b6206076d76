"""Content bounds analysis for smart cropping.

The analyzer finds the tight bounding box of visually meaningful content on a
rendered page. Collection and decision are split:

- ``LAYOUT_SNAPSHOT_SCRIPT`` runs in the page and returns a JSON
  ``LayoutSnapshot``: every element under ``body`` with its rect and the
  handful of computed styles that matter, and every non-empty text node
  measured with a Range together with its parent element.
- ``compute_content_bounds`` is a pure function over that snapshot, so the
  heuristic is deterministic and testable without a browser.

An element contributes when it is visible, is not a background wrapper (a box
within the tolerance of both viewport dimensions, i.e. a full-bleed page
background), has a non-empty rect, and shows a visual signal: a background
colour or image, a visible border, a box shadow, or an intrinsically visual
tag. Text contributes through its own range rect so that text inside
unstyled containers is still covered.
"""

import logging
import re
from typing import List, Optional

from playwright.async_api import Page, Error as PlaywrightError

from ..models.capture import ContentBounds
from ..models.layout import ElementBox, LayoutSnapshot, Rect
from ..errors import BoundsNotFoundError

logger = logging.getLogger(__name__)


BACKGROUND_WRAPPER_TOLERANCE = 50

VISUAL_TAGS = frozenset({
    'IMG', 'VIDEO', 'CANVAS', 'SVG', 'INPUT', 'BUTTON',
    'TEXTAREA', 'SELECT', 'HR', 'IFRAME',
})

LAYOUT_SNAPSHOT_SCRIPT = """
() => {
    const rectOf = (r) => ({left: r.left, top: r.top, width: r.width, height: r.height});
    const boxOf = (el) => {
        const style = window.getComputedStyle(el);
        return {
            tag: el.tagName.toUpperCase(),
            rect: rectOf(el.getBoundingClientRect()),
            display: style.display,
            visibility: style.visibility,
            opacity: style.opacity,
            background_color: style.backgroundColor,
            background_image: style.backgroundImage,
            border_width: style.borderWidth,
            border_color: style.borderColor,
            box_shadow: style.boxShadow,
        };
    };

    const elements = [];
    const elementWalker = document.createTreeWalker(document.body, NodeFilter.SHOW_ELEMENT);
    let node;
    while ((node = elementWalker.nextNode())) {
        elements.push(boxOf(node));
    }

    const textRuns = [];
    const parents = new Map();
    const textWalker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT);
    while ((node = textWalker.nextNode())) {
        if (!node.textContent.trim()) continue;
        const parent = node.parentElement;
        if (!parent) continue;
        if (!parents.has(parent)) parents.set(parent, boxOf(parent));
        const range = document.createRange();
        range.selectNodeContents(node);
        textRuns.push({rect: rectOf(range.getBoundingClientRect()), parent: parents.get(parent)});
    }

    const snapshot = {
        viewport_width: window.innerWidth,
        viewport_height: window.innerHeight,
        scroll_x: window.scrollX,
        scroll_y: window.scrollY,
        document_height: Math.max(document.body.scrollHeight, document.documentElement.scrollHeight),
        elements: elements,
        text_runs: textRuns,
    };
    console.log(`[bounds] viewport ${snapshot.viewport_width}x${snapshot.viewport_height}, ` +
                `scroll ${snapshot.scroll_x},${snapshot.scroll_y}, ` +
                `${elements.length} elements, ${textRuns.length} text runs`);
    return snapshot;
}
"""

_COLOR_FUNCTION_RE = re.compile(r'^(rgba?|hsla?)\((?P<body>[^)]*)\)$')
_COLOR_TOKEN_RE = re.compile(r'(?:rgba?|hsla?)\([^)]*\)|#[0-9a-fA-F]+|[a-zA-Z]+')


def is_transparent_color(color: Optional[str]) -> bool:
    """True for 'transparent', empty values and colours with zero alpha."""
    if not color:
        return True
    value = color.strip().lower()
    if value == 'transparent':
        return True

    match = _COLOR_FUNCTION_RE.match(value)
    if not match:
        return False

    parts = [p for p in re.split(r'[\s,/]+', match.group('body').strip()) if p]
    if len(parts) < 4:
        return False

    alpha = parts[3]
    try:
        alpha_value = float(alpha[:-1]) / 100 if alpha.endswith('%') else float(alpha)
    except ValueError:
        return False
    return alpha_value == 0


def is_hidden(box: ElementBox) -> bool:
    """Not displayed, not visible, or fully transparent."""
    if box.display == 'none' or box.visibility == 'hidden':
        return True
    try:
        return float(box.opacity) == 0
    except ValueError:
        return False


def is_background_wrapper(
    rect: Rect,
    viewport_width: float,
    viewport_height: float,
    tolerance: float = BACKGROUND_WRAPPER_TOLERANCE
) -> bool:
    """True when a box covers the viewport to within the tolerance on both axes."""
    return (
        abs(rect.width - viewport_width) < tolerance
        and abs(rect.height - viewport_height) < tolerance
    )


def expand_box_sides(values: List[str]) -> List[str]:
    """Expand a 1-4 value CSS box shorthand to top, right, bottom, left."""
    if not values:
        return []
    if len(values) == 1:
        return values * 4
    if len(values) == 2:
        return [values[0], values[1], values[0], values[1]]
    if len(values) == 3:
        return [values[0], values[1], values[2], values[1]]
    return values[:4]


def _border_width(token: str) -> float:
    try:
        return float(token.replace('px', ''))
    except ValueError:
        return 0


def has_visible_border(box: ElementBox) -> bool:
    """Some side has both a non-zero width and a non-transparent colour."""
    widths = [_border_width(w) for w in expand_box_sides(box.border_width.split())]
    colors = expand_box_sides(_COLOR_TOKEN_RE.findall(box.border_color or ''))
    if not colors:
        return any(w > 0 for w in widths)
    return any(
        width > 0 and not is_transparent_color(color)
        for width, color in zip(widths, colors)
    )


def has_visual_content(box: ElementBox) -> bool:
    """Whether an element paints something of its own."""
    if not is_transparent_color(box.background_color):
        return True
    if box.background_image and box.background_image != 'none':
        return True
    if has_visible_border(box):
        return True
    if box.box_shadow and box.box_shadow != 'none':
        return True
    return box.tag.upper() in VISUAL_TAGS


def compute_content_bounds(
    snapshot: LayoutSnapshot,
    padding: float = 0,
    tolerance: float = BACKGROUND_WRAPPER_TOLERANCE
) -> Optional[ContentBounds]:
    """Compute the padded union of all qualifying content rects.

    Args:
        snapshot: Layout collected from the page
        padding: CSS pixels added on every side
        tolerance: Background wrapper tolerance in CSS pixels

    Returns:
        Document-absolute bounds, or None when nothing qualifies
    """
    vw, vh = snapshot.viewport_width, snapshot.viewport_height
    min_x = min_y = float('inf')
    max_x = max_y = float('-inf')
    found = False

    def include(rect: Rect) -> None:
        nonlocal min_x, min_y, max_x, max_y, found
        found = True
        min_x = min(min_x, rect.left + snapshot.scroll_x)
        min_y = min(min_y, rect.top + snapshot.scroll_y)
        max_x = max(max_x, rect.right + snapshot.scroll_x)
        max_y = max(max_y, rect.bottom + snapshot.scroll_y)

    for box in snapshot.elements:
        if is_hidden(box):
            continue
        if is_background_wrapper(box.rect, vw, vh, tolerance):
            continue
        if box.rect.is_empty:
            continue
        if has_visual_content(box):
            include(box.rect)

    for run in snapshot.text_runs:
        if is_hidden(run.parent):
            continue
        if is_background_wrapper(run.parent.rect, vw, vh, tolerance):
            continue
        if run.rect.is_empty:
            continue
        include(run.rect)

    if not found:
        return None

    return ContentBounds(
        x=max(0, min_x - padding),
        y=max(0, min_y - padding),
        width=(max_x - min_x) + padding * 2,
        height=(max_y - min_y) + padding * 2,
    )


class ContentBoundsAnalyzer:
    """Collects a layout snapshot from a page and computes content bounds."""

    def __init__(self, background_tolerance: float = BACKGROUND_WRAPPER_TOLERANCE):
        self.background_tolerance = background_tolerance

    async def collect_snapshot(self, page: Page) -> LayoutSnapshot:
        """Run the in-page collector and validate its result."""
        result = await page.evaluate(LAYOUT_SNAPSHOT_SCRIPT)
        return LayoutSnapshot.model_validate(result)

    async def find_bounds(self, page: Page, padding: float = 0) -> ContentBounds:
        """Compute content bounds for the page's current state.

        Raises:
            BoundsNotFoundError: If nothing qualifies or the layout cannot be read
        """
        logger.info(f"Calculating content bounds with padding: {padding}px")

        try:
            snapshot = await self.collect_snapshot(page)
        except (PlaywrightError, ValueError) as e:
            raise BoundsNotFoundError(f"Layout snapshot failed: {e}") from e

        bounds = compute_content_bounds(snapshot, padding, self.background_tolerance)
        if bounds is None:
            raise BoundsNotFoundError(
                f"No visual content among {len(snapshot.elements)} elements "
                f"and {len(snapshot.text_runs)} text runs"
            )

        logger.debug(
            f"Content bounds: {bounds} (document {snapshot.viewport_width:g}x"
            f"{snapshot.document_height:g}px)"
        )
        return bounds

    async def analyze(self, page: Page, padding: float = 0) -> Optional[ContentBounds]:
        """Like ``find_bounds`` but returns None instead of raising."""
        try:
            return await self.find_bounds(page, padding)
        except BoundsNotFoundError as e:
            logger.warning(f"{e}; using full page")
            return None
