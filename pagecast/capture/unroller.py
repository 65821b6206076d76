"""Lazy-load scrolling and scroll container unrolling.

Dynamic pages often mount content only when it scrolls into view, and many
single-page apps keep their content in a fixed-height scrolling container
instead of the document. Full-page screenshots only extend the document, so
before capture the ContentUnroller:

1. waits (bounded) for network quiescence,
2. picks the primary scroll target (the largest qualifying container, or
   the window when the document itself is taller),
3. steps through it one viewport at a time until the scroll extent stops
   growing or the iteration cap is hit,
4. resets the scroll position to the top, and
5. when the target was a container, forces it and its constrained ancestors
   to natural height so the document grows to include everything.
"""

import logging
from typing import Any, Dict

from playwright.async_api import Page, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from ..models.capture import ScrollReport
from ..errors import ScrollDetectionError

logger = logging.getLogger(__name__)


SCROLL_AND_UNROLL_SCRIPT = """
async (args) => {
    const delay = (ms) => new Promise(resolve => setTimeout(resolve, ms));
    const documentHeight = () => Math.max(
        document.body ? document.body.scrollHeight : 0,
        document.documentElement.scrollHeight
    );

    const findScrollContainer = () => {
        let best = null;
        let bestHeight = 0;
        for (const el of document.querySelectorAll('*')) {
            const style = window.getComputedStyle(el);
            if (style.overflowY !== 'scroll' && style.overflowY !== 'auto') continue;
            if (el.scrollHeight <= el.clientHeight) continue;
            // small widgets such as code blocks
            if (el.clientHeight < args.minContainerHeight) continue;
            if (el.scrollHeight > bestHeight) {
                bestHeight = el.scrollHeight;
                best = el;
            }
        }
        if (best === null || documentHeight() > bestHeight) return null;
        return best;
    };

    let scroller = null;
    let fallback = args.forceWindow;
    if (!args.forceWindow) {
        try {
            scroller = findScrollContainer();
        } catch (e) {
            console.warn(`Scroll target detection failed: ${e}`);
            fallback = true;
        }
    }
    const isWindow = scroller === null;

    const extent = () => isWindow ? documentHeight() : scroller.scrollHeight;
    const scrollTo = (y) => {
        if (isWindow) {
            window.scrollTo(0, y);
        } else {
            scroller.scrollTop = y;
        }
    };
    const step = Math.max(1, isWindow ? window.innerHeight : scroller.clientHeight);

    console.log(`Scrolling ${isWindow ? 'window' : 'container'} in steps of ${step}px`);

    let position = 0;
    let iterations = 0;
    let capped = false;
    let height = extent();
    while (true) {
        if (iterations >= args.maxIterations) {
            capped = true;
            break;
        }
        iterations += 1;
        position += step;
        scrollTo(position);
        await delay(args.stepDelayMs);
        height = extent();

        if (position >= height) {
            await delay(args.settleDelayMs);
            const settledHeight = extent();
            if (settledHeight <= height) break;
            height = settledHeight;
        }
    }

    scrollTo(0);
    await delay(args.resetDelayMs);

    let unrolled = false;
    if (!isWindow) {
        scroller.style.height = 'auto';
        scroller.style.maxHeight = 'none';
        scroller.style.overflow = 'visible';
        scroller.style.overflowY = 'visible';

        let parent = scroller.parentElement;
        while (parent && parent !== document.body && parent !== document.documentElement) {
            const style = window.getComputedStyle(parent);
            if (style.height !== 'auto' || style.overflow !== 'visible') {
                parent.style.height = 'auto';
                parent.style.maxHeight = 'none';
                parent.style.overflow = 'visible';
            }
            parent = parent.parentElement;
        }
        unrolled = true;
        await delay(args.unrollDelayMs);
    }

    return {
        target: isWindow ? 'window' : 'element',
        iterations: iterations,
        final_height: height,
        capped: capped,
        unrolled: unrolled,
        fallback: fallback,
    };
}
"""


class ContentUnroller:
    """Triggers lazy loading and flattens nested scroll containers."""

    def __init__(
        self,
        network_idle_timeout_ms: int = 10000,
        step_delay_ms: int = 200,
        settle_delay_ms: int = 1000,
        reset_delay_ms: int = 1000,
        unroll_delay_ms: int = 500,
        min_container_height: int = 300,
        max_iterations: int = 200,
    ):
        """Initialize unroller.

        Args:
            network_idle_timeout_ms: Bound on the initial network idle wait
            step_delay_ms: Pause after each scroll step
            settle_delay_ms: Extra pause before deciding the extent stopped growing
            reset_delay_ms: Pause after scrolling back to the top
            unroll_delay_ms: Pause for layout after expanding a container
            min_container_height: Smallest client height a container needs to qualify
            max_iterations: Hard cap on scroll steps for endlessly growing pages
        """
        self.network_idle_timeout_ms = network_idle_timeout_ms
        self.step_delay_ms = step_delay_ms
        self.settle_delay_ms = settle_delay_ms
        self.reset_delay_ms = reset_delay_ms
        self.unroll_delay_ms = unroll_delay_ms
        self.min_container_height = min_container_height
        self.max_iterations = max_iterations

    async def unroll(self, page: Page) -> ScrollReport:
        """Wait for the network to settle, then scroll and unroll the page."""
        await self.wait_for_network_idle(page)
        return await self.scroll_and_unroll(page)

    async def wait_for_network_idle(self, page: Page) -> bool:
        """Wait for network quiescence; a timeout is not fatal.

        Returns:
            True if the network went idle within the bound
        """
        try:
            await page.wait_for_load_state("networkidle", timeout=self.network_idle_timeout_ms)
            return True
        except PlaywrightTimeoutError:
            logger.warning(f"Network idle timeout after {self.network_idle_timeout_ms}ms, proceeding anyway")
            return False

    async def scroll_and_unroll(self, page: Page) -> ScrollReport:
        """Run the in-page scroll loop, falling back to window scrolling on failure."""
        logger.info("Starting smart scroll")

        try:
            report = await self._run_script(page, force_window=False)
        except ScrollDetectionError as e:
            logger.warning(f"{e}; falling back to document scrolling")
            try:
                report = await self._run_script(page, force_window=True)
            except ScrollDetectionError as e:
                logger.warning(f"Document scrolling failed as well, capturing as is: {e}")
                return ScrollReport(fallback=True)

        if report.capped:
            logger.warning(
                f"Scroll loop stopped at the {self.max_iterations} step cap; "
                f"capturing content loaded so far (height={report.final_height}px)"
            )
        if report.unrolled:
            logger.info("Unrolled scroll container for full-page capture")

        logger.info(
            f"Smart scroll completed: target={report.target}, "
            f"steps={report.iterations}, height={report.final_height}px"
        )
        return report

    def build_script_args(self, force_window: bool = False) -> Dict[str, Any]:
        """Arguments passed to the in-page scroll script."""
        return {
            'stepDelayMs': self.step_delay_ms,
            'settleDelayMs': self.settle_delay_ms,
            'resetDelayMs': self.reset_delay_ms,
            'unrollDelayMs': self.unroll_delay_ms,
            'minContainerHeight': self.min_container_height,
            'maxIterations': self.max_iterations,
            'forceWindow': force_window,
        }

    async def _run_script(self, page: Page, force_window: bool) -> ScrollReport:
        try:
            result = await page.evaluate(SCROLL_AND_UNROLL_SCRIPT, self.build_script_args(force_window))
        except PlaywrightError as e:
            raise ScrollDetectionError(f"Scroll script failed: {e}") from e

        try:
            return ScrollReport.model_validate(result or {})
        except ValueError as e:
            raise ScrollDetectionError(f"Unexpected scroll script result: {result!r}") from e
