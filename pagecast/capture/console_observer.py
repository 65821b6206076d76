"""Forwarding of browser console output into host logging.

Messages printed by the page, including the diagnostics of the in-page
scroll and bounds scripts, are kept as ``ConsoleLog`` records and re-emitted
on the ``pagecast.browser`` logger. Nothing here feeds back into rendering.
"""

import logging
from typing import Dict, List, Optional

from playwright.async_api import ConsoleMessage, Page

from ..models.capture import ConsoleLevel, ConsoleLog

logger = logging.getLogger(__name__)
browser_logger = logging.getLogger("pagecast.browser")

# Page errors are not host errors; everything is demoted one step or more
_HOST_LEVELS = {
    ConsoleLevel.ERROR: logging.WARNING,
    ConsoleLevel.WARN: logging.INFO,
}


class ConsoleObserver:
    """Collects the console output of one render page."""

    def __init__(self, page: Page, max_messages: int = 500, max_length: int = 2000):
        """Attach to ``page``.

        Args:
            page: Page whose ``console`` events are recorded
            max_messages: Records kept; later messages are only counted
            max_length: Longer texts are truncated when logged
        """
        self.max_messages = max_messages
        self.max_length = max_length
        self.records: List[ConsoleLog] = []
        self.dropped = 0

        page.on("console", self._handle)

    def _handle(self, message: ConsoleMessage) -> None:
        try:
            record = ConsoleLog.from_playwright_message(message)
        except Exception as e:
            logger.warning(f"Unreadable console message skipped: {e}")
            return

        if len(self.records) < self.max_messages:
            self.records.append(record)
        else:
            self.dropped += 1

        text = record.text
        if len(text) > self.max_length:
            text = text[:self.max_length] + "..."
        browser_logger.log(
            _HOST_LEVELS.get(record.level, logging.DEBUG),
            f"[{record.level.value}] {text}"
        )

    def get_logs(self, level: Optional[ConsoleLevel] = None) -> List[ConsoleLog]:
        """Recorded messages, optionally only those at ``level``."""
        if level is None:
            return list(self.records)
        return [record for record in self.records if record.level == level]

    def get_stats(self) -> Dict[str, int]:
        return {
            'total_messages': len(self.records),
            'error_messages': len(self.get_logs(ConsoleLevel.ERROR)),
            'warning_messages': len(self.get_logs(ConsoleLevel.WARN)),
            'dropped_messages': self.dropped,
        }

    def __repr__(self) -> str:
        return f"ConsoleObserver(records={len(self.records)}, dropped={self.dropped})"
