"""Unit tests for the browser console observer."""

import logging

import pytest
from unittest.mock import MagicMock

from pagecast.capture.console_observer import ConsoleObserver
from pagecast.models.capture import ConsoleLevel


def console_message(type_="log", text="hello"):
    message = MagicMock()
    message.type = type_
    message.text = text
    message.location = {'url': 'about:blank', 'lineNumber': 1}
    return message


class TestConsoleObserver:
    """Tests for ConsoleObserver."""

    @pytest.fixture
    def page(self):
        return MagicMock()

    def emit(self, page, message):
        handler = page.on.call_args.args[1]
        handler(message)

    def test_registers_console_listener(self, page):
        ConsoleObserver(page)

        assert page.on.call_args.args[0] == "console"

    def test_records_messages(self, page):
        observer = ConsoleObserver(page)

        self.emit(page, console_message("error", "Uncaught TypeError"))
        self.emit(page, console_message("warning", "deprecated"))
        self.emit(page, console_message("log", "[bounds] 12 elements"))

        stats = observer.get_stats()
        assert stats['total_messages'] == 3
        assert stats['error_messages'] == 1
        assert stats['warning_messages'] == 1
        assert [log.text for log in observer.get_logs(ConsoleLevel.LOG)] == ["[bounds] 12 elements"]

    def test_message_cap(self, page):
        observer = ConsoleObserver(page, max_messages=2)

        for i in range(5):
            self.emit(page, console_message(text=f"line {i}"))

        assert len(observer.get_logs()) == 2
        assert observer.get_stats()['dropped_messages'] == 3

    def test_forwards_to_browser_logger(self, page, caplog):
        ConsoleObserver(page, max_length=10)

        with caplog.at_level(logging.DEBUG, logger="pagecast.browser"):
            self.emit(page, console_message("error", "x" * 50))

        record = caplog.records[-1]
        assert record.name == "pagecast.browser"
        assert record.levelno == logging.WARNING
        assert record.getMessage() == "[error] " + "x" * 10 + "..."
