"""CLI module for pagecast.

This package provides a command-line interface for rendering a single URL,
HTML string or HTML file to an image file.
"""

from .main import app, ExitCode

__all__ = [
    'app',
    'ExitCode',
]
