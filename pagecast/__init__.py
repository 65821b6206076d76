"""pagecast: render web pages, inline HTML and local HTML files to images.

Pages are rendered in headless Chromium (Playwright), optionally scrolled to
trigger lazy-loaded content, optionally cropped to their visual content, and
optionally watermarked before being encoded with Pillow.
"""

__version__ = "1.0.0"
