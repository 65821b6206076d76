"""Exception hierarchy for the render pipeline.

Fatal scope differs per class: ``LaunchError`` blocks every request until the
browser factory is started again, ``LoadError``, ``ExtractionError`` and
``EncodingError`` fail only the request that raised them, and the remaining
kinds are recovered from inside the pipeline and only logged.
"""


class RenderError(Exception):
    """Base class for all render pipeline errors."""
    pass


class LaunchError(RenderError):
    """Exception raised when the browser process fails to start."""
    pass


class LoadError(RenderError):
    """Exception raised when navigation or content loading fails or times out."""
    pass


class FontWaitError(RenderError):
    """Exception raised when font readiness cannot be observed."""
    pass


class ScrollDetectionError(RenderError):
    """Exception raised when no scroll target can be identified or operated."""
    pass


class BoundsNotFoundError(RenderError):
    """Exception raised when nothing on the page qualifies as visual content."""
    pass


class ExtractionError(RenderError):
    """Exception raised when cropping or watermark compositing fails."""
    pass


class EncodingError(RenderError):
    """Exception raised when the final image cannot be encoded."""
    pass
