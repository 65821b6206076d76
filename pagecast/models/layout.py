"""Layout snapshot models collected from a live page.

The content bounds heuristic never touches the DOM directly. A small in-page
script walks the document once and returns a ``LayoutSnapshot``; everything
after that is plain Python over these models.
"""

from typing import List

from pydantic import BaseModel, Field


class Rect(BaseModel):
    """Viewport-relative rectangle as reported by getBoundingClientRect()."""

    left: float = 0
    top: float = 0
    width: float = 0
    height: float = 0

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0


class ElementBox(BaseModel):
    """An element's rect and the computed style fields the heuristic reads."""

    tag: str = Field(description="Upper-case tag name")
    rect: Rect = Field(default_factory=Rect)
    display: str = "block"
    visibility: str = "visible"
    opacity: str = "1"
    background_color: str = "rgba(0, 0, 0, 0)"
    background_image: str = "none"
    border_width: str = "0px"
    border_color: str = ""
    box_shadow: str = "none"


class TextRun(BaseModel):
    """A non-empty text node measured with a Range, plus its parent element."""

    rect: Rect = Field(default_factory=Rect)
    parent: ElementBox


class LayoutSnapshot(BaseModel):
    """Everything needed to compute content bounds for one page state."""

    viewport_width: float = Field(gt=0)
    viewport_height: float = Field(gt=0)
    scroll_x: float = 0
    scroll_y: float = 0
    document_height: float = 0
    elements: List[ElementBox] = Field(default_factory=list)
    text_runs: List[TextRun] = Field(default_factory=list)
