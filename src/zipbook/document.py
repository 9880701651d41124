"""In-memory page buffer with random access, serialised to PDF with reportlab.

reportlab's canvas streams pages in order and cannot go back to a page once it is
shown. The index is written after the content it points to, onto pages that were
reserved first, so pages are kept as lists of drawing operations until `save`
replays them onto a canvas. Coordinates are measured from the top-left corner of
the page, the way the layout code thinks about them; `save` flips them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from reportlab.lib.colors import HexColor
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from zipbook.config import PageGeometry

if TYPE_CHECKING:
    from pathlib import Path

ELLIPSIS = "..."


@dataclass(frozen=True, slots=True)
class TextOp:
    """A single line of text. `y` is the top of the line box."""

    x: float
    y: float
    text: str
    font: str
    size: float
    color: str = "#000000"
    align: str = "left"
    width: float = 0.0

    def draw(self, c: canvas.Canvas, page_height: float) -> None:
        c.setFillColor(HexColor(self.color))
        c.setFont(self.font, self.size)
        baseline = page_height - self.y - self.size
        if self.align == "right":
            c.drawRightString(self.x + self.width, baseline, self.text)
        elif self.align == "center":
            c.drawCentredString(self.x + self.width / 2, baseline, self.text)
        else:
            c.drawString(self.x, baseline, self.text)


@dataclass(frozen=True, slots=True)
class RectOp:
    """A filled rectangle. `y` is its top edge."""

    x: float
    y: float
    width: float
    height: float
    color: str

    def draw(self, c: canvas.Canvas, page_height: float) -> None:
        c.setFillColor(HexColor(self.color))
        c.rect(self.x, page_height - self.y - self.height, self.width, self.height, stroke=0, fill=1)


@dataclass(frozen=True, slots=True)
class LinkOp:
    """A clickable area jumping to a named destination."""

    x: float
    y: float
    width: float
    height: float
    dest: str

    def draw(self, c: canvas.Canvas, page_height: float) -> None:
        rect = (self.x, page_height - self.y - self.height, self.x + self.width, page_height - self.y)
        c.linkRect("", self.dest, rect, relative=0, thickness=0)


DrawOp = TextOp | RectOp | LinkOp


@dataclass
class Page:
    """One buffered page: its drawing operations, destinations and cursor."""

    number: int
    y: float
    ops: list[DrawOp] = field(default_factory=list)
    destinations: list[str] = field(default_factory=list)

    def clear(self, top: float) -> None:
        """Drop everything drawn on the page and move the cursor back to `top`.

        Named destinations stay: they belong to the page, not to its drawing.
        """
        self.ops.clear()
        self.y = top

    def texts(self) -> list[str]:
        """Text drawn on the page, in drawing order."""
        return [op.text for op in self.ops if isinstance(op, TextOp)]

    def links(self) -> list[LinkOp]:
        return [op for op in self.ops if isinstance(op, LinkOp)]


class Document:
    """A paginated document whose pages can be revisited until it is saved.

    `page_count` is the number of pages committed so far; right after `add_page`
    it is also the 1-based number of the new page.
    """

    def __init__(self, geometry: PageGeometry | None = None, *, title: str = "") -> None:
        self.geometry = geometry or PageGeometry()
        self.title = title
        self.pages: list[Page] = []
        self.outline: list[tuple[str, str]] = []
        self._destinations: dict[str, int] = {}
        self._current: Page | None = None

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def page(self) -> Page:
        """The page currently being drawn on."""
        if self._current is None:
            msg = "Document has no page yet"
            raise RuntimeError(msg)
        return self._current

    @property
    def destinations(self) -> dict[str, int]:
        """Named destination -> 1-based page number."""
        return dict(self._destinations)

    def add_page(self) -> Page:
        """Append a blank page, make it current and return it."""
        page = Page(number=len(self.pages) + 1, y=self.geometry.margin)
        self.pages.append(page)
        self._current = page
        return page

    def switch_to_page(self, number: int) -> Page:
        """Make an existing page current again.

        Args:
            number (int): 1-based page number

        Raises:
            IndexError: if the page does not exist

        Returns:
            Page: the page
        """
        if not 1 <= number <= len(self.pages):
            msg = f"Page {number} out of range (1..{len(self.pages)})"
            raise IndexError(msg)
        self._current = self.pages[number - 1]
        return self._current

    def add_named_destination(self, name: str) -> None:
        """Anchor `name` to the current page."""
        if name in self._destinations:
            msg = f"Destination {name!r} already defined"
            raise ValueError(msg)
        self.page.destinations.append(name)
        self._destinations[name] = self.page.number

    def add_outline_entry(self, title: str, dest: str) -> None:
        self.outline.append((title, dest))

    def text(
        self,
        x: float,
        y: float,
        text: str,
        *,
        font: str = "Helvetica",
        size: float = 10.0,
        color: str = "#000000",
        align: str = "left",
        width: float = 0.0,
    ) -> None:
        self.page.ops.append(TextOp(x, y, text, font, size, color, align, width))

    def rect(self, x: float, y: float, width: float, height: float, color: str) -> None:
        self.page.ops.append(RectOp(x, y, width, height, color))

    def link(self, x: float, y: float, width: float, height: float, dest: str) -> None:
        self.page.ops.append(LinkOp(x, y, width, height, dest))

    def save(self, path: Path) -> None:
        """Replay every page onto a reportlab canvas and write the PDF to `path`.

        Raises:
            KeyError: if a link or outline entry targets an undefined destination
        """
        for page in self.pages:
            for link in page.links():
                if link.dest not in self._destinations:
                    raise KeyError(link.dest)
        for _, dest in self.outline:
            if dest not in self._destinations:
                raise KeyError(dest)

        g = self.geometry
        c = canvas.Canvas(str(path), pagesize=(g.width, g.height))
        if self.title:
            c.setTitle(self.title)
        for page in self.pages:
            for name in page.destinations:
                c.bookmarkPage(name)
            for op in page.ops:
                op.draw(c, g.height)
            c.showPage()
        for title, dest in self.outline:
            c.addOutlineEntry(title, dest, level=0)
        if self.outline:
            c.showOutline()
        c.save()


def char_width(font: str, size: float) -> float:
    """Advance width of one character of a monospaced font."""
    return stringWidth("M", font, size)


def wrap_line(line: str, width: float, font: str, size: float) -> list[str]:
    """Hard-wrap a line of monospaced text to `width` points.

    Args:
        line (str): the text, tabs already expanded
        width (float): printable width in points
        font (str): a monospaced font name
        size (float): font size

    Returns:
        list[str]: the wrapped pieces; an empty line gives `[""]`
    """
    per_line = max(1, math.floor(width / char_width(font, size)))
    if not line:
        return [""]
    return [line[i : i + per_line] for i in range(0, len(line), per_line)]


def fit_text(text: str, width: float, font: str, size: float) -> str:
    """Shorten `text` from the left with an ellipsis so it fits in `width` points.

    The end of a path is the informative part, so that is what is kept.
    """
    if stringWidth(text, font, size) <= width:
        return text
    keep = text
    while keep and stringWidth(ELLIPSIS + keep, font, size) > width:
        keep = keep[1:]
    return ELLIPSIS + keep
