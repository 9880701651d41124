from __future__ import annotations

import math
from typing import TYPE_CHECKING

from zipbook.config import IndexReservation, RenderKind, RenderResult, TocEntry
from zipbook.document import ELLIPSIS, fit_text, wrap_line
from zipbook.file_manipulation import decode_text, is_binary, now_iso, split_lines
from zipbook.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from zipbook.config import FileEntry
    from zipbook.document import Document

COVER_FILL = "#0d1117"
COVER_TEXT = "#ffffff"
COVER_SUBTEXT = "#8b949e"
HEADER_FILL = "#e6f0ff"
ACCENT = "#0052cc"
GUTTER_FILL = "#f5f5f5"
GUTTER_TEXT = "#999999"
NOTICE_TEXT = "#cc0000"
BODY_TEXT = "#000000"

BINARY_NOTICE = "[Binary File Omitted]"
INDEX_TITLE = "INDEX"
INDEX_DEST = "index"
TRUNCATED_LINE_MARK = ELLIPSIS + " (line truncated)"


def add_cover_page(doc: Document, title: str, file_count: int) -> None:
    """Add the cover page: project name, file count and generation time on a dark band."""
    g = doc.geometry
    doc.add_page()
    doc.rect(0, 0, g.width, g.height, COVER_FILL)
    inner = g.width - 2 * g.margin
    doc.text(
        g.margin,
        300,
        fit_text(title, inner, "Helvetica-Bold", 28),
        font="Helvetica-Bold",
        size=28,
        color=COVER_TEXT,
        align="center",
        width=inner,
    )
    doc.text(
        g.margin,
        350,
        f"{file_count} files - generated {now_iso()}",
        font="Helvetica",
        size=12,
        color=COVER_SUBTEXT,
        align="center",
        width=inner,
    )


def start_file_section(doc: Document, entry: FileEntry, index: int) -> TocEntry:
    """Open a file's page group and record where it starts.

    The page number is read right after the file's first page is added, before any
    row can push the content onto a continuation page, so the index always points
    at the page carrying the file header.

    Args:
        doc (Document): the document being built
        entry (FileEntry): the file about to be rendered
        index (int): position of the file in scan order, used for the anchor name

    Returns:
        TocEntry: title, anchor and first page of the file
    """
    doc.add_page()
    page_number = doc.page_count
    dest = f"dest_{index}"
    doc.add_named_destination(dest)
    doc.add_outline_entry(entry.rel, dest)
    draw_header(doc, entry.rel)
    return TocEntry(title=entry.rel, dest=dest, page=page_number)


def draw_header(doc: Document, text: str) -> None:
    g = doc.geometry
    width = g.width - 2 * g.margin
    doc.rect(g.margin, g.margin, width, g.header_height, HEADER_FILL)
    doc.text(
        g.margin + 10,
        g.margin + (g.header_height - g.header_font_size) / 2,
        fit_text(text, width - 20, "Courier-Bold", g.header_font_size),
        font="Courier-Bold",
        size=g.header_font_size,
        color=ACCENT,
    )
    doc.page.y = g.margin + g.header_height + g.header_gap


def draw_notice(doc: Document, message: str) -> None:
    """Write a one-line red notice at the cursor."""
    g = doc.geometry
    doc.text(g.margin, doc.page.y, message, font="Helvetica", size=10, color=NOTICE_TEXT)
    doc.page.y += g.min_row_height


def draw_content(doc: Document, text: str) -> int:
    """Lay out text as line-numbered rows, starting new pages as needed.

    A row is as tall as its wrapped text (never less than `min_row_height`) and is
    never split: when it does not fit above the bottom margin, a new page is started
    first. A line too long to fit on an empty page is cut and marked as truncated.

    Args:
        doc (Document): the document, positioned on the file's current page
        text (str): sanitized file content

    Returns:
        int: the number of rows drawn
    """
    g = doc.geometry
    font, size, leading = g.code_font, g.code_font_size, g.code_leading
    max_pieces = max(1, math.floor((g.content_bottom - g.margin - 2) / leading))
    lines = split_lines(text)

    for number, line in enumerate(lines, start=1):
        pieces = wrap_line(line.expandtabs(g.tab_size), g.text_width, font, size)
        if len(pieces) > max_pieces:
            pieces = [*pieces[: max_pieces - 1], TRUNCATED_LINE_MARK]
        row_height = max(len(pieces) * leading, g.min_row_height)

        if doc.page.y + row_height > g.content_bottom:
            doc.add_page()

        y = doc.page.y
        doc.rect(g.margin, y, g.gutter_width, row_height, GUTTER_FILL)
        doc.text(
            g.margin + 2,
            y + 2,
            str(number),
            font=font,
            size=size,
            color=GUTTER_TEXT,
            align="right",
            width=g.gutter_width - 5,
        )
        for k, piece in enumerate(pieces):
            doc.text(g.text_x, y + 2 + k * leading, piece, font=font, size=size, color=BODY_TEXT)
        doc.page.y = y + row_height

    return len(lines)


def render_file(
    doc: Document,
    entry: FileEntry,
    data: bytes,
    *,
    sniff_bytes: int = 1000,
) -> RenderResult:
    """Render one file's bytes below its header.

    Args:
        doc (Document): the document, positioned on the file's first page
        entry (FileEntry): the file being rendered
        data (bytes): the file content (already capped by the reader)
        sniff_bytes (int): how many leading bytes are checked for a null byte

    Returns:
        RenderResult: binary or text outcome, rows drawn and pages spanned
    """
    first_page = doc.page_count
    if is_binary(data, sniff_bytes):
        draw_notice(doc, BINARY_NOTICE)
        return RenderResult(kind=RenderKind.BINARY, pages=doc.page_count - first_page + 1, detail=entry.rel)
    lines = draw_content(doc, decode_text(data))
    return RenderResult(kind=RenderKind.TEXT, lines=lines, pages=doc.page_count - first_page + 1)


def render_error(doc: Document, reason: str) -> RenderResult:
    """Render an inline notice for a file that could not be read."""
    first_page = doc.page_count
    draw_notice(doc, f"[Error reading file: {reason}]")
    return RenderResult(kind=RenderKind.ERROR, pages=doc.page_count - first_page + 1, detail=reason)


def index_pages_needed(entry_count: int, entries_per_page: int = 35) -> int:
    """Estimate the index size: `ceil(entry_count / entries_per_page) + 1` pages."""
    return math.ceil(entry_count / entries_per_page) + 1


def reserve_index(doc: Document, estimated_entries: int, entries_per_page: int = 35) -> IndexReservation:
    """Add blank index pages before any content page exists.

    The first reserved page is anchored as `index` and gets an outline entry so the
    index is reachable from the PDF bookmarks.

    Args:
        doc (Document): the document, with only the cover (if any) so far
        estimated_entries (int): expected number of index rows
        entries_per_page (int): rows assumed to fit on one index page

    Returns:
        IndexReservation: first reserved page number and page count
    """
    count = index_pages_needed(estimated_entries, entries_per_page)
    first_page = doc.page_count + 1
    for _ in range(count):
        doc.add_page()
    doc.switch_to_page(first_page)
    doc.add_named_destination(INDEX_DEST)
    doc.add_outline_entry("Index", INDEX_DEST)
    return IndexReservation(first_page=first_page, count=count)


def draw_index_row(doc: Document, entry: TocEntry) -> None:
    g = doc.geometry
    width = g.width - 2 * g.margin
    number_width = 50.0
    title_width = width - number_width - 10
    y = doc.page.y
    doc.text(
        g.margin,
        y,
        fit_text(entry.title, title_width, "Courier", g.index_font_size),
        font="Courier",
        size=g.index_font_size,
        color=ACCENT,
    )
    doc.link(g.margin, y, title_width, g.index_row_height, entry.dest)
    doc.text(
        g.margin + width - number_width,
        y,
        str(entry.page),
        font="Courier",
        size=g.index_font_size,
        color=BODY_TEXT,
        align="right",
        width=number_width,
    )
    doc.page.y = y + g.index_row_height


def backfill_index(doc: Document, entries: Sequence[TocEntry], reservation: IndexReservation) -> list[int]:
    """Write the index onto the reserved pages once every page number is known.

    Rows follow insertion order. When the cursor passes `index_bottom`, the next
    reserved page is cleared and used; once the reserved pages run out, new pages are
    appended at the end of the document so content pages are never overwritten.

    Args:
        doc (Document): the finished document
        entries (Sequence[TocEntry]): index rows in document order
        reservation (IndexReservation): the pages reserved by `reserve_index`

    Returns:
        list[int]: page numbers the index was written on, in order
    """
    g = doc.geometry
    page = doc.switch_to_page(reservation.first_page)
    page.clear(g.index_top)
    doc.text(
        g.margin,
        g.index_top,
        INDEX_TITLE,
        font="Helvetica-Bold",
        size=20,
        color=BODY_TEXT,
        align="center",
        width=g.width - 2 * g.margin,
    )
    page.y = g.index_top + g.index_title_height

    used = [page.number]
    next_reserved = reservation.first_page + 1
    appended = 0
    for entry in entries:
        if doc.page.y > g.index_bottom:
            if next_reserved <= reservation.last_page:
                page = doc.switch_to_page(next_reserved)
                next_reserved += 1
            else:
                page = doc.add_page()
                appended += 1
            page.clear(g.index_top)
            used.append(page.number)
        draw_index_row(doc, entry)

    if appended:
        logger.warning(
            "index_overflow",
            reserved=reservation.count,
            appended=appended,
            entries=len(entries),
        )
    return used
