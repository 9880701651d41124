from pathlib import Path

import pytest

from zipbook.document import ELLIPSIS, Document, LinkOp, fit_text, wrap_line


@pytest.mark.unit
def test_add_page_numbers_pages_from_one() -> None:
    doc = Document()

    first = doc.add_page()
    second = doc.add_page()

    assert (first.number, second.number) == (1, 2)
    assert doc.page_count == 2
    assert doc.page is second
    assert second.y == doc.geometry.margin


@pytest.mark.unit
def test_page_property_requires_a_page() -> None:
    with pytest.raises(RuntimeError):
        _ = Document().page


@pytest.mark.unit
def test_switch_to_page_allows_drawing_on_earlier_pages() -> None:
    doc = Document()
    doc.add_page()
    doc.add_page()

    doc.switch_to_page(1)
    doc.text(10, 10, "back on one")

    assert doc.pages[0].texts() == ["back on one"]
    assert doc.pages[1].texts() == []


@pytest.mark.unit
@pytest.mark.parametrize("number", [0, 3])
def test_switch_to_page_rejects_out_of_range(number: int) -> None:
    doc = Document()
    doc.add_page()
    doc.add_page()

    with pytest.raises(IndexError):
        doc.switch_to_page(number)


@pytest.mark.unit
def test_named_destinations_are_unique_and_survive_clear() -> None:
    doc = Document()
    page = doc.add_page()
    doc.add_named_destination("dest_0")
    doc.text(0, 0, "drawn")

    page.clear(50)

    assert doc.destinations == {"dest_0": 1}
    assert page.ops == []
    assert page.y == 50
    with pytest.raises(ValueError, match="already defined"):
        doc.add_named_destination("dest_0")


@pytest.mark.unit
def test_links_are_recorded_on_the_current_page() -> None:
    doc = Document()
    doc.add_page()
    doc.link(40, 90, 100, 14, "dest_3")

    assert doc.page.links() == [LinkOp(40, 90, 100, 14, "dest_3")]


@pytest.mark.unit
def test_save_writes_a_pdf(tmp_path: Path) -> None:
    doc = Document(title="demo")
    doc.add_page()
    doc.add_named_destination("index")
    doc.add_outline_entry("Index", "index")
    doc.rect(40, 40, 100, 25, "#e6f0ff")
    doc.text(50, 45, "hello", font="Courier", size=9, align="right", width=40)
    doc.add_page()
    doc.add_named_destination("dest_0")
    doc.switch_to_page(1)
    doc.link(40, 90, 100, 14, "dest_0")
    target = tmp_path / "demo.pdf"

    doc.save(target)

    assert target.read_bytes().startswith(b"%PDF")


@pytest.mark.unit
def test_save_rejects_links_to_unknown_destinations(tmp_path: Path) -> None:
    doc = Document()
    doc.add_page()
    doc.link(0, 0, 10, 10, "nowhere")

    with pytest.raises(KeyError):
        doc.save(tmp_path / "broken.pdf")
    assert not (tmp_path / "broken.pdf").exists()


@pytest.mark.unit
def test_wrap_line_hard_wraps_by_character() -> None:
    # Courier 9pt is 5.4pt per character, so 480pt hold 88 characters.
    pieces = wrap_line("x" * 200, 480, "Courier", 9)

    assert [len(p) for p in pieces] == [88, 88, 24]
    assert "".join(pieces) == "x" * 200
    assert wrap_line("", 480, "Courier", 9) == [""]


@pytest.mark.unit
def test_fit_text_keeps_the_end_of_long_text() -> None:
    text = "very/deeply/nested/directory/structure/with/a/file.py"

    fitted = fit_text(text, 120, "Courier", 10)

    assert fitted.startswith(ELLIPSIS)
    assert fitted.endswith("file.py")
    assert fit_text("short.py", 120, "Courier", 10) == "short.py"
