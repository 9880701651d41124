import zipfile
from pathlib import Path

import pytest
from pypdf import PdfReader

from zipbook import cli


def make_zip(path: Path, files: dict[str, bytes]) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return path


def convert(archive: Path, out: Path, *extra: str) -> Path:
    code = cli.main(["convert", str(archive), "--output-dir", str(out), *extra])
    assert code == 0
    pdfs = sorted(out.glob("*.pdf"), key=lambda p: p.stat().st_mtime)
    return pdfs[-1]


@pytest.fixture(autouse=True)
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "var"
    monkeypatch.setenv("ZIPBOOK_DATA_DIR", str(path))
    return path


@pytest.mark.end2end
def test_cli_builds_indexed_pdf_without_excluded_files(tmp_path: Path) -> None:
    archive = make_zip(
        tmp_path / "demo.zip",
        {"src/a.js": b"console.log('a');\n", "src/b.png": b"\x89PNG\x00\x00", "node_modules/x/index.js": b"x"},
    )

    pdf = convert(
        archive,
        tmp_path / "out",
        "--exclude-folder",
        "node_modules",
        "--exclude-ext",
        ".png",
    )

    reader = PdfReader(pdf)
    titles = [item.title for item in reader.outline]
    assert len(reader.pages) == 4
    assert titles == ["Index", "src/a.js"]
    assert reader.get_destination_page_number(reader.outline[0]) == 1
    assert reader.get_destination_page_number(reader.outline[1]) == 3
    assert "src/a.js" in reader.pages[1].extract_text()
    assert len(reader.pages[1]["/Annots"]) == 1
    assert archive.exists()


@pytest.mark.end2end
def test_cli_reruns_produce_the_same_document(tmp_path: Path) -> None:
    files = {f"pkg/m{i}.py": f"x = {i}\n".encode() * (i + 1) for i in range(6)}
    files["pkg/data.bin"] = b"\x00\x01\x02"
    archive = make_zip(tmp_path / "proj.zip", files)

    first = PdfReader(convert(archive, tmp_path / "one"))
    second = PdfReader(convert(archive, tmp_path / "two"))

    assert len(first.pages) == len(second.pages) == 1 + 2 + 7
    assert [o.title for o in first.outline] == [o.title for o in second.outline]
    for a, b in zip(first.pages[1:], second.pages[1:], strict=True):
        assert a.extract_text() == b.extract_text()


@pytest.mark.end2end
def test_cli_fails_on_corrupt_archive(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"garbage")

    code = cli.main(["convert", str(archive), "--output-dir", str(tmp_path / "out")])

    assert code == 1
    assert "Archive is corrupt or not a ZIP file." in capsys.readouterr().out
    assert not list((tmp_path / "out").glob("*.pdf"))


@pytest.mark.end2end
def test_cli_renders_binary_file_as_a_notice_under_its_header(tmp_path: Path) -> None:
    source = "".join(f"const v{i} = {i};\n" for i in range(10)).encode()
    archive = make_zip(
        tmp_path / "scenario.zip",
        {"src/a.js": source, "src/b.png": b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR", "node_modules/lib.js": b"x"},
    )

    pdf = convert(archive, tmp_path / "out", "--exclude-folder", "node_modules")

    reader = PdfReader(pdf)
    assert [item.title for item in reader.outline] == ["Index", "src/a.js", "src/b.png"]
    assert [reader.get_destination_page_number(item) for item in reader.outline] == [1, 3, 4]
    assert len(reader.pages) == 5
    assert len(reader.pages[1]["/Annots"]) == 2
    binary_page = [line for line in reader.pages[4].extract_text().splitlines() if line.strip()]
    assert binary_page == ["src/b.png", "[Binary File Omitted]"]
