from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from zipbook import cli


@pytest.mark.unit
def test_parse_args_convert_collects_repeatable_rules() -> None:
    options = cli.parse_args(
        [
            "convert",
            "project.zip",
            "--output-dir",
            "out",
            "--exclude-folder",
            "dist",
            "--exclude-folder",
            "coverage",
            "--exclude-ext",
            "png",
            "--preset",
            "vendor",
        ],
    )

    assert options.command == "convert"
    assert options.archive == "project.zip"
    assert options.output_dir == "out"
    assert options.exclude_folder == ["dist", "coverage"]
    assert options.exclude_ext == ["png"]
    assert options.preset == ["vendor"]


@pytest.mark.unit
def test_parse_args_serve_defaults_to_settings() -> None:
    options = cli.parse_args(["serve", "--port", "9000"])

    assert options.command == "serve"
    assert options.host is None
    assert options.port == 9000


@pytest.mark.unit
def test_parse_args_rejects_unknown_preset() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["convert", "x.zip", "--preset", "nope"])


@pytest.mark.unit
def test_build_rules_merges_file_and_flags(tmp_path: Path) -> None:
    rules_file = tmp_path / "rules.yaml"
    rules_file.write_text("folders: [vendor]\nextensions: [.lock]\n", encoding="utf-8")
    options = cli.parse_args(
        ["convert", "x.zip", "--rules-file", str(rules_file), "--exclude-folder", "dist", "--preset", "images"],
    )

    rules = cli.build_rules(options)

    assert {"vendor", "dist"} <= rules.folders
    assert {".lock", ".png"} <= rules.extensions


@pytest.mark.unit
def test_main_reports_missing_archive(tmp_path: Path, mocker: MockerFixture) -> None:
    mocker.patch.object(cli, "setup_logging")
    run_job = mocker.patch.object(cli, "run_job")

    code = cli.main(["convert", str(tmp_path / "missing.zip")])

    assert code == 1
    run_job.assert_not_called()


@pytest.mark.unit
def test_main_serve_runs_uvicorn(mocker: MockerFixture, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ZIPBOOK_DATA_DIR", str(tmp_path))
    mocker.patch.object(cli, "setup_logging")
    run = mocker.patch("uvicorn.run")

    code = cli.main(["serve", "--host", "0.0.0.0", "--port", "9000"])  # noqa: S104

    assert code == 0
    run.assert_called_once()
    assert run.call_args.kwargs["host"] == "0.0.0.0"  # noqa: S104
    assert run.call_args.kwargs["port"] == 9000
