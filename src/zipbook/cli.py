"""
zipbook: turn a project archive into a paginated, indexed PDF report.

Usage
-----
Convert a local archive once:
    zipbook convert project.zip --output-dir out --preset vendor --exclude-ext .lock

Load exclusions from a file (YAML or JSON, keys `folders`, `extensions`, `presets`):
    zipbook convert project.zip --rules-file rules.yaml

Run the HTTP service (upload, GitHub fetch, progress stream, downloads):
    zipbook serve --host 0.0.0.0 --port 3999
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from zipbook import __version__
from zipbook.config import EXCLUSION_PRESETS, ExclusionRules
from zipbook.engine import run_job
from zipbook.exceptions import InvalidRulesError
from zipbook.file_manipulation import load_rules_file
from zipbook.jobs import JobStore
from zipbook.logging import logger, setup_logging
from zipbook.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Sequence


class CliOptions(BaseModel):
    """Parsed command line."""

    model_config = ConfigDict(frozen=True)

    command: Literal["convert", "serve"]
    archive: str = ""
    output_dir: str = ""
    name: str = ""
    exclude_folder: list[str] = Field(default_factory=list)
    exclude_ext: list[str] = Field(default_factory=list)
    preset: list[str] = Field(default_factory=list)
    rules_file: str = ""
    log_file: str = ""
    host: str | None = None
    port: int | None = None


def parse_args(argv: Sequence[str] | None = None) -> CliOptions:
    p = argparse.ArgumentParser(
        prog="zipbook",
        description="Turn a project archive into a paginated, indexed PDF report.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="command", required=True)

    conv = sub.add_parser("convert", help="Convert one local ZIP archive.")
    conv.add_argument("archive", type=str, help="Path to the ZIP archive.")
    conv.add_argument("--output-dir", type=str, default="", help="Where the PDF is written.")
    conv.add_argument("--name", type=str, default="", help="Project name (default: archive name).")
    conv.add_argument(
        "--exclude-folder",
        action="append",
        default=[],
        help="Excluded folder name (repeatable).",
    )
    conv.add_argument(
        "--exclude-ext",
        action="append",
        default=[],
        help="Excluded extension (repeatable).",
    )
    conv.add_argument(
        "--preset",
        action="append",
        default=[],
        choices=sorted(EXCLUSION_PRESETS),
        help="Named exclusion preset (repeatable).",
    )
    conv.add_argument("--rules-file", type=str, default="", help="YAML or JSON exclusion rules.")
    conv.add_argument("--log-file", type=str, default="", help="Log file path.")

    serve = sub.add_parser("serve", help="Run the HTTP service.")
    serve.add_argument("--host", type=str, default=None, help="Bind address.")
    serve.add_argument("--port", type=int, default=None, help="Port.")
    serve.add_argument("--log-file", type=str, default="", help="Log file path.")

    args = p.parse_args(argv)
    return CliOptions(**vars(args))


def build_rules(options: CliOptions) -> ExclusionRules:
    """Merge the rules file (if any) with the rules given on the command line.

    Raises:
        InvalidRulesError: if the rules file cannot be parsed
    """
    base = load_rules_file(Path(options.rules_file)) if options.rules_file else ExclusionRules()
    extra = ExclusionRules.from_presets(
        options.preset,
        folders=options.exclude_folder,
        extensions=options.exclude_ext,
    )
    return ExclusionRules(
        folders=base.folders | extra.folders,
        extensions=base.extensions | extra.extensions,
    )


def convert(options: CliOptions, settings: Settings) -> int:
    archive = Path(options.archive)
    if not archive.is_file():
        logger.error("archive_missing", path=str(archive))
        print(f"No such archive: {archive}")
        return 1
    try:
        rules = build_rules(options)
    except (InvalidRulesError, OSError) as e:
        print(f"Invalid exclusion rules: {e}")
        return 1

    store = JobStore(retention_seconds=settings.job_retention_seconds)
    output_dir = Path(options.output_dir) if options.output_dir else Path.cwd()
    job_id, pdf = asyncio.run(run_job(settings, store, archive, rules, options.name or None, output_dir))
    job = store.require(job_id)
    if pdf is None:
        print(job.message)
        return 1
    print(f"Wrote {pdf}")
    return 0


def serve(options: CliOptions, settings: Settings) -> int:
    import uvicorn  # noqa: PLC0415

    from zipbook.api import create_app  # noqa: PLC0415

    updates = {k: v for k, v in (("host", options.host), ("port", options.port)) if v is not None}
    if options.log_file:
        updates["log_file"] = options.log_file
    settings = settings.model_copy(update=updates)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    options = parse_args(argv)
    settings = Settings()
    setup_logging(options.log_file or settings.log_file or None)
    if options.command == "serve":
        return serve(options, settings)
    return convert(options, settings)


if __name__ == "__main__":
    raise SystemExit(main())
