from __future__ import annotations

import json
import os
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiofiles
import yaml

from zipbook.config import ExclusionRules, FileEntry
from zipbook.exceptions import InvalidRulesError
from zipbook.logging import logger

if TYPE_CHECKING:
    from collections.abc import Mapping

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F-\x9F]")
LINE_BREAK = re.compile(r"\r?\n")
UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_\-.]")
DEFAULT_EXPORT_NAME = "Project_Export"


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return str(path.relative_to(root)).replace("\\", "/")
    except ValueError:
        return str(path)


def is_excluded_folder(rel_path: str, rules: ExclusionRules) -> bool:
    """Check whether any segment of `rel_path` is an excluded folder name.

    Args:
        rel_path (str): path relative to the extraction root, with forward slashes
        rules (ExclusionRules): the job's exclusion rules

    Returns:
        bool: True if one of the segments matches `rules.folders` exactly
    """
    return any(seg in rules.folders for seg in rel_path.split("/"))


def should_exclude(rel_path: str, rules: ExclusionRules) -> bool:
    """Decide whether a file is left out of the report.

    A path is excluded when one of its segments is an excluded folder name, or when
    the lower-cased extension of its last segment is an excluded extension. Matching
    is exact; there is no glob support.

    Args:
        rel_path (str): path relative to the extraction root, with forward slashes
        rules (ExclusionRules): the job's exclusion rules

    Returns:
        bool: True if the path must be skipped
    """
    if is_excluded_folder(rel_path, rules):
        return True
    ext = Path(rel_path.rsplit("/", 1)[-1]).suffix.lower()
    return bool(ext) and ext in rules.extensions


def scan_directory(root: Path, rules: ExclusionRules) -> list[FileEntry]:
    """Walk `root` depth-first and return the files that survive the exclusion rules.

    Each directory listing is sorted by name before it is walked so that two scans
    of the same tree give the same order. Excluded directories are pruned, symbolic
    links to directories are not followed, and only regular files are returned.

    Args:
        root (Path): the extraction root
        rules (ExclusionRules): the job's exclusion rules

    Raises:
        OSError: if `root` (or a directory below it) cannot be listed

    Returns:
        list[FileEntry]: the eligible files in document order
    """
    root = root.resolve()
    results: list[FileEntry] = []

    def walk(directory: Path) -> None:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            full = Path(entry.path)
            rel = relpath(full, root)
            if entry.is_dir(follow_symlinks=False):
                if is_excluded_folder(rel, rules):
                    continue
                walk(full)
            elif entry.is_file(follow_symlinks=False):
                if should_exclude(rel, rules):
                    continue
                results.append(FileEntry(path=full, rel=rel))

    walk(root)
    return results


def is_binary(data: bytes, sniff_bytes: int = 1000) -> bool:
    """Classify content as binary when a null byte appears in its first `sniff_bytes`."""
    return b"\x00" in data[:sniff_bytes]


def sanitize_text(text: str) -> str:
    """Remove C0/C1 control characters, keeping tab, CR and LF."""
    return CONTROL_CHARS.sub("", text)


def split_lines(text: str) -> list[str]:
    """Split text on `\\r?\\n`, dropping the empty line produced by a final newline.

    Args:
        text (str): sanitized file content

    Returns:
        list[str]: the lines; an empty text gives an empty list
    """
    if not text:
        return []
    lines = LINE_BREAK.split(text)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def decode_text(data: bytes) -> str:
    """Decode UTF-8 content, skipping malformed sequences, and strip control characters."""
    return sanitize_text(data.decode("utf-8", errors="ignore"))


async def read_file_capped(path: Path, limit: int) -> bytes:
    """Read at most `limit` bytes of a file without blocking the event loop.

    Args:
        path (Path): the file to read
        limit (int): maximum number of bytes returned

    Returns:
        bytes: the head of the file
    """
    async with aiofiles.open(path, "rb") as f:
        return await f.read(limit)


def sanitize_name(name: str) -> str:
    """Turn an uploaded file or repository name into a safe output base name.

    Args:
        name (str): e.g. "my project.zip"

    Returns:
        str: e.g. "my_project", or "Project_Export" when nothing usable is left
    """
    base = re.sub(r"\.zip$", "", (name or "").strip(), flags=re.IGNORECASE)
    clean = UNSAFE_NAME_CHARS.sub("_", base).strip(".")
    return clean or DEFAULT_EXPORT_NAME


def now_iso() -> str:
    """Return the current date and time in ISO 8601 format with timezone.

    Returns:
        str: the current date and time in ISO 8601 format with timezone
    """
    return datetime.now(UTC).astimezone().isoformat(timespec="seconds")


def parse_rules(data: Mapping[str, Any] | None) -> ExclusionRules:
    """Build exclusion rules from a mapping with `folders`, `extensions` and `presets`.

    Args:
        data (Mapping[str, Any] | None): decoded JSON/YAML; None means "no rules"

    Raises:
        InvalidRulesError: if the mapping has the wrong shape or names an unknown preset

    Returns:
        ExclusionRules: the rule set
    """
    if data is None:
        return ExclusionRules()
    if not isinstance(data, dict):
        raise InvalidRulesError(source=type(data).__name__, message="Exclusions must be an object.")

    def as_list(key: str) -> list[str]:
        value = data.get(key) or []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise InvalidRulesError(source=key, message=f"Exclusions field {key!r} must be a list of strings.")
        return value

    try:
        return ExclusionRules.from_presets(
            as_list("presets"),
            folders=as_list("folders"),
            extensions=as_list("extensions"),
        )
    except ValueError as e:
        raise InvalidRulesError(source="presets", message=str(e)) from e


def parse_rules_json(raw: str | None) -> ExclusionRules:
    """Parse the `exclusions` form field sent with an upload.

    Args:
        raw (str | None): JSON text, or None/blank for no rules

    Raises:
        InvalidRulesError: if the text is not valid JSON or has the wrong shape

    Returns:
        ExclusionRules: the rule set
    """
    if raw is None or not raw.strip():
        return ExclusionRules()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidRulesError(source="exclusions", message=f"Exclusions are not valid JSON: {e.msg}") from e
    return parse_rules(data)


def load_rules_file(path: Path) -> ExclusionRules:
    """Load exclusion rules from a YAML (`.yaml`/`.yml`) or JSON file.

    Args:
        path (Path): the rules file

    Raises:
        InvalidRulesError: if the file cannot be parsed

    Returns:
        ExclusionRules: the rule set
    """
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise InvalidRulesError(source=str(path), message=f"Invalid YAML in {path.name}.") from e
        logger.info("rules_file_loaded", path=str(path), format="yaml")
        return parse_rules(data)
    logger.info("rules_file_loaded", path=str(path), format="json")
    return parse_rules_json(text)
