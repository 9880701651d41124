from __future__ import annotations

import time
from enum import StrEnum, auto
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

if TYPE_CHECKING:
    from collections.abc import Iterable


class JobStatus(StrEnum):
    """Lifecycle of a conversion job.

    `completed` and `failed` are terminal: once reached, the record no longer changes.
    """

    PENDING = auto()
    PROCESSING = auto()
    COMPLETED = auto()
    FAILED = auto()


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class RenderKind(StrEnum):
    """Outcome of rendering one file into the document."""

    TEXT = auto()
    BINARY = auto()
    ERROR = auto()


EXCLUSION_PRESETS: dict[str, dict[str, list[str]]] = {
    "vendor": {"folders": ["node_modules", ".git", "dist", "build", ".next"]},
    "binaries": {"extensions": [".exe", ".dll", ".so", ".bin"]},
    "images": {"extensions": [".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico"]},
    "media": {"extensions": [".mp4", ".mp3", ".mov", ".avi"]},
    "archives": {"extensions": [".zip", ".tar", ".gz", ".rar"]},
}


def normalize_extension(ext: str) -> str:
    """Lower-case an extension and make sure it starts with a dot.

    Args:
        ext (str): the raw extension, e.g. "PNG", ".Png" or ".png"

    Returns:
        str: the normalized extension, or "" for blank input
    """
    e = (ext or "").strip().lower()
    if not e:
        return ""
    return e if e.startswith(".") else f".{e}"


class ExclusionRules(BaseModel):
    """Folder-segment and extension rules applied to every path of a job.

    Attributes:
        folders: exact path segments; a path containing any of them is excluded.
        extensions: exact lower-cased extensions (with the leading dot).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    folders: frozenset[str] = Field(default_factory=frozenset, description="Excluded folder names")
    extensions: frozenset[str] = Field(default_factory=frozenset, description="Excluded extensions")

    @field_validator("folders", mode="before")
    @classmethod
    def _strip_folders(cls, value: Iterable[str] | None) -> frozenset[str]:
        return frozenset(s.strip().strip("/") for s in (value or []) if s and s.strip().strip("/"))

    @field_validator("extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Iterable[str] | None) -> frozenset[str]:
        return frozenset(e for e in (normalize_extension(v) for v in (value or [])) if e)

    @classmethod
    def from_presets(
        cls,
        presets: Iterable[str] = (),
        *,
        folders: Iterable[str] = (),
        extensions: Iterable[str] = (),
    ) -> ExclusionRules:
        """Merge named presets with explicit folders and extensions.

        Args:
            presets (Iterable[str]): names from `EXCLUSION_PRESETS`
            folders (Iterable[str]): extra folder names
            extensions (Iterable[str]): extra extensions

        Raises:
            ValueError: if a preset name is unknown

        Returns:
            ExclusionRules: the merged rule set
        """
        all_folders = list(folders)
        all_extensions = list(extensions)
        for name in presets:
            key = name.strip().lower()
            if key not in EXCLUSION_PRESETS:
                msg = f"Unknown exclusion preset: {name!r}"
                raise ValueError(msg)
            all_folders.extend(EXCLUSION_PRESETS[key].get("folders", []))
            all_extensions.extend(EXCLUSION_PRESETS[key].get("extensions", []))
        return cls(folders=all_folders, extensions=all_extensions)


class FileEntry(BaseModel):
    """One eligible file found in an extracted archive.

    Attributes:
        path: Absolute path to the file on disk.
        rel: Path relative to the extraction root, with forward slashes.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Absolute file path")
    rel: str = Field(..., description="File path relative to the extraction root")

    @computed_field
    @property
    def extension(self) -> str:
        """Lower-cased extension of the file name, "" when there is none."""
        return Path(self.rel).suffix.lower()

    @computed_field
    @property
    def name(self) -> str:
        """Final segment of the relative path."""
        return self.rel.rsplit("/", 1)[-1]


class TocEntry(BaseModel):
    """One row of the generated index."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., description="Relative path shown in the index")
    dest: str = Field(..., description="Named destination of the file's first page")
    page: int = Field(..., ge=1, description="1-based page number of the file's first page")


class IndexReservation(BaseModel):
    """Pages set aside for the index before any content page exists."""

    model_config = ConfigDict(frozen=True)

    first_page: int = Field(..., ge=1)
    count: int = Field(..., ge=1)

    @property
    def last_page(self) -> int:
        return self.first_page + self.count - 1


class RenderResult(BaseModel):
    """What happened when a single file was rendered."""

    model_config = ConfigDict(frozen=True)

    kind: RenderKind
    lines: int = 0
    pages: int = Field(default=1, ge=1, description="Pages spanned by the file, first page included")
    detail: str = ""


class Job(BaseModel):
    """Mutable-by-copy status record of one conversion."""

    model_config = ConfigDict(frozen=True)

    id: str
    status: JobStatus = JobStatus.PENDING
    percent: int = Field(default=0, ge=0, le=100)
    message: str = "Initializing..."
    download_url: str | None = None
    error: str | None = None
    created_at: float = Field(default_factory=time.time)
    finished_at: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class PageGeometry(BaseModel):
    """Fixed page layout, in PDF points, measured from the top-left corner."""

    model_config = ConfigDict(frozen=True)

    width: float = 612.0
    height: float = 792.0
    margin: float = 40.0
    bottom_margin: float = 50.0

    header_height: float = 25.0
    header_gap: float = 10.0
    header_font_size: float = 12.0

    code_font: str = "Courier"
    code_font_size: float = 9.0
    code_leading: float = 11.0
    min_row_height: float = 12.0
    gutter_width: float = 35.0
    text_x: float = 85.0
    text_width: float = 480.0
    tab_size: int = 4

    index_top: float = 50.0
    index_title_height: float = 40.0
    index_bottom: float = 700.0
    index_row_height: float = 14.0
    index_font_size: float = 10.0

    @property
    def content_bottom(self) -> float:
        """Lowest y a content row may reach."""
        return self.height - self.bottom_margin
