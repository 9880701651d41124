from dataclasses import dataclass
from pathlib import Path


@dataclass(eq=False)
class ZipbookError(Exception):
    """Base exception for errors in the zipbook package."""

    message: str = "zipbook failed."

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class ArchiveExtractionError(ZipbookError):
    """Raised when an uploaded archive cannot be opened or extracted."""

    archive: Path | None = None
    message: str = "Archive is corrupt or not a ZIP file."


@dataclass(eq=False)
class OutputWriteError(ZipbookError):
    """Raised when the finished document cannot be written to the output store."""

    target: Path | None = None
    message: str = "Could not write the PDF document."


@dataclass(eq=False)
class DownloadError(ZipbookError):
    """Raised when a remote archive cannot be fetched."""

    url: str = ""
    status_code: int | None = None
    message: str = "Could not download the repository archive."


@dataclass(eq=False)
class RepositoryNotFoundError(DownloadError):
    """Raised when the remote repository does not exist or is private."""

    status_code: int | None = 404
    message: str = "Repository not found or private. Check URL."


@dataclass(eq=False)
class JobNotFoundError(ZipbookError):
    """Raised when a job id is unknown to the job store."""

    job_id: str = ""
    message: str = "Job Not Found"


@dataclass(eq=False)
class InvalidRulesError(ZipbookError):
    """Raised when exclusion rules cannot be parsed."""

    source: str = ""
    message: str = "Exclusion rules are not valid."
