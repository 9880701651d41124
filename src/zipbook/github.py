from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urlparse

import aiofiles
import httpx

from zipbook.exceptions import DownloadError, RepositoryNotFoundError
from zipbook.logging import logger

if TYPE_CHECKING:
    from pathlib import Path

CHUNK_SIZE = 64 * 1024


def repo_name(repo_url: str) -> str:
    """Extract the repository name from its URL.

    Args:
        repo_url (str): e.g. "https://github.com/owner/project.git"

    Returns:
        str: e.g. "project"
    """
    tail = repo_url.rstrip("/").rsplit("/", 1)[-1]
    return tail.removesuffix(".git")


def archive_url(repo_url: str) -> str:
    """URL of the ZIP snapshot of the repository's default branch."""
    base = repo_url.rstrip("/").removesuffix(".git")
    return f"{base}/archive/HEAD.zip"


def validate_repo_url(repo_url: str) -> None:
    parsed = urlparse(repo_url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc or not parsed.path.strip("/"):
        raise DownloadError(url=repo_url, message="Repository URL must be an http(s) URL to a repository.")


async def download_repo(
    repo_url: str,
    dest_dir: Path,
    job_id: str,
    *,
    timeout: float = 60.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[Path, str]:
    """Download the ZIP snapshot of a repository into `dest_dir`.

    Args:
        repo_url (str): the repository page URL
        dest_dir (Path): where the archive is written
        job_id (str): used to name the archive file
        timeout (float): network timeout in seconds
        transport (httpx.AsyncBaseTransport | None): custom transport, for tests

    Raises:
        RepositoryNotFoundError: if the server answers 404
        DownloadError: on any other HTTP or network failure

    Returns:
        tuple[Path, str]: the archive path and the repository name
    """
    validate_repo_url(repo_url)
    url = archive_url(repo_url)
    dest = dest_dir / f"github_{job_id}.zip"
    dest_dir.mkdir(parents=True, exist_ok=True)
    logger.info("download_started", url=url, job_id=job_id)

    try:
        async with (
            httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=transport) as client,
            client.stream("GET", url) as response,
        ):
            if response.status_code == httpx.codes.NOT_FOUND:
                raise RepositoryNotFoundError(url=url)
            response.raise_for_status()
            async with aiofiles.open(dest, "wb") as f:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    await f.write(chunk)
    except httpx.HTTPStatusError as e:
        dest.unlink(missing_ok=True)
        raise DownloadError(
            url=url,
            status_code=e.response.status_code,
            message=f"Download failed with HTTP {e.response.status_code}.",
        ) from e
    except httpx.HTTPError as e:
        dest.unlink(missing_ok=True)
        raise DownloadError(url=url, message=f"Download failed: {e.__class__.__name__}.") from e

    logger.info("download_finished", path=str(dest), bytes=dest.stat().st_size)
    return dest, repo_name(repo_url)
