from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiofiles
from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, UploadFile, status
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from zipbook import __version__
from zipbook.engine import ArchiveEngine
from zipbook.exceptions import DownloadError, InvalidRulesError, JobNotFoundError
from zipbook.file_manipulation import parse_rules, parse_rules_json
from zipbook.github import download_repo
from zipbook.janitor import DiskJanitor
from zipbook.jobs import JobStore, new_job_id, progress_events
from zipbook.logging import logger, setup_logging
from zipbook.settings import Settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from zipbook.config import ExclusionRules

UPLOAD_CHUNK_SIZE = 1024 * 1024


class GithubRequest(BaseModel):
    """Body of `POST /convert/github`."""

    model_config = ConfigDict(populate_by_name=True)

    repo_url: str | None = Field(default=None, alias="repoUrl", description="Repository page URL")
    exclusions: dict[str, Any] | None = Field(default=None, description="Folders, extensions and presets")


async def save_upload(upload: UploadFile, dest: Path) -> None:
    """Stream an uploaded file to disk."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(dest, "wb") as f:
        while chunk := await upload.read(UPLOAD_CHUNK_SIZE):
            await f.write(chunk)


async def convert_github(app: FastAPI, job_id: str, repo_url: str, rules: ExclusionRules) -> None:
    """Fetch a repository snapshot, then run the usual conversion on it."""
    settings: Settings = app.state.settings
    store: JobStore = app.state.jobs
    store.update(job_id, message="Downloading repository...")
    try:
        archive, name = await download_repo(
            repo_url,
            settings.upload_dir,
            job_id,
            timeout=settings.download_timeout_seconds,
            transport=app.state.http_transport,
        )
    except DownloadError as e:
        store.fail(job_id, e.message)
        return
    except OSError as e:
        store.fail(job_id, f"Could not save the repository archive: {e}")
        return
    await app.state.engine.process(job_id, archive, rules, name)


async def _stop(task: asyncio.Task[None]) -> None:
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the job expiry sweep and the disk janitor, stop them on shutdown."""
    settings: Settings = app.state.settings
    setup_logging(settings.log_file or None)
    settings.ensure_dirs()
    janitor = DiskJanitor.from_settings(settings)
    tasks = [
        asyncio.create_task(janitor.run_forever(settings.cleanup_interval_seconds)),
        asyncio.create_task(app.state.jobs.run_expiry(settings.job_sweep_interval_seconds)),
    ]
    logger.info("service_started", data_dir=str(settings.data_dir), version=__version__)

    yield

    for task in tasks:
        await _stop(task)
    logger.info("service_stopped")


def create_app(settings: Settings | None = None, *, http_transport: Any = None) -> FastAPI:  # noqa: ANN401
    """Build the HTTP application.

    Args:
        settings (Settings | None): configuration, read from the environment when None
        http_transport: optional httpx transport used for repository downloads (tests)

    Returns:
        FastAPI: the application, with its job store on `app.state.jobs`
    """
    settings = settings or Settings()
    settings.ensure_dirs()

    app = FastAPI(title="zipbook", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.jobs = JobStore(retention_seconds=settings.job_retention_seconds)
    app.state.engine = ArchiveEngine(settings, app.state.jobs)
    app.state.http_transport = http_transport

    @app.post("/convert")
    async def convert(
        background_tasks: BackgroundTasks,
        zipfile: UploadFile | None = File(default=None),  # noqa: B008
        exclusions: str | None = Form(default=None),
    ) -> dict[str, str]:
        """Accept an uploaded ZIP and start converting it."""
        if zipfile is None or not zipfile.filename:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")
        try:
            rules = parse_rules_json(exclusions)
        except InvalidRulesError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e

        job_id = new_job_id()
        archive = settings.upload_dir / f"{job_id}.zip"
        try:
            await save_upload(zipfile, archive)
        except OSError as e:
            archive.unlink(missing_ok=True)
            logger.error("upload_save_failed", job_id=job_id, error=str(e))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Could not store the uploaded archive",
            ) from e
        app.state.jobs.create(job_id)
        name = Path(zipfile.filename).stem
        background_tasks.add_task(app.state.engine.process, job_id, archive, rules, name)
        logger.info("upload_accepted", job_id=job_id, filename=zipfile.filename)
        return {"jobId": job_id}

    @app.post("/convert/github")
    async def convert_from_github(body: GithubRequest, background_tasks: BackgroundTasks) -> dict[str, str]:
        """Start converting a repository snapshot fetched from its URL."""
        if not body.repo_url or not body.repo_url.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="URL required")
        try:
            rules = parse_rules(body.exclusions)
        except InvalidRulesError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e

        job = app.state.jobs.create()
        background_tasks.add_task(convert_github, app, job.id, body.repo_url.strip(), rules)
        return {"jobId": job.id}

    @app.get("/progress/{job_id}")
    async def progress(job_id: str) -> StreamingResponse:
        """Stream the job record as server-sent events until it is finished."""
        return StreamingResponse(
            progress_events(app.state.jobs, job_id, settings.progress_poll_seconds),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @app.get("/jobs/{job_id}")
    async def job_status(job_id: str) -> dict[str, Any]:
        try:
            job = app.state.jobs.require(job_id)
        except JobNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message) from e
        return job.model_dump(mode="json")

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.mount("/downloads", StaticFiles(directory=settings.output_dir), name="downloads")
    return app
