from __future__ import annotations

import asyncio
import gc
import os
import zipfile
from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING

from zipbook.config import JobStatus, RenderKind
from zipbook.document import Document
from zipbook.exceptions import ArchiveExtractionError, OutputWriteError, ZipbookError
from zipbook.file_manipulation import read_file_capped, sanitize_name, scan_directory
from zipbook.janitor import clean_job
from zipbook.logging import logger
from zipbook.output_construction import (
    add_cover_page,
    backfill_index,
    render_error,
    render_file,
    reserve_index,
    start_file_section,
)

if TYPE_CHECKING:
    from zipbook.config import ExclusionRules, FileEntry, TocEntry
    from zipbook.jobs import JobStore
    from zipbook.settings import Settings


def extract_archive(archive_path: Path, dest: Path) -> None:
    """Extract a ZIP archive into `dest`.

    Member names are made safe by `zipfile` itself: absolute paths and `..`
    segments never leave `dest`.

    Raises:
        ArchiveExtractionError: if the archive is missing, corrupt or not a ZIP file
    """
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with zipfile.ZipFile(archive_path) as zf:
            zf.extractall(dest)
    except zipfile.BadZipFile as e:
        raise ArchiveExtractionError(archive=archive_path) from e
    except OSError as e:
        raise ArchiveExtractionError(archive=archive_path, message=f"Could not extract archive: {e}") from e


def output_name(name: str, job_id: str) -> str:
    """Name of the PDF produced by a job, e.g. `my_project_1a2b3c4d.pdf`."""
    return f"{sanitize_name(name)}_{job_id[:8]}.pdf"


def describe_error(error: BaseException) -> str:
    """Turn an exception into a one-line message suitable for the job record."""
    if isinstance(error, ZipbookError):
        return error.message
    text = str(error)
    return f"{error.__class__.__name__}: {text}" if text else error.__class__.__name__


class ArchiveEngine:
    """Turn an archive into a paginated PDF, reporting progress to a job store.

    One `process` call is one job. Blocking steps (extraction, serialisation,
    directory removal) run in worker threads and the render loop yields to the
    event loop between batches, so many jobs can share one loop.
    """

    def __init__(self, settings: Settings, store: JobStore, output_dir: Path | None = None) -> None:
        self.settings = settings
        self.store = store
        self.output_dir = output_dir or settings.output_dir

    async def process(
        self,
        job_id: str,
        archive_path: Path,
        rules: ExclusionRules,
        name: str,
        *,
        keep_archive: bool = False,
    ) -> Path | None:
        """Run one conversion job to completion.

        Never raises except on cancellation: failures end in the job's `failed`
        state, and a cancelled job is marked `failed` before the cancellation
        propagates. The scratch directory and (unless `keep_archive`) the archive
        are removed whatever happens.

        Args:
            job_id (str): the job, already created in the store
            archive_path (Path): the uploaded or downloaded ZIP file
            rules (ExclusionRules): folders and extensions to leave out
            name (str): project name, used for the cover and the output file
            keep_archive (bool): leave `archive_path` in place (local files given to the CLI)

        Returns:
            Path | None: the written PDF, or None if the job failed
        """
        s = self.settings
        scratch = s.scratch_dir / job_id
        self.store.update(job_id, status=JobStatus.PROCESSING, percent=0, message="Extracting...")
        try:
            await asyncio.to_thread(extract_archive, archive_path, scratch)

            self.store.update(job_id, message="Scanning...")
            files = await asyncio.to_thread(scan_directory, scratch, rules)
            logger.info("scan_done", job_id=job_id, files=len(files))

            doc = Document(s.geometry, title=name)
            add_cover_page(doc, name, len(files))
            reservation = reserve_index(doc, len(files), s.index_entries_per_page)
            entries = await self._render_files(job_id, doc, files)

            self.store.update(job_id, message="Indexing...")
            backfill_index(doc, entries, reservation)

            target = self.output_dir / output_name(name, job_id)
            await asyncio.to_thread(self._write, doc, target)
        except asyncio.CancelledError:
            self.store.fail(job_id, "Job was cancelled.")
            raise
        except Exception as e:  # noqa: BLE001
            logger.exception("job_error", job_id=job_id)
            self.store.fail(job_id, describe_error(e))
            return None
        finally:
            await clean_job(scratch, None if keep_archive else archive_path)

        self.store.complete(job_id, f"/downloads/{target.name}")
        return target

    async def _render_files(self, job_id: str, doc: Document, files: list[FileEntry]) -> list[TocEntry]:
        s = self.settings
        entries: list[TocEntry] = []
        total = len(files)
        outcomes: Counter[RenderKind] = Counter()
        pages = 0
        for i, entry in enumerate(files):
            entries.append(start_file_section(doc, entry, i))
            try:
                data = await read_file_capped(entry.path, s.max_file_read_bytes)
            except OSError as e:
                logger.warning("file_read_failed", job_id=job_id, path=entry.rel, error=str(e))
                result = render_error(doc, e.strerror or str(e))
            else:
                result = render_file(doc, entry, data, sniff_bytes=s.binary_sniff_bytes)
            outcomes[result.kind] += 1
            pages += result.pages

            if i % s.progress_every == 0:
                self.store.update(
                    job_id,
                    percent=(i * s.progress_ceiling) // total,
                    message=f"Processing: {entry.name}",
                )
                await asyncio.sleep(0)
            if (i + 1) % s.gc_every == 0:
                gc.collect()
        logger.info(
            "render_done",
            job_id=job_id,
            rendered=outcomes[RenderKind.TEXT],
            binary=outcomes[RenderKind.BINARY],
            errors=outcomes[RenderKind.ERROR],
            content_pages=pages,
        )
        return entries

    @staticmethod
    def _write(doc: Document, target: Path) -> None:
        """Save the document next to `target`, then move it into place atomically."""
        partial = target.with_name(target.name + ".part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            doc.save(partial)
            os.replace(partial, target)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise OutputWriteError(target=target, message=f"Could not write {target.name}: {e}") from e
        logger.info("pdf_written", path=str(target), pages=doc.page_count)


async def run_job(
    settings: Settings,
    store: JobStore,
    archive_path: Path,
    rules: ExclusionRules,
    name: str | None = None,
    output_dir: Path | None = None,
) -> tuple[str, Path | None]:
    """Create a job for a local archive and process it, for one-shot callers like the CLI.

    Returns:
        tuple[str, Path | None]: the job id and the written PDF (None on failure)
    """
    job = store.create()
    project = name or Path(archive_path).stem
    engine = ArchiveEngine(settings, store, output_dir)
    result = await engine.process(job.id, Path(archive_path), rules, project, keep_archive=True)
    return job.id, result
