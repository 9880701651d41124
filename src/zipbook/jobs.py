from __future__ import annotations

import asyncio
import json
import time
import uuid
from typing import TYPE_CHECKING, Any

from zipbook.config import Job, JobStatus
from zipbook.exceptions import JobNotFoundError
from zipbook.logging import logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


def new_job_id() -> str:
    return uuid.uuid4().hex


class JobStore:
    """In-memory registry of conversion jobs.

    Each job only ever touches its own key, so no lock is needed on the event loop;
    readers get immutable `Job` snapshots and the expiry sweep iterates over a copy
    of the keys, so inserts and deletes never disturb an ongoing read.
    """

    def __init__(self, retention_seconds: float = 600) -> None:
        self.retention_seconds = retention_seconds
        self._jobs: dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def create(self, job_id: str | None = None) -> Job:
        job = Job(id=job_id or new_job_id())
        self._jobs[job.id] = job
        logger.info("job_created", job_id=job.id)
        return job

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id=job_id)
        return job

    def update(self, job_id: str, **changes: Any) -> Job | None:  # noqa: ANN401
        """Apply partial changes to a job.

        Unknown ids are ignored (the job may have expired) and terminal jobs are
        never modified again.

        Returns:
            Job | None: the updated record, or None when nothing was changed
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None
        if job.is_terminal:
            logger.warning("job_update_ignored", job_id=job_id, status=str(job.status))
            return None
        updated = Job.model_validate({**job.model_dump(), **changes})
        self._jobs[job_id] = updated
        return updated

    def fail(self, job_id: str, reason: str) -> Job | None:
        logger.error("job_failed", job_id=job_id, reason=reason)
        return self.update(
            job_id,
            status=JobStatus.FAILED,
            message=f"Error: {reason}",
            error=reason,
            finished_at=time.time(),
        )

    def complete(self, job_id: str, download_url: str) -> Job | None:
        logger.info("job_completed", job_id=job_id, download_url=download_url)
        return self.update(
            job_id,
            status=JobStatus.COMPLETED,
            percent=100,
            message="Done!",
            download_url=download_url,
            finished_at=time.time(),
        )

    def sweep(self, now: float | None = None) -> list[str]:
        """Forget terminal jobs that finished more than `retention_seconds` ago.

        Returns:
            list[str]: the ids removed
        """
        now = time.time() if now is None else now
        expired = [
            job_id
            for job_id, job in list(self._jobs.items())
            if job.is_terminal and job.finished_at is not None and now - job.finished_at > self.retention_seconds
        ]
        for job_id in expired:
            self._jobs.pop(job_id, None)
        if expired:
            logger.info("jobs_expired", count=len(expired))
        return expired

    async def run_expiry(self, interval: float) -> None:
        """Sweep expired jobs forever, every `interval` seconds."""
        while True:
            await asyncio.sleep(interval)
            self.sweep()


def format_event(payload: dict[str, Any]) -> str:
    """Encode one server-sent event."""
    return f"data: {json.dumps(payload)}\n\n"


async def progress_events(store: JobStore, job_id: str, interval: float = 0.5) -> AsyncIterator[str]:
    """Yield the job record as server-sent events until it reaches a terminal state.

    An unknown (or expired) id yields a single not-found failure event.

    Args:
        store (JobStore): the job registry
        job_id (str): the job to follow
        interval (float): seconds between two events

    Yields:
        str: `data: {...}` events
    """
    while True:
        job = store.get(job_id)
        if job is None:
            yield format_event({"status": str(JobStatus.FAILED), "message": JobNotFoundError().message})
            return
        yield format_event(job.model_dump(mode="json"))
        if job.is_terminal:
            return
        await asyncio.sleep(interval)
