from __future__ import annotations

import asyncio
import shutil
import time
from pathlib import Path
from typing import TYPE_CHECKING

from zipbook.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from zipbook.settings import Settings


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)


async def clean_job(scratch_dir: Path, archive_path: Path | None) -> None:
    """Remove one job's extraction directory and uploaded archive.

    Failures are logged, never raised: this runs in the engine's `finally` block and
    the periodic janitor catches whatever is left behind.
    """
    for target in (scratch_dir, archive_path):
        if target is None or not target.exists():
            continue
        try:
            await asyncio.to_thread(_remove, target)
        except OSError as e:
            logger.error("cleanup_failed", path=str(target), error=str(e))
    logger.info("cleanup_done", scratch_dir=str(scratch_dir))


class DiskJanitor:
    """Periodically delete stale uploads, scratch directories and PDFs.

    This is a safety net independent of job outcome: anything older than
    `file_age_limit_seconds` in the watched folders goes, and the log file is
    truncated once it grows past `max_log_size_bytes`.
    """

    def __init__(
        self,
        folders: Sequence[Path],
        *,
        max_age_seconds: float = 3600,
        log_file: Path | None = None,
        max_log_size_bytes: int = 1024 * 1024,
    ) -> None:
        self.folders = list(folders)
        self.max_age_seconds = max_age_seconds
        self.log_file = log_file
        self.max_log_size_bytes = max_log_size_bytes

    @classmethod
    def from_settings(cls, settings: Settings) -> DiskJanitor:
        return cls(
            [settings.upload_dir, settings.scratch_dir, settings.output_dir],
            max_age_seconds=settings.file_age_limit_seconds,
            log_file=Path(settings.log_file) if settings.log_file else None,
            max_log_size_bytes=settings.max_log_size_bytes,
        )

    async def run_maintenance(self, now: float | None = None) -> list[Path]:
        """Run one maintenance pass.

        Args:
            now (float | None): reference time, defaults to the current time

        Returns:
            list[Path]: the entries deleted
        """
        now = time.time() if now is None else now
        logger.info("maintenance_scan", folders=[str(f) for f in self.folders])
        deleted: list[Path] = []
        for folder in self.folders:
            if not folder.exists():
                continue
            try:
                entries = sorted(folder.iterdir())
            except OSError as e:
                logger.error("maintenance_failed", folder=str(folder), error=str(e))
                continue
            for entry in entries:
                try:
                    age = now - entry.lstat().st_mtime
                    if age > self.max_age_seconds:
                        await asyncio.to_thread(_remove, entry)
                        deleted.append(entry)
                        logger.info("maintenance_deleted", path=str(entry))
                except OSError as e:
                    logger.error("maintenance_failed", path=str(entry), error=str(e))
        try:
            self.trim_log()
        except OSError as e:
            logger.error("log_trim_failed", path=str(self.log_file), error=str(e))
        return deleted

    def trim_log(self) -> bool:
        """Truncate the log file when it is larger than the limit.

        Returns:
            bool: True if the file was truncated
        """
        if self.log_file is None or not self.log_file.exists():
            return False
        if self.log_file.stat().st_size <= self.max_log_size_bytes:
            return False
        with self.log_file.open("r+b") as f:
            f.truncate(0)
        logger.info("log_truncated", path=str(self.log_file))
        return True

    async def run_forever(self, interval: float) -> None:
        """Run maintenance every `interval` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            await self.run_maintenance()
