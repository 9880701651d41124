from __future__ import annotations

from pathlib import Path

from dotenv import find_dotenv
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from zipbook.config import PageGeometry

ENV_FILE = find_dotenv(usecwd=True)


class Settings(BaseSettings):
    """Configuration settings for the zipbook service and CLI.

    Values come from keyword arguments, then `ZIPBOOK_*` environment variables,
    then the nearest `.env` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="ZIPBOOK_",
        env_file=ENV_FILE or None,
        extra="ignore",
        arbitrary_types_allowed=True,
    )

    data_dir: Path = Field(default_factory=lambda: Path.cwd() / "var", description="Working data root.")
    log_file: str = Field(default="", description="Log file path, stderr when empty.")
    host: str = Field(default="127.0.0.1", description="API bind address.")
    port: int = Field(default=3999, description="API port.")

    max_file_read_bytes: int = Field(default=100_000, gt=0, description="Bytes read per file.")
    binary_sniff_bytes: int = Field(default=1000, gt=0, description="Bytes inspected for null bytes.")
    index_entries_per_page: int = Field(default=35, gt=0, description="Index rows assumed per page.")

    progress_every: int = Field(default=5, gt=0, description="Files between progress updates.")
    progress_ceiling: int = Field(
        default=85,
        ge=0,
        le=100,
        description="Percent reached when all files are rendered.",
    )
    gc_every: int = Field(default=20, gt=0, description="Files between garbage collections.")

    job_retention_seconds: float = Field(default=600, description="Memory retention of finished jobs.")
    job_sweep_interval_seconds: float = Field(default=60, description="Job expiry sweep period.")
    cleanup_interval_seconds: float = Field(default=1800, description="Disk janitor period.")
    file_age_limit_seconds: float = Field(default=3600, description="Age after which files are deleted.")
    max_log_size_bytes: int = Field(default=1024 * 1024, description="Log file is truncated above this.")
    progress_poll_seconds: float = Field(default=0.5, gt=0, description="Progress event period.")
    download_timeout_seconds: float = Field(default=60, gt=0, description="Remote fetch timeout.")

    geometry: PageGeometry = Field(default_factory=PageGeometry, description="Page layout.")

    @computed_field
    @property
    def upload_dir(self) -> Path:
        """Where uploaded and downloaded archives are stored."""
        return self.data_dir / "uploads"

    @computed_field
    @property
    def scratch_dir(self) -> Path:
        """Parent of the per-job extraction directories."""
        return self.data_dir / "temp_extracted"

    @computed_field
    @property
    def output_dir(self) -> Path:
        """Where finished PDFs are written and served from."""
        return self.data_dir / "downloads"

    def ensure_dirs(self) -> None:
        """Create the working directories if they are missing."""
        for d in (self.upload_dir, self.scratch_dir, self.output_dir):
            d.mkdir(parents=True, exist_ok=True)
