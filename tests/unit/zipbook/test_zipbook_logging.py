import json
import logging
from pathlib import Path

import pytest

from zipbook.logging import setup_logging


@pytest.mark.unit
def test_setup_logging_writes_json_lines(tmp_path: Path) -> None:
    log_file = tmp_path / "zipbook.log"

    log = setup_logging(log_file, force=True)
    log.info("job_created", job_id="abc")
    logging.getLogger().handlers[0].flush()

    record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert record["event"] == "job_created"
    assert record["job_id"] == "abc"
    assert record["level"] == "info"
    assert "timestamp" in record
    setup_logging(force=True)


@pytest.mark.unit
def test_setup_logging_first_call_wins(tmp_path: Path) -> None:
    setup_logging(tmp_path / "first.log", force=True)
    setup_logging(tmp_path / "second.log")

    handler = logging.getLogger().handlers[0]

    assert isinstance(handler, logging.FileHandler)
    assert Path(handler.baseFilename).name == "first.log"
    setup_logging(force=True)
