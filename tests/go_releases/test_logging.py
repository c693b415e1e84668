"""Tests for structured logging helpers."""

from __future__ import annotations

import json
import logging

from GoReleases import logging_utils
from GoReleases.logging_utils import JSONFormatter, generate_correlation_id, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "GoReleases.fetch", logging.INFO, __file__, 10, "fetch %s", ("complete",), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields():
    payload = json.loads(
        JSONFormatter().format(_record(stage="verify", correlation_id="abc123", bytes=42))
    )

    assert payload["message"] == "fetch complete"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "GoReleases.fetch"
    assert payload["stage"] == "verify"
    assert payload["correlation_id"] == "abc123"
    assert payload["bytes"] == 42
    assert payload["timestamp"].endswith("Z")
    assert "args" not in payload


def test_json_formatter_renders_unserialisable_values():
    payload = json.loads(JSONFormatter().format(_record(root=object())))

    assert payload["root"].startswith("<object object")


def test_correlation_ids_are_short_and_unique():
    first, second = generate_correlation_id(), generate_correlation_id()

    assert len(first) == 12
    assert first != second


def test_setup_logging_writes_json_lines(tmp_path):
    logger = setup_logging(level="DEBUG", log_dir=tmp_path)
    logging.getLogger("GoReleases.fetch").info("fetch started", extra={"stage": "download"})
    for handler in logger.handlers:
        handler.flush()

    files = list(tmp_path.glob("goreleases-*.jsonl"))
    assert len(files) == 1
    lines = [json.loads(line) for line in files[0].read_text().splitlines()]
    assert lines[-1]["message"] == "fetch started"
    assert lines[-1]["stage"] == "download"


def test_setup_logging_replaces_its_own_handlers(tmp_path):
    setup_logging(level="INFO", log_dir=tmp_path)
    logger = setup_logging(level="WARNING", log_dir=tmp_path)

    managed = [h for h in logger.handlers if getattr(h, "_goreleases_managed", False)]
    assert len(managed) == 2
    assert logger.level == logging.WARNING
    assert logger.propagate is False


def test_file_logging_defaults_to_user_log_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_utils, "default_log_dir", lambda: tmp_path / "logs")

    setup_logging(file_logging=True)

    assert (tmp_path / "logs").is_dir()
