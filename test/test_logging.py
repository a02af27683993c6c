import json
import logging

from shopsync.logging_config import JsonFormatter, setup_logging


def test_json_formatter_emits_one_object_per_record():
    record = logging.LogRecord("shopsync.sync", logging.WARNING, __file__, 1, "push_failed local_id=%s", (3,), None)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["logger"] == "shopsync.sync"
    assert payload["level"] == "WARNING"
    assert payload["message"] == "push_failed local_id=3"
    assert "exception" not in payload


def test_setup_logging_creates_log_dir_and_leaves_existing_handlers(tmp_path, monkeypatch):
    root = logging.getLogger()
    existing = logging.NullHandler()
    monkeypatch.setattr(root, "handlers", [existing])
    monkeypatch.setattr(root, "level", root.level)

    setup_logging(tmp_path / "logs", console=True)

    assert (tmp_path / "logs").is_dir()
    assert root.handlers == [existing]
