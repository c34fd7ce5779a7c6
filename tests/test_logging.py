"""Tests for nomacode.backend.logging.setup_logging."""

from __future__ import annotations

import logging

import pytest

from nomacode.backend.logging import setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def flush() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


class TestSetupLogging:
    def test_creates_log_files(self, tmp_path) -> None:
        setup_logging(tmp_path)
        assert (tmp_path / "logs" / "nomacode.log").exists()
        assert (tmp_path / "logs" / "error.log").exists()

    def test_project_records_only(self, tmp_path) -> None:
        setup_logging(tmp_path, {"level": "INFO"})
        logging.getLogger("nomacode.backend.test").info("session started")
        logging.getLogger("somelib").info("third party chatter")
        flush()

        text = (tmp_path / "logs" / "nomacode.log").read_text()
        assert "session started" in text
        assert "third party chatter" not in text

    def test_level_from_config(self, tmp_path) -> None:
        setup_logging(tmp_path, {"level": "WARNING"})
        logging.getLogger("nomacode.backend.test").info("quiet")
        logging.getLogger("nomacode.backend.test").warning("loud")
        flush()

        text = (tmp_path / "logs" / "nomacode.log").read_text()
        assert "quiet" not in text
        assert "loud" in text

    def test_errors_from_every_module(self, tmp_path) -> None:
        setup_logging(tmp_path)
        logging.getLogger("somelib").error("library failure")
        flush()
        assert "library failure" in (tmp_path / "logs" / "error.log").read_text()

    def test_unknown_level_falls_back(self, tmp_path) -> None:
        setup_logging(tmp_path, {"level": "chatty"})
        logging.getLogger("nomacode.backend.test").info("default level")
        flush()
        assert "default level" in (tmp_path / "logs" / "nomacode.log").read_text()

    def test_access_log_capped(self, tmp_path) -> None:
        setup_logging(tmp_path, {"level": "DEBUG"})
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
