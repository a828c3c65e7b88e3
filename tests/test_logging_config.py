"""Tests for draftsync.logging_config module."""

import logging

import pytest

from draftsync.config import get_settings
from draftsync.logging_config import (
    log_autosave,
    log_discard,
    log_draft_event,
    log_recover,
    log_resolve,
    setup_draftsync_logging,
)


@pytest.fixture(autouse=True)
def clean_draftsync_logger():
    """Remove all handlers from the draftsync logger before/after each test."""
    logger = logging.getLogger("draftsync")
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
    yield
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def log_dir(draftsync_home):
    """Logs land under the temp DRAFTSYNC_DATA_DIR set by conftest."""
    return draftsync_home / "logs"


def _console_handlers(logger):
    return [
        h
        for h in logger.handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]


def _read_events(log_dir):
    event_files = list(log_dir.glob("draft-events-*.log"))
    assert len(event_files) == 1
    return event_files[0].read_text()


class TestSetupDraftsyncLogging:
    """Tests for setup_draftsync_logging."""

    def test_returns_draftsync_logger(self, log_dir):
        logger = setup_draftsync_logging(session_id="tab-1")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "draftsync"

    def test_creates_log_directory(self, log_dir):
        assert not log_dir.exists()
        setup_draftsync_logging(session_id="tab-1")
        assert log_dir.exists()

    def test_log_file_named_with_date(self, log_dir):
        setup_draftsync_logging(session_id="tab-1")
        log_files = list(log_dir.glob("local-*.log"))
        assert len(log_files) == 1
        assert log_files[0].name.endswith(".log")

    def test_default_level_info(self, log_dir):
        assert setup_draftsync_logging().level == logging.INFO

    def test_level_case_insensitive(self, log_dir):
        assert setup_draftsync_logging(level="debug").level == logging.DEBUG

    def test_invalid_level_falls_back_to_info(self, log_dir):
        assert setup_draftsync_logging(level="LOUD").level == logging.INFO

    def test_debug_adds_console_handler(self, log_dir):
        logger = setup_draftsync_logging(level="DEBUG")
        assert len(_console_handlers(logger)) == 1

    def test_info_has_no_console_handler(self, log_dir):
        logger = setup_draftsync_logging(level="INFO")
        assert _console_handlers(logger) == []

    def test_no_duplicate_handlers(self, log_dir):
        first = setup_draftsync_logging(level="DEBUG")
        second = setup_draftsync_logging(level="DEBUG")
        assert first is second
        assert len([h for h in first.handlers if isinstance(h, logging.FileHandler)]) == 1
        assert len(_console_handlers(first)) == 1

    def test_level_defaults_to_settings(self, log_dir, monkeypatch):
        monkeypatch.setenv("DRAFTSYNC_LOG_LEVEL", "debug")
        get_settings.cache_clear()

        logger = setup_draftsync_logging()

        assert logger.level == logging.DEBUG
        assert len(_console_handlers(logger)) == 1

    def test_explicit_level_overrides_settings(self, log_dir, monkeypatch):
        monkeypatch.setenv("DRAFTSYNC_LOG_LEVEL", "DEBUG")
        get_settings.cache_clear()

        assert setup_draftsync_logging(level="WARNING").level == logging.WARNING

    def test_explicit_data_dir(self, log_dir, tmp_path):
        setup_draftsync_logging(data_dir=tmp_path / "custom")

        assert list((tmp_path / "custom" / "logs").glob("local-*.log"))
        assert not log_dir.exists()

    def test_data_dir_from_dotenv_settings(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DRAFTSYNC_DATA_DIR")
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text(f"DRAFTSYNC_DATA_DIR={tmp_path / 'from-dotenv'}\n")
        get_settings.cache_clear()

        setup_draftsync_logging()

        assert list((tmp_path / "from-dotenv" / "logs").glob("local-*.log"))

    def test_child_loggers_write_to_file(self, log_dir):
        logger = setup_draftsync_logging(level="INFO")
        logging.getLogger("draftsync.autosave").info("format check")
        for h in logger.handlers:
            h.flush()

        content = next(log_dir.glob("local-*.log")).read_text()
        assert " | INFO | draftsync.autosave | format check" in content


class TestLogDraftEvent:
    """Tests for log_draft_event and its wrappers."""

    def test_event_line_format(self, log_dir):
        log_draft_event("resolve", "record=p1, decision=local_stale", session_id="tab-1")
        content = _read_events(log_dir)
        assert " | resolve | session=tab-1 | record=p1, decision=local_stale" in content

    def test_events_append(self, log_dir):
        log_draft_event("autosave", "first")
        log_draft_event("autosave", "second")
        lines = _read_events(log_dir).strip().splitlines()
        assert len(lines) == 2
        assert lines[1].endswith("second")

    def test_explicit_data_dir(self, log_dir, tmp_path):
        log_draft_event("discard", "record=p1", data_dir=tmp_path / "custom")

        assert (tmp_path / "custom" / "logs").exists()
        assert "record=p1" in _read_events(tmp_path / "custom" / "logs")
        assert not log_dir.exists()

    def test_wrappers_pass_data_dir(self, tmp_path):
        log_autosave("tab-1", "p1", 1, data_dir=tmp_path / "custom")
        assert "status=ok" in _read_events(tmp_path / "custom" / "logs")

    def test_write_failure_is_ignored(self, draftsync_home):
        # A file where the logs directory should be makes every write fail
        draftsync_home.mkdir(parents=True)
        (draftsync_home / "logs").write_text("not a directory")

        log_draft_event("autosave", "details")

    def test_log_autosave(self, log_dir):
        log_autosave("tab-1", "p1", 3)
        log_autosave("tab-1", "p1", 3, ok=False)
        content = _read_events(log_dir)
        assert "record=p1, fields=3, status=ok" in content
        assert "record=p1, fields=3, status=failed" in content

    def test_log_resolve(self, log_dir):
        log_resolve("tab-1", "p1", "local_divergent")
        assert "| resolve | session=tab-1 | record=p1, decision=local_divergent" in _read_events(
            log_dir
        )

    def test_log_recover_lists_fields(self, log_dir):
        log_recover("tab-1", "p1", ("biography", "name"))
        assert "record=p1, fields=biography,name" in _read_events(log_dir)

    def test_log_recover_without_changes(self, log_dir):
        log_recover("tab-1", "p1", ())
        assert "record=p1, fields=-" in _read_events(log_dir)

    def test_log_discard(self, log_dir):
        log_discard("tab-1", "p1")
        assert "| discard | session=tab-1 | record=p1" in _read_events(log_dir)
