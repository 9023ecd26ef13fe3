"""Tests for logging setup."""

from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest
from rich.logging import RichHandler

from bsp_client import logging as bsp_logging
from bsp_client.config import LoggingConfig
from bsp_client.logging import (
    LOG_FILE_ENV,
    TRACE,
    VERBOSE,
    get_logger,
    resolve_level,
    setup_logging,
)


class _Stderr(io.StringIO):
    def __init__(self, tty: bool) -> None:
        super().__init__()
        self._tty = tty

    def isatty(self) -> bool:
        return self._tty


@pytest.fixture
def clean_logger(monkeypatch):
    """Leave the bsp_client logger as the test found it."""
    monkeypatch.delenv(LOG_FILE_ENV, raising=False)
    level = bsp_logging.logger.level
    yield bsp_logging.logger
    if bsp_logging._handler is not None:
        bsp_logging.logger.removeHandler(bsp_logging._handler)
        bsp_logging._handler.close()
        bsp_logging._handler = None
    bsp_logging.logger.setLevel(level)


class TestResolveLevel:
    def test_default_is_info(self) -> None:
        assert resolve_level(None) == logging.INFO
        assert resolve_level(LoggingConfig()) == logging.INFO

    def test_level_name(self) -> None:
        assert resolve_level(LoggingConfig(level="warn")) == logging.WARNING
        assert resolve_level(LoggingConfig(level="trace")) == TRACE
        assert resolve_level(LoggingConfig(level="bogus")) == logging.INFO

    def test_verbose_overrides_level(self) -> None:
        assert resolve_level(LoggingConfig(level="ERROR", verbose=3)) == VERBOSE
        assert resolve_level(LoggingConfig(verbose=0)) == logging.ERROR
        assert resolve_level(LoggingConfig(verbose=9)) == TRACE


class TestSetupLogging:
    """Where setup_logging sends bsp_client output."""

    def test_config_file(self, clean_logger, tmp_path: Path) -> None:
        path = tmp_path / "client.log"

        handler = setup_logging(LoggingConfig(file=str(path)))
        get_logger("engine").warning("server went quiet")
        handler.flush()

        assert isinstance(handler, logging.FileHandler)
        assert "warning bsp_client.engine: server went quiet" in path.read_text("utf-8")

    def test_environment_file(self, clean_logger, tmp_path: Path, monkeypatch) -> None:
        path = tmp_path / "env.log"
        monkeypatch.setenv(LOG_FILE_ENV, str(path))

        handler = setup_logging(LoggingConfig())
        get_logger().info("from env")
        handler.flush()

        assert "info bsp_client: from env" in path.read_text("utf-8")

    def test_config_file_beats_environment(self, clean_logger, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv(LOG_FILE_ENV, str(tmp_path / "env.log"))

        handler = setup_logging(LoggingConfig(file=str(tmp_path / "config.log")))

        assert Path(handler.baseFilename) == tmp_path / "config.log"

    def test_stderr_only_on_terminal(self, clean_logger, monkeypatch) -> None:
        monkeypatch.setattr("sys.stderr", _Stderr(tty=False))
        assert setup_logging(LoggingConfig()) is None
        assert clean_logger.handlers == []

        monkeypatch.setattr("sys.stderr", _Stderr(tty=True))
        assert isinstance(setup_logging(LoggingConfig()), RichHandler)

    def test_unopenable_file_falls_back(self, clean_logger, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setattr("sys.stderr", _Stderr(tty=False))

        assert setup_logging(LoggingConfig(file=str(tmp_path / "missing" / "x.log"))) is None

    def test_second_call_replaces_handler(self, clean_logger, tmp_path: Path) -> None:
        first = setup_logging(LoggingConfig(file=str(tmp_path / "a.log")))
        second = setup_logging(LoggingConfig(file=str(tmp_path / "b.log"), verbose=4))

        assert clean_logger.handlers == [second]
        assert first not in clean_logger.handlers
        assert clean_logger.level == TRACE


class TestGetLogger:
    def test_child_logger(self) -> None:
        assert get_logger("engine").name == "bsp_client.engine"
        assert get_logger().name == "bsp_client"
