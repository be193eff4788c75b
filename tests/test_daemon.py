"""Tests for the daemon entry point and logging setup."""

import logging
import signal
from collections.abc import Iterator
from logging.handlers import RotatingFileHandler
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from reposync import daemon
from reposync.config import Config, DaemonSettings, JobSpec
from reposync.errors import ConfigError


@pytest.fixture
def clean_logger() -> Iterator[logging.Logger]:
    """Removes handlers added by setup_logging after each test."""
    before = list(daemon.logger.handlers)
    yield daemon.logger
    for handler in daemon.logger.handlers[:]:
        if handler not in before:
            daemon.logger.removeHandler(handler)
            handler.close()


def test_setup_logging_adds_rotating_file(tmp_path: Path, clean_logger: logging.Logger) -> None:
    """Verifies that a configured log file gets a rotating handler."""
    log_file = tmp_path / "logs" / "reposync.log"
    daemon.setup_logging(DaemonSettings(log_file=log_file, max_log_size=1024))

    rotating = [
        h for h in clean_logger.handlers if isinstance(h, RotatingFileHandler)
    ]
    assert len(rotating) == 1
    assert rotating[0].maxBytes == 1024
    assert log_file.parent.exists()


def test_setup_logging_stderr_only(clean_logger: logging.Logger) -> None:
    before = len(clean_logger.handlers)
    daemon.setup_logging(DaemonSettings())
    assert len(clean_logger.handlers) == before + 1


def test_load_config_exits_on_error(mocker: MagicMock) -> None:
    """Verifies that fatal configuration errors stop the process with status 1."""
    mocker.patch("reposync.daemon.Config.load", side_effect=ConfigError("Duplicate job ID 'a'"))
    mock_err = mocker.patch("reposync.daemon.err_console")

    with pytest.raises(SystemExit) as exc_info:
        daemon.load_config()

    assert exc_info.value.code == 1
    assert "Duplicate job ID" in mock_err.print.call_args[0][0]


def test_main_runs_until_signalled(
    tmp_path: Path, mocker: MagicMock, clean_logger: logging.Logger
) -> None:
    """Verifies the startup and shutdown sequence around the signal handler."""
    conf = Config(
        daemon=DaemonSettings(work_dir=tmp_path, port=0),
        jobs=(JobSpec("a", "s", "d"),),
    )
    mocker.patch("reposync.daemon.Config.load", return_value=conf)
    mocker.patch("reposync.daemon.console")
    supervisor = mocker.patch("reposync.daemon.Supervisor").return_value
    supervisor.join.return_value = True
    server = mocker.patch("reposync.daemon.make_server").return_value

    handlers = {}
    mocker.patch(
        "reposync.daemon.signal.signal",
        side_effect=lambda signum, handler: handlers.__setitem__(signum, handler),
    )

    # Deliver SIGTERM as soon as the supervisor starts.
    supervisor.start.side_effect = lambda: handlers[signal.SIGTERM](signal.SIGTERM, None)

    daemon.main()

    supervisor.start.assert_called_once()
    supervisor.stop.assert_called_once()
    server.shutdown.assert_called_once()
    supervisor.join.assert_called_once_with(daemon.SHUTDOWN_GRACE)
