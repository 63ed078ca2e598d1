import json
import logging
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from io import StringIO

import pytest

from sherpa.logging import (
    debug_log_artifact,
    log_time_duration,
    reset_artifact_dir,
    setup_internal_logger,
    setup_logger,
)


@contextmanager
def capture_logger_output(logger_func, *args, **kwargs):
    new_stdout, new_stderr = StringIO(), StringIO()
    with redirect_stdout(new_stdout), redirect_stderr(new_stderr):
        logger = logger_func(*args, **kwargs)
        yield logger, new_stdout, new_stderr


def test_setup_logger_name_and_level():
    with capture_logger_output(setup_logger, "test_logger", logging.DEBUG) as (
        logger,
        _,
        _,
    ):
        assert logger.name == "test_logger"
        assert logger.level == logging.DEBUG


def test_log_message_is_json():
    with capture_logger_output(setup_logger, "json_logger") as (logger, stdout, _):
        logger.warning("Slow render of users/detail")
        output = stdout.getvalue()

    log_output = json.loads(output.strip())
    assert log_output["level"] == "WARNING"
    assert log_output["name"] == "json_logger"
    assert log_output["message"] == "Slow render of users/detail"
    assert "timestamp" in log_output


def test_exception_logging():
    with capture_logger_output(setup_logger, "exception_logger") as (logger, stdout, _):
        try:
            raise ValueError("Test exception")
        except ValueError:
            logger.exception("Render failed")
        output = stdout.getvalue()

    log_output = json.loads(output.strip())
    assert "Test exception" in log_output["exception"]


def test_internal_logger_level(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SHERPA_LOG_LEVEL", "INFO")
    logger = setup_internal_logger("sherpa_info_logger")
    assert logger.level == logging.INFO

    monkeypatch.delenv("SHERPA_LOG_LEVEL")
    logger = setup_internal_logger("sherpa_default_logger")
    assert logger.level == logging.WARNING


def test_log_time_duration(caplog: pytest.LogCaptureFixture):
    with caplog.at_level(logging.DEBUG, logger="sherpa.logging"):
        with log_time_duration("Resolve chain"):
            pass

    assert "Resolve chain : Took" in caplog.text


@pytest.mark.parametrize(
    "log_level,should_create_file",
    [
        ("DEBUG", True),
        ("INFO", False),
        ("WARNING", False),
        ("ERROR", False),
    ],
)
def test_debug_log_artifact(
    log_level: str, should_create_file: bool, monkeypatch: pytest.MonkeyPatch
):
    # Reset any global state every run
    reset_artifact_dir()
    monkeypatch.setenv("SHERPA_LOG_LEVEL", log_level)

    path = debug_log_artifact("document", "html", "<html></html>")

    if should_create_file:
        assert path is not None
        files = list(path.parent.glob("document-*.html"))
        assert len(files) == 1
        assert files[0].read_text() == "<html></html>"
    else:
        assert path is None


def test_structured_fields_are_included():
    with capture_logger_output(setup_logger, "render_logger") as (logger, stdout, _):
        logger.warning(
            "Slow render of users/detail (stream): 0.412s",
            extra={"view_path": "users/detail", "mode": "stream", "duration": 0.412},
        )
        output = stdout.getvalue()

    log_output = json.loads(output.strip())
    assert log_output["view_path"] == "users/detail"
    assert log_output["mode"] == "stream"
    assert log_output["duration"] == 0.412
    assert "plan" not in log_output
