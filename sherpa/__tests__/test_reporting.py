import logging

import pytest

from sherpa.exceptions import RenderError
from sherpa.reporting import LoggingErrorReporter


def test_logging_reporter(caplog: pytest.LogCaptureFixture):
    try:
        raise RenderError(identifier="UsersLayout", reason="KeyError: 'nav'")
    except RenderError as e:
        error = e

    with caplog.at_level(logging.ERROR, logger="sherpa.logging"):
        LoggingErrorReporter().report(error, {"view_path": "users/detail", "phase": "streaming"})

    record = caplog.records[-1]
    assert record.levelno == logging.ERROR
    assert "RenderError" in record.getMessage()
    assert "view_path=users/detail" in record.getMessage()
    assert record.exc_info is not None
