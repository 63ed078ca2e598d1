import logging
from contextlib import contextmanager
from json import dumps as json_dumps
from logging import Formatter, StreamHandler, getLogger
from os import environ
from pathlib import Path
from tempfile import mkdtemp
from time import monotonic_ns, time

from click import secho

LOG_LEVEL_ENV = "SHERPA_LOG_LEVEL"

VERBOSITY_MAPPING = {
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

# Attributes passed through `extra=` that are copied into the JSON record, so
# render timings and navigation plans can be filtered without parsing messages
STRUCTURED_FIELDS = ("view_path", "identifier", "mode", "duration", "url", "plan")


class JsonFormatter(Formatter):
    def format(self, record):
        log_record = {
            "level": record.levelname,
            "name": record.name,
            "timestamp": self.formatTime(record, self.datefmt),
            "message": record.getMessage(),
        }
        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_record[field] = getattr(record, field)
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json_dumps(log_record, default=str)


class ColorHandler(StreamHandler):
    def emit(self, record):
        try:
            msg = self.format(record)
            if record.levelno == logging.WARNING:
                secho(msg, fg="yellow")
            elif record.levelno >= logging.ERROR:
                secho(msg, fg="red")
            else:
                secho(msg)
        except Exception:
            self.handleError(record)


def env_log_level() -> int:
    return VERBOSITY_MAPPING[environ.get(LOG_LEVEL_ENV, "WARNING").upper()]


def setup_logger(name, log_level=logging.DEBUG):
    """
    Build a logger that writes one JSON object per line, colored by severity.
    Applications can use it for their own modules to get the same output as the
    render pipeline:

    ```json
    {"level": "WARNING", "name": "sherpa.logging", "timestamp": "2025-02-25 20:40:35,896", "message": "Slow render of users/detail (stream): 0.412s", "view_path": "users/detail", "mode": "stream", "duration": 0.412}
    ```

    ```python
    logger = setup_logger("myapp.controllers", log_level=logging.INFO)
    logger.info("Loaded user", extra={"view_path": "users/detail"})
    ```

    """
    logger = getLogger(name)
    logger.setLevel(log_level)

    handler = ColorHandler()
    handler.setLevel(log_level)
    handler.setFormatter(JsonFormatter())

    logger.addHandler(handler)

    return logger


@contextmanager
def log_time_duration(message: str):
    start = monotonic_ns()
    yield
    LOGGER.debug(f"{message} : Took {(monotonic_ns() - start) / 1e9:.2f}s")


def setup_internal_logger(name: str):
    """
    Sherpa's own logger. Slow renders, hydration mismatches and navigation
    fallbacks are warnings and always shown; per-request chain resolution and
    navigation plans are only logged with SHERPA_LOG_LEVEL=DEBUG.

    """
    return setup_logger(name, log_level=env_log_level())


ARTIFACT_DIR: Path | None = None


def debug_log_artifact(artifact_prefix: str, extension: str, content: str):
    """
    Write a rendered document to a temporary directory so it can be inspected
    outside of the response. No-op unless debug logging is enabled.

    """
    global ARTIFACT_DIR

    if env_log_level() > logging.DEBUG:
        return None

    if ARTIFACT_DIR is None:
        ARTIFACT_DIR = Path(mkdtemp(prefix="sherpa-renders-"))
        LOGGER.warning(f"Writing rendered documents to {ARTIFACT_DIR}")

    path = ARTIFACT_DIR / f"{artifact_prefix}-{time()}.{extension}"
    path.write_text(content)

    return path


def reset_artifact_dir():
    global ARTIFACT_DIR
    ARTIFACT_DIR = None


LOGGER = setup_internal_logger(__name__)
