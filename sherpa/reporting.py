from abc import ABC, abstractmethod
from typing import Any

from sherpa.logging import LOGGER


class ErrorReporter(ABC):
    """
    Destination for errors that were recovered at the request boundary. Implement
    this to forward failures to an error monitoring service:

    ```python
    class SentryReporter(ErrorReporter):
        def report(self, error, metadata):
            sentry_sdk.capture_exception(error, contexts={"sherpa": metadata})
    ```

    """

    @abstractmethod
    def report(self, error: BaseException, metadata: dict[str, Any]) -> None:
        pass


class LoggingErrorReporter(ErrorReporter):
    """
    Default reporter, writes the error and its request metadata to the log.

    """

    def report(self, error: BaseException, metadata: dict[str, Any]) -> None:
        details = ", ".join(f"{key}={value}" for key, value in metadata.items())
        LOGGER.error(
            f"{type(error).__name__}: {error} ({details})",
            exc_info=(type(error), error, error.__traceback__),
        )
