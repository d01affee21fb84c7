"""
Exception reporting for background work.

Reporters are best effort: the runner logs and discards anything a reporter
raises, so a broken reporter can never block event bookkeeping.
"""

from typing import Protocol

from auditlog.config.logging import get_logger

logger = get_logger(__name__)


class ExceptionReporter(Protocol):
    """Sink for unexpected errors raised by jobs."""

    def report(self, error: BaseException) -> None:
        ...


class LoggingExceptionReporter:
    """Default reporter: writes the error and its traceback to the log."""

    def report(self, error: BaseException) -> None:
        logger.error(
            "Job error reported",
            exception=error.__class__.__name__,
            message=str(error),
            exc_info=(type(error), error, error.__traceback__),
        )


def report_safely(reporter: ExceptionReporter, error: BaseException) -> bool:
    """Report an error, swallowing any failure of the reporter itself."""
    try:
        reporter.report(error)
        return True
    except Exception as reporter_error:
        logger.warning(
            "Exception reporter failed",
            reporter=reporter.__class__.__name__,
            reporter_error=repr(reporter_error),
            original_error=repr(error),
        )
        return False
