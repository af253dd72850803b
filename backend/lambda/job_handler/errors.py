"""errors.py — Failure taxonomy for the job handler.

Every failure the handler reasons about is one of the JobHandlerError
subclasses below; ``classify`` maps any exception onto a FailureKind so the
error handler can branch on a closed set instead of inspecting messages.
"""
from __future__ import annotations

import enum
from typing import Optional

__all__ = [
    "BuildInProgress",
    "ConfigurationFailure",
    "FailureKind",
    "HandlerReportFailure",
    "JobHandlerError",
    "NoJobsAvailable",
    "PollingFailure",
    "ProcessingFailure",
    "classify",
]


class JobHandlerError(Exception):
    """Base class for job handler failures."""


class ConfigurationFailure(JobHandlerError):
    """Required configuration is missing. Always propagates out of the Lambda."""


class PollingFailure(JobHandlerError):
    """Polling produced no job. Never stops a pipeline or reports a job failure."""


class NoJobsAvailable(PollingFailure):
    """The job source returned an empty batch. The only retryable poll outcome."""


class ProcessingFailure(JobHandlerError):
    """A claimed job could not be completed."""

    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class HandlerReportFailure(JobHandlerError):
    """Reporting a job failure itself failed."""

    def __init__(self, report_error: BaseException, original: BaseException) -> None:
        super().__init__(
            f"Failed to handle failure: {report_error}. Original error: {original}"
        )
        self.report_error = report_error
        self.original = original
        self.__cause__ = report_error


class BuildInProgress(Exception):
    """Build has not reached a terminal status yet (retry signal, never surfaced)."""

    def __init__(self, build_id: str, status: Optional[str] = None) -> None:
        super().__init__("BUILD_IN_PROGRESS")
        self.build_id = build_id
        self.status = status


class FailureKind(enum.Enum):
    CONFIGURATION = "configuration"
    POLLING = "polling"
    PROCESSING = "processing"
    HANDLER_REPORT = "handler_report"
    UNEXPECTED = "unexpected"


def classify(error: BaseException) -> FailureKind:
    if isinstance(error, ConfigurationFailure):
        return FailureKind.CONFIGURATION
    if isinstance(error, PollingFailure):
        return FailureKind.POLLING
    if isinstance(error, ProcessingFailure):
        return FailureKind.PROCESSING
    if isinstance(error, HandlerReportFailure):
        return FailureKind.HANDLER_REPORT
    return FailureKind.UNEXPECTED
