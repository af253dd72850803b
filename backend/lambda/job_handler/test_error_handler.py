"""job_handler error handler tests — stop, report and escalation paths; failure classification."""

from __future__ import annotations

import os
import sys
import unittest
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

sys.path.insert(0, os.path.dirname(__file__))

from codepipeline import PipelineExecutionRef, PipelineGateway  # noqa: E402
from error_handler import ErrorHandler  # noqa: E402
from errors import (  # noqa: E402
    ConfigurationFailure,
    FailureKind,
    HandlerReportFailure,
    NoJobsAvailable,
    PollingFailure,
    ProcessingFailure,
    classify,
)

EXECUTION = PipelineExecutionRef(pipeline_name="test-pipeline", execution_id="exec-1")


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class ErrorHandlerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.pipeline = MagicMock(spec=PipelineGateway)
        self.handler = ErrorHandler(self.pipeline)

    def test_polling_failure_never_stops_pipeline(self) -> None:
        self.handler.handle_failure(EXECUTION, PollingFailure("No jobs available"), should_stop_pipeline=False)
        self.handler.handle_failure(EXECUTION, NoJobsAvailable("No jobs available"))

        self.pipeline.stop_pipeline_execution.assert_not_called()
        self.pipeline.report_job_failure.assert_not_called()

    def test_processing_failure_stops_once_and_reports(self) -> None:
        error = ProcessingFailure("Build failed or timed out after 3s", job_id="job-1")

        self.handler.handle_failure(EXECUTION, error, job_id="job-1")

        self.pipeline.stop_pipeline_execution.assert_called_once_with(
            EXECUTION, "Job failed: Build failed or timed out after 3s", abandon=True
        )
        self.pipeline.report_job_failure.assert_called_once_with(
            "job-1", "Job failed: Build failed or timed out after 3s"
        )

    def test_unexpected_error_without_job_only_stops(self) -> None:
        self.handler.handle_failure(EXECUTION, RuntimeError("boom"))

        self.pipeline.stop_pipeline_execution.assert_called_once()
        self.pipeline.report_job_failure.assert_not_called()

    def test_stop_failure_is_swallowed_and_report_proceeds(self) -> None:
        self.pipeline.stop_pipeline_execution.side_effect = _client_error(
            "PipelineExecutionNotStoppableException", "StopPipelineExecution"
        )

        self.handler.handle_failure(EXECUTION, ProcessingFailure("original"), job_id="job-1")

        self.pipeline.report_job_failure.assert_called_once_with("job-1", "Job failed: original")

    def test_should_stop_false_skips_stop(self) -> None:
        self.handler.handle_failure(
            EXECUTION, ProcessingFailure("original"), job_id="job-1", should_stop_pipeline=False
        )

        self.pipeline.stop_pipeline_execution.assert_not_called()
        self.pipeline.report_job_failure.assert_called_once()

    def test_report_failure_raises_with_both_messages(self) -> None:
        self.pipeline.report_job_failure.side_effect = RuntimeError("report broke")
        original = ProcessingFailure("original error")

        with self.assertRaises(HandlerReportFailure) as ctx:
            self.handler.handle_failure(EXECUTION, original, job_id="job-1")

        self.assertIn("report broke", str(ctx.exception))
        self.assertIn("original error", str(ctx.exception))
        self.assertIs(ctx.exception.original, original)

    def test_missing_execution_skips_stop(self) -> None:
        self.handler.handle_failure(None, ProcessingFailure("original"), job_id="job-1")

        self.pipeline.stop_pipeline_execution.assert_not_called()
        self.pipeline.report_job_failure.assert_called_once()


class ClassifyTests(unittest.TestCase):
    def test_taxonomy(self) -> None:
        self.assertIs(classify(ConfigurationFailure("x")), FailureKind.CONFIGURATION)
        self.assertIs(classify(NoJobsAvailable("x")), FailureKind.POLLING)
        self.assertIs(classify(PollingFailure("x")), FailureKind.POLLING)
        self.assertIs(classify(ProcessingFailure("x")), FailureKind.PROCESSING)
        self.assertIs(
            classify(HandlerReportFailure(RuntimeError("a"), RuntimeError("b"))),
            FailureKind.HANDLER_REPORT,
        )
        self.assertIs(classify(KeyError("x")), FailureKind.UNEXPECTED)


if __name__ == "__main__":
    unittest.main()
