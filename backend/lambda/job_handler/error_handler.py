"""error_handler.py — Report job handler failures to CodePipeline.

Stopping the pipeline execution is best-effort and never raises. Reporting the
job failure is required: if that call fails, a HandlerReportFailure carrying
both errors is raised so the invocation itself fails.
"""
from __future__ import annotations

from typing import Optional

from codepipeline import PipelineExecutionRef, PipelineGateway
from config import logger
from errors import FailureKind, HandlerReportFailure, classify

__all__ = ["ErrorHandler"]


class ErrorHandler:
    def __init__(self, pipeline: PipelineGateway) -> None:
        self._pipeline = pipeline

    def handle_failure(
        self,
        execution: Optional[PipelineExecutionRef],
        error: BaseException,
        job_id: Optional[str] = None,
        should_stop_pipeline: bool = True,
    ) -> None:
        kind = classify(error)
        logger.error("Error processing event: %s", error, exc_info=error)
        logger.debug("Error type: %s (%s)", type(error).__name__, kind.value)

        reason = f"Job failed: {error}"

        if should_stop_pipeline and kind is not FailureKind.POLLING:
            self._stop_pipeline(execution, reason)

        if job_id:
            try:
                self._pipeline.report_job_failure(job_id, reason)
            except Exception as report_error:
                logger.error("Failed to handle failure: %s", report_error)
                raise HandlerReportFailure(report_error, error) from report_error
            logger.info("Reported failure for job: %s", job_id)

    def _stop_pipeline(self, execution: Optional[PipelineExecutionRef], reason: str) -> None:
        if execution is None:
            logger.warning("[SKIP] No pipeline execution in event; cannot stop pipeline")
            return
        try:
            self._pipeline.stop_pipeline_execution(execution, reason, abandon=True)
            logger.warning(
                "Pipeline %s execution %s stopped due to error",
                execution.pipeline_name,
                execution.execution_id,
            )
        except Exception as stop_error:
            logger.warning("Could not stop pipeline: %s", stop_error)
