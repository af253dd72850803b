"""worker.py — Drive one CodePipeline job through a CodeBuild clone.

Flow:
    acknowledge job
    → start CodeBuild (artifact redirected to the job's output location)
    → poll build status with backoff until terminal
    → report job success, or raise ProcessingFailure

Every failure after the job is picked up is raised as a ProcessingFailure
carrying the job id and the original exception as its cause.
"""
from __future__ import annotations

import time
from typing import Callable, FrozenSet, Optional

from botocore.exceptions import ClientError

from codebuild import (
    SUCCEEDED,
    TERMINAL_FAILURE_STATUSES,
    ArtifactOverride,
    BuildGateway,
)
from codepipeline import Job, PipelineGateway
from config import (
    BUILD_POLL_BASE_DELAY_SECONDS,
    BUILD_POLL_MAX_ATTEMPTS,
    DEFAULT_RETRYABLE_ERROR_CODES,
    logger,
)
from errors import BuildInProgress, ProcessingFailure
from gitlab_source_shared.retry import RetryPolicy, call_with_retry

__all__ = ["JobWorker", "format_duration"]


def format_duration(seconds: float) -> str:
    """Format a duration as "<m>m <s>s" or "<s>s"."""
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    return f"{minutes}m {secs}s" if minutes > 0 else f"{secs}s"


class JobWorker:
    def __init__(
        self,
        pipeline: PipelineGateway,
        builds: BuildGateway,
        *,
        retryable_error_codes: Optional[FrozenSet[str]] = None,
        max_attempts: int = BUILD_POLL_MAX_ATTEMPTS,
        base_delay: float = BUILD_POLL_BASE_DELAY_SECONDS,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._pipeline = pipeline
        self._builds = builds
        self._sleep = sleep
        self._clock = clock
        self._retryable_error_codes = (
            retryable_error_codes
            if retryable_error_codes is not None
            else DEFAULT_RETRYABLE_ERROR_CODES
        )
        self._status_policy = RetryPolicy(
            max_attempts=max_attempts,
            base_delay=base_delay,
            is_retryable=self._is_retryable_status_error,
        )

    def process_job(self, job: Job, project_name: str) -> str:
        """Run ``job`` to completion and return the CodeBuild build id."""
        job_id = job.job_id
        started = self._clock()

        try:
            logger.info("Acknowledging job: %s", job_id)
            try:
                self._pipeline.acknowledge_job(job_id, job.nonce)
            except Exception as exc:
                raise ProcessingFailure(
                    f"Failed to acknowledge job {job_id}: {exc}", job_id=job_id, cause=exc
                ) from exc

            logger.info("Starting build for project: %s", project_name)
            try:
                build_id = self._builds.start_build(project_name, self._artifact_override(job))
            except Exception as exc:
                raise ProcessingFailure(
                    f"Failed to start build for project {project_name}: {exc}",
                    job_id=job_id,
                    cause=exc,
                ) from exc
            if not build_id:
                raise ProcessingFailure("Build ID not returned from CodeBuild", job_id=job_id)

            logger.info("Waiting for build %s to complete...", build_id)
            try:
                succeeded = self.wait_for_build(build_id)
            except Exception as exc:
                raise ProcessingFailure(
                    f"Build {build_id} did not reach a terminal status after "
                    f"{self._elapsed(started)}: {exc}",
                    job_id=job_id,
                    cause=exc,
                ) from exc

            duration = self._elapsed(started)
            if not succeeded:
                raise ProcessingFailure(
                    f"Build failed or timed out after {duration}", job_id=job_id
                )

            logger.debug("Build succeeded after %s", duration)
            try:
                self._pipeline.report_job_success(job_id, build_id)
            except Exception as exc:
                raise ProcessingFailure(
                    f"Failed to report success for job {job_id}: {exc}", job_id=job_id, cause=exc
                ) from exc

            logger.info("[SUCCESS] Processed job %s with build %s in %s", job_id, build_id, duration)
            return build_id
        except ProcessingFailure as exc:
            logger.error("Job %s failed after %s: %s", job_id, self._elapsed(started), exc)
            raise

    def wait_for_build(self, build_id: str) -> bool:
        """Poll until the build is terminal: True on success, False on failure."""
        return call_with_retry(
            lambda: self._check_build(build_id),
            self._status_policy,
            sleep=self._sleep,
            label=f"build_status[{build_id}]",
        )

    def _check_build(self, build_id: str) -> bool:
        build = self._builds.get_build(build_id)
        logger.info("Build %s status: %s (%s)", build_id, build.status, build.phase)

        if build.status == SUCCEEDED:
            return True
        if build.status in TERMINAL_FAILURE_STATUSES:
            return False
        raise BuildInProgress(build_id, build.status)

    def _is_retryable_status_error(self, error: BaseException) -> bool:
        if isinstance(error, BuildInProgress):
            return True
        if isinstance(error, ClientError):
            code = error.response.get("Error", {}).get("Code", "")
            return code in self._retryable_error_codes
        return False

    @staticmethod
    def _artifact_override(job: Job) -> Optional[ArtifactOverride]:
        artifact = job.output_artifact
        if artifact is None:
            return None
        return ArtifactOverride.for_object_key(artifact.bucket, artifact.object_key)

    def _elapsed(self, started: float) -> str:
        return format_duration(self._clock() - started)
