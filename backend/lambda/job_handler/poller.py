"""poller.py — Poll CodePipeline for custom action jobs with retry.

An empty batch counts as a retryable NoJobsAvailable failure; the poller only
returns once at least one job is present. Any other poll error stops at once
and surfaces as a PollingFailure.
"""
from __future__ import annotations

from typing import Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from codepipeline import Job, PipelineGateway
from config import JOB_POLL_BASE_DELAY_SECONDS, JOB_POLL_MAX_ATTEMPTS, logger
from errors import NoJobsAvailable, PollingFailure
from gitlab_source_shared.retry import RetryPolicy, call_with_retry

__all__ = ["JobPoller"]


def _require_jobs(jobs: List[Job]) -> bool:
    if not jobs:
        raise NoJobsAvailable("No jobs available")
    return True


def _log_retry(error: BaseException, attempt: int, max_attempts: int) -> None:
    logger.warning("Job polling attempt %d/%d failed: %s", attempt, max_attempts, error)


def _is_no_jobs(error: BaseException) -> bool:
    return isinstance(error, NoJobsAvailable)


class JobPoller:
    def __init__(
        self,
        pipeline: PipelineGateway,
        *,
        max_attempts: int = JOB_POLL_MAX_ATTEMPTS,
        base_delay: float = JOB_POLL_BASE_DELAY_SECONDS,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._pipeline = pipeline
        self._sleep = sleep
        self._policy = RetryPolicy(
            max_attempts=max_attempts,
            base_delay=base_delay,
            is_retryable=_is_no_jobs,
            validate=_require_jobs,
            on_retry=_log_retry,
        )

    def poll_for_jobs(self, action_type_id: Dict[str, str]) -> List[Job]:
        """Return a non-empty job list or raise PollingFailure."""
        return call_with_retry(
            lambda: self._poll_once(action_type_id),
            self._policy,
            sleep=self._sleep,
            label="poll_for_jobs",
        )

    def _poll_once(self, action_type_id: Dict[str, str]) -> List[Job]:
        try:
            return self._pipeline.poll_for_jobs(action_type_id, max_batch_size=1)
        except (ClientError, BotoCoreError) as exc:
            raise PollingFailure(f"Polling for jobs failed: {exc}") from exc
