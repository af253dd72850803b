"""job_handler/lambda_function.py

EventBridge-triggered Lambda that services the GitLab custom source action.

Triggered by CodePipeline Action Execution State Change events for the custom
source action. Each invocation claims at most one job:

Flow:
    validate configuration (PROJECT_NAME, VERSION)
    → PollForJobs (3 attempts, 1s backoff base)
    → AcknowledgeJob
    → StartBuild on the clone project (artifact redirected to the job's output)
    → BatchGetBuilds until terminal (10 attempts, 4s backoff base)
    → PutJobSuccessResult

On failure:
    - polling produced no job: log and exit, pipeline untouched
    - job processing failed: stop the pipeline execution (best-effort) and
      PutJobFailureResult
    - configuration missing, or the failure report itself failed: raise so the
      invocation errors and alarms fire

Environment variables: see config.py.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Mapping, Optional

from codebuild import BuildGateway
from codepipeline import PipelineExecutionRef, PipelineGateway
from config import load_settings, logger
from error_handler import ErrorHandler
from errors import PollingFailure
from gitlab_source_shared.aws_clients import _get_codebuild, _get_codepipeline
from poller import JobPoller
from worker import JobWorker

__all__ = ["handle_event", "lambda_handler"]


def handle_event(
    event: Dict[str, Any],
    *,
    pipeline: PipelineGateway,
    builds: BuildGateway,
    environ: Optional[Mapping[str, str]] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> Dict[str, Any]:
    """Process one invocation against explicit gateways."""
    settings = load_settings(environ)
    execution = PipelineExecutionRef.from_event(event)
    logger.debug("Received event: %s", json.dumps(event, default=str))

    poller = JobPoller(pipeline, sleep=sleep)
    worker = JobWorker(
        pipeline,
        builds,
        retryable_error_codes=settings.build_status_retryable_errors,
        sleep=sleep,
    )
    error_handler = ErrorHandler(pipeline)

    try:
        jobs = poller.poll_for_jobs(settings.action_type_id)
    except PollingFailure as exc:
        # Nothing claimed; leave the pipeline alone.
        error_handler.handle_failure(execution, exc, should_stop_pipeline=False)
        return {"status": "no_jobs", "reason": str(exc)}
    except Exception as exc:
        error_handler.handle_failure(execution, exc)
        return {"status": "failed", "error": str(exc)}

    job = jobs[0]
    logger.info("[START] Processing job with ID: %s", job.job_id)

    try:
        build_id = worker.process_job(job, settings.project_name)
    except Exception as exc:
        error_handler.handle_failure(execution, exc, job_id=job.job_id)
        return {"status": "failed", "job_id": job.job_id, "error": str(exc)}

    logger.info("Successfully completed job: %s", job.job_id)
    return {"status": "succeeded", "job_id": job.job_id, "build_id": build_id}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return handle_event(
        event,
        pipeline=PipelineGateway(_get_codepipeline()),
        builds=BuildGateway(_get_codebuild()),
    )
