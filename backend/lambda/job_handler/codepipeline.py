"""codepipeline.py — CodePipeline custom action job protocol.

Thin wrapper over the CodePipeline client: poll for jobs, acknowledge a job,
report success/failure, and stop the enclosing pipeline execution. Client
errors (botocore ClientError / BotoCoreError) propagate to the caller.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from config import logger

__all__ = [
    "FAILURE_MESSAGE_MAX_LENGTH",
    "Job",
    "OutputArtifact",
    "PipelineExecutionRef",
    "PipelineGateway",
    "STOP_REASON_MAX_LENGTH",
    "SUCCESS_SUMMARY",
]

SUCCESS_SUMMARY = "Successfully pulled source code from GitLab"
CHANGE_IDENTIFIER = "CodeBuild"

# CodePipeline API limits
STOP_REASON_MAX_LENGTH = 200
FAILURE_MESSAGE_MAX_LENGTH = 5000


@dataclass(frozen=True)
class OutputArtifact:
    name: Optional[str]
    bucket: Optional[str]
    object_key: Optional[str]


@dataclass(frozen=True)
class Job:
    job_id: str
    nonce: Optional[str]
    output_artifact: Optional[OutputArtifact] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Job":
        """Build a Job from one entry of a PollForJobs ``jobs`` list."""
        artifacts = (raw.get("data") or {}).get("outputArtifacts") or []
        output_artifact = None
        if artifacts:
            first = artifacts[0] or {}
            s3_location = (first.get("location") or {}).get("s3Location") or {}
            output_artifact = OutputArtifact(
                name=first.get("name"),
                bucket=s3_location.get("bucketName"),
                object_key=s3_location.get("objectKey"),
            )
        return cls(job_id=raw["id"], nonce=raw.get("nonce"), output_artifact=output_artifact)


@dataclass(frozen=True)
class PipelineExecutionRef:
    pipeline_name: str
    execution_id: str

    @classmethod
    def from_event(cls, event: Optional[Dict[str, Any]]) -> Optional["PipelineExecutionRef"]:
        """Read the execution identity from a CodePipeline state change event.

        Returns None when the event does not name a pipeline execution.
        """
        detail = (event or {}).get("detail") or {}
        pipeline_name = detail.get("pipeline")
        execution_id = detail.get("execution-id")
        if not pipeline_name or not execution_id:
            return None
        return cls(pipeline_name=pipeline_name, execution_id=execution_id)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class PipelineGateway:
    """Job source operations backed by a boto3 ``codepipeline`` client."""

    def __init__(self, client) -> None:
        self._client = client

    def poll_for_jobs(self, action_type_id: Dict[str, str], max_batch_size: int = 1) -> List[Job]:
        params = {"actionTypeId": action_type_id, "maxBatchSize": max_batch_size}
        logger.info("Polling for jobs with parameters: %s", json.dumps(params))
        resp = self._client.poll_for_jobs(**params)
        return [Job.from_api(raw) for raw in resp.get("jobs") or []]

    def acknowledge_job(self, job_id: str, nonce: Optional[str]) -> None:
        logger.info("Sending acknowledge job command for job: %s", job_id)
        self._client.acknowledge_job(jobId=job_id, nonce=nonce or "")

    def report_job_success(self, job_id: str, build_id: str) -> None:
        logger.info("Reporting job success for job: %s with build ID: %s", job_id, build_id)
        self._client.put_job_success_result(
            jobId=job_id,
            executionDetails={
                "summary": SUCCESS_SUMMARY,
                "externalExecutionId": build_id,
            },
            outputVariables={"BuildId": build_id},
            currentRevision={
                "revision": build_id,
                "changeIdentifier": CHANGE_IDENTIFIER,
            },
        )

    def report_job_failure(self, job_id: str, message: str) -> None:
        logger.error("Reporting job failure for job: %s: %s", job_id, message)
        self._client.put_job_failure_result(
            jobId=job_id,
            failureDetails={
                "type": "JobFailed",
                "message": _truncate(message, FAILURE_MESSAGE_MAX_LENGTH),
            },
        )

    def stop_pipeline_execution(
        self,
        execution: PipelineExecutionRef,
        reason: str,
        abandon: bool = True,
    ) -> Optional[str]:
        resp = self._client.stop_pipeline_execution(
            pipelineName=execution.pipeline_name,
            pipelineExecutionId=execution.execution_id,
            abandon=abandon,
            reason=_truncate(reason, STOP_REASON_MAX_LENGTH),
        )
        stopped_id = (resp or {}).get("pipelineExecutionId")
        if stopped_id:
            logger.info("Pipeline %s execution %s stopped", execution.pipeline_name, stopped_id)
        return stopped_id
