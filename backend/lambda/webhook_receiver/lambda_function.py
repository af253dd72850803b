"""webhook_receiver/lambda_function.py — GitLab push webhook → CodePipeline execution

API Gateway proxy Lambda registered as a GitLab project webhook. Validates the
X-Gitlab-Token header against the shared validation token held in Secrets
Manager, then starts the source pipeline with the pushed commit exposed as
pipeline variables.

Routes (via API Gateway proxy):
    POST /webhook   — GitLab push / merge request hook

Environment variables:
    PIPELINE_NAME         (required) pipeline to start
    X_GITLAB_TOKEN_ARN    (required) Secrets Manager id of the webhook validation token
    GITLAB_HOST           diagnostics only
    PROJECT_PATH          diagnostics only
    BRANCH                diagnostics only, default: main
"""

from __future__ import annotations

import datetime as dt
import hmac
import logging
import os
import time
from typing import Any, Dict, List, Optional

from gitlab_source_shared.aws_clients import _get_codepipeline
from gitlab_source_shared.http_utils import _error, _header, _parse_body, _response
from gitlab_source_shared.secret_cache import try_get_secret_string

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)

LOG_PREFIX = "[PIPELINE LOG]"

# CodePipeline limit on a pipeline variable value
VARIABLE_VALUE_MAX_LENGTH = 1000


def _utc_now() -> str:
    return dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _truncate(text: str, limit: int = VARIABLE_VALUE_MAX_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _pipeline_variables(payload: Dict[str, Any]) -> Optional[List[Dict[str, str]]]:
    """Pipeline variables from the first pushed commit (None without commits)."""
    commits = payload.get("commits") or []
    if not commits:
        return None
    first = commits[0] or {}
    author = first.get("author") or {}
    variables = [
        {"name": "BranchHash", "value": str(payload.get("before") or "")},
        {"name": "CommitId", "value": str(first.get("id") or "")},
        {"name": "CommitMessage", "value": str(first.get("message") or "").replace("\n", " ")},
        {"name": "CommitUrl", "value": str(first.get("url") or "")},
        {"name": "AuthorName", "value": str(author.get("name") or "")},
        {"name": "AuthorEmail", "value": str(author.get("email") or "")},
    ]
    return [{"name": var["name"], "value": _truncate(var["value"])} for var in variables]


def _log_commit(variables: List[Dict[str, str]]) -> None:
    host = os.environ.get("GITLAB_HOST", "unknown")
    project_path = os.environ.get("PROJECT_PATH", "unknown")
    branch = os.environ.get("BRANCH", "main")
    logger.info("%s Setting output variables for the pipeline:", LOG_PREFIX)
    logger.info("%s - Repository: %s%s", LOG_PREFIX, host, project_path)
    logger.info("%s - Branch: %s", LOG_PREFIX, branch)
    for var in variables:
        logger.info("%s - %s: %s", LOG_PREFIX, var["name"], var["value"])


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    pipeline_name = os.environ.get("PIPELINE_NAME", "")
    token_secret_id = os.environ.get("X_GITLAB_TOKEN_ARN", "")
    event_token = _header(event, "x-gitlab-token")

    checks = (
        (pipeline_name, "PIPELINE_NAME environment variable is required"),
        (token_secret_id, "X_GITLAB_TOKEN environment variable is required"),
        (event_token, "X-Gitlab-Token header is required"),
    )
    for value, message in checks:
        if not value:
            logger.warning("[ERROR] Rejecting webhook: %s", message)
            return _error(400, message)

    payload = _parse_body(event)
    if payload is None:
        return _error(400, "Invalid JSON payload")

    expected_token = try_get_secret_string(token_secret_id)
    if not expected_token:
        return _error(400, "X_GITLAB_TOKEN secret is required and could not be retrieved")

    if not hmac.compare_digest(event_token.encode("utf-8"), expected_token.encode("utf-8")):
        logger.warning("Webhook token verification failed")
        return _error(401, "Not Authorized")

    variables = _pipeline_variables(payload)
    params: Dict[str, Any] = {
        "name": pipeline_name,
        "clientRequestToken": f"webhook-{int(time.time() * 1000)}",
    }
    if variables:
        params["variables"] = variables

    try:
        logger.info("%s Starting pipeline %s", LOG_PREFIX, pipeline_name)
        resp = _get_codepipeline().start_pipeline_execution(**params)
    except Exception as exc:
        logger.error("Error starting pipeline %s: %s", pipeline_name, exc, exc_info=True)
        return _error(500, f"Error starting pipeline {pipeline_name}: {exc}")

    execution_id = resp.get("pipelineExecutionId")
    logger.info("%s Pipeline started with execution ID: %s", LOG_PREFIX, execution_id)
    if variables:
        _log_commit(variables)

    return _response(200, {
        "message": f"Pipeline {pipeline_name} started successfully",
        "pipelineExecutionId": execution_id,
        "pipelineName": pipeline_name,
        "timestamp": _utc_now(),
        "variables": variables,
    })
