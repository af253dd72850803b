"""webhook_registration/lambda_function.py — GitLab project webhook custom resource

CloudFormation custom resource handler (provider framework) that keeps a GitLab
project webhook pointed at the webhook_receiver endpoint.

    Create  → POST   /projects/{id}/hooks            store hook id in SSM
    Update  → PUT    /projects/{id}/hooks/{hook_id}  hook id read from SSM
    Delete  → DELETE /projects/{id}/hooks/{hook_id}  SSM parameter removed

The handler always returns a response dict ({"Status": "SUCCESS"|"FAILED", ...})
instead of raising.

ResourceProperties:
    gitlabUrl    GitLab host, e.g. gitlab.example.com
    projectId    numeric or url-encoded project id
    branch       push_events_branch_filter
    webhookUrl   webhook_receiver endpoint

Environment variables:
    GITLAB_TOKEN                    Secrets Manager id of the GitLab personal access token
    X_GITLAB_TOKEN                  Secrets Manager id of the webhook validation token
    GITLAB_WEBHOOK_PARAMETER_NAME   SSM parameter holding the registered hook id
"""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import ClientError

from gitlab_source_shared.aws_clients import _get_ssm
from gitlab_source_shared.secret_cache import get_secret_string

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

API_PATH = "api/v4"
HTTP_TIMEOUT_SECONDS = 15

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _physical_id(project_id: Any) -> str:
    return f"GitLabWebhook-{project_id}"


def _failed(reason: str, project_id: Any = None) -> Dict[str, Any]:
    resp: Dict[str, Any] = {"Status": "FAILED", "Reason": reason}
    if project_id is not None:
        resp["PhysicalResourceId"] = _physical_id(project_id)
    return resp


# ---------------------------------------------------------------------------
# GitLab API client
# ---------------------------------------------------------------------------


def _gitlab_request(
    method: str, url: str, token: str, body: Optional[Dict[str, Any]] = None
) -> Tuple[int, str]:
    """Call the GitLab REST API. Returns (status_code, response_text)."""
    data = json.dumps(body).encode("utf-8") if body is not None else None
    req = urllib.request.Request(
        url,
        method=method,
        data=data,
        headers={
            "PRIVATE-TOKEN": token,
            "Content-Type": "application/json",
        },
    )
    try:
        with urllib.request.urlopen(req, timeout=HTTP_TIMEOUT_SECONDS) as resp:
            return resp.status, resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as exc:
        text = exc.read().decode("utf-8", errors="replace")
        logger.error("GitLab %s %s failed: %s %s", method, url, exc.code, text)
        return exc.code, text


# ---------------------------------------------------------------------------
# Hook id bookkeeping (SSM)
# ---------------------------------------------------------------------------


def _read_hook_id(parameter_name: str) -> Optional[str]:
    try:
        resp = _get_ssm().get_parameter(Name=parameter_name)
    except ClientError as exc:
        if exc.response.get("Error", {}).get("Code") == "ParameterNotFound":
            return None
        raise
    return (resp.get("Parameter") or {}).get("Value") or None


def _store_hook_id(parameter_name: str, hook_id: str) -> None:
    _get_ssm().put_parameter(Name=parameter_name, Value=hook_id, Type="String", Overwrite=True)


def _delete_hook_id(parameter_name: str) -> None:
    _get_ssm().delete_parameter(Name=parameter_name)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def _create_or_update_webhook(
    *,
    api_url: str,
    project_id: str,
    webhook_url: str,
    branch: str,
    gitlab_token: str,
    validation_token: str,
    parameter_name: str,
    request_type: str,
) -> Dict[str, Any]:
    method = "POST"
    url = f"{api_url}/projects/{project_id}/hooks"

    if request_type == "Update":
        hook_id = _read_hook_id(parameter_name)
        if not hook_id:
            return _failed("Webhook ID not found in Parameter Store")
        method = "PUT"
        url = f"{url}/{hook_id}"

    status, text = _gitlab_request(method, url, gitlab_token, {
        "name": f"aws-codepipeline-webhook-{branch}",
        "url": webhook_url,
        "push_events": True,
        "merge_requests_events": True,
        "push_events_branch_filter": branch,
        "token": validation_token,
    })
    if status not in (200, 201):
        return _failed(text)

    data = json.loads(text)
    _store_hook_id(parameter_name, str(data["id"]))
    logger.info("[SUCCESS] %s webhook %s for project %s", request_type, data["id"], project_id)
    return {
        "Status": "SUCCESS",
        "PhysicalResourceId": _physical_id(project_id),
        "Data": data,
    }


def _delete_webhook(
    *, api_url: str, project_id: str, gitlab_token: str, parameter_name: str
) -> Dict[str, Any]:
    hook_id = _read_hook_id(parameter_name)
    if not hook_id:
        return _failed("Webhook ID not found in Parameter Store")

    status, text = _gitlab_request(
        "DELETE", f"{api_url}/projects/{project_id}/hooks/{hook_id}", gitlab_token
    )
    _delete_hook_id(parameter_name)

    if status == 204:
        logger.info("[SUCCESS] Deleted webhook %s for project %s", hook_id, project_id)
        return {"Status": "SUCCESS", "PhysicalResourceId": _physical_id(project_id)}
    return _failed(text)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    props = event.get("ResourceProperties") or {}
    project_id = props.get("projectId")
    request_type = event.get("RequestType")
    logger.info("Webhook custom resource %s for project %s", request_type, project_id)

    try:
        gitlab_url = props.get("gitlabUrl")
        if not gitlab_url:
            return _failed("GITLAB_URL is required and could not be retrieved", project_id)
        if not project_id:
            return _failed("PROJECT_ID is required and could not be retrieved", project_id)

        api_url = f"https://{gitlab_url}/{API_PATH}"
        gitlab_token = get_secret_string(os.environ["GITLAB_TOKEN"])
        parameter_name = os.environ["GITLAB_WEBHOOK_PARAMETER_NAME"]

        if request_type in ("Create", "Update"):
            branch = props.get("branch")
            webhook_url = props.get("webhookUrl")
            if not branch or not webhook_url:
                return _failed("Missing required properties for create/update operation", project_id)
            return _create_or_update_webhook(
                api_url=api_url,
                project_id=project_id,
                webhook_url=webhook_url,
                branch=branch,
                gitlab_token=gitlab_token,
                validation_token=get_secret_string(os.environ["X_GITLAB_TOKEN"]),
                parameter_name=parameter_name,
                request_type=request_type,
            )

        if request_type == "Delete":
            return _delete_webhook(
                api_url=api_url,
                project_id=project_id,
                gitlab_token=gitlab_token,
                parameter_name=parameter_name,
            )

        return {"Status": "SUCCESS", "PhysicalResourceId": _physical_id(project_id)}
    except Exception as exc:
        logger.error("[ERROR] Webhook custom resource %s failed: %s", request_type, exc, exc_info=True)
        return _failed(str(exc), project_id)
