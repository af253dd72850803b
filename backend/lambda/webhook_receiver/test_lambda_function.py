"""webhook_receiver tests — token validation and pipeline start."""

from __future__ import annotations

import importlib.util
import json
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

_SPEC = importlib.util.spec_from_file_location(
    "webhook_receiver",
    os.path.join(os.path.dirname(__file__), "lambda_function.py"),
)
webhook_receiver = importlib.util.module_from_spec(_SPEC)
assert _SPEC and _SPEC.loader
sys.modules[_SPEC.name] = webhook_receiver
_SPEC.loader.exec_module(webhook_receiver)

ENV = {"PIPELINE_NAME": "gitlab-pipeline", "X_GITLAB_TOKEN_ARN": "arn:aws:secretsmanager:token"}

PUSH = {
    "object_kind": "push",
    "before": "0000aaaa",
    "commits": [
        {
            "id": "abc123",
            "message": "Fix build\n\nDetails",
            "url": "https://gitlab.example.com/group/repo/-/commit/abc123",
            "author": {"name": "Dev", "email": "dev@example.com"},
        }
    ],
}


def _event(body=PUSH, token: str | None = "expected-token") -> dict:
    headers = {"Content-Type": "application/json"}
    if token is not None:
        headers["X-Gitlab-Token"] = token
    return {"headers": headers, "body": json.dumps(body) if isinstance(body, dict) else body}


@patch.dict(os.environ, ENV, clear=False)
class WebhookReceiverTests(unittest.TestCase):
    def setUp(self) -> None:
        self.codepipeline = MagicMock()
        self.codepipeline.start_pipeline_execution.return_value = {"pipelineExecutionId": "exec-1"}
        cp_patch = patch.object(webhook_receiver, "_get_codepipeline", return_value=self.codepipeline)
        secret_patch = patch.object(
            webhook_receiver, "try_get_secret_string", return_value="expected-token"
        )
        self.mock_get_cp = cp_patch.start()
        self.mock_secret = secret_patch.start()
        self.addCleanup(cp_patch.stop)
        self.addCleanup(secret_patch.stop)

    def test_valid_push_starts_pipeline_with_commit_variables(self) -> None:
        resp = webhook_receiver.lambda_handler(_event(), None)

        self.assertEqual(resp["statusCode"], 200)
        body = json.loads(resp["body"])
        self.assertEqual(body["pipelineExecutionId"], "exec-1")
        self.assertEqual(body["pipelineName"], "gitlab-pipeline")

        kwargs = self.codepipeline.start_pipeline_execution.call_args.kwargs
        self.assertEqual(kwargs["name"], "gitlab-pipeline")
        self.assertTrue(kwargs["clientRequestToken"].startswith("webhook-"))
        variables = {v["name"]: v["value"] for v in kwargs["variables"]}
        self.assertEqual(variables["BranchHash"], "0000aaaa")
        self.assertEqual(variables["CommitId"], "abc123")
        self.assertEqual(variables["CommitMessage"], "Fix build  Details")
        self.assertEqual(variables["AuthorEmail"], "dev@example.com")
        self.mock_secret.assert_called_once_with("arn:aws:secretsmanager:token")

    def test_long_commit_message_is_truncated_to_variable_limit(self) -> None:
        commit = dict(PUSH["commits"][0], message="m" * 1500)

        resp = webhook_receiver.lambda_handler(_event({**PUSH, "commits": [commit]}), None)

        self.assertEqual(resp["statusCode"], 200)
        kwargs = self.codepipeline.start_pipeline_execution.call_args.kwargs
        message = {v["name"]: v["value"] for v in kwargs["variables"]}["CommitMessage"]
        self.assertEqual(len(message), webhook_receiver.VARIABLE_VALUE_MAX_LENGTH)
        self.assertTrue(message.endswith("..."))

    def test_push_without_commits_omits_variables(self) -> None:
        resp = webhook_receiver.lambda_handler(_event({"before": "x", "commits": []}), None)

        self.assertEqual(resp["statusCode"], 200)
        self.assertNotIn("variables", self.codepipeline.start_pipeline_execution.call_args.kwargs)

    def test_missing_header_is_bad_request(self) -> None:
        resp = webhook_receiver.lambda_handler(_event(token=None), None)

        self.assertEqual(resp["statusCode"], 400)
        self.assertEqual(json.loads(resp["body"]), "X-Gitlab-Token header is required")
        self.codepipeline.start_pipeline_execution.assert_not_called()

    def test_lowercase_header_accepted(self) -> None:
        event = {"headers": {"x-gitlab-token": "expected-token"}, "body": json.dumps(PUSH)}

        resp = webhook_receiver.lambda_handler(event, None)

        self.assertEqual(resp["statusCode"], 200)

    def test_missing_pipeline_env_is_bad_request(self) -> None:
        with patch.dict(os.environ, {"PIPELINE_NAME": ""}):
            resp = webhook_receiver.lambda_handler(_event(), None)

        self.assertEqual(resp["statusCode"], 400)
        self.assertIn("PIPELINE_NAME", json.loads(resp["body"]))

    def test_wrong_token_is_unauthorized(self) -> None:
        resp = webhook_receiver.lambda_handler(_event(token="wrong"), None)

        self.assertEqual(resp["statusCode"], 401)
        self.assertEqual(json.loads(resp["body"]), "Not Authorized")
        self.codepipeline.start_pipeline_execution.assert_not_called()

    def test_unavailable_secret_is_bad_request(self) -> None:
        self.mock_secret.return_value = None

        resp = webhook_receiver.lambda_handler(_event(), None)

        self.assertEqual(resp["statusCode"], 400)
        self.codepipeline.start_pipeline_execution.assert_not_called()

    def test_invalid_json_is_bad_request(self) -> None:
        resp = webhook_receiver.lambda_handler(_event(body="{not json"), None)

        self.assertEqual(resp["statusCode"], 400)

    def test_start_failure_is_server_error(self) -> None:
        self.codepipeline.start_pipeline_execution.side_effect = ClientError(
            {"Error": {"Code": "PipelineNotFoundException", "Message": "missing"}},
            "StartPipelineExecution",
        )

        resp = webhook_receiver.lambda_handler(_event(), None)

        self.assertEqual(resp["statusCode"], 500)
        self.assertIn("gitlab-pipeline", json.loads(resp["body"]))


if __name__ == "__main__":
    unittest.main()
