"""gitlab_source_shared.aws_clients — Lazy-singleton AWS service clients.

CodePipeline, CodeBuild, Secrets Manager and SSM clients shared by the job
handler and webhook Lambdas. Each is built on first use and reused across
warm invocations.
"""

from __future__ import annotations

import os
from typing import Optional

import boto3
from botocore.config import Config

# ---------------------------------------------------------------------------
# Default region (overridable via env)
# ---------------------------------------------------------------------------

AWS_REGION: Optional[str] = os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

_codepipeline = None
_codebuild = None
_secretsmanager = None
_ssm = None


def _get_codepipeline(region: Optional[str] = None):
    """Get (or create) the CodePipeline client singleton."""
    global _codepipeline
    if _codepipeline is None:
        _codepipeline = boto3.client(
            "codepipeline",
            region_name=region or AWS_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _codepipeline


def _get_codebuild(region: Optional[str] = None):
    """Get (or create) the CodeBuild client singleton."""
    global _codebuild
    if _codebuild is None:
        _codebuild = boto3.client(
            "codebuild",
            region_name=region or AWS_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _codebuild


def _get_secretsmanager(region: Optional[str] = None):
    """Get (or create) the Secrets Manager client singleton."""
    global _secretsmanager
    if _secretsmanager is None:
        _secretsmanager = boto3.client(
            "secretsmanager",
            region_name=region or AWS_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _secretsmanager


def _get_ssm(region: Optional[str] = None):
    """Get (or create) the SSM client singleton."""
    global _ssm
    if _ssm is None:
        _ssm = boto3.client(
            "ssm",
            region_name=region or AWS_REGION,
            config=Config(retries={"max_attempts": 5, "mode": "standard"}),
        )
    return _ssm
