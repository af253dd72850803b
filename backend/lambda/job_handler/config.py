"""config.py — Job handler configuration — environment variables, retry constants, logging.

Environment variables:
    PROJECT_NAME                    (required) CodeBuild project that clones the repository
    VERSION                         (required) custom action type version
    ACTION_PROVIDER                 default: GitLabSourceActionProvider
    BUILD_STATUS_RETRYABLE_ERRORS   default: ThrottlingException,ResourceNotFoundException
    LOG_LEVEL                       default: INFO
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import FrozenSet, Mapping, Optional

from errors import ConfigurationFailure

__all__ = [
    "ACTION_CATEGORY",
    "ACTION_OWNER",
    "BUILD_POLL_BASE_DELAY_SECONDS",
    "BUILD_POLL_MAX_ATTEMPTS",
    "DEFAULT_ACTION_PROVIDER",
    "DEFAULT_BUILD_STATUS_RETRYABLE_ERRORS",
    "DEFAULT_RETRYABLE_ERROR_CODES",
    "JOB_POLL_BASE_DELAY_SECONDS",
    "JOB_POLL_MAX_ATTEMPTS",
    "REQUIRED_ENV_VARS",
    "Settings",
    "load_settings",
    "logger",
]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ACTION_CATEGORY = "Source"
ACTION_OWNER = "Custom"
DEFAULT_ACTION_PROVIDER = "GitLabSourceActionProvider"
DEFAULT_BUILD_STATUS_RETRYABLE_ERRORS = "ThrottlingException,ResourceNotFoundException"

REQUIRED_ENV_VARS = ("PROJECT_NAME", "VERSION")

JOB_POLL_MAX_ATTEMPTS = 3
JOB_POLL_BASE_DELAY_SECONDS = 1.0

BUILD_POLL_MAX_ATTEMPTS = 10
BUILD_POLL_BASE_DELAY_SECONDS = 4.0


def _normalize_codes(*raw_values: str) -> FrozenSet[str]:
    """Return non-empty codes from csv env sources."""
    codes = set()
    for raw in raw_values:
        if not raw:
            continue
        for part in str(raw).split(","):
            code = part.strip()
            if code:
                codes.add(code)
    return frozenset(codes)


DEFAULT_RETRYABLE_ERROR_CODES: FrozenSet[str] = _normalize_codes(DEFAULT_BUILD_STATUS_RETRYABLE_ERRORS)


@dataclass(frozen=True)
class Settings:
    project_name: str
    version: str
    provider: str = DEFAULT_ACTION_PROVIDER
    build_status_retryable_errors: FrozenSet[str] = DEFAULT_RETRYABLE_ERROR_CODES

    @property
    def action_type_id(self) -> dict:
        return {
            "category": ACTION_CATEGORY,
            "owner": ACTION_OWNER,
            "provider": self.provider,
            "version": self.version,
        }


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Read job handler settings, raising ConfigurationFailure for missing values."""
    env = os.environ if environ is None else environ
    missing = [name for name in REQUIRED_ENV_VARS if not (env.get(name) or "").strip()]
    if missing:
        raise ConfigurationFailure(
            "; ".join(f"{name} environment variable is not set" for name in missing)
        )

    return Settings(
        project_name=env["PROJECT_NAME"].strip(),
        version=env["VERSION"].strip(),
        provider=(env.get("ACTION_PROVIDER") or "").strip() or DEFAULT_ACTION_PROVIDER,
        build_status_retryable_errors=_normalize_codes(
            env.get("BUILD_STATUS_RETRYABLE_ERRORS") or DEFAULT_BUILD_STATUS_RETRYABLE_ERRORS
        ),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

logger = logging.getLogger()
logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
