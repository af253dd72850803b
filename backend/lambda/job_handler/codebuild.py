"""codebuild.py — CodeBuild operations used to perform the repository pull.

Starts the clone build (optionally redirecting its artifact to the location the
pipeline job expects) and reads back build status.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from config import logger

__all__ = [
    "ArtifactOverride",
    "Build",
    "BuildGateway",
    "DEFAULT_ARTIFACT_NAME",
    "IN_PROGRESS",
    "SUCCEEDED",
    "TERMINAL_FAILURE_STATUSES",
    "split_object_key",
]

DEFAULT_ARTIFACT_NAME = "output.zip"

IN_PROGRESS = "IN_PROGRESS"
SUCCEEDED = "SUCCEEDED"
TERMINAL_FAILURE_STATUSES = frozenset({"FAILED", "FAULT", "STOPPED", "TIMED_OUT"})


def split_object_key(object_key: Optional[str]) -> Tuple[str, str]:
    """Split an S3 key into (path, name).

    "a/b/out.zip" -> ("a/b", "out.zip"); "out.zip" -> ("", "out.zip");
    None, "" or a trailing slash fall back to DEFAULT_ARTIFACT_NAME.
    """
    parts = object_key.split("/") if object_key else []
    name = parts.pop() if parts else ""
    return "/".join(parts), name or DEFAULT_ARTIFACT_NAME


@dataclass(frozen=True)
class ArtifactOverride:
    bucket: Optional[str]
    path: str
    name: str
    packaging: str = "ZIP"
    namespace_type: str = "NONE"

    @classmethod
    def for_object_key(cls, bucket: Optional[str], object_key: Optional[str]) -> "ArtifactOverride":
        path, name = split_object_key(object_key)
        return cls(bucket=bucket, path=path, name=name)

    def to_request(self) -> Dict[str, Any]:
        return {
            "type": "S3",
            "location": self.bucket,
            "path": self.path,
            "name": self.name,
            "packaging": self.packaging,
            "namespaceType": self.namespace_type,
        }


@dataclass(frozen=True)
class Build:
    build_id: str
    status: Optional[str]
    phase: Optional[str] = None


class BuildGateway:
    """Build service operations backed by a boto3 ``codebuild`` client."""

    def __init__(self, client) -> None:
        self._client = client

    def start_build(
        self,
        project_name: str,
        artifact_override: Optional[ArtifactOverride] = None,
    ) -> Optional[str]:
        """Start a build and return its id (None if CodeBuild returned none)."""
        params: Dict[str, Any] = {
            "projectName": project_name,
            "logsConfigOverride": {"cloudWatchLogs": {"status": "ENABLED"}},
        }
        if artifact_override is not None:
            params["artifactsOverride"] = artifact_override.to_request()

        logger.info("Initiating repository pull for project: %s", project_name)
        logger.debug("Starting build with params: %s", json.dumps(params))
        resp = self._client.start_build(**params)
        return ((resp or {}).get("build") or {}).get("id")

    def get_build(self, build_id: str) -> Build:
        """Fetch current status; a build CodeBuild cannot find yet has status None."""
        resp = self._client.batch_get_builds(ids=[build_id]) or {}
        builds = resp.get("builds") or []
        if not builds:
            if build_id in (resp.get("buildsNotFound") or []):
                logger.warning("Build %s not found yet", build_id)
            return Build(build_id=build_id, status=None)
        build = builds[0]
        return Build(
            build_id=build.get("id") or build_id,
            status=build.get("buildStatus"),
            phase=build.get("currentPhase"),
        )
