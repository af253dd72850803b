"""gitlab_source_shared.http_utils — API Gateway proxy response helpers.

Standard response envelope, JSON body parsing and header lookup used by the
webhook receiver Lambda.
"""

from __future__ import annotations

import base64
import json
from typing import Any, Dict, Optional


def _response(status_code: int, body: Any) -> Dict[str, Any]:
    """Build an API Gateway proxy response with a JSON body."""
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body, default=str),
    }


def _error(status_code: int, message: str) -> Dict[str, Any]:
    """Build an error response whose body is the bare JSON-encoded message."""
    return _response(status_code, message)


def _parse_body(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Parse a JSON object body from an API Gateway event (handles base64).

    Returns None when the body is missing, malformed, or not an object.
    """
    raw = event.get("body")
    if raw in (None, ""):
        return None
    if isinstance(raw, dict):
        return raw
    if event.get("isBase64Encoded"):
        raw = base64.b64decode(raw).decode("utf-8")
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _header(event: Dict[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    headers = event.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if str(key).lower() == wanted:
            return value
    return None
