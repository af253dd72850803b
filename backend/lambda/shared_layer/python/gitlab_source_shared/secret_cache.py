"""gitlab_source_shared.secret_cache — TTL-cached Secrets Manager lookups.

Webhook secrets and GitLab tokens change rarely; warm Lambda containers reuse
the cached value until it expires.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional, Tuple

from gitlab_source_shared.aws_clients import _get_secretsmanager

logger = logging.getLogger(__name__)

SECRET_TTL_SECONDS: float = 3600.0

_secret_cache: Dict[str, Tuple[str, float]] = {}


def get_secret_string(secret_id: str, client=None) -> str:
    """Fetch ``SecretString`` for ``secret_id`` (cached for SECRET_TTL_SECONDS).

    Raises:
        ValueError: the secret has no string value.
        botocore.exceptions.ClientError: Secrets Manager rejected the call.
    """
    now = time.time()
    cached = _secret_cache.get(secret_id)
    if cached and (now - cached[1]) < SECRET_TTL_SECONDS:
        return cached[0]

    sm = client or _get_secretsmanager()
    resp = sm.get_secret_value(SecretId=secret_id)
    value = resp.get("SecretString")
    if not value:
        raise ValueError(f"Secret {secret_id} has an empty SecretString")
    _secret_cache[secret_id] = (value, now)
    return value


def try_get_secret_string(secret_id: str, client=None) -> Optional[str]:
    """Like ``get_secret_string`` but returns None (and logs) on any failure."""
    try:
        return get_secret_string(secret_id, client=client)
    except Exception as exc:
        logger.error("Error retrieving secret %s: %s", secret_id, exc)
        return None


def clear_cache() -> None:
    _secret_cache.clear()
