from __future__ import annotations

import json
import logging
from typing import Any

from ..config import Config, get_cron_secret
from ..httpclient import HttpCallError, request_json
from ..utils import log_event
from .errors import GenerationError


def call_remote_engine(
    config: Config, job_params: dict[str, Any], logger: logging.Logger
) -> dict[str, Any]:
    """POST a descriptor to a separately deployed engine endpoint."""
    headers = {}
    secret = get_cron_secret()
    if secret:
        headers["Authorization"] = f"Bearer {secret}"
    try:
        result = request_json(
            "POST",
            config.engine.endpoint_url,
            headers=headers,
            payload=job_params,
            timeout=config.llm.timeout_seconds,
        )
    except HttpCallError as exc:
        detail = _error_detail(exc.body) or str(exc)
        log_event(logger, logging.WARNING, "remote_engine_failed", status=exc.status, error=detail)
        raise GenerationError(detail) from exc
    if not result.get("success"):
        raise GenerationError(str(result.get("error") or "Phantom Engine failed"))
    return result


def _error_detail(body: str | None) -> str | None:
    if not body:
        return None
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body[:500]
    if isinstance(data, dict):
        detail = data.get("error") or data.get("detail")
        if detail:
            return str(detail)
    return body[:500]
