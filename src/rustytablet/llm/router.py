from __future__ import annotations

import logging
import urllib.parse
from typing import Any

from ..config import LlmConfig
from ..httpclient import request_json
from ..utils import log_event

PROVIDER_TYPES = ("google", "openai_compatible", "anthropic")


def generate_text(
    llm: LlmConfig,
    api_key: str | None,
    prompt: str,
    *,
    logger: logging.Logger | None = None,
    json_mode: bool = True,
) -> str:
    """Send a single-turn prompt to the configured provider and return raw text."""
    logger = logger or logging.getLogger("rustytablet.engine")
    base_url = llm.base_url or _default_base_url(llm.provider)
    params = {"temperature": llm.temperature, "max_tokens": llm.max_output_tokens}
    log_event(logger, logging.DEBUG, "llm_request", provider=llm.provider, model=llm.model)
    return _call_provider(
        llm.provider,
        base_url,
        api_key,
        llm.model,
        prompt,
        params,
        llm.timeout_seconds,
        json_mode,
    )


def _call_provider(
    provider_type: str,
    base_url: str,
    api_key: str | None,
    model_name: str,
    prompt: str,
    params: dict[str, Any],
    timeout: int,
    json_mode: bool,
) -> str:
    if provider_type == "openai_compatible":
        path = _join_url(base_url, "/chat/completions")
        payload: dict[str, Any] = {
            "model": model_name,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": params["temperature"],
            "max_tokens": params["max_tokens"],
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        headers = _auth_headers(provider_type, api_key)
        response = request_json("POST", path, headers=headers, payload=payload, timeout=timeout)
        return _read_openai(response)
    if provider_type == "anthropic":
        path = _join_url(base_url, "/messages")
        payload = {
            "model": model_name,
            "max_tokens": int(params["max_tokens"]),
            "temperature": params["temperature"],
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = _auth_headers(provider_type, api_key)
        response = request_json("POST", path, headers=headers, payload=payload, timeout=timeout)
        return _read_anthropic(response)
    if provider_type == "google":
        path = _join_url(
            base_url,
            f"/models/{urllib.parse.quote(model_name)}:generateContent",
        )
        path = _append_key(path, api_key)
        generation_config: dict[str, Any] = {
            "temperature": params["temperature"],
            "maxOutputTokens": params["max_tokens"],
        }
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        response = request_json("POST", path, headers={}, payload=payload, timeout=timeout)
        return _read_google(response)
    raise ValueError("unsupported_provider_type")


def _read_openai(response: dict[str, Any]) -> str:
    choices = response.get("choices") or []
    if not choices:
        raise ValueError("openai_missing_choices")
    return choices[0]["message"]["content"] or ""


def _read_anthropic(response: dict[str, Any]) -> str:
    content = response.get("content") or []
    if not content:
        raise ValueError("anthropic_missing_content")
    return content[0].get("text") or ""


def _read_google(response: dict[str, Any]) -> str:
    candidates = response.get("candidates") or []
    if not candidates:
        feedback = response.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise ValueError(f"google_blocked: {feedback['blockReason']}")
        raise ValueError("google_missing_candidates")
    parts = candidates[0].get("content", {}).get("parts", [])
    if not parts:
        raise ValueError("google_missing_parts")
    return parts[0].get("text") or ""


def _auth_headers(provider_type: str, api_key: str | None) -> dict[str, str]:
    if not api_key:
        return {}
    if provider_type == "openai_compatible":
        return {"Authorization": f"Bearer {api_key}"}
    if provider_type == "anthropic":
        return {"x-api-key": api_key, "anthropic-version": "2023-06-01"}
    return {}


def _default_base_url(provider_type: str) -> str:
    if provider_type == "openai_compatible":
        return "https://api.openai.com/v1"
    if provider_type == "anthropic":
        return "https://api.anthropic.com/v1"
    if provider_type == "google":
        return "https://generativelanguage.googleapis.com/v1beta"
    return ""


def _append_key(url: str, api_key: str | None) -> str:
    if not api_key:
        return url
    parsed = urllib.parse.urlsplit(url)
    query = urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
    query.append(("key", api_key))
    return urllib.parse.urlunsplit(
        (parsed.scheme, parsed.netloc, parsed.path, urllib.parse.urlencode(query), parsed.fragment)
    )


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + path
