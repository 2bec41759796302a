import logging

import pytest

from rustytablet.config import build_config
from rustytablet.engine import remote
from rustytablet.engine.errors import GenerationError
from rustytablet.engine.remote import call_remote_engine
from rustytablet.httpclient import HttpCallError

LOGGER = logging.getLogger("rustytablet.tests")
PARAMS = {"mode": "MANUAL", "config": {"content_input": "hello"}}


@pytest.fixture
def remote_config(runtime_cfg):
    runtime_cfg["engine"]["endpoint_url"] = "https://engine.example/engine/generate"
    return build_config(runtime_cfg)


def test_posts_descriptor_with_bearer(remote_config, monkeypatch):
    monkeypatch.setenv("RT_CRON_SECRET", "s3cret")
    calls = []

    def _fake(method, url, *, headers=None, payload=None, timeout=30):
        calls.append((method, url, headers, payload))
        return {"success": True, "post_id": 9, "title": "Remote"}

    monkeypatch.setattr(remote, "request_json", _fake)
    result = call_remote_engine(remote_config, PARAMS, logger=LOGGER)

    assert result["post_id"] == 9
    method, url, headers, payload = calls[0]
    assert (method, url) == ("POST", "https://engine.example/engine/generate")
    assert headers == {"Authorization": "Bearer s3cret"}
    assert payload == PARAMS


def test_http_error_body_becomes_message(remote_config, monkeypatch):
    def _fake(*args, **kwargs):
        raise HttpCallError("http_error 500", 500, '{"success": false, "error": "No RSS items"}')

    monkeypatch.setattr(remote, "request_json", _fake)
    with pytest.raises(GenerationError, match="No RSS items"):
        call_remote_engine(remote_config, PARAMS, logger=LOGGER)


def test_unsuccessful_body_is_failure(remote_config, monkeypatch):
    monkeypatch.setattr(remote, "request_json", lambda *args, **kwargs: {"success": False})
    with pytest.raises(GenerationError):
        call_remote_engine(remote_config, PARAMS, logger=LOGGER)