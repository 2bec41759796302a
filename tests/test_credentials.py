import base64

import pytest

from rustytablet.config import CredentialMissingError
from rustytablet.services.credentials import (
    clear_credential,
    get_credential,
    list_credentials,
    require_credential,
    set_credential,
)


@pytest.fixture
def master_key(monkeypatch):
    monkeypatch.setenv("RUSTYTABLET_MASTER_KEY", base64.urlsafe_b64encode(b"k" * 32).decode())


def test_stored_credential_is_encrypted(conn, master_key):
    stored = set_credential(conn, "UNSPLASH_ACCESS_KEY", "unsplash-abcd")
    assert stored["last4"] == "abcd"

    raw = conn.execute(
        "SELECT value_enc FROM credentials WHERE name = ?", ("UNSPLASH_ACCESS_KEY",)
    ).fetchone()[0]
    assert "unsplash-abcd" not in raw
    assert get_credential(conn, "UNSPLASH_ACCESS_KEY") == "unsplash-abcd"


def test_environment_wins_over_store(conn, master_key, monkeypatch):
    set_credential(conn, "GEMINI_API_KEY", "stored-key")
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    assert get_credential(conn, "GEMINI_API_KEY") == "env-key"


def test_list_reports_source_without_values(conn, master_key, monkeypatch):
    set_credential(conn, "NEWSAPI_AI_KEY", "news-1234")
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    items = {item["name"]: item for item in list_credentials(conn)}

    assert items["GEMINI_API_KEY"]["source"] == "env"
    assert items["NEWSAPI_AI_KEY"]["source"] == "stored"
    assert items["NEWSAPI_AI_KEY"]["last4"] == "1234"
    assert items["UNSPLASH_ACCESS_KEY"]["configured"] is False
    assert all("value" not in item for item in items.values())


def test_clear_and_require(conn, master_key):
    set_credential(conn, "NEWSAPI_AI_KEY", "news-1234")
    assert clear_credential(conn, "NEWSAPI_AI_KEY") is True
    assert clear_credential(conn, "NEWSAPI_AI_KEY") is False
    with pytest.raises(CredentialMissingError, match="NEWSAPI_AI_KEY is not configured"):
        require_credential(conn, "NEWSAPI_AI_KEY")


def test_unknown_name_rejected(conn, master_key):
    with pytest.raises(ValueError, match="unknown_credential"):
        set_credential(conn, "AWS_SECRET", "nope")
