import base64

import pytest

from rustytablet.security.secrets import decrypt_secret, encrypt_secret, load_secret_box


def _set_master_env(monkeypatch):
    key = base64.urlsafe_b64encode(b"a" * 32).decode("utf-8")
    monkeypatch.setenv("RUSTYTABLET_MASTER_KEY", key)
    monkeypatch.setenv("RUSTYTABLET_KEY_ID", "v1")


def test_encrypt_decrypt_roundtrip(monkeypatch):
    _set_master_env(monkeypatch)
    key_id, blob = encrypt_secret("supersecret", b"credential:GEMINI_API_KEY")
    assert key_id == "v1"
    assert decrypt_secret(blob, b"credential:GEMINI_API_KEY") == "supersecret"


def test_encrypt_decrypt_aad_mismatch(monkeypatch):
    _set_master_env(monkeypatch)
    _, blob = encrypt_secret("supersecret", b"credential:GEMINI_API_KEY")
    with pytest.raises(Exception):
        decrypt_secret(blob, b"credential:UNSPLASH_ACCESS_KEY")


def test_short_master_key_rejected(monkeypatch):
    monkeypatch.setenv("RUSTYTABLET_MASTER_KEY", base64.urlsafe_b64encode(b"a" * 16).decode())
    with pytest.raises(ValueError, match="32 bytes"):
        load_secret_box()
