from __future__ import annotations

import os
from typing import Any

from ..config import CredentialMissingError
from ..security.secrets import decrypt_secret, encrypt_secret, master_key_configured
from ..utils import utc_now_iso

CREDENTIAL_NAMES = (
    "GEMINI_API_KEY",
    "UNSPLASH_ACCESS_KEY",
    "NEWSAPI_AI_KEY",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
)

LLM_PROVIDER_CREDENTIALS = {
    "google": "GEMINI_API_KEY",
    "openai_compatible": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


def get_credential(conn: Any, name: str) -> str | None:
    """Return the credential from the environment, else the encrypted store."""
    value = os.environ.get(name, "").strip()
    if value:
        return value
    if not master_key_configured():
        return None
    row = conn.execute("SELECT value_enc FROM credentials WHERE name = ?", (name,)).fetchone()
    if not row:
        return None
    return decrypt_secret(row[0], _credential_aad(name))


def require_credential(conn: Any, name: str) -> str:
    value = get_credential(conn, name)
    if not value:
        raise CredentialMissingError(f"{name} is not configured")
    return value


def set_credential(conn: Any, name: str, value: str) -> dict[str, Any]:
    _check_name(name)
    if not value:
        raise ValueError("credential_value_required")
    key_id, value_enc = encrypt_secret(value, _credential_aad(name))
    last4 = value[-4:] if len(value) >= 4 else value
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO credentials (name, key_id, value_enc, value_last4, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(name) DO UPDATE SET
            key_id=excluded.key_id,
            value_enc=excluded.value_enc,
            value_last4=excluded.value_last4,
            updated_at=excluded.updated_at
        """,
        (name, key_id, value_enc, last4, now, now),
    )
    conn.commit()
    return {"name": name, "last4": last4, "updated_at": now}


def clear_credential(conn: Any, name: str) -> bool:
    _check_name(name)
    cursor = conn.execute("DELETE FROM credentials WHERE name = ?", (name,))
    conn.commit()
    return cursor.rowcount > 0


def list_credentials(conn: Any) -> list[dict[str, Any]]:
    stored = {
        row[0]: {"last4": row[1], "updated_at": row[2]}
        for row in conn.execute(
            "SELECT name, value_last4, updated_at FROM credentials ORDER BY name"
        ).fetchall()
    }
    items: list[dict[str, Any]] = []
    for name in CREDENTIAL_NAMES:
        if os.environ.get(name, "").strip():
            source = "env"
        elif name in stored:
            source = "stored"
        else:
            source = None
        entry = stored.get(name, {})
        items.append(
            {
                "name": name,
                "configured": source is not None,
                "source": source,
                "last4": entry.get("last4") or "",
                "updated_at": entry.get("updated_at"),
            }
        )
    return items


def _check_name(name: str) -> None:
    if name not in CREDENTIAL_NAMES:
        raise ValueError("unknown_credential")


def _credential_aad(name: str) -> bytes:
    return f"credential:{name}".encode("utf-8")
