"""
Credential storage backend (SQLite).

Holds the single live access/refresh token pair. The pair is stored as one
JSON value under one key, so replacing it is a single statement and the two
tokens can never be observed half-updated.
"""
import base64
import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)

CREDENTIAL_KEY = "credentials"


@dataclass(frozen=True)
class Credential:
    access_token: str
    refresh_token: str = ""


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def decode_jwt_payload(token: str) -> Optional[Dict[str, Any]]:
    """Decode the (unverified) payload segment of a JWT. Returns None if malformed."""
    try:
        segment = token.split(".")[1]
        padded = segment + "=" * (-len(segment) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (IndexError, ValueError, UnicodeError):
        return None
    return payload if isinstance(payload, dict) else None


class CredentialStore:
    """SQLite-backed store for the session's credential pair."""

    def __init__(self, db_path: str = None, expiry_leeway: int = 5):
        """Initialize store and create the table if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "pcp-kanban" / "session.db")
        self.db_path = db_path
        self.expiry_leeway = expiry_leeway
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()
        self._cached: Optional[Credential] = self._load()

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS system_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def _load(self) -> Optional[Credential]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT value FROM system_state WHERE key = ?", (CREDENTIAL_KEY,)
            ).fetchone()
        if not row:
            return None
        try:
            data = json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable stored credentials")
            return None
        if not data.get("access_token"):
            return None
        return Credential(data["access_token"], data.get("refresh_token") or "")

    def set(self, credential: Credential) -> None:
        """Replace the live pair and persist it."""
        now = datetime.now(timezone.utc).isoformat()
        value = json.dumps({
            "access_token": credential.access_token,
            "refresh_token": credential.refresh_token,
        })
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO system_state (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
            """, (CREDENTIAL_KEY, value, now))
            conn.commit()
        self._cached = credential

    def update_access_token(self, access_token: str, refresh_token: Optional[str] = None) -> Credential:
        """Store a refreshed access token, keeping the current refresh token unless a new one is given."""
        current = self._cached.refresh_token if self._cached else ""
        credential = Credential(access_token, refresh_token or current)
        self.set(credential)
        return credential

    def get(self) -> Optional[Credential]:
        return self._cached

    def clear(self) -> None:
        with _connect(self.db_path) as conn:
            conn.execute("DELETE FROM system_state WHERE key = ?", (CREDENTIAL_KEY,))
            conn.commit()
        self._cached = None
        logger.info("Credentials cleared")

    def is_expired(self, now: Optional[float] = None) -> bool:
        """
        Check the access token's exp claim without touching the network.

        No token at all counts as expired. A token whose exp cannot be read
        counts as valid.
        """
        if not self._cached or not self._cached.access_token:
            return True
        payload = decode_jwt_payload(self._cached.access_token)
        if not payload or not isinstance(payload.get("exp"), (int, float)):
            return False
        now = time.time() if now is None else now
        return payload["exp"] <= now + self.expiry_leeway
