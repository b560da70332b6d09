"""Encrypted SQLite key-value adapter.

Implements the core SecureStorePort. Values are sealed with AES-GCM before
they touch disk; the key name is bound as associated data so a value cannot be
moved to another key.
"""

from __future__ import annotations

import base64
import binascii
import os
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from shroud.core.errors import StorageError

NONCE_BYTES = 12
KEY_BYTES = 32


def generate_store_key() -> str:
    """Return a new random store key, base64url encoded for the .env file."""

    return base64.urlsafe_b64encode(AESGCM.generate_key(bit_length=KEY_BYTES * 8)).decode("ascii")


def decode_store_key(encoded: str) -> bytes:
    try:
        key = base64.urlsafe_b64decode(encoded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise StorageError("STORE_KEY is not valid base64") from exc
    if len(key) != KEY_BYTES:
        raise StorageError(f"STORE_KEY must decode to {KEY_BYTES} bytes")
    return key


class SQLiteSecureStore:
    """Thin SQLite wrapper that satisfies the SecureStorePort contract."""

    def __init__(self, db_path: str, key: bytes) -> None:
        self._db_path = db_path
        self._aead = AESGCM(key)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the kv table if it does not exist.

        Fields:
        - key: logical cache key (PRIMARY KEY)
        - value: nonce || AES-GCM ciphertext
        - updated_at: last write, for debugging only
        """

        directory = os.path.dirname(self._db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )

    def _seal(self, key: str, value: bytes) -> bytes:
        nonce = os.urandom(NONCE_BYTES)
        return nonce + self._aead.encrypt(nonce, value, key.encode("utf-8"))

    def _open(self, key: str, blob: bytes) -> bytes:
        nonce, ciphertext = blob[:NONCE_BYTES], blob[NONCE_BYTES:]
        try:
            return self._aead.decrypt(nonce, ciphertext, key.encode("utf-8"))
        except InvalidTag as exc:
            raise StorageError(f"value for {key} failed authentication") from exc

    def get(self, key: str) -> Optional[bytes]:
        """Return the decrypted value for a key, if any."""

        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to read {key}") from exc
        if row is None:
            return None
        return self._open(key, bytes(row["value"]))

    def set(self, key: str, value: bytes) -> None:
        """Upsert an encrypted value."""

        now = datetime.now(timezone.utc)
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO kv (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, self._seal(key, value), now.isoformat()),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"failed to write {key}") from exc

    def delete(self, key: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            raise StorageError(f"failed to delete {key}") from exc
