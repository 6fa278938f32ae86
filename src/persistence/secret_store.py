"""Per-owner secret storage backed by the ``user_secrets`` table."""
from __future__ import annotations

import logging
import sqlite3

from src.pipeline.exceptions import PersistenceError
from src.shared.db.connection import ConnectionPool
from src.shared.utils import now_iso

logger = logging.getLogger(__name__)


class SecretStore:
    """Reads and writes secrets scoped to one owner.

    Secret values are never logged; only owner and secret names are.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def read_secret(self, owner_id: str, name: str) -> str | None:
        """Return the secret value, or ``None`` when absent."""
        try:
            row = self._pool.get().execute(
                "SELECT secret FROM user_secrets WHERE owner_id = ? AND name = ?",
                (owner_id, name),
            ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read secret: {exc}") from exc
        if row is None or not row["secret"]:
            return None
        return str(row["secret"])

    def store_secret(
        self, owner_id: str, name: str, secret: str, description: str | None = None
    ) -> None:
        """Create or replace a secret."""
        try:
            with self._pool.transaction() as conn:
                conn.execute(
                    """INSERT INTO user_secrets (owner_id, name, secret, description, created_at)
                       VALUES (?, ?, ?, ?, ?)
                       ON CONFLICT(owner_id, name) DO UPDATE SET
                           secret = excluded.secret,
                           description = excluded.description""",
                    (owner_id, name, secret, description, now_iso()),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to store secret: {exc}") from exc
        logger.info("Stored secret %s for owner %s", name, owner_id)

    def delete_secret(self, owner_id: str, name: str) -> bool:
        """Delete a secret.  Returns ``True`` if one existed."""
        try:
            with self._pool.transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM user_secrets WHERE owner_id = ? AND name = ?",
                    (owner_id, name),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to delete secret: {exc}") from exc
        return cursor.rowcount > 0
