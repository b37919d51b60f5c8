"""Price snapshot repository — append-only audit trail of observed prices."""

import sqlite3
from datetime import datetime, timezone
from typing import Optional

from solscalp.errors import PersistenceError
from solscalp.repos.db import get_connection


class PriceRepo:
    """Data access layer for price snapshots.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def insert_snapshot(self, mint: str, price_usd: float, source: str = "jupiter") -> int:
        created_at = datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO price_snapshots (token_mint, price_usd, source, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (mint, price_usd, source, created_at),
            )
            conn.commit()
            return cur.lastrowid
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not insert snapshot for {mint}: {exc}") from exc
        finally:
            conn.close()

    def get_latest(self, mint: str) -> Optional[dict]:
        """Return the newest snapshot for *mint* as a dict, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                """
                SELECT token_mint, price_usd, source, created_at
                FROM price_snapshots
                WHERE token_mint = ?
                ORDER BY id DESC
                LIMIT 1
                """,
                (mint,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not read snapshot for {mint}: {exc}") from exc
        finally:
            conn.close()
        return dict(row) if row is not None else None
