"""Wallet repository — per-user public key and encrypted secret."""

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from solscalp.errors import PersistenceError
from solscalp.repos.db import get_connection


@dataclass(frozen=True)
class WalletRecord:
    user_id: str
    public_key: str
    encrypted_private_key: str  # WalletCustody.encrypt() output

    def __repr__(self) -> str:
        return f"WalletRecord(user_id={self.user_id!r}, public_key={self.public_key!r})"


class WalletRepo:
    """Data access layer for ``wallet_config``.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def upsert_wallet(self, wallet: WalletRecord) -> None:
        updated_at = datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO wallet_config (user_id, public_key, encrypted_private_key, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    public_key = excluded.public_key,
                    encrypted_private_key = excluded.encrypted_private_key,
                    updated_at = excluded.updated_at
                """,
                (wallet.user_id, wallet.public_key, wallet.encrypted_private_key, updated_at),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not save wallet for {wallet.user_id}: {exc}") from exc
        finally:
            conn.close()

    def get_wallet(self, user_id: str) -> Optional[WalletRecord]:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT user_id, public_key, encrypted_private_key FROM wallet_config WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not read wallet for {user_id}: {exc}") from exc
        finally:
            conn.close()
        if row is None:
            return None
        return WalletRecord(
            user_id=row["user_id"],
            public_key=row["public_key"],
            encrypted_private_key=row["encrypted_private_key"],
        )
