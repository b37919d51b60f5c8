"""Trade repository — append-only SQLite ledger of executed swaps."""

import sqlite3
from datetime import datetime, timezone
from typing import Optional

from solscalp.errors import PersistenceError
from solscalp.plans.models import TradeRecord
from solscalp.repos.db import get_connection


def insert_trade_row(conn: sqlite3.Connection, record: TradeRecord) -> int:
    """Insert *record* on an open connection without committing."""
    created_at = record.created_at or datetime.now(timezone.utc).isoformat()
    cur = conn.execute(
        """
        INSERT INTO trades
            (user_id, trading_plan_id, token_mint, token_symbol, side,
             amount_in, amount_out, input_mint, output_mint, price_usd,
             tx_signature, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            record.user_id, record.plan_id, record.token_mint, record.token_symbol,
            record.side, record.amount_in, record.amount_out, record.input_mint,
            record.output_mint, record.price_usd, record.tx_signature, created_at,
        ),
    )
    return cur.lastrowid


class TradeRepo:
    """Data access layer for the trade ledger.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def insert_trade(self, record: TradeRecord) -> int:
        """Append *record* and return its ``id``."""
        conn = get_connection(self._db_path)
        try:
            trade_id = insert_trade_row(conn, record)
            conn.commit()
            return trade_id
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not insert trade for {record.plan_id}: {exc}") from exc
        finally:
            conn.close()

    def get_trades(self, limit: int = 50, plan_id: Optional[str] = None) -> list[TradeRecord]:
        """Return the most recent trades, newest first."""
        query = "SELECT * FROM trades"
        params: list = []
        if plan_id is not None:
            query += " WHERE trading_plan_id = ?"
            params.append(plan_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not read trades: {exc}") from exc
        finally:
            conn.close()

        return [
            TradeRecord(
                user_id=r["user_id"],
                plan_id=r["trading_plan_id"],
                token_mint=r["token_mint"],
                token_symbol=r["token_symbol"],
                side=r["side"],
                amount_in=r["amount_in"],
                amount_out=r["amount_out"],
                input_mint=r["input_mint"],
                output_mint=r["output_mint"],
                price_usd=r["price_usd"],
                tx_signature=r["tx_signature"],
                created_at=r["created_at"],
                id=r["id"],
            )
            for r in rows
        ]
