"""Trade plan repository — SQLite persistence for the trading_plans table.

Every status change is a conditional update keyed on the status the caller
read, so a plan that moved on in the meantime is never overwritten.
"""

import sqlite3
from datetime import datetime
from typing import Optional

from solscalp.errors import PersistenceError, StalePlanError
from solscalp.plans.models import (
    COMPLETED,
    BreakevenStop,
    LimitOrder,
    MarketOrder,
    PartialProfit,
    ProfitProtection,
    TokenInfo,
    TradePlan,
    TradeRecord,
    TrailingStop,
)
from solscalp.repos.db import get_connection
from solscalp.repos.trade_repo import insert_trade_row

# Columns written by save_transition, in order.
_MUTABLE_COLUMNS = (
    "status",
    "waiting_since",
    "amount_tokens",
    "entry_price_usd",
    "entry_tx_signature",
    "stop_loss_price",
    "take_profit_price",
    "activated_at",
    "highest_price_since_entry",
    "trailing_stop_price",
    "peak_profit_percent",
    "breakeven_activated",
    "partial_profit_taken",
    "partial_sol_received",
    "partial_tx_signature",
    "exit_price_usd",
    "exit_tx_signature",
    "triggered_by",
    "triggered_at",
    "profit_loss_sol",
    "profit_loss_percent",
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _plan_to_row(plan: TradePlan) -> dict:
    order = plan.order
    limit = isinstance(order, LimitOrder)
    pp = plan.profit_protection
    partial = plan.partial_profit
    return {
        "id": plan.id,
        "user_id": plan.user_id,
        "token_mint": plan.token.mint,
        "token_symbol": plan.token.symbol,
        "token_decimals": plan.token.decimals,
        "amount_sol": plan.amount_sol,
        "order_type": order.kind,
        "target_entry_price": order.target_price if limit else None,
        "entry_threshold_percent": order.threshold_percent if limit else None,
        "max_wait_hours": order.max_wait_hours if limit else None,
        "waiting_since": _iso(plan.waiting_since),
        "stop_loss_percent": plan.stop_loss_percent,
        "take_profit_percent": plan.take_profit_percent,
        "status": plan.status,
        "created_at": _iso(plan.created_at),
        "trailing_stop_percent": plan.trailing_stop.percent if plan.trailing_stop else None,
        "profit_trigger_percent": pp.profit_trigger_percent if pp else None,
        "giveback_allowed_percent": pp.giveback_allowed_percent if pp else None,
        "hard_floor_percent": pp.hard_floor_percent if pp else None,
        "breakeven_trigger_percent": (
            plan.breakeven_stop.trigger_percent if plan.breakeven_stop else None
        ),
        "partial_trigger_percent": partial.trigger_percent if partial else None,
        "partial_sell_percent": partial.sell_percent if partial else None,
        "max_hold_hours": plan.max_hold_hours,
        "amount_tokens": plan.amount_tokens,
        "entry_price_usd": plan.entry_price_usd,
        "entry_tx_signature": plan.entry_tx_signature,
        "stop_loss_price": plan.stop_loss_price,
        "take_profit_price": plan.take_profit_price,
        "activated_at": _iso(plan.activated_at),
        "highest_price_since_entry": plan.highest_price_since_entry,
        "trailing_stop_price": plan.trailing_stop_price,
        "peak_profit_percent": plan.peak_profit_percent,
        "breakeven_activated": int(plan.breakeven_activated),
        "partial_profit_taken": int(plan.partial_profit_taken),
        "partial_sol_received": plan.partial_sol_received,
        "partial_tx_signature": plan.partial_tx_signature,
        "exit_price_usd": plan.exit_price_usd,
        "exit_tx_signature": plan.exit_tx_signature,
        "triggered_by": plan.triggered_by,
        "triggered_at": _iso(plan.triggered_at),
        "profit_loss_sol": plan.profit_loss_sol,
        "profit_loss_percent": plan.profit_loss_percent,
    }


def _row_to_plan(row: sqlite3.Row) -> TradePlan:
    if row["order_type"] == "limit":
        limit_fields = {"target_price": row["target_entry_price"]}
        if row["entry_threshold_percent"] is not None:
            limit_fields["threshold_percent"] = row["entry_threshold_percent"]
        if row["max_wait_hours"] is not None:
            limit_fields["max_wait_hours"] = row["max_wait_hours"]
        order = LimitOrder(**limit_fields)
    else:
        order = MarketOrder()

    trailing = None
    if row["trailing_stop_percent"] is not None:
        trailing = TrailingStop(percent=row["trailing_stop_percent"])

    protection = None
    if row["profit_trigger_percent"] is not None:
        protection = ProfitProtection(
            profit_trigger_percent=row["profit_trigger_percent"],
            giveback_allowed_percent=row["giveback_allowed_percent"],
            hard_floor_percent=row["hard_floor_percent"],
        )

    breakeven = None
    if row["breakeven_trigger_percent"] is not None:
        breakeven = BreakevenStop(trigger_percent=row["breakeven_trigger_percent"])

    partial = None
    if row["partial_trigger_percent"] is not None:
        partial = PartialProfit(
            trigger_percent=row["partial_trigger_percent"],
            sell_percent=row["partial_sell_percent"],
        )

    return TradePlan(
        id=row["id"],
        user_id=row["user_id"],
        token=TokenInfo(
            mint=row["token_mint"],
            symbol=row["token_symbol"],
            decimals=row["token_decimals"],
        ),
        amount_sol=row["amount_sol"],
        order=order,
        stop_loss_percent=row["stop_loss_percent"],
        take_profit_percent=row["take_profit_percent"],
        status=row["status"],
        created_at=_dt(row["created_at"]),
        waiting_since=_dt(row["waiting_since"]),
        trailing_stop=trailing,
        profit_protection=protection,
        breakeven_stop=breakeven,
        partial_profit=partial,
        max_hold_hours=row["max_hold_hours"],
        amount_tokens=row["amount_tokens"],
        entry_price_usd=row["entry_price_usd"],
        entry_tx_signature=row["entry_tx_signature"],
        stop_loss_price=row["stop_loss_price"],
        take_profit_price=row["take_profit_price"],
        activated_at=_dt(row["activated_at"]),
        highest_price_since_entry=row["highest_price_since_entry"],
        trailing_stop_price=row["trailing_stop_price"],
        peak_profit_percent=row["peak_profit_percent"] or 0.0,
        breakeven_activated=bool(row["breakeven_activated"]),
        partial_profit_taken=bool(row["partial_profit_taken"]),
        partial_sol_received=row["partial_sol_received"],
        partial_tx_signature=row["partial_tx_signature"],
        exit_price_usd=row["exit_price_usd"],
        exit_tx_signature=row["exit_tx_signature"],
        triggered_by=row["triggered_by"],
        triggered_at=_dt(row["triggered_at"]),
        profit_loss_sol=row["profit_loss_sol"],
        profit_loss_percent=row["profit_loss_percent"],
    )


class PlanRepo:
    """Data access layer for trade plans.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Write ────────────────────────────────────────────────────────────

    def insert_plan(self, plan: TradePlan) -> None:
        row = _plan_to_row(plan)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                f"INSERT INTO trading_plans ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not insert plan {plan.id}: {exc}") from exc
        finally:
            conn.close()

    def save_transition(
        self,
        plan: TradePlan,
        expected_status: str,
        ledger: Optional[TradeRecord] = None,
    ) -> None:
        """Persist *plan* and the optional ledger row in one transaction.

        The update only applies while the stored row still has
        *expected_status*.

        Raises:
            StalePlanError: no row matched (the plan moved on or is gone).
            PersistenceError: any other database failure.
        """
        row = _plan_to_row(plan)
        assignments = ", ".join(f"{c} = ?" for c in _MUTABLE_COLUMNS)
        values = [row[c] for c in _MUTABLE_COLUMNS] + [plan.id, expected_status]

        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                f"UPDATE trading_plans SET {assignments} WHERE id = ? AND status = ?",
                values,
            )
            if cur.rowcount == 0:
                conn.rollback()
                raise StalePlanError(
                    f"Plan {plan.id} is no longer {expected_status}; update skipped"
                )
            if ledger is not None:
                insert_trade_row(conn, ledger)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(f"Could not save plan {plan.id}: {exc}") from exc
        finally:
            conn.close()

    def update_tracking(self, plan: TradePlan) -> None:
        """Persist the trailing-stop, peak-profit and breakeven tracking of an active plan."""
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                UPDATE trading_plans
                SET highest_price_since_entry = ?, trailing_stop_price = ?,
                    peak_profit_percent = ?, stop_loss_price = ?,
                    breakeven_activated = ?
                WHERE id = ? AND status = 'active'
                """,
                (
                    plan.highest_price_since_entry,
                    plan.trailing_stop_price,
                    plan.peak_profit_percent,
                    plan.stop_loss_price,
                    int(plan.breakeven_activated),
                    plan.id,
                ),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not update tracking for {plan.id}: {exc}") from exc
        finally:
            conn.close()

    def append_trade(self, record: TradeRecord) -> None:
        """Insert a ledger row on its own, outside any plan transition.

        Used when a swap executed but its plan transition could not be saved.
        """
        conn = get_connection(self._db_path)
        try:
            insert_trade_row(conn, record)
            conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(
                f"Could not record trade {record.tx_signature}: {exc}"
            ) from exc
        finally:
            conn.close()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_plan(self, plan_id: str) -> Optional[TradePlan]:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM trading_plans WHERE id = ?", (plan_id,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not read plan {plan_id}: {exc}") from exc
        finally:
            conn.close()
        return _row_to_plan(row) if row is not None else None

    def list_by_status(self, status: str) -> list[TradePlan]:
        """Return all plans in *status*, oldest first."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM trading_plans WHERE status = ? ORDER BY created_at, id",
                (status,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not list {status} plans: {exc}") from exc
        finally:
            conn.close()
        return [_row_to_plan(r) for r in rows]

    def realized_pnl_since(self, user_id: str, since: datetime) -> float:
        """Sum of ``profit_loss_sol`` over plans completed at or after *since*."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                """
                SELECT COALESCE(SUM(profit_loss_sol), 0) AS pnl
                FROM trading_plans
                WHERE user_id = ? AND status = ? AND triggered_at >= ?
                """,
                (user_id, COMPLETED, since.isoformat()),
            ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not sum P&L for {user_id}: {exc}") from exc
        finally:
            conn.close()
        return float(row["pnl"])
