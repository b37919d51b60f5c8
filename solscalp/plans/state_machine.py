"""Trade plan state machine — transition rules and exit-trigger evaluation.

Pure functions, no I/O.  Every transition returns a new ``TradePlan``;
callers persist it conditionally on the status they started from.

    pending ──activate──▶ active ──exit──▶ completed
    waiting_entry ──fill──▶ active
    waiting_entry ──timeout──▶ expired
    active ──partial sale──▶ active
    any non-terminal ──cancel──▶ cancelled
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from solscalp.analysis.models import MACDResult
from solscalp.errors import InvalidTransitionError
from solscalp.plans.models import (
    ACTIVE,
    CANCELLED,
    COMPLETED,
    EXPIRED,
    PENDING,
    WAITING_ENTRY,
    LimitOrder,
    TradePlan,
)

_ALLOWED = {
    PENDING: {ACTIVE, CANCELLED},
    WAITING_ENTRY: {ACTIVE, EXPIRED, CANCELLED},
    ACTIVE: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
    EXPIRED: set(),
}

# Exit trigger names, in evaluation precedence
PROFIT_PROTECTION = "profit_protection"
TIME_EXIT = "time_exit"
TRAILING_STOP = "trailing_stop"
STOP_LOSS = "stop_loss"
TAKE_PROFIT = "take_profit"


@dataclass(frozen=True)
class ExitSignal:
    trigger: str
    reason: str


def _transition(plan: TradePlan, to_status: str, **changes) -> TradePlan:
    if to_status not in _ALLOWED.get(plan.status, set()):
        raise InvalidTransitionError(f"Plan {plan.id}: {plan.status} → {to_status} not allowed")
    return replace(plan, status=to_status, **changes)


# ── Entry ────────────────────────────────────────────────────────────────


def is_expired(plan: TradePlan, now: datetime) -> bool:
    """True when a waiting limit order has waited longer than ``max_wait_hours``."""
    if plan.status != WAITING_ENTRY or not isinstance(plan.order, LimitOrder):
        return False
    if plan.waiting_since is None:
        return False
    return now - plan.waiting_since > timedelta(hours=plan.order.max_wait_hours)


def entry_price_diff_percent(order: LimitOrder, price: float) -> float:
    return (price - order.target_price) / order.target_price * 100


def entry_triggered(plan: TradePlan, price: float) -> bool:
    """True when *price* is at or below target, or above it by at most the threshold.

    A price more than ``threshold_percent`` above target never triggers.
    """
    if plan.status != WAITING_ENTRY or not isinstance(plan.order, LimitOrder):
        return False
    return entry_price_diff_percent(plan.order, price) <= plan.order.threshold_percent


def expire(plan: TradePlan) -> TradePlan:
    return _transition(plan, EXPIRED)


def activate(
    plan: TradePlan,
    fill_price: float,
    amount_tokens: int,
    signature: str,
    now: datetime,
) -> TradePlan:
    """Move a pending or waiting plan to ``active`` after its buy filled.

    Derives the stop-loss / take-profit prices from the fill price and
    seeds the trailing-stop and profit-protection tracking.
    """
    if fill_price <= 0:
        raise InvalidTransitionError(f"Plan {plan.id}: fill price must be positive")

    trailing_price = None
    if plan.trailing_stop is not None:
        trailing_price = fill_price * (1 - plan.trailing_stop.percent / 100)

    return _transition(
        plan,
        ACTIVE,
        amount_tokens=amount_tokens,
        entry_price_usd=fill_price,
        entry_tx_signature=signature,
        stop_loss_price=fill_price * (1 - plan.stop_loss_percent / 100),
        take_profit_price=fill_price * (1 + plan.take_profit_percent / 100),
        activated_at=now,
        highest_price_since_entry=fill_price,
        trailing_stop_price=trailing_price,
        peak_profit_percent=0.0,
    )


# ── Active tracking ──────────────────────────────────────────────────────


def current_profit_percent(plan: TradePlan, price: float) -> float:
    if not plan.entry_price_usd:
        return 0.0
    return (price - plan.entry_price_usd) / plan.entry_price_usd * 100


def update_tracking(plan: TradePlan, price: float) -> TradePlan:
    """Raise the peak price, trailing stop and peak profit. Never lowers them.

    Also moves the stop loss up to the entry price, once, when the breakeven
    trigger is reached.
    """
    if plan.status != ACTIVE:
        return plan

    changes = {}
    profit = current_profit_percent(plan, price)
    if plan.trailing_stop is not None and price > (plan.highest_price_since_entry or 0.0):
        changes["highest_price_since_entry"] = price
        changes["trailing_stop_price"] = price * (1 - plan.trailing_stop.percent / 100)

    if plan.profit_protection is not None and profit > plan.peak_profit_percent:
        changes["peak_profit_percent"] = profit

    be = plan.breakeven_stop
    if (
        be is not None
        and not plan.breakeven_activated
        and plan.entry_price_usd
        and profit >= be.trigger_percent
    ):
        changes["breakeven_activated"] = True
        changes["stop_loss_price"] = max(plan.stop_loss_price or 0.0, plan.entry_price_usd)

    return replace(plan, **changes) if changes else plan


# ── Exit ─────────────────────────────────────────────────────────────────


def profit_protection_state(plan: TradePlan, price: float) -> str:
    """``"hard_floor"``, ``"giveback"`` or ``"none"``.

    Protection is armed once the peak profit reached the trigger and the
    position is still in profit.
    """
    pp = plan.profit_protection
    if pp is None or plan.status != ACTIVE:
        return "none"

    profit = current_profit_percent(plan, price)
    peak = plan.peak_profit_percent
    if peak < pp.profit_trigger_percent or profit <= 0:
        return "none"

    drop = peak - profit
    if drop >= pp.hard_floor_percent:
        return "hard_floor"
    if drop >= pp.giveback_allowed_percent:
        return "giveback"
    return "none"


def macd_confirms_reversal(macd: MACDResult) -> bool:
    """Bearish crossover, strengthening bearish trend, or a deepening negative histogram."""
    return (
        macd.crossover == "bearish"
        or (macd.trend == "bearish" and macd.momentum == "strengthening")
        or (macd.histogram < 0 and macd.histogram_trend == "growing")
    )


def evaluate_exit(
    plan: TradePlan,
    price: float,
    now: datetime,
    reversal_confirmed: bool = False,
) -> Optional[ExitSignal]:
    """Return the exit to take on an active plan, or ``None`` to keep holding.

    Precedence: profit protection, time exit, stop (trailing or fixed),
    take profit.  *reversal_confirmed* is the MACD verdict for a giveback.
    """
    if plan.status != ACTIVE:
        return None

    pp_state = profit_protection_state(plan, price)
    if pp_state != "none":
        peak = plan.peak_profit_percent
        drop = peak - current_profit_percent(plan, price)
        if pp_state == "hard_floor":
            return ExitSignal(
                PROFIT_PROTECTION,
                f"Hard floor hit: dropped {drop:.1f}% from peak {peak:.1f}%",
            )
        if reversal_confirmed:
            return ExitSignal(
                PROFIT_PROTECTION,
                f"MACD confirms reversal: dropped {drop:.1f}% from peak {peak:.1f}%",
            )

    if plan.max_hold_hours and plan.activated_at is not None:
        if now - plan.activated_at >= timedelta(hours=plan.max_hold_hours):
            return ExitSignal(TIME_EXIT, f"Held for {plan.max_hold_hours}h")

    stop_price = plan.stop_loss_price
    if plan.trailing_stop is not None and plan.trailing_stop_price:
        if price <= plan.trailing_stop_price:
            return ExitSignal(
                TRAILING_STOP, f"Price {price:.8g} <= trailing stop {plan.trailing_stop_price:.8g}"
            )
        # the trailing stop replaces the fixed one, except at breakeven
        stop_price = plan.stop_loss_price if plan.breakeven_activated else None

    if stop_price is not None and price <= stop_price:
        label = "breakeven stop" if plan.breakeven_activated else "stop loss"
        return ExitSignal(STOP_LOSS, f"Price {price:.8g} <= {label} {stop_price:.8g}")

    if plan.take_profit_price is not None and price >= plan.take_profit_price:
        return ExitSignal(
            TAKE_PROFIT, f"Price {price:.8g} >= take profit {plan.take_profit_price:.8g}"
        )

    return None


# ── Partial profit ───────────────────────────────────────────────────────


def partial_sell_amount(plan: TradePlan) -> int:
    """Tokens (smallest units) the partial sale sells; 0 when it would empty the position."""
    if plan.partial_profit is None or not plan.amount_tokens:
        return 0
    tokens = math.floor(plan.amount_tokens * plan.partial_profit.sell_percent / 100)
    return tokens if 0 < tokens < plan.amount_tokens else 0


def partial_profit_due(plan: TradePlan, price: float) -> bool:
    """True once per plan, when profit first reaches the partial target."""
    pp = plan.partial_profit
    if pp is None or plan.status != ACTIVE or plan.partial_profit_taken:
        return False
    if partial_sell_amount(plan) == 0:
        return False
    return current_profit_percent(plan, price) >= pp.trigger_percent


def take_partial_profit(
    plan: TradePlan,
    tokens_sold: int,
    sol_received: float,
    signature: str,
) -> TradePlan:
    """Record the partial sale; the plan stays ``active`` holding the rest."""
    if plan.status != ACTIVE or plan.partial_profit_taken:
        raise InvalidTransitionError(f"Plan {plan.id}: partial profit not available")
    if not 0 < tokens_sold < (plan.amount_tokens or 0):
        raise InvalidTransitionError(
            f"Plan {plan.id}: cannot sell {tokens_sold} of {plan.amount_tokens} tokens"
        )
    return replace(
        plan,
        amount_tokens=plan.amount_tokens - tokens_sold,
        partial_profit_taken=True,
        partial_sol_received=plan.partial_sol_received + sol_received,
        partial_tx_signature=signature,
    )


# ── Completion ───────────────────────────────────────────────────────────


def realized_pnl(plan: TradePlan, sol_received: float) -> tuple[float, float]:
    """Return ``(profit_loss_sol, profit_loss_percent)`` over every sale of the position."""
    pnl = plan.partial_sol_received + sol_received - plan.amount_sol
    return pnl, pnl / plan.amount_sol * 100


def complete(
    plan: TradePlan,
    trigger: str,
    exit_price: float,
    signature: str,
    sol_received: float,
    now: datetime,
) -> TradePlan:
    """Move an active plan to ``completed``, setting the realized P&L once."""
    pnl_sol, pnl_pct = realized_pnl(plan, sol_received)
    return _transition(
        plan,
        COMPLETED,
        triggered_by=trigger,
        triggered_at=now,
        exit_price_usd=exit_price,
        exit_tx_signature=signature,
        profit_loss_sol=pnl_sol,
        profit_loss_percent=pnl_pct,
    )


def cancel(
    plan: TradePlan,
    exit_price: Optional[float] = None,
    signature: Optional[str] = None,
    sol_received: Optional[float] = None,
) -> TradePlan:
    """Cancel any non-terminal plan; an active plan may carry its exit sale."""
    changes = {}
    if plan.status == ACTIVE and sol_received is not None:
        pnl_sol, pnl_pct = realized_pnl(plan, sol_received)
        changes.update(
            exit_price_usd=exit_price,
            exit_tx_signature=signature,
            profit_loss_sol=pnl_sol,
            profit_loss_percent=pnl_pct,
        )
    return _transition(plan, CANCELLED, **changes)
