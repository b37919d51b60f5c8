"""Trade plan data models — plans, order kinds, optional exit features, results."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


# ── Status vocabulary ────────────────────────────────────────────────────

PENDING = "pending"  # market order, awaiting explicit activation
WAITING_ENTRY = "waiting_entry"  # limit order registered
ACTIVE = "active"  # entry filled, exit monitored
COMPLETED = "completed"  # exit filled
CANCELLED = "cancelled"
EXPIRED = "expired"  # limit order timed out

TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED, EXPIRED})


# ── Order kinds ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MarketOrder:
    """Buy immediately at market once the plan is activated."""

    kind: str = "market"


@dataclass(frozen=True)
class LimitOrder:
    """Buy once the price is at or below target, within the threshold."""

    target_price: float
    threshold_percent: float = 1.0
    max_wait_hours: float = 24.0
    kind: str = "limit"


OrderKind = Union[MarketOrder, LimitOrder]


# ── Optional exit features ───────────────────────────────────────────────


@dataclass(frozen=True)
class TrailingStop:
    percent: float  # distance below the highest price since entry


@dataclass(frozen=True)
class ProfitProtection:
    profit_trigger_percent: float = 10.0  # peak profit that arms protection
    giveback_allowed_percent: float = 4.0  # drop from peak that asks MACD
    hard_floor_percent: float = 6.0  # drop from peak that always exits


@dataclass(frozen=True)
class BreakevenStop:
    trigger_percent: float = 3.0  # profit that moves the stop loss to entry


@dataclass(frozen=True)
class PartialProfit:
    """Sell part of the position once, at a first profit target."""

    trigger_percent: float  # profit at which the partial sale fires
    sell_percent: float = 50.0  # share of the held tokens to sell


@dataclass(frozen=True)
class TokenInfo:
    mint: str
    symbol: str
    decimals: int


# ── Plan ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TradePlan:
    """A user's plan to enter and exit one token position.

    Updated only by producing a new instance (``dataclasses.replace``), so a
    failed write leaves the caller's previous value untouched.
    """

    id: str
    user_id: str
    token: TokenInfo
    amount_sol: float
    order: OrderKind
    stop_loss_percent: float
    take_profit_percent: float
    status: str
    created_at: datetime
    waiting_since: Optional[datetime] = None

    # optional exit features
    trailing_stop: Optional[TrailingStop] = None
    profit_protection: Optional[ProfitProtection] = None
    breakeven_stop: Optional[BreakevenStop] = None
    partial_profit: Optional[PartialProfit] = None
    max_hold_hours: Optional[float] = None

    # set on entry
    amount_tokens: Optional[int] = None  # smallest units
    entry_price_usd: Optional[float] = None
    entry_tx_signature: Optional[str] = None
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    activated_at: Optional[datetime] = None

    # tracked while active
    highest_price_since_entry: Optional[float] = None
    trailing_stop_price: Optional[float] = None
    peak_profit_percent: float = 0.0
    breakeven_activated: bool = False
    partial_profit_taken: bool = False
    partial_sol_received: float = 0.0  # SOL already realized by the partial sale
    partial_tx_signature: Optional[str] = None

    # set on exit
    exit_price_usd: Optional[float] = None
    exit_tx_signature: Optional[str] = None
    triggered_by: Optional[str] = None
    triggered_at: Optional[datetime] = None
    profit_loss_sol: Optional[float] = None
    profit_loss_percent: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_limit(self) -> bool:
        return isinstance(self.order, LimitOrder)


# ── Ledger and settings ──────────────────────────────────────────────────


@dataclass(frozen=True)
class TradeRecord:
    """One row of the append-only trade ledger."""

    user_id: str
    plan_id: str
    token_mint: str
    token_symbol: str
    side: str  # "buy" or "sell"
    amount_in: float
    amount_out: float
    input_mint: str
    output_mint: str
    price_usd: float
    tx_signature: str
    created_at: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class UserSettings:
    user_id: str
    daily_loss_limit_sol: float = 0.5
    daily_loss_limit_enabled: bool = True
    notification_email: Optional[str] = None


# ── Cycle results ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PlanResult:
    """Outcome of processing one plan in one monitor cycle."""

    plan_id: str
    action: str
    success: bool
    error: Optional[str] = None
    details: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"planId": self.plan_id, "action": self.action, "success": self.success}
        if self.error is not None:
            data["error"] = self.error
        if self.details is not None:
            data["details"] = self.details
        return data
