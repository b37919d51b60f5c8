"""Monitor cycle — one scheduled pass over waiting and active trade plans.

Phase 1 handles ``waiting_entry`` plans (expiry, daily loss limit, limit
fill); phase 2 handles ``active`` plans (tracking, partial profit and
exits).  Each plan is isolated: whatever goes wrong is recorded as that
plan's result and the cycle moves on.  Only a failure to list plans aborts
the cycle.  A swap that executed is always written to the trade ledger,
even when its plan could not be saved.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from solscalp.errors import (
    ExecutionError,
    InsufficientDataError,
    MarketDataError,
    NoTransactionReturnedError,
    PersistenceError,
    QuoteError,
    StalePlanError,
    WalletError,
)
from solscalp.monitor.execution import SwapExecutor, buy_record, sell_record
from solscalp.monitor.rate_limiter import RateLimiter
from solscalp.plans import state_machine as sm
from solscalp.plans.models import ACTIVE, WAITING_ENTRY, PlanResult, TradePlan, TradeRecord
from solscalp.repos.plan_repo import PlanRepo
from solscalp.repos.price_repo import PriceRepo
from solscalp.repos.settings_repo import SettingsRepo

logger = logging.getLogger("solscalp.monitor")

PlanHandler = Callable[[TradePlan, datetime], Awaitable[PlanResult]]


@dataclass
class CycleReport:
    """Everything one monitor cycle did, in processing order."""

    started_at: str
    finished_at: Optional[str] = None
    waiting_count: int = 0
    active_count: int = 0
    results: list[PlanResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "waiting_count": self.waiting_count,
            "active_count": self.active_count,
            "processed": len(self.results),
            "results": [r.to_dict() for r in self.results],
        }


class MonitorCycle:
    """Evaluates every open plan once and executes the triggered swaps.

    Args:
        plans: Plan repository (the authority for status changes).
        prices: Price snapshot repository.
        settings: User settings repository (daily loss limit).
        exchange: Price source, ``get_token_price(mint)``.
        executor: Buys and sells through the exchange.
        rate_limiter: Shared limiter, acquired before each plan's first
            external call.
        candles: Optional candle source with ``analyze_token(mint)``, used
            for the MACD confirmation of profit protection.
        notifier: Optional ``PlanNotifier``.
        concurrency: Plans processed at once within a phase.
    """

    def __init__(
        self,
        plans: PlanRepo,
        prices: PriceRepo,
        settings: SettingsRepo,
        exchange,
        executor: SwapExecutor,
        rate_limiter: RateLimiter,
        candles=None,
        notifier=None,
        concurrency: int = 1,
    ) -> None:
        self._plans = plans
        self._prices = prices
        self._settings = settings
        self._exchange = exchange
        self._executor = executor
        self._rate_limiter = rate_limiter
        self._candles = candles
        self._notifier = notifier
        self._concurrency = max(1, concurrency)
        self.last_report: Optional[CycleReport] = None

    # ── Cycle ────────────────────────────────────────────────────────────

    async def run_once(self, utc_now: Optional[datetime] = None) -> CycleReport:
        """Run both phases and return the per-plan results.

        Args:
            utc_now: Current UTC datetime.  Defaults to ``datetime.now(UTC)``.

        Raises:
            PersistenceError: the plan lists could not be read.
        """
        if utc_now is None:
            utc_now = datetime.now(timezone.utc)

        report = CycleReport(started_at=utc_now.isoformat())

        waiting = self._plans.list_by_status(WAITING_ENTRY)
        report.waiting_count = len(waiting)
        report.results.extend(await self._run_phase(waiting, self._process_waiting, utc_now))

        active = self._plans.list_by_status(ACTIVE)
        report.active_count = len(active)
        report.results.extend(await self._run_phase(active, self._process_active, utc_now))

        report.finished_at = datetime.now(timezone.utc).isoformat()
        self.last_report = report

        failed = sum(1 for r in report.results if not r.success)
        logger.info(
            "Monitor cycle: %d waiting, %d active, %d results (%d failed)",
            report.waiting_count, report.active_count, len(report.results), failed,
        )
        return report

    async def _run_phase(
        self,
        plans: list[TradePlan],
        handler: PlanHandler,
        now: datetime,
    ) -> list[PlanResult]:
        if self._concurrency == 1:
            return [await self._isolated(plan, handler, now) for plan in plans]

        semaphore = asyncio.Semaphore(self._concurrency)

        async def worker(plan: TradePlan) -> PlanResult:
            async with semaphore:
                return await self._isolated(plan, handler, now)

        return list(await asyncio.gather(*(worker(p) for p in plans)))

    async def _isolated(self, plan: TradePlan, handler: PlanHandler, now: datetime) -> PlanResult:
        try:
            return await handler(plan, now)
        except StalePlanError as exc:
            logger.info("Plan %s changed underneath the cycle: %s", plan.id, exc)
            return PlanResult(plan.id, "skipped", True, details=str(exc))
        except Exception as exc:
            logger.exception("Error processing plan %s", plan.id)
            return PlanResult(plan.id, "error", False, error=str(exc))

    async def _observe_price(self, plan: TradePlan) -> float:
        await self._rate_limiter.acquire()
        price = await self._exchange.get_token_price(plan.token.mint)
        try:
            self._prices.insert_snapshot(plan.token.mint, price, "jupiter")
        except PersistenceError as exc:
            logger.warning("Price snapshot for %s not stored: %s", plan.token.mint, exc)
        return price

    # ── Phase 1: waiting_entry ───────────────────────────────────────────

    def _daily_loss_exceeded(self, plan: TradePlan, now: datetime) -> Optional[str]:
        settings = self._settings.get_settings(plan.user_id)
        if not settings.daily_loss_limit_enabled:
            return None
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        pnl = self._plans.realized_pnl_since(plan.user_id, day_start)
        if pnl < -settings.daily_loss_limit_sol:
            return (
                f"Daily loss limit exceeded ({abs(min(0.0, pnl)):.4f} / "
                f"{settings.daily_loss_limit_sol} SOL)"
            )
        return None

    async def _process_waiting(self, plan: TradePlan, now: datetime) -> PlanResult:
        if sm.is_expired(plan, now):
            self._plans.save_transition(sm.expire(plan), WAITING_ENTRY)
            logger.info("Plan %s expired after %sh", plan.id, plan.order.max_wait_hours)
            return PlanResult(plan.id, "expired", True)

        blocked = self._daily_loss_exceeded(plan, now)
        if blocked:
            return PlanResult(plan.id, "blocked_by_daily_limit", False, error=blocked)

        price = await self._observe_price(plan)
        diff = sm.entry_price_diff_percent(plan.order, price)
        if not sm.entry_triggered(plan, price):
            return PlanResult(
                plan.id, "waiting_entry", True,
                details=f"Price ${price:.8g} is {diff:+.2f}% from target",
            )

        logger.info(
            "Limit entry for plan %s (%s): price $%.8g, %+.2f%% from target",
            plan.id, plan.token.symbol, price, diff,
        )
        try:
            fill = await self._executor.buy(plan, observed_price=price)
        except NoTransactionReturnedError as exc:
            return PlanResult(plan.id, "waiting_entry", False, error=str(exc))
        except WalletError as exc:
            return PlanResult(plan.id, "error", False, error=str(exc))
        except (QuoteError, ExecutionError) as exc:
            logger.warning("Buy for plan %s failed: %s", plan.id, exc)
            return PlanResult(plan.id, "buy_failed", False, error=str(exc))

        activated = sm.activate(plan, fill.fill_price, fill.amount_tokens, fill.signature, now)
        ledger = buy_record(plan, fill)
        try:
            self._plans.save_transition(activated, WAITING_ENTRY, ledger=ledger)
        except PersistenceError as exc:
            return self._unsaved_swap(plan, "limit_buy_executed", ledger, exc)

        await self._notify("entry", activated)

        return PlanResult(
            plan.id, "limit_buy_executed", True,
            details=f"Entry ${fill.fill_price:.8g}, tx {fill.signature}",
        )

    # ── Phase 2: active ──────────────────────────────────────────────────

    async def _reversal_confirmed(self, plan: TradePlan) -> bool:
        if self._candles is None:
            return False
        try:
            analysis = await self._candles.analyze_token(plan.token.mint)
        except (MarketDataError, InsufficientDataError) as exc:
            logger.warning("MACD unavailable for %s, hard floor only: %s", plan.token.mint, exc)
            return False
        return sm.macd_confirms_reversal(analysis.indicators.macd)

    async def _process_active(self, plan: TradePlan, now: datetime) -> PlanResult:
        price = await self._observe_price(plan)

        tracked = sm.update_tracking(plan, price)
        if tracked is not plan:
            self._plans.update_tracking(tracked)

        reversal = False
        if sm.profit_protection_state(tracked, price) == "giveback":
            reversal = await self._reversal_confirmed(tracked)

        signal = sm.evaluate_exit(tracked, price, now, reversal_confirmed=reversal)
        if signal is None:
            if sm.partial_profit_due(tracked, price):
                return await self._take_partial_profit(tracked, price)

            profit = sm.current_profit_percent(tracked, price)
            if tracked.breakeven_activated and not plan.breakeven_activated:
                logger.info("Breakeven stop armed for plan %s at %+.2f%%", plan.id, profit)
                return PlanResult(
                    plan.id, "breakeven_activated", True,
                    details=f"Stop loss moved to entry ${tracked.stop_loss_price:.8g} ({profit:+.2f}%)",
                )
            return PlanResult(
                plan.id, "monitoring", True,
                details=f"Price ${price:.8g} ({profit:+.2f}%)",
            )

        logger.info("Exit for plan %s (%s): %s", plan.id, signal.trigger, signal.reason)
        try:
            fill = await self._executor.sell(tracked, observed_price=price)
        except WalletError as exc:
            return PlanResult(plan.id, "error", False, error=str(exc))
        except (QuoteError, ExecutionError) as exc:
            logger.warning("Sell for plan %s failed: %s", plan.id, exc)
            return PlanResult(plan.id, "sell_failed", False, error=str(exc), details=signal.trigger)

        completed = sm.complete(tracked, signal.trigger, fill.exit_price, fill.signature, fill.sol_received, now)
        ledger = sell_record(tracked, fill)
        try:
            self._plans.save_transition(completed, ACTIVE, ledger=ledger)
        except PersistenceError as exc:
            return self._unsaved_swap(plan, signal.trigger, ledger, exc)

        await self._notify("completed", completed)

        return PlanResult(
            plan.id, signal.trigger, True,
            details=(
                f"{signal.reason}; P&L {completed.profit_loss_sol:+.4f} SOL "
                f"({completed.profit_loss_percent:+.2f}%)"
            ),
        )

    async def _take_partial_profit(self, plan: TradePlan, price: float) -> PlanResult:
        tokens = sm.partial_sell_amount(plan)
        profit = sm.current_profit_percent(plan, price)
        logger.info(
            "Partial profit for plan %s at %+.2f%%: selling %d of %d tokens",
            plan.id, profit, tokens, plan.amount_tokens,
        )
        try:
            fill = await self._executor.sell(plan, observed_price=price, amount_tokens=tokens)
        except WalletError as exc:
            return PlanResult(plan.id, "error", False, error=str(exc))
        except (QuoteError, ExecutionError) as exc:
            logger.warning("Partial sell for plan %s failed: %s", plan.id, exc)
            return PlanResult(plan.id, "partial_sell_failed", False, error=str(exc))

        updated = sm.take_partial_profit(plan, fill.tokens_sold, fill.sol_received, fill.signature)
        ledger = sell_record(plan, fill)
        try:
            self._plans.save_transition(updated, ACTIVE, ledger=ledger)
        except PersistenceError as exc:
            return self._unsaved_swap(plan, "partial_profit_taken", ledger, exc)

        return PlanResult(
            plan.id, "partial_profit_taken", True,
            details=(
                f"Sold {fill.tokens_sold} tokens for {fill.sol_received:.4f} SOL "
                f"at {profit:+.2f}%, tx {fill.signature}"
            ),
        )

    # ── Side effects ─────────────────────────────────────────────────────

    def _unsaved_swap(
        self,
        plan: TradePlan,
        action: str,
        ledger: TradeRecord,
        exc: PersistenceError,
    ) -> PlanResult:
        """Result for a swap that executed on chain but whose plan was not saved.

        The ledger row is still recorded on its own so the trade is never lost.
        """
        logger.error(
            "Plan %s: swap %s executed but plan not saved: %s", plan.id, ledger.tx_signature, exc
        )
        try:
            self._plans.append_trade(ledger)
        except PersistenceError as ledger_exc:
            logger.error("Trade %s for plan %s not recorded: %s", ledger.tx_signature, plan.id, ledger_exc)
        return PlanResult(
            plan.id, action, False,
            error=f"Swap {ledger.tx_signature} executed but plan not saved: {exc}",
        )

    async def _notify(self, kind: str, plan: TradePlan) -> None:
        if self._notifier is None:
            return
        try:
            if kind == "entry":
                await self._notifier.trade_entry(plan)
            else:
                await self._notifier.trade_completed(plan)
        except Exception:
            logger.exception("Trade %s notification for plan %s failed", kind, plan.id)
