"""Explicit user actions on a plan: market activation and cancellation."""

import logging
from datetime import datetime, timezone
from typing import Optional

from solscalp.errors import (
    ExecutionError,
    InvalidTransitionError,
    PersistenceError,
    PlanNotFoundError,
    QuoteError,
    WalletError,
)
from solscalp.monitor.execution import SwapExecutor, buy_record, sell_record
from solscalp.plans import state_machine as sm
from solscalp.plans.models import ACTIVE, PENDING, TradePlan, TradeRecord
from solscalp.repos.plan_repo import PlanRepo

logger = logging.getLogger("solscalp.plans")


class PlanActions:
    """Activation and cancellation requested by the plan owner.

    Args:
        plans: Plan repository.
        executor: Swap executor shared with the monitor.
        notifier: Optional ``PlanNotifier``.
    """

    def __init__(self, plans: PlanRepo, executor: SwapExecutor, notifier=None) -> None:
        self._plans = plans
        self._executor = executor
        self._notifier = notifier

    def _save_after_swap(self, plan: TradePlan, expected_status: str, ledger: TradeRecord) -> None:
        """Save the transition of a plan whose swap already executed.

        When the save fails the ledger row is still recorded, then the
        error propagates.
        """
        try:
            self._plans.save_transition(plan, expected_status, ledger=ledger)
        except PersistenceError as exc:
            logger.error(
                "Plan %s: swap %s executed but plan not saved: %s", plan.id, ledger.tx_signature, exc
            )
            try:
                self._plans.append_trade(ledger)
            except PersistenceError as ledger_exc:
                logger.error("Trade %s for plan %s not recorded: %s", ledger.tx_signature, plan.id, ledger_exc)
            raise

    def _load(self, plan_id: str) -> TradePlan:
        plan = self._plans.get_plan(plan_id)
        if plan is None:
            raise PlanNotFoundError(f"Plan {plan_id} not found")
        return plan

    async def activate(self, plan_id: str, utc_now: Optional[datetime] = None) -> TradePlan:
        """Buy a ``pending`` market plan at market and make it ``active``.

        Raises:
            PlanNotFoundError, InvalidTransitionError: nothing was bought.
            WalletError, QuoteError, ExecutionError: the buy failed; the
                plan stays ``pending``.
        """
        if utc_now is None:
            utc_now = datetime.now(timezone.utc)

        plan = self._load(plan_id)
        if plan.status != PENDING:
            raise InvalidTransitionError(f"Plan {plan_id} is {plan.status}, not pending")

        fill = await self._executor.buy(plan)
        activated = sm.activate(plan, fill.fill_price, fill.amount_tokens, fill.signature, utc_now)
        self._save_after_swap(activated, PENDING, buy_record(plan, fill))
        logger.info("Plan %s activated at $%.8g", plan_id, fill.fill_price)

        if self._notifier is not None:
            try:
                await self._notifier.trade_entry(activated)
            except Exception:
                logger.exception("Trade entry notification for plan %s failed", plan_id)
        return activated

    async def cancel(self, plan_id: str) -> TradePlan:
        """Cancel a non-terminal plan, selling first when it holds tokens.

        A failed sale still cancels the plan, without exit data.

        Raises:
            PlanNotFoundError, InvalidTransitionError
        """
        plan = self._load(plan_id)
        if plan.is_terminal:
            raise InvalidTransitionError(f"Plan {plan_id} is already {plan.status}")

        fill = None
        if plan.status == ACTIVE and plan.amount_tokens:
            try:
                fill = await self._executor.sell(plan)
            except (WalletError, QuoteError, ExecutionError) as exc:
                logger.warning("Plan %s cancelled without selling: %s", plan_id, exc)

        if fill is not None:
            cancelled = sm.cancel(
                plan,
                exit_price=fill.exit_price,
                signature=fill.signature,
                sol_received=fill.sol_received,
            )
            self._save_after_swap(cancelled, plan.status, sell_record(plan, fill))
        else:
            cancelled = sm.cancel(plan)
            self._plans.save_transition(cancelled, plan.status)

        logger.info("Plan %s cancelled (was %s)", plan_id, plan.status)
        return cancelled
