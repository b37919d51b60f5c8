"""Tests for solscalp.plans.actions — explicit activation and cancellation."""

from datetime import datetime, timedelta, timezone

import pytest

from solscalp.errors import InvalidTransitionError, PlanNotFoundError, QuoteError, StalePlanError
from solscalp.plans import state_machine as sm
from solscalp.plans.actions import PlanActions
from solscalp.plans.models import ACTIVE, CANCELLED, PENDING, WAITING_ENTRY, LimitOrder
from solscalp.repos.plan_repo import PlanRepo

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class _StaleReadRepo(PlanRepo):
    """Returns a snapshot taken before another writer changed the plan."""

    def __init__(self, db_path, snapshot) -> None:
        super().__init__(db_path)
        self._snapshot = snapshot

    def get_plan(self, plan_id):
        return self._snapshot


class TestActivate:
    @pytest.mark.asyncio
    async def test_market_buy(self, workspace, make_plan):
        workspace.plans.insert_plan(make_plan())
        workspace.exchange.prices["MintA"] = 0.5

        plan = await workspace.actions.activate("plan-1", utc_now=NOW)

        assert plan.status == ACTIVE
        assert plan.entry_price_usd == pytest.approx(0.5)
        assert plan.amount_tokens == 200_000_000
        assert workspace.plans.get_plan("plan-1") == plan
        assert [t.side for t in workspace.trades.get_trades()] == ["buy"]
        assert workspace.notifier.entries == [plan]

    @pytest.mark.asyncio
    async def test_unknown_plan(self, workspace):
        with pytest.raises(PlanNotFoundError):
            await workspace.actions.activate("nope")

    @pytest.mark.asyncio
    async def test_only_pending_plans(self, workspace, make_plan):
        workspace.plans.insert_plan(
            make_plan(order=LimitOrder(target_price=1.0), status=WAITING_ENTRY, waiting_since=NOW)
        )
        with pytest.raises(InvalidTransitionError):
            await workspace.actions.activate("plan-1")
        assert workspace.exchange.calls == []

    @pytest.mark.asyncio
    async def test_quote_failure_leaves_pending(self, workspace, make_plan):
        workspace.plans.insert_plan(make_plan())
        workspace.exchange.prices["MintA"] = 0.5
        workspace.exchange.failing_quotes.add("MintA")

        with pytest.raises(QuoteError):
            await workspace.actions.activate("plan-1")
        assert workspace.plans.get_plan("plan-1").status == PENDING

    @pytest.mark.asyncio
    async def test_unsaved_buy_still_recorded(self, workspace, make_plan):
        pending = make_plan()
        workspace.plans.insert_plan(sm.cancel(pending))
        workspace.exchange.prices["MintA"] = 0.5
        actions = PlanActions(_StaleReadRepo(workspace.db_path, pending), workspace.executor)

        with pytest.raises(StalePlanError):
            await actions.activate("plan-1", utc_now=NOW)

        assert workspace.plans.get_plan("plan-1").status == CANCELLED
        trades = workspace.trades.get_trades()
        assert [(t.side, t.tx_signature) for t in trades] == [("buy", "sig-1")]

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_undo_activation(self, workspace, make_plan):
        workspace.plans.insert_plan(make_plan())
        workspace.exchange.prices["MintA"] = 0.5

        class _BrokenNotifier:
            async def trade_entry(self, plan):
                raise RuntimeError("smtp exploded")

        actions = PlanActions(workspace.plans, workspace.executor, _BrokenNotifier())
        plan = await actions.activate("plan-1", utc_now=NOW)

        assert plan.status == ACTIVE
        assert workspace.plans.get_plan("plan-1").status == ACTIVE


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_pending(self, workspace, make_plan):
        workspace.plans.insert_plan(make_plan())
        plan = await workspace.actions.cancel("plan-1")
        assert plan.status == CANCELLED
        assert workspace.exchange.calls == []

    @pytest.mark.asyncio
    async def test_cancel_active_sells(self, workspace, make_plan):
        active = sm.activate(make_plan(), 2.0, 50_000_000, "sig-buy", NOW - timedelta(hours=1))
        workspace.plans.insert_plan(active)
        workspace.exchange.prices["MintA"] = 2.2

        plan = await workspace.actions.cancel("plan-1")

        assert plan.status == CANCELLED
        assert plan.exit_price_usd == pytest.approx(2.2)
        assert plan.profit_loss_percent == pytest.approx(10.0)
        assert plan.triggered_at is None
        assert [t.side for t in workspace.trades.get_trades()] == ["sell"]

    @pytest.mark.asyncio
    async def test_cancel_active_when_sale_fails(self, workspace, make_plan):
        active = sm.activate(make_plan(), 2.0, 50_000_000, "sig-buy", NOW - timedelta(hours=1))
        workspace.plans.insert_plan(active)
        workspace.exchange.prices["MintA"] = 2.2
        workspace.exchange.failing_quotes.add("MintA")

        plan = await workspace.actions.cancel("plan-1")

        assert plan.status == CANCELLED
        assert plan.exit_price_usd is None
        assert workspace.trades.get_trades() == []

    @pytest.mark.asyncio
    async def test_terminal_plan_rejected(self, workspace, make_plan):
        workspace.plans.insert_plan(make_plan(status=CANCELLED))
        with pytest.raises(InvalidTransitionError):
            await workspace.actions.cancel("plan-1")

    @pytest.mark.asyncio
    async def test_unsaved_sale_still_recorded(self, workspace, make_plan):
        active = sm.activate(make_plan(), 2.0, 50_000_000, "sig-buy", NOW - timedelta(hours=1))
        workspace.plans.insert_plan(sm.cancel(active))
        workspace.exchange.prices["MintA"] = 2.2
        actions = PlanActions(_StaleReadRepo(workspace.db_path, active), workspace.executor)

        with pytest.raises(StalePlanError):
            await actions.cancel("plan-1")

        trades = workspace.trades.get_trades()
        assert [(t.side, t.tx_signature) for t in trades] == [("sell", "sig-1")]
