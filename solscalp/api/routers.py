"""Internal API routers — /status, /tokens/analyze, /monitor/run, /plans, /trades.

No business logic, no DB access. Delegates to the cycle, the candle source,
plan actions and repos injected at startup.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Query

from solscalp.errors import (
    ExecutionError,
    InsufficientDataError,
    InvalidTransitionError,
    MarketDataError,
    PersistenceError,
    PlanNotFoundError,
    QuoteError,
    StalePlanError,
    WalletError,
)

logger = logging.getLogger("solscalp.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_cycle = None  # MonitorCycle, set via configure_routers()
_candles = None  # BirdeyeClient, set via configure_routers()
_plan_actions = None  # PlanActions, set via configure_routers()
_trade_repo = None  # TradeRepo, set via configure_routers()
_cron_secret: str = ""


def configure_routers(
    cycle=None,
    candles=None,
    plan_actions=None,
    trade_repo=None,
    cron_secret: str = "",
) -> None:
    """Inject dependencies from the application startup.

    Args:
        cycle: A ``MonitorCycle`` (or duck-type for tests).
        candles: A ``BirdeyeClient`` with ``analyze_token(address)``.
        plan_actions: A ``PlanActions`` instance.
        trade_repo: A ``TradeRepo`` instance.
        cron_secret: Bearer token required by ``POST /monitor/run``.
    """
    global _cycle, _candles, _plan_actions, _trade_repo, _cron_secret  # noqa: PLW0603
    _cycle = cycle
    _candles = candles
    _plan_actions = plan_actions
    _trade_repo = trade_repo
    _cron_secret = cron_secret


def _require_cron_secret(authorization: Optional[str]) -> None:
    if not _cron_secret or authorization != f"Bearer {_cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def _require(dependency, name: str):
    if dependency is None:
        raise HTTPException(status_code=503, detail=f"{name} not configured")
    return dependency


# ── Status ───────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Return the report of the most recent monitor cycle."""
    report = getattr(_cycle, "last_report", None)
    return {
        "monitor_configured": _cycle is not None,
        "last_cycle": report.to_dict() if report is not None else None,
    }


# ── Analysis ─────────────────────────────────────────────────────────────


@router.get("/tokens/analyze")
async def analyze_token(address: str = Query(..., min_length=32, max_length=44)):
    """Run the full price analysis for a token mint."""
    candles = _require(_candles, "Candle source")
    try:
        analysis = await candles.analyze_token(address)
    except InsufficientDataError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except MarketDataError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"address": address, "analysis": analysis.to_dict()}


# ── Monitor ──────────────────────────────────────────────────────────────


@router.post("/monitor/run")
async def run_monitor(authorization: Optional[str] = Header(default=None)):
    """Run one monitor cycle (scheduler hook)."""
    _require_cron_secret(authorization)
    cycle = _require(_cycle, "Monitor")
    try:
        report = await cycle.run_once()
    except PersistenceError as exc:
        logger.error("Monitor cycle aborted: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to fetch plans") from exc
    return report.to_dict()


# ── Plans ────────────────────────────────────────────────────────────────


def _plan_summary(plan) -> dict:
    return {
        "id": plan.id,
        "status": plan.status,
        "token_symbol": plan.token.symbol,
        "entry_price_usd": plan.entry_price_usd,
        "stop_loss_price": plan.stop_loss_price,
        "take_profit_price": plan.take_profit_price,
        "exit_price_usd": plan.exit_price_usd,
        "profit_loss_sol": plan.profit_loss_sol,
        "profit_loss_percent": plan.profit_loss_percent,
    }


@router.post("/plans/{plan_id}/activate")
async def activate_plan(plan_id: str):
    """Market-buy a pending plan."""
    actions = _require(_plan_actions, "Plan actions")
    try:
        plan = await actions.activate(plan_id)
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except WalletError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (QuoteError, ExecutionError) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except StalePlanError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return _plan_summary(plan)


@router.post("/plans/{plan_id}/cancel")
async def cancel_plan(plan_id: str):
    """Cancel a plan, selling its tokens first when active."""
    actions = _require(_plan_actions, "Plan actions")
    try:
        plan = await actions.cancel(plan_id)
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except StalePlanError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return _plan_summary(plan)


# ── Trades ───────────────────────────────────────────────────────────────


@router.get("/trades")
async def get_trades(
    limit: int = Query(50, ge=1, le=500),
    plan_id: Optional[str] = None,
):
    """Return the most recent ledger entries."""
    repo = _require(_trade_repo, "Trade repository")
    return [
        {
            "id": t.id,
            "plan_id": t.plan_id,
            "token_symbol": t.token_symbol,
            "side": t.side,
            "amount_in": t.amount_in,
            "amount_out": t.amount_out,
            "price_usd": t.price_usd,
            "tx_signature": t.tx_signature,
            "created_at": t.created_at,
        }
        for t in repo.get_trades(limit=limit, plan_id=plan_id)
    ]
