"""Shared fixtures — a SQLite workspace and a scripted exchange."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from solscalp.errors import NoTransactionReturnedError, QuoteError
from solscalp.exchange.models import LAMPORTS_PER_SOL, SOL_MINT, ExecutionResult, SwapQuote
from solscalp.monitor.cycle import MonitorCycle
from solscalp.monitor.execution import SwapExecutor
from solscalp.monitor.rate_limiter import RateLimiter
from solscalp.plans.actions import PlanActions
from solscalp.plans.models import PENDING, MarketOrder, TokenInfo, TradePlan
from solscalp.repos.db import init_db
from solscalp.repos.plan_repo import PlanRepo
from solscalp.repos.price_repo import PriceRepo
from solscalp.repos.settings_repo import SettingsRepo
from solscalp.repos.trade_repo import TradeRepo
from solscalp.repos.wallet_repo import WalletRecord, WalletRepo
from solscalp.wallet.custody import WalletCustody

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
WALLET_SECRET = "base58-wallet-secret"
DECIMALS = 6


class FakeExchange:
    """Quotes at scripted USD prices with SOL fixed at ``sol_usd``.

    Buys and sells are priced consistently, so realized P&L matches the
    price move between entry and exit.
    """

    def __init__(self, sol_usd: float = 100.0) -> None:
        self.sol_usd = sol_usd
        self.prices: dict[str, float] = {}
        self.failing_quotes: set[str] = set()
        self.no_transaction: set[str] = set()
        self.execution_status = "Success"
        self.calls: list[tuple[str, str]] = []
        self.secrets: list[str] = []

    async def get_token_price(self, mint: str) -> float:
        self.calls.append(("price", mint))
        if mint not in self.prices:
            raise QuoteError(f"No price data for token {mint}")
        return self.prices[mint]

    async def get_quote(self, token_mint: str, amount_sol: float, taker: str) -> SwapQuote:
        self.calls.append(("buy_quote", token_mint))
        if token_mint in self.failing_quotes:
            raise QuoteError("Jupiter quote failed: route not found")
        usd = amount_sol * self.sol_usd
        tokens = round(usd / self.prices[token_mint] * 10 ** DECIMALS)
        return SwapQuote(
            input_mint=SOL_MINT,
            output_mint=token_mint,
            in_amount=round(amount_sol * LAMPORTS_PER_SOL),
            out_amount=tokens,
            in_usd_value=usd,
            out_usd_value=usd,
            request_id="req-buy",
            transaction=None if token_mint in self.no_transaction else "dHg=",
        )

    async def get_sell_quote(self, token_mint: str, amount_tokens: int, taker: str) -> SwapQuote:
        self.calls.append(("sell_quote", token_mint))
        if token_mint in self.failing_quotes:
            raise QuoteError("Jupiter quote failed: route not found")
        usd = amount_tokens / 10 ** DECIMALS * self.prices[token_mint]
        return SwapQuote(
            input_mint=token_mint,
            output_mint=SOL_MINT,
            in_amount=amount_tokens,
            out_amount=round(usd / self.sol_usd * LAMPORTS_PER_SOL),
            in_usd_value=usd,
            out_usd_value=usd,
            request_id="req-sell",
            transaction="dHg=",
        )

    async def sign_and_execute(self, quote: SwapQuote, wallet_secret: str) -> ExecutionResult:
        if not quote.transaction:
            raise NoTransactionReturnedError("No transaction returned")
        self.secrets.append(wallet_secret)
        self.calls.append(("execute", quote.request_id))
        return ExecutionResult(
            status=self.execution_status,
            signature=f"sig-{len(self.secrets)}",
            output_amount_result=quote.out_amount if self.execution_status == "Success" else 0,
            error=None if self.execution_status == "Success" else "slippage exceeded",
        )

    def executed(self) -> int:
        return sum(1 for kind, _ in self.calls if kind == "execute")


class RecordingNotifier:
    def __init__(self) -> None:
        self.entries: list[TradePlan] = []
        self.completions: list[TradePlan] = []

    async def trade_entry(self, plan: TradePlan) -> None:
        self.entries.append(plan)

    async def trade_completed(self, plan: TradePlan) -> None:
        self.completions.append(plan)


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "solscalp.db")
    init_db(path)
    return path


@pytest.fixture
def workspace(db_path):
    """Repositories, fake exchange, executor, cycle and actions over one DB."""
    custody = WalletCustody("test-encryption-key")
    wallets = WalletRepo(db_path)
    wallets.upsert_wallet(
        WalletRecord("user-1", "UserPubkey1111111111111111111111111111111", custody.encrypt(WALLET_SECRET))
    )

    plans = PlanRepo(db_path)
    settings = SettingsRepo(db_path)
    exchange = FakeExchange()
    executor = SwapExecutor(exchange, wallets, custody)
    notifier = RecordingNotifier()

    cycle = MonitorCycle(
        plans=plans,
        prices=PriceRepo(db_path),
        settings=settings,
        exchange=exchange,
        executor=executor,
        rate_limiter=RateLimiter.from_interval(0),
        notifier=notifier,
    )
    return SimpleNamespace(
        db_path=db_path,
        plans=plans,
        trades=TradeRepo(db_path),
        prices=PriceRepo(db_path),
        settings=settings,
        wallets=wallets,
        exchange=exchange,
        executor=executor,
        notifier=notifier,
        cycle=cycle,
        actions=PlanActions(plans, executor, notifier),
    )


@pytest.fixture
def make_plan():
    """Factory for plans owned by ``user-1`` on a 6-decimal token."""

    def _make(plan_id: str = "plan-1", mint: str = "MintA", **overrides) -> TradePlan:
        fields = dict(
            id=plan_id,
            user_id="user-1",
            token=TokenInfo(mint=mint, symbol=mint[-1] * 3, decimals=DECIMALS),
            amount_sol=1.0,
            order=MarketOrder(),
            stop_loss_percent=5.0,
            take_profit_percent=10.0,
            status=PENDING,
            created_at=NOW,
        )
        fields.update(overrides)
        return TradePlan(**fields)

    return _make
