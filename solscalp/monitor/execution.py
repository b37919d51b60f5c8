"""Swap execution — buys and sells for a plan through the exchange client.

Shared by the monitor cycle and the explicit user actions.  Fill
arithmetic:

    tokens received = executed output amount (quoted amount if absent)
    fill price      = USD spent / whole tokens received
    SOL received    = executed lamports / 1e9
"""

import logging
from dataclasses import dataclass
from typing import Optional

from solscalp.errors import ExecutionError, WalletError
from solscalp.exchange.models import LAMPORTS_PER_SOL, SOL_MINT
from solscalp.plans.models import TradePlan, TradeRecord
from solscalp.repos.wallet_repo import WalletRepo
from solscalp.wallet.custody import WalletCustody

logger = logging.getLogger("solscalp.monitor")


@dataclass(frozen=True)
class BuyFill:
    amount_tokens: int  # smallest units
    fill_price: float  # USD per whole token
    signature: str


@dataclass(frozen=True)
class SellFill:
    sol_received: float
    exit_price: float  # USD per whole token
    signature: str
    tokens_sold: int = 0  # smallest units


def buy_record(plan: TradePlan, fill: BuyFill) -> TradeRecord:
    return TradeRecord(
        user_id=plan.user_id,
        plan_id=plan.id,
        token_mint=plan.token.mint,
        token_symbol=plan.token.symbol,
        side="buy",
        amount_in=plan.amount_sol,
        amount_out=fill.amount_tokens,
        input_mint=SOL_MINT,
        output_mint=plan.token.mint,
        price_usd=fill.fill_price,
        tx_signature=fill.signature,
    )


def sell_record(plan: TradePlan, fill: SellFill) -> TradeRecord:
    return TradeRecord(
        user_id=plan.user_id,
        plan_id=plan.id,
        token_mint=plan.token.mint,
        token_symbol=plan.token.symbol,
        side="sell",
        amount_in=fill.tokens_sold,
        amount_out=fill.sol_received,
        input_mint=plan.token.mint,
        output_mint=SOL_MINT,
        price_usd=fill.exit_price,
        tx_signature=fill.signature,
    )


class SwapExecutor:
    """Quotes, signs and executes plan swaps with the owner's wallet.

    Args:
        exchange: Quote/execution client (``JupiterClient`` or a fake).
        wallets: Wallet repository.
        custody: Decrypts the stored wallet secret.
    """

    def __init__(self, exchange, wallets: WalletRepo, custody: WalletCustody) -> None:
        self._exchange = exchange
        self._wallets = wallets
        self._custody = custody

    def _credentials(self, user_id: str) -> tuple[str, str]:
        wallet = self._wallets.get_wallet(user_id)
        if wallet is None:
            raise WalletError("No wallet configured")
        return wallet.public_key, self._custody.decrypt(wallet.encrypted_private_key)

    async def buy(self, plan: TradePlan, observed_price: Optional[float] = None) -> BuyFill:
        """Spend ``plan.amount_sol`` on the plan's token.

        Raises:
            WalletError, QuoteError, NoTransactionReturnedError, ExecutionError
        """
        public_key, secret = self._credentials(plan.user_id)
        quote = await self._exchange.get_quote(plan.token.mint, plan.amount_sol, public_key)
        result = await self._exchange.sign_and_execute(quote, secret)
        if not result.succeeded:
            raise ExecutionError(result.error or f"Swap status {result.status}")

        tokens = result.output_amount_result or quote.out_amount
        whole_tokens = tokens / 10 ** plan.token.decimals
        if quote.in_usd_value > 0 and whole_tokens > 0:
            fill_price = quote.in_usd_value / whole_tokens
        elif observed_price:
            fill_price = observed_price
        else:
            fill_price = quote.price_per_token(plan.token.decimals)

        logger.info(
            "Bought %s for plan %s: %d units at $%.8g (tx %s)",
            plan.token.symbol, plan.id, tokens, fill_price, result.signature,
        )
        return BuyFill(amount_tokens=tokens, fill_price=fill_price, signature=result.signature)

    async def sell(
        self,
        plan: TradePlan,
        observed_price: Optional[float] = None,
        amount_tokens: Optional[int] = None,
    ) -> SellFill:
        """Sell *amount_tokens* (default: the plan's full holding) back to SOL.

        Raises:
            WalletError, QuoteError, NoTransactionReturnedError, ExecutionError
        """
        tokens = amount_tokens if amount_tokens is not None else plan.amount_tokens
        if not tokens:
            raise ExecutionError(f"Plan {plan.id} holds no tokens")

        public_key, secret = self._credentials(plan.user_id)
        quote = await self._exchange.get_sell_quote(plan.token.mint, tokens, public_key)
        result = await self._exchange.sign_and_execute(quote, secret)
        if not result.succeeded:
            raise ExecutionError(result.error or f"Swap status {result.status}")

        lamports = result.output_amount_result or quote.out_amount
        sol_received = lamports / LAMPORTS_PER_SOL

        if observed_price:
            exit_price = observed_price
        else:
            whole_tokens = tokens / 10 ** plan.token.decimals
            exit_price = quote.in_usd_value / whole_tokens if whole_tokens else 0.0

        logger.info(
            "Sold %s for plan %s: %.6f SOL at $%.8g (tx %s)",
            plan.token.symbol, plan.id, sol_received, exit_price, result.signature,
        )
        return SellFill(
            sol_received=sol_received,
            exit_price=exit_price,
            signature=result.signature,
            tokens_sold=tokens,
        )
