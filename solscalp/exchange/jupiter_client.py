"""Jupiter Ultra API async client.

Handles quotes (SOL → token and token → SOL), spot prices, transaction
signing and swap execution.
"""

import base64
import logging

import httpx
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from solscalp.config import Config
from solscalp.errors import ExecutionError, NoTransactionReturnedError, QuoteError
from solscalp.exchange.models import LAMPORTS_PER_SOL, SOL_MINT, ExecutionResult, SwapQuote
from solscalp.http_retry import request_with_retry

logger = logging.getLogger("solscalp.exchange")

JUPITER_ULTRA_URL = "https://api.jup.ag/ultra/v1"
JUPITER_PRICE_URL = "https://api.jup.ag/price/v3"


def _parse_quote(data: dict) -> SwapQuote:
    try:
        return SwapQuote(
            input_mint=data["inputMint"],
            output_mint=data["outputMint"],
            in_amount=int(data["inAmount"]),
            out_amount=int(data["outAmount"]),
            in_usd_value=float(data.get("inUsdValue") or 0.0),
            out_usd_value=float(data.get("outUsdValue") or 0.0),
            request_id=data.get("requestId", ""),
            transaction=data.get("transaction") or None,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise QuoteError(f"Malformed Jupiter order response: {exc}") from exc


def _error_message(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            body = exc.response.json()
        except ValueError:
            return str(exc.response.status_code)
        return body.get("errorMessage") or body.get("error") or str(exc.response.status_code)
    return str(exc)


def sign_transaction(transaction_b64: str, wallet_secret: str) -> str:
    """Sign a base64 versioned transaction with a base58 secret key.

    Returns the signed transaction, base64 encoded.
    """
    try:
        keypair = Keypair.from_base58_string(wallet_secret)
        raw = VersionedTransaction.from_bytes(base64.b64decode(transaction_b64))
        signed = VersionedTransaction(raw.message, [keypair])
    except (ValueError, TypeError) as exc:
        # never include the secret in the message
        raise ExecutionError(f"Could not sign transaction: {type(exc).__name__}") from exc
    return base64.b64encode(bytes(signed)).decode("ascii")


class JupiterClient:
    """Async client wrapping the Jupiter Ultra swap and price APIs."""

    def __init__(
        self,
        config: Config,
        base_url: str = JUPITER_ULTRA_URL,
        price_url: str = JUPITER_PRICE_URL,
    ) -> None:
        self._base_url = base_url
        self._price_url = price_url
        self._headers = {
            "x-api-key": config.jupiter_api_key,
            "Content-Type": "application/json",
        }

    # ── Prices ───────────────────────────────────────────────────────────

    async def get_token_price(self, mint: str) -> float:
        """Current USD price of one whole token."""
        try:
            resp = await request_with_retry(
                "Jupiter", "get", self._price_url, self._headers, params={"ids": mint},
            )
        except httpx.HTTPError as exc:
            raise QuoteError(f"Jupiter price API failed: {_error_message(exc)}") from exc

        entry = resp.json().get(mint) or {}
        price = entry.get("usdPrice")
        if not price:
            raise QuoteError(f"No price data for token {mint}")
        return float(price)

    # ── Quotes ───────────────────────────────────────────────────────────

    async def _order(self, input_mint: str, output_mint: str, amount: int, taker: str) -> SwapQuote:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "taker": taker,
        }
        try:
            resp = await request_with_retry(
                "Jupiter", "get", f"{self._base_url}/order", self._headers, params=params,
            )
        except httpx.HTTPError as exc:
            raise QuoteError(f"Jupiter quote failed: {_error_message(exc)}") from exc
        return _parse_quote(resp.json())

    async def get_quote(self, token_mint: str, amount_sol: float, taker: str) -> SwapQuote:
        """Quote a SOL → token buy of *amount_sol* SOL."""
        lamports = int(amount_sol * LAMPORTS_PER_SOL)
        return await self._order(SOL_MINT, token_mint, lamports, taker)

    async def get_sell_quote(self, token_mint: str, amount_tokens: int, taker: str) -> SwapQuote:
        """Quote a token → SOL sell of *amount_tokens* smallest units."""
        return await self._order(token_mint, SOL_MINT, amount_tokens, taker)

    # ── Execution ────────────────────────────────────────────────────────

    async def execute_swap(self, signed_transaction: str, request_id: str) -> ExecutionResult:
        """Submit a signed transaction for the given order request."""
        payload = {"signedTransaction": signed_transaction, "requestId": request_id}
        try:
            resp = await request_with_retry(
                "Jupiter", "post", f"{self._base_url}/execute", self._headers, json=payload,
            )
        except httpx.HTTPError as exc:
            raise ExecutionError(f"Jupiter execute failed: {_error_message(exc)}") from exc

        data = resp.json()
        try:
            return ExecutionResult(
                status=data.get("status", "Failed"),
                signature=data.get("signature") or "",
                output_amount_result=int(data.get("outputAmountResult") or 0),
                input_amount_result=int(data.get("inputAmountResult") or 0),
                error=data.get("error"),
            )
        except (TypeError, ValueError) as exc:
            raise ExecutionError(f"Malformed Jupiter execute response: {exc}") from exc

    async def sign_and_execute(self, quote: SwapQuote, wallet_secret: str) -> ExecutionResult:
        """Sign the quote's transaction and execute it.

        Raises:
            NoTransactionReturnedError: the quote carries no transaction.
            ExecutionError: signing or submission failed.
        """
        if not quote.transaction:
            raise NoTransactionReturnedError("No transaction returned")

        signed = sign_transaction(quote.transaction, wallet_secret)
        result = await self.execute_swap(signed, quote.request_id)
        logger.info(
            "Swap %s → %s executed: status=%s signature=%s",
            quote.input_mint, quote.output_mint, result.status, result.signature,
        )
        return result
