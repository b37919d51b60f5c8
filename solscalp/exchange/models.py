"""Exchange data models — typed representations of Jupiter Ultra API objects."""

from dataclasses import dataclass
from typing import Optional

SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000


@dataclass(frozen=True)
class SwapQuote:
    """An executable swap order returned by ``/ultra/v1/order``."""

    input_mint: str
    output_mint: str
    in_amount: int  # smallest units of the input mint
    out_amount: int  # smallest units of the output mint
    in_usd_value: float
    out_usd_value: float
    request_id: str
    transaction: Optional[str] = None  # base64 unsigned transaction

    def price_per_token(self, decimals: int) -> float:
        """USD price per whole output token implied by this quote."""
        tokens = self.out_amount / 10 ** decimals
        if tokens <= 0:
            return 0.0
        return self.out_usd_value / tokens


@dataclass(frozen=True)
class ExecutionResult:
    """Result of ``/ultra/v1/execute``."""

    status: str  # "Success" or "Failed"
    signature: str
    output_amount_result: int  # smallest units actually received
    input_amount_result: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "Success"
