"""Analysis data models — typed representations for indicator and analyzer outputs."""

from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar."""

    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: int  # unix seconds, bucket start


# ── Indicator outputs ────────────────────────────────────────────────────


@dataclass(frozen=True)
class RSIResult:
    value: float  # 0-100, one decimal
    signal: str  # "overbought", "oversold" or "neutral"
    divergence: str  # "bullish", "bearish" or "none"


@dataclass(frozen=True)
class EMASignals:
    ema9: float
    ema21: float
    crossover: str  # "bullish", "bearish" or "none"
    price_vs_ema: str  # "above_both", "below_both" or "between"


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float
    bandwidth: float  # (upper - lower) / middle * 100
    percent_b: float  # 0 at lower band, 1 at upper band
    signal: str  # "overbought", "oversold", "squeeze" or "neutral"


@dataclass(frozen=True)
class StochasticResult:
    k: float
    d: float
    signal: str  # "overbought", "oversold" or "neutral"
    crossover: str  # "bullish", "bearish" or "none"


@dataclass(frozen=True)
class MACDResult:
    macd_line: float
    signal_line: float
    histogram: float
    trend: str  # "bullish", "bearish" or "neutral"
    histogram_trend: str  # "growing", "shrinking" or "flat"
    momentum: str  # "strengthening", "weakening" or "stable"
    crossover: str  # "bullish", "bearish" or "none"
    zero_line_cross: str  # "bullish", "bearish" or "none"


@dataclass(frozen=True)
class ConfluenceResult:
    score: float  # 0-100, 50 = no edge
    signal: str  # "strong_buy", "buy", "neutral", "sell" or "strong_sell"
    bullish_votes: int
    bearish_votes: int


@dataclass(frozen=True)
class IndicatorBlock:
    rsi: RSIResult
    ema: EMASignals
    bollinger: BollingerBands
    stochastic: StochasticResult
    macd: MACDResult
    confluence_score: float
    confluence_signal: str


# ── Market structure ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class TrendResult:
    direction: str  # "bullish", "bearish" or "sideways"
    strength: float  # 0-100
    change_percent: float  # recent-vs-older average shift


@dataclass(frozen=True)
class MomentumBlock:
    direction: str  # "bullish", "bearish" or "neutral"
    consistency: float  # 0-100
    higher_highs: int
    lower_highs: int
    higher_lows: int
    lower_lows: int
    momentum_score: float  # 0-100
    is_momentum_play: bool
    signal: str  # "strong", "building", "fading" or "none"
    last_swing_low: Optional[float] = None
    last_swing_high: Optional[float] = None


@dataclass(frozen=True)
class MarketStructure:
    current_price: float
    high_24h: float
    low_24h: float
    price_change_24h: float
    price_change_percent_24h: float
    avg_volume: float
    volatility: float  # stddev of closes as % of mean
    trend: TrendResult
    support: float
    resistance: float
    momentum: MomentumBlock


# ── Entry scoring ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RiskSuggestion:
    entry: float
    stop_loss: float
    stop_loss_percent: float
    take_profit: float
    take_profit_percent: float

    @property
    def risk_reward_ratio(self) -> Optional[float]:
        """Take-profit distance over stop distance; ``None`` when there is no stop distance."""
        if self.stop_loss_percent <= 0:
            return None
        return self.take_profit_percent / self.stop_loss_percent


@dataclass(frozen=True)
class ScalpingScore:
    score: float  # 0-100
    verdict: str  # "good", "moderate" or "poor"
    reason: str


@dataclass(frozen=True)
class EntryRecommendation:
    vwap: float
    optimal_entry: float
    optimal_entry_reason: str
    current_vs_optimal_percent: float
    signal: str  # "strong_buy", "buy", "momentum_buy", "wait" or "avoid"
    expected_profit_current: float  # % to suggested TP from current price
    expected_profit_optimal: float  # % to suggested TP from optimal entry


@dataclass(frozen=True)
class PriceAnalysis:
    """Point-in-time analysis of one token's candle series."""

    structure: MarketStructure
    indicators: IndicatorBlock
    risk: RiskSuggestion
    scalping: ScalpingScore
    entry: EntryRecommendation
    candle_count: int

    @property
    def current_price(self) -> float:
        return self.structure.current_price

    @property
    def entry_signal(self) -> str:
        return self.entry.signal

    def to_dict(self) -> dict:
        """Return a JSON-serialisable dict of every derived field."""
        data = asdict(self)
        data["risk"]["risk_reward_ratio"] = self.risk.risk_reward_ratio
        return data
