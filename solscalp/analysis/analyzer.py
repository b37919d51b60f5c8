"""Price analyzer — turns an OHLCV series into a full PriceAnalysis.

Pure function, no I/O.  Candle fetching lives in solscalp.market.
"""

import logging

from solscalp.analysis.entry import recommend_entry, score_scalping, suggest_risk_levels
from solscalp.analysis.indicators import (
    calculate_bollinger_bands,
    calculate_confluence,
    calculate_ema_signals,
    calculate_macd,
    calculate_rsi,
    calculate_stochastic,
)
from solscalp.analysis.models import Candle, IndicatorBlock, PriceAnalysis
from solscalp.analysis.structure import analyze_structure
from solscalp.errors import InsufficientDataError

logger = logging.getLogger("solscalp.analysis")

MIN_CANDLES = 10


def calculate_indicators(candles: list[Candle]) -> IndicatorBlock:
    closes = [c.close for c in candles]
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]

    rsi = calculate_rsi(closes)
    ema = calculate_ema_signals(closes)
    bollinger = calculate_bollinger_bands(closes)
    stochastic = calculate_stochastic(highs, lows, closes)
    macd = calculate_macd(closes)
    confluence = calculate_confluence(rsi, ema, bollinger, stochastic)

    return IndicatorBlock(
        rsi=rsi,
        ema=ema,
        bollinger=bollinger,
        stochastic=stochastic,
        macd=macd,
        confluence_score=confluence.score,
        confluence_signal=confluence.signal,
    )


def analyze_candles(candles: list[Candle]) -> PriceAnalysis:
    """Analyze *candles* (any order) and return every derived block.

    Raises:
        InsufficientDataError: fewer than ``MIN_CANDLES`` candles.
    """
    if len(candles) < MIN_CANDLES:
        raise InsufficientDataError(
            f"Need at least {MIN_CANDLES} candles, got {len(candles)}"
        )

    ordered = sorted(candles, key=lambda c: c.timestamp)

    structure = analyze_structure(ordered)
    indicators = calculate_indicators(ordered)
    risk = suggest_risk_levels(structure)
    scalping = score_scalping(structure, risk)
    entry = recommend_entry(ordered, structure, risk, scalping)

    logger.debug(
        "Analyzed %d candles: price=%.8g signal=%s confluence=%.1f",
        len(ordered), structure.current_price, entry.signal, indicators.confluence_score,
    )

    return PriceAnalysis(
        structure=structure,
        indicators=indicators,
        risk=risk,
        scalping=scalping,
        entry=entry,
        candle_count=len(ordered),
    )
