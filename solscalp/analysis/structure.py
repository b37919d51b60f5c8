"""Market structure — volatility, trend, support/resistance and swing momentum.

Pure functions over an ascending candle series, no I/O.
"""

import numpy as np

from solscalp.analysis.models import Candle, MarketStructure, MomentumBlock, TrendResult


# Trend compares the last TREND_WINDOW closes with the TREND_WINDOW before.
TREND_WINDOW = 8
# Support / resistance look back this many candles.
SR_LOOKBACK = 16
# A trend needs the window averages to differ by more than this (%).
TREND_THRESHOLD_PCT = 2.0


def calculate_volatility(closes: list[float]) -> float:
    """Population standard deviation of *closes* as a percentage of their mean."""
    arr = np.asarray(closes, dtype=float)
    mean = float(arr.mean())
    if mean == 0:
        return 0.0
    return float(arr.std()) / mean * 100.0


def calculate_trend(closes: list[float]) -> TrendResult:
    """Classify the trend by comparing two adjacent moving windows.

    ``> 2 %`` shift → bullish / bearish with strength ``min(100, |diff| × 10)``;
    otherwise sideways with strength ``100 − |diff| × 20``.
    """
    recent = closes[-TREND_WINDOW:]
    older = closes[-2 * TREND_WINDOW:-TREND_WINDOW]

    recent_avg = float(np.mean(recent))
    older_avg = float(np.mean(older)) if older else recent_avg
    if older_avg == 0:
        return TrendResult(direction="sideways", strength=100.0, change_percent=0.0)

    diff = (recent_avg - older_avg) / older_avg * 100.0

    if diff > TREND_THRESHOLD_PCT:
        return TrendResult("bullish", min(100.0, diff * 10), diff)
    if diff < -TREND_THRESHOLD_PCT:
        return TrendResult("bearish", min(100.0, abs(diff) * 10), diff)
    return TrendResult("sideways", max(0.0, 100.0 - abs(diff) * 20), diff)


def find_swing_highs(highs: list[float]) -> list[float]:
    """Highs that exceed both immediate neighbours, oldest first."""
    return [
        highs[i]
        for i in range(1, len(highs) - 1)
        if highs[i] > highs[i - 1] and highs[i] > highs[i + 1]
    ]


def find_swing_lows(lows: list[float]) -> list[float]:
    """Lows that undercut both immediate neighbours, oldest first."""
    return [
        lows[i]
        for i in range(1, len(lows) - 1)
        if lows[i] < lows[i - 1] and lows[i] < lows[i + 1]
    ]


def _count_steps(points: list[float]) -> tuple[int, int]:
    """Return ``(rising, falling)`` counts between consecutive swing points."""
    rising = sum(1 for a, b in zip(points, points[1:]) if b > a)
    falling = sum(1 for a, b in zip(points, points[1:]) if b < a)
    return rising, falling


def calculate_momentum(
    highs: list[float],
    lows: list[float],
    change_percent_24h: float,
    volatility: float,
) -> MomentumBlock:
    """Swing-structure momentum.

    ``consistency`` is the share of swing steps that agree with the
    dominant direction.  ``momentum_score`` starts from the 24h change
    (50 + 2.5 × change) and is pushed further by ``consistency × 0.2``
    when the swing structure agrees with the sign of the change.
    """
    swing_highs = find_swing_highs(highs)
    swing_lows = find_swing_lows(lows)
    higher_highs, lower_highs = _count_steps(swing_highs)
    higher_lows, lower_lows = _count_steps(swing_lows)

    bullish = higher_highs + higher_lows
    bearish = lower_highs + lower_lows
    total = bullish + bearish
    consistency = max(bullish, bearish) / total * 100.0 if total else 0.0

    if bullish > bearish:
        direction = "bullish"
    elif bearish > bullish:
        direction = "bearish"
    else:
        direction = "neutral"

    score = 50.0 + change_percent_24h * 2.5
    if direction == "bullish" and change_percent_24h > 0:
        score += consistency * 0.2
    elif direction == "bearish" and change_percent_24h < 0:
        score -= consistency * 0.2
    score = max(0.0, min(100.0, score))

    is_momentum_play = (
        (change_percent_24h >= 10 and higher_lows >= 2)
        or (change_percent_24h >= 5 and consistency >= 50 and volatility < 5)
    )

    if is_momentum_play:
        signal = "strong"
    elif change_percent_24h >= 2 and higher_lows >= 1 and direction == "bullish":
        signal = "building"
    elif change_percent_24h <= -2 and direction == "bearish":
        signal = "fading"
    else:
        signal = "none"

    return MomentumBlock(
        direction=direction,
        consistency=round(consistency, 1),
        higher_highs=higher_highs,
        lower_highs=lower_highs,
        higher_lows=higher_lows,
        lower_lows=lower_lows,
        momentum_score=round(score, 1),
        is_momentum_play=is_momentum_play,
        signal=signal,
        last_swing_low=swing_lows[-1] if swing_lows else None,
        last_swing_high=swing_highs[-1] if swing_highs else None,
    )


def analyze_structure(candles: list[Candle]) -> MarketStructure:
    """Compute the full market structure block for an ascending series."""
    closes = [c.close for c in candles]
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]
    volumes = [c.volume for c in candles]

    current = closes[-1]
    opening = closes[0]
    change = current - opening
    change_pct = change / opening * 100.0 if opening else 0.0

    volatility = calculate_volatility(closes)

    return MarketStructure(
        current_price=current,
        high_24h=max(highs),
        low_24h=min(lows),
        price_change_24h=change,
        price_change_percent_24h=change_pct,
        avg_volume=float(np.mean(volumes)),
        volatility=volatility,
        trend=calculate_trend(closes),
        support=min(lows[-SR_LOOKBACK:]),
        resistance=max(highs[-SR_LOOKBACK:]),
        momentum=calculate_momentum(highs, lows, change_pct, volatility),
    )
