"""Entry scoring — suggested SL/TP, scalping suitability and optimal entry.

Pure math over the market-structure block, no I/O.

Suggested levels bracket the current price:
    SL = max(current × (1 − 2 × volatility %), support × 0.98)
    TP = min(current × (1 + 3 × volatility %), resistance × 1.02)
"""

from solscalp.analysis.models import (
    Candle,
    EntryRecommendation,
    MarketStructure,
    RiskSuggestion,
    ScalpingScore,
)


def suggest_risk_levels(structure: MarketStructure) -> RiskSuggestion:
    """Volatility- and structure-bounded stop-loss / take-profit."""
    current = structure.current_price
    vol = structure.volatility

    stop_loss = max(current * (1 - vol * 2 / 100), structure.support * 0.98)
    take_profit = min(current * (1 + vol * 3 / 100), structure.resistance * 1.02)

    if current:
        sl_pct = (current - stop_loss) / current * 100
        tp_pct = (take_profit - current) / current * 100
    else:
        sl_pct = tp_pct = 0.0

    return RiskSuggestion(
        entry=current,
        stop_loss=stop_loss,
        stop_loss_percent=sl_pct,
        take_profit=take_profit,
        take_profit_percent=tp_pct,
    )


def score_scalping(structure: MarketStructure, risk: RiskSuggestion) -> ScalpingScore:
    """Composite 0-100 suitability of the token for a short-horizon trade."""
    vol = structure.volatility
    momentum = structure.momentum
    rr = risk.risk_reward_ratio
    rr_text = f"{rr:.1f}:1" if rr is not None else "n/a"
    trend = structure.trend.direction

    score = 50.0

    if 2 <= vol <= 10:
        score += 20
    elif 10 < vol <= 20:
        score += 10
    elif vol > 20:
        score -= 10
    elif momentum.is_momentum_play:
        # steady low-volatility climb
        score += 15
    elif vol >= 1:
        score -= 10
    else:
        score -= 20

    if structure.avg_volume > 10_000:
        score += 15
    elif structure.avg_volume > 1_000:
        score += 5
    else:
        score -= 15

    if structure.trend.strength > 50:
        score += 15

    if momentum.is_momentum_play:
        score += 15
    elif momentum.signal == "building":
        score += 10

    # no stop distance, no R/R adjustment
    if rr is not None:
        if rr >= 2:
            score += 10
        elif rr >= 1.5:
            score += 5
        elif rr < 1:
            score -= 20

    score = max(0.0, min(100.0, score))

    if score >= 70:
        verdict = "good"
        if momentum.is_momentum_play:
            reason = (
                f"Momentum play: {structure.price_change_percent_24h:+.1f}% in 24h "
                f"with {momentum.higher_lows} higher lows, R/R {rr_text}"
            )
        else:
            reason = (
                f"Good volatility ({vol:.1f}%), {trend} trend, "
                f"favorable risk/reward ratio of {rr_text}"
            )
    elif score >= 40:
        verdict = "moderate"
        reason = f"Moderate conditions. Volatility: {vol:.1f}%, Trend: {trend}, R/R: {rr_text}"
    else:
        verdict = "poor"
        if vol < 2 and not momentum.is_momentum_play:
            reason = f"Low volatility ({vol:.1f}%) - not enough price movement for scalping"
        elif vol > 20:
            reason = f"Very high volatility ({vol:.1f}%) - high risk of sudden losses"
        elif structure.avg_volume < 1_000:
            reason = "Low volume - may be difficult to exit position"
        else:
            reason = f"Unfavorable conditions for scalping. R/R: {rr_text}"

    return ScalpingScore(score=score, verdict=verdict, reason=reason)


def calculate_vwap(candles: list[Candle]) -> float:
    """Volume-weighted average close; plain average when volume is zero."""
    total_volume = sum(c.volume for c in candles)
    if total_volume == 0:
        return sum(c.close for c in candles) / len(candles)
    return sum(c.close * c.volume for c in candles) / total_volume


def _optimal_entry(structure: MarketStructure, vwap: float) -> tuple[float, str]:
    support = structure.support
    resistance = structure.resistance
    direction = structure.trend.direction

    if direction == "bullish":
        swing_low = structure.momentum.last_swing_low
        if swing_low is None:
            swing_low = support
        vwap_level = vwap * 0.995
        if swing_low >= vwap_level:
            return swing_low, "Bullish trend: buy the pullback to the last swing low"
        return vwap_level, "Bullish trend: buy the pullback just under VWAP"
    if direction == "bearish":
        return support * 1.01, "Bearish trend: wait for price to reach support"
    return (
        support + 0.2 * (resistance - support),
        "Sideways range: buy in the lower fifth of the range",
    )


def recommend_entry(
    candles: list[Candle],
    structure: MarketStructure,
    risk: RiskSuggestion,
    scalping: ScalpingScore,
) -> EntryRecommendation:
    """Optimal entry price and the entry signal.

    Signal precedence (first match wins):
        1. scalping verdict ``poor``            → ``avoid``
        2. momentum play                        → ``momentum_buy``
        3. momentum building, ≤ 3 × buffer      → ``buy``
        4. ≤ −buffer below optimal              → ``strong_buy``
        5. ≤ +buffer above optimal              → ``buy``
        6. otherwise                            → ``wait``

    The buffer is half the volatility, in percent.
    """
    vwap = calculate_vwap(candles)
    optimal, reason = _optimal_entry(structure, vwap)
    current = structure.current_price

    vs_optimal = (current - optimal) / optimal * 100 if optimal else 0.0
    buffer = 0.5 * structure.volatility
    momentum = structure.momentum

    if scalping.verdict == "poor":
        signal = "avoid"
    elif momentum.is_momentum_play:
        signal = "momentum_buy"
    elif momentum.signal == "building" and vs_optimal <= 3 * buffer:
        signal = "buy"
    elif vs_optimal <= -buffer:
        signal = "strong_buy"
    elif vs_optimal <= buffer:
        signal = "buy"
    else:
        signal = "wait"

    tp = risk.take_profit
    return EntryRecommendation(
        vwap=vwap,
        optimal_entry=optimal,
        optimal_entry_reason=reason,
        current_vs_optimal_percent=vs_optimal,
        signal=signal,
        expected_profit_current=(tp - current) / current * 100 if current else 0.0,
        expected_profit_optimal=(tp - optimal) / optimal * 100 if optimal else 0.0,
    )
