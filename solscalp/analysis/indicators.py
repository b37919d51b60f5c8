"""Technical indicators — EMA, RSI, Bollinger Bands, Stochastic, MACD, confluence.

Pure functions, no I/O.  Every signal-level function degrades to a neutral
default when the history is shorter than its period instead of raising, so
one short series never blocks a whole analysis.
"""

import math

from solscalp.analysis.models import (
    BollingerBands,
    ConfluenceResult,
    EMASignals,
    MACDResult,
    RSIResult,
    StochasticResult,
)


# ── Shared helpers ───────────────────────────────────────────────────────


def _crossover(prev_fast: float, prev_slow: float, fast: float, slow: float) -> str:
    """Classify a crossing of *fast* over *slow* between two samples."""
    if prev_fast <= prev_slow and fast > slow:
        return "bullish"
    if prev_fast >= prev_slow and fast < slow:
        return "bearish"
    return "none"


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


def _pstdev(values: list[float]) -> float:
    m = _mean(values)
    return math.sqrt(sum((v - m) ** 2 for v in values) / len(values))


# ── EMA ──────────────────────────────────────────────────────────────────


def calculate_ema(values: list[float], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    Uses the standard EMA formula:
        ``EMA_today = value × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    The first EMA value is seeded with the SMA of the first *period*
    values.  Returns a series the same length as *values*; entries before
    the seed are ``float('nan')``.

    Raises ``ValueError`` if fewer than *period* values are provided.
    """
    if len(values) < period:
        raise ValueError(
            f"Need at least {period} values for EMA({period}), "
            f"got {len(values)}"
        )

    k = 2.0 / (period + 1)
    ema: list[float] = [float("nan")] * len(values)
    ema[period - 1] = sum(values[:period]) / period

    for i in range(period, len(values)):
        ema[i] = values[i] * k + ema[i - 1] * (1 - k)

    return ema


def calculate_ema_signals(closes: list[float]) -> EMASignals:
    """EMA(9) / EMA(21) crossover and price position.

    Needs 21 closes for EMA(21); with less history both EMAs are reported
    as the current price with no crossover.  A crossover needs two EMA(21)
    samples, i.e. at least 22 closes.
    """
    if not closes:
        return EMASignals(ema9=0.0, ema21=0.0, crossover="none", price_vs_ema="between")

    price = closes[-1]
    if len(closes) < 21:
        return EMASignals(ema9=price, ema21=price, crossover="none", price_vs_ema="between")

    ema9 = calculate_ema(closes, 9)
    ema21 = calculate_ema(closes, 21)

    crossover = "none"
    if len(closes) >= 22:
        crossover = _crossover(ema9[-2], ema21[-2], ema9[-1], ema21[-1])

    if price > ema9[-1] and price > ema21[-1]:
        position = "above_both"
    elif price < ema9[-1] and price < ema21[-1]:
        position = "below_both"
    else:
        position = "between"

    return EMASignals(
        ema9=ema9[-1],
        ema21=ema21[-1],
        crossover=crossover,
        price_vs_ema=position,
    )


# ── RSI ──────────────────────────────────────────────────────────────────


def _rsi_from_avgs(ag: float, al: float) -> float:
    if al == 0:
        # Flat series: no gains and no losses
        return 50.0 if ag == 0 else 100.0
    rs = ag / al
    return 100.0 - 100.0 / (1.0 + rs)


def calculate_rsi_series(closes: list[float], period: int = 14) -> list[float]:
    """Calculate Wilder's Relative Strength Index series.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RSI = 100 - 100 / (1 + avg_gain / avg_loss)

    Returns a list the same length as *closes*.  Entries before the seed
    are ``float('nan')``; with fewer than ``period + 1`` closes every
    entry is ``nan``.
    """
    rsi: list[float] = [float("nan")] * len(closes)
    if len(closes) < period + 1:
        return rsi

    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # deltas are offset by one from closes
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


def calculate_rsi(closes: list[float], period: int = 14) -> RSIResult:
    """RSI value, zone signal and divergence against the previous window.

    Divergence compares the latest *period* closes with the *period*
    closes before them:

    - **bearish**: price makes a higher high, RSI does not.
    - **bullish**: price makes a lower low, RSI is higher than before.

    Fewer than ``period + 1`` closes → neutral ``RSI = 50``.
    """
    if len(closes) < period + 1:
        return RSIResult(value=50.0, signal="neutral", divergence="none")

    series = calculate_rsi_series(closes, period)
    value = series[-1]

    if value >= 70:
        signal = "overbought"
    elif value <= 30:
        signal = "oversold"
    else:
        signal = "neutral"

    divergence = "none"
    if len(closes) >= 2 * period + 1:
        recent = closes[-period:]
        prior = closes[-2 * period:-period]
        rsi_prior = series[-period - 1]
        if max(recent) > max(prior) and value <= rsi_prior:
            divergence = "bearish"
        elif min(recent) < min(prior) and value > rsi_prior:
            divergence = "bullish"

    return RSIResult(value=round(value, 1), signal=signal, divergence=divergence)


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger_bands(
    closes: list[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> BollingerBands:
    """Calculate Bollinger Bands for the latest close.

    Middle = SMA(close, *period*)
    Upper  = middle + *std_dev* × σ
    Lower  = middle − *std_dev* × σ

    ``percent_b`` is 0.5 when the bands collapse (σ = 0).  Fewer than
    *period* closes → bands pinned to the current price, neutral signal.
    """
    if not closes:
        return BollingerBands(0.0, 0.0, 0.0, 0.0, 0.5, "neutral")

    price = closes[-1]
    if len(closes) < period:
        return BollingerBands(price, price, price, 0.0, 0.5, "neutral")

    window = closes[-period:]
    middle = _mean(window)
    sigma = _pstdev(window)
    upper = middle + std_dev * sigma
    lower = middle - std_dev * sigma

    bandwidth = (upper - lower) / middle * 100 if middle else 0.0
    percent_b = (price - lower) / (upper - lower) if upper != lower else 0.5

    if percent_b >= 1:
        signal = "overbought"
    elif percent_b <= 0:
        signal = "oversold"
    elif bandwidth < 5:
        signal = "squeeze"
    else:
        signal = "neutral"

    return BollingerBands(
        upper=upper,
        middle=middle,
        lower=lower,
        bandwidth=bandwidth,
        percent_b=percent_b,
        signal=signal,
    )


# ── Stochastic ───────────────────────────────────────────────────────────


def calculate_stochastic(
    highs: list[float],
    lows: list[float],
    closes: list[float],
    k_period: int = 5,
    d_period: int = 3,
) -> StochasticResult:
    """Stochastic oscillator %K / %D.

    %K = (close − lowest low) / (highest high − lowest low) × 100 over a
    rolling *k_period* window, 50 when the window is flat.  %D is the SMA
    of the last *d_period* %K values.  Fewer than
    ``k_period + d_period − 1`` bars → neutral 50 / 50.
    """
    n = len(closes)
    if n < k_period + d_period - 1:
        return StochasticResult(k=50.0, d=50.0, signal="neutral", crossover="none")

    k_values: list[float] = []
    for i in range(k_period - 1, n):
        highest = max(highs[i - k_period + 1 : i + 1])
        lowest = min(lows[i - k_period + 1 : i + 1])
        if highest == lowest:
            k_values.append(50.0)
        else:
            k = (closes[i] - lowest) / (highest - lowest) * 100
            k_values.append(min(100.0, max(0.0, k)))

    d_values = [
        _mean(k_values[j - d_period + 1 : j + 1])
        for j in range(d_period - 1, len(k_values))
    ]

    k, d = k_values[-1], d_values[-1]
    if k >= 80 and d >= 80:
        signal = "overbought"
    elif k <= 20 and d <= 20:
        signal = "oversold"
    else:
        signal = "neutral"

    crossover = "none"
    if len(d_values) >= 2:
        crossover = _crossover(k_values[-2], d_values[-2], k, d)

    return StochasticResult(k=round(k, 1), d=round(d, 1), signal=signal, crossover=crossover)


# ── MACD ─────────────────────────────────────────────────────────────────


_NEUTRAL_MACD = MACDResult(
    macd_line=0.0,
    signal_line=0.0,
    histogram=0.0,
    trend="neutral",
    histogram_trend="flat",
    momentum="stable",
    crossover="none",
    zero_line_cross="none",
)


def calculate_macd(
    closes: list[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MACDResult:
    """Moving Average Convergence Divergence.

    MACD line = EMA(fast) − EMA(slow); signal line = EMA(signal) of the
    MACD line; histogram = line − signal.  Needs ``slow + signal`` closes
    so that two histogram samples exist; less → neutral.
    """
    if len(closes) < slow + signal:
        return _NEUTRAL_MACD

    ema_fast = calculate_ema(closes, fast)
    ema_slow = calculate_ema(closes, slow)
    line = [ema_fast[i] - ema_slow[i] for i in range(slow - 1, len(closes))]
    signal_series = calculate_ema(line, signal)

    macd_now, macd_prev = line[-1], line[-2]
    sig_now, sig_prev = signal_series[-1], signal_series[-2]
    hist_now = macd_now - sig_now
    hist_prev = macd_prev - sig_prev

    if hist_now > 0:
        trend = "bullish"
    elif hist_now < 0:
        trend = "bearish"
    else:
        trend = "neutral"

    if abs(hist_now) > abs(hist_prev):
        histogram_trend, momentum = "growing", "strengthening"
    elif abs(hist_now) < abs(hist_prev):
        histogram_trend, momentum = "shrinking", "weakening"
    else:
        histogram_trend, momentum = "flat", "stable"

    return MACDResult(
        macd_line=macd_now,
        signal_line=sig_now,
        histogram=hist_now,
        trend=trend,
        histogram_trend=histogram_trend,
        momentum=momentum,
        crossover=_crossover(macd_prev, sig_prev, macd_now, sig_now),
        zero_line_cross=_crossover(macd_prev, 0.0, macd_now, 0.0),
    )


# ── Confluence ───────────────────────────────────────────────────────────

# Normaliser for the net vote count: 16 net votes saturate the score.
CONFLUENCE_VOTE_SCALE = 16


def calculate_confluence(
    rsi: RSIResult,
    ema: EMASignals,
    bollinger: BollingerBands,
    stochastic: StochasticResult,
) -> ConfluenceResult:
    """Weighted bullish / bearish vote across the oscillators.

    Weights: RSI zone 2, RSI divergence 1, EMA crossover 2, price vs EMAs
    1, Bollinger band breach 2 (otherwise %B beyond 0.2 / 0.8 counts 1),
    Stochastic zone 1, Stochastic crossover 2.
    """
    bullish = 0
    bearish = 0

    if rsi.signal == "oversold":
        bullish += 2
    elif rsi.signal == "overbought":
        bearish += 2
    if rsi.divergence == "bullish":
        bullish += 1
    elif rsi.divergence == "bearish":
        bearish += 1

    if ema.crossover == "bullish":
        bullish += 2
    elif ema.crossover == "bearish":
        bearish += 2
    if ema.price_vs_ema == "above_both":
        bullish += 1
    elif ema.price_vs_ema == "below_both":
        bearish += 1

    if bollinger.signal == "oversold":
        bullish += 2
    elif bollinger.signal == "overbought":
        bearish += 2
    elif bollinger.percent_b < 0.2:
        bullish += 1
    elif bollinger.percent_b > 0.8:
        bearish += 1

    if stochastic.signal == "oversold":
        bullish += 1
    elif stochastic.signal == "overbought":
        bearish += 1
    if stochastic.crossover == "bullish":
        bullish += 2
    elif stochastic.crossover == "bearish":
        bearish += 2

    score = 50.0 + (bullish - bearish) / CONFLUENCE_VOTE_SCALE * 50.0
    score = max(0.0, min(100.0, score))

    if bullish >= 6 and bearish <= 1:
        signal = "strong_buy"
    elif bullish >= 4 and bullish > 2 * bearish:
        signal = "buy"
    elif bearish >= 6 and bullish <= 1:
        signal = "strong_sell"
    elif bearish >= 4 and bearish > 2 * bullish:
        signal = "sell"
    else:
        signal = "neutral"

    return ConfluenceResult(
        score=round(score, 1),
        signal=signal,
        bullish_votes=bullish,
        bearish_votes=bearish,
    )
