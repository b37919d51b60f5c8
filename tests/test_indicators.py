"""Tests for solscalp.analysis.indicators — oscillators, bands and confluence."""

import math

import pytest

from solscalp.analysis.indicators import (
    calculate_bollinger_bands,
    calculate_confluence,
    calculate_ema,
    calculate_ema_signals,
    calculate_macd,
    calculate_rsi,
    calculate_rsi_series,
    calculate_stochastic,
)
from solscalp.analysis.models import (
    BollingerBands,
    EMASignals,
    RSIResult,
    StochasticResult,
)


def _zigzag(n: int, base: float = 1.0, amp: float = 0.03) -> list[float]:
    """Deterministic oscillating series with a mild uptrend."""
    return [base + amp * math.sin(i * 0.7) + i * 0.001 for i in range(n)]


# ── EMA ──────────────────────────────────────────────────────────────────


class TestEMA:
    def test_constant_series_equals_constant(self):
        ema = calculate_ema([2.5] * 30, 9)
        assert all(math.isnan(v) for v in ema[:8])
        assert all(v == pytest.approx(2.5) for v in ema[8:])

    def test_seed_is_sma(self):
        values = [1.0, 2.0, 3.0, 4.0, 5.0]
        ema = calculate_ema(values, 3)
        assert ema[2] == pytest.approx(2.0)
        # k = 0.5
        assert ema[3] == pytest.approx(3.0)
        assert ema[4] == pytest.approx(4.0)

    def test_too_short_raises(self):
        with pytest.raises(ValueError):
            calculate_ema([1.0, 2.0], 9)

    def test_signals_short_history_is_neutral(self):
        result = calculate_ema_signals([1.0] * 10)
        assert result.crossover == "none"
        assert result.price_vs_ema == "between"
        assert result.ema9 == result.ema21 == 1.0

    def test_signals_rising_price_above_both(self):
        closes = [1.0 + i * 0.01 for i in range(40)]
        result = calculate_ema_signals(closes)
        assert result.price_vs_ema == "above_both"
        assert result.ema9 > result.ema21

    def test_bullish_crossover_detected(self):
        closes = [1.0] * 30 + [1.5]
        result = calculate_ema_signals(closes)
        assert result.crossover == "bullish"


# ── RSI ──────────────────────────────────────────────────────────────────


class TestRSI:
    def test_short_history_defaults_to_50(self):
        result = calculate_rsi([1.0, 1.1, 1.2])
        assert result.value == 50.0
        assert result.signal == "neutral"
        assert result.divergence == "none"

    def test_flat_series_is_50(self):
        result = calculate_rsi([1.0] * 30)
        assert result.value == 50.0

    def test_only_gains_is_100(self):
        result = calculate_rsi([1.0 + i * 0.01 for i in range(20)])
        assert result.value == 100.0
        assert result.signal == "overbought"

    def test_only_losses_is_oversold(self):
        result = calculate_rsi([2.0 - i * 0.01 for i in range(20)])
        assert result.value == 0.0
        assert result.signal == "oversold"

    def test_series_stays_in_range(self):
        series = calculate_rsi_series(_zigzag(60))
        valid = [v for v in series if not math.isnan(v)]
        assert valid
        assert all(0.0 <= v <= 100.0 for v in valid)

    def test_series_length_matches_input(self):
        closes = _zigzag(25)
        assert len(calculate_rsi_series(closes)) == len(closes)

    def test_bearish_divergence(self):
        # steady climb seeds RSI at 100; a higher high on choppy closes cannot match it
        closes = [1.0 + 0.01 * i for i in range(15)] + [1.20, 1.10] * 7
        result = calculate_rsi(closes)
        assert max(closes[-14:]) > max(closes[-28:-14])
        assert result.value < 100.0
        assert result.divergence == "bearish"

    def test_bullish_divergence(self):
        # steady fall seeds RSI at 0; a lower low with any gains lifts it
        closes = [2.0 - 0.01 * i for i in range(15)] + [1.80, 1.90] * 7
        result = calculate_rsi(closes)
        assert min(closes[-14:]) < min(closes[-28:-14])
        assert result.value > 0.0
        assert result.divergence == "bullish"

    def test_no_divergence_without_two_windows(self):
        closes = [1.0 + 0.01 * i for i in range(15)] + [1.20, 1.10] * 6
        assert calculate_rsi(closes).divergence == "none"


# ── Bollinger Bands ──────────────────────────────────────────────────────


class TestBollinger:
    def test_constant_series_collapses(self):
        bb = calculate_bollinger_bands([3.0] * 25)
        assert bb.upper == bb.lower == pytest.approx(3.0)
        assert bb.percent_b == 0.5
        assert bb.bandwidth == 0.0
        assert bb.signal == "squeeze"

    def test_short_history_pinned_to_price(self):
        bb = calculate_bollinger_bands([1.0, 2.0, 3.0])
        assert bb.middle == 3.0
        assert bb.signal == "neutral"

    def test_breakout_above_upper_band(self):
        closes = _zigzag(19) + [2.0]
        bb = calculate_bollinger_bands(closes)
        assert bb.percent_b >= 1
        assert bb.signal == "overbought"

    def test_bands_are_ordered(self):
        bb = calculate_bollinger_bands(_zigzag(40))
        assert bb.lower < bb.middle < bb.upper

    def test_breakdown_below_lower_band(self):
        closes = _zigzag(19) + [0.5]
        bb = calculate_bollinger_bands(closes)
        assert bb.percent_b <= 0
        assert bb.signal == "oversold"

    def test_close_at_middle_band_is_half(self):
        closes = [1.0, 3.0] * 9 + [2.0, 2.0]
        bb = calculate_bollinger_bands(closes)
        assert bb.middle == pytest.approx(2.0)
        assert bb.upper > bb.lower
        assert bb.percent_b == pytest.approx(0.5)
        assert bb.signal == "neutral"


# ── Stochastic ───────────────────────────────────────────────────────────


class TestStochastic:
    def test_flat_window_is_50(self):
        values = [1.0] * 10
        result = calculate_stochastic(values, values, values)
        assert result.k == 50.0
        assert result.d == 50.0

    def test_short_history_is_neutral(self):
        result = calculate_stochastic([1.0, 2.0], [0.5, 1.5], [1.0, 2.0])
        assert result.signal == "neutral"
        assert result.crossover == "none"

    def test_close_at_high_is_overbought(self):
        closes = [1.0 + i * 0.1 for i in range(12)]
        highs = list(closes)
        lows = [c - 0.05 for c in closes]
        result = calculate_stochastic(highs, lows, closes)
        assert result.k == 100.0
        assert result.signal == "overbought"

    def test_k_bounded(self):
        closes = _zigzag(30)
        highs = [c + 0.01 for c in closes]
        lows = [c - 0.01 for c in closes]
        result = calculate_stochastic(highs, lows, closes)
        assert 0.0 <= result.k <= 100.0
        assert 0.0 <= result.d <= 100.0

    def test_bullish_crossover(self):
        # fixed 0..2 range: %K = close x 50 -> 30, 30, 20, 80
        closes = [1.0] * 4 + [0.6, 0.6, 0.4, 1.6]
        result = calculate_stochastic([2.0] * 8, [0.0] * 8, closes)
        assert result.k == 80.0
        assert result.d == pytest.approx(43.3)
        assert result.crossover == "bullish"

    def test_bearish_crossover(self):
        # %K -> 70, 70, 80, 20
        closes = [1.0] * 4 + [1.4, 1.4, 1.6, 0.4]
        result = calculate_stochastic([2.0] * 8, [0.0] * 8, closes)
        assert result.k == 20.0
        assert result.d == pytest.approx(56.7)
        assert result.crossover == "bearish"


# ── MACD ─────────────────────────────────────────────────────────────────


class TestMACD:
    def test_short_history_is_neutral(self):
        result = calculate_macd([1.0] * 20)
        assert result.trend == "neutral"
        assert result.histogram == 0.0
        assert result.crossover == "none"

    def test_uptrend_has_positive_line(self):
        closes = [1.0 * (1.01 ** i) for i in range(60)]
        result = calculate_macd(closes)
        assert result.macd_line > 0

    def test_histogram_is_line_minus_signal(self):
        result = calculate_macd(_zigzag(80))
        assert result.histogram == pytest.approx(result.macd_line - result.signal_line)


# ── Confluence ───────────────────────────────────────────────────────────


_NEUTRAL_RSI = RSIResult(value=50.0, signal="neutral", divergence="none")
_NEUTRAL_EMA = EMASignals(ema9=1.0, ema21=1.0, crossover="none", price_vs_ema="between")
_NEUTRAL_BB = BollingerBands(1.1, 1.0, 0.9, 20.0, 0.5, "neutral")
_NEUTRAL_STOCH = StochasticResult(k=50.0, d=50.0, signal="neutral", crossover="none")


class TestConfluence:
    def test_all_neutral_is_50(self):
        result = calculate_confluence(_NEUTRAL_RSI, _NEUTRAL_EMA, _NEUTRAL_BB, _NEUTRAL_STOCH)
        assert result.score == 50.0
        assert result.signal == "neutral"
        assert result.bullish_votes == result.bearish_votes == 0

    def test_more_bullish_votes_raise_score(self):
        one = calculate_confluence(
            RSIResult(25.0, "oversold", "none"), _NEUTRAL_EMA, _NEUTRAL_BB, _NEUTRAL_STOCH
        )
        two = calculate_confluence(
            RSIResult(25.0, "oversold", "none"),
            EMASignals(1.0, 0.9, "bullish", "above_both"),
            _NEUTRAL_BB,
            _NEUTRAL_STOCH,
        )
        assert 50.0 < one.score < two.score

    def test_strong_buy(self):
        result = calculate_confluence(
            RSIResult(25.0, "oversold", "bullish"),
            EMASignals(1.0, 0.9, "bullish", "above_both"),
            BollingerBands(1.1, 1.0, 0.9, 20.0, -0.1, "oversold"),
            _NEUTRAL_STOCH,
        )
        assert result.bullish_votes == 8
        assert result.signal == "strong_buy"

    def test_strong_sell(self):
        result = calculate_confluence(
            RSIResult(80.0, "overbought", "bearish"),
            EMASignals(0.9, 1.0, "bearish", "below_both"),
            _NEUTRAL_BB,
            StochasticResult(90.0, 85.0, "overbought", "bearish"),
        )
        assert result.bearish_votes == 9
        assert result.signal == "strong_sell"
        assert result.score < 50.0

    def test_score_clamped(self):
        result = calculate_confluence(
            RSIResult(25.0, "oversold", "bullish"),
            EMASignals(1.0, 0.9, "bullish", "above_both"),
            BollingerBands(1.1, 1.0, 0.9, 20.0, -0.1, "oversold"),
            StochasticResult(10.0, 15.0, "oversold", "bullish"),
        )
        assert 0.0 <= result.score <= 100.0
