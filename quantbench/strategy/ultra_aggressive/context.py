"""
Market context snapshot for the UltraAggressive strategy.

Everything here is a pure function of the candle slices and config: the
same inputs always give the same snapshot.
"""

from typing import Optional, Sequence

import numpy as np

from ...core.timeframes import DAY_MS, utc_day_start
from ...core.types import Candle
from ..signals import (
    VWAPIndicator,
    calculate_atr_series,
    calculate_daily_vwap,
    calculate_ema,
    calculate_rsi,
    classify_cvd_trend,
    compute_cvd_series,
    detect_cvd_divergence,
)
from .config import UltraAggressiveConfig
from .models import (
    IndicatorSnapshot,
    LevelSnapshot,
    RiskState,
    StrategyContext,
    TrendDirection,
    VolatilityRegime,
)
from .setups import evaluate_setups

SHORT_VOLUME_WINDOW = 20
LONG_VOLUME_WINDOW = 60
HIGH_VOL_RATIO = 1.25
LOW_VOL_RATIO = 0.8


def build_strategy_context(
    execution_candles: Sequence[Candle],
    confirming_candles: Sequence[Candle],
    context_candles: Sequence[Candle],
    config: UltraAggressiveConfig,
    risk_state: Optional[RiskState] = None
) -> StrategyContext:
    """
    Build the full snapshot for the latest execution candle.

    Callers must ensure execution_candles is non-empty.
    """
    latest = execution_candles[-1]
    indicator = compute_indicators(execution_candles, confirming_candles, config)
    levels = compute_levels(execution_candles, context_candles, config)
    trend_direction, trend_slope_pct = classify_trend(confirming_candles, indicator.vwap, config)
    vol_regime = classify_volatility(indicator.atr_series, indicator.atr1m, config)
    setups, diagnostics = evaluate_setups(
        trend_direction, vol_regime, indicator, levels, latest, config
    )

    recent_window = min(max(int(config.lookbacks.execution_bars * 0.2), 5), 50)

    return StrategyContext(
        symbol=latest.symbol,
        timeframe=latest.timeframe,
        timestamp=latest.timestamp,
        price=latest.close,
        latest=latest,
        trend_direction=trend_direction,
        trend_slope_pct=trend_slope_pct,
        vol_regime=vol_regime,
        indicator=indicator,
        levels=levels,
        setups=setups,
        setup_diagnostics=diagnostics,
        recent_execution_candles=list(execution_candles[-recent_window:]),
        risk_state=risk_state,
    )


def compute_indicators(
    execution_candles: Sequence[Candle],
    confirming_candles: Sequence[Candle],
    config: UltraAggressiveConfig
) -> IndicatorSnapshot:
    atr_series = calculate_atr_series(execution_candles, config.atr_period_1m)
    atr5m_series = calculate_atr_series(confirming_candles, config.atr_period_5m)
    closes = [c.close for c in execution_candles]
    price = closes[-1]

    vwap = calculate_daily_vwap(execution_candles)
    cvd_series = compute_cvd_series(execution_candles, config.lookbacks.cvd)

    return IndicatorSnapshot(
        atr1m=atr_series[-1] if atr_series else None,
        atr5m=atr5m_series[-1] if atr5m_series else None,
        atr_series=atr_series,
        ema_fast=calculate_ema(closes, config.ema_fast_period),
        ema_slow=calculate_ema(closes, config.ema_slow_period),
        rsi=calculate_rsi(closes, config.rsi_period),
        previous_close=closes[-2] if len(closes) > 1 else None,
        vwap=vwap,
        vwap_deviation_pct=VWAPIndicator.deviation(price, vwap),
        cvd_series=cvd_series,
        cvd_trend=classify_cvd_trend(cvd_series),
        cvd_divergence=detect_cvd_divergence(
            execution_candles, cvd_series, config.thresholds.cvd_divergence_threshold
        ),
        volume_avg_short=average_volume(execution_candles, SHORT_VOLUME_WINDOW),
        volume_avg_long=average_volume(execution_candles, LONG_VOLUME_WINDOW),
    )


def compute_levels(
    execution_candles: Sequence[Candle],
    context_candles: Sequence[Candle],
    config: UltraAggressiveConfig
) -> LevelSnapshot:
    """
    Reference price levels.

    The rolling range covers the `range_detection` bars before the latest one
    so the latest bar can trade through it. Breakout levels additionally skip
    the bar before that, which must confirm the breakout on its own close.
    """
    latest = execution_candles[-1]
    same_day = candles_in_utc_day(execution_candles, latest.timestamp)
    previous_day = candles_in_utc_day(execution_candles, latest.timestamp - DAY_MS)

    range_detection = config.lookbacks.range_detection
    prior = execution_candles[:-1]
    execution_range = list(prior[-range_detection:]) if range_detection > 0 else []
    context_range = list(context_candles[-range_detection * 2:]) if range_detection > 0 else []
    combined_range = execution_range or context_range

    breakout_window = config.lookbacks.breakout_range
    breakout_range = (
        list(execution_candles[:-2][-breakout_window:]) if breakout_window > 0 else []
    )

    swing_window = list(execution_candles[-range_detection:]) if range_detection > 0 else []

    return LevelSnapshot(
        day_high=_max_high(same_day),
        day_low=_min_low(same_day),
        previous_day_high=_max_high(previous_day),
        previous_day_low=_min_low(previous_day),
        range_high=_max_high(combined_range),
        range_low=_min_low(combined_range),
        breakout_high=_max_high(breakout_range),
        breakout_low=_min_low(breakout_range),
        recent_swing_high=find_recent_swing(swing_window, "high"),
        recent_swing_low=find_recent_swing(swing_window, "low"),
    )


def classify_trend(
    confirming_candles: Sequence[Candle],
    vwap: Optional[float],
    config: UltraAggressiveConfig
) -> tuple[TrendDirection, float]:
    """
    Trend from the confirming-timeframe slope, gated by VWAP.

    Returns:
        (direction, slope as a fraction of the sample's first close)
    """
    sample = confirming_candles[-config.lookbacks.trend_candles:] if config.lookbacks.trend_candles > 0 else []
    if len(sample) < 2:
        return TrendDirection.RANGING, 0.0

    start = sample[0].close
    end = sample[-1].close
    slope = end - start
    slope_pct = slope / start if start else 0.0

    if slope > 0 and (not vwap or end >= vwap):
        return TrendDirection.TRENDING_UP, slope_pct
    if slope < 0 and (not vwap or end <= vwap):
        return TrendDirection.TRENDING_DOWN, slope_pct
    return TrendDirection.RANGING, slope_pct


def classify_volatility(
    atr_series: Sequence[float],
    latest_atr: Optional[float],
    config: UltraAggressiveConfig
) -> VolatilityRegime:
    """Latest ATR against the median of the recent ATR window."""
    if not latest_atr or not atr_series:
        return VolatilityRegime.BALANCED

    lookback = min(config.lookbacks.volatility, len(atr_series))
    if lookback <= 0:
        return VolatilityRegime.BALANCED

    median = float(np.median(atr_series[-lookback:]))
    if not median:
        return VolatilityRegime.BALANCED
    if latest_atr >= median * HIGH_VOL_RATIO:
        return VolatilityRegime.HIGH
    if latest_atr <= median * LOW_VOL_RATIO:
        return VolatilityRegime.LOW
    return VolatilityRegime.BALANCED


def candles_in_utc_day(candles: Sequence[Candle], reference_ts: int) -> list[Candle]:
    start = utc_day_start(reference_ts)
    end = start + DAY_MS
    return [c for c in candles if start <= c.timestamp < end]


def find_recent_swing(candles: Sequence[Candle], direction: str) -> Optional[float]:
    """Most recent local high/low, scanning back from the second-to-last bar."""
    if len(candles) < 3:
        return None

    for i in range(len(candles) - 2, 0, -1):
        prev, curr, nxt = candles[i - 1], candles[i], candles[i + 1]
        if direction == "high" and curr.high > prev.high and curr.high > nxt.high:
            return curr.high
        if direction == "low" and curr.low < prev.low and curr.low < nxt.low:
            return curr.low
    return None


def average_volume(candles: Sequence[Candle], window: int) -> float:
    length = min(window, len(candles))
    if length <= 0:
        return 0.0
    sample = candles[-length:]
    return sum(c.volume for c in sample) / len(sample)


def _max_high(candles: Sequence[Candle]) -> Optional[float]:
    return max(c.high for c in candles) if candles else None


def _min_low(candles: Sequence[Candle]) -> Optional[float]:
    return min(c.low for c in candles) if candles else None
