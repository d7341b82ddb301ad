"""
Cumulative Volume Delta (CVD) approximated from OHLCV bars.

Each bar's volume counts as buying when it closes at or above its open,
selling otherwise.
"""

from typing import Optional, Sequence

from ...core.types import Candle

DIVERGENCE_LOOKBACK = 3  # compare the last point with the one 3 bars earlier
MIN_DIVERGENCE_POINTS = 5


def compute_cvd_series(candles: Sequence[Candle], lookback: int) -> list[float]:
    """
    Running volume delta over the last `lookback` candles.

    Returns:
        One value per candle, rounded to 2 decimals.
    """
    if lookback <= 0:
        return []

    series = []
    running = 0.0
    for candle in candles[-lookback:]:
        running += candle.volume if candle.close >= candle.open else -candle.volume
        series.append(round(running, 2))
    return series


def classify_cvd_trend(series: Sequence[float]) -> str:
    """"up", "down" or "flat" by comparing the last and first CVD points."""
    if len(series) < 2:
        return "flat"

    delta = series[-1] - series[0]
    if delta > 0:
        return "up"
    if delta < 0:
        return "down"
    return "flat"


def detect_cvd_divergence(
    candles: Sequence[Candle],
    series: Sequence[float],
    threshold: float
) -> Optional[str]:
    """
    Price and CVD moving in opposite directions.

    Returns:
        "bearish" when price rose while CVD fell by more than `threshold`,
        "bullish" for the reverse, otherwise None.
    """
    if len(candles) < MIN_DIVERGENCE_POINTS or len(series) < MIN_DIVERGENCE_POINTS:
        return None

    price_delta = candles[-1].close - candles[-1 - DIVERGENCE_LOOKBACK].close
    cvd_delta = series[-1] - series[-1 - DIVERGENCE_LOOKBACK]

    if price_delta > threshold and cvd_delta < -threshold:
        return "bearish"
    if price_delta < -threshold and cvd_delta > threshold:
        return "bullish"
    return None
