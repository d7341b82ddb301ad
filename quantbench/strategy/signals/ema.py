"""
Exponential Moving Average (EMA) indicator.
"""

from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass
class EMAResult:
    """Fast/slow EMA pair."""
    fast_ema: float
    slow_ema: float
    trend_strength: float  # Percentage difference between EMAs

    @property
    def is_bullish(self) -> bool:
        return self.fast_ema > self.slow_ema


def calculate_ema(prices: Sequence[float], period: int) -> Optional[float]:
    """
    Calculate a single EMA value.

    EMA = (Price - EMA_prev) * k + EMA_prev, k = 2 / (period + 1),
    seeded with the SMA of the first `period` prices.

    Args:
        prices: List of closing prices (oldest first).
        period: EMA period.

    Returns:
        EMA value or None if insufficient data.
    """
    if period <= 0 or len(prices) < period:
        return None

    k = 2.0 / (period + 1)
    ema = sum(prices[:period]) / period

    for price in prices[period:]:
        ema = (price - ema) * k + ema

    return ema


def calculate_ema_pair(
    prices: Sequence[float],
    fast_period: int,
    slow_period: int
) -> Optional[EMAResult]:
    """
    Fast and slow EMA over the same prices.

    Returns:
        EMAResult or None if either EMA lacks data.
    """
    fast = calculate_ema(prices, fast_period)
    slow = calculate_ema(prices, slow_period)
    if fast is None or slow is None:
        return None

    trend_strength = (fast - slow) / slow * 100 if slow != 0 else 0.0
    return EMAResult(fast_ema=fast, slow_ema=slow, trend_strength=trend_strength)
