"""
Average True Range (ATR) indicator.

ATR measures volatility from the full bar range including gaps.

True Range = max(High - Low, |High - Close_prev|, |Low - Close_prev|)
ATR_0 = SMA(True Range, period)
ATR_n = (ATR_{n-1} * (period - 1) + TR_n) / period   (Wilder smoothing)
"""

from typing import Optional, Sequence

from ...core.types import Candle


def true_ranges(candles: Sequence[Candle]) -> list[float]:
    """True range for every candle after the first."""
    ranges = []
    for i in range(1, len(candles)):
        current = candles[i]
        prev_close = candles[i - 1].close
        ranges.append(max(
            current.high - current.low,
            abs(current.high - prev_close),
            abs(current.low - prev_close)
        ))
    return ranges


class ATRIndicator:
    """
    Wilder-smoothed Average True Range.

    Key usage:
    - Stop distance = ATR * atr_stop_multiple
    - Volatility regime = latest ATR vs. median of recent ATRs
    """

    def __init__(self, period: int = 14):
        self.period = period

    def series(self, candles: Sequence[Candle]) -> list[float]:
        """
        ATR for every bar from index `period` onward, oldest first.

        Returns:
            List of ATR values, empty if there are fewer than period + 1 candles.
        """
        if self.period <= 0 or len(candles) < self.period + 1:
            return []

        ranges = true_ranges(candles)
        atr = sum(ranges[:self.period]) / self.period
        values = [round(atr, 6)]

        for tr in ranges[self.period:]:
            atr = (atr * (self.period - 1) + tr) / self.period
            values.append(round(atr, 6))

        return values

    def calculate(self, candles: Sequence[Candle]) -> Optional[float]:
        """
        Latest ATR value.

        Returns:
            ATR or None if insufficient data.
        """
        values = self.series(candles)
        return values[-1] if values else None


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> Optional[float]:
    """Convenience function to calculate the latest ATR."""
    return ATRIndicator(period=period).calculate(candles)


def calculate_atr_series(candles: Sequence[Candle], period: int = 14) -> list[float]:
    """Convenience function to calculate the ATR series."""
    return ATRIndicator(period=period).series(candles)
