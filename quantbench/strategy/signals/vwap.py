"""
Volume Weighted Average Price (VWAP) indicator.

Session VWAP anchored at the start of the UTC day of the latest candle.
Price above VWAP = bullish bias, below = bearish.
"""

from typing import Optional, Sequence

from ...core.timeframes import utc_day_start
from ...core.types import Candle


class VWAPIndicator:
    """
    Daily anchored VWAP.

    VWAP = Cumulative(Typical Price * Volume) / Cumulative(Volume)
    Typical Price = (High + Low + Close) / 3

    Candles without positive volume carry no weight and are skipped.
    """

    def calculate(self, candles: Sequence[Candle]) -> Optional[float]:
        """
        VWAP over the latest candle's UTC day.

        Returns:
            VWAP or None if there is no volume in the session.
        """
        if not candles:
            return None

        session_start = utc_day_start(candles[-1].timestamp)
        cumulative_tp_volume = 0.0
        cumulative_volume = 0.0

        for candle in candles:
            if candle.timestamp < session_start or candle.volume <= 0:
                continue
            typical_price = (candle.high + candle.low + candle.close) / 3
            cumulative_tp_volume += typical_price * candle.volume
            cumulative_volume += candle.volume

        if cumulative_volume <= 0:
            return None

        return cumulative_tp_volume / cumulative_volume

    @staticmethod
    def deviation(price: float, vwap: Optional[float]) -> Optional[float]:
        """Fractional distance of price from VWAP, None without a VWAP."""
        if not vwap:
            return None
        return (price - vwap) / vwap


def calculate_daily_vwap(candles: Sequence[Candle]) -> Optional[float]:
    """Convenience function to calculate the daily VWAP."""
    return VWAPIndicator().calculate(candles)
