"""
Relative Strength Index (RSI) indicator.
"""

from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass
class RSIResult:
    """RSI calculation result."""
    value: float
    is_oversold: bool
    is_overbought: bool


class RSIIndicator:
    """
    Relative Strength Index indicator.

    RSI measures the magnitude of recent price changes to evaluate
    overbought or oversold conditions.

    RSI = 100 - (100 / (1 + RS))
    RS = Average Gain / Average Loss   (Wilder smoothing)
    """

    def __init__(
        self,
        period: int = 14,
        oversold: float = 30.0,
        overbought: float = 70.0
    ):
        """
        Initialize RSI indicator.

        Args:
            period: RSI calculation period.
            oversold: Level at or below which the market is oversold.
            overbought: Level at or above which the market is overbought.
        """
        self.period = period
        self.oversold = oversold
        self.overbought = overbought

    def value(self, prices: Sequence[float]) -> Optional[float]:
        """
        Raw RSI value.

        Args:
            prices: List of closing prices (oldest first).

        Returns:
            RSI in [0, 100] or None if insufficient data.
        """
        if self.period <= 0 or len(prices) < self.period + 1:
            return None

        changes = [prices[i] - prices[i - 1] for i in range(1, len(prices))]
        gains = [max(0.0, c) for c in changes]
        losses = [abs(min(0.0, c)) for c in changes]

        avg_gain = sum(gains[:self.period]) / self.period
        avg_loss = sum(losses[:self.period]) / self.period

        for i in range(self.period, len(gains)):
            avg_gain = (avg_gain * (self.period - 1) + gains[i]) / self.period
            avg_loss = (avg_loss * (self.period - 1) + losses[i]) / self.period

        if avg_loss == 0:
            return 100.0

        rs = avg_gain / avg_loss
        return 100.0 - (100.0 / (1.0 + rs))

    def calculate(self, prices: Sequence[float]) -> Optional[RSIResult]:
        rsi = self.value(prices)
        if rsi is None:
            return None

        return RSIResult(
            value=rsi,
            is_oversold=rsi <= self.oversold,
            is_overbought=rsi >= self.overbought
        )


def calculate_rsi(prices: Sequence[float], period: int = 14) -> Optional[float]:
    """
    Convenience function to calculate the RSI value.

    Args:
        prices: List of closing prices.
        period: RSI period.

    Returns:
        RSI value or None if insufficient data.
    """
    return RSIIndicator(period).value(prices)
