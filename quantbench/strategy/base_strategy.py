"""
Base strategy interface for trading strategies.
"""

from abc import ABC, abstractmethod
from typing import Optional, Protocol

from ..core.types import Candle, PositionSide, TradeIntent


class CandleCache(Protocol):
    """Read contract shared by the live cache and the backtest store adapter."""

    def get_candles(self, timeframe: str) -> list[Candle]:
        ...

    def get_latest_candle(self, timeframe: str) -> Optional[Candle]:
        ...

    def refresh_all(self) -> None:
        ...


class BaseStrategy(ABC):
    """
    Abstract base class for trading strategies.

    A strategy reads candles through its cache and is asked for one
    decision per closed execution candle.
    """

    def __init__(self, name: str, symbol: str, cache: CandleCache):
        """
        Initialize strategy.

        Args:
            name: Strategy name for identification.
            symbol: Market the strategy trades.
            cache: Candle source.
        """
        self.name = name
        self.symbol = symbol
        self.cache = cache

    @abstractmethod
    def decide(self, position: PositionSide = PositionSide.FLAT) -> TradeIntent:
        """
        Decide what to do on the latest closed candle.

        Args:
            position: Side of the position the runtime currently holds.

        Returns:
            Trade intent (NO_ACTION when nothing should happen).
        """

    def reset(self) -> None:
        """Reset strategy state."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, symbol={self.symbol})"
