"""
Core market data and intent types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class Candle:
    """OHLCV candle. Timestamp is the bucket open time in epoch milliseconds."""
    symbol: str
    timeframe: str
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def body(self) -> float:
        return self.close - self.open

    @property
    def range(self) -> float:
        return self.high - self.low


class PositionSide(Enum):
    """Side of an open position."""
    FLAT = "FLAT"
    LONG = "LONG"
    SHORT = "SHORT"


class IntentType(Enum):
    """What a strategy wants to happen on this bar."""
    OPEN_LONG = "OPEN_LONG"
    CLOSE_LONG = "CLOSE_LONG"
    OPEN_SHORT = "OPEN_SHORT"
    CLOSE_SHORT = "CLOSE_SHORT"
    NO_ACTION = "NO_ACTION"

    @property
    def is_open(self) -> bool:
        return self in (IntentType.OPEN_LONG, IntentType.OPEN_SHORT)

    @property
    def is_close(self) -> bool:
        return self in (IntentType.CLOSE_LONG, IntentType.CLOSE_SHORT)

    @property
    def position_side(self) -> Optional[PositionSide]:
        """The position side this intent opens or closes."""
        if self in (IntentType.OPEN_LONG, IntentType.CLOSE_LONG):
            return PositionSide.LONG
        if self in (IntentType.OPEN_SHORT, IntentType.CLOSE_SHORT):
            return PositionSide.SHORT
        return None


@dataclass(frozen=True)
class TradeIntent:
    """Immutable decision emitted by a strategy."""
    symbol: str
    intent: IntentType
    reason: str
    timestamp: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def no_action(cls, symbol: str, reason: str, timestamp: int) -> "TradeIntent":
        return cls(symbol=symbol, intent=IntentType.NO_ACTION, reason=reason, timestamp=timestamp)

    @property
    def is_actionable(self) -> bool:
        return self.intent is not IntentType.NO_ACTION


@dataclass
class PositionSnapshot:
    """Paper position state for one symbol. Prices are 0 when unset."""
    symbol: str
    side: PositionSide = PositionSide.FLAT
    size: float = 0.0
    avg_entry_price: float = 0.0
    entry_price: float = 0.0
    stop_loss_price: float = 0.0
    take_profit_price: float = 0.0
    trailing_stop_price: float = 0.0
    peak_price: float = 0.0
    trough_price: float = 0.0
    is_trailing_active: bool = False
    opened_at: Optional[int] = None
    realized_pnl: float = 0.0  # Cumulative for the symbol

    @property
    def is_open(self) -> bool:
        return self.side is not PositionSide.FLAT and self.size > 0

    def unrealized_pnl(self, price: float) -> float:
        if not self.is_open:
            return 0.0
        move = price - self.avg_entry_price
        return move * self.size if self.side is PositionSide.LONG else -move * self.size
