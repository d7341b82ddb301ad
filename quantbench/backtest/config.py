"""
Backtest configuration dataclass.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass
class BacktestConfig:
    """Configuration for backtesting."""

    # Window in epoch milliseconds, both ends inclusive
    start_timestamp: int
    end_timestamp: int

    # Strategy selection
    strategy_id: str = "ultra_aggressive_btc_usdt"
    profile: Optional[str] = None
    symbol: Optional[str] = None  # Defaults to the profile's symbol

    # Account
    initial_balance: float = 10000.0
    fee_percent: float = 0.0

    # Candles kept per timeframe in the backtest store (never below warm-up)
    max_candles: Optional[int] = None

    def __post_init__(self):
        """Validate configuration."""
        if self.start_timestamp >= self.end_timestamp:
            raise ValueError("Backtest startTimestamp must be before endTimestamp")

        if self.initial_balance <= 0:
            raise ValueError("initial_balance must be positive")

        if self.fee_percent < 0 or self.fee_percent > 10:
            raise ValueError("fee_percent must be between 0 and 10")

    @property
    def period_days(self) -> float:
        return (self.end_timestamp - self.start_timestamp) / 86_400_000

    @staticmethod
    def to_timestamp(value: datetime) -> int:
        """Epoch milliseconds for a datetime; naive values are taken as UTC."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)

    def to_dict(self) -> dict:
        """Serialize config to dictionary."""
        return {
            "start_timestamp": self.start_timestamp,
            "end_timestamp": self.end_timestamp,
            "strategy_id": self.strategy_id,
            "profile": self.profile,
            "symbol": self.symbol,
            "initial_balance": self.initial_balance,
            "fee_percent": self.fee_percent,
            "max_candles": self.max_candles,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BacktestConfig":
        """Deserialize config from dictionary."""
        return cls(
            start_timestamp=int(data["start_timestamp"]),
            end_timestamp=int(data["end_timestamp"]),
            strategy_id=data.get("strategy_id", "ultra_aggressive_btc_usdt"),
            profile=data.get("profile"),
            symbol=data.get("symbol"),
            initial_balance=data.get("initial_balance", 10000.0),
            fee_percent=data.get("fee_percent", 0.0),
            max_candles=data.get("max_candles"),
        )
