"""
Snapshot types shared by context building, setups, entries and exits.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ...core.types import Candle


class TrendDirection(Enum):
    TRENDING_UP = "TrendingUp"
    TRENDING_DOWN = "TrendingDown"
    RANGING = "Ranging"


class VolatilityRegime(Enum):
    LOW = "low"
    BALANCED = "balanced"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return ("low", "balanced", "high").index(self.value)


@dataclass
class IndicatorSnapshot:
    atr1m: Optional[float]
    atr5m: Optional[float]
    atr_series: list[float]
    ema_fast: Optional[float]
    ema_slow: Optional[float]
    rsi: Optional[float]
    previous_close: Optional[float]
    vwap: Optional[float]
    vwap_deviation_pct: Optional[float]
    cvd_series: list[float]
    cvd_trend: str
    cvd_divergence: Optional[str]
    volume_avg_short: float
    volume_avg_long: float


@dataclass
class LevelSnapshot:
    day_high: Optional[float] = None
    day_low: Optional[float] = None
    previous_day_high: Optional[float] = None
    previous_day_low: Optional[float] = None
    range_high: Optional[float] = None
    range_low: Optional[float] = None
    breakout_high: Optional[float] = None
    breakout_low: Optional[float] = None
    recent_swing_high: Optional[float] = None
    recent_swing_low: Optional[float] = None


@dataclass
class RiskState:
    """Strategy-side risk bookkeeping fed into each snapshot."""
    last_exit_reason: Optional[str] = None
    last_realized_pnl_pct: Optional[float] = None
    cooldown_bars_remaining: int = 0
    session_pnl_pct: float = 0.0


@dataclass
class SetupDiagnostics:
    """One setup evaluation and the sub-conditions behind it."""
    name: str
    side: str
    active: bool
    checks: dict = field(default_factory=dict)


@dataclass
class StrategyContext:
    symbol: str
    timeframe: str
    timestamp: int
    price: float
    latest: Candle
    trend_direction: TrendDirection
    trend_slope_pct: float
    vol_regime: VolatilityRegime
    indicator: IndicatorSnapshot
    levels: LevelSnapshot
    setups: dict[str, bool]
    setup_diagnostics: list[SetupDiagnostics]
    recent_execution_candles: list[Candle]
    risk_state: Optional[RiskState] = None


@dataclass
class PositionMemory:
    """What the strategy remembers about the position it believes is open."""
    side: str  # "LONG" or "SHORT"
    opened_at: int
    entry_price: float
    stop: Optional[float]
    atr_on_entry: Optional[float]
    best_favorable_price: float
