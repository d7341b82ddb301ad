"""
UltraAggressive BTC/USDT intraday strategy.
"""

from .config import STRATEGY_ID, UltraAggressiveConfig
from .models import PositionMemory, RiskState, StrategyContext, TrendDirection, VolatilityRegime
from .strategy import UltraAggressiveStrategy

__all__ = [
    "STRATEGY_ID",
    "UltraAggressiveConfig",
    "UltraAggressiveStrategy",
    "StrategyContext",
    "PositionMemory",
    "RiskState",
    "TrendDirection",
    "VolatilityRegime",
]
