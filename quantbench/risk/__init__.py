from .position_sizer import PositionSize, PositionSizer
from .risk_manager import RiskManager, TradePlan, get_pre_execution_skip_reason

__all__ = [
    "PositionSize",
    "PositionSizer",
    "RiskManager",
    "TradePlan",
    "get_pre_execution_skip_reason",
]
