"""
Technical indicators for trading strategies.
"""

from .atr import ATRIndicator, calculate_atr, calculate_atr_series, true_ranges
from .ema import EMAResult, calculate_ema, calculate_ema_pair
from .rsi import RSIIndicator, RSIResult, calculate_rsi
from .vwap import VWAPIndicator, calculate_daily_vwap
from .cvd import classify_cvd_trend, compute_cvd_series, detect_cvd_divergence

__all__ = [
    # ATR
    "ATRIndicator",
    "calculate_atr",
    "calculate_atr_series",
    "true_ranges",
    # EMA
    "EMAResult",
    "calculate_ema",
    "calculate_ema_pair",
    # RSI
    "RSIIndicator",
    "RSIResult",
    "calculate_rsi",
    # VWAP
    "VWAPIndicator",
    "calculate_daily_vwap",
    # CVD
    "classify_cvd_trend",
    "compute_cvd_series",
    "detect_cvd_divergence",
]
