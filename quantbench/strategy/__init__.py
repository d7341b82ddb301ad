"""
Trading strategies and the strategy registry.
"""

from .base_strategy import BaseStrategy, CandleCache

__all__ = ["BaseStrategy", "CandleCache"]
