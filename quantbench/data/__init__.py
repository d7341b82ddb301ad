"""
Candle storage and market data access.
"""

from .candle_store import CandleStore, StoreBackedCache
from .ccxt_provider import CCXTDataProvider, TimeframeRequest
from .mtf_cache import MultiTimeframeCache

__all__ = [
    "CandleStore",
    "StoreBackedCache",
    "MultiTimeframeCache",
    "CCXTDataProvider",
    "TimeframeRequest",
]
