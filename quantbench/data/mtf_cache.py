"""
Live multi-timeframe candle cache.

Wraps a fetcher and serves each tracked timeframe from memory until the
frame is older than the configured max age.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from ..core.types import Candle
from ..observability.logger import get_logger

logger = get_logger(__name__)

# fetcher(symbol, timeframe, limit) -> candles, oldest first
CandleFetcher = Callable[[str, str, int], list[Candle]]

DEFAULT_FETCH_LIMIT = 300


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CachedFrame:
    """Candles for one timeframe and when they were fetched."""
    candles: list[Candle]
    fetched_at: int


class MultiTimeframeCache:
    """
    Fetch-through cache keyed by timeframe.

    A frame younger than max_age_ms is returned as is; otherwise it is
    refetched and replaced.
    """

    def __init__(
        self,
        symbol: str,
        timeframes: Iterable[str],
        max_age_ms: int,
        fetcher: CandleFetcher,
        limit: Optional[int] = None,
        clock: Callable[[], int] = _now_ms
    ):
        """
        Initialize the cache.

        Args:
            symbol: Market symbol, e.g. "BTC/USDT".
            timeframes: Timeframes to track. Duplicates are dropped.
            max_age_ms: Frame TTL in milliseconds.
            fetcher: Callable returning candles for (symbol, timeframe, limit).
            limit: Candles requested per fetch (default 300, minimum 1).
            clock: Millisecond clock, injectable for tests.
        """
        self.symbol = symbol
        self.timeframes = list(dict.fromkeys(timeframes))
        self.max_age_ms = max_age_ms
        self.limit = DEFAULT_FETCH_LIMIT if limit is None else max(int(limit), 1)
        self._fetcher = fetcher
        self._clock = clock
        self._frames: dict[str, CachedFrame] = {}

    def get_candles(self, timeframe: str) -> list[Candle]:
        self._assert_tracked(timeframe)

        frame = self._frames.get(timeframe)
        now = self._clock()
        if frame is not None and now - frame.fetched_at < self.max_age_ms:
            return list(frame.candles)

        return list(self._fetch(timeframe).candles)

    def get_latest_candle(self, timeframe: str) -> Optional[Candle]:
        candles = self.get_candles(timeframe)
        return candles[-1] if candles else None

    def refresh_all(self) -> None:
        """Refetch every tracked timeframe concurrently."""
        if not self.timeframes:
            return

        with ThreadPoolExecutor(max_workers=len(self.timeframes)) as pool:
            # list() re-raises the first fetch error after all futures finish
            list(pool.map(self._fetch, self.timeframes))

    def _fetch(self, timeframe: str) -> CachedFrame:
        candles = list(self._fetcher(self.symbol, timeframe, self.limit))
        frame = CachedFrame(candles=candles, fetched_at=self._clock())
        self._frames[timeframe] = frame
        logger.debug(
            "candles_fetched",
            symbol=self.symbol,
            timeframe=timeframe,
            count=len(candles)
        )
        return frame

    def _assert_tracked(self, timeframe: str) -> None:
        if timeframe not in self.timeframes:
            raise ValueError(f"Timeframe {timeframe} is not tracked in this cache")
