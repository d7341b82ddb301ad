"""
In-memory multi-timeframe candle store.

Each timeframe holds one series: strictly ascending, unique bucket-aligned
timestamps, capped at a window length and trimmed from the oldest end.
"""

import dataclasses
from typing import Iterable, Optional

from ..core.timeframes import bucket_timestamp, timeframe_to_ms
from ..core.types import Candle


class CandleStore:
    """
    Bounded candle series per timeframe.

    Writes with a timestamp already in the series replace that candle, so
    the last write wins. Reads hand out copies.
    """

    def __init__(
        self,
        default_max_candles: int,
        max_candles_by_timeframe: Optional[dict[str, int]] = None
    ):
        """
        Initialize the store.

        Args:
            default_max_candles: Window length for timeframes without an override.
            max_candles_by_timeframe: Per-timeframe window overrides.
        """
        self.default_max_candles = max(int(default_max_candles), 1)
        self.max_candles_by_timeframe = {
            timeframe: max(int(limit), 1)
            for timeframe, limit in (max_candles_by_timeframe or {}).items()
        }
        self._series: dict[str, list[Candle]] = {}

    def max_candles(self, timeframe: str) -> int:
        return self.max_candles_by_timeframe.get(timeframe, self.default_max_candles)

    def ingest(self, timeframe: str, candle: Candle) -> None:
        """Insert or replace a single candle."""
        normalized = self._normalize(timeframe, candle)
        series = self._series.setdefault(timeframe, [])

        # Most writes append, so scan from the tail
        index = len(series) - 1
        while index >= 0:
            existing_ts = series[index].timestamp
            if existing_ts == normalized.timestamp:
                series[index] = normalized
                return
            if existing_ts < normalized.timestamp:
                break
            index -= 1

        series.insert(index + 1, normalized)
        self._trim(timeframe)

    def ingest_many(self, timeframe: str, candles: Iterable[Candle]) -> None:
        """
        Merge a batch of candles into the series.

        Equivalent to calling ingest() for each candle in order: duplicate
        timestamps in the batch resolve to the last occurrence.
        """
        batch = [self._normalize(timeframe, candle) for candle in candles]
        if not batch:
            return

        # Stable sort keeps input order among equal timestamps
        batch.sort(key=lambda c: c.timestamp)
        deduped: list[Candle] = []
        for candle in batch:
            if deduped and deduped[-1].timestamp == candle.timestamp:
                deduped[-1] = candle
            else:
                deduped.append(candle)

        existing = self._series.get(timeframe, [])
        if not existing:
            self._series[timeframe] = deduped
            self._trim(timeframe)
            return

        merged: list[Candle] = []
        i = j = 0
        while i < len(existing) and j < len(deduped):
            current = existing[i]
            incoming = deduped[j]
            if current.timestamp < incoming.timestamp:
                merged.append(current)
                i += 1
            elif incoming.timestamp < current.timestamp:
                merged.append(incoming)
                j += 1
            else:
                merged.append(incoming)
                i += 1
                j += 1
        merged.extend(existing[i:])
        merged.extend(deduped[j:])

        self._series[timeframe] = merged
        self._trim(timeframe)

    def get_series(self, timeframe: str) -> list[Candle]:
        """Copy of the series, oldest first. Empty for unknown timeframes."""
        return list(self._series.get(timeframe, []))

    def get_candles(self, timeframe: str) -> list[Candle]:
        return self.get_series(timeframe)

    def get_latest_candle(self, timeframe: str) -> Optional[Candle]:
        series = self._series.get(timeframe)
        return series[-1] if series else None

    def refresh_all(self) -> None:
        """Nothing to refresh; the store is fed by ingest calls."""

    def has_candles(self, timeframe: str) -> bool:
        return bool(self._series.get(timeframe))

    def get_timeframes(self) -> list[str]:
        return list(self._series.keys())

    def clear_timeframe(self, timeframe: str) -> None:
        self._series.pop(timeframe, None)

    def clear(self) -> None:
        self._series.clear()

    def _normalize(self, timeframe: str, candle: Candle) -> Candle:
        aligned = bucket_timestamp(candle.timestamp, timeframe_to_ms(timeframe))
        if aligned == candle.timestamp and candle.timeframe == timeframe:
            return candle
        return dataclasses.replace(candle, timestamp=aligned, timeframe=timeframe)

    def _trim(self, timeframe: str) -> None:
        series = self._series.get(timeframe)
        limit = self.max_candles(timeframe)
        if series is not None and len(series) > limit:
            del series[: len(series) - limit]


class StoreBackedCache:
    """
    Cache adapter that serves candles straight from a CandleStore.

    Used in backtests where the runner feeds the store bar by bar.
    """

    def __init__(self, store: CandleStore, timeframes: Iterable[str]):
        self.store = store
        self.timeframes = list(dict.fromkeys(timeframes))

    def get_candles(self, timeframe: str) -> list[Candle]:
        self._assert_tracked(timeframe)
        return self.store.get_series(timeframe)

    def get_latest_candle(self, timeframe: str) -> Optional[Candle]:
        self._assert_tracked(timeframe)
        return self.store.get_latest_candle(timeframe)

    def refresh_all(self) -> None:
        """No-op: the runner controls what the store holds."""

    def _assert_tracked(self, timeframe: str) -> None:
        if timeframe not in self.timeframes:
            raise ValueError(f"Timeframe {timeframe} is not tracked in backtest cache")
