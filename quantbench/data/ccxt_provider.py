"""
Historical and recent OHLCV data via CCXT.
"""

import time
from dataclasses import dataclass
from typing import Optional

from ..core.errors import DataLoadError
from ..core.timeframes import timeframe_to_ms
from ..core.types import Candle
from ..observability.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TimeframeRequest:
    """A timeframe to load and how many warmup candles to prepend."""
    timeframe: str
    warmup: int = 0


class CCXTDataProvider:
    """
    CCXT-backed candle source.

    Features:
    - Lazy exchange construction (any ccxt exchange id, Binance by default)
    - Paginated history loads with warmup ahead of the start timestamp
    - fetch_ohlcv() doubles as the live cache fetcher
    """

    CANDLES_PER_REQUEST = 1000
    RATE_LIMIT_DELAY = 0.2  # seconds between paginated calls
    MAX_CONSECUTIVE_ERRORS = 5

    def __init__(
        self,
        exchange_id: str = "binance",
        market_type: str = "spot",
        exchange=None,
        rate_limit_delay: Optional[float] = None
    ):
        """
        Initialize the provider.

        Args:
            exchange_id: ccxt exchange id.
            market_type: ccxt defaultType option ("spot", "swap", ...).
            exchange: Pre-built exchange object (skips ccxt construction).
            rate_limit_delay: Override for the sleep between paginated calls.
        """
        self.exchange_id = exchange_id
        self.market_type = market_type
        self._exchange = exchange
        self.rate_limit_delay = (
            self.RATE_LIMIT_DELAY if rate_limit_delay is None else rate_limit_delay
        )

    @property
    def exchange(self):
        """Lazy-load the CCXT exchange."""
        if self._exchange is None:
            try:
                import ccxt
            except ImportError:
                raise ImportError(
                    "ccxt is required for CCXTDataProvider. "
                    "Install it with: pip install ccxt"
                )
            exchange_class = getattr(ccxt, self.exchange_id, None)
            if exchange_class is None:
                raise ValueError(f"Unknown ccxt exchange id: {self.exchange_id}")
            self._exchange = exchange_class({
                'enableRateLimit': True,
                'options': {
                    'defaultType': self.market_type,
                }
            })
        return self._exchange

    def fetch_ohlcv(
        self,
        symbol: str,
        timeframe: str,
        limit: int,
        since: Optional[int] = None
    ) -> list[Candle]:
        """
        Fetch up to `limit` candles, oldest first.

        Args:
            symbol: Market symbol (e.g., "BTC/USDT").
            timeframe: Timeframe string (e.g., "1m").
            limit: Maximum number of candles.
            since: Optional start timestamp in ms.

        Returns:
            Candles sorted by timestamp.
        """
        rows = self.exchange.fetch_ohlcv(
            symbol,
            timeframe=timeframe,
            since=since,
            limit=limit
        )
        candles = [self._to_candle(symbol, timeframe, row) for row in rows or []]
        candles.sort(key=lambda c: c.timestamp)
        return candles

    def load_historical_series(
        self,
        symbol: str,
        start_timestamp: int,
        end_timestamp: int,
        requests: list[TimeframeRequest]
    ) -> dict[str, list[Candle]]:
        """
        Load every requested timeframe over [start - warmup, end].

        Returns:
            Mapping of timeframe to deduplicated, ascending candles.
        """
        return {
            request.timeframe: self.load_range(
                symbol,
                request.timeframe,
                start_timestamp - request.warmup * timeframe_to_ms(request.timeframe),
                end_timestamp
            )
            for request in requests
        }

    def load_range(
        self,
        symbol: str,
        timeframe: str,
        since: int,
        until: int
    ) -> list[Candle]:
        """
        Page through the exchange from `since` to `until` inclusive.

        Raises:
            DataLoadError: If the exchange keeps failing before any candle arrives.
        """
        logger.info(
            "historical_fetch_started",
            symbol=symbol,
            timeframe=timeframe,
            since=since,
            until=until
        )

        candles: list[Candle] = []
        errors: list[str] = []
        cursor = max(since, 0)
        requests_made = 0
        consecutive_errors = 0

        while cursor <= until:
            try:
                page = self.fetch_ohlcv(symbol, timeframe, self.CANDLES_PER_REQUEST, since=cursor)
            except Exception as e:
                consecutive_errors += 1
                errors.append(str(e))
                logger.error(
                    "historical_fetch_error",
                    symbol=symbol,
                    timeframe=timeframe,
                    error=str(e),
                    attempt=consecutive_errors
                )
                if consecutive_errors >= self.MAX_CONSECUTIVE_ERRORS:
                    break
                time.sleep(self.rate_limit_delay * 5)
                continue

            consecutive_errors = 0
            requests_made += 1

            if not page:
                break

            candles.extend(c for c in page if since <= c.timestamp <= until)

            last_timestamp = page[-1].timestamp
            if last_timestamp < cursor or last_timestamp >= until:
                break
            cursor = last_timestamp + 1

            if self.rate_limit_delay:
                time.sleep(self.rate_limit_delay)

        if not candles and errors:
            raise DataLoadError(
                f"Failed to load {timeframe} candles for {symbol}",
                errors=errors
            )

        unique = self._deduplicate_candles(candles)
        logger.info(
            "historical_fetch_completed",
            symbol=symbol,
            timeframe=timeframe,
            candles=len(unique),
            requests=requests_made
        )
        return unique

    def _deduplicate_candles(self, candles: list[Candle]) -> list[Candle]:
        """Sort by timestamp, keeping the latest copy of each bar."""
        by_timestamp: dict[int, Candle] = {}
        for candle in candles:
            by_timestamp[candle.timestamp] = candle
        return [by_timestamp[ts] for ts in sorted(by_timestamp)]

    @staticmethod
    def _to_candle(symbol: str, timeframe: str, row: list) -> Candle:
        return Candle(
            symbol=symbol,
            timeframe=timeframe,
            timestamp=int(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5] or 0.0)
        )
