"""
Deterministic pipeline check strategy.

Emits OPEN_LONG, CLOSE_LONG, OPEN_SHORT, CLOSE_SHORT on four consecutive
new execution candles, then stays idle. Useful for exercising the risk,
execution and backtest plumbing end to end.
"""

from dataclasses import dataclass, field
from typing import Optional

from ..core.errors import ConfigurationError
from ..core.types import Candle, IntentType, PositionSide, TradeIntent
from ..observability.logger import get_logger
from .base_strategy import BaseStrategy, CandleCache

logger = get_logger(__name__)

STRATEGY_ID = "debug_4c_pipeline"
REQUIRED_EXECUTION_TIMEFRAME = "1m"

SEQUENCE = (
    IntentType.OPEN_LONG,
    IntentType.CLOSE_LONG,
    IntentType.OPEN_SHORT,
    IntentType.CLOSE_SHORT,
)


@dataclass
class DebugSequencerConfig:
    name: str = "Debug 4C Pipeline"
    symbol: str = "BTC/USDT"
    execution_timeframe: str = REQUIRED_EXECUTION_TIMEFRAME
    cache_ttl_ms: int = 60_000
    history_window_candles: Optional[int] = None
    warmup_periods: dict[str, int] = field(default_factory=dict)
    id: str = STRATEGY_ID

    def all_timeframes(self) -> list[str]:
        return [self.execution_timeframe]

    @classmethod
    def from_dict(cls, data: dict) -> "DebugSequencerConfig":
        if not isinstance(data, dict):
            raise ConfigurationError("Strategy config must be a mapping")

        timeframes = data.get("timeframes") or {}
        execution = timeframes.get("execution")
        if not execution:
            raise ConfigurationError("Missing required config field: timeframes.execution")
        symbol = data.get("symbol")
        if not symbol:
            raise ConfigurationError("Missing required config field: symbol")

        return cls(
            id=str(data.get("id", STRATEGY_ID)),
            name=str(data.get("name", cls.name)),
            symbol=str(symbol),
            execution_timeframe=str(execution).strip().lower(),
            cache_ttl_ms=int(data.get("cache_ttl_ms", 60_000)),
            history_window_candles=data.get("history_window_candles"),
            warmup_periods={
                str(tf): int(count) for tf, count in (data.get("warmup_periods") or {}).items()
            },
        )


@dataclass
class _SequenceState:
    step: int = 0
    last_timestamp: Optional[int] = None
    completed: bool = False


class DebugSequencerStrategy(BaseStrategy):
    """Walks the fixed four-intent sequence, one step per new candle."""

    def __init__(self, config: DebugSequencerConfig, cache: CandleCache):
        if config.execution_timeframe != REQUIRED_EXECUTION_TIMEFRAME:
            raise ConfigurationError(
                "debug_4c_pipeline requires the execution timeframe to be exactly 1m"
            )
        super().__init__(config.name, config.symbol, cache)
        self.config = config
        self._states: dict[str, _SequenceState] = {}

    def decide(self, position: PositionSide = PositionSide.FLAT) -> TradeIntent:
        candles = self.cache.get_candles(self.config.execution_timeframe)
        if not candles:
            return TradeIntent.no_action(self.config.symbol, "no_candles", 0)

        intent = self._next_intent(candles[-1])
        logger.debug(
            "debug_sequence_step",
            symbol=intent.symbol,
            intent=intent.intent.value,
            reason=intent.reason,
            timestamp=intent.timestamp
        )
        return intent

    def reset(self) -> None:
        self._states.clear()

    def _next_intent(self, latest: Candle) -> TradeIntent:
        state = self._states.setdefault(latest.symbol, _SequenceState())

        if state.last_timestamp == latest.timestamp:
            return self._idle(latest, state, "await_closed_bar")
        state.last_timestamp = latest.timestamp

        if state.completed or state.step >= len(SEQUENCE):
            state.completed = True
            return self._idle(latest, state, "sequence_complete")

        target = SEQUENCE[state.step]
        state.step += 1
        if state.step >= len(SEQUENCE):
            state.completed = True

        return TradeIntent(
            symbol=latest.symbol,
            intent=target,
            reason=f"debug_step_{state.step}",
            timestamp=latest.timestamp,
            metadata={"sequence_step": state.step, "timeframe": latest.timeframe},
        )

    @staticmethod
    def _idle(latest: Candle, state: _SequenceState, reason: str) -> TradeIntent:
        return TradeIntent(
            symbol=latest.symbol,
            intent=IntentType.NO_ACTION,
            reason=reason,
            timestamp=latest.timestamp,
            metadata={"sequence_step": state.step, "sequence_complete": state.completed},
        )
