"""
Strategy registry.

Maps each strategy id to everything the runtime needs to build it: the
config parser, the factory, the live cache builder and the timeframe
and warm-up resolution.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from ..core.errors import ConfigurationError
from ..data.mtf_cache import CandleFetcher, MultiTimeframeCache
from .base_strategy import BaseStrategy, CandleCache
from .debug_sequencer import DebugSequencerConfig, DebugSequencerStrategy
from .ultra_aggressive import UltraAggressiveConfig, UltraAggressiveStrategy


class StrategyId(Enum):
    ULTRA_AGGRESSIVE_BTC_USDT = "ultra_aggressive_btc_usdt"
    DEBUG_4C_PIPELINE = "debug_4c_pipeline"


@dataclass(frozen=True)
class StrategyDefinition:
    """How to configure, build and feed one strategy."""
    id: StrategyId
    name: str
    default_profile: Optional[str]
    parse_config: Callable[[dict], Any]
    factory: Callable[[Any, CandleCache], BaseStrategy]
    cache_limit: int

    def build_cache(
        self,
        fetcher: CandleFetcher,
        symbol: str,
        timeframes: list[str],
        max_age_ms: int
    ) -> MultiTimeframeCache:
        return MultiTimeframeCache(
            symbol=symbol,
            timeframes=timeframes,
            max_age_ms=max_age_ms,
            fetcher=fetcher,
            limit=self.cache_limit,
        )

    def tracked_timeframes(self, config: Any) -> list[str]:
        return config.all_timeframes()

    def execution_timeframe(self, config: Any) -> str:
        return self.tracked_timeframes(config)[0]

    def warmup(self, config: Any) -> dict[str, int]:
        """Warm-up candles per tracked timeframe, falling back to the "default" entry."""
        periods = config.warmup_periods or {}
        default = max(int(periods.get("default", 0)), 0)
        return {
            timeframe: max(int(periods.get(timeframe, default)), 0)
            for timeframe in self.tracked_timeframes(config)
        }

    def history_limit(self, config: Any, override: Optional[int] = None) -> int:
        """Candles kept per timeframe: override, else history window, never below the largest warm-up."""
        warmup_max = max(self.warmup(config).values(), default=0)
        floor = warmup_max if warmup_max > 0 else 1
        window = config.history_window_candles
        if override and override > 0:
            candidate = override
        elif window and window > 0:
            candidate = window
        else:
            candidate = floor
        return max(candidate, floor)


STRATEGY_REGISTRY: dict[StrategyId, StrategyDefinition] = {
    StrategyId.ULTRA_AGGRESSIVE_BTC_USDT: StrategyDefinition(
        id=StrategyId.ULTRA_AGGRESSIVE_BTC_USDT,
        name="UltraAggressive BTC/USDT",
        default_profile="ultra-aggressive-btc-usdt",
        parse_config=UltraAggressiveConfig.from_dict,
        factory=UltraAggressiveStrategy,
        cache_limit=500,
    ),
    StrategyId.DEBUG_4C_PIPELINE: StrategyDefinition(
        id=StrategyId.DEBUG_4C_PIPELINE,
        name="Debug 4C Pipeline",
        default_profile="debug-4c-pipeline",
        parse_config=DebugSequencerConfig.from_dict,
        factory=DebugSequencerStrategy,
        cache_limit=10,
    ),
}


def get_strategy_definition(strategy_id) -> StrategyDefinition:
    """
    Look up a strategy by id.

    Args:
        strategy_id: StrategyId member or its string value.

    Raises:
        ConfigurationError: If the id is not registered.
    """
    try:
        key = strategy_id if isinstance(strategy_id, StrategyId) else StrategyId(strategy_id)
    except ValueError:
        raise ConfigurationError(f"Unknown strategy id: {strategy_id}") from None
    return STRATEGY_REGISTRY[key]


def list_strategy_ids() -> list[str]:
    return [strategy_id.value for strategy_id in STRATEGY_REGISTRY]
