"""
Exit state machine for an open UltraAggressive position.

Rules are checked in a fixed order and the first match wins:

1. max_duration_exit       - position held for max_trade_duration_minutes
2. perTradeDrawdown        - adverse move from entry >= max_drawdown_per_trade_pct
3. trailing_stop_exit      - retrace from the best price once the lock-in move is reached
4. lateral_stall_exit      - in profit but the recent range has gone flat
5. lost_vwap_support / lost_vwap_resistance / rsi_extreme_exit
6. volatility_fade_exit    - ATR contraction plus tight closes (opt-in)
"""

from typing import Optional

from ...core.timeframes import MINUTE_MS
from ...core.types import IntentType, PositionSide, TradeIntent
from .config import UltraAggressiveConfig
from .entry import FALLBACK_STOP_PCT
from .models import PositionMemory, StrategyContext, TrendDirection

VOLATILITY_FADE_BARS = 5


def favorable_move_pct(memory: PositionMemory, price: float) -> float:
    """Signed move from entry in the position's favor, as a fraction of entry."""
    if memory.entry_price == 0:
        return 0.0
    move = (price - memory.entry_price) / memory.entry_price
    return move if memory.side == "LONG" else -move


def evaluate_exit(
    ctx: StrategyContext,
    position: PositionSide,
    config: UltraAggressiveConfig,
    memory: Optional[PositionMemory]
) -> Optional[str]:
    """
    Return the exit reason for this bar, or None to keep holding.
    """
    if position is PositionSide.FLAT:
        return None

    is_long = position is PositionSide.LONG
    price = ctx.price
    atr = ctx.indicator.atr1m
    exits = config.exits

    if memory is not None:
        max_duration_ms = config.max_trade_duration_minutes * MINUTE_MS
        if ctx.timestamp - memory.opened_at >= max_duration_ms:
            return "max_duration_exit"

        pnl_pct = favorable_move_pct(memory, price)
        if config.max_drawdown_per_trade_pct > 0 and -pnl_pct >= config.max_drawdown_per_trade_pct:
            return "perTradeDrawdown"

        if _trailing_stop_hit(memory, price, atr, config):
            return "trailing_stop_exit"

        if pnl_pct > 0 and atr and exits.lateral_stall_bars > 0:
            window = ctx.recent_execution_candles[-exits.lateral_stall_bars:]
            if len(window) >= exits.lateral_stall_bars:
                stall_range = max(c.high for c in window) - min(c.low for c in window)
                if stall_range <= atr * exits.lateral_stall_range_atr:
                    return "lateral_stall_exit"

    vwap = ctx.indicator.vwap
    rsi = ctx.indicator.rsi
    if is_long:
        if vwap and price < vwap and ctx.trend_direction is not TrendDirection.TRENDING_UP:
            return "lost_vwap_support"
        if rsi is not None and rsi > exits.rsi_exit_long:
            return "rsi_extreme_exit"
    else:
        if vwap and price > vwap and ctx.trend_direction is not TrendDirection.TRENDING_DOWN:
            return "lost_vwap_resistance"
        if rsi is not None and rsi < exits.rsi_exit_short:
            return "rsi_extreme_exit"

    if config.enable_volatility_fade_exit and memory is not None:
        if memory.atr_on_entry and atr and atr <= memory.atr_on_entry * exits.volatility_fade_atr_ratio:
            closes = [c.close for c in ctx.recent_execution_candles[-VOLATILITY_FADE_BARS:]]
            if len(closes) >= VOLATILITY_FADE_BARS:
                if max(closes) - min(closes) <= atr * exits.volatility_fade_range_atr:
                    return "volatility_fade_exit"

    return None


def _trailing_stop_hit(
    memory: PositionMemory,
    price: float,
    atr: Optional[float],
    config: UltraAggressiveConfig
) -> bool:
    multiple = config.risk.trailing_atr_multiple
    if multiple <= 0 or memory.entry_price == 0:
        return False

    best_move = favorable_move_pct(memory, memory.best_favorable_price)
    if best_move < config.exits.trailing_lock_in_pct:
        return False

    distance = multiple * (memory.atr_on_entry or atr or price * FALLBACK_STOP_PCT)
    if memory.side == "LONG":
        return price <= memory.best_favorable_price - distance
    return price >= memory.best_favorable_price + distance


def build_close_intent(ctx: StrategyContext, position: PositionSide, reason: str) -> TradeIntent:
    intent = IntentType.CLOSE_LONG if position is PositionSide.LONG else IntentType.CLOSE_SHORT
    return TradeIntent(
        symbol=ctx.symbol,
        intent=intent,
        reason=reason,
        timestamp=ctx.timestamp,
        metadata={
            "price": ctx.price,
            "trend_direction": ctx.trend_direction.value,
            "vol_regime": ctx.vol_regime.value,
        },
    )
