"""
Intrabar exit guards.

Run before the strategy on every tick while a position is open. A guard
that fires closes the position at its level and the strategy is skipped
for that tick.
"""

from dataclasses import dataclass
from typing import Any, Optional

from ..core.types import Candle, IntentType, PositionSide, PositionSnapshot, TradeIntent


@dataclass
class ForcedExit:
    """Close intent raised by a guard and the level it fills at."""
    intent: TradeIntent
    fill_price: float

    @property
    def reason(self) -> str:
        return self.intent.reason


def _close_intent(position: PositionSnapshot, candle: Candle, reason: str) -> TradeIntent:
    is_long = position.side is PositionSide.LONG
    return TradeIntent(
        symbol=candle.symbol,
        intent=IntentType.CLOSE_LONG if is_long else IntentType.CLOSE_SHORT,
        reason=reason if is_long else f"short_{reason}",
        timestamp=candle.timestamp,
    )


def check_protective_exit(position: PositionSnapshot, candle: Candle) -> Optional[ForcedExit]:
    """
    Stop loss / take profit touch on the candle's range.

    Levels of 0 are unset. When one candle touches both, the stop wins.
    """
    if not position.is_open:
        return None

    is_long = position.side is PositionSide.LONG
    stop = position.stop_loss_price
    target = position.take_profit_price

    if stop > 0 and (candle.low <= stop if is_long else candle.high >= stop):
        return ForcedExit(_close_intent(position, candle, "stop_loss_hit"), stop)
    if target > 0 and (candle.high >= target if is_long else candle.low <= target):
        return ForcedExit(_close_intent(position, candle, "take_profit_hit"), target)
    return None


def apply_trailing_stop(
    position: PositionSnapshot,
    candle: Candle,
    activation_pct: float,
    trail_pct: float
) -> tuple[dict[str, Any], Optional[ForcedExit]]:
    """
    Advance trailing state for one candle.

    The trail arms once the close moves activation_pct (a fraction) past
    entry. Once armed, the stop follows the peak (longs) or trough
    (shorts) at trail_pct and only tightens.

    Returns:
        (position field updates, exit if the candle touched the stop)
    """
    updates: dict[str, Any] = {}
    if not position.is_open:
        return updates, None

    entry = position.entry_price if position.entry_price > 0 else position.avg_entry_price
    activation_pct = max(activation_pct, 0.0)
    trail_pct = max(trail_pct, 0.0)
    if entry <= 0 or trail_pct <= 0:
        return updates, None

    is_long = position.side is PositionSide.LONG
    active = position.is_trailing_active
    peak = position.peak_price if position.peak_price > 0 else entry
    trough = position.trough_price if position.trough_price > 0 else entry
    stop = position.trailing_stop_price if position.trailing_stop_price > 0 else position.stop_loss_price

    if is_long:
        triggered = candle.close >= entry * (1 + activation_pct)
    else:
        triggered = candle.close <= entry * (1 - activation_pct)
    if not active and triggered:
        active = True
        updates["is_trailing_active"] = True
    if not active:
        return updates, None

    if is_long:
        peak = max(peak, candle.high)
        if peak != position.peak_price:
            updates["peak_price"] = peak
        proposed = peak * (1 - trail_pct)
        if proposed > stop:
            stop = proposed
            updates["trailing_stop_price"] = stop
    else:
        trough = min(trough, candle.low)
        if trough != position.trough_price:
            updates["trough_price"] = trough
        proposed = trough * (1 + trail_pct)
        if stop <= 0 or proposed < stop:
            stop = proposed
            updates["trailing_stop_price"] = stop

    if stop <= 0:
        return updates, None
    hit = candle.low <= stop if is_long else candle.high >= stop
    if not hit:
        return updates, None
    return updates, ForcedExit(_close_intent(position, candle, "trailing_stop_hit"), stop)
