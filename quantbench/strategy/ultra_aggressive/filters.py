"""
Entry filters: trading session windows, setup quality gates and the
equity throttle. Each filter returns a rejection reason or None.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

from .config import EquityThrottle, QualityFilters, SessionFilters
from .models import StrategyContext, TrendDirection, VolatilityRegime

COUNTER_TREND_PLAYS = ("meanReversion", "breakoutTrap")


def session_for_timestamp(timestamp: int) -> str:
    """
    UTC session label.

    asia: 00:00-06:59 and 21:00-23:59, eu: 07:00-12:59, us: 13:00-20:59
    """
    hour = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).hour
    if hour < 7:
        return "asia"
    if hour < 13:
        return "eu"
    if hour < 21:
        return "us"
    return "asia"


def check_session_filter(
    ctx: StrategyContext,
    side: str,
    filters: SessionFilters
) -> Optional[str]:
    if not filters.enabled:
        return None

    session = session_for_timestamp(ctx.timestamp)
    if session in filters.blocked_sessions:
        return "session_blocked"
    if filters.allowed_sessions and session not in filters.allowed_sessions:
        return "session_not_allowed"

    if side == "long":
        if (
            session in filters.allow_longs_when_trending_up
            and ctx.trend_direction is TrendDirection.TRENDING_UP
        ):
            return None
        if session in filters.blocked_long_sessions:
            return "long_session_blocked"
        if filters.allowed_long_sessions and session not in filters.allowed_long_sessions:
            return "long_session_not_allowed"
    else:
        if session in filters.blocked_short_sessions:
            return "short_session_blocked"
        if filters.allowed_short_sessions and session not in filters.allowed_short_sessions:
            return "short_session_not_allowed"

    return None


def check_quality_filter(
    ctx: StrategyContext,
    play_type: str,
    side: str,
    confidence: float,
    filters: QualityFilters
) -> Optional[str]:
    is_long = side == "long"

    if confidence < filters.min_confidence:
        return "confidence_below_min"
    play_min = filters.play_type_min_confidence.get(play_type)
    if play_min is not None and confidence < play_min:
        return "play_confidence_below_min"

    cvd_trend = ctx.indicator.cvd_trend
    if filters.require_cvd_alignment:
        if is_long:
            if filters.require_strong_long_cvd and cvd_trend != "up":
                return "cvd_not_strong_for_long"
            if cvd_trend == "down":
                return "cvd_against_long"
        elif cvd_trend == "up" and not filters.allow_shorts_against_cvd:
            return "cvd_against_short"

    slope = ctx.trend_slope_pct
    if (
        play_type in COUNTER_TREND_PLAYS
        and filters.max_trend_slope_pct_for_counter_trend is not None
        and abs(slope) > filters.max_trend_slope_pct_for_counter_trend
    ):
        return "trend_too_steep_for_counter_trend"

    if play_type == "meanReversion" and filters.max_volatility_for_mean_reversion:
        ceiling = VolatilityRegime(filters.max_volatility_for_mean_reversion)
        if ctx.vol_regime.rank > ceiling.rank:
            return "volatility_too_high_for_mean_reversion"

    if is_long and filters.min_long_trend_slope_pct is not None:
        if slope < filters.min_long_trend_slope_pct:
            return "long_trend_slope_too_weak"
    if not is_long and filters.min_short_trend_slope_pct is not None:
        if slope > -filters.min_short_trend_slope_pct:
            return "short_trend_slope_too_weak"

    deviation = ctx.indicator.vwap_deviation_pct
    if is_long and filters.require_long_discount_to_vwap_pct is not None:
        if deviation is None or deviation > -filters.require_long_discount_to_vwap_pct:
            return "long_not_discounted_to_vwap"
    if not is_long and filters.require_short_premium_to_vwap_pct is not None:
        if deviation is None or deviation < filters.require_short_premium_to_vwap_pct:
            return "short_not_premium_to_vwap"

    return None


def equity_throttle_factor(
    realized_pnl_pcts: Sequence[float],
    throttle: EquityThrottle
) -> float:
    """Risk multiplier after a losing streak: `factor` when recent losses exceed the cap."""
    if not throttle.enabled or throttle.lookback_trades <= 0:
        return 1.0

    recent = list(realized_pnl_pcts)[-throttle.lookback_trades:]
    if recent and sum(recent) <= -throttle.max_drawdown_pct:
        return throttle.factor
    return 1.0
