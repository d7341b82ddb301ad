"""
Entry selection for the UltraAggressive strategy.
"""

from dataclasses import dataclass
from typing import Optional

from ...core.types import IntentType
from ...observability.logger import get_logger
from .config import DEFAULT_PLAY_TYPE_PRIORITY, UltraAggressiveConfig
from .filters import check_quality_filter, check_session_filter
from .models import StrategyContext, TrendDirection, VolatilityRegime

logger = get_logger(__name__)

FALLBACK_STOP_PCT = 0.002  # Stop distance as a fraction of price when ATR is missing

# play type -> (setup name, intent reason) per side
PLAY_SETUPS = {
    "liquiditySweep": (
        ("liquiditySweepLong", "liquidity_sweep_long"),
        ("liquiditySweepShort", "liquidity_sweep_short"),
    ),
    "breakoutTrap": (
        ("breakoutTrapLong", "breakout_trap_long"),
        ("breakoutTrapShort", "breakout_trap_short"),
    ),
    "breakout": (
        ("trendIgnitionLong", "trend_ignition_long"),
        ("trendIgnitionShort", "trend_ignition_short"),
    ),
    "meanReversion": (
        ("meanReversionLong", "mean_reversion_long"),
        ("meanReversionShort", "mean_reversion_short"),
    ),
}


@dataclass
class SetupDecision:
    """An entry candidate with its levels and sizing hint."""
    intent: IntentType
    reason: str
    play_type: str
    stop: float
    tp1: float
    tp2: float
    confidence: float
    risk_pct: float

    def to_metadata(self) -> dict:
        return {
            "stop": self.stop,
            "tp1": self.tp1,
            "tp2": self.tp2,
            "confidence": self.confidence,
            "risk_pct": self.risk_pct,
            "play_type": self.play_type,
        }


def evaluate_risk_blocks(ctx: StrategyContext, config: UltraAggressiveConfig) -> Optional[str]:
    """Reason entries are blocked right now, or None."""
    state = ctx.risk_state
    if state is None:
        return None
    if config.cooldown_after_stopout_bars > 0 and state.cooldown_bars_remaining > 0:
        return "cooldownBlock"
    if (
        config.daily_drawdown_limit_pct > 0
        and state.session_pnl_pct <= -config.daily_drawdown_limit_pct
    ):
        return "drawdownLimit"
    return None


def compute_confidence(ctx: StrategyContext, intent: IntentType, reason: str) -> float:
    score = 0.5
    is_long = intent is IntentType.OPEN_LONG
    high_vol = ctx.vol_regime is VolatilityRegime.HIGH
    has_divergence = ctx.indicator.cvd_divergence is not None

    if reason.startswith("trend_ignition"):
        score += 0.2 if high_vol else 0.1
        aligned = TrendDirection.TRENDING_UP if is_long else TrendDirection.TRENDING_DOWN
        score += 0.2 if ctx.trend_direction is aligned else 0.0
    elif reason.startswith("liquidity_sweep"):
        score += 0.2 if has_divergence else 0.0
        score += 0.1 if not high_vol else 0.0
    elif reason.startswith(("mean_reversion", "breakout_trap")):
        score += 0.15 if not high_vol else 0.0
        score += 0.1 if has_divergence else 0.0

    return round(min(1.0, max(0.0, score)), 2)


def build_setup_decision(
    ctx: StrategyContext,
    intent: IntentType,
    reason: str,
    play_type: str,
    config: UltraAggressiveConfig,
    throttle_factor: float = 1.0
) -> SetupDecision:
    """Stop and targets from ATR, sizing hint scaled by confidence and throttle."""
    risk = config.risk
    direction = 1 if intent is IntentType.OPEN_LONG else -1
    stop_distance = (ctx.indicator.atr1m or ctx.price * FALLBACK_STOP_PCT) * risk.atr_stop_multiple
    confidence = compute_confidence(ctx, intent, reason)

    return SetupDecision(
        intent=intent,
        reason=reason,
        play_type=play_type,
        stop=ctx.price - direction * stop_distance,
        tp1=ctx.price + direction * stop_distance * risk.partial_tp_rr,
        tp2=ctx.price + direction * stop_distance * risk.final_tp_rr,
        confidence=confidence,
        risk_pct=risk.risk_per_trade_pct * (0.5 + 0.5 * confidence) * throttle_factor,
    )


def select_entry_decision(
    ctx: StrategyContext,
    config: UltraAggressiveConfig,
    throttle_factor: float = 1.0
) -> Optional[SetupDecision]:
    """
    Pick the entry to take, if any.

    Active setups are walked in play-type priority order; candidates that
    fail a session or quality filter are dropped. The winner is the lowest
    priority index, then the highest confidence.
    """
    priority = config.play_type_priority or DEFAULT_PLAY_TYPE_PRIORITY
    candidates: list[tuple[int, SetupDecision]] = []

    for priority_index, play_type in enumerate(priority):
        for (setup_name, reason), intent in zip(
            PLAY_SETUPS[play_type], (IntentType.OPEN_LONG, IntentType.OPEN_SHORT)
        ):
            if not ctx.setups.get(setup_name):
                continue

            decision = build_setup_decision(ctx, intent, reason, play_type, config, throttle_factor)
            side = "long" if intent is IntentType.OPEN_LONG else "short"
            rejection = (
                check_session_filter(ctx, side, config.session_filters)
                or check_quality_filter(
                    ctx, play_type, side, decision.confidence, config.quality_filters
                )
            )
            if rejection:
                logger.debug(
                    "entry_filtered",
                    symbol=ctx.symbol,
                    setup=setup_name,
                    reason=rejection,
                    timestamp=ctx.timestamp
                )
                continue

            candidates.append((priority_index, decision))

    if not candidates:
        return None

    candidates.sort(key=lambda item: (item[0], -item[1].confidence))
    return candidates[0][1]
