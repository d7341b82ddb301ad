"""
Setup predicates for the UltraAggressive strategy.

Each detector is a pure function returning SetupDiagnostics: the verdict
plus every sub-condition that produced it, for the strategy_diagnostics log.
"""

from ...core.types import Candle
from .config import UltraAggressiveConfig
from .models import (
    IndicatorSnapshot,
    LevelSnapshot,
    SetupDiagnostics,
    TrendDirection,
    VolatilityRegime,
)

BREAKOUT_BUFFER = 0.001
VWAP_FLAT_FRACTION = 0.5

SETUP_NAMES = (
    "trendIgnitionLong",
    "trendIgnitionShort",
    "meanReversionLong",
    "meanReversionShort",
    "breakoutTrapLong",
    "breakoutTrapShort",
    "liquiditySweepLong",
    "liquiditySweepShort",
)


def _suffix(side: str) -> str:
    return "Long" if side == "long" else "Short"


def _first_present(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _vwap_flat(indicator: IndicatorSnapshot, config: UltraAggressiveConfig) -> bool:
    return (
        indicator.vwap is None
        or abs(indicator.vwap_deviation_pct or 0.0)
        <= config.thresholds.vwap_stretch_pct * VWAP_FLAT_FRACTION
    )


def _beyond(price: float, level: float, is_long: bool) -> bool:
    if is_long:
        return price > level * (1 + BREAKOUT_BUFFER)
    return price < level * (1 - BREAKOUT_BUFFER)


def detect_trend_ignition(
    side: str,
    trend: TrendDirection,
    vol_regime: VolatilityRegime,
    indicator: IndicatorSnapshot,
    levels: LevelSnapshot,
    latest: Candle,
    config: UltraAggressiveConfig
) -> SetupDiagnostics:
    """Trend continuation: two closes beyond the breakout level on a wide, loud bar."""
    is_long = side == "long"
    thresholds = config.thresholds

    trending = trend is (TrendDirection.TRENDING_UP if is_long else TrendDirection.TRENDING_DOWN)
    vol_ok = vol_regime is not VolatilityRegime.LOW
    has_vwap = indicator.vwap is not None
    price_vs_vwap = indicator.vwap_deviation_pct or 0.0
    price_alignment = price_vs_vwap >= 0 if is_long else price_vs_vwap <= 0

    breakout_ref = levels.breakout_high if is_long else levels.breakout_low
    breakout = bool(breakout_ref) and _beyond(latest.close, breakout_ref, is_long)
    prior_breakout = (
        bool(breakout_ref)
        and indicator.previous_close is not None
        and _beyond(indicator.previous_close, breakout_ref, is_long)
    )
    breakout_confirmed = breakout and prior_breakout

    atr = indicator.atr1m or 0.0
    wide_body = atr > 0 and abs(latest.body) >= atr * thresholds.breakout_atr_multiple

    reference_volume = indicator.volume_avg_short or indicator.volume_avg_long or latest.volume
    high_volume = (
        reference_volume > 0
        and latest.volume >= reference_volume * thresholds.breakout_volume_multiple
    )

    cvd_ok = (
        indicator.cvd_trend == ("up" if is_long else "down")
        and indicator.cvd_divergence != ("bearish" if is_long else "bullish")
    )

    rsi = indicator.rsi
    rsi_extended = rsi is not None and (
        rsi >= thresholds.rsi_overbought if is_long else rsi <= thresholds.rsi_oversold
    )
    breakout_override = (
        config.allow_breakouts_when_rsi_overbought and rsi_extended and high_volume and cvd_ok
    )

    active = (
        trending
        and vol_ok
        and has_vwap
        and bool(breakout_ref)
        and cvd_ok
        and (
            (price_alignment and breakout_confirmed and wide_body and high_volume)
            or breakout_override
        )
    )

    return SetupDiagnostics(
        name=f"trendIgnition{_suffix(side)}",
        side=side,
        active=bool(active),
        checks={
            "trending": trending,
            "vol_ok": vol_ok,
            "has_vwap": has_vwap,
            "price_vs_vwap": price_vs_vwap,
            "price_alignment": price_alignment,
            "breakout_ref": breakout_ref,
            "breakout": breakout,
            "prior_breakout": prior_breakout,
            "breakout_confirmed": breakout_confirmed,
            "wide_body": wide_body,
            "high_volume": high_volume,
            "cvd_ok": cvd_ok,
            "rsi": rsi,
            "breakout_override": bool(breakout_override),
        },
    )


def detect_mean_reversion(
    side: str,
    trend: TrendDirection,
    indicator: IndicatorSnapshot,
    levels: LevelSnapshot,
    latest: Candle,
    config: UltraAggressiveConfig
) -> SetupDiagnostics:
    """Fade a stretched move into the day's extreme."""
    is_short = side == "short"
    thresholds = config.thresholds

    trend_filter_ok = not (
        (trend is TrendDirection.TRENDING_UP and is_short)
        or (trend is TrendDirection.TRENDING_DOWN and not is_short)
    )

    stretch_pct = indicator.vwap_deviation_pct or 0.0
    over_extended = (
        stretch_pct > thresholds.vwap_stretch_pct
        if is_short
        else stretch_pct < -thresholds.vwap_stretch_pct
    )

    anchor = (
        _first_present(levels.day_high, levels.range_high)
        if is_short
        else _first_present(levels.day_low, levels.range_low)
    )
    proximity = thresholds.vwap_stretch_pct
    if anchor is None:
        near_extreme = False
    elif is_short:
        near_extreme = latest.high >= anchor * (1 - proximity)
    else:
        near_extreme = latest.low <= anchor * (1 + proximity)

    rsi = indicator.rsi
    rsi_condition = rsi is not None and (
        rsi >= thresholds.rsi_overbought if is_short else rsi <= thresholds.rsi_oversold
    )

    atr = indicator.atr1m or 0.0
    impulse = atr > 0 and abs(latest.body) >= atr * thresholds.mean_rev_stretch_atr
    divergence = indicator.cvd_divergence == ("bearish" if is_short else "bullish")

    signal_count = sum(1 for flag in (over_extended, rsi_condition, divergence) if flag)
    if config.reversion_needs_two_of_three_conditions:
        signals_ok = signal_count >= 2
    else:
        signals_ok = over_extended and rsi_condition and divergence

    active = trend_filter_ok and signals_ok and anchor is not None and near_extreme and impulse

    return SetupDiagnostics(
        name=f"meanReversion{_suffix(side)}",
        side=side,
        active=bool(active),
        checks={
            "trend_filter_ok": trend_filter_ok,
            "stretch_pct": stretch_pct,
            "over_extended": over_extended,
            "anchor": anchor,
            "near_extreme": near_extreme,
            "rsi": rsi,
            "rsi_condition": rsi_condition,
            "atr": atr,
            "impulse": impulse,
            "divergence": divergence,
            "signal_count": signal_count,
            "signals_ok": signals_ok,
        },
    )


def detect_breakout_trap(
    side: str,
    trend: TrendDirection,
    indicator: IndicatorSnapshot,
    levels: LevelSnapshot,
    latest: Candle,
    config: UltraAggressiveConfig
) -> SetupDiagnostics:
    """Failed range break: overshoot the key level on quiet volume, then close back inside."""
    is_long = side == "long"
    thresholds = config.thresholds

    range_context = trend is TrendDirection.RANGING
    key_level = (
        _first_present(levels.range_low, levels.previous_day_low, levels.day_low)
        if is_long
        else _first_present(levels.range_high, levels.previous_day_high, levels.day_high)
    )
    proximity = thresholds.vwap_stretch_pct

    if key_level is None:
        overshoot = re_entry = False
    elif is_long:
        overshoot = latest.low < key_level * (1 - proximity)
        re_entry = latest.close > key_level
    else:
        overshoot = latest.high > key_level * (1 + proximity)
        re_entry = latest.close < key_level

    volume_controlled = (
        indicator.volume_avg_short > 0
        and latest.volume <= indicator.volume_avg_short * thresholds.trap_volume_max_multiple
    )
    if is_long:
        order_flow_reject = indicator.cvd_divergence == "bullish" or indicator.cvd_trend == "up"
    else:
        order_flow_reject = indicator.cvd_divergence == "bearish" or indicator.cvd_trend == "down"

    vwap_flat = _vwap_flat(indicator, config)
    trap_override = (
        not range_context
        and key_level is not None
        and overshoot
        and re_entry
        and volume_controlled
        and order_flow_reject
        and vwap_flat
    )
    active = (
        range_context
        and key_level is not None
        and overshoot
        and re_entry
        and volume_controlled
        and order_flow_reject
    ) or trap_override

    return SetupDiagnostics(
        name=f"breakoutTrap{_suffix(side)}",
        side=side,
        active=bool(active),
        checks={
            "range_context": range_context,
            "key_level": key_level,
            "overshoot": overshoot,
            "re_entry": re_entry,
            "volume_controlled": volume_controlled,
            "order_flow_reject": order_flow_reject,
            "vwap_flat": vwap_flat,
            "trap_override": bool(trap_override),
        },
    )


def detect_liquidity_sweep(
    side: str,
    indicator: IndicatorSnapshot,
    levels: LevelSnapshot,
    latest: Candle,
    config: UltraAggressiveConfig
) -> SetupDiagnostics:
    """Stop run through a swing level that is immediately reclaimed."""
    is_long = side == "long"
    thresholds = config.thresholds

    reference_level = (
        _first_present(levels.recent_swing_low, levels.day_low, levels.previous_day_low)
        if is_long
        else _first_present(levels.recent_swing_high, levels.day_high, levels.previous_day_high)
    )
    atr = indicator.atr1m or 0.0

    if not reference_level:
        wick_size = 0.0
        wick_large = reclaimed = False
    else:
        wick_size = reference_level - latest.low if is_long else latest.high - reference_level
        if atr:
            wick_large = wick_size >= atr * thresholds.liquidity_sweep_wick_multiple
        else:
            wick_large = wick_size / reference_level >= thresholds.vwap_stretch_pct
        reclaimed = latest.close > reference_level if is_long else latest.close < reference_level

    vwap_flat = _vwap_flat(indicator, config)
    divergence_match = indicator.cvd_divergence == ("bullish" if is_long else "bearish")
    flow_confirmed = divergence_match or indicator.cvd_trend == ("up" if is_long else "down")
    divergence_ok = flow_confirmed and (divergence_match or (vwap_flat and reclaimed))

    active = reference_level is not None and wick_large and reclaimed and divergence_ok

    return SetupDiagnostics(
        name=f"liquiditySweep{_suffix(side)}",
        side=side,
        active=bool(active),
        checks={
            "reference_level": reference_level,
            "atr": atr,
            "wick_size": wick_size,
            "wick_large": wick_large,
            "reclaimed": reclaimed,
            "divergence": divergence_match,
            "flow_confirmed": flow_confirmed,
            "vwap_flat": vwap_flat,
        },
    )


def evaluate_setups(
    trend: TrendDirection,
    vol_regime: VolatilityRegime,
    indicator: IndicatorSnapshot,
    levels: LevelSnapshot,
    latest: Candle,
    config: UltraAggressiveConfig
) -> tuple[dict[str, bool], list[SetupDiagnostics]]:
    """
    Run all eight detectors.

    Returns:
        (setup name -> active, diagnostics in evaluation order)
    """
    diagnostics = []
    for side in ("long", "short"):
        diagnostics.append(
            detect_trend_ignition(side, trend, vol_regime, indicator, levels, latest, config)
        )
    for side in ("long", "short"):
        diagnostics.append(detect_mean_reversion(side, trend, indicator, levels, latest, config))
    for side in ("long", "short"):
        diagnostics.append(detect_breakout_trap(side, trend, indicator, levels, latest, config))
    for side in ("long", "short"):
        diagnostics.append(detect_liquidity_sweep(side, indicator, levels, latest, config))

    setups = {entry.name: entry.active for entry in diagnostics}
    return setups, diagnostics
