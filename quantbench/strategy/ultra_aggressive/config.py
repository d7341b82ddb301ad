"""
Configuration for the UltraAggressive BTC/USDT strategy.

Profiles are YAML documents parsed by UltraAggressiveConfig.from_dict().
Required numeric fields fail fast with the dotted field name; optional
fields fall back to the defaults below.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional

from ...core.errors import ConfigurationError
from ...core.timeframes import parse_timeframe

STRATEGY_ID = "ultra_aggressive_btc_usdt"

PLAY_TYPES = ("liquiditySweep", "breakoutTrap", "breakout", "meanReversion")
DEFAULT_PLAY_TYPE_PRIORITY = list(PLAY_TYPES)
SESSION_LABELS = ("asia", "eu", "us")
VOLATILITY_LEVELS = ("low", "balanced", "high")


@dataclass
class Timeframes:
    execution: str = "1m"
    confirming: str = "5m"
    context: str = "15m"

    def as_list(self) -> list[str]:
        return list(dict.fromkeys([self.execution, self.confirming, self.context]))


@dataclass
class Lookbacks:
    execution_bars: int
    breakout_range: int
    range_detection: int
    trend_candles: int
    volatility: int
    cvd: int


@dataclass
class Thresholds:
    vwap_stretch_pct: float
    breakout_volume_multiple: float
    breakout_atr_multiple: float
    mean_rev_stretch_atr: float
    liquidity_sweep_wick_multiple: float
    trap_volume_max_multiple: float
    cvd_divergence_threshold: float
    rsi_overbought: float
    rsi_oversold: float


@dataclass
class StrategyRisk:
    risk_per_trade_pct: float  # Percent of equity, scaled by confidence
    atr_stop_multiple: float
    partial_tp_rr: float
    final_tp_rr: float
    trailing_atr_multiple: float


@dataclass
class ExitTuning:
    """Knobs for the exit state machine beyond the manifest risk rules."""
    trailing_lock_in_pct: float = 0.004  # Favorable move before the trail arms
    lateral_stall_bars: int = 10
    lateral_stall_range_atr: float = 0.5
    volatility_fade_atr_ratio: float = 0.6
    volatility_fade_range_atr: float = 0.5
    rsi_exit_long: float = 80.0
    rsi_exit_short: float = 20.0


@dataclass
class SessionFilters:
    enabled: bool = False
    allowed_sessions: list[str] = field(default_factory=list)
    blocked_sessions: list[str] = field(default_factory=list)
    allowed_long_sessions: list[str] = field(default_factory=list)
    allowed_short_sessions: list[str] = field(default_factory=list)
    blocked_long_sessions: list[str] = field(default_factory=list)
    blocked_short_sessions: list[str] = field(default_factory=list)
    allow_longs_when_trending_up: list[str] = field(default_factory=list)


@dataclass
class QualityFilters:
    min_confidence: float = 0.0
    play_type_min_confidence: dict[str, float] = field(default_factory=dict)
    require_cvd_alignment: bool = False
    max_trend_slope_pct_for_counter_trend: Optional[float] = None
    max_volatility_for_mean_reversion: Optional[str] = None
    require_strong_long_cvd: bool = False
    allow_shorts_against_cvd: bool = False
    min_long_trend_slope_pct: Optional[float] = None
    min_short_trend_slope_pct: Optional[float] = None
    require_long_discount_to_vwap_pct: Optional[float] = None
    require_short_premium_to_vwap_pct: Optional[float] = None


@dataclass
class EquityThrottle:
    enabled: bool = False
    lookback_trades: int = 5
    max_drawdown_pct: float = 0.02  # Sum of realized pnl fractions
    factor: float = 0.5


@dataclass
class UltraAggressiveConfig:
    """Full strategy configuration."""
    name: str
    symbol: str
    timeframes: Timeframes
    atr_period_1m: int
    atr_period_5m: int
    ema_fast_period: int
    ema_slow_period: int
    rsi_period: int
    lookbacks: Lookbacks
    thresholds: Thresholds
    risk: StrategyRisk
    max_trade_duration_minutes: float
    max_drawdown_per_trade_pct: float
    cooldown_after_stopout_bars: int
    daily_drawdown_limit_pct: float
    cache_ttl_ms: int = 60_000
    tracked_timeframes: list[str] = field(default_factory=list)
    play_type_priority: list[str] = field(default_factory=lambda: list(DEFAULT_PLAY_TYPE_PRIORITY))
    enable_volatility_fade_exit: bool = False
    allow_breakouts_when_rsi_overbought: bool = False
    reversion_needs_two_of_three_conditions: bool = True
    exits: ExitTuning = field(default_factory=ExitTuning)
    session_filters: SessionFilters = field(default_factory=SessionFilters)
    quality_filters: QualityFilters = field(default_factory=QualityFilters)
    equity_throttle: EquityThrottle = field(default_factory=EquityThrottle)
    history_window_candles: Optional[int] = None
    warmup_periods: dict[str, int] = field(default_factory=dict)
    id: str = STRATEGY_ID

    def all_timeframes(self) -> list[str]:
        """Role timeframes plus any extra tracked ones, deduplicated."""
        return list(dict.fromkeys(self.timeframes.as_list() + list(self.tracked_timeframes)))

    @classmethod
    def from_dict(cls, data: dict) -> "UltraAggressiveConfig":
        """
        Build a config from a parsed profile document.

        Raises:
            ConfigurationError: On a missing or invalid required field.
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Strategy config must be a mapping")

        timeframes_data = _section(data, "timeframes")
        timeframes = Timeframes(
            execution=_require_timeframe(timeframes_data, "execution", "timeframes"),
            confirming=_require_timeframe(timeframes_data, "confirming", "timeframes"),
            context=_require_timeframe(timeframes_data, "context", "timeframes"),
        )

        lookbacks_data = _section(data, "lookbacks")
        lookbacks = Lookbacks(**{
            key: _require_int(lookbacks_data, key, "lookbacks")
            for key in Lookbacks.__dataclass_fields__
        })

        thresholds_data = _section(data, "thresholds")
        thresholds = Thresholds(**{
            key: _require_number(thresholds_data, key, "thresholds")
            for key in Thresholds.__dataclass_fields__
        })

        risk_data = _section(data, "risk")
        risk = StrategyRisk(**{
            key: _require_number(risk_data, key, "risk")
            for key in StrategyRisk.__dataclass_fields__
        })

        priority = data.get("play_type_priority") or list(DEFAULT_PLAY_TYPE_PRIORITY)
        unknown = [p for p in priority if p not in PLAY_TYPES]
        if unknown:
            raise ConfigurationError(
                f"Unknown play types in play_type_priority: {unknown}. "
                f"Expected any of {list(PLAY_TYPES)}"
            )

        tracked = [
            _check_timeframe(tf, "tracked_timeframes")
            for tf in data.get("tracked_timeframes") or []
        ]

        # "default" applies to every tracked timeframe without its own entry
        warmup = {
            (tf if tf == "default" else _check_timeframe(tf, "warmup_periods")):
                _as_int(count, f"warmup_periods.{tf}")
            for tf, count in (data.get("warmup_periods") or {}).items()
        }

        history_window = data.get("history_window_candles")

        return cls(
            id=str(data.get("id", STRATEGY_ID)),
            name=_require_str(data, "name"),
            symbol=_require_str(data, "symbol"),
            timeframes=timeframes,
            tracked_timeframes=tracked,
            play_type_priority=list(priority),
            cache_ttl_ms=_as_int(data.get("cache_ttl_ms", 60_000), "cache_ttl_ms"),
            atr_period_1m=_require_int(data, "atr_period_1m"),
            atr_period_5m=_require_int(data, "atr_period_5m"),
            ema_fast_period=_require_int(data, "ema_fast_period"),
            ema_slow_period=_require_int(data, "ema_slow_period"),
            rsi_period=_require_int(data, "rsi_period"),
            lookbacks=lookbacks,
            thresholds=thresholds,
            risk=risk,
            max_trade_duration_minutes=_require_number(data, "max_trade_duration_minutes"),
            max_drawdown_per_trade_pct=_require_number(data, "max_drawdown_per_trade_pct"),
            cooldown_after_stopout_bars=_require_int(data, "cooldown_after_stopout_bars"),
            daily_drawdown_limit_pct=_require_number(data, "daily_drawdown_limit_pct"),
            enable_volatility_fade_exit=bool(data.get("enable_volatility_fade_exit", False)),
            allow_breakouts_when_rsi_overbought=bool(
                data.get("allow_breakouts_when_rsi_overbought", False)
            ),
            reversion_needs_two_of_three_conditions=bool(
                data.get("reversion_needs_two_of_three_conditions", True)
            ),
            exits=_optional_section(data, "exits", ExitTuning),
            session_filters=_parse_session_filters(data.get("session_filters")),
            quality_filters=_parse_quality_filters(data.get("quality_filters")),
            equity_throttle=_optional_section(data, "equity_throttle", EquityThrottle),
            history_window_candles=(
                None if history_window is None
                else _as_int(history_window, "history_window_candles")
            ),
            warmup_periods=warmup,
        )


def _field_name(key: str, prefix: Optional[str]) -> str:
    return f"{prefix}.{key}" if prefix else key


def _section(data: dict, key: str) -> dict:
    section = data.get(key)
    if not isinstance(section, dict):
        raise ConfigurationError(f"Missing required config section: {key}")
    return section


def _as_number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"Config field {name} must be numeric, got {value!r}")
    if not math.isfinite(value):
        raise ConfigurationError(f"Config field {name} must be finite, got {value!r}")
    return float(value)


def _as_int(value: Any, name: str) -> int:
    number = _as_number(value, name)
    if not number.is_integer():
        raise ConfigurationError(f"Config field {name} must be an integer, got {value!r}")
    return int(number)


def _require_number(data: dict, key: str, prefix: Optional[str] = None) -> float:
    name = _field_name(key, prefix)
    if key not in data or data[key] is None:
        raise ConfigurationError(f"Missing required config field: {name}")
    return _as_number(data[key], name)


def _require_int(data: dict, key: str, prefix: Optional[str] = None) -> int:
    name = _field_name(key, prefix)
    if key not in data or data[key] is None:
        raise ConfigurationError(f"Missing required config field: {name}")
    return _as_int(data[key], name)


def _require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"Missing required config field: {key}")
    return value.strip()


def _check_timeframe(value: Any, name: str) -> str:
    try:
        parse_timeframe(value)
    except ValueError as e:
        raise ConfigurationError(f"Config field {name}: {e}") from e
    return str(value).strip().lower()


def _require_timeframe(data: dict, key: str, prefix: str) -> str:
    name = _field_name(key, prefix)
    if not data.get(key):
        raise ConfigurationError(f"Missing required config field: {name}")
    return _check_timeframe(data[key], name)


def _optional_section(data: dict, key: str, section_class):
    """Overlay known keys of an optional section onto its defaults."""
    section = section_class()
    raw = data.get(key)
    if raw is None:
        return section
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config section {key} must be a mapping")

    for name, value in raw.items():
        if name not in section_class.__dataclass_fields__:
            continue
        default = getattr(section, name)
        if isinstance(default, bool):
            setattr(section, name, bool(value))
        elif isinstance(default, int):
            setattr(section, name, _as_int(value, f"{key}.{name}"))
        elif isinstance(default, float):
            setattr(section, name, _as_number(value, f"{key}.{name}"))
        else:
            setattr(section, name, value)
    return section


def _session_list(raw: dict, key: str) -> list[str]:
    values = [str(v).lower() for v in raw.get(key) or []]
    unknown = [v for v in values if v not in SESSION_LABELS]
    if unknown:
        raise ConfigurationError(
            f"Unknown sessions in session_filters.{key}: {unknown}"
        )
    return values


def _parse_session_filters(raw: Optional[dict]) -> SessionFilters:
    if raw is None:
        return SessionFilters()
    if not isinstance(raw, dict):
        raise ConfigurationError("Config section session_filters must be a mapping")

    lists = {
        key: _session_list(raw, key)
        for key in SessionFilters.__dataclass_fields__
        if key != "enabled"
    }
    return SessionFilters(enabled=bool(raw.get("enabled", False)), **lists)


def _parse_quality_filters(raw: Optional[dict]) -> QualityFilters:
    if raw is None:
        return QualityFilters()
    if not isinstance(raw, dict):
        raise ConfigurationError("Config section quality_filters must be a mapping")

    def optional_number(key: str) -> Optional[float]:
        value = raw.get(key)
        return None if value is None else _as_number(value, f"quality_filters.{key}")

    max_vol = raw.get("max_volatility_for_mean_reversion")
    if max_vol is not None and max_vol not in VOLATILITY_LEVELS:
        raise ConfigurationError(
            "Config field quality_filters.max_volatility_for_mean_reversion "
            f"must be one of {list(VOLATILITY_LEVELS)}, got {max_vol!r}"
        )

    play_min = {
        play: _as_number(value, f"quality_filters.play_type_min_confidence.{play}")
        for play, value in (raw.get("play_type_min_confidence") or {}).items()
    }

    return QualityFilters(
        min_confidence=optional_number("min_confidence") or 0.0,
        play_type_min_confidence=play_min,
        require_cvd_alignment=bool(raw.get("require_cvd_alignment", False)),
        max_trend_slope_pct_for_counter_trend=optional_number("max_trend_slope_pct_for_counter_trend"),
        max_volatility_for_mean_reversion=max_vol,
        require_strong_long_cvd=bool(raw.get("require_strong_long_cvd", False)),
        allow_shorts_against_cvd=bool(raw.get("allow_shorts_against_cvd", False)),
        min_long_trend_slope_pct=optional_number("min_long_trend_slope_pct"),
        min_short_trend_slope_pct=optional_number("min_short_trend_slope_pct"),
        require_long_discount_to_vwap_pct=optional_number("require_long_discount_to_vwap_pct"),
        require_short_premium_to_vwap_pct=optional_number("require_short_premium_to_vwap_pct"),
    )
