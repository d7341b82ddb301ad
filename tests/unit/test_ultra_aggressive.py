"""
Unit tests for the UltraAggressive strategy: setups, entries, exits and
strategy-side risk state.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from quantbench.config.profiles import load_profile_document, profile_path
from quantbench.core.timeframes import MINUTE_MS
from quantbench.core.types import Candle, IntentType, PositionSide
from quantbench.data.candle_store import CandleStore, StoreBackedCache
from quantbench.strategy.ultra_aggressive import UltraAggressiveConfig, UltraAggressiveStrategy
from quantbench.strategy.ultra_aggressive.config import EquityThrottle
from quantbench.strategy.ultra_aggressive.entry import select_entry_decision
from quantbench.strategy.ultra_aggressive.exits import evaluate_exit
from quantbench.strategy.ultra_aggressive.filters import equity_throttle_factor, session_for_timestamp
from quantbench.strategy.ultra_aggressive.models import (
    IndicatorSnapshot,
    LevelSnapshot,
    PositionMemory,
    StrategyContext,
    TrendDirection,
    VolatilityRegime,
)
from quantbench.strategy.ultra_aggressive import strategy as strategy_module
from quantbench.strategy.ultra_aggressive.setups import (
    SETUP_NAMES,
    detect_breakout_trap,
    detect_liquidity_sweep,
    detect_mean_reversion,
    detect_trend_ignition,
    evaluate_setups,
)

PROFILE_DIR = os.path.join(os.path.dirname(__file__), '..', '..', 'config', 'strategies')


def load_config(**overrides) -> UltraAggressiveConfig:
    data = load_profile_document(profile_path("ultra-aggressive-btc-usdt", PROFILE_DIR))
    data.update(overrides)
    return UltraAggressiveConfig.from_dict(data)


def make_candle(timestamp, open_, high, low, close, volume=10.0, timeframe="1m"):
    return Candle(
        symbol="BTC/USDT",
        timeframe=timeframe,
        timestamp=timestamp,
        open=open_,
        high=high,
        low=low,
        close=close,
        volume=volume,
    )


def make_indicator(**overrides) -> IndicatorSnapshot:
    values = dict(
        atr1m=1.0,
        atr5m=2.0,
        atr_series=[1.0] * 20,
        ema_fast=100.0,
        ema_slow=100.0,
        rsi=50.0,
        previous_close=100.0,
        vwap=100.0,
        vwap_deviation_pct=0.0,
        cvd_series=[0.0, 1.0],
        cvd_trend="flat",
        cvd_divergence=None,
        volume_avg_short=10.0,
        volume_avg_long=10.0,
    )
    values.update(overrides)
    return IndicatorSnapshot(**values)


def make_context(latest, indicator=None, levels=None, setups=None, trend=TrendDirection.RANGING,
                 recent=None, risk_state=None) -> StrategyContext:
    return StrategyContext(
        symbol=latest.symbol,
        timeframe=latest.timeframe,
        timestamp=latest.timestamp,
        price=latest.close,
        latest=latest,
        trend_direction=trend,
        trend_slope_pct=0.0,
        vol_regime=VolatilityRegime.BALANCED,
        indicator=indicator or make_indicator(),
        levels=levels or LevelSnapshot(),
        setups=setups or {},
        setup_diagnostics=[],
        recent_execution_candles=recent or [latest],
        risk_state=risk_state,
    )


def build_store(bars=80):
    """Choppy 1m series around 100 ending on an up bar, with flat 5m/15m history."""
    store = CandleStore(500)
    for i in range(bars):
        close = 100.2 if i % 2 else 100.0
        store.ingest("1m", make_candle(i * MINUTE_MS, close, close + 0.5, close - 0.5, close))
    for i in range(20):
        store.ingest("5m", make_candle(i * 5 * MINUTE_MS, 100, 100.5, 99.5, 100, timeframe="5m"))
        store.ingest("15m", make_candle(i * 15 * MINUTE_MS, 100, 100.5, 99.5, 100, timeframe="15m"))
    return store


def stub_context(setups=None, indicator=None):
    """Context builder replacement serving fixed setups on the store's latest candle."""
    def build(execution, confirming, context, config, risk_state):
        return make_context(execution[-1], indicator=indicator, setups=setups, risk_state=risk_state)
    return build


class TestSetups:
    """Tests for setup detectors."""

    def test_liquidity_sweep_long(self):
        """Wick through the swing low that closes back above it is a sweep."""
        config = load_config()
        latest = make_candle(0, 100.5, 101.0, 98.0, 100.8)
        result = detect_liquidity_sweep(
            "long",
            make_indicator(cvd_divergence="bullish"),
            LevelSnapshot(recent_swing_low=100.0),
            latest,
            config
        )
        assert result.active
        assert result.checks["wick_large"]
        assert result.checks["reclaimed"]

    def test_liquidity_sweep_needs_reclaim(self):
        """Closing below the swing level is not a sweep."""
        config = load_config()
        latest = make_candle(0, 100.5, 101.0, 98.0, 99.0)
        result = detect_liquidity_sweep(
            "long",
            make_indicator(cvd_divergence="bullish"),
            LevelSnapshot(recent_swing_low=100.0),
            latest,
            config
        )
        assert not result.active

    def test_trend_ignition_long(self):
        """Two closes above the breakout high on a wide, loud bar in an uptrend."""
        config = load_config()
        latest = make_candle(0, 101.2, 102.1, 101.1, 102.0, volume=20.0)
        result = detect_trend_ignition(
            "long",
            TrendDirection.TRENDING_UP,
            VolatilityRegime.BALANCED,
            make_indicator(vwap_deviation_pct=0.005, previous_close=101.5, cvd_trend="up"),
            LevelSnapshot(breakout_high=101.0),
            latest,
            config
        )
        assert result.name == "trendIgnitionLong"
        assert result.active
        assert result.checks["breakout_confirmed"]
        assert result.checks["wide_body"]
        assert result.checks["high_volume"]

    def test_trend_ignition_needs_prior_close(self):
        """A single close beyond the level is not confirmed."""
        config = load_config()
        latest = make_candle(0, 101.2, 102.1, 101.1, 102.0, volume=20.0)
        result = detect_trend_ignition(
            "long",
            TrendDirection.TRENDING_UP,
            VolatilityRegime.BALANCED,
            make_indicator(vwap_deviation_pct=0.005, previous_close=100.5, cvd_trend="up"),
            LevelSnapshot(breakout_high=101.0),
            latest,
            config
        )
        assert not result.active
        assert result.checks["breakout"]
        assert not result.checks["prior_breakout"]
        assert not result.checks["breakout_override"]

    def test_trend_ignition_rsi_override(self):
        """With the override enabled, an overbought loud bar with CVD support qualifies."""
        config = load_config(allow_breakouts_when_rsi_overbought=True)
        latest = make_candle(0, 101.2, 102.1, 101.1, 102.0, volume=20.0)
        result = detect_trend_ignition(
            "long",
            TrendDirection.TRENDING_UP,
            VolatilityRegime.BALANCED,
            make_indicator(rsi=75.0, previous_close=100.5, cvd_trend="up"),
            LevelSnapshot(breakout_high=101.0),
            latest,
            config
        )
        assert result.active
        assert result.checks["breakout_override"]
        assert not result.checks["breakout_confirmed"]

    def test_trend_ignition_low_volatility(self):
        """Low volatility rejects the breakout."""
        config = load_config()
        latest = make_candle(0, 101.2, 102.1, 101.1, 102.0, volume=20.0)
        result = detect_trend_ignition(
            "long",
            TrendDirection.TRENDING_UP,
            VolatilityRegime.LOW,
            make_indicator(vwap_deviation_pct=0.005, previous_close=101.5, cvd_trend="up"),
            LevelSnapshot(breakout_high=101.0),
            latest,
            config
        )
        assert not result.active
        assert not result.checks["vol_ok"]

    def test_mean_reversion_short(self):
        """A stretched impulse into the day high with RSI overbought is faded."""
        config = load_config()
        latest = make_candle(0, 99.4, 101.2, 99.3, 101.0)
        result = detect_mean_reversion(
            "short",
            TrendDirection.RANGING,
            make_indicator(vwap_deviation_pct=0.005, rsi=75.0),
            LevelSnapshot(day_high=101.0),
            latest,
            config
        )
        assert result.name == "meanReversionShort"
        assert result.active
        assert result.checks["signal_count"] == 2
        assert result.checks["near_extreme"]
        assert result.checks["impulse"]

    def test_mean_reversion_needs_two_signals(self):
        """Stretch alone is one of three signals and not enough."""
        config = load_config()
        latest = make_candle(0, 99.4, 101.2, 99.3, 101.0)
        result = detect_mean_reversion(
            "short",
            TrendDirection.RANGING,
            make_indicator(vwap_deviation_pct=0.005, rsi=50.0),
            LevelSnapshot(day_high=101.0),
            latest,
            config
        )
        assert not result.active
        assert result.checks["signal_count"] == 1
        assert not result.checks["signals_ok"]

    def test_mean_reversion_trend_filter(self):
        """No shorts against an uptrend."""
        config = load_config()
        latest = make_candle(0, 99.4, 101.2, 99.3, 101.0)
        result = detect_mean_reversion(
            "short",
            TrendDirection.TRENDING_UP,
            make_indicator(vwap_deviation_pct=0.005, rsi=75.0),
            LevelSnapshot(day_high=101.0),
            latest,
            config
        )
        assert not result.active
        assert not result.checks["trend_filter_ok"]
        assert result.checks["signals_ok"]

    def test_breakout_trap_long(self):
        """A quiet flush below the range low that closes back inside is a trap."""
        config = load_config()
        latest = make_candle(0, 100.1, 100.4, 99.5, 100.3)
        result = detect_breakout_trap(
            "long",
            TrendDirection.RANGING,
            make_indicator(cvd_trend="up"),
            LevelSnapshot(range_low=100.0),
            latest,
            config
        )
        assert result.name == "breakoutTrapLong"
        assert result.active
        assert result.checks["key_level"] == 100.0
        assert result.checks["overshoot"]
        assert result.checks["re_entry"]
        assert not result.checks["trap_override"]

    def test_breakout_trap_rejects_loud_volume(self):
        """A high-volume flush is a real break, not a trap."""
        config = load_config()
        latest = make_candle(0, 100.1, 100.4, 99.5, 100.3, volume=20.0)
        result = detect_breakout_trap(
            "long",
            TrendDirection.RANGING,
            make_indicator(cvd_trend="up"),
            LevelSnapshot(range_low=100.0),
            latest,
            config
        )
        assert not result.active
        assert not result.checks["volume_controlled"]

    def test_breakout_trap_override_outside_range(self):
        """Outside a range the trap still fires when VWAP is flat."""
        config = load_config()
        latest = make_candle(0, 100.1, 100.4, 99.5, 100.3)
        result = detect_breakout_trap(
            "long",
            TrendDirection.TRENDING_DOWN,
            make_indicator(cvd_trend="up", vwap_deviation_pct=0.0),
            LevelSnapshot(range_low=100.0),
            latest,
            config
        )
        assert result.active
        assert not result.checks["range_context"]
        assert result.checks["trap_override"]

    def test_evaluate_setups_quiet_bar(self):
        """All eight detectors report, in order, and none fire on a quiet bar."""
        config = load_config()
        setups, diagnostics = evaluate_setups(
            TrendDirection.RANGING,
            VolatilityRegime.BALANCED,
            make_indicator(),
            LevelSnapshot(),
            make_candle(0, 100.0, 100.1, 99.9, 100.0),
            config
        )
        assert [d.name for d in diagnostics] == list(SETUP_NAMES)
        assert [d.side for d in diagnostics] == ["long", "short"] * 4
        assert setups == {name: False for name in SETUP_NAMES}

    def test_evaluate_setups_matches_diagnostics(self):
        """The setup map mirrors each detector's verdict."""
        config = load_config()
        setups, diagnostics = evaluate_setups(
            TrendDirection.RANGING,
            VolatilityRegime.BALANCED,
            make_indicator(cvd_divergence="bullish"),
            LevelSnapshot(recent_swing_low=100.0),
            make_candle(0, 100.5, 101.0, 98.0, 100.8),
            config
        )
        assert setups == {d.name: d.active for d in diagnostics}
        assert setups["liquiditySweepLong"]
        assert not setups["liquiditySweepShort"]
        sweep = diagnostics[SETUP_NAMES.index("liquiditySweepLong")]
        assert sweep.checks["reference_level"] == 100.0
        assert sweep.checks["wick_size"] == pytest.approx(2.0)


class TestEntrySelection:
    """Tests for entry decision selection."""

    def test_priority_order(self):
        """Earlier play types win regardless of listing order."""
        config = load_config()
        latest = make_candle(0, 100.5, 101.0, 98.0, 100.8)
        ctx = make_context(
            latest,
            indicator=make_indicator(cvd_divergence="bullish"),
            setups={"trendIgnitionLong": True, "liquiditySweepLong": True},
        )
        decision = select_entry_decision(ctx, config)
        assert decision.intent is IntentType.OPEN_LONG
        assert decision.reason == "liquidity_sweep_long"
        assert decision.confidence == pytest.approx(0.8)
        assert decision.stop == pytest.approx(100.8 - 1.2)
        assert decision.tp2 == pytest.approx(100.8 + 2.4)
        assert decision.risk_pct == pytest.approx(0.9)

    def test_throttle_scales_risk(self):
        """The equity throttle scales the sizing hint."""
        config = load_config()
        latest = make_candle(0, 100.5, 101.0, 98.0, 100.8)
        ctx = make_context(
            latest,
            indicator=make_indicator(cvd_divergence="bullish"),
            setups={"liquiditySweepLong": True},
        )
        decision = select_entry_decision(ctx, config, throttle_factor=0.5)
        assert decision.risk_pct == pytest.approx(0.45)

    def test_quality_filter_rejects(self):
        """Candidates under the minimum confidence are dropped."""
        config = load_config(quality_filters={"min_confidence": 0.95})
        latest = make_candle(0, 100.5, 101.0, 98.0, 100.8)
        ctx = make_context(latest, setups={"liquiditySweepLong": True})
        assert select_entry_decision(ctx, config) is None

    def test_no_active_setup(self):
        """No active setup means no decision."""
        config = load_config()
        ctx = make_context(make_candle(0, 100, 101, 99, 100))
        assert select_entry_decision(ctx, config) is None


class TestExits:
    """Tests for the exit state machine."""

    def test_max_duration_first(self):
        """Max duration wins over every other rule."""
        config = load_config()
        latest = make_candle(90 * MINUTE_MS, 95, 95, 94, 95)
        memory = PositionMemory("LONG", 0, 100.0, 99.0, 1.0, 100.0)
        assert evaluate_exit(make_context(latest), PositionSide.LONG, config, memory) == "max_duration_exit"

    def test_per_trade_drawdown(self):
        """An adverse move beyond the per-trade cap stops out."""
        config = load_config()
        latest = make_candle(MINUTE_MS, 98.9, 99.0, 98.8, 98.9)
        memory = PositionMemory("LONG", 0, 100.0, 98.8, 1.0, 100.0)
        assert evaluate_exit(make_context(latest), PositionSide.LONG, config, memory) == "perTradeDrawdown"

    def test_short_drawdown(self):
        """Short positions stop out on an up move."""
        config = load_config()
        latest = make_candle(MINUTE_MS, 101.1, 101.2, 101.0, 101.1)
        memory = PositionMemory("SHORT", 0, 100.0, 101.2, 1.0, 100.0)
        assert evaluate_exit(make_context(latest), PositionSide.SHORT, config, memory) == "perTradeDrawdown"

    def test_trailing_stop(self):
        """After the lock-in move a retrace of one ATR exits."""
        config = load_config()
        latest = make_candle(MINUTE_MS, 100.2, 100.2, 100.0, 100.0)
        memory = PositionMemory("LONG", 0, 99.0, 98.0, 1.0, 101.0)
        ctx = make_context(latest, trend=TrendDirection.TRENDING_UP)
        assert evaluate_exit(ctx, PositionSide.LONG, config, memory) == "trailing_stop_exit"

    def test_lost_vwap_support(self):
        """Longs exit below VWAP outside an uptrend."""
        config = load_config()
        latest = make_candle(MINUTE_MS, 99.9, 100.0, 99.8, 99.9)
        memory = PositionMemory("LONG", 0, 99.95, 99.0, 1.0, 99.95)
        ctx = make_context(latest, indicator=make_indicator(vwap=100.0))
        assert evaluate_exit(ctx, PositionSide.LONG, config, memory) == "lost_vwap_support"

    def test_hold(self):
        """Nothing fires on a quiet bar above VWAP."""
        config = load_config()
        latest = make_candle(MINUTE_MS, 100.1, 100.2, 100.0, 100.1)
        memory = PositionMemory("LONG", 0, 100.1, 99.0, 1.0, 100.1)
        ctx = make_context(latest, indicator=make_indicator(vwap=100.0))
        assert evaluate_exit(ctx, PositionSide.LONG, config, memory) is None

    def _stalled_bars(self, count=10):
        return [
            make_candle(i * MINUTE_MS, 100.1, 100.2, 100.0, 100.1) for i in range(1, count + 1)
        ]

    def test_lateral_stall(self):
        """A profitable position in a range under half an ATR is closed."""
        config = load_config()
        recent = self._stalled_bars()
        memory = PositionMemory("LONG", 0, 100.0, 99.0, 1.0, 100.1)
        ctx = make_context(recent[-1], recent=recent)
        assert evaluate_exit(ctx, PositionSide.LONG, config, memory) == "lateral_stall_exit"

    def test_lateral_stall_needs_full_window(self):
        """Fewer bars than the stall window never stall out."""
        config = load_config()
        recent = self._stalled_bars(9)
        memory = PositionMemory("LONG", 0, 100.0, 99.0, 1.0, 100.1)
        ctx = make_context(recent[-1], recent=recent)
        assert evaluate_exit(ctx, PositionSide.LONG, config, memory) is None

    def test_lateral_stall_before_vwap_loss(self):
        """When both fire on one bar the stall is reported, not the VWAP loss."""
        config = load_config()
        recent = self._stalled_bars()
        memory = PositionMemory("LONG", 0, 100.0, 99.0, 1.0, 100.1)
        ctx = make_context(recent[-1], indicator=make_indicator(vwap=101.0), recent=recent)
        assert evaluate_exit(ctx, PositionSide.LONG, config, memory) == "lateral_stall_exit"

        # Without memory only the structural rules run
        assert evaluate_exit(ctx, PositionSide.LONG, config, None) == "lost_vwap_support"

    def test_rsi_extreme_long(self):
        """Longs above VWAP exit when RSI is extreme."""
        config = load_config()
        latest = make_candle(MINUTE_MS, 100.1, 100.2, 100.0, 100.1)
        memory = PositionMemory("LONG", 0, 100.1, 99.0, 1.0, 100.1)
        ctx = make_context(latest, indicator=make_indicator(vwap=100.0, rsi=85.0))
        assert evaluate_exit(ctx, PositionSide.LONG, config, memory) == "rsi_extreme_exit"

    def test_rsi_extreme_short(self):
        """Shorts below VWAP exit when RSI is washed out."""
        config = load_config()
        latest = make_candle(MINUTE_MS, 100.0, 100.1, 99.9, 100.0)
        memory = PositionMemory("SHORT", 0, 100.0, 101.0, 1.0, 100.0)
        ctx = make_context(latest, indicator=make_indicator(vwap=101.0, rsi=15.0))
        assert evaluate_exit(ctx, PositionSide.SHORT, config, memory) == "rsi_extreme_exit"

    def test_lost_vwap_resistance_before_rsi(self):
        """A short above VWAP reports the VWAP loss even with RSI extreme."""
        config = load_config()
        latest = make_candle(MINUTE_MS, 100.0, 100.1, 99.9, 100.0)
        memory = PositionMemory("SHORT", 0, 100.0, 101.0, 1.0, 100.0)
        ctx = make_context(latest, indicator=make_indicator(vwap=99.5, rsi=15.0))
        assert evaluate_exit(ctx, PositionSide.SHORT, config, memory) == "lost_vwap_resistance"

    def _faded_context(self):
        recent = [
            make_candle(i * MINUTE_MS, 100.05, 100.15, 100.0, 100.0 + i * 0.02) for i in range(1, 6)
        ]
        return make_context(recent[-1], indicator=make_indicator(atr1m=1.0), recent=recent)

    def test_volatility_fade(self):
        """ATR contraction with tight closes exits when enabled."""
        config = load_config(enable_volatility_fade_exit=True)
        ctx = self._faded_context()
        memory = PositionMemory("LONG", 0, ctx.price, 99.0, 2.0, ctx.price)
        assert evaluate_exit(ctx, PositionSide.LONG, config, memory) == "volatility_fade_exit"

    def test_volatility_fade_disabled(self):
        """The profile leaves the fade exit off."""
        config = load_config()
        ctx = self._faded_context()
        memory = PositionMemory("LONG", 0, ctx.price, 99.0, 2.0, ctx.price)
        assert evaluate_exit(ctx, PositionSide.LONG, config, memory) is None

    def test_volatility_fade_needs_contraction(self):
        """ATR still near its entry value keeps the position."""
        config = load_config(enable_volatility_fade_exit=True)
        ctx = self._faded_context()
        memory = PositionMemory("LONG", 0, ctx.price, 99.0, 1.2, ctx.price)
        assert evaluate_exit(ctx, PositionSide.LONG, config, memory) is None


class TestFilters:
    """Tests for session and throttle helpers."""

    def test_sessions(self):
        """UTC hours map to asia, eu and us."""
        hour = 60 * MINUTE_MS
        assert session_for_timestamp(3 * hour) == "asia"
        assert session_for_timestamp(8 * hour) == "eu"
        assert session_for_timestamp(15 * hour) == "us"
        assert session_for_timestamp(22 * hour) == "asia"

    def test_equity_throttle(self):
        """Recent losses past the cap throttle risk."""
        throttle = EquityThrottle(enabled=True, lookback_trades=2, max_drawdown_pct=0.02, factor=0.5)
        assert equity_throttle_factor([0.05, -0.015, -0.01], throttle) == 0.5
        assert equity_throttle_factor([-0.015, -0.01, 0.05], throttle) == 1.0
        assert equity_throttle_factor([-0.5], EquityThrottle(enabled=False)) == 1.0


class TestUltraAggressiveStrategy:
    """Tests for the strategy's decide loop."""

    def test_insufficient_candles(self):
        """An empty cache yields no action with a zero timestamp."""
        config = load_config()
        store = CandleStore(500)
        strategy = UltraAggressiveStrategy(config, StoreBackedCache(store, config.all_timeframes()))
        intent = strategy.decide()
        assert intent.intent is IntentType.NO_ACTION
        assert intent.reason == "insufficient_candles"
        assert intent.timestamp == 0
        assert intent.symbol == "BTC/USDT"

    def _stop_out(self, config):
        store = build_store()
        strategy = UltraAggressiveStrategy(config, StoreBackedCache(store, config.all_timeframes()))

        # Runtime reports a long the strategy did not open
        intent = strategy.decide(PositionSide.LONG)
        assert intent.reason == "manage_position"
        memory = strategy.position_memory
        assert memory.side == "LONG"
        assert memory.entry_price == pytest.approx(100.2)

        store.ingest("1m", make_candle(80 * MINUTE_MS, 100.2, 100.2, 98.4, 98.5))
        intent = strategy.decide(PositionSide.LONG)
        assert intent.intent is IntentType.CLOSE_LONG
        assert intent.reason == "perTradeDrawdown"
        assert strategy.position_memory is None

        store.ingest("1m", make_candle(81 * MINUTE_MS, 98.5, 98.7, 98.4, 98.6))
        return strategy

    def test_cooldown_after_stopout(self):
        """A per-trade drawdown stop blocks entries for the cooldown bars."""
        strategy = self._stop_out(load_config())
        intent = strategy.decide(PositionSide.FLAT)
        assert intent.reason == "cooldownBlock"
        assert strategy.risk_state.cooldown_bars_remaining == 4
        assert strategy.risk_state.last_exit_reason == "perTradeDrawdown"

    def test_cooldown_not_consumed_on_same_bar(self):
        """Repeated calls on one bar do not consume cooldown."""
        strategy = self._stop_out(load_config())
        strategy.decide(PositionSide.FLAT)
        strategy.decide(PositionSide.FLAT)
        assert strategy.risk_state.cooldown_bars_remaining == 4

    def test_daily_drawdown_limit(self):
        """Session losses past the daily limit block entries."""
        strategy = self._stop_out(load_config(cooldown_after_stopout_bars=0, daily_drawdown_limit_pct=0.01))
        intent = strategy.decide(PositionSide.FLAT)
        assert intent.reason == "drawdownLimit"
        assert strategy.risk_state.session_pnl_pct < -0.01

    def test_reset(self):
        """Reset clears memory and risk state."""
        strategy = self._stop_out(load_config())
        strategy.reset()
        assert strategy.position_memory is None
        assert strategy.risk_state.cooldown_bars_remaining == 0
        assert strategy.risk_state.session_pnl_pct == 0.0

    def test_external_exit_clears_memory(self, monkeypatch):
        """FLAT from the runtime while memory is held records an external exit."""
        monkeypatch.setattr(strategy_module, "build_strategy_context", stub_context())
        config = load_config()
        store = build_store()
        strategy = UltraAggressiveStrategy(config, StoreBackedCache(store, config.all_timeframes()))

        assert strategy.decide(PositionSide.LONG).reason == "manage_position"
        assert strategy.position_memory.entry_price == pytest.approx(100.2)

        store.ingest("1m", make_candle(80 * MINUTE_MS, 100.2, 100.5, 100.1, 100.4))
        intent = strategy.decide(PositionSide.FLAT)
        assert intent.intent is IntentType.NO_ACTION
        assert intent.reason == "no_signal"
        assert strategy.position_memory is None

        state = strategy.risk_state
        assert state.last_exit_reason == "external_exit"
        assert state.last_realized_pnl_pct == pytest.approx(0.2 / 100.2, abs=1e-6)
        assert state.session_pnl_pct == pytest.approx(state.last_realized_pnl_pct)
        assert state.cooldown_bars_remaining == 0

    def _entry_strategy(self, monkeypatch, **overrides):
        monkeypatch.setattr(
            strategy_module,
            "build_strategy_context",
            stub_context(
                setups={"liquiditySweepLong": True},
                indicator=make_indicator(cvd_divergence="bullish"),
            ),
        )
        config = load_config(**overrides)
        return UltraAggressiveStrategy(config, StoreBackedCache(build_store(), config.all_timeframes()))

    def test_entry_opens_with_memory(self, monkeypatch):
        """An active setup opens a position and seeds memory from the entry bar."""
        strategy = self._entry_strategy(monkeypatch)
        intent = strategy.decide(PositionSide.FLAT)
        assert intent.intent is IntentType.OPEN_LONG
        assert intent.reason == "liquidity_sweep_long"
        assert intent.metadata["confidence"] == pytest.approx(0.8)

        memory = strategy.position_memory
        assert memory.side == "LONG"
        assert memory.entry_price == pytest.approx(100.2)
        assert memory.atr_on_entry == 1.0

    def test_session_filter_blocks_entry(self, monkeypatch):
        """A blocked session turns a valid setup into no signal."""
        # The last bar is at 01:19 UTC
        strategy = self._entry_strategy(
            monkeypatch, session_filters={"enabled": True, "blocked_sessions": ["asia"]}
        )
        intent = strategy.decide(PositionSide.FLAT)
        assert intent.intent is IntentType.NO_ACTION
        assert intent.reason == "no_signal"
        assert strategy.position_memory is None

    def test_long_session_filter_blocks_entry(self, monkeypatch):
        """Long session allow-lists gate long entries."""
        strategy = self._entry_strategy(
            monkeypatch, session_filters={"enabled": True, "allowed_long_sessions": ["us"]}
        )
        assert strategy.decide(PositionSide.FLAT).reason == "no_signal"

    def test_quality_filter_blocks_entry(self, monkeypatch):
        """Confidence under the profile minimum turns a valid setup into no signal."""
        strategy = self._entry_strategy(monkeypatch, quality_filters={"min_confidence": 0.95})
        intent = strategy.decide(PositionSide.FLAT)
        assert intent.intent is IntentType.NO_ACTION
        assert intent.reason == "no_signal"
        assert strategy.position_memory is None
