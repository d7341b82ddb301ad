"""
Unit tests for the backtest config, intrabar guards and runner.
"""

import dataclasses
from datetime import datetime, timezone

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from quantbench.backtest import BacktestConfig, BacktestRunner, run_backtest
from quantbench.backtest.guards import apply_trailing_stop, check_protective_exit
from quantbench.config.profiles import load_strategy_profile
from quantbench.config.settings import RiskConfig
from quantbench.core.errors import DataLoadError
from quantbench.core.timeframes import MINUTE_MS
from quantbench.core.types import Candle, IntentType, PositionSide, PositionSnapshot
from quantbench.strategy.debug_sequencer import DebugSequencerConfig

PROFILE_DIR = os.path.join(os.path.dirname(__file__), '..', '..', 'config', 'strategies')


def make_candle(index, close, spread=0.05):
    return Candle(
        symbol="BTC/USDT",
        timeframe="1m",
        timestamp=index * MINUTE_MS,
        open=close,
        high=close + spread,
        low=close - spread,
        close=close,
        volume=1.0,
    )


def rising_series(count=10):
    return [make_candle(i, 100.0 + i * 0.1) for i in range(count)]


def debug_config(**overrides):
    values = dict(start_timestamp=0, end_timestamp=9 * MINUTE_MS, strategy_id="debug_4c_pipeline")
    values.update(overrides)
    return BacktestConfig(**values)


class FakeProvider:
    """Serves fixed candles and records requests."""

    def __init__(self, candles):
        self.candles = candles
        self.requests = None

    def load_historical_series(self, symbol, start_timestamp, end_timestamp, requests):
        self.requests = requests
        return {"1m": list(self.candles)}


class TestBacktestConfig:
    """Tests for backtest configuration."""

    def test_window_order(self):
        """Start must precede end."""
        with pytest.raises(ValueError, match="startTimestamp must be before endTimestamp"):
            BacktestConfig(start_timestamp=100, end_timestamp=100)

    def test_invalid_balance(self):
        with pytest.raises(ValueError, match="initial_balance"):
            BacktestConfig(start_timestamp=0, end_timestamp=1, initial_balance=0)

    def test_dict_roundtrip_and_timestamps(self):
        """Serialization keeps every field; naive datetimes are UTC."""
        config = BacktestConfig(
            start_timestamp=BacktestConfig.to_timestamp(datetime(2024, 1, 1)),
            end_timestamp=BacktestConfig.to_timestamp(datetime(2024, 1, 2, tzinfo=timezone.utc)),
            profile="custom",
            max_candles=300,
        )
        assert config.start_timestamp == 1_704_067_200_000
        assert config.period_days == pytest.approx(1.0)
        assert BacktestConfig.from_dict(config.to_dict()) == config


class TestProtectiveExit:
    """Tests for stop loss and take profit guards."""

    def test_stop_wins_over_target(self):
        """A candle touching both levels exits at the stop."""
        position = PositionSnapshot(
            "BTC/USDT", PositionSide.LONG, size=1.0, avg_entry_price=100.0,
            entry_price=100.0, stop_loss_price=99.0, take_profit_price=102.0
        )
        forced = check_protective_exit(position, Candle("BTC/USDT", "1m", 0, 100, 102.5, 98.5, 100, 1))
        assert forced.reason == "stop_loss_hit"
        assert forced.fill_price == 99.0
        assert forced.intent.intent is IntentType.CLOSE_LONG

    def test_short_take_profit(self):
        """Short targets fill below entry with a prefixed reason."""
        position = PositionSnapshot(
            "BTC/USDT", PositionSide.SHORT, size=1.0, avg_entry_price=100.0,
            entry_price=100.0, stop_loss_price=101.0, take_profit_price=98.0
        )
        forced = check_protective_exit(position, Candle("BTC/USDT", "1m", 0, 99, 100, 97.5, 98, 1))
        assert forced.reason == "short_take_profit_hit"
        assert forced.fill_price == 98.0
        assert forced.intent.intent is IntentType.CLOSE_SHORT

    def test_unset_levels(self):
        """Zero levels never fire."""
        position = PositionSnapshot("BTC/USDT", PositionSide.SHORT, size=1.0, avg_entry_price=100.0)
        assert check_protective_exit(position, Candle("BTC/USDT", "1m", 0, 100, 150, 50, 100, 1)) is None


class TestTrailingStop:
    """Tests for the trailing stop guard."""

    def make_position(self):
        return PositionSnapshot(
            "BTC/USDT", PositionSide.LONG, size=1.0, avg_entry_price=100.0,
            entry_price=100.0, peak_price=100.0, trough_price=100.0
        )

    def test_arms_then_hits(self):
        """The trail arms on the activation close and exits at the ratcheted stop."""
        position = self.make_position()
        updates, forced = apply_trailing_stop(
            position, Candle("BTC/USDT", "1m", 0, 101, 102, 101, 101.5, 1), 0.01, 0.02
        )
        assert forced is None
        assert updates["is_trailing_active"]
        assert updates["peak_price"] == 102
        assert updates["trailing_stop_price"] == pytest.approx(99.96)

        position = dataclasses.replace(position, **updates)
        updates, forced = apply_trailing_stop(
            position, Candle("BTC/USDT", "1m", MINUTE_MS, 100, 100.5, 99.5, 100, 1), 0.01, 0.02
        )
        assert updates == {}
        assert forced.reason == "trailing_stop_hit"
        assert forced.fill_price == pytest.approx(99.96)

    def test_not_armed(self):
        """Below activation nothing changes."""
        updates, forced = apply_trailing_stop(
            self.make_position(), Candle("BTC/USDT", "1m", 0, 100, 100.8, 90, 100.5, 1), 0.01, 0.02
        )
        assert updates == {}
        assert forced is None

    def test_disabled(self):
        """A zero trail disables the guard."""
        updates, forced = apply_trailing_stop(
            self.make_position(), Candle("BTC/USDT", "1m", 0, 100, 110, 90, 105, 1), 0.01, 0.0
        )
        assert updates == {}
        assert forced is None


class TestBacktestRunner:
    """Tests for the replay loop."""

    def test_debug_pipeline(self):
        """The debug sequence produces two round trips and one snapshot per tick."""
        result = run_backtest(
            debug_config(),
            timeframe_data={"1m": rising_series()},
            strategy_config=DebugSequencerConfig(),
        )
        assert [(t.action, t.side) for t in result.trades] == [
            ("OPEN", "LONG"), ("CLOSE", "LONG"), ("OPEN", "SHORT"), ("CLOSE", "SHORT")
        ]
        assert result.trades[1].realized_pnl > 0
        assert result.trades[3].realized_pnl < 0
        assert len(result.equity_snapshots) == 10
        assert result.summary()["closed_trades"] == 2
        assert result.win_rate == pytest.approx(50.0)
        assert result.final_equity == pytest.approx(
            10000.0 + result.total_realized_pnl
        )

    def test_stop_loss_preempts_strategy(self):
        """A stop touched intrabar closes at the level and skips the strategy."""
        candles = rising_series()
        candles[1] = make_candle(1, 99.5, spread=0.6)
        result = run_backtest(
            debug_config(),
            timeframe_data={"1m": candles},
            risk_config=RiskConfig(sl_pct=1.0, tp_pct=2.0),
            strategy_config=DebugSequencerConfig(),
        )
        close = result.trades[1]
        assert close.reason == "stop_loss_hit"
        assert close.exit_price == pytest.approx(99.0)
        assert close.realized_pnl < 0

        # The strategy's own CLOSE_LONG on the next bar finds nothing to close
        assert result.trades[2].action == "OPEN"
        assert result.trades[2].side == "SHORT"

    def test_window_filters_clock(self):
        """Candles before the start only prime the store."""
        result = run_backtest(
            debug_config(start_timestamp=5 * MINUTE_MS),
            timeframe_data={"1m": rising_series()},
            strategy_config=DebugSequencerConfig(),
        )
        assert len(result.equity_snapshots) == 5
        assert result.trades[0].timestamp == 5 * MINUTE_MS

    def test_no_execution_candles(self):
        """An empty window fails to load."""
        with pytest.raises(DataLoadError, match="No candles loaded for execution timeframe 1m"):
            run_backtest(
                debug_config(start_timestamp=100 * MINUTE_MS, end_timestamp=200 * MINUTE_MS),
                timeframe_data={"1m": rising_series()},
                strategy_config=DebugSequencerConfig(),
            )

    def test_config_mismatch_reloads_default(self):
        """A config for another strategy is replaced by the requested default profile."""
        wrong = load_strategy_profile("ultra_aggressive_btc_usdt", config_dir=PROFILE_DIR)
        result = run_backtest(
            debug_config(),
            timeframe_data={"1m": rising_series()},
            strategy_config=wrong,
            config_dir=PROFILE_DIR,
        )
        assert len(result.trades) == 4

    def test_provider_and_symbol_override(self):
        """Data is pulled from the provider and the symbol override flows through."""
        provider = FakeProvider([
            dataclasses.replace(c, symbol="ETH/USDT") for c in rising_series()
        ])
        runner = BacktestRunner(
            debug_config(symbol="ETH/USDT"),
            provider=provider,
            strategy_config=DebugSequencerConfig(),
        )
        result = runner.run()
        assert [r.timeframe for r in provider.requests] == ["1m"]
        assert result.trades[0].symbol == "ETH/USDT"
