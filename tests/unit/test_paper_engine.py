"""
Unit tests for the paper execution engine and account.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from quantbench.core.types import IntentType, PositionSide
from quantbench.execution.paper_engine import (
    STATUS_CLOSED,
    STATUS_FILLED,
    STATUS_SKIPPED,
    PaperAccount,
    PaperExecutionEngine,
)
from quantbench.risk.risk_manager import TradePlan


def make_plan(intent_type, quantity=1.0, timestamp=60_000, stop=0.0, take_profit=0.0):
    return TradePlan(
        symbol="BTC/USDT",
        intent=intent_type,
        reason="test",
        timestamp=timestamp,
        quantity=quantity,
        entry_price=100.0,
        stop_loss_price=stop,
        take_profit_price=take_profit,
    )


class TestPaperExecutionEngine:
    """Tests for paper fills."""

    def test_open_and_close_long(self):
        """A long round trip realizes the price move times size."""
        engine = PaperExecutionEngine(PaperAccount(1000.0))
        opened = engine.execute(make_plan(IntentType.OPEN_LONG, 2.0, stop=95.0, take_profit=110.0), 100.0)
        assert opened.status == STATUS_FILLED
        assert opened.is_fill

        position = engine.get_position("BTC/USDT")
        assert position.side is PositionSide.LONG
        assert position.size == 2.0
        assert position.stop_loss_price == 95.0
        assert position.peak_price == 100.0

        closed = engine.execute(make_plan(IntentType.CLOSE_LONG, 2.0), 105.0)
        assert closed.status == STATUS_CLOSED
        assert closed.realized_pnl == pytest.approx(10.0)
        assert closed.entry_price == 100.0
        assert engine.account.balance == pytest.approx(1010.0)

        flat = engine.get_position("BTC/USDT")
        assert flat.side is PositionSide.FLAT
        assert not flat.is_open
        assert flat.realized_pnl == pytest.approx(10.0)

    def test_short_pnl(self):
        """Shorts profit when price falls."""
        engine = PaperExecutionEngine()
        engine.execute(make_plan(IntentType.OPEN_SHORT, 1.0), 100.0)
        closed = engine.execute(make_plan(IntentType.CLOSE_SHORT, 1.0), 90.0)
        assert closed.realized_pnl == pytest.approx(10.0)

    def test_fees_on_both_legs(self):
        """Fees are charged on entry and exit notional at close."""
        engine = PaperExecutionEngine(fee_percent=0.1)
        engine.execute(make_plan(IntentType.OPEN_LONG, 1.0), 100.0)
        closed = engine.execute(make_plan(IntentType.CLOSE_LONG, 1.0), 110.0)
        assert closed.fee == pytest.approx(0.1 + 0.11)
        assert closed.realized_pnl == pytest.approx(10.0 - 0.21)

    def test_open_twice_skipped(self):
        """A second open on the same symbol is skipped."""
        engine = PaperExecutionEngine()
        engine.execute(make_plan(IntentType.OPEN_LONG), 100.0)
        result = engine.execute(make_plan(IntentType.OPEN_SHORT), 100.0)
        assert result.status == STATUS_SKIPPED
        assert result.reason == "position_already_open"
        assert not result.is_fill

    def test_close_mismatch_skipped(self):
        """Closing the wrong side is skipped."""
        engine = PaperExecutionEngine()
        engine.execute(make_plan(IntentType.OPEN_LONG), 100.0)
        result = engine.execute(make_plan(IntentType.CLOSE_SHORT), 100.0)
        assert result.status == STATUS_SKIPPED
        assert result.reason == "position_side_mismatch"

    def test_realized_pnl_accumulates(self):
        """Per-symbol realized PnL carries across trades."""
        engine = PaperExecutionEngine()
        engine.execute(make_plan(IntentType.OPEN_LONG), 100.0)
        engine.execute(make_plan(IntentType.CLOSE_LONG), 103.0)
        engine.execute(make_plan(IntentType.OPEN_LONG), 100.0)
        assert engine.get_position("BTC/USDT").realized_pnl == pytest.approx(3.0)
        engine.execute(make_plan(IntentType.CLOSE_LONG), 99.0)
        assert engine.get_position("BTC/USDT").realized_pnl == pytest.approx(2.0)

    def test_update_position(self):
        """Open positions can be patched, flat ones cannot."""
        engine = PaperExecutionEngine()
        with pytest.raises(KeyError):
            engine.update_position("BTC/USDT", trailing_stop_price=99.0)

        engine.execute(make_plan(IntentType.OPEN_LONG), 100.0)
        updated = engine.update_position("BTC/USDT", trailing_stop_price=99.0, is_trailing_active=True)
        assert updated.trailing_stop_price == 99.0
        assert engine.get_position("BTC/USDT").is_trailing_active

    def test_close_settles_account(self):
        """A close updates balance and trade counts on the account."""
        engine = PaperExecutionEngine(PaperAccount(1000.0))
        engine.execute(make_plan(IntentType.OPEN_SHORT, 2.0), 100.0)
        engine.execute(make_plan(IntentType.CLOSE_SHORT, 2.0), 101.0)
        snap = engine.snapshot_account()
        assert snap.balance == pytest.approx(998.0)
        assert snap.total_realized_pnl == pytest.approx(-2.0)
        assert (snap.wins, snap.losses, snap.total_trades) == (0, 1, 1)

    def test_snapshot_account_with_open_position(self):
        """Equity is balance plus the open position's unrealized PnL at one price."""
        engine = PaperExecutionEngine(PaperAccount(1000.0))
        engine.execute(make_plan(IntentType.OPEN_LONG, 2.0), 100.0)
        position = engine.get_position("BTC/USDT")
        snap = engine.snapshot_account(position.unrealized_pnl(97.0))
        assert snap.balance == 1000.0
        assert snap.unrealized_pnl == pytest.approx(-6.0)
        assert snap.equity == pytest.approx(994.0)
        assert snap.max_drawdown == pytest.approx(6.0)

    def test_get_position_is_copy(self):
        """Mutating a returned snapshot does not touch the engine."""
        engine = PaperExecutionEngine()
        engine.execute(make_plan(IntentType.OPEN_LONG), 100.0)
        engine.get_position("BTC/USDT").size = 0.0
        assert engine.get_position("BTC/USDT").size == 1.0


class TestPaperAccount:
    """Tests for account statistics."""

    def test_snapshot_tracks_drawdown(self):
        """Equity includes unrealized PnL and drawdown follows the peak."""
        account = PaperAccount(1000.0)
        account.register_closed_trade(50.0)
        snap = account.snapshot(unrealized_pnl=-20.0)
        assert snap.balance == 1050.0
        assert snap.equity == 1030.0
        assert snap.max_equity == 1030.0

        account.snapshot(unrealized_pnl=100.0)
        snap = account.snapshot(unrealized_pnl=-50.0)
        assert snap.max_equity == 1150.0
        assert snap.max_drawdown == pytest.approx(150.0)

    def test_win_loss_counts(self):
        account = PaperAccount()
        account.register_closed_trade(1.0)
        account.register_closed_trade(-1.0)
        account.register_closed_trade(0.0)
        snap = account.snapshot()
        assert (snap.wins, snap.losses, snap.breakeven, snap.total_trades) == (1, 1, 1, 3)
