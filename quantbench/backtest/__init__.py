"""
Backtesting framework for quantbench strategies.

Replays historical candles through the same strategy, risk planner and
paper execution engine used for live paper trading.

Components:
- BacktestConfig: Window, strategy selection and account settings
- BacktestRunner: Loads data, primes warm-up history and drives the tick loop
- guards: Intrabar stop loss / take profit and trailing stop exits
- BacktestResult: Trade ledger and per-tick equity snapshots

Usage:
    from quantbench.backtest import BacktestConfig, run_backtest

    config = BacktestConfig(
        start_timestamp=1704067200000,
        end_timestamp=1704153600000,
        strategy_id="ultra_aggressive_btc_usdt",
        initial_balance=10000.0
    )
    result = run_backtest(config)
    print(result.summary())
"""

from .config import BacktestConfig
from .results import BacktestResult, BacktestTrade, EquitySnapshot
from .runner import BacktestRunner, run_backtest

__all__ = [
    "BacktestConfig",
    "BacktestResult",
    "BacktestTrade",
    "EquitySnapshot",
    "BacktestRunner",
    "run_backtest",
]
