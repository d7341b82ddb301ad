#!/usr/bin/env python3
"""
Run a strategy backtest on exchange history.

Usage:
    python run_backtest.py
    python run_backtest.py --strategy debug_4c_pipeline --days 1
    python run_backtest.py --start 2024-03-01 --end 2024-03-08
    python run_backtest.py --profile ultra-aggressive-btc-usdt --capital 5000 --json
"""

import argparse
import json
import sys
from datetime import datetime, timedelta, timezone

from dotenv import load_dotenv

load_dotenv()

from quantbench.backtest import BacktestConfig, run_backtest
from quantbench.config.settings import load_settings
from quantbench.core.errors import QuantbenchError
from quantbench.data.ccxt_provider import CCXTDataProvider
from quantbench.observability.logger import configure_logging
from quantbench.strategy.registry import list_strategy_ids


def _parse_date(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD[THH:MM]")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def main():
    parser = argparse.ArgumentParser(
        description="Backtest a registered strategy on historical candles"
    )

    # Strategy selection
    parser.add_argument(
        "--strategy",
        choices=list_strategy_ids(),
        default=None,
        help="Strategy id (default: from config / STRATEGY_ID)"
    )

    parser.add_argument(
        "--profile",
        type=str,
        default=None,
        help="Strategy profile name (default: the strategy's default profile)"
    )

    parser.add_argument(
        "--symbol",
        type=str,
        default=None,
        help="Market symbol override, e.g. BTC/USDT"
    )

    # Time range
    parser.add_argument(
        "--start",
        type=_parse_date,
        default=None,
        help="Start date, UTC (default: --days before --end)"
    )

    parser.add_argument(
        "--end",
        type=_parse_date,
        default=None,
        help="End date, UTC (default: now)"
    )

    parser.add_argument(
        "--days",
        type=int,
        default=3,
        help="Days of history when --start is omitted (default: 3)"
    )

    # Capital
    parser.add_argument(
        "--capital",
        type=float,
        default=None,
        help="Initial balance (default: from config / INITIAL_BALANCE)"
    )

    parser.add_argument(
        "--fee",
        type=float,
        default=None,
        help="Fee percentage per fill (default: from config)"
    )

    # Output
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON"
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Debug logging"
    )

    args = parser.parse_args()

    settings = load_settings(args.config)
    configure_logging(
        level="DEBUG" if args.verbose else settings.logging.level,
        format_type=settings.logging.format,
        log_file=settings.logging.file
    )

    end = args.end or datetime.now(timezone.utc)
    start = args.start or end - timedelta(days=args.days)

    try:
        config = BacktestConfig(
            start_timestamp=BacktestConfig.to_timestamp(start),
            end_timestamp=BacktestConfig.to_timestamp(end),
            strategy_id=args.strategy or settings.strategy.id,
            profile=args.profile or settings.strategy.profile,
            symbol=args.symbol or settings.backtest.symbol,
            initial_balance=args.capital if args.capital is not None else settings.account.starting_balance,
            fee_percent=args.fee if args.fee is not None else settings.account.fee_percent,
            max_candles=settings.backtest.cache_limit,
        )
    except ValueError as e:
        print(f"Invalid backtest configuration: {e}")
        sys.exit(2)

    provider = CCXTDataProvider(
        exchange_id=settings.data.exchange_id,
        market_type=settings.data.market_type
    )

    print("=" * 60)
    print("QUANTBENCH BACKTEST")
    print("=" * 60)
    print(f"Strategy: {config.strategy_id} ({config.profile or 'default profile'})")
    print(f"Period: {start.isoformat()} -> {end.isoformat()}")
    print(f"Exchange: {settings.data.exchange_id}")
    print(f"Initial balance: {config.initial_balance:.2f}")
    print()

    try:
        result = run_backtest(
            config,
            provider=provider,
            risk_config=settings.risk,
            config_dir=settings.strategy.config_dir
        )
    except QuantbenchError as e:
        print(f"Error running backtest: {e}")
        sys.exit(1)

    summary = result.summary()
    if args.json:
        print(json.dumps(summary, indent=2))
        return

    print("-" * 60)
    print(f"Executions:      {summary['executions']}")
    print(f"Closed trades:   {summary['closed_trades']}")
    print(f"Win rate:        {summary['win_rate']:.2f}%")
    print(f"Realized P&L:    {summary['total_realized_pnl']:.2f}")
    print(f"Final equity:    {summary['final_equity']:.2f}")
    print(f"Max drawdown:    {summary['max_drawdown']:.2f}")
    print("-" * 60)


if __name__ == "__main__":
    main()
