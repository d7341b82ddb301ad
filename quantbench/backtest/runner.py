"""
Backtest runner - replays historical candles through the live pipeline.

Per execution candle: ingest, advance higher timeframes, run intrabar
guards, ask the strategy, plan, execute, snapshot equity.
"""

import dataclasses
from pathlib import Path
from typing import Any, Optional, Union

from ..config.profiles import load_strategy_profile
from ..config.settings import RiskConfig
from ..core.errors import ConfigurationError, DataLoadError
from ..core.types import Candle, PositionSnapshot, TradeIntent
from ..data.candle_store import CandleStore, StoreBackedCache
from ..data.ccxt_provider import CCXTDataProvider, TimeframeRequest
from ..execution.paper_engine import PaperAccount, PaperExecutionEngine
from ..observability.logger import get_logger
from ..risk.risk_manager import RiskManager, get_pre_execution_skip_reason
from ..strategy.registry import StrategyDefinition, get_strategy_definition

from .config import BacktestConfig
from .guards import apply_trailing_stop, check_protective_exit
from .results import BacktestResult, BacktestTrade, EquitySnapshot

logger = get_logger(__name__)


class BacktestRunner:
    """
    Orchestrates a single deterministic backtest.

    Coordinates:
    - Strategy profile resolution through the registry
    - Historical data loading and warm-up priming
    - The per-tick guard / strategy / risk / execution loop
    """

    def __init__(
        self,
        config: BacktestConfig,
        provider: Optional[CCXTDataProvider] = None,
        risk_config: Optional[RiskConfig] = None,
        strategy_config: Any = None,
        config_dir: Optional[Union[str, Path]] = None
    ):
        """
        Initialize the backtest runner.

        Args:
            config: Backtest configuration.
            provider: Historical data source. Created on demand when no
                timeframe data is passed to run().
            risk_config: Risk planner and guard settings.
            strategy_config: Parsed strategy config. Loaded from the profile if None.
            config_dir: Directory holding strategy profiles.
        """
        self.config = config
        self.provider = provider
        self.risk_config = risk_config or RiskConfig()
        self.config_dir = config_dir
        self._strategy_config = strategy_config

    def run(self, timeframe_data: Optional[dict[str, list[Candle]]] = None) -> BacktestResult:
        """
        Run the backtest.

        Args:
            timeframe_data: Pre-loaded candles per timeframe. Fetched through
                the provider when None.

        Returns:
            BacktestResult with the trade ledger and one equity snapshot per tick.

        Raises:
            ConfigurationError: Strategy cannot be resolved.
            DataLoadError: No execution candles inside the window.
        """
        definition = get_strategy_definition(self.config.strategy_id)
        strategy_config = self._resolve_strategy_config(definition)

        symbol = self.config.symbol or strategy_config.symbol
        if symbol != strategy_config.symbol:
            strategy_config = dataclasses.replace(strategy_config, symbol=symbol)

        tracked = definition.tracked_timeframes(strategy_config)
        execution_tf = definition.execution_timeframe(strategy_config)
        warmup = definition.warmup(strategy_config)
        limit = definition.history_limit(strategy_config, self.config.max_candles)

        logger.info(
            "backtest_config",
            strategy=definition.id.value,
            symbol=symbol,
            start=self.config.start_timestamp,
            end=self.config.end_timestamp,
            timeframes=tracked,
            execution_timeframe=execution_tf,
            warmup=warmup,
            cache_limit=limit,
            initial_balance=self.config.initial_balance
        )

        if timeframe_data is None:
            timeframe_data = self._load_series(symbol, tracked, warmup)

        series = {tf: sorted(timeframe_data.get(tf, []), key=lambda c: c.timestamp) for tf in tracked}
        for tf, candles in series.items():
            logger.info(
                "backtest_timeframe_loaded",
                timeframe=tf,
                candles=len(candles),
                warmup_candles=warmup.get(tf, 0),
                first=candles[0].timestamp if candles else None,
                last=candles[-1].timestamp if candles else None
            )

        start, end = self.config.start_timestamp, self.config.end_timestamp
        clock = [c for c in series[execution_tf] if start <= c.timestamp <= end]
        if not clock:
            raise DataLoadError(f"No candles loaded for execution timeframe {execution_tf}")

        store = CandleStore(limit)
        for tf, candles in series.items():
            store.ingest_many(tf, [c for c in candles if c.timestamp < start])

        strategy = definition.factory(strategy_config, StoreBackedCache(store, tracked))
        risk = RiskManager(self.risk_config)
        engine = PaperExecutionEngine(
            PaperAccount(self.config.initial_balance),
            fee_percent=self.config.fee_percent
        )
        result = BacktestResult(config=self.config)

        # Cursor into each higher timeframe's candles inside the window
        pending = {
            tf: [c for c in candles if c.timestamp >= start]
            for tf, candles in series.items() if tf != execution_tf
        }
        cursors = {tf: 0 for tf in pending}

        for candle in clock:
            store.ingest(execution_tf, candle)
            for tf, candles in pending.items():
                index = cursors[tf]
                while index < len(candles) and candles[index].timestamp <= candle.timestamp:
                    store.ingest(tf, candles[index])
                    index += 1
                cursors[tf] = index

            self._process_tick(candle, strategy, risk, engine, result)

            position = engine.get_position(symbol)
            account = engine.snapshot_account(position.unrealized_pnl(candle.close))
            result.equity_snapshots.append(EquitySnapshot(
                timestamp=candle.timestamp,
                balance=account.balance,
                equity=account.equity,
                unrealized_pnl=account.unrealized_pnl,
                max_equity=account.max_equity,
                max_drawdown=account.max_drawdown,
            ))

        summary = result.summary()
        logger.info(
            "backtest_summary",
            trades=summary["closed_trades"],
            executions=summary["executions"],
            final_equity=summary["final_equity"],
            realized_pnl=summary["total_realized_pnl"],
            win_rate=summary["win_rate"],
            max_drawdown=summary["max_drawdown"],
            ticks=summary["ticks"]
        )
        return result

    def _resolve_strategy_config(self, definition: StrategyDefinition) -> Any:
        requested = definition.id.value
        strategy_config = self._strategy_config
        if strategy_config is None:
            strategy_config = load_strategy_profile(requested, self.config.profile, self.config_dir)

        if strategy_config.id == requested:
            return strategy_config

        logger.warning(
            "strategy_config_mismatch",
            requested=requested,
            loaded=strategy_config.id,
            profile=self.config.profile
        )
        reloaded = load_strategy_profile(requested, None, self.config_dir)
        if reloaded.id != requested:
            raise ConfigurationError(
                f"Strategy config id {reloaded.id} does not match requested strategy "
                f"{requested} (profile {self.config.profile or definition.default_profile})"
            )
        return reloaded

    def _load_series(
        self,
        symbol: str,
        timeframes: list[str],
        warmup: dict[str, int]
    ) -> dict[str, list[Candle]]:
        if self.provider is None:
            self.provider = CCXTDataProvider()
        requests = [TimeframeRequest(tf, warmup.get(tf, 0)) for tf in timeframes]
        return self.provider.load_historical_series(
            symbol, self.config.start_timestamp, self.config.end_timestamp, requests
        )

    def _process_tick(
        self,
        candle: Candle,
        strategy,
        risk: RiskManager,
        engine: PaperExecutionEngine,
        result: BacktestResult
    ) -> None:
        symbol = strategy.symbol
        position = engine.get_position(symbol)

        if position.is_open:
            forced = check_protective_exit(position, candle)
            rejected_reason = "forced_exit_plan_rejected"
            if forced is None:
                updates, forced = apply_trailing_stop(
                    position,
                    candle,
                    self.risk_config.trailing_activation_pct,
                    self.risk_config.trailing_trail_pct
                )
                if updates:
                    position = engine.update_position(symbol, **updates)
                rejected_reason = "trailing_exit_plan_rejected"

            if forced is not None:
                logger.risk_event(
                    forced.reason,
                    symbol=symbol,
                    timestamp=candle.timestamp,
                    level=forced.fill_price
                )
                self._execute_intent(
                    forced.intent, forced.fill_price, position, engine, risk, result, rejected_reason
                )
                return

        intent = strategy.decide(position.side)
        if not intent.is_actionable:
            return

        logger.intent(symbol, intent.intent.value, intent.reason, timestamp=intent.timestamp)
        self._execute_intent(
            intent, candle.close, position, engine, risk, result, "risk_plan_rejected"
        )

    def _execute_intent(
        self,
        intent: TradeIntent,
        price: float,
        position: PositionSnapshot,
        engine: PaperExecutionEngine,
        risk: RiskManager,
        result: BacktestResult,
        rejected_reason: str
    ) -> None:
        equity = engine.account.balance + position.unrealized_pnl(price)
        plan = risk.plan(intent, price, equity, position)
        if plan is None:
            self._log_skip(intent, position, rejected_reason)
            return

        skip_reason = get_pre_execution_skip_reason(plan, position)
        if skip_reason:
            self._log_skip(intent, position, skip_reason)
            return

        try:
            execution = engine.execute(plan, price)
        except Exception as e:
            logger.exception(
                "execution_error",
                symbol=plan.symbol,
                intent=plan.intent.value,
                quantity=plan.quantity,
                price=price,
                reason=plan.reason,
                error=str(e)
            )
            return

        if not execution.is_fill:
            self._log_skip(intent, position, execution.reason)
            return

        trade = BacktestTrade(
            symbol=plan.symbol,
            action=plan.action,
            side=plan.position_side.value,
            quantity=execution.quantity,
            entry_price=execution.entry_price,
            timestamp=plan.timestamp,
            reason=plan.reason,
        )
        if plan.intent.is_close:
            trade.exit_price = execution.price
            trade.realized_pnl = execution.realized_pnl
        result.trades.append(trade)

        logger.execution(
            plan.action,
            plan.symbol,
            plan.side,
            execution.price,
            execution.quantity,
            position_side=plan.position_side.value,
            reason=plan.reason,
            realized_pnl=execution.realized_pnl,
            timestamp=plan.timestamp
        )

    @staticmethod
    def _log_skip(intent: TradeIntent, position: PositionSnapshot, reason: str) -> None:
        logger.info(
            "execution_skipped",
            symbol=intent.symbol,
            intent=intent.intent.value,
            position_side=position.side.value,
            reason=reason,
            timestamp=intent.timestamp
        )


def run_backtest(
    config: BacktestConfig,
    provider: Optional[CCXTDataProvider] = None,
    risk_config: Optional[RiskConfig] = None,
    timeframe_data: Optional[dict[str, list[Candle]]] = None,
    strategy_config: Any = None,
    config_dir: Optional[Union[str, Path]] = None
) -> BacktestResult:
    """
    Convenience function to run a backtest.

    Args:
        config: Backtest configuration.
        provider: Historical data source.
        risk_config: Risk planner and guard settings.
        timeframe_data: Pre-loaded candles per timeframe.
        strategy_config: Parsed strategy config.
        config_dir: Directory holding strategy profiles.

    Returns:
        BacktestResult.
    """
    runner = BacktestRunner(
        config,
        provider=provider,
        risk_config=risk_config,
        strategy_config=strategy_config,
        config_dir=config_dir
    )
    return runner.run(timeframe_data)
