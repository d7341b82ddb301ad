"""
UltraAggressive BTC/USDT intraday strategy.

Trades four play types (liquidity sweeps, breakout traps, trend ignition
breakouts and VWAP mean reversion) off a 1m/5m/15m stack, with strategy-side
position memory driving the exit state machine.
"""

import dataclasses
from datetime import datetime, timezone
from typing import Optional

from ...core.types import Candle, IntentType, PositionSide, TradeIntent
from ...observability.logger import get_logger
from ..base_strategy import BaseStrategy, CandleCache
from .config import UltraAggressiveConfig
from .context import build_strategy_context
from .entry import SetupDecision, evaluate_risk_blocks, select_entry_decision
from .exits import build_close_intent, evaluate_exit
from .filters import equity_throttle_factor
from .models import PositionMemory, RiskState, StrategyContext

logger = get_logger(__name__)

MIN_HIGHER_TIMEFRAME_CANDLES = 10
STOPOUT_REASON = "perTradeDrawdown"


class UltraAggressiveStrategy(BaseStrategy):
    """
    Multi-setup intraday strategy.

    State kept between calls:
    - position memory (entry, stop, ATR on entry, best favorable price)
    - cooldown bars after a per-trade drawdown stop-out
    - realized PnL for the current UTC session and the recent exits
    """

    def __init__(self, config: UltraAggressiveConfig, cache: CandleCache):
        super().__init__(config.name, config.symbol, cache)
        self.config = config

        self._memory: Optional[PositionMemory] = None
        self._cooldown_bars_remaining = 0
        self._last_exit_reason: Optional[str] = None
        self._last_realized_pnl_pct: Optional[float] = None
        self._session_date: Optional[str] = None
        self._session_pnl_pct = 0.0
        self._last_context_timestamp: Optional[int] = None
        self._realized_pnl_history: list[float] = []

        logger.info(
            "strategy_initialized",
            strategy=config.id,
            symbol=config.symbol,
            execution=config.timeframes.execution,
            confirming=config.timeframes.confirming,
            context=config.timeframes.context,
            play_type_priority=config.play_type_priority
        )

    @property
    def position_memory(self) -> Optional[PositionMemory]:
        """Copy of the current position memory, None when flat."""
        return dataclasses.replace(self._memory) if self._memory else None

    @property
    def risk_state(self) -> RiskState:
        return RiskState(
            last_exit_reason=self._last_exit_reason,
            last_realized_pnl_pct=self._last_realized_pnl_pct,
            cooldown_bars_remaining=self._cooldown_bars_remaining,
            session_pnl_pct=self._session_pnl_pct,
        )

    def decide(self, position: PositionSide = PositionSide.FLAT) -> TradeIntent:
        timeframes = self.config.timeframes
        execution = self.cache.get_candles(timeframes.execution)
        confirming = self.cache.get_candles(timeframes.confirming)
        context = self.cache.get_candles(timeframes.context)

        if (
            not execution
            or len(execution) < self.config.lookbacks.execution_bars
            or len(confirming) < MIN_HIGHER_TIMEFRAME_CANDLES
            or len(context) < MIN_HIGHER_TIMEFRAME_CANDLES
        ):
            return self._no_action("insufficient_candles", execution)

        latest = execution[-1]
        self._sync_position(position, latest)
        self._handle_new_timestamp(latest.timestamp)
        self._ensure_session_date(latest.timestamp)

        ctx = build_strategy_context(
            execution, confirming, context, self.config, self.risk_state
        )
        self._log_context(ctx)

        if self._memory is not None:
            if self._memory.atr_on_entry is None:
                self._memory.atr_on_entry = ctx.indicator.atr1m
            self._update_favorable_price(latest.close)

        if position is PositionSide.FLAT:
            return self._decide_entry(ctx, latest, execution)

        reason = evaluate_exit(ctx, position, self.config, self._memory)
        if reason:
            logger.info(
                "strategy_exit",
                symbol=ctx.symbol,
                side=position.value,
                reason=reason,
                price=ctx.price,
                timestamp=ctx.timestamp,
                trend=ctx.trend_direction.value,
                volatility=ctx.vol_regime.value
            )
            self._record_exit(reason, ctx.timestamp, ctx.price)
            return build_close_intent(ctx, position, reason)

        return self._no_action("manage_position", execution)

    def reset(self) -> None:
        self._memory = None
        self._cooldown_bars_remaining = 0
        self._last_exit_reason = None
        self._last_realized_pnl_pct = None
        self._session_date = None
        self._session_pnl_pct = 0.0
        self._last_context_timestamp = None
        self._realized_pnl_history = []

    def _decide_entry(
        self,
        ctx: StrategyContext,
        latest: Candle,
        execution: list[Candle]
    ) -> TradeIntent:
        block_reason = evaluate_risk_blocks(ctx, self.config)
        if block_reason:
            return self._no_action(block_reason, execution)

        throttle = equity_throttle_factor(self._realized_pnl_history, self.config.equity_throttle)
        decision = select_entry_decision(ctx, self.config, throttle)
        if decision is None:
            return self._no_action("no_signal", execution)

        self._memory = PositionMemory(
            side="LONG" if decision.intent is IntentType.OPEN_LONG else "SHORT",
            opened_at=latest.timestamp,
            entry_price=latest.close,
            stop=decision.stop,
            atr_on_entry=ctx.indicator.atr1m,
            best_favorable_price=latest.close,
        )
        self._log_entry(ctx, decision, throttle)

        return TradeIntent(
            symbol=latest.symbol,
            intent=decision.intent,
            reason=decision.reason,
            timestamp=latest.timestamp,
            metadata=decision.to_metadata(),
        )

    def _sync_position(self, position: PositionSide, latest: Candle) -> None:
        """Reconcile memory with the side the runtime reports."""
        memory_side = self._memory.side if self._memory else None
        if position.value == memory_side:
            return

        if position is PositionSide.FLAT:
            if self._memory is not None:
                self._record_exit("external_exit", latest.timestamp, latest.close)
            self._memory = None
            return

        self._memory = PositionMemory(
            side=position.value,
            opened_at=latest.timestamp,
            entry_price=latest.close,
            stop=None,
            atr_on_entry=None,
            best_favorable_price=latest.close,
        )

    def _handle_new_timestamp(self, timestamp: int) -> None:
        # Cooldown counts bars, so repeated calls on one bar must not consume it
        if self._last_context_timestamp is not None and timestamp <= self._last_context_timestamp:
            return
        self._last_context_timestamp = timestamp
        if self._cooldown_bars_remaining > 0:
            self._cooldown_bars_remaining -= 1

    def _ensure_session_date(self, timestamp: int) -> None:
        day_key = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
        if self._session_date == day_key:
            return
        self._session_date = day_key
        self._session_pnl_pct = 0.0

    def _update_favorable_price(self, price: float) -> None:
        if self._memory.side == "LONG":
            self._memory.best_favorable_price = max(self._memory.best_favorable_price, price)
        else:
            self._memory.best_favorable_price = min(self._memory.best_favorable_price, price)

    def _record_exit(self, reason: str, timestamp: int, exit_price: float) -> None:
        if self._memory is None:
            self._last_exit_reason = reason
            self._last_realized_pnl_pct = None
            return

        self._ensure_session_date(timestamp)
        pnl_pct = self._compute_pnl_pct(exit_price, self._memory)
        self._last_exit_reason = reason
        self._last_realized_pnl_pct = pnl_pct
        self._session_pnl_pct += pnl_pct
        self._realized_pnl_history.append(pnl_pct)

        if reason == STOPOUT_REASON and self.config.cooldown_after_stopout_bars > 0:
            self._cooldown_bars_remaining = self.config.cooldown_after_stopout_bars

        self._memory = None

    @staticmethod
    def _compute_pnl_pct(price: float, memory: PositionMemory) -> float:
        if memory.entry_price == 0:
            return 0.0
        raw = (price - memory.entry_price) / memory.entry_price
        if memory.side == "SHORT":
            raw = -raw
        return round(raw, 6)

    def _no_action(self, reason: str, candles: list[Candle]) -> TradeIntent:
        latest = candles[-1] if candles else None
        return TradeIntent.no_action(
            symbol=latest.symbol if latest else self.config.symbol,
            reason=reason,
            timestamp=latest.timestamp if latest else 0,
        )

    def _log_context(self, ctx: StrategyContext) -> None:
        indicator = ctx.indicator
        logger.debug(
            "strategy_context",
            strategy=self.config.id,
            symbol=ctx.symbol,
            timeframe=ctx.timeframe,
            timestamp=ctx.timestamp,
            price=ctx.price,
            trend=ctx.trend_direction.value,
            volatility=ctx.vol_regime.value,
            vwap=indicator.vwap,
            vwap_deviation_pct=indicator.vwap_deviation_pct,
            atr1m=indicator.atr1m,
            atr5m=indicator.atr5m,
            ema_fast=indicator.ema_fast,
            ema_slow=indicator.ema_slow,
            rsi=indicator.rsi,
            cvd_trend=indicator.cvd_trend,
            cvd_divergence=indicator.cvd_divergence,
            levels=dataclasses.asdict(ctx.levels),
            setups=ctx.setups,
            risk_state=dataclasses.asdict(ctx.risk_state) if ctx.risk_state else None
        )
        logger.debug(
            "strategy_diagnostics",
            strategy=self.config.id,
            symbol=ctx.symbol,
            timestamp=ctx.timestamp,
            checks=[dataclasses.asdict(entry) for entry in ctx.setup_diagnostics],
            recent_closes=[c.close for c in ctx.recent_execution_candles]
        )

    def _log_entry(self, ctx: StrategyContext, decision: SetupDecision, throttle: float) -> None:
        logger.info(
            "strategy_signal",
            strategy=self.config.id,
            symbol=ctx.symbol,
            intent=decision.intent.value,
            reason=decision.reason,
            price=ctx.price,
            timestamp=ctx.timestamp,
            trend=ctx.trend_direction.value,
            volatility=ctx.vol_regime.value,
            confidence=decision.confidence,
            stop=decision.stop,
            tp1=decision.tp1,
            tp2=decision.tp2,
            risk_pct=decision.risk_pct,
            throttle=throttle
        )
