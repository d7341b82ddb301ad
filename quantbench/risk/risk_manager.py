"""
Risk planner.
Converts strategy intents into sized trade plans with protective levels.
"""

import math
from dataclasses import dataclass
from typing import Optional

from ..config.settings import RiskConfig
from ..core.types import IntentType, PositionSide, PositionSnapshot, TradeIntent
from ..observability.logger import get_logger
from .position_sizer import PositionSizer

logger = get_logger(__name__)


@dataclass
class TradePlan:
    """Sized order for the execution engine."""
    symbol: str
    intent: IntentType
    reason: str
    timestamp: int
    quantity: float
    entry_price: float
    stop_loss_price: float = 0.0
    take_profit_price: float = 0.0
    leverage: float = 1.0

    @property
    def action(self) -> str:
        return "OPEN" if self.intent.is_open else "CLOSE"

    @property
    def position_side(self) -> PositionSide:
        return self.intent.position_side

    @property
    def side(self) -> str:
        """Order side: buy opens longs and covers shorts."""
        if self.intent in (IntentType.OPEN_LONG, IntentType.CLOSE_SHORT):
            return "buy"
        return "sell"


class RiskManager:
    """
    Sizes entries from account equity and closes whole positions.

    Entry sizing prefers the strategy's own levels: metadata "stop" sets
    the stop distance, "tp2" the target and "risk_pct" the percent of
    equity at risk. Missing or wrong-side levels fall back to sl_pct/tp_pct.
    """

    def __init__(self, config: Optional[RiskConfig] = None):
        """
        Initialize risk manager.

        Args:
            config: Risk configuration. Defaults to RiskConfig().
        """
        self.config = config or RiskConfig()
        self.position_sizer = PositionSizer(max_leverage=self.config.max_leverage)

    def plan(
        self,
        intent: TradeIntent,
        price: float,
        equity: float,
        position: Optional[PositionSnapshot] = None,
        open_positions: Optional[int] = None
    ) -> Optional[TradePlan]:
        """
        Build a trade plan for an intent.

        Args:
            intent: Strategy intent.
            price: Reference fill price (latest close).
            equity: Current account equity.
            position: Current position for the intent's symbol.
            open_positions: Open position count across symbols. Defaults to
                the count implied by position.

        Returns:
            TradePlan, or None when nothing should be traded.
        """
        if not intent.is_actionable:
            return None

        side = intent.intent.position_side
        if intent.intent.is_close:
            if position is None or position.side is not side or position.size <= 0:
                logger.debug("No position to close", symbol=intent.symbol, intent=intent.intent.value)
                return None
            return TradePlan(
                symbol=intent.symbol,
                intent=intent.intent,
                reason=intent.reason,
                timestamp=intent.timestamp,
                quantity=position.size,
                entry_price=price,
                leverage=self.config.max_leverage,
            )

        if open_positions is None:
            open_positions = 1 if position is not None and position.is_open else 0
        if open_positions >= self.config.max_positions:
            logger.debug("Max positions reached", symbol=intent.symbol, open_positions=open_positions)
            return None

        return self._build_entry_plan(intent, side, price, equity)

    def _build_entry_plan(
        self,
        intent: TradeIntent,
        side: PositionSide,
        price: float,
        equity: float
    ) -> Optional[TradePlan]:
        if price <= 0 or not math.isfinite(price):
            return None

        metadata = intent.metadata or {}
        direction = 1 if side is PositionSide.LONG else -1

        stop = _valid_level(metadata.get("stop"), price, -direction)
        if stop is None:
            stop = price * (1 - direction * self.config.sl_pct / 100)

        take_profit = _valid_level(metadata.get("tp2"), price, direction)
        if take_profit is None:
            take_profit = price * (1 + direction * self.config.tp_pct / 100)

        risk_pct = metadata.get("risk_pct")
        if not isinstance(risk_pct, (int, float)) or risk_pct <= 0:
            risk_pct = self.config.risk_per_trade_pct

        size = self.position_sizer.calculate_position_size(equity, price, stop, risk_pct)
        if size is None:
            logger.debug("Unable to size trade", symbol=intent.symbol, price=price, stop=stop)
            return None

        return TradePlan(
            symbol=intent.symbol,
            intent=intent.intent,
            reason=intent.reason,
            timestamp=intent.timestamp,
            quantity=size.quantity,
            entry_price=price,
            stop_loss_price=stop,
            take_profit_price=take_profit,
            leverage=self.config.max_leverage,
        )


def _valid_level(value, price: float, direction: int) -> Optional[float]:
    """Level if it is a finite number strictly on the given side of price."""
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    if (value - price) * direction <= 0:
        return None
    return float(value)


def get_pre_execution_skip_reason(plan: TradePlan, position: PositionSnapshot) -> Optional[str]:
    """Reason the plan must not reach the execution engine, or None."""
    if plan.intent.is_open:
        if position.side is plan.position_side:
            return "already_in_position"
        if position.side is not PositionSide.FLAT:
            return "opposite_position_open"
    if plan.intent.is_close:
        if position.side is not plan.position_side or position.size <= 0:
            return "no_position_to_close"
    if plan.quantity <= 0:
        return "invalid_quantity"
    return None
