"""
Paper execution engine.
Fills trade plans at the supplied price against an in-memory account.
"""

import dataclasses
from dataclasses import dataclass
from typing import Optional

from ..core.types import PositionSide, PositionSnapshot
from ..observability.logger import get_logger
from ..risk.risk_manager import TradePlan

logger = get_logger(__name__)

STATUS_FILLED = "paper_filled"
STATUS_CLOSED = "paper_closed"
STATUS_SKIPPED = "skipped"


@dataclass
class ExecutionResult:
    """Outcome of one execute() call."""
    status: str
    symbol: str
    side: PositionSide
    quantity: float
    price: float
    timestamp: int
    reason: str
    realized_pnl: float = 0.0
    fee: float = 0.0
    entry_price: float = 0.0

    @property
    def is_fill(self) -> bool:
        return self.status in (STATUS_FILLED, STATUS_CLOSED)


@dataclass
class AccountSnapshot:
    """Point-in-time account view."""
    balance: float
    equity: float
    starting_balance: float
    max_equity: float
    max_drawdown: float
    total_realized_pnl: float
    unrealized_pnl: float
    total_trades: int
    wins: int
    losses: int
    breakeven: int


class PaperAccount:
    """
    Balance and trade statistics for paper trading.

    Balance moves only when a trade closes; equity adds unrealized PnL
    at snapshot time.
    """

    def __init__(self, starting_balance: float = 10_000.0):
        self.starting_balance = starting_balance
        self.balance = starting_balance
        self.max_equity = starting_balance
        self.max_drawdown = 0.0
        self.total_trades = 0
        self.wins = 0
        self.losses = 0
        self.breakeven = 0

    def register_closed_trade(self, pnl: float) -> None:
        self.balance += pnl
        self.total_trades += 1
        if pnl > 0:
            self.wins += 1
        elif pnl < 0:
            self.losses += 1
        else:
            self.breakeven += 1

    def snapshot(self, unrealized_pnl: float = 0.0) -> AccountSnapshot:
        equity = self.balance + unrealized_pnl
        self.max_equity = max(self.max_equity, equity)
        self.max_drawdown = max(self.max_drawdown, self.max_equity - equity)
        return AccountSnapshot(
            balance=self.balance,
            equity=equity,
            starting_balance=self.starting_balance,
            max_equity=self.max_equity,
            max_drawdown=self.max_drawdown,
            total_realized_pnl=self.balance - self.starting_balance,
            unrealized_pnl=unrealized_pnl,
            total_trades=self.total_trades,
            wins=self.wins,
            losses=self.losses,
            breakeven=self.breakeven,
        )


class PaperExecutionEngine:
    """
    Simulated order execution.

    One position per symbol. OPEN plans fill the full quantity at the
    given price; CLOSE plans realize PnL on the whole position.
    """

    def __init__(self, account: Optional[PaperAccount] = None, fee_percent: float = 0.0):
        """
        Initialize execution engine.

        Args:
            account: Paper account to settle against.
            fee_percent: Fee charged on entry and exit notional, in percent.
        """
        self.account = account or PaperAccount()
        self.fee_percent = fee_percent
        self._positions: dict[str, PositionSnapshot] = {}
        self._entry_fees: dict[str, float] = {}

    def get_position(self, symbol: str) -> PositionSnapshot:
        """Copy of the symbol's position (FLAT when none is open)."""
        position = self._positions.get(symbol)
        if position is None:
            return PositionSnapshot(symbol=symbol)
        return dataclasses.replace(position)

    def update_position(self, symbol: str, **updates) -> PositionSnapshot:
        """Patch fields of an open position, e.g. trailing stop state."""
        position = self._positions.get(symbol)
        if position is None or not position.is_open:
            raise KeyError(f"No open position for {symbol}")
        for key, value in updates.items():
            if not hasattr(position, key):
                raise AttributeError(f"PositionSnapshot has no field {key}")
            setattr(position, key, value)
        return dataclasses.replace(position)

    def snapshot_account(self, unrealized_pnl: float = 0.0) -> AccountSnapshot:
        return self.account.snapshot(unrealized_pnl)

    def execute(self, plan: TradePlan, price: float) -> ExecutionResult:
        """
        Fill a trade plan.

        Args:
            plan: Sized plan from the risk manager.
            price: Fill price.

        Returns:
            ExecutionResult with status paper_filled, paper_closed or skipped.
        """
        if plan.intent.is_open:
            return self._open(plan, price)
        return self._close(plan, price)

    def _fee(self, quantity: float, price: float) -> float:
        return abs(quantity * price) * (self.fee_percent / 100)

    def _open(self, plan: TradePlan, price: float) -> ExecutionResult:
        side = plan.position_side
        current = self._positions.get(plan.symbol)
        if current is not None and current.is_open:
            return self._skipped(plan, price, side, "position_already_open")

        fee = self._fee(plan.quantity, price)
        self._entry_fees[plan.symbol] = fee
        self._positions[plan.symbol] = PositionSnapshot(
            symbol=plan.symbol,
            side=side,
            size=plan.quantity,
            avg_entry_price=price,
            entry_price=price,
            stop_loss_price=plan.stop_loss_price,
            take_profit_price=plan.take_profit_price,
            peak_price=price,
            trough_price=price,
            opened_at=plan.timestamp,
            realized_pnl=current.realized_pnl if current is not None else 0.0,
        )

        logger.debug(
            "paper_position_opened",
            symbol=plan.symbol,
            side=side.value,
            quantity=plan.quantity,
            price=price,
            stop_loss=plan.stop_loss_price,
            take_profit=plan.take_profit_price
        )

        return ExecutionResult(
            status=STATUS_FILLED,
            symbol=plan.symbol,
            side=side,
            quantity=plan.quantity,
            price=price,
            timestamp=plan.timestamp,
            reason=plan.reason,
            fee=fee,
            entry_price=price,
        )

    def _close(self, plan: TradePlan, price: float) -> ExecutionResult:
        side = plan.position_side
        position = self._positions.get(plan.symbol)
        if position is None or position.side is not side or position.size <= 0:
            return self._skipped(plan, price, side, "position_side_mismatch")

        quantity = position.size
        move = price - position.avg_entry_price
        gross = move * quantity if side is PositionSide.LONG else -move * quantity
        exit_fee = self._fee(quantity, price)
        fees = self._entry_fees.pop(plan.symbol, 0.0) + exit_fee
        realized = gross - fees

        self.account.register_closed_trade(realized)
        self._positions[plan.symbol] = PositionSnapshot(
            symbol=plan.symbol,
            realized_pnl=position.realized_pnl + realized,
        )

        return ExecutionResult(
            status=STATUS_CLOSED,
            symbol=plan.symbol,
            side=side,
            quantity=quantity,
            price=price,
            timestamp=plan.timestamp,
            reason=plan.reason,
            realized_pnl=realized,
            fee=fees,
            entry_price=position.avg_entry_price,
        )

    @staticmethod
    def _skipped(plan: TradePlan, price: float, side: PositionSide, reason: str) -> ExecutionResult:
        logger.debug("paper_execution_skipped", symbol=plan.symbol, intent=plan.intent.value, reason=reason)
        return ExecutionResult(
            status=STATUS_SKIPPED,
            symbol=plan.symbol,
            side=side,
            quantity=0.0,
            price=price,
            timestamp=plan.timestamp,
            reason=reason,
        )
