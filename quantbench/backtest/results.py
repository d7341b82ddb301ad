"""
Backtest ledger and result types.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .config import BacktestConfig


@dataclass
class BacktestTrade:
    """One executed leg: an OPEN fill or a CLOSE with its realized PnL."""
    symbol: str
    action: str  # "OPEN" or "CLOSE"
    side: str  # "LONG" or "SHORT"
    quantity: float
    entry_price: float
    timestamp: int
    reason: str
    exit_price: Optional[float] = None
    realized_pnl: Optional[float] = None


@dataclass
class EquitySnapshot:
    """Account state after one tick."""
    timestamp: int
    balance: float
    equity: float
    unrealized_pnl: float
    max_equity: float
    max_drawdown: float


@dataclass
class BacktestResult:
    """Output of a backtest run."""
    config: BacktestConfig
    trades: list[BacktestTrade] = field(default_factory=list)
    equity_snapshots: list[EquitySnapshot] = field(default_factory=list)

    @property
    def closed_trades(self) -> list[BacktestTrade]:
        return [t for t in self.trades if t.action == "CLOSE"]

    @property
    def final_equity(self) -> float:
        if not self.equity_snapshots:
            return self.config.initial_balance
        return self.equity_snapshots[-1].equity

    @property
    def total_realized_pnl(self) -> float:
        return sum(t.realized_pnl or 0.0 for t in self.closed_trades)

    @property
    def win_rate(self) -> float:
        closed = self.closed_trades
        if not closed:
            return 0.0
        wins = sum(1 for t in closed if (t.realized_pnl or 0.0) > 0)
        return wins / len(closed) * 100

    @property
    def max_drawdown(self) -> float:
        if not self.equity_snapshots:
            return 0.0
        return self.equity_snapshots[-1].max_drawdown

    def summary(self) -> dict[str, Any]:
        return {
            "strategy_id": self.config.strategy_id,
            "start_timestamp": self.config.start_timestamp,
            "end_timestamp": self.config.end_timestamp,
            "initial_balance": self.config.initial_balance,
            "final_equity": round(self.final_equity, 2),
            "total_realized_pnl": round(self.total_realized_pnl, 2),
            "executions": len(self.trades),
            "closed_trades": len(self.closed_trades),
            "win_rate": round(self.win_rate, 2),
            "max_drawdown": round(self.max_drawdown, 2),
            "ticks": len(self.equity_snapshots),
        }
