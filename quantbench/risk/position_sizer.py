"""
Position sizing calculator.
Turns risk capital and stop distance into a leverage-capped quantity.
"""

import math
from dataclasses import dataclass
from typing import Optional

from ..observability.logger import get_logger

logger = get_logger(__name__)

QUANTITY_DECIMALS = 6


@dataclass
class PositionSize:
    """Position size calculation result."""
    quantity: float
    notional: float
    risk_amount: float
    stop_distance: float
    leverage_capped: bool


class PositionSizer:
    """
    Fixed fractional risk sizing.

    quantity = (equity * risk%) / |entry - stop|, capped so that
    quantity * price never exceeds equity * max_leverage.
    """

    def __init__(self, max_leverage: float = 5.0):
        """
        Initialize position sizer.

        Args:
            max_leverage: Maximum notional as a multiple of equity.
        """
        self.max_leverage = max_leverage

    def max_quantity(self, equity: float, price: float) -> float:
        if price <= 0:
            return 0.0
        return equity * self.max_leverage / price

    def calculate_position_size(
        self,
        equity: float,
        entry_price: float,
        stop_loss_price: float,
        risk_percent: float
    ) -> Optional[PositionSize]:
        """
        Calculate position size based on risk parameters.

        Args:
            equity: Account equity used as the risk base.
            entry_price: Planned entry price.
            stop_loss_price: Protective stop price.
            risk_percent: Percent of equity to lose if the stop is hit.

        Returns:
            PositionSize, or None when the inputs cannot produce a positive size.
        """
        if equity <= 0 or entry_price <= 0 or risk_percent <= 0:
            return None

        stop_distance = abs(entry_price - stop_loss_price)
        if stop_distance <= 0:
            logger.warning(
                "Invalid stop distance, cannot size position",
                entry_price=entry_price,
                stop_loss_price=stop_loss_price
            )
            return None

        risk_amount = equity * (risk_percent / 100)
        raw_quantity = risk_amount / stop_distance
        if not math.isfinite(raw_quantity) or raw_quantity <= 0:
            return None

        cap = self.max_quantity(equity, entry_price)
        quantity = round(min(raw_quantity, cap), QUANTITY_DECIMALS)
        if quantity <= 0:
            return None

        logger.debug(
            f"Position size calculated: {quantity}",
            equity=equity,
            risk_amount=risk_amount,
            raw_quantity=raw_quantity,
            leverage_cap=cap
        )

        return PositionSize(
            quantity=quantity,
            notional=quantity * entry_price,
            risk_amount=risk_amount,
            stop_distance=stop_distance,
            leverage_capped=raw_quantity > cap
        )
