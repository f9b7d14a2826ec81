from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from ..core.slab import BookSide


class OrderType(str, Enum):
    LIMIT = "limit"
    IMMEDIATE_OR_CANCEL = "ioc"
    POST_ONLY = "postonly"
    REDUCE_ONLY_IOC = "reduceonlyioc"
    REDUCE_ONLY_LIMIT = "reduceonlylimit"
    FILL_OR_KILL = "fok"

    @property
    def code(self) -> int:
        """Variant index of the program's order type enum."""
        return _ORDER_TYPE_CODES[self]


_ORDER_TYPE_CODES = {kind: i for i, kind in enumerate(OrderType)}


@dataclass(frozen=True, slots=True)
class PositionView:
    size: float
    value: float
    realized_pnl: float
    funding_index: float
    is_long: bool

    @classmethod
    def uninitialized(cls) -> "PositionView":
        return cls(size=0.0, value=0.0, realized_pnl=0.0, funding_index=1.0, is_long=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "value": self.value,
            "realizedPnl": self.realized_pnl,
            "fundingIndex": self.funding_index,
            "isLong": self.is_long,
        }


@dataclass(frozen=True, slots=True)
class OrderView:
    owner_slot: int
    fee_tier: int
    control: str
    order_id: int
    client_order_id: int
    size: float
    price: float
    side: BookSide

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ownerSlot": self.owner_slot,
            "feeTier": self.fee_tier,
            "control": self.control,
            "orderId": self.order_id,
            "clientOrderId": self.client_order_id,
            "size": self.size,
            "price": self.price,
            "side": self.side.value,
        }


__all__ = ["BookSide", "OrderType", "PositionView", "OrderView"]
