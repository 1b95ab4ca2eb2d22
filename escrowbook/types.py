from __future__ import annotations
"""
Core record types for the escrow order book.

- OrderState: NONE (implicit state of an unknown id) → LISTED → RELEASED.
- AssetKind / AssetRef: native coin or a fungible token at an address.
- Order: one seller's deposit plus its embedded BuyerRegistry.

All records expose `to_dict()` with JSON-safe values (big integers are
rendered as decimal strings so they survive JSON transports unchanged).
"""


from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

from .address import ZERO_ADDRESS, normalize
from .registry import BuyerRegistry


class OrderState(IntEnum):
    NONE = 0
    LISTED = 1
    RELEASED = 2


class AssetKind(str, Enum):
    NATIVE = "native"
    TOKEN = "token"


@dataclass(frozen=True)
class AssetRef:
    kind: AssetKind
    address: Optional[str] = None

    @staticmethod
    def native() -> "AssetRef":
        return AssetRef(AssetKind.NATIVE, None)

    @staticmethod
    def token(address: str) -> "AssetRef":
        return AssetRef(AssetKind.TOKEN, normalize(address, field="token"))

    @staticmethod
    def parse(ref: Optional[Any]) -> "AssetRef":
        """None, "" and the zero address mean the native asset."""
        if isinstance(ref, AssetRef):
            return ref
        if ref is None or ref == "" or ref == AssetKind.NATIVE.value:
            return AssetRef.native()
        addr = normalize(ref, field="asset")
        if addr == ZERO_ADDRESS:
            return AssetRef.native()
        return AssetRef(AssetKind.TOKEN, addr)

    @property
    def is_native(self) -> bool:
        return self.kind is AssetKind.NATIVE

    def reference(self) -> str:
        return self.address or ZERO_ADDRESS

    def __str__(self) -> str:
        return "native" if self.is_native else f"token:{self.address}"


@dataclass
class Order:
    order_id: int
    seller: str
    amount: int
    asset: AssetRef
    value: int = 0  # native base units held in custody; 0 for tokens
    state: OrderState = OrderState.LISTED
    buyers: BuyerRegistry = field(default_factory=BuyerRegistry)

    def __post_init__(self) -> None:
        if self.buyers.order_id is None:
            self.buyers.order_id = self.order_id

    def copy(self) -> "Order":
        return Order(
            order_id=self.order_id,
            seller=self.seller,
            amount=self.amount,
            asset=self.asset,
            value=self.value,
            state=self.state,
            buyers=self.buyers.copy(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "seller": self.seller,
            "amount": str(self.amount),
            "assetKind": self.asset.kind.value,
            "assetReference": self.asset.reference(),
            "value": str(self.value),
            "state": self.state.name,
            "buyers": list(self.buyers.buyers),
        }


__all__ = ["OrderState", "AssetKind", "AssetRef", "Order"]
