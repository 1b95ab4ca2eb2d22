"""
Per-order buyer registry.

Keeps registration order in a list for enumeration and a dict for O(1)
membership and secret lookup. A buyer registers exactly once per order; a
second registration raises AlreadyRegistered and leaves the registry as is.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .errors import AlreadyRegistered, BuyerNotRegistered, InvalidSecret
from .units import U256_MAX


def check_secret(secret: int) -> int:
    if isinstance(secret, bool) or not isinstance(secret, int) or secret < 0 or secret > U256_MAX:
        raise InvalidSecret("secret must be an unsigned 256-bit integer", details={"secret": repr(secret)})
    return secret


class BuyerRegistry:
    def __init__(self, order_id: Optional[int] = None) -> None:
        self.order_id = order_id
        self._order: List[str] = []
        self._secrets: Dict[str, int] = {}

    def register(self, buyer: str, secret: int) -> None:
        check_secret(secret)
        if buyer in self._secrets:
            raise AlreadyRegistered(self.order_id, buyer=buyer)
        self._order.append(buyer)
        self._secrets[buyer] = secret

    def secret_of(self, buyer: str) -> int:
        try:
            return self._secrets[buyer]
        except KeyError:
            raise BuyerNotRegistered(self.order_id, buyer=buyer) from None

    @property
    def buyers(self) -> Tuple[str, ...]:
        return tuple(self._order)

    def items(self) -> List[Tuple[str, int]]:
        return [(b, self._secrets[b]) for b in self._order]

    def copy(self) -> "BuyerRegistry":
        return BuyerRegistry.from_list(self.items(), order_id=self.order_id)

    def to_list(self) -> List[Dict[str, object]]:
        return [{"buyer": b, "secret": str(s)} for b, s in self.items()]

    @staticmethod
    def from_list(pairs: Iterable[Tuple[str, int]], *, order_id: Optional[int] = None) -> "BuyerRegistry":
        reg = BuyerRegistry(order_id)
        for buyer, secret in pairs:
            reg.register(buyer, int(secret))
        return reg

    def __contains__(self, buyer: object) -> bool:
        return buyer in self._secrets

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._order))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BuyerRegistry):
            return NotImplemented
        return self.items() == other.items()

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"BuyerRegistry(order_id={self.order_id}, buyers={len(self)})"


__all__ = ["BuyerRegistry", "check_secret"]
