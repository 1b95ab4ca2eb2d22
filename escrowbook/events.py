from __future__ import annotations
"""
Order book notifications.

Three events mirror the three state transitions:
  - ListingCreated: an order was listed (custody debited or allowance checked).
  - BuyerRegistered: a buyer committed a secret against an order.
  - FundsReleased: custody paid an order out to a buyer.

Events are produced while an operation runs but only reach subscribers after
the operation commits; a rejected call publishes nothing. Timestamps are UNIX
milliseconds.
"""


import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

log = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class EventType(str, Enum):
    LISTING_CREATED = "ListingCreated"
    BUYER_REGISTERED = "BuyerRegistered"
    FUNDS_RELEASED = "FundsReleased"


@dataclass(frozen=True)
class ListingCreated:
    order_id: int
    seller: str
    amount: int
    asset: str  # asset reference (zero address for native)
    state: str
    ts_ms: int = field(default_factory=now_ms)
    etype: EventType = EventType.LISTING_CREATED

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["etype"] = self.etype.value
        d["amount"] = str(self.amount)
        return d


@dataclass(frozen=True)
class BuyerRegistered:
    buyer: str
    order_id: int
    secret: int
    ts_ms: int = field(default_factory=now_ms)
    etype: EventType = EventType.BUYER_REGISTERED

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["etype"] = self.etype.value
        d["secret"] = str(self.secret)
        return d


@dataclass(frozen=True)
class FundsReleased:
    buyer: str
    signer: str
    order_id: int
    signature: bytes
    ts_ms: int = field(default_factory=now_ms)
    etype: EventType = EventType.FUNDS_RELEASED

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["etype"] = self.etype.value
        d["signature"] = "0x" + self.signature.hex()
        return d


Event = Union[ListingCreated, BuyerRegistered, FundsReleased]
Subscriber = Callable[[Event], None]


class EventLog:
    """Append-only in-process event history with synchronous subscribers."""

    def __init__(self) -> None:
        self._events: List[Event] = []
        self._subs: List[Subscriber] = []
        self._lock = RLock()

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subs.append(fn)

        def _unsubscribe() -> None:
            with self._lock:
                if fn in self._subs:
                    self._subs.remove(fn)

        return _unsubscribe

    def publish(self, events: Iterable[Event]) -> None:
        with self._lock:
            batch = list(events)
            self._events.extend(batch)
            subs = list(self._subs)
        for ev in batch:
            for fn in subs:
                try:
                    fn(ev)
                except Exception:
                    # operation already committed; subscriber errors are only logged
                    log.exception("event subscriber failed on %s", ev.etype.value)

    def history(self, etype: Optional[EventType] = None, *, order_id: Optional[int] = None) -> List[Event]:
        with self._lock:
            out = list(self._events)
        if etype is not None:
            out = [e for e in out if e.etype is etype]
        if order_id is not None:
            out = [e for e in out if e.order_id == order_id]
        return out

    def __len__(self) -> int:
        return len(self._events)


__all__ = [
    "EventType",
    "ListingCreated",
    "BuyerRegistered",
    "FundsReleased",
    "Event",
    "EventLog",
    "now_ms",
]
