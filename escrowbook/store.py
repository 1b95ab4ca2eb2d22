from __future__ import annotations

"""
Order storage.

`OrderStore` is the interface the order book persists through:

    last_id()        -> highest assigned order id (0 when empty)
    allocate_id()    -> pre-increment the id counter and return the new id
    get(order_id)    -> independent copy of the Order, or None
    put_new(order)   -> insert; AlreadyListed if the id is taken
    update(order)    -> overwrite state and append new buyers
    tx()             -> context manager; commit on success, roll back on error

`MemoryOrderStore` keeps everything in dicts and implements `tx()` with an
undo journal: the first write to an order inside a transaction saves its prior
version, and rollback puts back only what was touched. The durable SQLite
backend lives in `escrowbook.adapters.state_db`.
"""

import contextlib
from threading import RLock
from typing import ContextManager, Dict, Iterator, Optional, Protocol

from .errors import AlreadyListed, InvalidOrderId
from .types import Order


class OrderStore(Protocol):
    def last_id(self) -> int: ...
    def allocate_id(self) -> int: ...
    def get(self, order_id: int) -> Optional[Order]: ...
    def put_new(self, order: Order) -> None: ...
    def update(self, order: Order) -> None: ...
    def tx(self) -> ContextManager[None]: ...
    def close(self) -> None: ...


class MemoryOrderStore:
    """
    Minimal in-memory store. Not durable; use the SQLite adapter for anything
    that must survive a restart.
    """

    def __init__(self) -> None:
        self._orders: Dict[int, Order] = {}
        self._counter = 0
        self._lock = RLock()
        self._depth = 0
        self._journal: Optional[Dict[int, Optional[Order]]] = None

    def last_id(self) -> int:
        return self._counter

    def allocate_id(self) -> int:
        with self._lock:
            self._counter += 1
            return self._counter

    def get(self, order_id: int) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.copy() if order is not None else None

    def put_new(self, order: Order) -> None:
        with self._lock:
            if order.order_id in self._orders:
                raise AlreadyListed(order.order_id)
            self._remember(order.order_id)
            self._orders[order.order_id] = order.copy()

    def update(self, order: Order) -> None:
        with self._lock:
            if order.order_id not in self._orders:
                raise InvalidOrderId(order.order_id)
            self._remember(order.order_id)
            self._orders[order.order_id] = order.copy()

    def _remember(self, order_id: int) -> None:
        if self._journal is not None and order_id not in self._journal:
            # stored orders are replaced on write, never mutated in place
            self._journal[order_id] = self._orders.get(order_id)

    def _undo(self, journal: Dict[int, Optional[Order]]) -> None:
        for order_id, prior in journal.items():
            if prior is None:
                self._orders.pop(order_id, None)
            else:
                self._orders[order_id] = prior

    @contextlib.contextmanager
    def tx(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                # joined into the outer transaction
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            counter = self._counter
            self._journal = {}
            self._depth = 1
            try:
                yield
            except BaseException:
                self._undo(self._journal)
                self._counter = counter
                raise
            finally:
                self._journal = None
                self._depth = 0

    def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._orders)


__all__ = ["OrderStore", "MemoryOrderStore"]
