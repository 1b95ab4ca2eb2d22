from __future__ import annotations

"""
OrderBook: the escrow order lifecycle.

    list_order ──► LISTED ──register_buyer*──► LISTED ──release_funds──► RELEASED

Authority model
---------------
Release is *seller-directed*: only the order's seller may call
`release_funds`, naming which registered buyer receives the funds, and must
present a signature (made with the seller's key) over that buyer's address and
the secret the buyer registered. Buyers cannot release to themselves.

Execution model
---------------
Every public mutating operation:
  1. takes the book-wide RLock (one call at a time, like a serialized VM);
  2. enters the non-reentrancy guard (a nested call from code triggered by a
     custody transfer raises ReentrantCall);
  3. runs inside a store transaction that is rolled back on any exception,
     including the counter bump and the LISTED → RELEASED flip;
  4. buffers its events and publishes them only after commit.

Inside `release_funds` the state is flipped to RELEASED and written before the
custody transfer runs. Deposit checks run before an order id is allocated.

Typical use
-----------
    book = OrderBook(AssetCustody(custody_addr, native=native_ledger, tokens={tok: ledger}))
    oid = book.list_order(seller, 1000, tok)
    book.register_buyer(buyer, oid, 345)
    sig = sign_release(seller_key, buyer, 345)
    book.release_funds(seller, oid, sig, buyer)
"""

import contextlib
import logging
from threading import RLock
from typing import Any, Iterator, List, Optional, Union

from . import metrics
from .address import AddressLike, normalize
from .custody import AssetCustody, TokenResolver
from .errors import (
    AlreadyRegistered,
    BuyerNotRegistered,
    EscrowError,
    InvalidAmount,
    InvalidOrderId,
    NotActualSeller,
    NotListedOrReleased,
    NotSeller,
    SellersNotAllowed,
    TransactionFailed,
)
from .events import BuyerRegistered, Event, EventLog, FundsReleased, ListingCreated
from .guard import ReentrancyGuard
from .ledger import NativeLedger
from .registry import BuyerRegistry, check_secret
from .signing import BytesLike, SignatureAuthorizer, as_bytes
from .signing import recover2 as _recover2
from .store import MemoryOrderStore, OrderStore
from .types import AssetRef, Order, OrderState
from .units import U256_MAX

log = logging.getLogger(__name__)

_GUARD_SCOPE = "orderbook"

SignatureLike = Union[BytesLike, str]


def _check_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0 or amount > U256_MAX:
        raise InvalidAmount(amount)
    return amount


class OrderBook:
    def __init__(
        self,
        custody: AssetCustody,
        *,
        store: Optional[OrderStore] = None,
        authorizer: Optional[SignatureAuthorizer] = None,
        events: Optional[EventLog] = None,
    ) -> None:
        self.custody = custody
        self.store: OrderStore = store if store is not None else MemoryOrderStore()
        self.authorizer = authorizer or SignatureAuthorizer()
        self.events = events or EventLog()
        self._lock = RLock()
        self._guard = ReentrancyGuard()

    @classmethod
    def from_config(
        cls,
        cfg: Any,
        *,
        native: NativeLedger,
        tokens: Optional[TokenResolver] = None,
        events: Optional[EventLog] = None,
    ) -> "OrderBook":
        """Wire custody, store and signing from an `EscrowConfig`."""
        custody = AssetCustody(
            cfg.custody_address,
            native=native,
            tokens=tokens,
            native_decimals=cfg.native.decimals,
        )
        store: OrderStore
        if cfg.storage.db_path:
            from .adapters.state_db import SQLiteOrderStore

            store = SQLiteOrderStore(cfg.storage.db_path)
        else:
            store = MemoryOrderStore()
        return cls(custody, store=store, authorizer=SignatureAuthorizer(domain=cfg.domain), events=events)

    @property
    def address(self) -> str:
        """Identity the book holds custody and allowances as."""
        return self.custody.address

    # ---- plumbing ------------------------------------------------------------

    @contextlib.contextmanager
    def _operation(self, op: str) -> Iterator[List[Event]]:
        pending: List[Event] = []
        with self._lock:
            try:
                with self._guard.enter(_GUARD_SCOPE), metrics.timed(op), self.store.tx():
                    yield pending
            except EscrowError as e:
                metrics.REJECTIONS.labels(op=op, code=e.code).inc()
                log.debug("%s rejected: %s", op, e)
                raise
            self.events.publish(pending)

    def _load(self, order_id: Any) -> Order:
        if isinstance(order_id, bool) or not isinstance(order_id, int):
            raise InvalidOrderId(details={"order_id": repr(order_id)})
        if order_id < 1 or order_id > self.store.last_id():
            raise InvalidOrderId(order_id)
        order = self.store.get(order_id)
        if order is None:
            raise InvalidOrderId(order_id)
        return order

    # ---- mutating operations -------------------------------------------------

    def list_order(
        self,
        caller: AddressLike,
        amount: int,
        asset: Optional[Union[AssetRef, str]] = None,
        *,
        value: int = 0,
    ) -> int:
        """
        Deposit `amount` of `asset` (None / zero address = native coin) and
        open a LISTED order. Native listings must attach exactly
        `amount * 10**decimals` base units as `value`; token listings must have
        approved the custody address for exactly `amount`.
        """
        with self._operation("list_order") as pending:
            seller = normalize(caller, field="caller")
            _check_amount(amount)
            ref = AssetRef.parse(asset)
            held = self.custody.check_deposit(seller, ref, amount, value)
            order_id = self.store.allocate_id()
            order = Order(
                order_id=order_id,
                seller=seller,
                amount=amount,
                asset=ref,
                value=held,
                state=OrderState.LISTED,
                buyers=BuyerRegistry(order_id),
            )
            self.store.put_new(order)
            self.custody.deposit(seller, ref, amount, value)
            pending.append(
                ListingCreated(
                    order_id=order_id,
                    seller=seller,
                    amount=amount,
                    asset=ref.reference(),
                    state=order.state.name,
                )
            )
        metrics.ORDERS_LISTED.labels(asset=ref.kind.value).inc()
        log.info("order %d listed by %s: %d %s", order_id, seller, amount, ref)
        return order_id

    def register_buyer(self, caller: AddressLike, order_id: int, secret: int) -> None:
        """Commit `secret` as the caller's registration against a LISTED order."""
        with self._operation("register_buyer") as pending:
            buyer = normalize(caller, field="caller")
            check_secret(secret)
            order = self._load(order_id)
            if buyer == order.seller:
                raise SellersNotAllowed(order_id)
            if buyer in order.buyers:
                raise AlreadyRegistered(order_id, buyer=buyer)
            if order.state is not OrderState.LISTED:
                raise NotListedOrReleased(order_id, state=order.state.name)
            order.buyers.register(buyer, secret)
            self.store.update(order)
            pending.append(BuyerRegistered(buyer=buyer, order_id=order_id, secret=secret))
        metrics.BUYERS_REGISTERED.inc()
        log.info("buyer %s registered on order %d", buyer, order_id)

    def release_funds(
        self,
        caller: AddressLike,
        order_id: int,
        signature: SignatureLike,
        buyer: AddressLike,
    ) -> None:
        """
        Seller releases the whole order to one registered `buyer`.

        `signature` must be the seller's personal-sign signature over
        (buyer, buyer's registered secret); see `escrowbook.signing`.
        """
        try:
            with self._operation("release_funds") as pending:
                sender = normalize(caller, field="caller")
                to = normalize(buyer, field="buyer")
                sig = as_bytes(signature)
                order = self._load(order_id)
                if order.state is not OrderState.LISTED:
                    raise NotListedOrReleased(order_id, state=order.state.name)
                if to not in order.buyers:
                    raise BuyerNotRegistered(order_id, buyer=to)
                if sender != order.seller:
                    raise NotSeller(order_id, caller=sender)

                signer = self.authorizer.signer_of(to, order.buyers.secret_of(to), sig)
                if signer != order.seller:
                    raise NotActualSeller(order_id, recovered=signer)

                order.state = OrderState.RELEASED
                self.store.update(order)
                self.custody.release(order, to)
                pending.append(FundsReleased(buyer=to, signer=signer, order_id=order_id, signature=sig))
        except TransactionFailed as e:
            metrics.RELEASES.labels(result="transfer_failed").inc()
            log.warning("release of order %s failed in custody: %s", order_id, e)
            raise
        except EscrowError as e:
            metrics.RELEASES.labels(result="rejected").inc()
            if isinstance(e, NotActualSeller):
                log.warning("release of order %s rejected: %s", order_id, e)
            raise
        metrics.RELEASES.labels(result="released").inc()
        log.info("order %d released to %s", order_id, to)

    # ---- views ---------------------------------------------------------------

    def fetch_order_details(self, order_id: int) -> Order:
        """Copy of the order; InvalidOrderId for ids never assigned."""
        with self._lock:
            return self._load(order_id)

    def state_of(self, order_id: int) -> OrderState:
        with self._lock:
            try:
                return self._load(order_id).state
            except InvalidOrderId:
                return OrderState.NONE

    def get_messages(self, caller: AddressLike, order_id: int, buyer: AddressLike) -> int:
        """Secret registered by `buyer`; only the order's seller may read it."""
        with self._lock:
            sender = normalize(caller, field="caller")
            order = self._load(order_id)
            if sender != order.seller:
                raise NotSeller(order_id, caller=sender)
            return order.buyers.secret_of(normalize(buyer, field="buyer"))

    def total_orders(self) -> int:
        return self.store.last_id()

    def recover2(self, digest: SignatureLike, signature: SignatureLike) -> str:
        return _recover2(digest, signature)


__all__ = ["OrderBook"]
