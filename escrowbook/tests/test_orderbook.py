from __future__ import annotations

import threading

import pytest

from escrowbook import metrics
from escrowbook.custody import AssetCustody
from escrowbook.errors import (
    AlreadyRegistered,
    BuyerNotRegistered,
    InsufficientFunds,
    InvalidAddress,
    InvalidAmount,
    InvalidOrderId,
    InvalidSecret,
    NotActualSeller,
    NotListedOrReleased,
    NotSeller,
    ReentrantCall,
    SellersNotAllowed,
    TransactionFailed,
    UnsupportedAsset,
)
from escrowbook.events import EventType
from escrowbook.orderbook import OrderBook
from escrowbook.signing import release_digest, sign_release
from escrowbook.store import MemoryOrderStore
from escrowbook.types import AssetKind, OrderState

from .conftest import CUSTODY, ONE, TOKEN


def _rejections(op: str, code: str) -> float:
    return metrics.REGISTRY.get_sample_value("escrowbook_rejections_total", {"op": op, "code": code}) or 0.0


# ---- listing -----------------------------------------------------------------


def test_ids_start_at_one_and_increase(book, native, people):
    native.credit(people.seller.address, 10 * ONE)
    assert book.total_orders() == 0
    assert book.list_order(people.seller.address, 1, value=ONE) == 1
    assert book.list_order(people.seller.address, 2, None, value=2 * ONE) == 2
    assert book.total_orders() == 2
    assert native.balance_of(CUSTODY) == 3 * ONE


def test_token_listing_details(book, token_order, people, token):
    order = book.fetch_order_details(token_order)
    assert order.seller == people.seller.address
    assert order.amount == 1000
    assert order.asset.kind is AssetKind.TOKEN
    assert order.asset.address == token.address
    assert order.state is OrderState.LISTED
    assert len(order.buyers) == 0
    # authorize now, pull later
    assert token.balance_of(people.seller.address) == 1000


def test_non_divisible_native_value_rolls_back(book, native, people):
    native.credit(people.seller.address, 10 * ONE)
    with pytest.raises(InsufficientFunds):
        book.list_order(people.seller.address, 2, value=2 * ONE + 1)
    assert book.total_orders() == 0
    assert book.state_of(1) is OrderState.NONE
    assert native.balance_of(people.seller.address) == 10 * ONE


def test_token_listing_requires_exact_allowance(book, token, people):
    token.mint(people.seller.address, 1000)
    token.approve(people.seller.address, CUSTODY, 999)
    with pytest.raises(InsufficientFunds):
        book.list_order(people.seller.address, 1000, TOKEN)
    assert book.total_orders() == 0


@pytest.mark.parametrize("amount", [0, -5, 2**256, True, 1.5])
def test_invalid_amount(book, people, amount):
    with pytest.raises(InvalidAmount):
        book.list_order(people.seller.address, amount, TOKEN)


def test_unsupported_token_and_bad_caller(book, people):
    with pytest.raises(UnsupportedAsset):
        book.list_order(people.seller.address, 1, "0x9999999999999999999999999999999999999999")
    with pytest.raises(InvalidAddress):
        book.list_order("seller", 1)
    assert book.total_orders() == 0


# ---- registration ------------------------------------------------------------


def test_register_buyers(book, token_order, people):
    book.register_buyer(people.a.address, token_order, 123)
    book.register_buyer(people.b.address, token_order, 345)
    order = book.fetch_order_details(token_order)
    assert order.buyers.buyers == (people.a.address, people.b.address)
    assert book.get_messages(people.seller.address, token_order, people.b.address) == 345


def test_register_rejections(book, token_order, people):
    with pytest.raises(InvalidOrderId):
        book.register_buyer(people.a.address, 0, 1)
    with pytest.raises(InvalidOrderId):
        book.register_buyer(people.a.address, token_order + 1, 1)
    with pytest.raises(SellersNotAllowed):
        book.register_buyer(people.seller.address, token_order, 1)
    with pytest.raises(InvalidSecret):
        book.register_buyer(people.a.address, token_order, -1)
    book.register_buyer(people.a.address, token_order, 1)
    with pytest.raises(AlreadyRegistered):
        book.register_buyer(people.a.address, token_order, 2)
    assert book.get_messages(people.seller.address, token_order, people.a.address) == 1


def test_register_after_release(book, token_order, people):
    book.register_buyer(people.a.address, token_order, 1)
    sig = sign_release(people.seller.key, people.a.address, 1)
    book.release_funds(people.seller.address, token_order, sig, people.a.address)
    with pytest.raises(NotListedOrReleased):
        book.register_buyer(people.b.address, token_order, 2)


def test_get_messages_is_seller_only(book, token_order, people):
    book.register_buyer(people.a.address, token_order, 77)
    with pytest.raises(NotSeller):
        book.get_messages(people.a.address, token_order, people.a.address)
    with pytest.raises(BuyerNotRegistered):
        book.get_messages(people.seller.address, token_order, people.b.address)


# ---- release -----------------------------------------------------------------


def test_token_release_to_chosen_buyer(book, token_order, token, people):
    book.register_buyer(people.a.address, token_order, 123)
    book.register_buyer(people.b.address, token_order, 345)
    sig = sign_release(people.seller.key, people.b.address, 345)

    book.release_funds(people.seller.address, token_order, sig, people.b.address)

    assert book.state_of(token_order) is OrderState.RELEASED
    assert token.balance_of(people.b.address) == 1000
    assert token.balance_of(people.a.address) == 0
    assert token.balance_of(people.seller.address) == 0
    assert token.allowance(people.seller.address, CUSTODY) == 0

    with pytest.raises(NotListedOrReleased):
        book.release_funds(people.seller.address, token_order, sig, people.b.address)


def test_native_release(book, native, people):
    native.credit(people.seller.address, 2 * ONE)
    oid = book.list_order(people.seller.address, 2, value=2 * ONE)
    book.register_buyer(people.a.address, oid, 9)
    sig = sign_release(people.seller.key, people.a.address, 9)
    book.release_funds(people.seller.address, oid, "0x" + sig.hex(), people.a.address)
    assert native.balance_of(people.a.address) == 2 * ONE
    assert native.balance_of(CUSTODY) == 0



def test_native_release_pays_what_was_deposited(native, people):
    # the book is reopened with a different decimals setting between list and release
    store = MemoryOrderStore()
    six = OrderBook(AssetCustody(CUSTODY, native=native, native_decimals=6), store=store)
    native.credit(people.seller.address, 10**6)
    oid = six.list_order(people.seller.address, 1, value=10**6)
    assert six.fetch_order_details(oid).value == 10**6
    six.register_buyer(people.a.address, oid, 9)

    eighteen = OrderBook(AssetCustody(CUSTODY, native=native), store=store)
    sig = sign_release(people.seller.key, people.a.address, 9)
    eighteen.release_funds(people.seller.address, oid, sig, people.a.address)
    assert native.balance_of(people.a.address) == 10**6
    assert native.balance_of(CUSTODY) == 0
    assert eighteen.state_of(oid) is OrderState.RELEASED


def test_release_check_order(book, token_order, people):
    book.register_buyer(people.a.address, token_order, 123)
    good = sign_release(people.seller.key, people.a.address, 123)

    with pytest.raises(InvalidOrderId):
        book.release_funds(people.seller.address, 42, good, people.a.address)
    # unregistered buyer wins over wrong caller
    with pytest.raises(BuyerNotRegistered):
        book.release_funds(people.mallory.address, token_order, good, people.b.address)
    with pytest.raises(NotSeller):
        book.release_funds(people.a.address, token_order, good, people.a.address)
    assert book.state_of(token_order) is OrderState.LISTED


def test_signature_from_someone_else_rolls_back(book, token_order, token, people):
    book.register_buyer(people.a.address, token_order, 123)
    before = _rejections("release_funds", "NOT_ACTUAL_SELLER")

    forged = sign_release(people.mallory.key, people.a.address, 123)
    with pytest.raises(NotActualSeller):
        book.release_funds(people.seller.address, token_order, forged, people.a.address)
    wrong_secret = sign_release(people.seller.key, people.a.address, 124)
    with pytest.raises(NotActualSeller):
        book.release_funds(people.seller.address, token_order, wrong_secret, people.a.address)
    with pytest.raises(NotActualSeller):
        book.release_funds(people.seller.address, token_order, b"\x00" * 65, people.a.address)

    assert book.state_of(token_order) is OrderState.LISTED
    assert token.balance_of(people.seller.address) == 1000
    assert _rejections("release_funds", "NOT_ACTUAL_SELLER") == before + 3


@pytest.mark.parametrize("signature", [None, 12345, 65, ["0x00"], object()])
def test_non_bytes_signature_is_not_the_seller(book, token_order, token, people, signature):
    book.register_buyer(people.a.address, token_order, 123)
    with pytest.raises(NotActualSeller):
        book.release_funds(people.seller.address, token_order, signature, people.a.address)
    assert book.state_of(token_order) is OrderState.LISTED
    assert token.balance_of(people.a.address) == 0


def test_signature_for_other_buyer_does_not_transfer(book, token_order, people):
    book.register_buyer(people.a.address, token_order, 123)
    book.register_buyer(people.b.address, token_order, 345)
    sig_for_b = sign_release(people.seller.key, people.b.address, 345)
    with pytest.raises(NotActualSeller):
        book.release_funds(people.seller.address, token_order, sig_for_b, people.a.address)


def test_allowance_withdrawn_after_listing(book, token_order, token, people):
    book.register_buyer(people.a.address, token_order, 1)
    token.approve(people.seller.address, CUSTODY, 0)
    sig = sign_release(people.seller.key, people.a.address, 1)
    with pytest.raises(TransactionFailed):
        book.release_funds(people.seller.address, token_order, sig, people.a.address)
    assert book.state_of(token_order) is OrderState.LISTED
    # restoring the allowance makes the same signature usable
    token.approve(people.seller.address, CUSTODY, 1000)
    book.release_funds(people.seller.address, token_order, sig, people.a.address)
    assert token.balance_of(people.a.address) == 1000


def test_reentrant_receive_hook_cannot_double_spend(book, native, people):
    native.credit(people.seller.address, 3 * ONE)
    oid = book.list_order(people.seller.address, 3, value=3 * ONE)
    book.register_buyer(people.a.address, oid, 5)
    sig = sign_release(people.seller.key, people.a.address, 5)
    seen = []

    def _call_back(sender, value):
        try:
            book.release_funds(people.seller.address, oid, sig, people.a.address)
        except ReentrantCall as e:
            seen.append(e)
            raise

    native.set_receive_hook(people.a.address, _call_back)
    with pytest.raises(TransactionFailed):
        book.release_funds(people.seller.address, oid, sig, people.a.address)

    assert len(seen) == 1
    assert book.state_of(oid) is OrderState.LISTED
    assert native.balance_of(CUSTODY) == 3 * ONE
    assert native.balance_of(people.a.address) == 0

    native.set_receive_hook(people.a.address, None)
    book.release_funds(people.seller.address, oid, sig, people.a.address)
    assert native.balance_of(people.a.address) == 3 * ONE


def test_concurrent_release_happens_once(book, token_order, token, people):
    book.register_buyer(people.a.address, token_order, 1)
    book.register_buyer(people.b.address, token_order, 2)
    sigs = {
        people.a.address: sign_release(people.seller.key, people.a.address, 1),
        people.b.address: sign_release(people.seller.key, people.b.address, 2),
    }
    barrier = threading.Barrier(len(sigs))
    results = {}

    def _worker(buyer):
        barrier.wait()
        try:
            book.release_funds(people.seller.address, token_order, sigs[buyer], buyer)
            results[buyer] = "ok"
        except NotListedOrReleased:
            results[buyer] = "late"

    threads = [threading.Thread(target=_worker, args=(b,)) for b in sigs]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results.values()) == ["late", "ok"]
    winner = next(b for b, r in results.items() if r == "ok")
    assert token.balance_of(winner) == 1000
    assert token.balance_of(people.seller.address) == 0


# ---- events & views ----------------------------------------------------------


def test_events_published_after_commit(book, token, native, people):
    seen = []
    unsubscribe = book.events.subscribe(seen.append)

    token.mint(people.seller.address, 1000)
    with pytest.raises(InsufficientFunds):
        book.list_order(people.seller.address, 1000, TOKEN)
    assert seen == []

    token.approve(people.seller.address, CUSTODY, 1000)
    oid = book.list_order(people.seller.address, 1000, TOKEN)
    book.register_buyer(people.a.address, oid, 345)
    sig = sign_release(people.seller.key, people.a.address, 345)
    book.release_funds(people.seller.address, oid, sig, people.a.address)

    assert [e.etype for e in seen] == [
        EventType.LISTING_CREATED,
        EventType.BUYER_REGISTERED,
        EventType.FUNDS_RELEASED,
    ]
    listed, registered, released = seen
    assert listed.asset == token.address and listed.state == "LISTED"
    assert registered.secret == 345
    assert released.signer == people.seller.address
    assert released.to_dict()["signature"] == "0x" + sig.hex()
    assert book.events.history(EventType.FUNDS_RELEASED, order_id=oid) == [released]

    unsubscribe()
    native.credit(people.seller.address, ONE)
    book.list_order(people.seller.address, 1, value=ONE)
    assert len(seen) == 3


def test_subscriber_error_does_not_undo(book, token_order, people):
    def _boom(ev):
        raise RuntimeError("subscriber down")

    book.events.subscribe(_boom)
    book.register_buyer(people.a.address, token_order, 1)
    assert book.fetch_order_details(token_order).buyers.buyers == (people.a.address,)


def test_views(book, token_order, people):
    assert book.state_of(0) is OrderState.NONE
    assert book.state_of(token_order + 1) is OrderState.NONE
    assert book.state_of(token_order) is OrderState.LISTED
    with pytest.raises(InvalidOrderId):
        book.fetch_order_details(token_order + 1)
    # returned order is a copy
    book.fetch_order_details(token_order).buyers.register(people.a.address, 1)
    assert len(book.fetch_order_details(token_order).buyers) == 0
    sig = sign_release(people.seller.key, people.a.address, 1)

    assert book.recover2(release_digest(people.a.address, 1), sig) == people.seller.address
