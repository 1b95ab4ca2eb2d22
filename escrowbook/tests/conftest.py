from __future__ import annotations

from types import SimpleNamespace

import pytest
from eth_account import Account

from escrowbook.custody import AssetCustody
from escrowbook.ledger import MemoryNativeLedger, MemoryTokenLedger
from escrowbook.orderbook import OrderBook

CUSTODY = "0x00000000000000000000000000000000000e5c70"
TOKEN = "0x000000000000000000000000000000000000700d"
ONE = 10**18


def _acct(n: int):
    return Account.from_key(bytes([n]) * 32)


@pytest.fixture
def people():
    """Deterministic seller/buyers/outsider accounts (address + key)."""
    return SimpleNamespace(seller=_acct(0x11), a=_acct(0x22), b=_acct(0x33), mallory=_acct(0x44))


@pytest.fixture
def native():
    return MemoryNativeLedger()


@pytest.fixture
def token():
    return MemoryTokenLedger(TOKEN, symbol="TKN")


@pytest.fixture
def custody(native, token):
    return AssetCustody(CUSTODY, native=native, tokens={TOKEN: token})


@pytest.fixture
def book(custody):
    return OrderBook(custody)


@pytest.fixture
def token_order(book, token, people):
    """Seller lists 1000 TKN with an exact allowance; returns the order id."""
    token.mint(people.seller.address, 1000)
    token.approve(people.seller.address, CUSTODY, 1000)
    return book.list_order(people.seller.address, 1000, TOKEN)
