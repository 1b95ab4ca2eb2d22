from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from escrowbook.rpc.mount import create_app, mount_escrow, register_jsonrpc
from escrowbook.signing import release_digest, sign_release

from .conftest import TOKEN


@pytest.fixture
def client(book, token_order, people):
    book.register_buyer(people.a.address, token_order, 123)
    return TestClient(create_app(book))


def test_read_endpoints(client, token_order, token, people):
    assert client.get("/escrow/orders/total").json() == {"total": 1}

    r = client.get(f"/escrow/orders/{token_order}")
    assert r.status_code == 200
    body = r.json()
    assert body["seller"] == people.seller.address
    assert body["amount"] == "1000"
    assert body["assetKind"] == "token"
    assert body["assetReference"] == token.address
    assert body["state"] == "LISTED"
    assert body["buyers"] == [people.a.address]

    assert client.get(f"/escrow/orders/{token_order}/state").json()["state"] == "LISTED"
    assert client.get("/escrow/orders/99/state").json()["state"] == "NONE"


def test_unknown_order_is_404(client):
    r = client.get("/escrow/orders/99")
    assert r.status_code == 404
    assert r.json()["code"] == "INVALID_ORDER_ID"


def test_messages_seller_only(client, token_order, people):
    url = f"/escrow/orders/{token_order}/messages/{people.a.address}"
    r = client.get(url, params={"caller": people.seller.address})
    assert r.status_code == 200
    assert r.json()["secret"] == "123"
    r = client.get(url, params={"caller": people.a.address})
    assert r.status_code == 403
    assert r.json()["code"] == "NOT_SELLER"


def test_recover(client, people):
    digest = release_digest(people.a.address, 123)
    sig = sign_release(people.seller.key, people.a.address, 123)
    r = client.post("/escrow/recover", json={"digest": "0x" + digest.hex(), "signature": "0x" + sig.hex()})
    assert r.json() == {"signer": people.seller.address}
    r = client.post("/escrow/recover", json={"digest": "0x" + digest.hex(), "signature": "0x00"})
    assert r.json()["signer"] == "0x" + "00" * 20


def test_metrics_endpoint(client):
    r = client.get("/escrow/metrics")
    assert r.status_code == 200
    assert "escrowbook_orders_listed_total" in r.text


def test_mount_with_prefix(book):
    app = FastAPI()
    mount_escrow(app, book, prefix="/p2p", with_metrics=False)
    c = TestClient(app)
    assert c.get("/p2p/orders/total").json() == {"total": 0}
    assert c.get("/p2p/metrics").status_code == 404


def test_register_jsonrpc(book, token_order, people):
    class _Dispatcher:
        def __init__(self):
            self.methods = {}

        def add(self, name, fn):
            self.methods[name] = fn

    d = _Dispatcher()
    register_jsonrpc(d, book)
    assert d.methods["escrow.totalOrders"]() == 1
    assert d.methods["escrow.stateOf"](orderId=str(token_order)) == "LISTED"
    details = d.methods["escrow.fetchOrderDetails"](orderId=token_order)
    assert details["assetReference"].lower() == TOKEN.lower()
