from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from escrowbook.adapters.state_db import SQLiteOrderStore
from escrowbook.cli.inspect import app
from escrowbook.custody import AssetCustody
from escrowbook.orderbook import OrderBook
from escrowbook.signing import release_digest, sign_release

from .conftest import CUSTODY, TOKEN

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("ESCROW_CONFIG_FILE", "ESCROW_DB_PATH", "ESCROW_SIGNING_BIND_DOMAIN", "ESCROW_SELLER_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db(tmp_path, native, token, people):
    path = str(tmp_path / "escrow.db")
    token.mint(people.seller.address, 1000)
    token.approve(people.seller.address, CUSTODY, 1000)
    book = OrderBook(AssetCustody(CUSTODY, native=native, tokens={TOKEN: token}), store=SQLiteOrderStore(path))
    oid = book.list_order(people.seller.address, 1000, TOKEN)
    book.register_buyer(people.a.address, oid, 345)
    book.store.close()
    return path


def test_show_and_total(db, people):
    r = runner.invoke(app, ["total", "--db", db])
    assert r.exit_code == 0
    assert r.stdout.strip() == "1"

    r = runner.invoke(app, ["show", "1", "--db", db, "--secrets"])
    assert r.exit_code == 0
    out = json.loads(r.stdout)
    assert out["state"] == "LISTED"
    assert out["secrets"] == {people.a.address: "345"}

    r = runner.invoke(app, ["show", "7", "--db", db])
    assert r.exit_code == 1


def test_db_from_env(db, monkeypatch):
    monkeypatch.setenv("ESCROW_DB_PATH", db)
    r = runner.invoke(app, ["total"])
    assert r.exit_code == 0
    assert r.stdout.strip() == "1"


def test_missing_db():
    assert runner.invoke(app, ["total"]).exit_code == 2


def test_sign_then_recover(people):
    key = "0x" + bytes(people.seller.key).hex()
    r = runner.invoke(app, ["sign", "--key", key, people.a.address, "345"])
    assert r.exit_code == 0
    sig = r.stdout.strip()
    assert bytes.fromhex(sig[2:]) == sign_release(people.seller.key, people.a.address, 345)

    r = runner.invoke(app, ["digest", people.a.address, "345"])
    envelope = json.loads(r.stdout)["envelope"]
    assert envelope == "0x" + release_digest(people.a.address, 345).hex()

    r = runner.invoke(app, ["recover", envelope, sig])
    assert r.stdout.strip() == people.seller.address


def test_domain_option(people):
    plain = json.loads(runner.invoke(app, ["digest", people.a.address, "1"]).stdout)
    bound = json.loads(runner.invoke(app, ["digest", people.a.address, "1", "--domain", CUSTODY]).stdout)
    assert plain["message"] != bound["message"]


def test_bad_buyer():
    r = runner.invoke(app, ["digest", "0x1234", "1"])
    assert r.exit_code == 1


@pytest.mark.parametrize("key", ["0x1234", "0x" + "zz" * 32, "0x" + "00" * 31])
def test_sign_with_malformed_key(people, key):
    r = runner.invoke(app, ["sign", "--key", key, people.a.address, "345"])
    assert r.exit_code == 1
    assert r.exception is None or isinstance(r.exception, SystemExit)
