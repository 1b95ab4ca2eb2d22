from __future__ import annotations

"""
Escrow SQLite state adapter
===========================

Purpose
-------
Durable storage for the order table and the per-order buyer/secret table, so
the order book survives process restarts. Implements the same interface as
`escrowbook.store.MemoryOrderStore`.

Design notes
------------
- Single-writer, many-reader friendly via WAL.
- Schema versioned and auto-created on open.
- Amounts and secrets are unsigned 256-bit integers, which do not fit
  SQLite's INTEGER; both are stored as decimal TEXT.
- All writes made by one order book operation happen inside `tx()`;
  a failed operation rolls back every row it touched, including the id
  counter.

Example
-------
    store = SQLiteOrderStore("escrow.db")
    book = OrderBook(custody, store=store)
    ...
    store.close()
"""

import contextlib
import logging
import sqlite3
import threading
from typing import Iterator, List, Optional, Tuple

from ..errors import AlreadyListed, InvalidOrderId
from ..registry import BuyerRegistry
from ..types import AssetRef, Order, OrderState

log = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS meta (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        order_id   INTEGER PRIMARY KEY,
        seller     TEXT NOT NULL,
        amount     TEXT NOT NULL,
        value      TEXT NOT NULL,
        asset_kind TEXT NOT NULL,
        asset_ref  TEXT,
        state      INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS buyers (
        order_id INTEGER NOT NULL REFERENCES orders(order_id),
        seq      INTEGER NOT NULL,
        buyer    TEXT NOT NULL,
        secret   TEXT NOT NULL,
        PRIMARY KEY (order_id, buyer)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_buyers_seq ON buyers(order_id, seq)",
)


class SQLiteOrderStore:
    """
    Thread-safe for simple concurrent access via an internal RLock. For high
    concurrency, open separate connections per thread or process.
    """

    SCHEMA_VERSION = 1

    def __init__(self, path: str) -> None:
        """`path` may be a filesystem path, ":memory:" or a "file:" URI."""
        uri = path.startswith("file:")
        self._db = sqlite3.connect(
            path,
            uri=uri,
            check_same_thread=False,
            isolation_level=None,  # autocommit; transactions are explicit
        )
        self._db.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._apply_pragmas()
        with self.tx():
            self._migrate()
        log.debug("opened escrow store %s (last order id %d)", path, self.last_id())

    # -- lifecycle -------------------------------------------------------------

    def close(self) -> None:
        with self._lock:
            self._db.close()

    @contextlib.contextmanager
    def tx(self) -> Iterator[None]:
        """
        Transaction context manager. Nested use joins the outer transaction.

            with store.tx():
                store.put_new(order)
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            self._db.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
            except BaseException:
                self._db.execute("ROLLBACK")
                raise
            else:
                self._db.execute("COMMIT")
            finally:
                self._depth = 0

    def _apply_pragmas(self) -> None:
        cur = self._db.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        cur.execute("PRAGMA synchronous=NORMAL")
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    # -- schema ------------------------------------------------------------------

    def _migrate(self) -> None:
        cur = self._db.cursor()
        # one statement per execute: executescript would commit the open tx
        for stmt in _SCHEMA:
            cur.execute(stmt)
        cur.execute(
            "INSERT OR IGNORE INTO meta(key, value) VALUES('schema_version', ?)",
            (str(self.SCHEMA_VERSION),),
        )
        cur.execute("INSERT OR IGNORE INTO meta(key, value) VALUES('order_counter', '0')")
        row = cur.execute("SELECT value FROM meta WHERE key='schema_version'").fetchone()
        if int(row["value"]) != self.SCHEMA_VERSION:
            raise RuntimeError(f"unsupported escrow schema version {row['value']}")
        cur.close()

    # -- counter -----------------------------------------------------------------

    def last_id(self) -> int:
        with self._lock:
            row = self._db.execute("SELECT value FROM meta WHERE key='order_counter'").fetchone()
        return int(row["value"])

    def allocate_id(self) -> int:
        with self.tx():
            nxt = self.last_id() + 1
            self._db.execute("UPDATE meta SET value=? WHERE key='order_counter'", (str(nxt),))
            return nxt

    # -- orders ------------------------------------------------------------------

    def _buyers(self, order_id: int) -> List[Tuple[str, int]]:
        rows = self._db.execute(
            "SELECT buyer, secret FROM buyers WHERE order_id=? ORDER BY seq", (order_id,)
        ).fetchall()
        return [(r["buyer"], int(r["secret"])) for r in rows]

    def get(self, order_id: int) -> Optional[Order]:
        with self._lock:
            row = self._db.execute("SELECT * FROM orders WHERE order_id=?", (order_id,)).fetchone()
            if row is None:
                return None
            buyers = self._buyers(order_id)
        asset = AssetRef.native() if row["asset_kind"] == "native" else AssetRef.token(row["asset_ref"])
        return Order(
            order_id=int(row["order_id"]),
            seller=row["seller"],
            amount=int(row["amount"]),
            asset=asset,
            value=int(row["value"]),
            state=OrderState(int(row["state"])),
            buyers=BuyerRegistry.from_list(buyers, order_id=order_id),
        )

    def put_new(self, order: Order) -> None:
        with self.tx():
            try:
                self._db.execute(
                    "INSERT INTO orders(order_id, seller, amount, value, asset_kind, asset_ref, state)"
                    " VALUES(?, ?, ?, ?, ?, ?, ?)",
                    (
                        order.order_id,
                        order.seller,
                        str(order.amount),
                        str(order.value),
                        order.asset.kind.value,
                        order.asset.address,
                        int(order.state),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise AlreadyListed(order.order_id) from e
            self._append_buyers(order, 0)

    def update(self, order: Order) -> None:
        with self.tx():
            cur = self._db.execute(
                "UPDATE orders SET state=? WHERE order_id=?", (int(order.state), order.order_id)
            )
            if cur.rowcount == 0:
                raise InvalidOrderId(order.order_id)
            have = self._db.execute(
                "SELECT COUNT(*) AS n FROM buyers WHERE order_id=?", (order.order_id,)
            ).fetchone()["n"]
            self._append_buyers(order, int(have))

    def _append_buyers(self, order: Order, start: int) -> None:
        items = order.buyers.items()[start:]
        self._db.executemany(
            "INSERT INTO buyers(order_id, seq, buyer, secret) VALUES(?, ?, ?, ?)",
            [(order.order_id, start + i, b, str(s)) for i, (b, s) in enumerate(items)],
        )

    def __len__(self) -> int:
        with self._lock:
            return int(self._db.execute("SELECT COUNT(*) AS n FROM orders").fetchone()["n"])


__all__ = ["SQLiteOrderStore"]
