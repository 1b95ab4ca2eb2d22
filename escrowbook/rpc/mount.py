from __future__ import annotations

"""
escrowbook.rpc.mount
--------------------

Helpers to mount the escrow RPC surface into an existing FastAPI app and/or to
register the JSON-RPC methods with your dispatcher.

Typical usage (REST):
    from fastapi import FastAPI
    from escrowbook.rpc.mount import mount_escrow
    app = FastAPI()
    mount_escrow(app, book)

Typical usage (JSON-RPC):
    from escrowbook.rpc.mount import register_jsonrpc
    register_jsonrpc(dispatcher, book)
"""

from typing import Any, Protocol

from fastapi import FastAPI, Response

from .. import metrics
from ..orderbook import OrderBook
from . import ESCROW_OPENAPI_TAG, RPC_PREFIX
from .methods import build_rest_router, make_methods


class _JsonRpcDispatcherLike(Protocol):
    """Minimal protocol to support common JSON-RPC dispatchers."""
    def add(self, method: str, func: Any) -> None: ...
    def register(self, method: str, func: Any) -> None: ...


def mount_escrow(app: FastAPI, book: OrderBook, *, prefix: str = RPC_PREFIX, with_metrics: bool = True) -> None:
    """Mount the REST endpoints (and optionally `/metrics`) under `prefix`."""
    app.include_router(build_rest_router(book), prefix=prefix, tags=[ESCROW_OPENAPI_TAG["name"]])
    if with_metrics:

        @app.get(f"{prefix}/metrics", include_in_schema=False)
        def _metrics() -> Response:
            payload, ctype = metrics.render_latest()
            return Response(content=payload, media_type=ctype)


def register_jsonrpc(dispatcher: _JsonRpcDispatcherLike, book: OrderBook) -> None:
    """Register JSON-RPC methods; prefers `.add(name, fn)`, falls back to `.register`."""
    for name, fn in make_methods(book).items():
        try:
            dispatcher.add(name, fn)  # type: ignore[attr-defined]
        except AttributeError:
            dispatcher.register(name, fn)  # type: ignore[attr-defined]


def create_app(book: OrderBook) -> FastAPI:
    """Standalone app serving only the escrow surface."""
    from ..version import __version__

    app = FastAPI(
        title="Escrow order book",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_tags=[ESCROW_OPENAPI_TAG],
    )
    mount_escrow(app, book)
    return app


__all__ = ["mount_escrow", "register_jsonrpc", "create_app"]
