from __future__ import annotations

"""
escrowbook.rpc.methods
----------------------

JSON-RPC style method implementations over an OrderBook.

Exposed methods (bind via `make_methods`):
  • escrow.fetchOrderDetails
  • escrow.stateOf
  • escrow.getMessages
  • escrow.totalOrders
  • escrow.recover2

Only the read surface and the standalone signature recovery are exposed here.
The mutating operations need an authenticated caller identity and are invoked
in-process by whatever executes transactions against the book.

Usage:
    from escrowbook.rpc.methods import make_methods
    methods = make_methods(book)
    dispatcher.register_many(methods)
"""

from typing import Any, Callable, Dict

from pydantic import BaseModel, Field

from ..errors import EscrowError, InvalidOrderId, NotSeller
from ..orderbook import OrderBook


# ---- Request DTOs ----------------------------------------------------------


class RecoverRequest(BaseModel):
    digest: str = Field(..., description="0x-prefixed 32-byte hash")
    signature: str = Field(..., description="0x-prefixed 65-byte r||s||v signature")


# ---- Helpers ---------------------------------------------------------------


def _coerce_order_id(value: Any) -> int:
    try:
        oid = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidOrderId(details={"order_id": repr(value)}) from e
    if oid < 0:
        raise InvalidOrderId(details={"order_id": repr(value)})
    return oid


def http_status_for(err: EscrowError) -> int:
    if isinstance(err, InvalidOrderId):
        return 404
    if isinstance(err, NotSeller):
        return 403
    return 400


# ---- JSON-RPC method factory ----------------------------------------------


def make_methods(book: OrderBook) -> Dict[str, Callable[..., Any]]:
    """
    Build a mapping of JSON-RPC method name -> callable.
    Each callable returns plain JSON-serializable structures.
    """

    def escrow_fetch_order_details(*, orderId: Any) -> Dict[str, Any]:
        return book.fetch_order_details(_coerce_order_id(orderId)).to_dict()

    def escrow_state_of(*, orderId: Any) -> str:
        return book.state_of(_coerce_order_id(orderId)).name

    def escrow_get_messages(*, caller: str, orderId: Any, buyer: str) -> str:
        return str(book.get_messages(caller, _coerce_order_id(orderId), buyer))

    def escrow_total_orders() -> int:
        return book.total_orders()

    def escrow_recover2(*, digest: str, signature: str) -> str:
        return book.recover2(digest, signature)

    return {
        "escrow.fetchOrderDetails": escrow_fetch_order_details,
        "escrow.stateOf": escrow_state_of,
        "escrow.getMessages": escrow_get_messages,
        "escrow.totalOrders": escrow_total_orders,
        "escrow.recover2": escrow_recover2,
    }


# ---- REST adapter (FastAPI) ------------------------------------------------


def build_rest_router(book: OrderBook):
    """
    Return a FastAPI APIRouter exposing the same surface over REST.
    Escrow errors become JSON bodies `{"code", "message", "details"}` with
    404 (unknown order), 403 (not the seller) or 400 (anything else).
    """
    from fastapi import APIRouter
    from fastapi.responses import JSONResponse

    router = APIRouter()
    methods = make_methods(book)

    def _call(name: str, **kwargs: Any) -> Any:
        try:
            return methods[name](**kwargs)
        except EscrowError as e:
            return JSONResponse(status_code=http_status_for(e), content=e.to_dict())

    @router.get("/orders/total")
    def http_total_orders():
        return {"total": _call("escrow.totalOrders")}

    @router.get("/orders/{order_id}")
    def http_fetch_order(order_id: int):
        return _call("escrow.fetchOrderDetails", orderId=order_id)

    @router.get("/orders/{order_id}/state")
    def http_state_of(order_id: int):
        res = _call("escrow.stateOf", orderId=order_id)
        return res if isinstance(res, JSONResponse) else {"orderId": order_id, "state": res}

    @router.get("/orders/{order_id}/messages/{buyer}")
    def http_get_messages(order_id: int, buyer: str, caller: str):
        res = _call("escrow.getMessages", caller=caller, orderId=order_id, buyer=buyer)
        return res if isinstance(res, JSONResponse) else {"orderId": order_id, "buyer": buyer, "secret": res}

    @router.post("/recover")
    def http_recover(req: RecoverRequest):
        return {"signer": _call("escrow.recover2", digest=req.digest, signature=req.signature)}

    return router


__all__ = ["RecoverRequest", "make_methods", "build_rest_router", "http_status_for"]
