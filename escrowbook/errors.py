from __future__ import annotations
# escrowbook/errors.py
"""
Error types for the escrow order book. Every rejection raised by an OrderBook
operation is one of these; all of them are lightweight, serializable, and safe
to surface over RPC/logs.

Taxonomy:
- input validity:     InvalidAmount, InvalidOrderId, InvalidSecret,
                      InvalidAddress, UnsupportedAsset
- authorization/role: SellersNotAllowed (OnlyBuyersAllowed), NotSeller,
                      BuyerNotRegistered (NotBuyer), NotActualSeller
- state machine:      NotListedOrReleased, AlreadyRegistered, AlreadyListed,
                      ReentrantCall
- resource/transfer:  InsufficientFunds, TransactionFailed
"""


import json
from typing import Any, Dict, Mapping, Optional


class EscrowError(Exception):
    """Base class for escrow domain errors."""

    code: str = "ESCROW_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"), default=str)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


def _with_order(order_id: Optional[int], details: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    d = dict(details or {})
    if order_id is not None:
        d.setdefault("order_id", int(order_id))
    return d


# ---- Input validity -----------------------------------------------------------


class InvalidAmount(EscrowError):
    """Listing amount is zero, negative, or does not fit in 256 bits."""
    code = "INVALID_AMOUNT"

    def __init__(self, amount: Any = None, *, message: str = "invalid amount",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        d = dict(details or {})
        if amount is not None:
            d["amount"] = str(amount)
        super().__init__(message, details=d)


class InvalidOrderId(EscrowError):
    """Order id was never assigned (0 or above the highest id)."""
    code = "INVALID_ORDER_ID"

    def __init__(self, order_id: Optional[int] = None, *, message: str = "unknown order id",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=_with_order(order_id, details))


class InvalidSecret(EscrowError):
    """Registered secret is not an unsigned 256-bit integer."""
    code = "INVALID_SECRET"


class InvalidAddress(EscrowError):
    """An identity is not a 20-byte hex address."""
    code = "INVALID_ADDRESS"


class UnsupportedAsset(EscrowError):
    """No token ledger is known for the referenced asset."""
    code = "UNSUPPORTED_ASSET"


# ---- Authorization / role -----------------------------------------------------


class SellersNotAllowed(EscrowError):
    """The seller of an order tried to register as one of its buyers."""
    code = "SELLERS_NOT_ALLOWED"

    def __init__(self, order_id: Optional[int] = None, *, message: str = "only buyers allowed",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=_with_order(order_id, details))


OnlyBuyersAllowed = SellersNotAllowed


class NotSeller(EscrowError):
    """A seller-only operation was invoked by someone else."""
    code = "NOT_SELLER"

    def __init__(self, order_id: Optional[int] = None, *, caller: Optional[str] = None,
                 message: str = "caller is not the seller",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        d = _with_order(order_id, details)
        if caller is not None:
            d["caller"] = caller
        super().__init__(message, details=d)


class BuyerNotRegistered(EscrowError):
    """The named buyer never registered against the order."""
    code = "BUYER_NOT_REGISTERED"

    def __init__(self, order_id: Optional[int] = None, *, buyer: Optional[str] = None,
                 message: str = "buyer not registered",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        d = _with_order(order_id, details)
        if buyer is not None:
            d["buyer"] = buyer
        super().__init__(message, details=d)


NotBuyer = BuyerNotRegistered


class NotActualSeller(EscrowError):
    """The release signature does not recover to the recorded seller."""
    code = "NOT_ACTUAL_SELLER"

    def __init__(self, order_id: Optional[int] = None, *, recovered: Optional[str] = None,
                 message: str = "signature not from seller",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        d = _with_order(order_id, details)
        if recovered is not None:
            d["recovered"] = recovered
        super().__init__(message, details=d)


# ---- State machine ------------------------------------------------------------


class NotListedOrReleased(EscrowError):
    """Action attempted while the order is not in the LISTED state."""
    code = "NOT_LISTED_OR_RELEASED"

    def __init__(self, order_id: Optional[int] = None, *, state: Optional[str] = None,
                 message: str = "order not listed or already released",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        d = _with_order(order_id, details)
        if state is not None:
            d["state"] = state
        super().__init__(message, details=d)


class AlreadyRegistered(EscrowError):
    """The buyer already holds a registration on the order."""
    code = "ALREADY_REGISTERED"

    def __init__(self, order_id: Optional[int] = None, *, buyer: Optional[str] = None,
                 message: str = "buyer already registered",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        d = _with_order(order_id, details)
        if buyer is not None:
            d["buyer"] = buyer
        super().__init__(message, details=d)


class AlreadyListed(EscrowError):
    """An order id was written twice."""
    code = "ALREADY_LISTED"

    def __init__(self, order_id: Optional[int] = None, *, message: str = "order already listed",
                 details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=_with_order(order_id, details))


class ReentrantCall(EscrowError):
    """A mutating operation was entered while another one is in flight."""
    code = "REENTRANT_CALL"


# ---- Resource / transfer ------------------------------------------------------


class InsufficientFunds(EscrowError):
    """Deposit-time balance, allowance or attached-value mismatch."""
    code = "INSUFFICIENT_FUNDS"


class TransactionFailed(EscrowError):
    """Release-time custody transfer failed."""
    code = "TRANSACTION_FAILED"


__all__ = [
    "EscrowError",
    "InvalidAmount",
    "InvalidOrderId",
    "InvalidSecret",
    "InvalidAddress",
    "UnsupportedAsset",
    "SellersNotAllowed",
    "OnlyBuyersAllowed",
    "NotSeller",
    "BuyerNotRegistered",
    "NotBuyer",
    "NotActualSeller",
    "NotListedOrReleased",
    "AlreadyRegistered",
    "AlreadyListed",
    "ReentrantCall",
    "InsufficientFunds",
    "TransactionFailed",
]
