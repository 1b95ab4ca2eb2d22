from __future__ import annotations

"""
Asset custody: moving value into and out of the escrow for both asset kinds.

Native coin
    Listing attaches `value` base units, which must equal exactly
    `to_base_units(amount)`; the value is pulled from the seller into the
    custody account right away and recorded on the order. Release pays that
    recorded value, whatever the current decimals setting.

Fungible token ("authorize now, pull later")
    Listing only checks that the seller holds at least `amount` and has
    approved the custody account for exactly `amount`. Nothing moves until
    release, which calls `transfer_from(custody, seller, buyer, amount)`; the
    seller keeps the tokens (and any yield) until then, and the allowance must
    still cover the amount at release time.

Deposit problems raise InsufficientFunds; every release problem, whether a
False return or an exception from the ledger, raises TransactionFailed.
"""

import logging
from typing import Callable, Dict, Mapping, Optional, Union

from .address import normalize
from .errors import InsufficientFunds, InvalidAmount, TransactionFailed, UnsupportedAsset
from .ledger import NativeLedger, TokenLedger
from .types import AssetRef, Order
from .units import DEFAULT_NATIVE_DECIMALS, from_base_units, to_base_units

log = logging.getLogger(__name__)

TokenResolver = Union[Mapping[str, TokenLedger], Callable[[str], Optional[TokenLedger]]]


class AssetCustody:
    def __init__(
        self,
        address: str,
        *,
        native: NativeLedger,
        tokens: Optional[TokenResolver] = None,
        native_decimals: int = DEFAULT_NATIVE_DECIMALS,
    ) -> None:
        self.address = normalize(address, field="custody")
        self.native = native
        self.native_decimals = native_decimals
        self._resolve: Optional[Callable[[str], Optional[TokenLedger]]] = None
        self._tokens: Dict[str, TokenLedger] = {}
        if isinstance(tokens, Mapping):
            for addr, ledger in tokens.items():
                self.add_token(addr, ledger)
        elif tokens is not None:
            self._resolve = tokens

    # ---- helpers -----------------------------------------------------------

    def add_token(self, address: str, ledger: TokenLedger) -> None:
        self._tokens[normalize(address, field="token")] = ledger

    def token_ledger(self, asset: AssetRef) -> TokenLedger:
        key = asset.address or ""
        ledger = self._tokens.get(key)
        if ledger is None and self._resolve is not None:
            ledger = self._resolve(key)
        if ledger is None:
            raise UnsupportedAsset("no ledger for token", details={"token": key})
        return ledger

    def native_value(self, amount: int) -> int:
        try:
            return to_base_units(amount, self.native_decimals)
        except ValueError as e:
            raise InvalidAmount(amount, message=str(e)) from e

    # ---- listing -----------------------------------------------------------

    def check_deposit(self, seller: str, asset: AssetRef, amount: int, value: int) -> int:
        """
        Validate a deposit without moving anything. Returns the base units
        custody will hold for the order (0 for tokens).
        """
        if asset.is_native:
            self.native_value(amount)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InsufficientFunds("attached value must be an int", details={"value": repr(value)})
            mismatch = InsufficientFunds(
                "attached value does not match amount",
                details={"amount": str(amount), "value": str(value), "decimals": self.native_decimals},
            )
            try:
                whole = from_base_units(value, self.native_decimals)
            except ValueError as e:
                raise mismatch from e
            if whole != amount:
                raise mismatch
            return value
        if value:
            raise InsufficientFunds("native value attached to a token order", details={"value": str(value)})
        ledger = self.token_ledger(asset)
        balance = ledger.balance_of(seller)
        allowance = ledger.allowance(seller, self.address)
        if balance < amount or allowance != amount:
            raise InsufficientFunds(
                "token balance/allowance mismatch",
                details={
                    "token": asset.address,
                    "amount": str(amount),
                    "balance": str(balance),
                    "allowance": str(allowance),
                },
            )
        return 0

    def deposit(self, seller: str, asset: AssetRef, amount: int, value: int = 0) -> None:
        self.check_deposit(seller, asset, amount, value)
        if not asset.is_native:
            return
        if not self.native.transfer(seller, self.address, value):
            raise InsufficientFunds("could not pull attached value", details={"value": str(value)})
        log.debug("custody pulled %d base units from %s", value, seller)

    # ---- release -----------------------------------------------------------

    def release(self, order: Order, to: str) -> None:
        asset = order.asset
        try:
            if asset.is_native:
                ok = self.native.transfer(self.address, to, order.value)
            else:
                ok = self.token_ledger(asset).transfer_from(self.address, order.seller, to, order.amount)
        except TransactionFailed:
            raise
        except Exception as e:
            raise TransactionFailed(
                "custody transfer raised", details={"order_id": order.order_id, "error": str(e)}
            ) from e
        if not ok:
            raise TransactionFailed("custody transfer failed", details={"order_id": order.order_id, "asset": str(asset)})
        log.debug("custody released order %d (%s) to %s", order.order_id, asset, to)


__all__ = ["AssetCustody", "TokenResolver"]
