# -*- coding: utf-8 -*-
"""
escrowbook.ledger
=================

Ledgers the custody layer moves value through. Both are external
collaborators; this module defines the minimal protocols the order book needs
and ships deterministic in-memory implementations for devnets and tests.

Token ledger (ERC-20–like, explicit caller)
-------------------------------------------
balance_of(owner) -> int
allowance(owner, spender) -> int
transfer_from(caller, owner, to, amount) -> bool

`transfer_from` may either return False or raise on failure; custody treats
both the same way.

Native ledger
-------------
balance_of(addr) -> int
transfer(sender, to, value) -> bool

A recipient of a native transfer may run code on receipt (a *receive hook*).
If the hook raises, the transfer is undone and reported as failed, which is
how a reentrant call-back from a malicious recipient surfaces to custody.

Amounts are non-negative integers in the ledger's base unit; balances never go
negative and nothing wraps.
"""

from __future__ import annotations

import logging
from threading import RLock
from typing import Callable, Dict, Optional, Protocol, Tuple

from .address import normalize
from .units import U256_MAX

log = logging.getLogger(__name__)

ReceiveHook = Callable[[str, int], None]


class TokenLedger(Protocol):
    def balance_of(self, owner: str) -> int: ...
    def allowance(self, owner: str, spender: str) -> int: ...
    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> bool: ...


class NativeLedger(Protocol):
    def balance_of(self, addr: str) -> int: ...
    def transfer(self, sender: str, to: str, value: int) -> bool: ...


class TokenError(RuntimeError):
    """Raised by a strict (revert-on-failure) token ledger."""


def _require_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0 or amount > U256_MAX:
        raise ValueError(f"amount must be an int in [0, 2**256-1], got {amount!r}")
    return amount


# ------------------------------------------------------------------------------
# In-memory fungible token
# ------------------------------------------------------------------------------


class MemoryTokenLedger:
    """
    Balance/allowance ledger for one token.

    strict=False: failed transfers return False (boolean semantics).
    strict=True:  failed transfers raise TokenError (revert semantics).
    """

    def __init__(self, address: str, *, symbol: str = "TKN", decimals: int = 18, strict: bool = False) -> None:
        self.address = normalize(address, field="token")
        self.symbol = symbol
        self.decimals = decimals
        self.strict = strict
        self.total_supply = 0
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._lock = RLock()

    # views

    def balance_of(self, owner: str) -> int:
        return self._balances.get(normalize(owner), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((normalize(owner), normalize(spender)), 0)

    # state-changing (explicit caller)

    def mint(self, to: str, amount: int) -> None:
        _require_amount(amount)
        with self._lock:
            to = normalize(to)
            if self.total_supply + amount > U256_MAX:
                raise TokenError("supply overflow")
            self._balances[to] = self._balances.get(to, 0) + amount
            self.total_supply += amount

    def approve(self, caller: str, spender: str, amount: int) -> bool:
        _require_amount(amount)
        with self._lock:
            self._allowances[(normalize(caller), normalize(spender))] = amount
        return True

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> bool:
        _require_amount(amount)
        with self._lock:
            caller, owner, to = normalize(caller), normalize(owner), normalize(to)
            allowed = self._allowances.get((owner, caller), 0)
            if allowed < amount:
                return self._fail(f"allowance {allowed} < {amount}")
            if not self._move(owner, to, amount):
                return False
            self._allowances[(owner, caller)] = allowed - amount
            return True

    def _move(self, src: str, dst: str, amount: int) -> bool:
        have = self._balances.get(src, 0)
        if have < amount:
            return self._fail(f"balance {have} < {amount}")
        self._balances[src] = have - amount
        self._balances[dst] = self._balances.get(dst, 0) + amount
        return True

    def _fail(self, reason: str) -> bool:
        if self.strict:
            raise TokenError(f"{self.symbol}: {reason}")
        log.debug("%s transfer rejected: %s", self.symbol, reason)
        return False


# ------------------------------------------------------------------------------
# In-memory native coin
# ------------------------------------------------------------------------------


class MemoryNativeLedger:
    """Account balances in base units, with optional per-recipient receive hooks."""

    def __init__(self) -> None:
        self._balances: Dict[str, int] = {}
        self._hooks: Dict[str, ReceiveHook] = {}
        self._lock = RLock()

    def balance_of(self, addr: str) -> int:
        return self._balances.get(normalize(addr), 0)

    def credit(self, addr: str, value: int) -> None:
        _require_amount(value)
        with self._lock:
            addr = normalize(addr)
            self._balances[addr] = self._balances.get(addr, 0) + value

    def set_receive_hook(self, addr: str, hook: Optional[ReceiveHook]) -> None:
        addr = normalize(addr)
        if hook is None:
            self._hooks.pop(addr, None)
        else:
            self._hooks[addr] = hook

    def transfer(self, sender: str, to: str, value: int) -> bool:
        _require_amount(value)
        with self._lock:
            sender, to = normalize(sender), normalize(to)
            have = self._balances.get(sender, 0)
            if have < value:
                log.debug("native transfer rejected: balance %d < %d", have, value)
                return False
            self._balances[sender] = have - value
            self._balances[to] = self._balances.get(to, 0) + value
            hook = self._hooks.get(to)
            if hook is None:
                return True
            try:
                hook(sender, value)
            except Exception as e:
                # recipient reverted: undo the movement
                log.info("receive hook of %s reverted: %s", to, e)
                self._balances[to] -= value
                self._balances[sender] += value
                return False
            return True


__all__ = [
    "TokenLedger",
    "NativeLedger",
    "TokenError",
    "ReceiveHook",
    "MemoryTokenLedger",
    "MemoryNativeLedger",
]
