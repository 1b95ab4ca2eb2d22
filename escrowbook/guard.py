from __future__ import annotations

"""
Non-reentrancy latch keyed by a scope tag.

    guard = ReentrancyGuard()
    with guard.enter("orderbook"):
        # critical section; a nested `guard.enter("orderbook")` from code
        # invoked here (e.g. a transfer recipient calling back in) raises
        # ReentrantCall
        ...

The latch is released on every exit path, including exceptions.
"""

from contextlib import contextmanager
from threading import Lock
from typing import Iterator, Set

from .errors import ReentrantCall

DEFAULT_SCOPE = "default"


class ReentrancyGuard:
    def __init__(self) -> None:
        self._entered: Set[str] = set()
        self._lock = Lock()

    def is_entered(self, scope: str = DEFAULT_SCOPE) -> bool:
        return scope in self._entered

    def require_not_entered(self, scope: str = DEFAULT_SCOPE) -> None:
        if scope in self._entered:
            raise ReentrantCall("reentrant call", details={"scope": scope})

    @contextmanager
    def enter(self, scope: str = DEFAULT_SCOPE) -> Iterator[None]:
        with self._lock:
            self.require_not_entered(scope)
            self._entered.add(scope)
        try:
            yield
        finally:
            with self._lock:
                self._entered.discard(scope)


__all__ = ["ReentrancyGuard", "DEFAULT_SCOPE"]
