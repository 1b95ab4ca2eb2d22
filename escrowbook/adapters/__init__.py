"""Storage adapters for the escrow order book."""

from .state_db import SQLiteOrderStore

__all__ = ["SQLiteOrderStore"]
