"""
escrowbook: peer-to-peer escrow order book.

A seller deposits native coin or a fungible-token balance into custody, buyers
register an off-chain agreed secret against the deposit, and the seller
releases the whole deposit to exactly one registered buyer by signing that
buyer's (address, secret) pair.

Public surface:
- OrderBook (escrowbook.orderbook)
- AssetCustody (escrowbook.custody)
- SignatureAuthorizer, sign_release, recover2 (escrowbook.signing)
- BuyerRegistry (escrowbook.registry)
- Order, OrderState, AssetRef, AssetKind (escrowbook.types)
- config, errors, events, metrics, units; adapters, rpc, cli subpackages
"""

from .custody import AssetCustody
from .orderbook import OrderBook
from .registry import BuyerRegistry
from .signing import SignatureAuthorizer, recover2, sign_release
from .types import AssetKind, AssetRef, Order, OrderState
from .version import __version__

__all__ = [
    "__version__",
    "OrderBook",
    "AssetCustody",
    "SignatureAuthorizer",
    "sign_release",
    "recover2",
    "BuyerRegistry",
    "Order",
    "OrderState",
    "AssetRef",
    "AssetKind",
]
