from __future__ import annotations

"""
escrowbook.rpc
--------------

Read-only RPC surface for the escrow order book:
  • JSON-RPC method table (`methods.make_methods`)
  • FastAPI REST router and mount helpers (`mount.mount_escrow`)
"""

from typing import Dict, Final

# Base path under which escrow endpoints are mounted into a host API.
RPC_PREFIX: Final[str] = "/escrow"

ESCROW_OPENAPI_TAG: Final[Dict[str, str]] = {
    "name": "escrow",
    "description": "Escrow order book: order details, registered secrets, signature recovery.",
}

__all__ = ["RPC_PREFIX", "ESCROW_OPENAPI_TAG"]
