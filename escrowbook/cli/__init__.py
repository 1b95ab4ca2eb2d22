"""Command-line tools for the escrow order book (`escrowbook` console script)."""

from .inspect import app, get_app

__all__ = ["app", "get_app"]
