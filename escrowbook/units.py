"""
escrowbook.units: display-unit ↔ base-unit conversion for the native asset.

Callers list native orders in *display units* (whole coins) and attach value in
*base units* (the smallest indivisible unit, `10**decimals` per coin). These
two helpers are the only place that scaling happens; custody uses them both
when checking a deposit and when paying out.

    to_base_units(2, 18)                       -> 2_000_000_000_000_000_000
    from_base_units(2_000_000_000_000_000_000, 18) -> 2
    from_base_units(1_500_000_000_000_000_000, 18) -> ValueError (remainder)
"""

from __future__ import annotations

from typing import Final, Tuple

U256_MAX: Final[int] = (1 << 256) - 1
DEFAULT_NATIVE_DECIMALS: Final[int] = 18


def scale_factor(decimals: int = DEFAULT_NATIVE_DECIMALS) -> int:
    if not isinstance(decimals, int) or decimals < 0 or decimals > 77:
        raise ValueError(f"decimals must be an int in [0, 77], got {decimals!r}")
    return 10 ** decimals


def to_base_units(amount: int, decimals: int = DEFAULT_NATIVE_DECIMALS) -> int:
    """Whole display units → base units. Raises ValueError past 2**256-1."""
    if not isinstance(amount, int) or amount < 0:
        raise ValueError(f"amount must be a non-negative int, got {amount!r}")
    value = amount * scale_factor(decimals)
    if value > U256_MAX:
        raise ValueError(f"amount {amount} overflows u256 at {decimals} decimals")
    return value


def split_base_units(value: int, decimals: int = DEFAULT_NATIVE_DECIMALS) -> Tuple[int, int]:
    """Return (whole display units, leftover base units)."""
    if not isinstance(value, int) or value < 0:
        raise ValueError(f"value must be a non-negative int, got {value!r}")
    return divmod(value, scale_factor(decimals))


def from_base_units(value: int, decimals: int = DEFAULT_NATIVE_DECIMALS) -> int:
    """Base units → whole display units; a non-zero remainder is an error."""
    whole, rest = split_base_units(value, decimals)
    if rest:
        raise ValueError(f"value {value} is not a whole number of units at {decimals} decimals")
    return whole


__all__ = [
    "U256_MAX",
    "DEFAULT_NATIVE_DECIMALS",
    "scale_factor",
    "to_base_units",
    "split_base_units",
    "from_base_units",
]
