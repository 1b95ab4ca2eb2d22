from __future__ import annotations

"""
Prometheus metrics for the escrow order book.

We expose counters and histograms covering:
- listings: orders listed by asset kind
- registrations: buyers registered
- releases: release attempts by result
- rejections: failed operations by operation and error code
- latencies: per-operation wall time

A dedicated registry keeps these separate from the process default; embedding
apps can merge or expose it directly (see `render_latest`).
"""


import time
from contextlib import contextmanager
from typing import Iterator, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

REGISTRY = CollectorRegistry()

# ────────────────────────────────────────────────────────────────────────────────
# Label conventions
#   asset:  "native" | "token"
#   result: "released" | "rejected" | "transfer_failed"
#   op:     "list_order" | "register_buyer" | "release_funds" | ...
#   code:   EscrowError.code
# ────────────────────────────────────────────────────────────────────────────────

ORDERS_LISTED = Counter(
    "escrowbook_orders_listed_total",
    "Total orders listed by asset kind.",
    labelnames=("asset",),
    registry=REGISTRY,
)

BUYERS_REGISTERED = Counter(
    "escrowbook_buyers_registered_total",
    "Total buyer registrations accepted.",
    registry=REGISTRY,
)

RELEASES = Counter(
    "escrowbook_releases_total",
    "Release attempts by result.",
    labelnames=("result",),
    registry=REGISTRY,
)

REJECTIONS = Counter(
    "escrowbook_rejections_total",
    "Rejected operations by operation and error code.",
    labelnames=("op", "code"),
    registry=REGISTRY,
)

OP_LATENCY = Histogram(
    "escrowbook_op_seconds",
    "Wall time of order book operations.",
    labelnames=("op",),
    buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0),
    registry=REGISTRY,
)


@contextmanager
def timed(op: str) -> Iterator[None]:
    t0 = time.perf_counter()
    try:
        yield
    finally:
        OP_LATENCY.labels(op=op).observe(time.perf_counter() - t0)


def render_latest() -> Tuple[bytes, str]:
    """(payload, content type) for a /metrics endpoint."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


__all__ = [
    "REGISTRY",
    "ORDERS_LISTED",
    "BUYERS_REGISTERED",
    "RELEASES",
    "REJECTIONS",
    "OP_LATENCY",
    "timed",
    "render_latest",
]
