"""Prometheus metrics for the portal client."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram

# Toast coalescing ---------------------------------------------------------------------------
TOASTS_DISPATCHED_TOTAL: Final = Counter(
    "portal_toasts_dispatched_total",
    "Toasts handed to the display sink.",
    labelnames=("level", "path"),
)

TOASTS_COALESCED_TOTAL: Final = Counter(
    "portal_toasts_coalesced_total",
    "Toast requests merged into an already pending toast.",
    labelnames=("level",),
)

TOASTS_SUPPRESSED_TOTAL: Final = Counter(
    "portal_toasts_suppressed_total",
    "Toast requests dropped before queueing.",
    labelnames=("level", "reason"),
)

TOASTS_EVICTED_TOTAL: Final = Counter(
    "portal_toasts_evicted_total",
    "Pending toasts dropped to keep the queue within capacity.",
    labelnames=("level",),
)

# API calls ------------------------------------------------------------------------------------
PORTAL_REQUEST_LATENCY_SECONDS: Final = Histogram(
    "portal_client_request_latency_seconds",
    "Latency of calls made to the academic service.",
    labelnames=("operation",),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)

PORTAL_REQUEST_ERRORS_TOTAL: Final = Counter(
    "portal_client_request_errors_total",
    "Academic service calls that returned an error status.",
    labelnames=("operation", "status"),
)
