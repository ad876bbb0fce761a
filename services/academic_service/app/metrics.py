"""Prometheus metrics for the academic service."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram

# Term submissions -------------------------------------------------------------------------
TERM_SUBMISSIONS_TOTAL: Final = Counter(
    "academic_term_submissions_total",
    "Accepted term result submissions.",
    labelnames=("term",),
)

TERM_SUBMISSION_REJECTIONS_TOTAL: Final = Counter(
    "academic_term_submission_rejections_total",
    "Term submissions rejected by subject validation.",
    labelnames=("term",),
)

PERFORMANCE_STATUS_TOTAL: Final = Counter(
    "academic_performance_status_total",
    "Performance status assigned to accepted submissions.",
    labelnames=("status",),
)

TERM_AVERAGE_SCORE: Final = Histogram(
    "academic_term_average_score",
    "Distribution of computed term averages.",
    buckets=(10, 20, 30, 40, 50, 60, 70, 80, 90, 100),
)

# Coordinator overview cache -----------------------------------------------------------------
OVERVIEW_CACHE_EVENTS_TOTAL: Final = Counter(
    "academic_overview_cache_events_total",
    "Coordinator overview cache lookups by outcome.",
    labelnames=("outcome",),
)

OVERVIEW_CACHE_ERRORS_TOTAL: Final = Counter(
    "academic_overview_cache_errors_total",
    "Redis errors tolerated while serving the coordinator overview.",
    labelnames=("operation",),
)
