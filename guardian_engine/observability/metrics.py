"""
Prometheus metrics definitions for the guardian engine.

This module defines all metrics collected by the engine, organized by category:
- Report metrics: Processed reports by outcome, report edits, energy granted by source
- Guardian metrics: Investments, evolutions, unlocks
- Review metrics: Anomaly flags raised
- Storage metrics: Transaction conflicts, operation latency

The embedding process exposes them however it serves Prometheus
(e.g. prometheus_client.start_http_server).
"""

import logging
import os
import sys
from prometheus_client import Counter, Histogram, Info

logger = logging.getLogger(__name__)

# =============================================================================
# Report Metrics
# =============================================================================

reports_processed_total = Counter(
    "guardian_reports_processed_total",
    "Total report events processed",
    ["status"],  # status: accepted/duplicate/empty/rejected
)

energy_granted_total = Counter(
    "guardian_energy_granted_total",
    "Total energy credited to users",
    ["source"],  # source: daily_report/streak_bonus/performance_bonus/weekly_bonus
)

report_modifications_total = Counter(
    "guardian_report_modifications_total",
    "Total accepted report submissions flagged as edits of an earlier report",
)

level_ups_total = Counter(
    "guardian_level_ups_total",
    "Total level-ups caused by reports",
)

# =============================================================================
# Guardian Metrics
# =============================================================================

energy_invested_total = Counter(
    "guardian_energy_invested_total",
    "Total energy invested into guardians",
    ["guardian_id"],
)

guardian_evolutions_total = Counter(
    "guardian_evolutions_total",
    "Total guardian evolutions",
    ["guardian_id", "to_stage"],
)

guardian_unlocks_total = Counter(
    "guardian_unlocks_total",
    "Total guardian unlocks",
    ["guardian_id"],
)

# =============================================================================
# Review Metrics
# =============================================================================

anomaly_flags_total = Counter(
    "guardian_anomaly_flags_total",
    "Total anomaly flags raised for admin review",
    ["flag"],
)

# =============================================================================
# Storage Metrics
# =============================================================================

storage_conflicts_total = Counter(
    "guardian_storage_conflicts_total",
    "Total profile transactions aborted by a concurrent write",
    ["operation"],
)

operation_duration_seconds = Histogram(
    "guardian_operation_duration_seconds",
    "Guardian service operation latency in seconds",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

# =============================================================================
# Application Info
# =============================================================================

engine_info = Info(
    "guardian_engine",
    "Guardian engine information",
)


def init_metrics():
    """
    Initialize metrics with engine information.

    Called by the container factories; safe to call more than once.
    """
    from guardian_engine import __version__

    engine_info.info(
        {
            "version": __version__,
            "commit": os.getenv("GIT_COMMIT_SHA", "dev")[:7],
            "python_version": f"{sys.version_info.major}.{sys.version_info.minor}",
        }
    )

    logger.info("Prometheus metrics initialized")
