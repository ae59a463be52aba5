# -*- coding: utf-8 -*-
"""
Prometheus Metrics - FuelEU Compliance Ledger

Prometheus metrics for ledger monitoring with graceful fallback when
prometheus_client is not installed.

Metrics:
    1. gl_fueleu_operations_total (Counter)
    2. gl_fueleu_operation_duration_seconds (Histogram)
    3. gl_fueleu_banked_gco2eq_total (Counter)
    4. gl_fueleu_applied_gco2eq_total (Counter)
    5. gl_fueleu_pools_created_total (Counter)
    6. gl_fueleu_pool_size (Histogram)
    7. gl_fueleu_compliance_cache_hits_total (Counter)
    8. gl_fueleu_compliance_cache_misses_total (Counter)
    9. gl_fueleu_rejections_total (Counter)
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Graceful prometheus_client import
# ---------------------------------------------------------------------------

try:
    from prometheus_client import Counter, Histogram
    PROMETHEUS_AVAILABLE = True
except ImportError:
    PROMETHEUS_AVAILABLE = False
    logger.info("prometheus_client not installed; ledger metrics disabled")


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

if PROMETHEUS_AVAILABLE:
    # 1. Operations count
    fueleu_operations_total = Counter(
        "gl_fueleu_operations_total",
        "Total ledger operations performed",
        labelnames=["operation", "result"],
    )

    # 2. Operation duration
    fueleu_operation_duration_seconds = Histogram(
        "gl_fueleu_operation_duration_seconds",
        "Ledger operation duration in seconds",
        labelnames=["operation"],
        buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
    )

    # 3. Banked surplus
    fueleu_banked_gco2eq_total = Counter(
        "gl_fueleu_banked_gco2eq_total",
        "Total surplus banked, gCO2e",
    )

    # 4. Applied surplus
    fueleu_applied_gco2eq_total = Counter(
        "gl_fueleu_applied_gco2eq_total",
        "Total banked surplus applied, gCO2e",
    )

    # 5. Pools created
    fueleu_pools_created_total = Counter(
        "gl_fueleu_pools_created_total",
        "Total compliance pools created",
    )

    # 6. Pool size
    fueleu_pool_size = Histogram(
        "gl_fueleu_pool_size",
        "Number of ships per created pool",
        buckets=(1, 2, 3, 5, 10, 20, 50, 100),
    )

    # 7. Compliance cache hits
    fueleu_compliance_cache_hits_total = Counter(
        "gl_fueleu_compliance_cache_hits_total",
        "Compliance balance lookups served from stored records",
    )

    # 8. Compliance cache misses
    fueleu_compliance_cache_misses_total = Counter(
        "gl_fueleu_compliance_cache_misses_total",
        "Compliance balance lookups that required computation",
    )

    # 9. Rejections
    fueleu_rejections_total = Counter(
        "gl_fueleu_rejections_total",
        "Ledger operations rejected, by reason",
        labelnames=["operation", "reason"],
    )

else:
    # No-op placeholders
    fueleu_operations_total = None  # type: ignore[assignment]
    fueleu_operation_duration_seconds = None  # type: ignore[assignment]
    fueleu_banked_gco2eq_total = None  # type: ignore[assignment]
    fueleu_applied_gco2eq_total = None  # type: ignore[assignment]
    fueleu_pools_created_total = None  # type: ignore[assignment]
    fueleu_pool_size = None  # type: ignore[assignment]
    fueleu_compliance_cache_hits_total = None  # type: ignore[assignment]
    fueleu_compliance_cache_misses_total = None  # type: ignore[assignment]
    fueleu_rejections_total = None  # type: ignore[assignment]


# ---------------------------------------------------------------------------
# Helper functions (safe to call even without prometheus_client)
# ---------------------------------------------------------------------------


def record_operation(operation: str, result: str, duration_seconds: float) -> None:
    """Record a ledger operation.

    Args:
        operation: Operation name (bank, apply, create_pool, ...).
        result: Operation result ("success", "rejected", "not_found", "error").
        duration_seconds: Operation duration in seconds.
    """
    if not PROMETHEUS_AVAILABLE:
        return
    fueleu_operations_total.labels(operation=operation, result=result).inc()
    fueleu_operation_duration_seconds.labels(operation=operation).observe(
        duration_seconds,
    )


def record_banked(amount_gco2eq: float) -> None:
    """Record surplus banked."""
    if not PROMETHEUS_AVAILABLE:
        return
    fueleu_banked_gco2eq_total.inc(amount_gco2eq)


def record_applied(amount_gco2eq: float) -> None:
    """Record banked surplus applied."""
    if not PROMETHEUS_AVAILABLE:
        return
    fueleu_applied_gco2eq_total.inc(amount_gco2eq)


def record_pool_created(size: int) -> None:
    """Record a created pool and its member count.

    Args:
        size: Number of ships in the pool.
    """
    if not PROMETHEUS_AVAILABLE:
        return
    fueleu_pools_created_total.inc()
    fueleu_pool_size.observe(size)


def record_cache_hit() -> None:
    """Record a compliance record cache hit."""
    if not PROMETHEUS_AVAILABLE:
        return
    fueleu_compliance_cache_hits_total.inc()


def record_cache_miss() -> None:
    """Record a compliance record cache miss."""
    if not PROMETHEUS_AVAILABLE:
        return
    fueleu_compliance_cache_misses_total.inc()


def record_rejection(operation: str, reason: str) -> None:
    """Record a rejected operation.

    Args:
        operation: Operation name.
        reason: Short machine-readable reason (e.g. "insufficient_surplus").
    """
    if not PROMETHEUS_AVAILABLE:
        return
    fueleu_rejections_total.labels(operation=operation, reason=reason).inc()


__all__ = [
    "PROMETHEUS_AVAILABLE",
    # Metric objects
    "fueleu_operations_total",
    "fueleu_operation_duration_seconds",
    "fueleu_banked_gco2eq_total",
    "fueleu_applied_gco2eq_total",
    "fueleu_pools_created_total",
    "fueleu_pool_size",
    "fueleu_compliance_cache_hits_total",
    "fueleu_compliance_cache_misses_total",
    "fueleu_rejections_total",
    # Helper functions
    "record_operation",
    "record_banked",
    "record_applied",
    "record_pool_created",
    "record_cache_hit",
    "record_cache_miss",
    "record_rejection",
]
