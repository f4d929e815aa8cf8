"""
Nite Ledger - Metrics

Prometheus counters for ledger activity. Contracts never touch these
directly; they queue a callback with ``Chain.on_commit`` so that a call
which rolls back leaves no trace in the exported numbers.
"""

from __future__ import annotations

import threading
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, generate_latest


class LedgerMetrics:
    """
    Metrics collector for nite ledgers.
    Exports metrics in Prometheus format.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize ledger metrics.

        Args:
            registry: Custom Prometheus registry; a private one is created
                when omitted so that several collectors can coexist in tests
        """
        self.registry = registry or CollectorRegistry()
        self._lock = threading.Lock()

        # ==================== TRANSFER METRICS ====================
        self.transfers_total = Counter(
            "nite_transfers_total",
            "Committed transfer-family calls",
            ["kind"],
            registry=self.registry,
        )

        self.tokens_moved_total = Counter(
            "nite_tokens_moved_total",
            "Token ids whose ownership was reassigned",
            registry=self.registry,
        )

        # ==================== FEE METRICS ====================
        self.fee_units_total = Counter(
            "nite_fee_units_total",
            "Fee-token units forwarded to the treasury",
            ["source"],
            registry=self.registry,
        )

        # ==================== PERMIT METRICS ====================
        self.permits_total = Counter(
            "nite_permits_total",
            "Permit signatures consumed",
            ["kind"],
            registry=self.registry,
        )

        # ==================== BOOKING METRICS ====================
        self.bookings_total = Counter(
            "nite_bookings_total",
            "Booking records created or cancelled",
            ["action"],
            registry=self.registry,
        )

    def record_transfer(self, kind: str, token_count: int) -> None:
        """Record a committed transfer call"""
        with self._lock:
            self.transfers_total.labels(kind=kind).inc()
            self.tokens_moved_total.inc(token_count)

    def record_fee(self, source: str, amount: int) -> None:
        """Record fee units charged from ``ledger`` or ``holder``"""
        if amount <= 0:
            return
        with self._lock:
            self.fee_units_total.labels(source=source).inc(amount)

    def record_permit(self, kind: str) -> None:
        """Record a consumed permit"""
        with self._lock:
            self.permits_total.labels(kind=kind).inc()

    def record_booking(self, action: str) -> None:
        """Record booking creation or cancellation"""
        with self._lock:
            self.bookings_total.labels(action=action).inc()

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format"""
        return generate_latest(self.registry).decode("utf-8")


# ==================== GLOBAL METRICS INSTANCE ====================

_metrics_instance: Optional[LedgerMetrics] = None
_metrics_lock = threading.Lock()


def get_metrics() -> LedgerMetrics:
    """Get or create global metrics instance"""
    global _metrics_instance
    if _metrics_instance is None:
        with _metrics_lock:
            if _metrics_instance is None:
                _metrics_instance = LedgerMetrics()
    return _metrics_instance
