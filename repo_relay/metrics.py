"""
Metrics collection and Prometheus-compatible exposition.

Tracks webhook intake, notification delivery, and account/subscription counters.
"""

from __future__ import annotations

import time
from collections import defaultdict

PREFIX = "relay_"

# Exported from startup, at zero until first incremented
COUNTERS = (
    "webhooks_received_total",
    "webhooks_rejected_total",
    "webhooks_duplicate_total",
    "notifications_delivered_total",
    "notifications_failed_total",
    "subscriptions_created_total",
    "accounts_linked_total",
)


class MetricsCollector:
    """
    Simple counter collector with Prometheus text format export.

    Counters are keyed by name and exported with the relay_ prefix, followed
    by a process uptime gauge.
    """

    def __init__(self, counters: tuple[str, ...] = COUNTERS) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        for name in counters:
            self._counters[f"{PREFIX}{name}"] = 0
        self._start_time = time.time()

    def inc(self, name: str, value: int = 1) -> None:
        """Increment a counter."""
        self._counters[f"{PREFIX}{name}"] += value

    def get(self, name: str) -> int:
        return self._counters.get(f"{PREFIX}{name}", 0)

    def to_prometheus(self) -> str:
        """Export all metrics in Prometheus text format."""
        lines = []
        for name, value in sorted(self._counters.items()):
            lines.append(f"# TYPE {name} counter")
            lines.append(f"{name} {value}")
        uptime = time.time() - self._start_time
        lines.append(f"# TYPE {PREFIX}uptime_seconds gauge")
        lines.append(f"{PREFIX}uptime_seconds {uptime:.1f}")
        return "\n".join(lines) + "\n"
