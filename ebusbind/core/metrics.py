"""Counters for telegrams seen by the bridge."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class MetricsSnapshot:
    received: int
    resolved: int
    unresolved: int
    failed: int

    @property
    def resolved_ratio(self) -> float:
        return self._ratio(self.resolved)

    @property
    def unresolved_ratio(self) -> float:
        return self._ratio(self.unresolved)

    @property
    def failed_ratio(self) -> float:
        return self._ratio(self.failed)

    def _ratio(self, count: int) -> float:
        if not self.received:
            return 0.0
        return round(count / self.received * 100, 1)


class BridgeMetrics:
    """Thread-safe telegram counters.

    ``resolved`` telegrams matched a catalog command, ``unresolved`` were well
    formed but unknown, ``failed`` could not be decoded at all. Ratios are
    percentages of ``received``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._received = 0
        self._resolved = 0
        self._unresolved = 0
        self._failed = 0

    def record_resolved(self) -> None:
        with self._lock:
            self._received += 1
            self._resolved += 1

    def record_unresolved(self) -> None:
        with self._lock:
            self._received += 1
            self._unresolved += 1

    def record_failed(self) -> None:
        with self._lock:
            self._received += 1
            self._failed += 1

    def reset(self) -> None:
        with self._lock:
            self._received = self._resolved = self._unresolved = self._failed = 0

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                received=self._received,
                resolved=self._resolved,
                unresolved=self._unresolved,
                failed=self._failed,
            )
