"""
Latency Metrics
---------------
Per-operation latency tracking for the media engine.

Design:
- Passive observability only (no auto-actions)
- Last/avg/p99 latency and error counts per operation
- The headline number is start_recording: the keep-alive resume latency
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import threading


@dataclass
class OperationStats:
    """
    Latency statistics of a single operation.
    """
    name: str
    last_call: Optional[datetime] = None
    total_calls: int = 0
    total_errors: int = 0
    total_latency_ms: float = 0.0
    last_latency_ms: float = 0.0
    _recent_latencies: List[float] = field(default_factory=list, repr=False)
    _max_recent: int = field(default=100, repr=False)

    @property
    def successful_calls(self) -> int:
        return self.total_calls - self.total_errors

    @property
    def avg_latency_ms(self) -> float:
        """Average latency of successful calls; errors carry no latency."""
        if self.successful_calls == 0:
            return 0.0
        return self.total_latency_ms / self.successful_calls

    @property
    def latency_p99_ms(self) -> float:
        """Calculate p99 latency from recent samples."""
        if not self._recent_latencies:
            return 0.0
        sorted_latencies = sorted(self._recent_latencies)
        idx = int(len(sorted_latencies) * 0.99)
        return sorted_latencies[min(idx, len(sorted_latencies) - 1)]

    def record(self, latency_ms: float, is_error: bool = False) -> None:
        """Record one call of this operation."""
        self.total_calls += 1
        self.last_call = datetime.now(timezone.utc)

        if is_error:
            self.total_errors += 1
            return

        self.total_latency_ms += latency_ms
        self.last_latency_ms = latency_ms
        self._recent_latencies.append(latency_ms)
        if len(self._recent_latencies) > self._max_recent:
            self._recent_latencies.pop(0)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API/logging."""
        return {
            "name": self.name,
            "last_call": self.last_call.isoformat() if self.last_call else None,
            "total_calls": self.total_calls,
            "total_errors": self.total_errors,
            "last_latency_ms": round(self.last_latency_ms, 2),
            "avg_latency_ms": round(self.avg_latency_ms, 2),
            "latency_p99_ms": round(self.latency_p99_ms, 2),
        }


class LatencyTracker:
    """Collects OperationStats by operation name."""

    def __init__(self):
        self._operations: Dict[str, OperationStats] = {}
        self._lock = threading.Lock()

    def get_or_create(self, name: str) -> OperationStats:
        with self._lock:
            if name not in self._operations:
                self._operations[name] = OperationStats(name=name)
            return self._operations[name]

    def record(self, operation: str, latency_ms: float, is_error: bool = False) -> None:
        stats = self.get_or_create(operation)
        with self._lock:
            stats.record(latency_ms, is_error)

    def get(self, operation: str) -> Optional[OperationStats]:
        with self._lock:
            return self._operations.get(operation)

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {name: stats.to_dict() for name, stats in self._operations.items()}

    def reset(self, operation: Optional[str] = None) -> None:
        """Reset stats (optionally for a specific operation)."""
        with self._lock:
            if operation:
                self._operations.pop(operation, None)
            else:
                self._operations.clear()
