# Infrastructure module - Logging and latency metrics
# Config, audio session and the HTTP service bus are imported from their
# modules directly (they depend on the audio layer)

from .logging import (
    get_logger, configure_logging, TakeContext,
    get_take_id, generate_take_id,
)
from .metrics import LatencyTracker, OperationStats

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "TakeContext",
    "get_take_id",
    "generate_take_id",
    # Metrics
    "LatencyTracker",
    "OperationStats",
]
