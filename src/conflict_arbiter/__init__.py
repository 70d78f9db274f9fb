"""
Conflict Arbiter - in-process arbitration of shared and exclusive access

Callers present an object identifier, an action, an optional lease token
and an operator identity; the engine grants shared access, grants or
refreshes an exclusive lease, queues the request, or rejects it.
"""

from conflict_arbiter.arbitration import (
    ArbitrationEngine,
    FailureReason,
    LeaseState,
    ObjectSnapshot,
    OperationResult,
)
from conflict_arbiter.core import ArbiterConfig, PriorityStrategy, __version__

__all__ = [
    "ArbiterConfig",
    "ArbitrationEngine",
    "FailureReason",
    "LeaseState",
    "ObjectSnapshot",
    "OperationResult",
    "PriorityStrategy",
    "__version__",
]
