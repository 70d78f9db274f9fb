"""Arbitration subsystem for shared and exclusive access to objects.

This package keeps per-object lock state, lease lifecycle and waiting-queue
promotion behind a single engine so callers only deal with
``ArbitrationEngine.operate``.
"""

from conflict_arbiter.arbitration.dispatch import (
    FifoPolicy,
    PromotionPolicy,
    QueueDispatcher,
    SameActionFirstPolicy,
    create_policy,
)
from conflict_arbiter.arbitration.engine import ArbitrationEngine
from conflict_arbiter.arbitration.lease import LeaseLifecycle
from conflict_arbiter.arbitration.models import (
    FailureReason,
    Lease,
    LeaseState,
    ObjectSnapshot,
    ObjectState,
    OperationResult,
    WaitingRequest,
)
from conflict_arbiter.arbitration.store import ObjectStateStore
from conflict_arbiter.arbitration.tokens import TokenIssuer

__all__ = [
    "ArbitrationEngine",
    "FailureReason",
    "FifoPolicy",
    "Lease",
    "LeaseLifecycle",
    "LeaseState",
    "ObjectSnapshot",
    "ObjectState",
    "ObjectStateStore",
    "OperationResult",
    "PromotionPolicy",
    "QueueDispatcher",
    "SameActionFirstPolicy",
    "TokenIssuer",
    "WaitingRequest",
    "create_policy",
]
