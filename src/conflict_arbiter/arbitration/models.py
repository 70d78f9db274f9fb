"""Arbitration data model.

All timestamps are readings of the engine's monotonic clock, in seconds.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from conflict_arbiter.core.constants import QUEUED_NOTICE


class FailureReason(Enum):
    """Fixed taxonomy of request-level failures."""

    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"
    NOT_LOCKED = "not_locked"
    TOKEN_MISMATCH = "token_mismatch"
    QUEUE_FULL = "queue_full"

    @property
    def message(self) -> str:
        return _FAILURE_MESSAGES[self]


_FAILURE_MESSAGES: dict[FailureReason, str] = {
    FailureReason.INVALID_ARGUMENT: "parameters must not be empty",
    FailureReason.NOT_FOUND: "object does not exist",
    FailureReason.NOT_LOCKED: "object is not locked",
    FailureReason.TOKEN_MISMATCH: "token does not match",
    FailureReason.QUEUE_FULL: "waiting queue is full",
}


class LeaseState(Enum):
    """Observable state of an object's exclusive lease."""

    FREE = "free"
    HELD = "held"
    PENDING_CLAIM = "pending_claim"
    EXPIRED = "expired"  # Only until the next operation touches the object


@dataclass
class Lease:
    """Exclusive ownership of one object."""

    token: str
    action: str
    owner_id: str
    acquire_time: float
    last_refresh_time: float
    max_hold_seconds: float
    pending_claim: bool = False

    def is_expired(self, now: float, max_hold_seconds: float | None = None) -> bool:
        limit = self.max_hold_seconds if max_hold_seconds is None else max_hold_seconds
        return now - self.last_refresh_time > limit

    def refresh(self, now: float, action: str) -> None:
        self.last_refresh_time = now
        self.action = action

    def claim(self, now: float) -> None:
        """Turn a pending-claim lease into a held one."""
        self.pending_claim = False
        self.last_refresh_time = now


@dataclass
class WaitingRequest:
    """A queued attempt at exclusive access."""

    request_id: str
    action: str
    operator_id: str
    enqueue_time: float
    max_wait_seconds: float

    def is_timed_out(self, now: float, max_wait_seconds: float | None = None) -> bool:
        limit = self.max_wait_seconds if max_wait_seconds is None else max_wait_seconds
        return now - self.enqueue_time > limit


@dataclass
class ObjectState:
    """Arbitration state of one object identifier.

    ``current_lock`` and ``read_count`` are independent: shared access is
    never blocked by an exclusive lease and vice versa.
    """

    object_id: str
    max_queue_size: int
    current_lock: Lease | None = None
    read_count: int = 0
    waiting_queue: deque[WaitingRequest] = field(default_factory=deque)


@dataclass(frozen=True)
class OperationResult:
    """Outcome returned to every caller of the engine."""

    allowed: bool
    token: str | None = None
    reason: str | None = None
    wait_position: int | None = None
    error: FailureReason | None = None

    @classmethod
    def success(cls, token: str | None = None) -> OperationResult:
        return cls(allowed=True, token=token)

    @classmethod
    def fail(cls, error: FailureReason) -> OperationResult:
        return cls(allowed=False, reason=error.message, error=error)

    @classmethod
    def waiting(cls, position: int) -> OperationResult:
        return cls(allowed=False, reason=QUEUED_NOTICE, wait_position=position)

    @property
    def queued(self) -> bool:
        return self.wait_position is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "token": self.token,
            "reason": self.reason,
            "wait_position": self.wait_position,
            "error": self.error.value if self.error is not None else None,
        }


@dataclass(frozen=True)
class ObjectSnapshot:
    """Read-only copy of an object's state for diagnostics.

    Lease tokens are never included.
    """

    object_id: str
    lease_state: LeaseState
    owner_id: str | None
    action: str | None
    read_count: int
    waiting_operators: tuple[str, ...]
    max_queue_size: int

    @property
    def queue_length(self) -> int:
        return len(self.waiting_operators)

    def to_dict(self) -> dict[str, Any]:
        return {
            "object_id": self.object_id,
            "lease_state": self.lease_state.value,
            "owner_id": self.owner_id,
            "action": self.action,
            "read_count": self.read_count,
            "waiting_operators": list(self.waiting_operators),
            "max_queue_size": self.max_queue_size,
        }
