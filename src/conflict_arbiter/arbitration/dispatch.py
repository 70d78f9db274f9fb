"""Waiting queue and priority dispatcher.

Design principles:
- The queue of an object is only touched while that object's gate is held.
- Timed-out entries are purged lazily, before admission and before promotion.
- Promotion policies only choose and remove an entry; turning it into a
  pending-claim lease belongs to the lease lifecycle.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from typing import Protocol

from conflict_arbiter.arbitration.models import (
    FailureReason,
    Lease,
    ObjectState,
    OperationResult,
    WaitingRequest,
)
from conflict_arbiter.core.config import PriorityStrategy
from conflict_arbiter.core.logging import with_log_context


class PromotionPolicy(Protocol):
    """Selection policy applied when a lease is released or expires."""

    strategy: PriorityStrategy

    def select(self, queue: deque[WaitingRequest], released: Lease | None) -> WaitingRequest | None:
        """Remove and return the entry to promote, or None for an empty queue."""


class FifoPolicy:
    """Promote the head of the queue."""

    strategy = PriorityStrategy.FIFO

    def select(self, queue: deque[WaitingRequest], released: Lease | None) -> WaitingRequest | None:
        del released  # Order alone decides.
        if not queue:
            return None
        return queue.popleft()


class SameActionFirstPolicy:
    """Promote the first entry whose action matches the released lease's action.

    Falls back to the head of the queue when nothing matches or when there
    is no released lease to compare against.
    """

    strategy = PriorityStrategy.SAME_ACTION_FIRST

    def __init__(self, *, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def select(self, queue: deque[WaitingRequest], released: Lease | None) -> WaitingRequest | None:
        if not queue:
            return None
        if released is not None:
            for index, request in enumerate(queue):
                if request.action == released.action:
                    del queue[index]
                    self.logger.info(
                        "Same action promoted first: action=%s, operator_id=%s, skipped=%d",
                        request.action,
                        request.operator_id,
                        index,
                    )
                    return request
        return queue.popleft()


def create_policy(strategy: PriorityStrategy | str, *, logger: logging.Logger | None = None) -> PromotionPolicy:
    """Create the promotion policy for a strategy enum member or name."""
    if PriorityStrategy.parse(strategy) is PriorityStrategy.SAME_ACTION_FIRST:
        return SameActionFirstPolicy(logger=logger)
    return FifoPolicy()


class QueueDispatcher:
    """Bounded per-object waiting queue with a swappable promotion policy."""

    def __init__(
        self,
        strategy: PriorityStrategy | str = PriorityStrategy.FIFO,
        *,
        logger: logging.Logger | None = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self._policy: PromotionPolicy = create_policy(strategy, logger=self.logger)
        self._policy_lock = threading.Lock()

    @property
    def strategy(self) -> PriorityStrategy:
        with self._policy_lock:
            return self._policy.strategy

    def set_strategy(self, strategy: PriorityStrategy | str) -> None:
        """Swap the policy; only promotions that start afterwards see it."""
        policy = create_policy(strategy, logger=self.logger)
        with self._policy_lock:
            self._policy = policy

    def purge(self, state: ObjectState, now: float, max_wait_seconds: float) -> int:
        """Drop queue entries that waited longer than ``max_wait_seconds``."""
        queue = state.waiting_queue
        survivors = deque(request for request in queue if not request.is_timed_out(now, max_wait_seconds))
        removed = len(queue) - len(survivors)
        if removed:
            log = with_log_context(self.logger, object_id=state.object_id)
            for request in queue:
                if request.is_timed_out(now, max_wait_seconds):
                    log.info(
                        "Waiting request timed out: object_id=%s, operator_id=%s, action=%s",
                        state.object_id,
                        request.operator_id,
                        request.action,
                    )
            state.waiting_queue = survivors
        return removed

    def admit(
        self,
        state: ObjectState,
        action: str,
        operator_id: str,
        now: float,
        max_wait_seconds: float,
    ) -> OperationResult:
        """Queue an exclusive-access attempt, reporting its 1-based position."""
        self.purge(state, now, max_wait_seconds)
        log = with_log_context(self.logger, object_id=state.object_id)

        if len(state.waiting_queue) >= state.max_queue_size:
            log.warning(
                "Waiting queue is full: object_id=%s, queue_size=%d, operator_id=%s",
                state.object_id,
                len(state.waiting_queue),
                operator_id,
            )
            return OperationResult.fail(FailureReason.QUEUE_FULL)

        state.waiting_queue.append(
            WaitingRequest(
                request_id=str(uuid.uuid4()),
                action=action,
                operator_id=operator_id,
                enqueue_time=now,
                max_wait_seconds=max_wait_seconds,
            )
        )
        position = len(state.waiting_queue)
        log.info(
            "Entered waiting queue: object_id=%s, action=%s, operator_id=%s, position=%d",
            state.object_id,
            action,
            operator_id,
            position,
        )
        return OperationResult.waiting(position)

    def next_request(
        self,
        state: ObjectState,
        released: Lease | None,
        now: float,
        max_wait_seconds: float,
    ) -> WaitingRequest | None:
        """Purge, then remove and return the entry the current policy selects."""
        self.purge(state, now, max_wait_seconds)
        with self._policy_lock:
            policy = self._policy
        return policy.select(state.waiting_queue, released)
