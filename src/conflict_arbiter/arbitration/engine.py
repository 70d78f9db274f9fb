"""Arbitration engine orchestrating shared access, leases and the waiting queue."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import replace

from conflict_arbiter.arbitration.dispatch import QueueDispatcher
from conflict_arbiter.arbitration.lease import LeaseLifecycle
from conflict_arbiter.arbitration.models import (
    FailureReason,
    Lease,
    LeaseState,
    ObjectSnapshot,
    ObjectState,
    OperationResult,
)
from conflict_arbiter.arbitration.store import ObjectStateStore
from conflict_arbiter.arbitration.tokens import TokenIssuer
from conflict_arbiter.core.config import ArbiterConfig, PriorityStrategy
from conflict_arbiter.core.constants import EXIT_ACTION, READ_ACTION
from conflict_arbiter.core.logging import with_log_context


def _present(value: str | None) -> str | None:
    """Treat empty strings as absent."""
    if value is None or value == "":
        return None
    return value


class ArbitrationEngine:
    """Single entry point deciding whether a request is granted, queued or rejected.

    Every operation on an object runs under that object's gate, including
    expiry cleanup and any promotion it triggers, so operations on one
    object are totally ordered. Operations on different objects never share
    a gate. No call ever waits for a lease to become free.

    Args:
        config: Initial configuration; copied, later changes go through the setters
        clock: Monotonic time source in seconds (injectable for tests and replays)
        tokens: Token issuer shared by leases and shared-access grants
        logger: Optional logger; module logger by default
    """

    def __init__(
        self,
        config: ArbiterConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        tokens: TokenIssuer | None = None,
        logger: logging.Logger | None = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.tokens = tokens or TokenIssuer()
        self._config = replace(config) if config is not None else ArbiterConfig()
        self._config_lock = threading.Lock()
        self.store = ObjectStateStore()
        self.leases = LeaseLifecycle(self.tokens, logger=self.logger)
        self.dispatcher = QueueDispatcher(self._config.priority_strategy, logger=self.logger)

    @property
    def config(self) -> ArbiterConfig:
        with self._config_lock:
            return replace(self._config)

    def set_priority_strategy(self, strategy: PriorityStrategy | str) -> None:
        """Select the promotion policy for all promotions that start after this call."""
        resolved = PriorityStrategy.parse(strategy)
        with self._config_lock:
            self.dispatcher.set_strategy(resolved)
            self._config = replace(self._config, priority_strategy=resolved)
        self.logger.info("Priority strategy set to %s", resolved.value)

    def set_configuration(
        self,
        max_queue_size: int,
        lease_max_hold_seconds: float,
        max_queue_wait_seconds: float,
    ) -> None:
        """Replace the engine tunables.

        ``max_queue_size`` applies to objects first referenced after the call;
        the hold and wait limits apply to every comparison made after it.

        Raises:
            ConfigurationError: If any value is not strictly positive.
        """
        with self._config_lock:
            self._config = ArbiterConfig(
                max_queue_size=max_queue_size,
                lease_max_hold_seconds=lease_max_hold_seconds,
                max_queue_wait_seconds=max_queue_wait_seconds,
                priority_strategy=self._config.priority_strategy,
            )
        self.logger.info(
            "Configuration updated: max_queue_size=%d, lease_max_hold_seconds=%s, max_queue_wait_seconds=%s",
            max_queue_size,
            lease_max_hold_seconds,
            max_queue_wait_seconds,
        )

    def operate(
        self,
        object_id: str | None,
        action: str | None,
        token: str | None,
        operator_id: str | None,
    ) -> OperationResult:
        """Arbitrate one request.

        Args:
            object_id: Identifier of the arbitrated object
            action: "read" for shared access, "exit" to release, anything else for exclusive access
            token: Lease token from an earlier grant, or None
            operator_id: Caller identity, used to confirm a pending claim

        Returns:
            OperationResult describing the grant, the queue position, or the failure
        """
        object_id = _present(object_id)
        action = _present(action)
        token = _present(token)
        operator_id = _present(operator_id)

        if object_id is None or action is None or operator_id is None:
            self.logger.warning(
                "Rejected request with missing parameters: object_id=%r, action=%r, operator_id=%r",
                object_id,
                action,
                operator_id,
            )
            return OperationResult.fail(FailureReason.INVALID_ARGUMENT)

        self.logger.debug(
            "Operation requested: object_id=%s, action=%s, operator_id=%s, has_token=%s",
            object_id,
            action,
            operator_id,
            token is not None,
        )

        kind = action.lower()
        if kind == READ_ACTION:
            return self._handle_read(object_id, operator_id)
        if kind == EXIT_ACTION:
            return self._handle_exit(object_id, token, operator_id)
        return self._handle_exclusive(object_id, action, token, operator_id)

    def inspect(self, object_id: str) -> ObjectSnapshot | None:
        """Return a copy of an object's state, or None if it was never referenced.

        Expired leases are reported as such but not cleaned up.
        """
        with self.store.locked_existing(object_id) as state:
            if state is None:
                return None
            lease = state.current_lock
            if lease is None:
                lease_state = LeaseState.FREE
            elif lease.is_expired(self.clock(), self.config.lease_max_hold_seconds):
                lease_state = LeaseState.EXPIRED
            elif lease.pending_claim:
                lease_state = LeaseState.PENDING_CLAIM
            else:
                lease_state = LeaseState.HELD
            return ObjectSnapshot(
                object_id=state.object_id,
                lease_state=lease_state,
                owner_id=lease.owner_id if lease is not None else None,
                action=lease.action if lease is not None else None,
                read_count=state.read_count,
                waiting_operators=tuple(request.operator_id for request in state.waiting_queue),
                max_queue_size=state.max_queue_size,
            )

    def object_ids(self) -> list[str]:
        return self.store.object_ids()

    def _handle_read(self, object_id: str, operator_id: str) -> OperationResult:
        config = self.config
        with self.store.locked(object_id, config.max_queue_size) as state:
            self._expire_stale_lease(state, self.clock(), config)
            state.read_count += 1
            with_log_context(self.logger, object_id=object_id, operator_id=operator_id).info(
                "Shared access granted: object_id=%s, read_count=%d", object_id, state.read_count
            )
            return OperationResult.success(self.tokens.read_token())

    def _handle_exit(self, object_id: str, token: str | None, operator_id: str) -> OperationResult:
        config = self.config
        with self.store.locked_existing(object_id) as state:
            if state is None:
                return OperationResult.fail(FailureReason.NOT_FOUND)

            log = with_log_context(self.logger, object_id=object_id, operator_id=operator_id)
            if self.tokens.is_read_token(token):
                if state.read_count > 0:
                    state.read_count -= 1
                    log.info("Shared access released: object_id=%s, read_count=%d", object_id, state.read_count)
                return OperationResult.success()

            lease = state.current_lock
            if lease is None:
                return OperationResult.fail(FailureReason.NOT_LOCKED)
            if token != lease.token:
                log.warning("Release rejected, token does not match: object_id=%s", object_id)
                return OperationResult.fail(FailureReason.TOKEN_MISMATCH)

            released = self.leases.release(state)
            log.info("Lease released: object_id=%s, owner_id=%s", object_id, lease.owner_id)
            self._promote(state, released, self.clock(), config)
            return OperationResult.success()

    def _handle_exclusive(
        self,
        object_id: str,
        action: str,
        token: str | None,
        operator_id: str,
    ) -> OperationResult:
        config = self.config
        with self.store.locked(object_id, config.max_queue_size) as state:
            now = self.clock()
            self._expire_stale_lease(state, now, config)

            granted = self.leases.try_grant(state, action, token, operator_id, now, config.lease_max_hold_seconds)
            if granted is not None:
                return granted
            return self.dispatcher.admit(state, action, operator_id, now, config.max_queue_wait_seconds)

    def _expire_stale_lease(self, state: ObjectState, now: float, config: ArbiterConfig) -> None:
        expired = self.leases.expire_if_stale(state, now, config.lease_max_hold_seconds)
        if expired is not None:
            self._promote(state, expired, now, config)

    def _promote(self, state: ObjectState, released: Lease | None, now: float, config: ArbiterConfig) -> None:
        request = self.dispatcher.next_request(state, released, now, config.max_queue_wait_seconds)
        if request is None:
            with_log_context(self.logger, object_id=state.object_id).debug(
                "No waiting request to promote; object is free: object_id=%s", state.object_id
            )
            return
        self.leases.assign_pending(state, request, now, config.lease_max_hold_seconds)
