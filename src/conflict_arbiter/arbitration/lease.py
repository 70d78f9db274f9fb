"""Lease lifecycle for the exclusive lock of one object.

States: free (no lease), held, pending claim (assigned from the waiting
queue, not yet confirmed), expired (collapses to free once detected).
Every method expects the object's gate to be held by the caller.
"""

from __future__ import annotations

import logging

from conflict_arbiter.arbitration.models import Lease, ObjectState, OperationResult, WaitingRequest
from conflict_arbiter.arbitration.tokens import TokenIssuer
from conflict_arbiter.core.logging import with_log_context


class LeaseLifecycle:
    """Acquire, refresh, claim, expire and release exclusive leases."""

    def __init__(self, tokens: TokenIssuer | None = None, *, logger: logging.Logger | None = None):
        self.tokens = tokens or TokenIssuer()
        self.logger = logger or logging.getLogger(__name__)

    def try_grant(
        self,
        state: ObjectState,
        action: str,
        token: str | None,
        operator_id: str,
        now: float,
        max_hold_seconds: float,
    ) -> OperationResult | None:
        """Apply the grant rules in precedence order.

        Returns None when no rule grants access and the request must queue.
        """
        lease = state.current_lock
        log = with_log_context(self.logger, object_id=state.object_id, operator_id=operator_id)

        if lease is None and token is None:
            return self.acquire(state, action, operator_id, now, max_hold_seconds)

        if lease is not None and token is not None and token == lease.token:
            # The token is the capability; the caller's identity is not checked.
            lease.refresh(now, action)
            log.info(
                "Lease refreshed: object_id=%s, action=%s, operator_id=%s", state.object_id, action, operator_id
            )
            return OperationResult.success(lease.token)

        if lease is not None and token is None and lease.pending_claim and operator_id == lease.owner_id:
            lease.claim(now)
            log.info(
                "Pending lease claimed: object_id=%s, action=%s, operator_id=%s", state.object_id, action, operator_id
            )
            return OperationResult.success(lease.token)

        if token is not None:
            log.warning("Token invalid or expired: object_id=%s, operator_id=%s", state.object_id, operator_id)
        return None

    def acquire(
        self,
        state: ObjectState,
        action: str,
        operator_id: str,
        now: float,
        max_hold_seconds: float,
    ) -> OperationResult:
        lease = self._new_lease(action, operator_id, now, max_hold_seconds, pending_claim=False)
        state.current_lock = lease
        with_log_context(self.logger, object_id=state.object_id, operator_id=operator_id).info(
            "Lease acquired: object_id=%s, action=%s, operator_id=%s", state.object_id, action, operator_id
        )
        return OperationResult.success(lease.token)

    def assign_pending(
        self,
        state: ObjectState,
        request: WaitingRequest,
        now: float,
        max_hold_seconds: float,
    ) -> Lease:
        """Give the object to a promoted waiter, pending its confirmation."""
        lease = self._new_lease(request.action, request.operator_id, now, max_hold_seconds, pending_claim=True)
        state.current_lock = lease
        with_log_context(self.logger, object_id=state.object_id, operator_id=request.operator_id).info(
            "Lease assigned from waiting queue (pending claim): object_id=%s, action=%s, operator_id=%s",
            state.object_id,
            request.action,
            request.operator_id,
        )
        return lease

    def release(self, state: ObjectState) -> Lease | None:
        """Detach and return the current lease."""
        lease = state.current_lock
        state.current_lock = None
        return lease

    def expire_if_stale(self, state: ObjectState, now: float, max_hold_seconds: float) -> Lease | None:
        """Detach the current lease if it outlived its hold time; return it when it did."""
        lease = state.current_lock
        if lease is None or not lease.is_expired(now, max_hold_seconds):
            return None
        with_log_context(self.logger, object_id=state.object_id, operator_id=lease.owner_id).warning(
            "Lease expired and was released: object_id=%s, owner_id=%s, pending_claim=%s",
            state.object_id,
            lease.owner_id,
            lease.pending_claim,
        )
        return self.release(state)

    def _new_lease(
        self,
        action: str,
        operator_id: str,
        now: float,
        max_hold_seconds: float,
        *,
        pending_claim: bool,
    ) -> Lease:
        return Lease(
            token=self.tokens.lease_token(),
            action=action,
            owner_id=operator_id,
            acquire_time=now,
            last_refresh_time=now,
            max_hold_seconds=max_hold_seconds,
            pending_claim=pending_claim,
        )
