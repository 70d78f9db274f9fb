"""Signal-platform adapter.

Translates the signal platform's request vocabulary (device id, signal
controller address, numeric mode, lock string) into engine operations and
engine results back into platform responses. It keeps no state of its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from conflict_arbiter.arbitration.engine import ArbitrationEngine
from conflict_arbiter.arbitration.models import OperationResult
from conflict_arbiter.core.constants import EXIT_ACTION
from conflict_arbiter.core.exceptions import ValidationError

# Platform modes that end a control session.
EXIT_MODES: frozenset[int] = frozenset({0, 60, 62, 63})

MISSING_REQUEST_REASON = "request must not be empty"
MISSING_PARAMETERS_REASON = "required parameters missing"


def mode_to_action(mode: int) -> str:
    """Map a platform mode onto an engine action name."""
    if mode in EXIT_MODES:
        return EXIT_ACTION
    return f"mode_{mode}"


@dataclass
class SignalPlatformRequest:
    """Request as sent by the signal platform.

    Attributes:
        device_id: Requesting device, used as the operator id
        signal_ip: Address of the signal controller, used as the object id
        mode: Numeric control mode, mapped onto an action
        lock: Lock string previously handed out, passed through as the token
    """

    device_id: str | None = None
    signal_ip: str | None = None
    mode: int | None = None
    lock: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignalPlatformRequest:
        """Build from the platform's camelCase payload.

        Raises:
            ValidationError: If ``mode`` is present but not an integer.
        """
        mode = data.get("mode")
        if mode is not None:
            if isinstance(mode, bool):
                raise ValidationError("mode must be an integer", field="mode", details=repr(mode))
            try:
                mode = int(mode)
            except (TypeError, ValueError) as e:
                raise ValidationError("mode must be an integer", field="mode", details=repr(mode)) from e
        return cls(
            device_id=data.get("deviceId"),
            signal_ip=data.get("signalIP"),
            mode=mode,
            lock=data.get("lock"),
        )


@dataclass
class SignalPlatformResponse:
    """Response returned to the signal platform."""

    allowed: bool
    lock: str | None = None
    reason: str | None = None
    wait_position: int | None = None

    @classmethod
    def fail(cls, reason: str) -> SignalPlatformResponse:
        return cls(allowed=False, reason=reason)

    @classmethod
    def from_result(cls, result: OperationResult) -> SignalPlatformResponse:
        return cls(
            allowed=result.allowed,
            lock=result.token,
            reason=result.reason,
            wait_position=result.wait_position,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "lock": self.lock,
            "reason": self.reason,
            "waitPosition": self.wait_position,
        }


class SignalPlatformAdapter:
    """Stateless translation between the signal platform and an engine."""

    def __init__(self, engine: ArbitrationEngine, *, logger: logging.Logger | None = None):
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)

    def operate(self, request: SignalPlatformRequest | None) -> SignalPlatformResponse:
        if request is None:
            self.logger.error("Signal platform request is empty")
            return SignalPlatformResponse.fail(MISSING_REQUEST_REASON)

        if request.device_id is None or request.signal_ip is None or request.mode is None:
            self.logger.error(
                "Signal platform request is missing parameters: device_id=%s, signal_ip=%s, mode=%s",
                request.device_id,
                request.signal_ip,
                request.mode,
            )
            return SignalPlatformResponse.fail(MISSING_PARAMETERS_REASON)

        action = mode_to_action(request.mode)
        self.logger.info(
            "Signal platform request translated: device_id=%s, signal_ip=%s, mode=%s -> action=%s",
            request.device_id,
            request.signal_ip,
            request.mode,
            action,
        )

        result = self.engine.operate(request.signal_ip, action, request.lock, request.device_id)
        response = SignalPlatformResponse.from_result(result)

        self.logger.info(
            "Signal platform response: allowed=%s, reason=%s, wait_position=%s",
            response.allowed,
            response.reason,
            response.wait_position,
        )
        return response
