"""Adapters translating external request vocabularies into engine operations."""

from conflict_arbiter.adapters.signal_platform import (
    EXIT_MODES,
    SignalPlatformAdapter,
    SignalPlatformRequest,
    SignalPlatformResponse,
    mode_to_action,
)

__all__ = [
    "EXIT_MODES",
    "SignalPlatformAdapter",
    "SignalPlatformRequest",
    "SignalPlatformResponse",
    "mode_to_action",
]
