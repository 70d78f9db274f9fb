"""Core module - Foundation components with no internal dependencies.

This module provides the basic building blocks used throughout the package:
- Version information
- Custom exceptions
- Configuration dataclasses
- Constants and defaults
- Logging helpers
"""

from conflict_arbiter.core.version import __version__

from conflict_arbiter.core.exceptions import (
    ArbiterError,
    ConfigurationError,
    ReplayError,
    ValidationError,
)

from conflict_arbiter.core.config import (
    ArbiterConfig,
    LogConfig,
    PriorityStrategy,
)

from conflict_arbiter.core.constants import (
    DEFAULT_CONFIG,
    DEFAULT_LOG,
    EXIT_ACTION,
    QUEUED_NOTICE,
    READ_ACTION,
    READ_TOKEN_PREFIX,
    TOKEN_ALPHABET,
    TOKEN_LENGTH,
)

from conflict_arbiter.core.logging import (
    JSONFormatter,
    SensitiveDataFilter,
    setup_logging,
    with_log_context,
)

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "ArbiterError",
    "ConfigurationError",
    "ReplayError",
    "ValidationError",
    # Config dataclasses
    "ArbiterConfig",
    "LogConfig",
    "PriorityStrategy",
    # Constants
    "DEFAULT_CONFIG",
    "DEFAULT_LOG",
    "EXIT_ACTION",
    "QUEUED_NOTICE",
    "READ_ACTION",
    "READ_TOKEN_PREFIX",
    "TOKEN_ALPHABET",
    "TOKEN_LENGTH",
    # Logging
    "JSONFormatter",
    "SensitiveDataFilter",
    "setup_logging",
    "with_log_context",
]
