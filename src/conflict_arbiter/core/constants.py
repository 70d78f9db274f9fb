"""Constants and default values for Conflict Arbiter.

This module centralizes the reserved action names, token formats and
default configuration instances used throughout the package.
"""

import string

from conflict_arbiter.core.config import ArbiterConfig, LogConfig

# ==================== ACTION NAMES ====================

# Compared case-insensitively; every other non-empty action is exclusive.
READ_ACTION: str = "read"
EXIT_ACTION: str = "exit"

# ==================== TOKENS ====================

TOKEN_ALPHABET: str = string.ascii_uppercase + string.digits
TOKEN_LENGTH: int = 10

# Shared-access tokens carry this prefix; the underscore never appears in lease tokens.
READ_TOKEN_PREFIX: str = "READ_"
READ_TOKEN_SUFFIX_LENGTH: int = 8

# ==================== RESULT MESSAGES ====================

QUEUED_NOTICE: str = "entered waiting queue"

# ==================== DEFAULT CONFIG INSTANCES ====================

DEFAULT_CONFIG = ArbiterConfig()
DEFAULT_LOG = LogConfig()

VALID_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
