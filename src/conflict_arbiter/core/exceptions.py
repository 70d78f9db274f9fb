"""Custom exceptions for Conflict Arbiter.

Request-level outcomes of the arbitration engine are never raised; they are
returned as result values. The classes here cover configuration mistakes,
untranslatable adapter input and malformed replay scripts.
"""


class ArbiterError(Exception):
    """Base exception for all Conflict Arbiter errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(ArbiterError):
    """Exception raised for invalid engine configuration.

    Examples:
        - Non-positive queue size
        - Non-positive lease hold time or queue wait time
        - Unknown priority strategy name
    """

    def __init__(self, message: str, field: str | None = None, value: object = None, details: str | None = None):
        self.field = field
        self.value = value
        super().__init__(message, details)

    def __str__(self) -> str:
        parts = [self.message]
        if self.field:
            parts.append(f"field '{self.field}'")
        if self.value is not None:
            parts.append(f"got {self.value!r}")
        if self.details:
            parts.append(self.details)
        return " - ".join(parts)


class ValidationError(ArbiterError):
    """Exception raised when external input cannot be translated into a request."""

    def __init__(self, message: str, field: str | None = None, details: str | None = None):
        self.field = field
        super().__init__(message, details)


class ReplayError(ArbiterError):
    """Exception raised for unreadable or malformed replay scripts.

    Attributes:
        script_path: Path of the script being replayed
        line: 1-based row number of the offending entry, when known
    """

    def __init__(
        self,
        message: str,
        script_path: str | None = None,
        line: int | None = None,
        details: str | None = None,
        original_error: Exception | None = None,
    ):
        self.script_path = script_path
        self.line = line
        self.original_error = original_error
        super().__init__(message, details)

    def __str__(self) -> str:
        parts = [self.message]
        if self.script_path:
            location = self.script_path if self.line is None else f"{self.script_path}:{self.line}"
            parts.append(f"in {location}")
        if self.details:
            parts.append(self.details)
        return " - ".join(parts)
