"""Configuration dataclasses for Conflict Arbiter.

These dataclasses centralize all tunables for type safety and easy testing.
They can be created from command-line arguments, from the environment, or
used directly in code.
"""

from __future__ import annotations

import argparse
import logging
import math
import os
from pathlib import Path
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from conflict_arbiter.core.exceptions import ConfigurationError

ENV_MAX_QUEUE_SIZE = "ARBITER_MAX_QUEUE_SIZE"
ENV_LEASE_MAX_HOLD_SECONDS = "ARBITER_LEASE_MAX_HOLD_SECONDS"
ENV_MAX_QUEUE_WAIT_SECONDS = "ARBITER_MAX_QUEUE_WAIT_SECONDS"
ENV_PRIORITY_STRATEGY = "ARBITER_PRIORITY_STRATEGY"


class PriorityStrategy(Enum):
    """Selection policy used when promoting a waiting request."""

    FIFO = "fifo"  # Head of the queue wins
    SAME_ACTION_FIRST = "same_action_first"  # First entry matching the released action wins

    @classmethod
    def parse(cls, value: PriorityStrategy | str) -> PriorityStrategy:
        """Resolve a strategy from an enum member, its value, or its name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            for member in cls:
                if normalized in (member.value, member.name.lower()):
                    return member
        choices = ", ".join(member.value for member in cls)
        raise ConfigurationError(
            "Unknown priority strategy",
            field="priority_strategy",
            value=value,
            details=f"expected one of: {choices}",
        )


def _parse_env_numeric(value: str | None, cast: Callable[[str], Any]) -> Any | None:
    """Parse an environment value, returning None when invalid."""
    if value is None:
        return None
    try:
        parsed = cast(value)
    except (TypeError, ValueError):
        return None
    if isinstance(parsed, float) and not math.isfinite(parsed):
        return None
    return parsed


def _require_positive_duration(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError("Duration must be a number of seconds", field=name, value=value)
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError("Duration must be greater than zero", field=name, value=value)


@dataclass
class ArbiterConfig:
    """Master configuration for the arbitration engine.

    Attributes:
        max_queue_size: Waiting queue capacity for objects created under this config (default: 5)
        lease_max_hold_seconds: Lease expires when not refreshed for this long (default: 30s)
        max_queue_wait_seconds: Queue entries older than this are purged (default: 300s)
        priority_strategy: Promotion policy applied when a lease is released (default: FIFO)
    """

    max_queue_size: int = 5
    lease_max_hold_seconds: float = 30.0
    max_queue_wait_seconds: float = 300.0
    priority_strategy: PriorityStrategy = PriorityStrategy.FIFO

    def __post_init__(self) -> None:
        self.priority_strategy = PriorityStrategy.parse(self.priority_strategy)
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError if any value is out of range."""
        if isinstance(self.max_queue_size, bool) or not isinstance(self.max_queue_size, int):
            raise ConfigurationError("Queue size must be an integer", field="max_queue_size", value=self.max_queue_size)
        if self.max_queue_size <= 0:
            raise ConfigurationError(
                "Queue size must be greater than zero", field="max_queue_size", value=self.max_queue_size
            )
        _require_positive_duration("lease_max_hold_seconds", self.lease_max_hold_seconds)
        _require_positive_duration("max_queue_wait_seconds", self.max_queue_wait_seconds)

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_queue_size": self.max_queue_size,
            "lease_max_hold_seconds": self.lease_max_hold_seconds,
            "max_queue_wait_seconds": self.max_queue_wait_seconds,
            "priority_strategy": self.priority_strategy.value,
        }

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        logger: logging.Logger | None = None,
    ) -> ArbiterConfig:
        """Create configuration from ARBITER_* environment variables.

        Invalid values are reported as warnings and the default is kept.
        """
        env = os.environ if environ is None else environ
        log = logger or logging.getLogger(__name__)
        defaults = cls()
        values = defaults.to_dict()

        parsed_queue_size = _parse_env_numeric(env.get(ENV_MAX_QUEUE_SIZE), int)
        if parsed_queue_size is not None and parsed_queue_size > 0:
            values["max_queue_size"] = parsed_queue_size
        elif ENV_MAX_QUEUE_SIZE in env:
            log.warning(
                "Ignoring invalid %s=%r; using default %s",
                ENV_MAX_QUEUE_SIZE,
                env.get(ENV_MAX_QUEUE_SIZE),
                defaults.max_queue_size,
            )

        parsed_hold = _parse_env_numeric(env.get(ENV_LEASE_MAX_HOLD_SECONDS), float)
        if parsed_hold is not None and parsed_hold > 0:
            values["lease_max_hold_seconds"] = parsed_hold
        elif ENV_LEASE_MAX_HOLD_SECONDS in env:
            log.warning(
                "Ignoring invalid %s=%r; using default %s",
                ENV_LEASE_MAX_HOLD_SECONDS,
                env.get(ENV_LEASE_MAX_HOLD_SECONDS),
                defaults.lease_max_hold_seconds,
            )

        parsed_wait = _parse_env_numeric(env.get(ENV_MAX_QUEUE_WAIT_SECONDS), float)
        if parsed_wait is not None and parsed_wait > 0:
            values["max_queue_wait_seconds"] = parsed_wait
        elif ENV_MAX_QUEUE_WAIT_SECONDS in env:
            log.warning(
                "Ignoring invalid %s=%r; using default %s",
                ENV_MAX_QUEUE_WAIT_SECONDS,
                env.get(ENV_MAX_QUEUE_WAIT_SECONDS),
                defaults.max_queue_wait_seconds,
            )

        raw_strategy = env.get(ENV_PRIORITY_STRATEGY)
        if raw_strategy is not None:
            try:
                values["priority_strategy"] = PriorityStrategy.parse(raw_strategy)
            except ConfigurationError:
                log.warning(
                    "Ignoring invalid %s=%r; using default %s",
                    ENV_PRIORITY_STRATEGY,
                    raw_strategy,
                    defaults.priority_strategy.value,
                )

        return cls(**values)

    @classmethod
    def from_args(cls, args: argparse.Namespace, base: ArbiterConfig | None = None) -> ArbiterConfig:
        """Create configuration from parsed command-line arguments.

        Arguments left unset (None) fall back to ``base``, or to the defaults.
        """
        base = base or cls()

        def _pick(name: str, fallback: Any) -> Any:
            value = getattr(args, name, None)
            return fallback if value is None else value

        return cls(
            max_queue_size=_pick("max_queue_size", base.max_queue_size),
            lease_max_hold_seconds=_pick("lease_hold_seconds", base.lease_max_hold_seconds),
            max_queue_wait_seconds=_pick("queue_wait_seconds", base.max_queue_wait_seconds),
            priority_strategy=_pick("strategy", base.priority_strategy),
        )


@dataclass
class LogConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level string; None defers to LOG_LEVEL, then INFO
        format: "text" for human-readable lines, "json" for structured lines
        file: Optional path of a rotating log file
    """

    level: str | None = None
    format: str = "text"
    file: Path | None = None

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> LogConfig:
        """Create logging configuration from parsed command-line arguments.

        ``--quiet`` without an explicit ``--log-level`` lowers output to WARNING.
        """
        level = getattr(args, "log_level", None)
        if level is None and getattr(args, "quiet", False):
            level = "WARNING"
        log_file = getattr(args, "log_file", None)
        return cls(
            level=level,
            format=getattr(args, "log_format", None) or cls.format,
            file=Path(log_file) if log_file else None,
        )
