"""CLI argument parsing."""

from __future__ import annotations

import argparse
from collections.abc import Sequence

from conflict_arbiter.core.config import PriorityStrategy
from conflict_arbiter.core.constants import VALID_LOG_LEVELS
from conflict_arbiter.core.version import __version__

OUTPUT_FORMATS = ("table", "csv", "json")


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from e
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than zero, got {parsed}")
    return parsed


def _positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected a number of seconds, got {value!r}") from e
    if not parsed > 0 or parsed == float("inf"):
        raise argparse.ArgumentTypeError(f"must be a finite number greater than zero, got {value}")
    return parsed


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        prog="conflict-arbiter",
        description="Conflict Arbiter - replay access requests through an arbitration engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Script format:
  JSON array, JSON lines (.jsonl) or CSV with the columns
  object_id, action, token, operator_id and an optional "at"
  (seconds on the replay clock, non-decreasing). A token of
  "@last" stands for the last token granted to that operator
  on that object.

Examples:
  # Replay with defaults and print a table
  conflict-arbiter requests.jsonl

  # Promote waiters with the same action first
  conflict-arbiter requests.csv --strategy same_action_first

  # Short leases, CSV output to a file
  conflict-arbiter requests.json --lease-hold-seconds 5 --format csv --output results.csv

  # Structured logs on stderr, final object state on stdout
  conflict-arbiter requests.jsonl --log-format json --show-state

  # Keep a log file next to the results
  conflict-arbiter requests.jsonl --log-file logs/replay.log --output results.txt

Environment:
  ARBITER_MAX_QUEUE_SIZE, ARBITER_LEASE_MAX_HOLD_SECONDS,
  ARBITER_MAX_QUEUE_WAIT_SECONDS, ARBITER_PRIORITY_STRATEGY and LOG_LEVEL
  are read (also from a .env file); command-line options take precedence.
""",
    )

    parser.add_argument("script", help="Path of the request script to replay")

    engine_group = parser.add_argument_group("engine")
    engine_group.add_argument(
        "--strategy",
        choices=[strategy.value for strategy in PriorityStrategy],
        default=None,
        help="Promotion policy for waiting requests (default: fifo)",
    )
    engine_group.add_argument(
        "--max-queue-size",
        type=_positive_int,
        default=None,
        help="Waiting queue capacity per object (default: 5)",
    )
    engine_group.add_argument(
        "--lease-hold-seconds",
        type=_positive_float,
        default=None,
        help="Seconds a lease survives without refresh (default: 30)",
    )
    engine_group.add_argument(
        "--queue-wait-seconds",
        type=_positive_float,
        default=None,
        help="Seconds a request may wait in the queue (default: 300)",
    )

    output_group = parser.add_argument_group("output")
    output_group.add_argument(
        "--format",
        choices=OUTPUT_FORMATS,
        default="table",
        help="Result format (default: table)",
    )
    output_group.add_argument("--output", default=None, help="Write results to this file instead of stdout")
    output_group.add_argument(
        "--show-state",
        action="store_true",
        help="Also print the final state of every object",
    )
    output_group.add_argument("--quiet", "-q", action="store_true", help="Hide the progress bar and info logs")

    log_group = parser.add_argument_group("logging")
    log_group.add_argument(
        "--log-level",
        type=str.upper,
        choices=VALID_LOG_LEVELS,
        default=None,
        help="Logging level (default: LOG_LEVEL env var or INFO)",
    )
    log_group.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log line format (default: text)",
    )
    log_group.add_argument(
        "--log-file",
        default=None,
        help="Also write logs to this rotating log file",
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser.parse_args(argv)
