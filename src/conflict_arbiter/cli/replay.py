"""Replay of scripted requests through an arbitration engine.

A script is a sequence of requests. Time on the replay clock only moves
when a step carries an ``at`` value, so replays are deterministic.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from tqdm import tqdm

from conflict_arbiter.arbitration.engine import ArbitrationEngine
from conflict_arbiter.core.constants import EXIT_ACTION
from conflict_arbiter.core.exceptions import ReplayError

LAST_TOKEN_REFERENCE = "@last"
SCRIPT_COLUMNS = ("object_id", "action", "token", "operator_id")
RESULT_COLUMNS = [
    "step",
    "at",
    "object_id",
    "operator_id",
    "action",
    "allowed",
    "token",
    "reason",
    "wait_position",
    "error",
]


class ScriptedClock:
    """Monotonic clock driven by the script instead of wall time."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_to(self, moment: float) -> None:
        if moment < self.now:
            raise ValueError(f"clock cannot move backwards ({moment} < {self.now})")
        self.now = moment


@dataclass
class ReplayStep:
    """One scripted request."""

    line: int
    object_id: str | None
    action: str | None
    token: str | None
    operator_id: str | None
    at: float | None = None


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value)
    return text if text != "" else None


def _parse_at(value: Any, script_path: Path, line: int) -> float | None:
    if _clean(value) is None:
        return None
    try:
        moment = float(value)
    except (TypeError, ValueError) as e:
        raise ReplayError("Invalid 'at' value", str(script_path), line, details=repr(value), original_error=e) from e
    if not math.isfinite(moment) or moment < 0:
        raise ReplayError("Invalid 'at' value", str(script_path), line, details=repr(value))
    return moment


def _rows_from_file(script_path: Path) -> list[dict[str, Any]]:
    suffix = script_path.suffix.lower()
    try:
        if suffix == ".csv":
            frame = pd.read_csv(script_path, dtype=str, keep_default_na=False)
            missing = [column for column in SCRIPT_COLUMNS if column not in frame.columns]
            if missing:
                raise ReplayError("Missing CSV columns", str(script_path), details=", ".join(missing))
            return frame.to_dict(orient="records")

        text = script_path.read_text(encoding="utf-8")
        if suffix == ".jsonl":
            rows = []
            for number, raw_line in enumerate(text.splitlines(), start=1):
                if not raw_line.strip():
                    continue
                try:
                    rows.append(json.loads(raw_line))
                except json.JSONDecodeError as e:
                    raise ReplayError("Invalid JSON line", str(script_path), number, original_error=e) from e
            return rows

        data = json.loads(text)
    except OSError as e:
        raise ReplayError("Cannot read script", str(script_path), details=str(e), original_error=e) from e
    except json.JSONDecodeError as e:
        raise ReplayError("Invalid JSON", str(script_path), details=str(e), original_error=e) from e
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ReplayError("Invalid CSV", str(script_path), details=str(e), original_error=e) from e

    if not isinstance(data, list):
        raise ReplayError("Script must be a JSON array of requests", str(script_path))
    return data


def load_script(script_path: Path) -> list[ReplayStep]:
    """Read a JSON, JSON lines or CSV script.

    Raises:
        ReplayError: If the file is unreadable, malformed, or its ``at`` values decrease.
    """
    steps: list[ReplayStep] = []
    previous_at = 0.0
    for line, row in enumerate(_rows_from_file(script_path), start=1):
        if not isinstance(row, dict):
            raise ReplayError("Each request must be an object", str(script_path), line)
        at = _parse_at(row.get("at"), script_path, line)
        if at is not None:
            if at < previous_at:
                raise ReplayError(
                    "'at' values must not decrease", str(script_path), line, details=f"{at} < {previous_at}"
                )
            previous_at = at
        steps.append(
            ReplayStep(
                line=line,
                object_id=_clean(row.get("object_id")),
                action=_clean(row.get("action")),
                token=_clean(row.get("token")),
                operator_id=_clean(row.get("operator_id")),
                at=at,
            )
        )
    return steps


def replay(
    engine: ArbitrationEngine,
    clock: ScriptedClock,
    steps: list[ReplayStep],
    *,
    quiet: bool = False,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """Run every step through the engine and tabulate the outcomes."""
    log = logger or logging.getLogger(__name__)
    last_tokens: dict[tuple[str | None, str | None], str] = {}
    records: list[dict[str, Any]] = []

    for step in tqdm(steps, desc="Replaying requests", unit="req", disable=quiet):
        if step.at is not None:
            clock.advance_to(step.at)

        key = (step.operator_id, step.object_id)
        token = step.token
        if token == LAST_TOKEN_REFERENCE:
            token = last_tokens.get(key)
            if token is None:
                log.debug("No earlier token for operator_id=%s on object_id=%s", step.operator_id, step.object_id)

        result = engine.operate(step.object_id, step.action, token, step.operator_id)

        if result.allowed and result.token is not None:
            last_tokens[key] = result.token
        elif result.allowed and step.action is not None and step.action.lower() == EXIT_ACTION:
            last_tokens.pop(key, None)

        records.append(
            {
                "step": step.line,
                "at": clock.now,
                "object_id": step.object_id,
                "operator_id": step.operator_id,
                "action": step.action,
                **result.to_dict(),
            }
        )

    frame = pd.DataFrame.from_records(records, columns=RESULT_COLUMNS)
    frame["wait_position"] = frame["wait_position"].astype("Int64")
    return frame


def state_frame(engine: ArbitrationEngine) -> pd.DataFrame:
    """Tabulate the final state of every referenced object."""
    snapshots = [engine.inspect(object_id) for object_id in sorted(engine.object_ids())]
    rows = [snapshot.to_dict() for snapshot in snapshots if snapshot is not None]
    for row in rows:
        row["waiting_operators"] = ",".join(row["waiting_operators"])
    return pd.DataFrame.from_records(
        rows,
        columns=["object_id", "lease_state", "owner_id", "action", "read_count", "waiting_operators", "max_queue_size"],
    )


def render(frame: pd.DataFrame, output_format: str) -> str:
    if output_format == "csv":
        return frame.to_csv(index=False)
    if output_format == "json":
        return frame.to_json(orient="records", indent=2) + "\n"
    if frame.empty:
        return "(no rows)\n"
    return frame.to_string(index=False, na_rep="") + "\n"
