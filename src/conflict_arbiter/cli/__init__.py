"""CLI module - Command-line interface components."""

from conflict_arbiter.cli.main import main
from conflict_arbiter.cli.parser import parse_arguments
from conflict_arbiter.cli.replay import (
    ReplayStep,
    ScriptedClock,
    load_script,
    render,
    replay,
    state_frame,
)

__all__ = [
    "ReplayStep",
    "ScriptedClock",
    "load_script",
    "main",
    "parse_arguments",
    "render",
    "replay",
    "state_frame",
]
