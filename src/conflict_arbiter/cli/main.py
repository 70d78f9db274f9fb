"""CLI entrypoint for replaying request scripts."""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from dotenv import load_dotenv

from conflict_arbiter.arbitration.engine import ArbitrationEngine
from conflict_arbiter.cli.parser import parse_arguments
from conflict_arbiter.cli.replay import ScriptedClock, load_script, render, replay, state_frame
from conflict_arbiter.core.config import ArbiterConfig, LogConfig
from conflict_arbiter.core.exceptions import ArbiterError
from conflict_arbiter.core.logging import setup_logging


def main(argv: Sequence[str] | None = None) -> int:
    """Run the replay command. Returns the process exit code."""
    load_dotenv()
    args = parse_arguments(argv)

    log_config = LogConfig.from_args(args)
    logger = setup_logging(log_level=log_config.level, log_format=log_config.format, log_file=log_config.file)

    try:
        config = ArbiterConfig.from_args(args, base=ArbiterConfig.from_env(logger=logger))
        steps = load_script(Path(args.script))
        logger.info("Replaying %d request(s) from %s with %s", len(steps), args.script, config.to_dict())

        clock = ScriptedClock()
        engine = ArbitrationEngine(config, clock=clock, logger=logging.getLogger("conflict_arbiter.engine"))
        results = replay(engine, clock, steps, quiet=args.quiet, logger=logger)

        output = render(results, args.format)
        if args.show_state:
            output += "\n" + render(state_frame(engine), args.format)

        if args.output:
            try:
                Path(args.output).write_text(output, encoding="utf-8")
            except OSError as e:
                raise ArbiterError("Cannot write results", details=f"{args.output}: {e}") from e
            logger.info("Results written to %s", args.output)
        else:
            sys.stdout.write(output)
    except ArbiterError as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    granted = int(results["allowed"].sum()) if not results.empty else 0
    logger.info("Replay finished: %d of %d request(s) granted", granted, len(results))
    return 0


if __name__ == "__main__":
    sys.exit(main())
