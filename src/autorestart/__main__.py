"""Demo host: a process that restarts itself when its script changes.

Usage:
    python -m autorestart [--config PATH] [--watch FILE] [--interval SECONDS] [-v]

Touch or edit the watched file while it runs; the process logs the restart
notice and then relaunches with the same command line.
"""

from __future__ import annotations

import argparse
import os
import threading
from collections.abc import Sequence
from pathlib import Path

from autorestart import __version__
from autorestart.config import load_config
from autorestart.logging import get_logger, level_for_verbosity, setup_logging
from autorestart.supervisor import Supervisor

log = get_logger()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="autorestart",
        description="Run an idle process that relaunches itself when a file changes",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Config file path (default: AUTORESTART_CONFIG)",
    )
    parser.add_argument(
        "--watch",
        type=Path,
        help="File to watch (default: this program)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        help="Seconds between polls",
    )
    parser.add_argument(
        "--strategy",
        choices=["auto", "exec", "spawn", "signal"],
        help="How to relaunch",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="More log detail (-v verbose, -vv debug, -vvv trace)",
    )
    return parser


def _consume_notices(supervisor: Supervisor) -> None:
    notice = supervisor.register("demo")

    def drain() -> None:
        while notice.wait():
            log.info("Restart notice received by pid %d", os.getpid())

    threading.Thread(target=drain, name="autorestart-demo", daemon=True).start()


def _idle() -> None:
    threading.Event().wait()


def main(argv: Sequence[str] | None = None) -> int:
    args = create_parser().parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.logging, level=level_for_verbosity(args.verbose))

    supervisor = Supervisor(
        config,
        watch_file=args.watch,
        poll_interval=args.interval,
        strategy=args.strategy,
    )
    _consume_notices(supervisor)
    supervisor.start()
    log.info("pid %d watching %s", os.getpid(), supervisor.watch_file)

    try:
        _idle()
    except KeyboardInterrupt:
        log.info("Interrupted")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
