"""Launcher for the snapshot rotation daemon.

Archives a source tree every few minutes into a cascade of
minutes_ago/hours_ago/days_ago slots.

Usage:
    python run.py
    python run.py --from ~/src/project --snapshot ~/src/.snapshot
    python run.py --config snapshot.json --interval 60 -v
    python run.py --status
    python run.py --once
"""

import argparse
import logging
import os
import signal
import sys
import time

from src.rotation.config import SnapshotConfig, load_config
from src.rotation.engine import RotationEngine
from src.rotation.errors import DirectoryCreationError, SnapshotError
from src.rotation.scheduler import TickScheduler

logger = logging.getLogger("snapshot_rotation")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generational snapshot rotation",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to a JSON config file",
    )
    parser.add_argument(
        "--from", dest="from_dir",
        help="Directory to snapshot (default: .)",
    )
    parser.add_argument(
        "--snapshot", dest="snapshot_dir",
        help="Directory holding the snapshot tree (default: ../.snapshot)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        help="Seconds between rotation passes (default: 300)",
    )
    parser.add_argument(
        "--archiver",
        choices=["tar", "tarfile"],
        help="Use GNU tar or the built-in tarfile module",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every aging decision",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Build the newest archive once and exit",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Print the state of every slot and exit",
    )
    return parser


def resolve_config(args) -> SnapshotConfig:
    """Defaults, then the config file, then command-line flags."""
    config = load_config(args.config) if args.config else SnapshotConfig()
    for name in ("from_dir", "snapshot_dir", "interval", "archiver"):
        value = getattr(args, name)
        if value is not None:
            setattr(config, name, value)
    if args.verbose:
        config.verbose = True
    # Re-run validation on the merged values
    return SnapshotConfig(**vars(config))


def print_status(engine: RotationEngine):
    now = time.time()
    for s in engine.status(now):
        if not s.occupied:
            state = "empty"
        else:
            state = f"{s.age_seconds:.0f}s old"
            if s.aged_out:
                state += ", aged out"
        flag = " [must wait]" if s.must_wait else ""
        print(f"{s.path}: {state}{flag}")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = resolve_config(args)
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))

    logging.basicConfig(
        level=logging.DEBUG if config.verbose else getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    logger.info("Backing up %s to %s", config.from_dir, config.snapshot_dir)
    try:
        engine = RotationEngine.from_config(config)
    except DirectoryCreationError as exc:
        logger.error("%s", exc)
        return 1

    if args.status:
        print_status(engine)
        return 0

    if config.verbose:
        for path in engine.archives():
            logger.debug("Existing archive: %s", path)

    if args.once:
        try:
            engine.tick()
        except (SnapshotError, OSError) as exc:
            logger.error("%s", exc)
            return 1
        return 0

    scheduler = TickScheduler(engine, interval=config.interval)

    def handle_signal(signum, frame):
        logger.info("Received signal %s, shutting down...", signum)
        scheduler.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    scheduler.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
