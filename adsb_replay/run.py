"""Command-line entry point for the timed Kafka replayer."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from .config import RunConfig, load_config, load_settings
from .driver import run_replay
from .errors import ConfigError

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s:%(levelname)s:%(name)s:%(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Replay a recorded ADS-B operations CSV into Kafka at its recorded pace"
    )
    parser.add_argument("--config", help="Path to a YAML/JSON run configuration")
    parser.add_argument("--file", help="CSV file to replay (default: operations.csv)")
    parser.add_argument(
        "--speed",
        type=float,
        help="Replay speed factor: 2 = twice as fast, 0.5 = half speed",
    )
    cap = parser.add_mutually_exclusive_group()
    cap.add_argument(
        "--max-delay-ms",
        type=float,
        help="Upper bound on any single wait between records",
    )
    cap.add_argument(
        "--no-max-delay",
        action="store_true",
        help="Reproduce recorded gaps without a cap",
    )
    parser.add_argument(
        "--no-align",
        action="store_true",
        help="Start from the first record instead of the current time-of-day",
    )
    parser.add_argument("--metrics-jsonl", help="Write per-record replay events to this JSONL file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default: INFO)",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> RunConfig:
    config = load_config(args.config) if args.config else RunConfig()
    overrides = {}
    if args.file:
        overrides["file"] = args.file
    if args.speed is not None:
        overrides["speed"] = args.speed
    if args.no_max_delay:
        overrides["max_delay_ms"] = None
    elif args.max_delay_ms is not None:
        overrides["max_delay_ms"] = args.max_delay_ms
    if args.no_align:
        overrides["align_to_now"] = False
    if args.metrics_jsonl:
        overrides["metrics_jsonl"] = args.metrics_jsonl
    return replace(config, **overrides)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger("aiokafka").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        run_config = resolve_config(args)
        run_config.replay_config()
        settings = load_settings()
    except ConfigError as exc:
        print(f"Fatal: {exc}", file=sys.stderr)
        sys.exit(2)
    sys.exit(run_replay(settings, run_config))


if __name__ == "__main__":
    main()
