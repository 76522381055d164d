#!/usr/bin/env python3
"""CLI entrypoint for the stake pool rebalance planner.

Usage::

    python run_planner.py
    python run_planner.py --config config/example.yaml
    python run_planner.py --offline --snapshot data.json

The planner refreshes the pool snapshot (falling back to the cached file when
the fetch fails), seeds the allocation state from it and starts the
interactive operator session.  The snapshot is read from the pool accounts over
RPC unless SNAPSHOT_URL names an HTTP endpoint serving it.  POOL_ADDRESS,
RPC_URL and SNAPSHOT_URL are read from the environment or a ``.env`` file.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from chain.names import ValidatorNameResolver
from chain.provider import SnapshotUnavailable
from chain.refresh import provider_for, refresh_snapshot
from console.session import PlannerSession
from models.config import PlannerConfig
from planner.state import AllocationState


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Plan a stake redistribution across the pool's validators.",
    )
    parser.add_argument(
        "--config",
        default=None,
        type=str,
        help="Path to a YAML configuration file (optional; POOL_ADDRESS from env otherwise).",
    )
    parser.add_argument(
        "--snapshot",
        default=None,
        type=str,
        help="Cached snapshot path (overrides snapshot_path from the config).",
    )
    parser.add_argument(
        "--output",
        default=None,
        type=str,
        help="Plan output path (overrides output_path from the config).",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Skip the snapshot fetch and name lookups; use the cached snapshot as-is.",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO").upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: $LOG_LEVEL or INFO).",
    )
    return parser.parse_args()


def _setup_logging(level: str) -> None:
    """Configure root logger with a clean format."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def main() -> int:
    args = _parse_args()
    _setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        config = PlannerConfig.load(args.config)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    overrides = {}
    if args.snapshot:
        overrides["snapshot_path"] = args.snapshot
    if args.output:
        overrides["output_path"] = args.output
    if overrides:
        config = config.model_copy(update=overrides)
    logger.info("Planning for pool %s", config.pool_address)

    provider = None
    resolver = None
    if not args.offline:
        provider = provider_for(config)
        if config.name_api_base:
            resolver = ValidatorNameResolver(config.name_api_base, config.http_timeout_seconds)

    try:
        snapshot = refresh_snapshot(provider, config.snapshot_path, resolver)
    except SnapshotUnavailable as exc:
        logger.error("No pool snapshot available: %s", exc)
        return 1

    state = AllocationState.from_snapshot(snapshot)
    PlannerSession(state, config).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
