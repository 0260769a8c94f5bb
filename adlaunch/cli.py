"""
Command line entry point.

  adlaunch deploy --adset ID --combination ID [--combination ID ...]
  adlaunch sync-performance
  adlaunch scheduler
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Optional, Sequence

from dotenv import load_dotenv

from adlaunch.config import SCHEMA_PATH_DEFAULT, SETTINGS_PATH_DEFAULT, load_settings
from adlaunch.deployment.orchestrator import BatchOrchestrator, default_client_factory
from adlaunch.infrastructure.error_handling import RequestInvalid
from adlaunch.infrastructure.supabase_storage import create_repository_from_env
from adlaunch.jobs.performance_sync import PerformanceSyncScheduler, sync_performance

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_REQUEST = 2


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    noise_levels = {
        "httpx": logging.WARNING,
        "httpcore": logging.WARNING,
        "urllib3": logging.WARNING,
        "hpack": logging.WARNING,
        "supabase": logging.WARNING,
        "postgrest": logging.WARNING,
        "schedule": logging.WARNING,
    }
    for name, lvl in noise_levels.items():
        logging.getLogger(name).setLevel(lvl)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="adlaunch", description="Deploy ad creative combinations to Meta")
    parser.add_argument("--settings", default=SETTINGS_PATH_DEFAULT)
    parser.add_argument("--schema", default=SCHEMA_PATH_DEFAULT)
    parser.add_argument("--dry-run", action="store_true", help="log intended Meta writes and return mock ids")
    parser.add_argument("--verbose", "-v", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", help="deploy combinations into one adset")
    deploy.add_argument("--adset", required=True, help="adset id")
    deploy.add_argument("--combination", action="append", default=[], dest="combinations", help="combination id (repeatable)")
    deploy.add_argument("--status", choices=["PAUSED", "ACTIVE"], default=None)
    deploy.add_argument("--user", default=None, help="requesting user id; enables the access check")
    deploy.add_argument("--workers", type=int, default=None)

    sub.add_parser("sync-performance", help="fetch yesterday's insights once")
    sub.add_parser("scheduler", help="run the daily performance sync in the foreground")
    return parser


def _cmd_deploy(args: argparse.Namespace, orchestrator: BatchOrchestrator) -> int:
    try:
        report = orchestrator.deploy(
            args.adset,
            args.combinations,
            status=args.status,
            user_id=args.user,
            max_workers=args.workers,
        )
    except RequestInvalid as e:
        print(json.dumps({"success": False, **e.to_dict()}, indent=2))
        return EXIT_REQUEST
    print(json.dumps(report.to_dict(), indent=2))
    return EXIT_PARTIAL if report.failed_count else EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv()
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = load_settings(args.settings, args.schema)
    except ValueError as e:
        logger.error(f"Invalid settings: {e}")
        return EXIT_REQUEST

    repository = create_repository_from_env()
    client_factory = default_client_factory(dry_run=args.dry_run)

    if args.command == "deploy":
        orchestrator = BatchOrchestrator(repository, settings.deployment, client_factory)
        return _cmd_deploy(args, orchestrator)

    if args.command == "sync-performance":
        summary = sync_performance(repository, client_factory, settings.performance_sync)
        print(json.dumps(summary.__dict__, indent=2))
        return EXIT_OK if not summary.failed else EXIT_PARTIAL

    if args.command == "scheduler":
        if not settings.performance_sync.enabled:
            logger.warning("performance_sync.enabled is false; nothing to schedule")
            return EXIT_OK
        scheduler = PerformanceSyncScheduler(repository, client_factory, settings.performance_sync)
        scheduler.start()
        try:
            while True:
                time.sleep(60)
        except KeyboardInterrupt:
            logger.info("Stopping scheduler")
        finally:
            scheduler.stop()
        return EXIT_OK

    return EXIT_REQUEST


if __name__ == "__main__":
    sys.exit(main())
