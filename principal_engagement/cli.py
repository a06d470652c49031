"""
Principal Engagement - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for engagement scoring.

- score:    score a rollup given on the command line
- classify: classify a last activity date
- report:   evaluate all principals from the database
- refresh:  refresh the activity summary view
- watch:    refresh the view on change notifications
- check:    verify the database and required relations

============================================================
USAGE
============================================================
python -m principal_engagement.cli score --interactions 10 --opportunities 3 \\
    --products 2 --last-activity 2025-01-10T00:00:00+00:00
python -m principal_engagement.cli classify --last-activity 2025-01-01
python -m principal_engagement.cli report --status ACTIVE --min-score 50
python -m principal_engagement.cli refresh

============================================================
"""

import argparse
import json
import logging
import sys
import time
from datetime import datetime, timezone
from typing import List, Optional

from database.engine import (
    create_all_tables,
    find_missing_relations,
    get_db_session,
    get_engine,
    verify_database_connection,
)

from .analytics import EngagementFilter, compute_stats, filter_engagements
from .classifier import classify_activity
from .config import EngagementConfig, load_config_from_env
from .engine import EngagementScoringEngine, format_engagement_summary
from .refresh import RefreshCoordinator, listen, process_notifications
from .repository import ActivityRollupRepository
from .types import ActivityRollup, ActivityStatus, EngagementError, RollupSourceError

logger = logging.getLogger(__name__)


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "text") -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)

    Returns:
        Package logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("principal_engagement")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def _parse_datetime(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 datetime: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {number}")
    return number


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="principal-engagement",
        description="Principal engagement scoring and activity classification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s score --interactions 10 --opportunities 3 --products 2 --last-activity 2025-01-10
  %(prog)s classify --last-activity 2025-01-01 --now 2025-03-01
  %(prog)s report --status ACTIVE MODERATE --top 10
  %(prog)s refresh --blocking
        """,
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="text",
        help="Logging format (default: text)",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # --------------------------------------------------------
    # score
    # --------------------------------------------------------
    score_parser = subparsers.add_parser("score", help="Score a single rollup")
    score_parser.add_argument("--name", type=str, default=None, help="Principal name")
    score_parser.add_argument("--interactions", type=_non_negative_int, default=0)
    score_parser.add_argument("--opportunities", type=_non_negative_int, default=0)
    score_parser.add_argument("--products", type=_non_negative_int, default=0)
    score_parser.add_argument("--last-activity", type=_parse_datetime, default=None, metavar="ISO")
    score_parser.add_argument("--now", type=_parse_datetime, default=None, metavar="ISO")
    score_parser.add_argument("--json", action="store_true", help="Print JSON")

    # --------------------------------------------------------
    # classify
    # --------------------------------------------------------
    classify_parser = subparsers.add_parser("classify", help="Classify a last activity date")
    classify_parser.add_argument("--last-activity", type=_parse_datetime, default=None, metavar="ISO")
    classify_parser.add_argument("--now", type=_parse_datetime, default=None, metavar="ISO")

    # --------------------------------------------------------
    # report
    # --------------------------------------------------------
    report_parser = subparsers.add_parser("report", help="Evaluate principals from the database")
    report_parser.add_argument(
        "--status",
        nargs="+",
        choices=[s.value for s in ActivityStatus],
        default=[],
        help="Only include these activity statuses",
    )
    report_parser.add_argument("--min-score", type=_non_negative_int, default=None)
    report_parser.add_argument("--max-score", type=_non_negative_int, default=None)
    report_parser.add_argument("--last-activity-days", type=_non_negative_int, default=None)
    report_parser.add_argument("--search", type=str, default=None, help="Name substring")
    report_parser.add_argument("--top", type=_non_negative_int, default=None, help="Top performers to list")
    report_parser.add_argument("--now", type=_parse_datetime, default=None, metavar="ISO")
    report_parser.add_argument("--json", action="store_true", help="Print JSON")

    # --------------------------------------------------------
    # refresh / watch
    # --------------------------------------------------------
    refresh_parser = subparsers.add_parser("refresh", help="Refresh the activity summary view")
    refresh_parser.add_argument(
        "--blocking",
        action="store_true",
        help="Refresh without CONCURRENTLY (locks readers)",
    )

    watch_parser = subparsers.add_parser("watch", help="Refresh on change notifications")
    watch_parser.add_argument("--poll-interval", type=float, default=5.0, metavar="SECONDS")
    watch_parser.add_argument(
        "--max-cycles",
        type=_non_negative_int,
        default=None,
        help="Stop after N polling cycles (default: run until interrupted)",
    )

    # --------------------------------------------------------
    # check
    # --------------------------------------------------------
    check_parser = subparsers.add_parser("check", help="Verify database connectivity and schema")
    check_parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing application tables first",
    )

    return parser


# ============================================================
# COMMANDS
# ============================================================

def _now(args: argparse.Namespace) -> datetime:
    return args.now if getattr(args, "now", None) else datetime.now(timezone.utc)


def cmd_score(args: argparse.Namespace, config: EngagementConfig) -> int:
    engine = EngagementScoringEngine(config)
    rollup = ActivityRollup(
        principal_name=args.name,
        total_interactions=args.interactions,
        total_opportunities=args.opportunities,
        product_count=args.products,
        last_activity_at=args.last_activity,
    )
    result = engine.evaluate(rollup, _now(args))

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(format_engagement_summary(result))
    return 0


def cmd_classify(args: argparse.Namespace, config: EngagementConfig) -> int:
    status = classify_activity(args.last_activity, _now(args), config.thresholds)
    print(status.value)
    return 0


def cmd_report(args: argparse.Namespace, config: EngagementConfig) -> int:
    now = _now(args)
    engine = EngagementScoringEngine(config)

    with get_db_session() as session:
        rollups = ActivityRollupRepository(session, config.refresh).list_rollups()

    engagements = engine.evaluate_batch(rollups, now)
    filt = EngagementFilter(
        statuses=frozenset(ActivityStatus(s) for s in args.status),
        min_score=args.min_score,
        max_score=args.max_score,
        last_activity_days=args.last_activity_days,
        search=args.search,
    )
    selected = filter_engagements(engagements, filt, now)
    top_n = config.top_performers_limit if args.top is None else args.top
    stats = compute_stats(selected, top_n=top_n)

    if args.json:
        print(json.dumps({
            "principals": [e.to_dict() for e in selected],
            "stats": stats.to_dict(),
        }, indent=2))
        return 0

    print(f"{'PRINCIPAL':40s} {'SCORE':>5s}  STATUS")
    print("-" * 60)
    for e in selected:
        print(f"{(e.principal_name or str(e.principal_id))[:40]:40s} {e.score:5d}  {e.status.value}")
    print("-" * 60)
    print(f"Principals: {stats.total_principals}  Active: {stats.active_principals}  "
          f"Avg score: {stats.average_engagement_score:.2f}")
    distribution = ", ".join(
        f"{status.value}={count}" for status, count in stats.status_distribution.items()
    )
    print(f"Distribution: {distribution}")
    return 0


def cmd_refresh(args: argparse.Namespace, config: EngagementConfig) -> int:
    with get_db_session() as session:
        repository = ActivityRollupRepository(session, config.refresh)
        try:
            log = repository.refresh(concurrently=not args.blocking)
        except RollupSourceError as e:
            # Keep the failure record
            session.commit()
            print(f"Error: {e}", file=sys.stderr)
            return 1
        session.commit()

    print(f"Refreshed {log.view_name} in {log.duration_ms}ms")
    return 0


def cmd_watch(args: argparse.Namespace, config: EngagementConfig) -> int:
    def refresh_view() -> None:
        with get_db_session() as session:
            repository = ActivityRollupRepository(session, config.refresh)
            try:
                repository.refresh(refresh_type="notification")
            except RollupSourceError:
                # Keep the failure record, the coordinator retries
                session.commit()
                raise
            session.commit()

    coordinator = RefreshCoordinator(refresh_view, config.refresh.min_interval_seconds)

    raw = get_engine().raw_connection()
    try:
        dbapi_connection = raw.driver_connection
        dbapi_connection.autocommit = True
        listen(dbapi_connection, config.refresh.notify_channel)

        cycles = 0
        while args.max_cycles is None or cycles < args.max_cycles:
            try:
                process_notifications(
                    coordinator,
                    dbapi_connection,
                    config.refresh.notify_channel,
                    datetime.now(timezone.utc),
                )
            except RollupSourceError:
                # Still pending; retried next cycle
                pass
            cycles += 1
            time.sleep(args.poll_interval)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        raw.close()

    logger.info(f"Watcher stopped after {coordinator.refresh_count} refreshes")
    return 0


def cmd_check(args: argparse.Namespace, config: EngagementConfig) -> int:
    engine = get_engine()
    verify_database_connection(engine)

    if args.create_tables:
        create_all_tables(engine)

    relations = (config.refresh.view_name.split(".")[-1], "activity_refresh_log")
    missing = find_missing_relations(engine, relations)
    if missing:
        print(f"Missing relations: {', '.join(missing)}", file=sys.stderr)
        return 1

    print("Database OK")
    return 0


COMMANDS = {
    "score": cmd_score,
    "classify": cmd_classify,
    "report": cmd_report,
    "refresh": cmd_refresh,
    "watch": cmd_watch,
    "check": cmd_check,
}


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level, args.log_format)

    try:
        config = load_config_from_env()
        return COMMANDS[args.command](args, config)
    except EngagementError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
