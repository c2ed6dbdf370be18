"""Dead-letter inspection CLI.

Reads the JSON lines file written by JsonlDeadLetterSink.
"""

import argparse
import json
import logging
import sys
from collections import Counter
from pathlib import Path

from dotenv import load_dotenv

from webhook_jobs.dlq import read_dead_letters
from webhook_jobs.schemas import DeadLetterRecord

# Project root directory (where .env file is located)
# cli.py is at src/webhook_jobs/cli.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


def _resolve_path(args: argparse.Namespace) -> Path:
    if args.file:
        return Path(args.file)

    from config.config import get_config

    return Path(get_config().dead_letter_path)


def _summary(record: DeadLetterRecord) -> dict:
    return {
        "job_id": record.job_id,
        "correlation_key": record.correlation_key,
        "source_event": record.source_event,
        "failure_kind": record.failure_kind,
        "reason": record.reason,
        "attempts": record.attempts,
        "failed_at": record.failed_at.isoformat(),
    }


def cmd_list(args: argparse.Namespace) -> int:
    """Execute list command."""
    path = _resolve_path(args)
    records = read_dead_letters(path)
    if args.key:
        records = [r for r in records if r.correlation_key == args.key]
    if args.kind:
        records = [r for r in records if r.failure_kind == args.kind]
    records = records[-args.limit :] if args.limit else records

    if args.json:
        print(json.dumps([_summary(r) for r in records], indent=2))
        return 0

    if not records:
        print(f"No dead-lettered jobs in {path}")
        return 0

    for record in records:
        print(
            f"{record.failed_at.isoformat()}  {record.job_id}  {record.correlation_key}  "
            f"{record.source_event}  {record.failure_kind or '-'}  "
            f"{record.reason} after {record.attempts} attempt(s)"
        )
    print(f"\nTotal: {len(records)}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Execute show command."""
    path = _resolve_path(args)
    matches = [r for r in read_dead_letters(path) if r.job_id == args.job_id]
    if not matches:
        print(f"Job {args.job_id} not found in {path}", file=sys.stderr)
        return 1

    print(matches[-1].model_dump_json(indent=2))
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Execute stats command."""
    records = read_dead_letters(_resolve_path(args))
    stats = {
        "total": len(records),
        "by_failure_kind": dict(Counter(r.failure_kind or "none" for r in records)),
        "by_source_event": dict(Counter(r.source_event for r in records)),
        "by_reason": dict(Counter(r.reason for r in records)),
    }

    if args.json:
        print(json.dumps(stats, indent=2))
        return 0

    print(f"Dead-lettered jobs: {stats['total']}")
    for section in ("by_failure_kind", "by_source_event", "by_reason"):
        print(f"\n{section.replace('_', ' ').capitalize()}:")
        for name, count in sorted(stats[section].items(), key=lambda item: -item[1]):
            print(f"  {name}: {count:,}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Webhook job dead-letter CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # List the last 20 dead-lettered jobs
    python -m webhook_jobs.cli list --limit 20

    # List dead-lettered jobs for one transaction
    python -m webhook_jobs.cli list --key TX-001

    # Show one record in full
    python -m webhook_jobs.cli show 3f2a9c...

    # Aggregate by failure kind, source event and reason
    python -m webhook_jobs.cli stats --json
        """,
    )
    parser.add_argument(
        "--file",
        help="Dead-letter JSON lines file (default: dead_letter.path from config)",
    )
    parser.add_argument("--json", action="store_true", help="Output JSON")

    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List dead-lettered jobs")
    list_parser.add_argument("--key", help="Only this correlation key")
    list_parser.add_argument("--kind", help="Only this failure kind")
    list_parser.add_argument("--limit", type=int, default=0, help="Only the last N records")
    list_parser.set_defaults(func=cmd_list)

    show_parser = subparsers.add_parser("show", help="Show one dead-lettered job")
    show_parser.add_argument("job_id", help="Job id to show")
    show_parser.set_defaults(func=cmd_show)

    stats_parser = subparsers.add_parser("stats", help="Aggregate dead-lettered jobs")
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    # Load environment variables from .env file before any config access
    load_dotenv(PROJECT_ROOT / ".env")
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "list" and args.limit < 0:
        parser.error("--limit must be >= 0")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
