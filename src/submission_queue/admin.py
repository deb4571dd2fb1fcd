#!/usr/bin/env python3
"""
Operator tooling for the submission retry queue.

Usage:
    submission-queue-admin status
    submission-queue-admin list --limit 20 --offset 40
    submission-queue-admin retry <submission_id> --priority 1
    submission-queue-admin retry-all
    submission-queue-admin set-priority <submission_id> 3
    submission-queue-admin prune
    submission-queue-admin purge --yes

Every command prints JSON on stdout.
"""

import argparse
import json
import sys
from collections.abc import Sequence

from .config import Config
from .database import create_db_engine, create_session_factory, init_db
from .errors import QueueError
from .mqtt import shutdown_broadcaster
from .service import SubmissionQueueService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect and steer the submission retry queue")
    parser.add_argument("--database-url", default=Config.DATABASE_URL, help="Queue database URL")
    commands = parser.add_subparsers(dest="command", required=True)

    _ = commands.add_parser("status", help="Aggregate queue counts")

    list_cmd = commands.add_parser("list", help="Queue entries in claim order")
    _ = list_cmd.add_argument("--limit", type=int, default=50)
    _ = list_cmd.add_argument("--offset", type=int, default=0)

    retry_cmd = commands.add_parser("retry", help="Retry one submission at elevated priority")
    _ = retry_cmd.add_argument("submission_id")
    _ = retry_cmd.add_argument("--priority", type=int, default=Config.HIGH_PRIORITY)

    _ = commands.add_parser("retry-all", help="Retry every permanently failed submission")

    priority_cmd = commands.add_parser("set-priority", help="Change a queued submission's priority")
    _ = priority_cmd.add_argument("submission_id")
    _ = priority_cmd.add_argument("priority", type=int)

    _ = commands.add_parser(
        "prune", help="Delete entries whose submission is gone or already delivered"
    )

    purge_cmd = commands.add_parser("purge", help="Delete every queue entry")
    _ = purge_cmd.add_argument("--yes", action="store_true", help="Confirm the purge")

    return parser


def run_command(service: SubmissionQueueService, args: argparse.Namespace) -> dict:
    """Execute one parsed command against the service and return its JSON payload."""
    if args.command == "status":
        return service.status().model_dump()
    if args.command == "list":
        return service.list(limit=args.limit, offset=args.offset).model_dump(mode="json")
    if args.command == "retry":
        service.retry_submission(args.submission_id, args.priority)
        return {"submission_id": args.submission_id, "priority": args.priority, "queued": True}
    if args.command == "retry-all":
        return {"retried": service.retry_all_failed()}
    if args.command == "set-priority":
        service.set_priority(args.submission_id, args.priority)
        return {"submission_id": args.submission_id, "priority": args.priority}
    if args.command == "prune":
        return {"pruned": service.prune()}
    if args.command == "purge":
        if not args.yes:
            raise ValueError("purge deletes every queue entry; pass --yes to confirm")
        return {"purged": service.purge()}
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    engine = create_db_engine(args.database_url)
    init_db(engine)
    service = SubmissionQueueService(create_session_factory(engine))

    try:
        result = run_command(service, args)
    except (QueueError, ValueError) as e:
        print(json.dumps({"error": str(e)}), file=sys.stderr)
        return 2
    finally:
        shutdown_broadcaster()
        engine.dispose()

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
