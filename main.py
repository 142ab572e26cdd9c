import argparse
import json
import logging
import sys

from reminder_engine.models.reply import InboundReply
from reminder_engine.scheduler import (
    COMPLETION_JOB, DISPATCH_JOB, FOLLOW_UP_JOB, build_services, build_worker
)
from reminder_engine.utils.config import config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def _print(result):
    if hasattr(result, "model_dump"):
        result = result.model_dump()
    print(json.dumps(result, indent=2, default=str))


def main(argv=None):
    parser = argparse.ArgumentParser(description="Appointment reminder and follow-up worker")
    parser.add_argument("--db", default=None, help="SQLite database path (defaults to DB_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the worker until interrupted")
    sub.add_parser("dispatch", help="Run one reminder dispatch pass")
    sub.add_parser("follow-up", help="Run one follow-up pass")
    sub.add_parser("complete", help="Run one appointment completion pass")

    reply = sub.add_parser("reply", help="Process an inbound reply (YES / NO / RESCHEDULE)")
    reply.add_argument("--from", dest="from_address", required=True, help="Sender phone number or email")
    reply.add_argument("--body", required=True, help="Reply text")

    sub.add_parser("stats", help="Show reminder and appointment counts per status")

    args = parser.parse_args(argv)

    if not config.validate_config():
        logger.warning("Some channel credentials are missing; affected reminders will fail or be simulated")

    services = build_services(args.db)
    worker = build_worker(services)

    if args.command == "run":
        worker.start(blocking=True)
        return 0

    if args.command in (DISPATCH_JOB, FOLLOW_UP_JOB, COMPLETION_JOB):
        result = worker.run_once(args.command)
        if result is None:
            print(f"{args.command} pass skipped: another worker holds the lock")
            return 1
        _print(result)
        return 1 if result.aborted else 0

    if args.command == "reply":
        outcome = services["responses"].handle_reply(
            InboundReply(from_address=args.from_address, body_text=args.body)
        )
        _print(outcome)
        return 0

    if args.command == "stats":
        _print({
            "reminders": services["reminders"].get_delivery_stats(),
            "appointments": services["appointments"].count_by_status(),
        })
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
