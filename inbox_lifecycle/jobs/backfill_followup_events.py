"""
Job for recomputing follow-up events from stored message timelines.

Recomputes every conversation of a user (oldest first), optionally followed by a
loss-flag repair pass over already-attributed replies.
Run via: python -m inbox_lifecycle.jobs.backfill_followup_events --user-id U [--repair-loss-flags]
"""

import logging
import sys

from inbox_lifecycle.db.session import SessionLocal
from inbox_lifecycle.services.followup_event_store import (
    REPAIR_LIMIT_DEFAULT,
    backfill_followup_events_for_user,
    repair_followup_event_loss_flags,
)
from inbox_lifecycle.services.metrics.counters import get_metrics_summary

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for the follow-up event backfill."""
    import argparse

    parser = argparse.ArgumentParser(description="Backfill follow-up events for a user")
    parser.add_argument("--user-id", required=True, help="Owner whose conversations to recompute")
    parser.add_argument(
        "--repair-loss-flags",
        action="store_true",
        help="Re-classify attributed replies and fix loss flags after the backfill",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=REPAIR_LIMIT_DEFAULT,
        help=f"Max events scanned by the loss-flag repair (default: {REPAIR_LIMIT_DEFAULT})",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    db = SessionLocal()
    try:
        result = backfill_followup_events_for_user(db, args.user_id)
        logger.info(
            f"Backfill completed: {result['scanned_conversations']} conversations, "
            f"{result['upserted_events']} events"
        )
        if args.repair_loss_flags:
            repaired = repair_followup_event_loss_flags(db, user_id=args.user_id, limit=args.limit)
            logger.info(
                f"Loss flag repair completed: scanned {repaired['scanned']}, "
                f"updated {repaired['updated']}"
            )
        logger.debug(get_metrics_summary())
    except Exception as e:
        logger.error(f"Follow-up backfill failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
