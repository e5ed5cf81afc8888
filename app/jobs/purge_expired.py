"""
Scheduled maintenance job.

Purges dedupe ledger entries older than DEDUPE_TTL_HOURS and SystemEvents older
than the retention window. Conversations are not touched: expiry is logical and
happens when the next inbound message loads a stale record.

Run via: python -m app.jobs.purge_expired [--retention-days 90]
"""

import logging
import sys
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal
from app.services.dedupe import DedupeLedger
from app.services.system_event_service import cleanup_old_events
from app.utils.datetime_utils import as_utc, utc_now

logger = logging.getLogger(__name__)


def run_purge(
    db: Session,
    now: datetime | None = None,
    retention_days: int | None = None,
) -> dict:
    """
    Run both purges.

    Returns:
        dict with dedupe_entries_deleted and events_deleted
    """

    now = as_utc(now) or utc_now()
    retention_days = retention_days or settings.system_event_retention_days

    dedupe_deleted = DedupeLedger(db).purge_expired(now)
    events_deleted = cleanup_old_events(
        db,
        retention_days=retention_days,
        cutoff=now - timedelta(days=retention_days),
    )
    return {"dedupe_entries_deleted": dedupe_deleted, "events_deleted": events_deleted}


def main() -> None:
    """CLI entrypoint for the maintenance purge."""
    import argparse

    parser = argparse.ArgumentParser(description="Purge expired dedupe entries and old SystemEvents")
    parser.add_argument(
        "--retention-days",
        type=int,
        default=settings.system_event_retention_days,
        help=f"Delete events older than this many days (default: {settings.system_event_retention_days})",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    db = SessionLocal()
    try:
        result = run_purge(db, retention_days=args.retention_days)
        logger.info(
            f"Purge completed: deleted {result['dedupe_entries_deleted']} dedupe entries, "
            f"{result['events_deleted']} events"
        )
    except SQLAlchemyError as e:
        logger.error(f"Purge failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
