import logging
import os
import time
from datetime import datetime
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv

from errors import BatchCommitFailure, StoreWriteFailure
from schema import CleanupSummary, GuestStats
from store import MAX_BATCH_SIZE, DocumentStore, WriteOp

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

CLEANUP_BATCH_SIZE = min(int(os.getenv("CLEANUP_BATCH_SIZE", MAX_BATCH_SIZE)), MAX_BATCH_SIZE)
CLEANUP_INTERVAL_HOURS = float(os.getenv("CLEANUP_INTERVAL_HOURS", 1))
CLEANUP_RETRY_COUNT = int(os.getenv("CLEANUP_RETRY_COUNT", 3))
CLEANUP_RETRY_BACKOFF_SECONDS = float(os.getenv("CLEANUP_RETRY_BACKOFF_SECONDS", 2))

CLEANUP_JOB_ID = "cleanup_expired_guest_codes"


def _chunks(items, size):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def run_cleanup(
    store: DocumentStore,
    now: Optional[datetime] = None,
    batch_size: int = CLEANUP_BATCH_SIZE,
) -> CleanupSummary:
    """Delete one batch of expired guest codes together with their scans.

    Commit order: every scan chunk first, then the batch of codes. If any
    commit fails the codes are still present, so the next pass finds them
    again and deletes whatever scans remain; no scan is left without its
    code. Running it again over an already-cleaned set deletes nothing.
    """
    batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
    now = now or store.server_timestamp()
    logger.info("Starting cleanup of expired guest QR codes...")

    expired = store.query(
        "qrcodes",
        [("is_guest", "==", True), ("expires_at", "<=", now)],
        limit=batch_size,
    )
    if not expired:
        logger.info("No expired guest QR codes found")
        return CleanupSummary()

    logger.info(f"Found {len(expired)} expired guest QR codes to delete")

    code_deletes = []
    scan_deletes = []
    for code in expired:
        code_deletes.append(WriteOp.delete("qrcodes", code["id"]))
        for scan in store.query("scans", [("qr_code_id", "==", code["id"])]):
            scan_deletes.append(WriteOp.delete("scans", scan["id"]))

    try:
        for chunk in _chunks(scan_deletes, batch_size):
            store.batch_write(chunk)
        store.batch_write(code_deletes)
    except StoreWriteFailure as e:
        logger.error(f"Cleanup batch commit failed: {e}")
        raise BatchCommitFailure("Cleanup failed") from e

    deleted_ids = [op.doc_id for op in code_deletes]
    logger.info(
        f"Deleted {len(deleted_ids)} expired guest QR codes and {len(scan_deletes)} scans "
        f"({', '.join(deleted_ids[:10])}{' ...' if len(deleted_ids) > 10 else ''})"
    )
    return CleanupSummary(deleted_qr_codes=len(code_deletes), deleted_scans=len(scan_deletes))


def scheduled_cleanup(
    store: DocumentStore,
    retries: int = CLEANUP_RETRY_COUNT,
    backoff: float = CLEANUP_RETRY_BACKOFF_SECONDS,
    sleep=time.sleep,
) -> CleanupSummary:
    """Scheduler entry point: retry failed passes with exponential backoff."""
    attempt = 0
    while True:
        try:
            return run_cleanup(store)
        except BatchCommitFailure as e:
            if attempt >= retries:
                logger.error(f"Cleanup failed after {attempt + 1} attempts: {e}")
                raise
            delay = backoff * (2 ** attempt)
            attempt += 1
            logger.warning(f"Cleanup attempt {attempt} failed ({e}); retrying in {delay:.1f}s")
            sleep(delay)


def guest_stats(store: DocumentStore, now: Optional[datetime] = None) -> GuestStats:
    now = now or store.server_timestamp()
    guest = ("is_guest", "==", True)
    return GuestStats(
        total_guest_qr_codes=store.count("qrcodes", [guest]),
        expired_guest_qr_codes=store.count("qrcodes", [guest, ("expires_at", "<=", now)]),
        active_guest_qr_codes=store.count("qrcodes", [guest, ("expires_at", ">", now)]),
        timestamp=now,
    )


# Configure scheduler with proper job settings to prevent queue backup
executors = {
    'default': ThreadPoolExecutor(1),
}
job_defaults = {
    'coalesce': True,          # Combine multiple pending runs into one
    'max_instances': 1,        # Only allow 1 instance of each job
    'misfire_grace_time': 300,
}


def _log_job_error(event):
    logger.error(f"Scheduled job {event.job_id} raised: {event.exception}")


def create_scheduler(store: DocumentStore) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(executors=executors, job_defaults=job_defaults, timezone="UTC")
    scheduler.add_job(
        scheduled_cleanup,
        'interval',
        hours=CLEANUP_INTERVAL_HOURS,
        id=CLEANUP_JOB_ID,
        args=[store],
        replace_existing=True,
    )
    scheduler.add_listener(_log_job_error, EVENT_JOB_ERROR)
    return scheduler
