import logging
from dataclasses import dataclass
from typing import Optional

from enrich import GeoEnricher
from errors import DocumentNotFound, StoreWriteFailure
from schema import ScanDraft
from store import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class RecordOutcome:
    event_id: Optional[str]
    counter_incremented: bool

    @property
    def complete(self) -> bool:
        return self.event_id is not None and self.counter_incremented


class ScanRecorder:
    """Persists one scan after the redirect has already been sent.

    The counter update and the event append are independent writes: either
    may fail without affecting the other, and neither failure is raised.
    A code deleted before recording gets no event, so no scan outlives it.
    """

    def __init__(self, store: DocumentStore, geo: GeoEnricher):
        self.store = store
        self.geo = geo

    def record(self, qr_code_id: str, draft: ScanDraft) -> RecordOutcome:
        try:
            counter_incremented = self._increment_counter(qr_code_id)
        except DocumentNotFound:
            logger.warning(f"QR code {qr_code_id} was deleted before its scan was recorded; scan dropped")
            return RecordOutcome(event_id=None, counter_incremented=False)

        location = self.geo.lookup(draft.ip_address)
        event_id = self._append_event(qr_code_id, draft, location)

        outcome = RecordOutcome(event_id=event_id, counter_incremented=counter_incremented)
        if outcome.complete:
            logger.info(f"Scan {event_id} recorded for QR code {qr_code_id}")
        else:
            logger.warning(
                f"Partial scan record for QR code {qr_code_id}: "
                f"event_id={event_id} counter_incremented={counter_incremented}"
            )
        return outcome

    def _increment_counter(self, qr_code_id: str) -> bool:
        now = self.store.server_timestamp()
        try:
            self.store.atomic_increment(
                "qrcodes",
                qr_code_id,
                "scan_count",
                1,
                last_scanned_at=now,
                updated_at=now,
            )
            return True
        except StoreWriteFailure as e:
            logger.error(f"Failed to update scan count for QR code {qr_code_id}: {e}")
            return False

    def _append_event(self, qr_code_id: str, draft: ScanDraft, location) -> Optional[str]:
        event = {
            "qr_code_id": qr_code_id,
            "scanned_at": self.store.server_timestamp(),
            "ip_address": draft.ip_address[:45],
            "user_agent": draft.user_agent[:512],
            "referrer": draft.referrer[:2048] if draft.referrer else None,
            "device_info": draft.device_info.model_dump(),
            "location": location.model_dump(exclude_none=True),
        }
        try:
            return self.store.add("scans", event)
        except StoreWriteFailure as e:
            logger.error(f"Failed to log scan for QR code {qr_code_id}: {e}")
            return None
