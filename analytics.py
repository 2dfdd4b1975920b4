import logging
import os
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict

from dotenv import load_dotenv

from errors import Forbidden, NotFound
from resolver import find_code
from schema import AnalyticsResponse, DeviceInfo, LocationInfo, ScanResponse
from store import DocumentStore

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

ANALYTICS_SCAN_CAP = int(os.getenv("ANALYTICS_SCAN_CAP", "1000"))
ANALYTICS_RECENT_LIMIT = int(os.getenv("ANALYTICS_RECENT_LIMIT", "50"))

# Scans without a timestamp sort after every dated scan
_UNDATED = datetime.min.replace(tzinfo=timezone.utc)


def _number(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def enrich_scan(scan: Dict[str, Any]) -> ScanResponse:
    """Fill in location/device defaults so clients never see missing keys."""
    location = scan.get("location") or {}
    device = scan.get("device_info") or {}
    return ScanResponse(
        id=scan["id"],
        qr_code_id=scan["qr_code_id"],
        scanned_at=scan.get("scanned_at"),
        ip_address=scan.get("ip_address"),
        user_agent=scan.get("user_agent"),
        referrer=scan.get("referrer"),
        location=LocationInfo(
            country=str(location.get("country") or "Unknown"),
            city=str(location.get("city") or "Unknown"),
            region=str(location.get("region") or ""),
            lat=_number(location.get("lat")),
            lng=_number(location.get("lng")),
        ),
        device_info=DeviceInfo(
            type=str(device.get("type") or "unknown"),
            os=str(device.get("os") or "unknown"),
            browser=str(device.get("browser") or "unknown"),
            version=str(device.get("version") or ""),
        ),
    )


class AnalyticsAggregator:
    def __init__(
        self,
        store: DocumentStore,
        scan_cap: int = ANALYTICS_SCAN_CAP,
        recent_limit: int = ANALYTICS_RECENT_LIMIT,
    ):
        self.store = store
        self.scan_cap = scan_cap
        self.recent_limit = recent_limit

    def summarize(self, qr_code_id: str, user_id: str) -> AnalyticsResponse:
        code = find_code(self.store, qr_code_id, alias_first=False)
        if code is None:
            raise NotFound("QR code not found")
        if code.get("user_id") != user_id:
            logger.warning(f"User {user_id} asked for analytics of QR code {code['id']} they do not own")
            raise Forbidden("Access denied")

        # No server-side ordering: sorting happens here so the store needs no composite index
        scans = self.store.query("scans", [("qr_code_id", "==", code["id"])], limit=self.scan_cap)
        scans.sort(key=lambda scan: scan.get("scanned_at") or _UNDATED, reverse=True)

        recent = [enrich_scan(scan) for scan in scans[: self.recent_limit]]
        country_stats = Counter(scan.location.country for scan in recent)
        device_stats = Counter(scan.device_info.type for scan in recent)
        date_stats = Counter(
            scan["scanned_at"].astimezone(timezone.utc).strftime("%Y-%m-%d")
            for scan in scans
            if scan.get("scanned_at")
        )

        return AnalyticsResponse(
            total_scans=len(scans),
            # Distinct IPs, a heuristic rather than a true unique-visitor count
            unique_scans=len({scan.get("ip_address") for scan in scans}),
            recent_scans=recent,
            country_stats=dict(country_stats),
            device_stats=dict(device_stats),
            date_stats=dict(date_stats),
            last_scanned_at=scans[0].get("scanned_at") if scans else None,
        )
