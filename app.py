import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse

from analytics import AnalyticsAggregator
from cleanup import guest_stats, run_cleanup
from enrich import GeoEnricher
from errors import InvalidRequest
from helpers import build_scan_draft
from recorder import ScanRecorder
from resolver import Resolver
from schema import AnalyticsResponse, CleanupResponse, GuestStatsResponse
from store import DocumentStore, get_store

logger = logging.getLogger(__name__)

app = APIRouter()

REDIRECT_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def get_geo_enricher() -> GeoEnricher:
    return GeoEnricher()


def get_recorder(
    store: DocumentStore = Depends(get_store),
    geo: GeoEnricher = Depends(get_geo_enricher),
) -> ScanRecorder:
    return ScanRecorder(store, geo)


@app.get("/health")
def health():
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.options("/r/")
@app.options("/r/{short_id}")
def redirect_preflight():
    return Response(status_code=200, headers=REDIRECT_CORS_HEADERS)


@app.get("/r/")
def redirect_without_id():
    raise InvalidRequest("Invalid QR code URL")


@app.get("/r/{short_id}")
def redirect_to_destination(
    short_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    store: DocumentStore = Depends(get_store),
    recorder: ScanRecorder = Depends(get_recorder),
):
    resolver = Resolver(store)
    code = resolver.resolve(short_id)
    destination = resolver.destination_for(code)

    # Device parsing is local and cheap; geolocation and writes run after the response
    draft = build_scan_draft(request)
    background_tasks.add_task(recorder.record, code.id, draft)

    logger.info(f"Redirecting {short_id} (QR code {code.id}) to {destination[:200]}")
    return RedirectResponse(destination, status_code=302, headers=REDIRECT_CORS_HEADERS)


@app.get("/analytics", response_model=AnalyticsResponse)
def get_analytics(
    qr_code_id: Optional[str] = Query(None, alias="qrCodeId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    store: DocumentStore = Depends(get_store),
):
    if not (qr_code_id and qr_code_id.strip()) or not (user_id and user_id.strip()):
        raise InvalidRequest("Missing qrCodeId or userId")
    return AnalyticsAggregator(store).summarize(qr_code_id.strip(), user_id.strip())


@app.post("/cleanup", response_model=CleanupResponse)
def manual_cleanup(store: DocumentStore = Depends(get_store)):
    logger.info("Manual cleanup triggered...")
    summary = run_cleanup(store)
    message = "Cleanup completed" if summary.deleted_qr_codes else "No expired guest QR codes found"
    return CleanupResponse(**summary.model_dump(), message=message)


@app.get("/guest-stats", response_model=GuestStatsResponse)
def get_guest_stats(store: DocumentStore = Depends(get_store)):
    return GuestStatsResponse(stats=guest_stats(store))
