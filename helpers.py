from typing import Optional

from fastapi import Request

from enrich import classify_user_agent
from schema import ScanDraft


def client_ip(request: Request) -> str:
    """Pick the single address used for geolocation.

    First hop of X-Forwarded-For, then X-Real-IP, then the socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else ""


def referrer(request: Request) -> Optional[str]:
    return request.headers.get("Referer") or request.headers.get("Referrer") or None


def build_scan_draft(request: Request) -> ScanDraft:
    user_agent = request.headers.get("User-Agent", "")
    return ScanDraft(
        ip_address=client_ip(request),
        user_agent=user_agent,
        referrer=referrer(request),
        device_info=classify_user_agent(user_agent),
    )
