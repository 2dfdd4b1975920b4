import ipaddress
import logging
import os
from urllib.parse import quote

import requests
from dotenv import load_dotenv

from errors import UpstreamTimeout
from schema import LocationInfo

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

GEO_LOOKUP_URL = os.getenv("GEO_LOOKUP_URL", "https://ipapi.co").rstrip("/")
GEO_LOOKUP_TIMEOUT = float(os.getenv("GEO_LOOKUP_TIMEOUT", "1.5"))
GEO_USER_AGENT = "qr-redirect/1.0"

_LOCAL_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("0.0.0.0/8"),
]


def is_private_ip(ip: str) -> bool:
    """True for addresses that are never worth a lookup.

    IPv6 and anything that is not a plain dotted IPv4 quad count as private.
    """
    if not ip:
        return True
    candidate = ip.strip()
    if candidate.lower().startswith("::ffff:"):
        candidate = candidate[len("::ffff:"):]
    if ":" in candidate:
        return True
    try:
        address = ipaddress.IPv4Address(candidate)
    except ValueError:
        return True
    return any(address in network for network in _LOCAL_NETWORKS)


def _coordinate(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class GeoEnricher:
    """Approximate IP geolocation with a hard timeout.

    lookup() always returns a LocationInfo; failures degrade to Unknown.
    """

    def __init__(self, base_url: str = GEO_LOOKUP_URL, timeout: float = GEO_LOOKUP_TIMEOUT, http=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http or requests

    def lookup(self, ip: str) -> LocationInfo:
        if is_private_ip(ip):
            return LocationInfo()

        try:
            return self._fetch(ip.strip())
        except UpstreamTimeout as e:
            logger.warning(f"Geolocation timed out for {ip}: {e}")
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Geolocation failed for {ip}: {e}")
        return LocationInfo()

    def _fetch(self, ip: str) -> LocationInfo:
        url = f"{self.base_url}/{quote(ip, safe='')}/json/"
        try:
            res = self._http.get(url, timeout=self.timeout, headers={"User-Agent": GEO_USER_AGENT})
        except requests.Timeout as e:
            raise UpstreamTimeout(f"no answer within {self.timeout}s") from e

        if not 200 <= res.status_code < 300:
            logger.warning(f"Geolocation service returned HTTP {res.status_code} for {ip}")
            return LocationInfo()

        data = res.json()
        if not isinstance(data, dict) or data.get("error"):
            reason = data.get("reason") if isinstance(data, dict) else "unexpected payload"
            logger.warning(f"Geolocation service rejected {ip}: {reason}")
            return LocationInfo()

        return LocationInfo(
            country=data.get("country_name") or "Unknown",
            city=data.get("city") or "Unknown",
            region=data.get("region") or data.get("region_code") or "",
            lat=_coordinate(data.get("latitude")),
            lng=_coordinate(data.get("longitude")),
        )
