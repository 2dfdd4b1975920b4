import asyncio
from datetime import datetime, timedelta, timezone

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


def _asgi_get(app, path):
    """Call the app directly and return the status and headers of the response.

    httpx refuses to build redirect requests for non-http Location values
    such as WIFI: or sms: payloads, so those are read off the ASGI messages.
    """
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": b"",
        "root_path": "",
        "headers": [(b"host", b"testserver")],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }
    sent = []
    request_sent = False

    async def receive():
        nonlocal request_sent
        if not request_sent:
            request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        return {"type": "http.disconnect"}

    async def send(message):
        sent.append(message)

    asyncio.run(app(scope, receive, send))
    start = next(m for m in sent if m["type"] == "http.response.start")
    return start["status"], dict(start["headers"])


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "OK"


def test_redirect_records_scan(client, store, make_code):
    code_id = make_code(short_id="promo", content={"url": "https://example.com/landing"})

    res = client.get(
        "/r/promo",
        headers={"User-Agent": IPHONE_UA, "Referer": "https://news.example", "X-Forwarded-For": "8.8.8.8, 10.0.0.1"},
        follow_redirects=False,
    )

    assert res.status_code == 302
    assert res.headers["location"] == "https://example.com/landing"
    assert res.headers["access-control-allow-origin"] == "*"

    assert store.get("qrcodes", code_id)["scan_count"] == 1
    scans = store.query("scans", [("qr_code_id", "==", code_id)])
    assert len(scans) == 1
    assert scans[0]["ip_address"] == "8.8.8.8"
    assert scans[0]["referrer"] == "https://news.example"
    assert scans[0]["device_info"]["type"] == "mobile"
    assert scans[0]["location"]["country"] == "Germany"


def test_geolocation_uses_first_forwarded_hop(client, geo, make_code):
    make_code(short_id="hop")
    client.get("/r/hop", headers={"X-Forwarded-For": " 8.8.4.4 ,172.16.0.1"}, follow_redirects=False)
    assert geo.calls == ["8.8.4.4"]


def test_redirect_to_derived_destination(client, store, make_code):
    code_id = make_code(short_id="wifi", content_type="wifi", content={"ssid": "MyWiFi", "password": "secret123", "encryption": "WPA2"})

    status, headers = _asgi_get(client.app, "/r/wifi")

    assert status == 302
    assert headers[b"location"] == b"WIFI:T:WPA2;S:MyWiFi;P:secret123;;"
    assert store.get("qrcodes", code_id)["scan_count"] == 1


def test_unknown_code_is_404(client):
    res = client.get("/r/nothing-here", follow_redirects=False)
    assert res.status_code == 404
    assert res.json() == {"detail": "QR Code not found"}


def test_inactive_code_is_410_and_not_recorded(client, store, make_code):
    code_id = make_code(short_id="old", is_active=False)
    res = client.get("/r/old", follow_redirects=False)
    assert res.status_code == 410
    assert res.json() == {"detail": "QR Code is inactive"}
    assert store.get("qrcodes", code_id)["scan_count"] == 0
    assert store.count("scans") == 0


def test_missing_identifier_is_400(client):
    assert client.get("/r/", follow_redirects=False).status_code == 400
    assert client.get("/r/%20", follow_redirects=False).status_code == 400


def test_unconfigured_destination_is_500(client, make_code):
    make_code(short_id="odd", content_type="hologram", content={"beam": "up"})
    res = client.get("/r/odd", follow_redirects=False)
    assert res.status_code == 500
    assert res.json() == {"detail": "QR Code destination not configured"}


def test_redirect_preflight(client):
    res = client.options("/r/promo")
    assert res.status_code == 200
    assert res.headers["access-control-allow-origin"] == "*"
    assert "GET" in res.headers["access-control-allow-methods"]


def test_analytics_requires_both_ids(client):
    res = client.get("/analytics", params={"qrCodeId": "abc"})
    assert res.status_code == 400
    assert res.json() == {"detail": "Missing qrCodeId or userId"}


def test_analytics_for_owner(client, make_code, make_scan):
    code_id = make_code(user_id="owner")
    make_scan(code_id)

    res = client.get("/analytics", params={"qrCodeId": code_id, "userId": "owner"})

    assert res.status_code == 200
    body = res.json()
    assert body["totalScans"] == 1
    assert body["uniqueScans"] == 1
    assert body["countryStats"] == {"Germany": 1}
    assert body["recentScans"][0]["deviceInfo"]["type"] == "mobile"


def test_analytics_access_errors(client, make_code):
    code_id = make_code(user_id="owner")
    assert client.get("/analytics", params={"qrCodeId": code_id, "userId": "someone"}).status_code == 403
    assert client.get("/analytics", params={"qrCodeId": "missing", "userId": "owner"}).status_code == 404


def test_manual_cleanup(client, store, make_code, make_scan):
    code_id = make_code(is_guest=True, expires_at=datetime.now(timezone.utc) - timedelta(hours=2))
    make_scan(code_id)

    res = client.post("/cleanup")

    assert res.status_code == 200
    assert res.json() == {
        "success": True,
        "message": "Cleanup completed",
        "deletedQRCodes": 1,
        "deletedScans": 1,
    }
    assert store.get("qrcodes", code_id) is None


def test_manual_cleanup_with_nothing_expired(client):
    res = client.post("/cleanup")
    assert res.json()["message"] == "No expired guest QR codes found"
    assert res.json()["deletedQRCodes"] == 0


def test_cleanup_rejects_get(client):
    assert client.get("/cleanup").status_code == 405


def test_guest_stats(client, make_code):
    make_code(is_guest=True, expires_at=datetime.now(timezone.utc) - timedelta(hours=1))
    make_code(is_guest=True, expires_at=datetime.now(timezone.utc) + timedelta(hours=1))

    res = client.get("/guest-stats")

    assert res.status_code == 200
    stats = res.json()["stats"]
    assert stats["totalGuestQRCodes"] == 2
    assert stats["expiredGuestQRCodes"] == 1
    assert stats["activeGuestQRCodes"] == 1
