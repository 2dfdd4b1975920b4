import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Keep imports from touching a real database or starting the scheduler
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CLEANUP_SCHEDULER_ENABLED", "false")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from schema import LocationInfo
from store import DocumentStore, get_store


class StubGeo:
    """Stands in for GeoEnricher; remembers which IPs it was asked about."""

    def __init__(self, location=None):
        self.location = location or LocationInfo()
        self.calls = []

    def lookup(self, ip):
        self.calls.append(ip)
        return self.location


@pytest.fixture
def session_local():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_local):
    return DocumentStore(session_local)


@pytest.fixture
def geo():
    return StubGeo(LocationInfo(country="Germany", city="Berlin", region="Berlin", lat=52.52, lng=13.405))


@pytest.fixture
def make_code(store):
    def _make(**fields):
        data = {
            "content_type": "url",
            "content": {"url": "https://example.com/landing"},
            "is_active": True,
        }
        data.update(fields)
        return store.add("qrcodes", data)

    return _make


@pytest.fixture
def make_scan(store):
    def _make(qr_code_id, scanned_at=None, **fields):
        data = {
            "qr_code_id": qr_code_id,
            "scanned_at": scanned_at or datetime.now(timezone.utc),
            "ip_address": "203.0.113.10",
            "user_agent": "Mozilla/5.0",
            "device_info": {"type": "mobile", "os": "iOS 17.0", "browser": "Mobile Safari", "version": "17.0"},
            "location": {"country": "Germany", "city": "Berlin", "region": "Berlin"},
        }
        data.update(fields)
        return store.add("scans", data)

    return _make


@pytest.fixture
def client(store, geo):
    from app import get_geo_enricher
    from main import app

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_geo_enricher] = lambda: geo
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
