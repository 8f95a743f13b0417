import math
import os

# keep test runs on stdout and in memory; must happen before halfway.core.config loads
os.environ["LOG_FILE"] = ""
os.environ.pop("DATABASE_URL", None)
os.environ.pop("PLACE_SEARCH_URL", None)
os.environ.pop("TRANSPORT_WEBHOOK_URL", None)

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from halfway.main import create_app
from halfway.services.candidates import CandidateGenerator
from halfway.services.engine import MatchEngine
from halfway.services.geo import EARTH_RADIUS_M, Coordinate
from halfway.services.match_lifecycle import MatchLifecycle
from halfway.services.notifier import RecordingNotifier
from halfway.services.place_search import Place
from halfway.services.presence_registry import PresenceRegistry
from halfway.services.proximity import ProximityPairDetector

TOKYO_STATION = Coordinate(35.6812, 139.7671)
SHINJUKU = Coordinate(35.6895, 139.6917)


def north_of(origin: Coordinate, meters: float) -> Coordinate:
    """Point `meters` due north; haversine along a meridian is exactly R * dphi."""
    return Coordinate(origin.latitude + math.degrees(meters / EARTH_RADIUS_M), origin.longitude)


class StaticPlaceSearch:
    """Returns canned places per category and records every call."""

    def __init__(self, places_by_category=None):
        self.places_by_category = places_by_category or {}
        self.calls = []

    def search_nearby(self, coordinate, radius_m, category):
        self.calls.append((coordinate, radius_m, category))
        return list(self.places_by_category.get(category, []))


class FailingPlaceSearch:
    def search_nearby(self, coordinate, radius_m, category):
        raise ConnectionError("provider down")


def make_place(place_id, coordinate, rating=None, name=None, is_open_now=None):
    return Place(
        id=place_id,
        name=name or f"Place {place_id}",
        address=f"{place_id} street",
        coordinate=coordinate,
        rating=rating,
        is_open_now=is_open_now,
    )


@pytest.fixture
def now():
    # wall clock based so the real-clock paths (HTTP, inbound events) agree with it
    return datetime.now(timezone.utc).replace(microsecond=0)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def registry():
    return PresenceRegistry(freshness=timedelta(minutes=2))


@pytest.fixture
def lifecycle(notifier):
    return MatchLifecycle(notifier=notifier)


@pytest.fixture
def generator():
    gen = CandidateGenerator(place_search=None, timeout_s=1.0)
    yield gen
    gen.close()


@pytest.fixture
def engine(registry, lifecycle, generator):
    eng = MatchEngine(
        registry=registry,
        lifecycle=lifecycle,
        generator=generator,
        detector=ProximityPairDetector(),
    )
    yield eng
    eng.reset()


@pytest.fixture
def online_pair(engine, now):
    """A at Tokyo Station and B in Shinjuku, both freshly online."""
    engine.report_location("A", TOKYO_STATION, now=now, display_name="Aiko")
    engine.report_location("B", SHINJUKU, now=now, display_name="Ben")
    return "A", "B"


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine))
