from datetime import date, timedelta

import pytest

from dayplan_travel.api.core.reconciler import ReconciliationController
from dayplan_travel.api.models import CalendarDay, Destination, Trip
from dayplan_travel.api.services.session_manager import TripSessionManager


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_days():
    def _make(count, start=date(2025, 6, 1)):
        return [
            CalendarDay(id=f"d{i}", date=(start + timedelta(days=i)).isoformat())
            for i in range(count)
        ]
    return _make


@pytest.fixture
def make_destinations():
    """Build destinations from (id, nights) or (id, order, nights) tuples."""
    def _make(layout):
        destinations = []
        for position, item in enumerate(layout):
            if len(item) == 2:
                destination_id, nights = item
                order = position
            else:
                destination_id, order, nights = item
            destinations.append(
                Destination(id=destination_id, name=destination_id.title(), order=order, nights=nights)
            )
        return destinations
    return _make


@pytest.fixture
def make_trip(make_days, make_destinations):
    def _make(layout, day_count):
        days = make_days(day_count)
        return Trip(
            id="trip-1",
            title="Test trip",
            start_date=days[0].date if days else None,
            end_date=days[-1].date if days else None,
            destinations=make_destinations(layout),
            days=days,
        )
    return _make


@pytest.fixture
def make_controller(make_trip, clock):
    def _make(layout, day_count, **options):
        options.setdefault("debounce_ms", 150)
        options.setdefault("auto_fill_single", False)
        options.setdefault("clock", clock)
        return ReconciliationController(make_trip(layout, day_count), **options)
    return _make


@pytest.fixture
def manager():
    return TripSessionManager(
        config={
            "session_timeout_seconds": 3600,
            "max_sessions": 5,
            "cleanup_interval_seconds": 30,
        },
        start_cleanup=False,
    )


@pytest.fixture
def app_and_socketio(manager, monkeypatch):
    monkeypatch.setenv("RECONCILE_DEBOUNCE_MS", "0")
    monkeypatch.setenv("FLASK_SECRET_KEY", "test-secret")
    monkeypatch.setattr(
        "dayplan_travel.api.services.map_service.geocode_destinations",
        lambda destinations: {},
    )

    from main import create_app

    app, socketio = create_app(manager)
    app.config["TESTING"] = True
    return app, socketio


@pytest.fixture
def client(app_and_socketio):
    app, _ = app_and_socketio
    return app.test_client()


@pytest.fixture
def italy_trip():
    return {
        "id": "italy",
        "title": "Italy",
        "startDate": "2025-06-01",
        "endDate": "2025-06-06",
        "destinations": [
            {"id": "rome", "name": "Rome", "order": 0, "nights": 2,
             "coordinates": {"lat": 41.9028, "lng": 12.4964}},
            {"id": "florence", "name": "Florence", "order": 1, "nights": 3,
             "coordinates": {"lat": 43.7696, "lng": 11.2558}},
        ],
    }
