"""
Shared fixtures: an in-memory SQLite store per test and a small feed.

StaticPool is required so that create_all and the session both use the
same single connection, otherwise each pool checkout gets a new in-memory
DB that has no tables.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import Base
from db.records import Calendar, CalendarDate, Route, Stop, StopTime, Trip
from db.store import GtfsStore


@pytest.fixture
def db_session():
    """Fresh in-memory SQLite database, schema pre-created, per test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestSession = sessionmaker(bind=engine)
    session = TestSession()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def store(db_session):
    return GtfsStore(db_session, chunk_size=2)


def stop_time(trip_id: str, seq: int, stop_id: str, arr: str | None = None, dep: str | None = None) -> StopTime:
    return StopTime(
        trip_id=trip_id,
        stop_sequence=seq,
        stop_id=stop_id,
        arrival_time=arr,
        departure_time=dep if dep is not None else arr,
    )


@pytest.fixture
def feed(store):
    """
    Route R1, weekday service WK, stops A–D plus an unserved stop Z.

      T1 (dir 0): A B C D   08:00 – 08:30
      T2 (dir 0): A   C D   09:00 – 09:20  (skips B)
      T3 (dir 1): D C B A   10:00 – 10:30
    """
    store.put_batch("stops", [
        Stop(stop_id=s, stop_name=f"Stop {s}", stop_lat=43.6 + i / 100, stop_lon=-79.4)
        for i, s in enumerate("ABCDZ")
    ])
    store.put("routes", Route(route_id="R1", route_short_name="1", route_type=3))
    store.put("calendar", Calendar(
        service_id="WK", monday=1, tuesday=1, wednesday=1, thursday=1, friday=1,
        saturday=0, sunday=0, start_date="20260101", end_date="20261231",
    ))
    store.put("calendar_dates", CalendarDate(service_id="WK", date="20261225", exception_type=2))
    store.put_batch("trips", [
        Trip(trip_id="T1", route_id="R1", service_id="WK", direction_id=0, trip_headsign="Downtown"),
        Trip(trip_id="T2", route_id="R1", service_id="WK", direction_id=0, trip_headsign="Downtown"),
        Trip(trip_id="T3", route_id="R1", service_id="WK", direction_id=1, trip_headsign="Uptown"),
    ])
    store.put_batch("stop_times", [
        stop_time("T1", 1, "A", "08:00:00"),
        stop_time("T1", 2, "B", "08:10:00", "08:11:00"),
        stop_time("T1", 3, "C", "08:20:00"),
        stop_time("T1", 4, "D", "08:30:00"),
        stop_time("T2", 1, "A", "09:00:00"),
        stop_time("T2", 3, "C", "09:10:00"),
        stop_time("T2", 4, "D", "09:20:00"),
        stop_time("T3", 1, "D", "10:00:00"),
        stop_time("T3", 2, "C", "10:10:00"),
        stop_time("T3", 3, "B", "10:20:00"),
        stop_time("T3", 4, "A", "10:30:00"),
    ])
    return store
