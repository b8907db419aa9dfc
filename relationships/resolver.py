"""
Read-only relationship queries over the GTFS store.

Every method issues fresh store queries. Nothing is memoised between calls:
edits are written straight to the store, so re-reading is what keeps every
answer consistent with the last committed write.

Relationships followed:
  routes     → trips       (trips.route_id)
  services   → trips       (trips.service_id)
  trips      → stop_times  (stop_times.trip_id, ordered by stop_sequence)
  stop_times → stops       (stop_times.stop_id)
  services   → calendar / calendar_dates (service_id)
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterator

from config import QUERY_CHUNK_SIZE
from db.keys import encode_key
from db.records import Calendar, CalendarDate, Route, Stop, StopTime, Trip
from db.store import GtfsStore
from editing.errors import NotFoundError

logger = logging.getLogger(__name__)

_DIRECTION_NAMES = {0: "Outbound", 1: "Inbound"}


def _chunks(ids: list[str]) -> Iterator[list[str]]:
    for start in range(0, len(ids), QUERY_CHUNK_SIZE):
        yield ids[start:start + QUERY_CHUNK_SIZE]


@dataclass(frozen=True)
class ServiceSummary:
    service_id: str
    calendar: Calendar | None
    calendar_dates: list[CalendarDate] = field(default_factory=list)
    trip_count: int = 0


@dataclass(frozen=True)
class DirectionSummary:
    direction_id: int | None
    name: str
    trip_count: int


def direction_name(direction_id: int | None, trips: list[Trip]) -> str:
    """Label a direction by its trips' headsigns, else by its GTFS direction_id."""
    headsigns = list(dict.fromkeys(t.trip_headsign for t in trips if t.trip_headsign))
    if headsigns:
        return " / ".join(headsigns)
    if direction_id is None:
        return "All trips"
    return _DIRECTION_NAMES.get(direction_id, f"Direction {direction_id}")


class RelationshipResolver:
    def __init__(self, store: GtfsStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Single-entity lookups
    # ------------------------------------------------------------------

    def get_route(self, route_id: str) -> Route | None:
        return self._store.get("routes", encode_key("routes", {"route_id": route_id}))

    def get_trip(self, trip_id: str) -> Trip | None:
        return self._store.get("trips", encode_key("trips", {"trip_id": trip_id}))

    def get_stop(self, stop_id: str) -> Stop | None:
        return self._store.get("stops", encode_key("stops", {"stop_id": stop_id}))

    def require_route(self, route_id: str) -> Route:
        route = self.get_route(route_id)
        if route is None:
            raise NotFoundError(f"Route '{route_id}' not found.")
        return route

    def require_trip(self, trip_id: str) -> Trip:
        trip = self.get_trip(trip_id)
        if trip is None:
            raise NotFoundError(f"Trip '{trip_id}' not found.")
        return trip

    def require_stop(self, stop_id: str) -> Stop:
        stop = self.get_stop(stop_id)
        if stop is None:
            raise NotFoundError(f"Stop '{stop_id}' not found.")
        return stop

    # ------------------------------------------------------------------
    # Trips
    # ------------------------------------------------------------------

    def trips_for_route(self, route_id: str) -> list[Trip]:
        return list(self._store.query("trips", route_id=route_id))

    def trips_for_service(self, service_id: str) -> list[Trip]:
        return list(self._store.query("trips", service_id=service_id))

    def trips_for_group(
        self, route_id: str, service_id: str, direction_id: int | None = None
    ) -> list[Trip]:
        """
        Trips sharing a route and service, optionally narrowed to one direction.

        ``direction_id=None`` returns the trips of every direction.
        """
        filters = {"route_id": route_id, "service_id": service_id}
        if direction_id is not None:
            filters["direction_id"] = direction_id
        return list(self._store.query("trips", **filters))

    # ------------------------------------------------------------------
    # Stop times and stops
    # ------------------------------------------------------------------

    def stop_times_for_trip(self, trip_id: str) -> list[StopTime]:
        return list(self._store.query("stop_times", order_by=["stop_sequence"], trip_id=trip_id))

    def stop_times_for_trips(self, trip_ids: list[str]) -> dict[str, list[StopTime]]:
        """
        Stop times of several trips grouped by trip_id.

        Ids are sent QUERY_CHUNK_SIZE at a time so a large route group never
        exceeds the database's bound-parameter limit.
        """
        grouped: dict[str, list[StopTime]] = {trip_id: [] for trip_id in trip_ids}
        for chunk in _chunks(list(grouped)):
            for stop_time in self._store.query("stop_times", trip_id=chunk):
                grouped[stop_time.trip_id].append(stop_time)
        return grouped

    def stop_times_at_stop(self, trip_id: str, stop_id: str) -> list[StopTime]:
        """Every visit of ``trip_id`` to ``stop_id`` (more than one on loops)."""
        return list(
            self._store.query(
                "stop_times", order_by=["stop_sequence"], trip_id=trip_id, stop_id=stop_id
            )
        )

    def stops_by_id(self, stop_ids: list[str]) -> dict[str, Stop]:
        stops: dict[str, Stop] = {}
        for chunk in _chunks(list(dict.fromkeys(stop_ids))):
            stops.update((stop.stop_id, stop) for stop in self._store.query("stops", stop_id=chunk))
        return stops

    def stops_for_route(self, route_id: str) -> list[Stop]:
        """
        Distinct stops served by any trip of the route, in first-seen order.

        Stops referenced by stop_times but missing from stops are skipped
        with a warning rather than returned as placeholders.
        """
        trip_ids = [trip.trip_id for trip in self.trips_for_route(route_id)]
        seen = list(dict.fromkeys(
            stop_time.stop_id
            for stop_times in self.stop_times_for_trips(trip_ids).values()
            for stop_time in stop_times
        ))

        stops = self.stops_by_id(seen)
        missing = [stop_id for stop_id in seen if stop_id not in stops]
        if missing:
            logger.warning("Route %s references %d unknown stop(s): %s", route_id, len(missing), missing)
        return [stops[stop_id] for stop_id in seen if stop_id in stops]

    # ------------------------------------------------------------------
    # Services and directions
    # ------------------------------------------------------------------

    def calendar_for_service(self, service_id: str) -> Calendar | None:
        return self._store.get("calendar", encode_key("calendar", {"service_id": service_id}))

    def calendar_dates_for_service(self, service_id: str) -> list[CalendarDate]:
        return list(self._store.query("calendar_dates", service_id=service_id))

    def services_for_route(self, route_id: str) -> list[ServiceSummary]:
        trip_counts = Counter(trip.service_id for trip in self.trips_for_route(route_id))
        return [
            ServiceSummary(
                service_id=service_id,
                calendar=self.calendar_for_service(service_id),
                calendar_dates=self.calendar_dates_for_service(service_id),
                trip_count=trip_counts[service_id],
            )
            for service_id in sorted(trip_counts)
        ]

    def directions_for_route(self, route_id: str, service_id: str) -> list[DirectionSummary]:
        groups: dict[int | None, list[Trip]] = {}
        for trip in self._store.query("trips", route_id=route_id, service_id=service_id):
            groups.setdefault(trip.direction_id, []).append(trip)
        ordered = sorted(groups, key=lambda d: (d is None, d if d is not None else 0))
        return [
            DirectionSummary(
                direction_id=direction_id,
                name=direction_name(direction_id, groups[direction_id]),
                trip_count=len(groups[direction_id]),
            )
            for direction_id in ordered
        ]
