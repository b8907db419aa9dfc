"""
Builds the aligned timetable for one route / service / direction.

Reads go Store → RelationshipResolver → align_trips; nothing is cached, so
calling get_timetable again after an edit reflects the edit.
"""

import logging
from dataclasses import dataclass

from db.records import Stop, StopTime, Trip
from db.store import GtfsStore
from relationships.resolver import RelationshipResolver, direction_name
from timetable.alignment import NOT_SERVED, Cell, align_trips
from timetable.gtfs_time import parse_gtfs_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlignedTrip:
    trip: Trip
    cells: tuple[Cell, ...]  # one per global stop position

    @property
    def trip_id(self) -> str:
        return self.trip.trip_id

    def stop_times(self) -> list[StopTime]:
        return [cell for cell in self.cells if cell is not NOT_SERVED]

    def first_time_seconds(self) -> int | None:
        for stop_time in self.stop_times():
            value = stop_time.departure_time or stop_time.arrival_time
            if value:
                return parse_gtfs_time(value)
        return None


@dataclass(frozen=True)
class AlignedTimetable:
    route_id: str
    service_id: str
    direction_id: int | None
    direction_name: str
    stop_ids: tuple[str, ...]
    stops: tuple[Stop | None, ...]
    trips: tuple[AlignedTrip, ...]

    @property
    def has_distinct_arrivals(self) -> bool:
        """True when any stop time has an arrival different from its departure."""
        return any(
            st.arrival_time != st.departure_time
            for trip in self.trips
            for st in trip.stop_times()
        )

    def trips_by_departure(self) -> list[AlignedTrip]:
        """Trips ordered by their first known time; untimed trips last, then by trip_id."""
        def sort_key(trip: AlignedTrip) -> tuple[bool, int, str]:
            first = trip.first_time_seconds()
            return (first is None, first or 0, trip.trip_id)

        return sorted(self.trips, key=sort_key)


def get_timetable(
    store: GtfsStore,
    route_id: str,
    service_id: str,
    direction_id: int | None = None,
) -> AlignedTimetable:
    """
    Align every trip of a route / service / direction group.

    Raises:
        NotFoundError: the route does not exist.
    """
    resolver = RelationshipResolver(store)
    resolver.require_route(route_id)

    trips = resolver.trips_for_group(route_id, service_id, direction_id)
    stop_times = resolver.stop_times_for_trips([trip.trip_id for trip in trips])
    alignment = align_trips(stop_times)

    stops = resolver.stops_by_id(list(alignment.stop_ids))
    trips_by_id = {trip.trip_id: trip for trip in trips}

    logger.info(
        "Timetable %s/%s/%s: %d trips over %d stop positions.",
        route_id, service_id, direction_id, len(trips), len(alignment.stop_ids),
    )
    return AlignedTimetable(
        route_id=route_id,
        service_id=service_id,
        direction_id=direction_id,
        direction_name=direction_name(direction_id, trips),
        stop_ids=alignment.stop_ids,
        stops=tuple(stops.get(stop_id) for stop_id in alignment.stop_ids),
        trips=tuple(
            AlignedTrip(trip=trips_by_id[trip_id], cells=cells)
            for trip_id, cells in alignment.rows.items()
        ),
    )
