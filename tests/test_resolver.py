"""
Tests for relationships.resolver against the shared in-memory feed.
"""

from unittest.mock import patch

import pytest

from conftest import stop_time
from db.records import Trip
from editing.errors import NotFoundError
from relationships.resolver import RelationshipResolver, direction_name


@pytest.fixture
def resolver(feed):
    return RelationshipResolver(feed)


class TestLookups:
    def test_get_route(self, resolver):
        assert resolver.get_route("R1").route_short_name == "1"

    def test_missing_entities_return_none(self, resolver):
        assert resolver.get_route("nope") is None
        assert resolver.get_trip("nope") is None
        assert resolver.get_stop("nope") is None

    def test_require_raises_not_found(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.require_trip("nope")
        with pytest.raises(NotFoundError):
            resolver.require_stop("nope")
        with pytest.raises(NotFoundError):
            resolver.require_route("nope")


class TestTrips:
    def test_trips_for_route(self, resolver):
        assert [t.trip_id for t in resolver.trips_for_route("R1")] == ["T1", "T2", "T3"]

    def test_trips_for_service(self, resolver):
        assert [t.trip_id for t in resolver.trips_for_service("WK")] == ["T1", "T2", "T3"]
        assert resolver.trips_for_service("SAT") == []

    def test_trips_for_group_by_direction(self, resolver):
        assert [t.trip_id for t in resolver.trips_for_group("R1", "WK", 0)] == ["T1", "T2"]
        assert [t.trip_id for t in resolver.trips_for_group("R1", "WK", 1)] == ["T3"]

    def test_trips_for_group_all_directions(self, resolver):
        assert len(resolver.trips_for_group("R1", "WK", None)) == 3


class TestStopTimes:
    def test_ordered_by_stop_sequence(self, feed, resolver):
        feed.put("stop_times", stop_time("T2", 2, "B", "09:05:00"))
        assert [st.stop_sequence for st in resolver.stop_times_for_trip("T2")] == [1, 2, 3, 4]

    def test_stop_times_for_trips_groups(self, resolver):
        grouped = resolver.stop_times_for_trips(["T1", "T2", "NOPE"])
        assert [st.stop_id for st in grouped["T2"]] == ["A", "C", "D"]
        assert grouped["NOPE"] == []

    def test_stop_times_at_stop(self, resolver):
        assert [st.stop_sequence for st in resolver.stop_times_at_stop("T1", "C")] == [3]

    def test_no_caching_between_calls(self, feed, resolver):
        before = resolver.stop_times_for_trip("T1")
        feed.delete("stop_times", feed.encode_key("stop_times", {"trip_id": "T1", "stop_sequence": 2}))
        after = resolver.stop_times_for_trip("T1")
        assert len(before) == 4
        assert [st.stop_id for st in after] == ["A", "C", "D"]


class TestStopsForRoute:
    def test_distinct_first_seen_order(self, resolver):
        assert [s.stop_id for s in resolver.stops_for_route("R1")] == ["A", "B", "C", "D"]

    def test_unserved_stop_excluded(self, resolver):
        assert "Z" not in {s.stop_id for s in resolver.stops_for_route("R1")}

    def test_unknown_stop_reference_skipped(self, feed, resolver):
        feed.put("stop_times", stop_time("T1", 5, "GHOST"))
        assert "GHOST" not in {s.stop_id for s in resolver.stops_for_route("R1")}

    def test_route_without_trips(self, resolver):
        assert resolver.stops_for_route("nope") == []


class TestServices:
    def test_services_for_route(self, resolver):
        (service,) = resolver.services_for_route("R1")
        assert service.service_id == "WK"
        assert service.trip_count == 3
        assert service.calendar.monday == 1
        assert [d.date for d in service.calendar_dates] == ["20261225"]

    def test_service_without_calendar(self, feed, resolver):
        feed.put("trips", Trip(trip_id="T9", route_id="R1", service_id="EXTRA"))
        services = {s.service_id: s for s in resolver.services_for_route("R1")}
        assert services["EXTRA"].calendar is None
        assert services["EXTRA"].trip_count == 1

    def test_directions_for_route(self, resolver):
        directions = resolver.directions_for_route("R1", "WK")
        assert [(d.direction_id, d.name, d.trip_count) for d in directions] == [
            (0, "Downtown", 2),
            (1, "Uptown", 1),
        ]


class TestDirectionName:
    def test_joins_distinct_headsigns(self):
        trips = [
            Trip(trip_id="a", route_id="R", service_id="S", trip_headsign="X"),
            Trip(trip_id="b", route_id="R", service_id="S", trip_headsign="Y"),
            Trip(trip_id="c", route_id="R", service_id="S", trip_headsign="X"),
        ]
        assert direction_name(0, trips) == "X / Y"

    @pytest.mark.parametrize("direction_id, expected", [
        (0, "Outbound"), (1, "Inbound"), (7, "Direction 7"), (None, "All trips"),
    ])
    def test_falls_back_to_direction_id(self, direction_id, expected):
        assert direction_name(direction_id, []) == expected


class TestChunkedLookups:
    def test_trip_ids_sent_in_chunks(self, feed, resolver):
        with patch("relationships.resolver.QUERY_CHUNK_SIZE", 2), \
                patch.object(feed, "query", wraps=feed.query) as query:
            grouped = resolver.stop_times_for_trips(["T1", "T2", "T3"])
        assert [call.kwargs["trip_id"] for call in query.call_args_list] == [["T1", "T2"], ["T3"]]
        assert {trip_id: len(rows) for trip_id, rows in grouped.items()} == {"T1": 4, "T2": 3, "T3": 4}

    def test_stop_ids_sent_in_chunks(self, feed, resolver):
        with patch("relationships.resolver.QUERY_CHUNK_SIZE", 2), \
                patch.object(feed, "query", wraps=feed.query) as query:
            stops = resolver.stops_by_id(["A", "B", "A", "C", "D", "Z"])
        assert query.call_count == 3
        assert sorted(stops) == ["A", "B", "C", "D", "Z"]

    def test_empty_id_list_issues_no_query(self, feed, resolver):
        with patch.object(feed, "query", wraps=feed.query) as query:
            assert resolver.stop_times_for_trips([]) == {}
            assert resolver.stops_by_id([]) == {}
        query.assert_not_called()
