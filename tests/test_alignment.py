"""
Unit tests for timetable.alignment: pure functions, no DB.
"""

import random

import pytest

from conftest import stop_time
from timetable.alignment import NOT_SERVED, align_trips, is_subsequence, scs_merge


def trips(**patterns: str) -> dict:
    """trips(T1="ABCD") → {"T1": [StopTime A seq 1, B seq 2, ...]} (one letter per stop)."""
    return {
        trip_id: [stop_time(trip_id, (i + 1) * 10, stop) for i, stop in enumerate(pattern)]
        for trip_id, pattern in patterns.items()
    }


def served(alignment, trip_id: str) -> str:
    return "".join(
        cell.stop_id for cell in alignment.rows[trip_id] if cell is not NOT_SERVED
    )


def _lcs_length(a, b) -> int:
    dp = [[0] * (len(b) + 1) for _ in range(len(a) + 1)]
    for i in range(len(a) - 1, -1, -1):
        for j in range(len(b) - 1, -1, -1):
            dp[i][j] = 1 + dp[i + 1][j + 1] if a[i] == b[j] else max(dp[i + 1][j], dp[i][j + 1])
    return dp[0][0]


# ---------------------------------------------------------------------------
# scs_merge
# ---------------------------------------------------------------------------

class TestScsMerge:
    def test_subset_keeps_global_order(self):
        result = scs_merge(list("ABCD"), list("ACD"))
        assert result.order == list("ABCD")
        assert result.global_positions == [0, 1, 2, 3]
        assert result.sequence_positions == [0, 2, 3]

    def test_superset_inserts_missing_stop(self):
        result = scs_merge(list("ACD"), list("ABCD"))
        assert result.order == list("ABCD")
        assert result.global_positions == [0, 2, 3]

    def test_new_stop_lands_after_last_shared_stop(self):
        result = scs_merge(list("ABC"), list("AXC"))
        assert result.order == list("AXBC")

    def test_no_overlap_appended_at_end(self):
        result = scs_merge(list("AB"), list("XY"))
        assert result.order == list("ABXY")
        assert result.sequence_positions == [2, 3]

    def test_empty_global_takes_sequence(self):
        result = scs_merge([], list("ABC"))
        assert result.order == list("ABC")
        assert result.global_positions == []

    def test_empty_sequence_keeps_global(self):
        result = scs_merge(list("ABC"), [])
        assert result.order == list("ABC")
        assert result.sequence_positions == []

    def test_repeat_visit_gets_its_own_position(self):
        result = scs_merge(list("ABC"), list("ABCBA"))
        assert result.order == list("ABCBA")
        assert result.sequence_positions == [0, 1, 2, 3, 4]

    @pytest.mark.parametrize("g, s", [
        ("ABCDE", "ACE"),
        ("ABCDE", "EDCBA"),
        ("ABAB", "BABA"),
        ("AXBYC", "ABZC"),
        ("ABCABC", "CBA"),
    ])
    def test_length_is_optimal_for_two_sequences(self, g, s):
        result = scs_merge(list(g), list(s))
        assert len(result.order) == len(g) + len(s) - _lcs_length(g, s)

    @pytest.mark.parametrize("g, s", [("ABCD", "DCBA"), ("AAB", "ABA"), ("ABC", "XBY")])
    def test_both_inputs_are_embedded_at_reported_positions(self, g, s):
        result = scs_merge(list(g), list(s))
        assert [result.order[p] for p in result.global_positions] == list(g)
        assert [result.order[p] for p in result.sequence_positions] == list(s)
        assert result.global_positions == sorted(set(result.global_positions))
        assert result.sequence_positions == sorted(set(result.sequence_positions))


# ---------------------------------------------------------------------------
# align_trips
# ---------------------------------------------------------------------------

class TestAlignTrips:
    def test_local_and_express(self):
        alignment = align_trips(trips(T1="ABCD", T2="ACD"))
        assert alignment.stop_ids == tuple("ABCD")
        row = alignment.rows["T2"]
        assert row[1] is NOT_SERVED
        assert [cell.stop_id for cell in (row[0], row[2], row[3])] == list("ACD")
        assert alignment.positions_of("T1") == [0, 1, 2, 3]
        assert alignment.positions_of("T2") == [0, 2, 3]

    def test_rows_hold_the_input_stop_times(self):
        data = trips(T1="AB")
        alignment = align_trips(data)
        assert alignment.rows["T1"] == tuple(data["T1"])

    def test_empty_input(self):
        alignment = align_trips({})
        assert alignment.stop_ids == ()
        assert alignment.rows == {}

    def test_single_stop_trip(self):
        alignment = align_trips(trips(T1="ABC", T2="B"))
        assert alignment.stop_ids == tuple("ABC")
        assert alignment.positions_of("T2") == [1]

    def test_trip_without_stop_times(self):
        alignment = align_trips({"T0": [], **trips(T1="AB")})
        assert alignment.stop_ids == tuple("AB")
        assert alignment.rows["T0"] == (NOT_SERVED, NOT_SERVED)

    def test_loop_keeps_distinct_visits(self):
        alignment = align_trips(trips(T1="ABC", T2="ABCBA"))
        assert alignment.stop_ids == tuple("ABCBA")
        assert alignment.positions_of("T1") == [0, 1, 2]
        assert alignment.positions_of("T2") == [0, 1, 2, 3, 4]

    def test_loop_in_first_trip_binds_first_visit(self):
        alignment = align_trips(trips(T1="ABA", T2="AB"))
        assert alignment.stop_ids == tuple("ABA")
        assert alignment.positions_of("T2") == [0, 1]

    def test_disjoint_trip_appended_as_block(self):
        alignment = align_trips(trips(T1="AB", T2="XYZ"))
        assert alignment.stop_ids == tuple("ABXYZ")
        assert alignment.positions_of("T2") == [2, 3, 4]

    def test_earlier_trip_remapped_when_stops_inserted(self):
        alignment = align_trips(trips(T1="ABC", T2="AXC"))
        assert alignment.stop_ids == tuple("AXBC")
        assert alignment.positions_of("T1") == [0, 2, 3]
        assert served(alignment, "T1") == "ABC"

    def test_branches(self):
        alignment = align_trips(trips(T1="ABCD", T2="ABXY", T3="ABCZ"))
        for trip_id, pattern in (("T1", "ABCD"), ("T2", "ABXY"), ("T3", "ABCZ")):
            assert served(alignment, trip_id) == pattern
            assert is_subsequence(pattern, alignment.stop_ids)

    def test_repeated_stop_times_order_by_stop_sequence(self):
        data = trips(T1="ABC")
        data["T1"] = list(reversed(data["T1"]))
        alignment = align_trips(data)
        assert alignment.stop_ids == tuple("ABC")

    def test_rows_in_trip_id_order(self):
        alignment = align_trips(trips(T3="AB", T1="AB", T2="AB"))
        assert list(alignment.rows) == ["T1", "T2", "T3"]


class TestDeterminism:
    def test_same_input_same_output(self):
        data = trips(T1="ABCDE", T2="ACE", T3="EDCBA", T4="ABXDE")
        assert align_trips(data) == align_trips(data)

    def test_mapping_order_does_not_matter(self):
        data = trips(T1="ABCDE", T2="ACE", T3="AXYE", T4="ABXDE")
        reversed_data = dict(reversed(list(data.items())))
        first, second = align_trips(data), align_trips(reversed_data)
        assert first.stop_ids == second.stop_ids
        assert first.rows == second.rows


class TestSubsequenceProperty:
    @pytest.mark.parametrize("seed", range(10))
    def test_every_trip_embeds_in_global_order(self, seed):
        rng = random.Random(seed)
        stops = "ABCDEFGH"
        data = {}
        for n in range(rng.randint(1, 12)):
            length = rng.randint(0, 10)
            pattern = "".join(rng.choice(stops) for _ in range(length))
            data[f"T{n:02d}"] = pattern
        alignment = align_trips(trips(**data))

        for trip_id, pattern in data.items():
            positions = alignment.positions_of(trip_id)
            assert positions == sorted(set(positions))
            assert [alignment.stop_ids[p] for p in positions] == list(pattern)
            assert len(alignment.rows[trip_id]) == len(alignment.stop_ids)


class TestIsSubsequence:
    def test_true_cases(self):
        assert is_subsequence("ACD", "ABCD")
        assert is_subsequence("", "ABC")

    def test_false_cases(self):
        assert not is_subsequence("DA", "ABCD")
        assert not is_subsequence("AA", "ABC")
