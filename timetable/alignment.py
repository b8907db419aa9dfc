"""
Aligns the stop patterns of several trips into one timetable stop order.

Trips of one route / service / direction can stop at different subsets of
stops (express vs. local), take branches, or loop back to a stop they
already served. A timetable needs one global stop order that every trip's
own sequence embeds into as a subsequence, i.e. a common supersequence.

Finding the shortest supersequence of N sequences is NP-hard, so trips are
folded in one at a time:

  1. Trips are taken in ascending trip_id order; each trip's stop times are
     ordered by stop_sequence.
  2. The global order starts as the first trip's stop sequence.
  3. Each next trip is merged with the current global order by an exact
     two-sequence shortest common supersequence (O(n·m) DP table).
  4. A global position matches at most one visit of a trip, so a loop that
     returns to a stop gets a new position instead of collapsing into the
     earlier one.
  5. Existing positions are never reordered, only new ones inserted; every
     previously folded trip's bindings are remapped through the insertion.
  6. A trip with no stop in common with the global order is appended as one
     contiguous block at the end.

The result is deterministic for a given input and does no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from db.records import StopTime


class _NotServed:
    """Marker for a timetable cell whose trip does not serve that position."""

    _instance: _NotServed | None = None

    def __new__(cls) -> _NotServed:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_SERVED"

    def __bool__(self) -> bool:
        return False


NOT_SERVED = _NotServed()

Cell = StopTime | _NotServed


@dataclass(frozen=True)
class MergeResult:
    """
    Outcome of merging one sequence into the current global order.

    global_positions[i]: index in ``order`` of the old global position i
    sequence_positions[j]: index in ``order`` of the merged sequence item j
    """

    order: list[str]
    global_positions: list[int]
    sequence_positions: list[int]


@dataclass(frozen=True)
class Alignment:
    stop_ids: tuple[str, ...]
    rows: dict[str, tuple[Cell, ...]]  # trip_id → one cell per global position

    def positions_of(self, trip_id: str) -> list[int]:
        """Global positions served by ``trip_id``, in visit order."""
        return [i for i, cell in enumerate(self.rows[trip_id]) if cell is not NOT_SERVED]


def scs_merge(global_order: Sequence[str], sequence: Sequence[str]) -> MergeResult:
    """
    Merge ``sequence`` into ``global_order`` with a shortest common supersequence.

    Both inputs stay subsequences of the result. When keeping a global stop
    and inserting a sequence stop cost the same, the sequence stop goes
    first, so new stops land directly after the last shared stop. A sequence
    sharing no stop with the global order is appended at the end.
    """
    g = list(global_order)
    s = list(sequence)
    n, m = len(g), len(s)

    if not set(g) & set(s):
        return MergeResult(
            order=g + s,
            global_positions=list(range(n)),
            sequence_positions=list(range(n, n + m)),
        )

    # dp[i][j] = length of the shortest common supersequence of g[i:] and s[j:]
    dp = [[0] * (m + 1) for _ in range(n + 1)]
    for i in range(n, -1, -1):
        for j in range(m, -1, -1):
            if i == n:
                dp[i][j] = m - j
            elif j == m:
                dp[i][j] = n - i
            elif g[i] == s[j]:
                dp[i][j] = 1 + dp[i + 1][j + 1]
            else:
                dp[i][j] = 1 + min(dp[i + 1][j], dp[i][j + 1])

    order: list[str] = []
    global_positions: list[int] = []
    sequence_positions: list[int] = []
    i = j = 0
    while i < n or j < m:
        if i < n and j < m and g[i] == s[j]:
            global_positions.append(len(order))
            sequence_positions.append(len(order))
            order.append(g[i])
            i += 1
            j += 1
        elif j < m and (i == n or dp[i][j + 1] <= dp[i + 1][j]):
            sequence_positions.append(len(order))
            order.append(s[j])
            j += 1
        else:
            global_positions.append(len(order))
            order.append(g[i])
            i += 1

    return MergeResult(order, global_positions, sequence_positions)


def align_trips(trip_stop_times: Mapping[str, Sequence[StopTime]]) -> Alignment:
    """
    Fold every trip's stop pattern into one global order and build its row.

    Args:
        trip_stop_times: trip_id → that trip's StopTime records (any order).

    Returns:
        Alignment with the global stop-id order and, per trip (ascending
        trip_id), a row holding its StopTime or NOT_SERVED at each position.
    """
    ordered = {
        trip_id: sorted(trip_stop_times[trip_id], key=lambda st: st.stop_sequence)
        for trip_id in sorted(trip_stop_times)
    }

    order: list[str] = []
    bindings: dict[str, list[int]] = {}
    for trip_id, stop_times in ordered.items():
        merge = scs_merge(order, [st.stop_id for st in stop_times])
        for other_id, positions in bindings.items():
            bindings[other_id] = [merge.global_positions[p] for p in positions]
        bindings[trip_id] = merge.sequence_positions
        order = merge.order

    rows: dict[str, tuple[Cell, ...]] = {}
    for trip_id, stop_times in ordered.items():
        cells: list[Cell] = [NOT_SERVED] * len(order)
        for stop_time, position in zip(stop_times, bindings[trip_id]):
            cells[position] = stop_time
        rows[trip_id] = tuple(cells)

    return Alignment(stop_ids=tuple(order), rows=rows)


def is_subsequence(sequence: Sequence[str], order: Sequence[str]) -> bool:
    """True when ``sequence`` appears in ``order`` with positions strictly increasing."""
    remaining = iter(order)
    return all(any(item == candidate for candidate in remaining) for item in sequence)
