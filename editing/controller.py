"""
Direct-to-store timetable edits.

TimetableEditor validates one edit completely, then writes it to the store
in a single call. It keeps no modified-cell state, operation log or undo
stack: the store is the only copy of the schedule, and the next read sees
the edit.

A stop is "skipped" on a trip only by the absence of its stop_times row.
skip_stop deletes that row and unskip_stop inserts a fresh one; time edits
never use an empty value to mean "skipped".

Write ordering is the caller's issue order (last write wins). Each method
returns the affected StopTime so the caller can check its key still belongs
to the view on screen before refreshing it.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Literal

from db.errors import KeyConflictError
from db.keys import encode_key, key_for
from db.records import StopTime
from db.store import GtfsStore
from editing.errors import (
    AmbiguousStopError,
    EditError,
    EditValidationError,
    InvalidFieldError,
    NotFoundError,
    TimeOrderError,
)
from relationships.resolver import RelationshipResolver
from timetable.gtfs_time import parse_gtfs_time

logger = logging.getLogger(__name__)

TimeField = Literal["arrival", "departure", "both"]
TIME_FIELDS: tuple[str, ...] = ("arrival", "departure", "both")


@contextmanager
def _logged_rejection(operation: str, trip_id: str, stop_id: str) -> Iterator[None]:
    try:
        yield
    except EditError as exc:
        logger.warning(
            "Rejected %s on trip %s stop %s: %s: %s",
            operation, trip_id, stop_id, type(exc).__name__, exc,
        )
        raise


class TimetableEditor:
    def __init__(self, store: GtfsStore) -> None:
        self._store = store
        self._resolver = RelationshipResolver(store)

    def update_time(
        self,
        trip_id: str,
        stop_id: str,
        field: TimeField,
        value: str,
        stop_sequence: int | None = None,
    ) -> StopTime:
        """
        Set the arrival, departure or both ("linked") times of one stop visit.

        Checks run before any write: field name, time format, trip and stop
        existence, the stop_times row, then arrival <= departure against the
        other stored field. ``both`` writes the same value to both fields in
        one put.

        Raises:
            InvalidFieldError, InvalidTimeFormatError, TimeOrderError,
            AmbiguousStopError: the edit is invalid; nothing was written.
            NotFoundError: trip, stop or stop visit does not exist.
            StorageError: the write itself failed.
        """
        with _logged_rejection("time edit", trip_id, stop_id):
            if field not in TIME_FIELDS:
                raise InvalidFieldError(
                    f"Unknown time field {field!r}; expected one of {', '.join(TIME_FIELDS)}."
                )
            new_seconds = parse_gtfs_time(value)
            value = value.strip()

            stop_time = self._find_visit(trip_id, stop_id, stop_sequence)

            if field == "arrival":
                self._check_order(stop_time, new_seconds, stop_time.departure_time, arrival_side=True)
                update = {"arrival_time": value}
            elif field == "departure":
                self._check_order(stop_time, new_seconds, stop_time.arrival_time, arrival_side=False)
                update = {"departure_time": value}
            else:
                update = {"arrival_time": value, "departure_time": value}

        updated = stop_time.model_copy(update=update)
        self._store.put("stop_times", updated)
        logger.info(
            "Updated %s time of trip %s stop %s (seq %d) to %s.",
            field, trip_id, stop_id, updated.stop_sequence, value,
        )
        return updated

    def skip_stop(self, trip_id: str, stop_id: str, stop_sequence: int | None = None) -> StopTime:
        """
        Remove ``stop_id`` from ``trip_id`` by deleting its stop_times row.

        Raises:
            NotFoundError: the trip does not visit the stop.
            AmbiguousStopError: several visits and no stop_sequence given.
        """
        with _logged_rejection("skip", trip_id, stop_id):
            stop_time = self._find_visit(trip_id, stop_id, stop_sequence)
        self._store.delete("stop_times", key_for(stop_time))
        logger.info("Skipped stop %s on trip %s (seq %d).", stop_id, trip_id, stop_time.stop_sequence)
        return stop_time

    def unskip_stop(self, trip_id: str, stop_id: str, stop_sequence: int) -> StopTime:
        """
        Re-add ``stop_id`` to ``trip_id`` at ``stop_sequence`` with empty times.

        The caller is expected to set the times straight afterwards with
        update_time.

        Raises:
            NotFoundError: the trip or stop does not exist.
            KeyConflictError: the trip already has a stop time at that sequence.
        """
        with _logged_rejection("unskip", trip_id, stop_id):
            if isinstance(stop_sequence, bool) or not isinstance(stop_sequence, int) or stop_sequence < 0:
                raise EditValidationError(
                    f"stop_sequence must be a non-negative integer, got {stop_sequence!r}."
                )
            self._resolver.require_trip(trip_id)
            self._resolver.require_stop(stop_id)

        key = encode_key("stop_times", {"trip_id": trip_id, "stop_sequence": stop_sequence})
        existing = self._store.get("stop_times", key)
        if existing is not None:
            logger.warning(
                "Refused unskip of stop %s on trip %s: sequence %d already holds stop %s.",
                stop_id, trip_id, stop_sequence, existing.stop_id,
            )
            raise KeyConflictError(
                f"Trip '{trip_id}' already has stop '{existing.stop_id}' at stop_sequence {stop_sequence}."
            )

        stop_time = StopTime(trip_id=trip_id, stop_id=stop_id, stop_sequence=stop_sequence)
        self._store.put("stop_times", stop_time)
        logger.info("Unskipped stop %s on trip %s at seq %d.", stop_id, trip_id, stop_sequence)
        return stop_time

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_visit(self, trip_id: str, stop_id: str, stop_sequence: int | None) -> StopTime:
        self._resolver.require_trip(trip_id)
        self._resolver.require_stop(stop_id)

        visits = self._resolver.stop_times_at_stop(trip_id, stop_id)
        if stop_sequence is not None:
            visits = [st for st in visits if st.stop_sequence == stop_sequence]
        if not visits:
            where = f" at stop_sequence {stop_sequence}" if stop_sequence is not None else ""
            raise NotFoundError(f"No stop_time found for trip '{trip_id}', stop '{stop_id}'{where}.")
        if len(visits) > 1:
            sequences = [st.stop_sequence for st in visits]
            raise AmbiguousStopError(
                f"Trip '{trip_id}' visits stop '{stop_id}' {len(visits)} times "
                f"(stop_sequence {sequences}); pass stop_sequence to choose one."
            )
        return visits[0]

    @staticmethod
    def _check_order(
        stop_time: StopTime, new_seconds: int, other: str | None, arrival_side: bool
    ) -> None:
        if not other:
            return
        other_seconds = parse_gtfs_time(other)
        arrival, departure = (new_seconds, other_seconds) if arrival_side else (other_seconds, new_seconds)
        if arrival > departure:
            raise TimeOrderError(
                f"Arrival time must not be later than departure time at stop "
                f"'{stop_time.stop_id}' of trip '{stop_time.trip_id}'."
            )
