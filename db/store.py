"""
Keyed storage engine over the GTFS tables.

GtfsStore wraps a SQLAlchemy session and exposes a small keyed API:

  put / put_batch   upsert by the table's primary key (overwrite on collision)
  get               lookup by encoded key, None when absent
  delete            remove by encoded key, no-op when absent
  query             lazy, chunked iteration filtered by column values
  get_all_rows      full table dump for export
  replace_feed      swap the whole feed for a freshly imported one

Every write commits immediately; there is no pending or dirty state kept
between calls. put_batch, replace_table and replace_feed each run in a
single transaction and are rolled back as a whole when any row fails.

Database failures never degrade silently: they are rolled back and
re-raised as the typed errors in db.errors.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Mapping, Sequence

from pydantic import ValidationError
from sqlalchemy import delete as sa_delete, func, insert, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import QUERY_CHUNK_SIZE
from db import keys, models
from db.errors import (
    CorruptRecordError,
    KeyConflictError,
    QuotaExceededError,
    StorageError,
    StorageUnavailableError,
    UnknownFieldError,
    UnknownTableError,
)
from db.records import RECORD_TYPES, GtfsRecord, columns_of

logger = logging.getLogger(__name__)

ORM_MODELS: dict[str, type[models.Base]] = {
    "agency": models.Agency,
    "stops": models.Stop,
    "routes": models.Route,
    "trips": models.Trip,
    "stop_times": models.StopTime,
    "calendar": models.ServiceCalendar,
    "calendar_dates": models.ServiceCalendarDate,
    "shapes": models.ShapePoint,
    "frequencies": models.Frequency,
}

# Substrings of driver messages that mean "out of space" rather than "down".
_QUOTA_MARKERS = ("database or disk is full", "no space left", "disk full", "quota")


def _translate(exc: SQLAlchemyError, operation: str, table: str) -> StorageError:
    message = f"{operation} on '{table}' failed: {exc.orig if hasattr(exc, 'orig') else exc}"
    if isinstance(exc, IntegrityError):
        return KeyConflictError(message)
    if isinstance(exc, OperationalError):
        lowered = str(exc).lower()
        if any(marker in lowered for marker in _QUOTA_MARKERS):
            return QuotaExceededError(message)
        return StorageUnavailableError(message)
    return StorageError(message)


class GtfsStore:
    """Keyed get/put/delete/query over the GTFS tables of one session."""

    def __init__(self, session: Session, chunk_size: int = QUERY_CHUNK_SIZE) -> None:
        self._session = session
        self._chunk_size = chunk_size

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def encode_key(self, table: str, fields: dict[str, Any]) -> str:
        return keys.encode_key(table, fields)

    def decode_key(self, table: str, key: str) -> dict[str, Any]:
        return keys.decode_key(table, key)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, table: str, record: GtfsRecord) -> str:
        """Upsert one record and commit. Returns the record's key."""
        model = self._model(table)
        self._check_record(table, record)
        key = keys.key_for(record)
        with self._translate_errors("put", table):
            self._session.merge(model(**record.model_dump()))
            self._session.commit()
        logger.debug("put %s[%r]", table, key)
        return key

    def put_batch(self, table: str, records: Iterable[GtfsRecord]) -> int:
        """
        Upsert many records in one transaction.

        All-or-nothing: if any record is rejected (wrong type, malformed key,
        database error) nothing from the batch is committed.
        """
        model = self._model(table)
        with self._translate_errors("put_batch", table):
            latest: dict[str, GtfsRecord] = {}
            for record in records:
                self._check_record(table, record)
                latest[keys.key_for(record)] = record  # later duplicates win
            for record in latest.values():
                self._session.merge(model(**record.model_dump()))
            self._session.commit()
        logger.info("put_batch %s: %d records committed.", table, len(latest))
        return len(latest)

    def replace_table(self, table: str, records: Iterable[GtfsRecord]) -> int:
        """
        Atomically replace the full contents of a table.

        Clears the table and bulk-inserts ``records`` in one transaction.
        Duplicate keys inside ``records`` raise KeyConflictError and leave the
        previous contents untouched.
        """
        with self._translate_errors("replace_table", table):
            count = self._stage_table(table, records)
            self._session.commit()
        logger.info("replace_table %s: %d records committed.", table, count)
        return count

    def replace_feed(self, tables: Mapping[str, Iterable[GtfsRecord]]) -> dict[str, int]:
        """
        Replace the whole stored feed in a single transaction.

        Every table is cleared, including tables absent from ``tables``, and
        the given records are inserted before one commit. Any failure rolls
        the whole import back and the previous feed stays as it was.
        Returns the number of rows inserted per table in ``tables``.
        """
        for table in tables:
            self._model(table)
        counts: dict[str, int] = {}
        with self._translate_errors("replace_feed", ", ".join(tables) or "-"):
            for table in ORM_MODELS:
                if table not in tables:
                    self._session.execute(sa_delete(ORM_MODELS[table]))
            for table, records in tables.items():
                counts[table] = self._stage_table(table, records)
            self._session.commit()
        logger.info("replace_feed: %d records committed across %d tables.", sum(counts.values()), len(counts))
        return counts

    def _stage_table(self, table: str, records: Iterable[GtfsRecord]) -> int:
        model = self._model(table)
        rows = []
        for record in records:
            self._check_record(table, record)
            keys.key_for(record)
            rows.append(record.model_dump())
        self._session.execute(sa_delete(model))
        if rows:
            self._session.execute(insert(model), rows)
        return len(rows)

    def delete(self, table: str, key: str) -> bool:
        """Remove the record with ``key``. Returns False when it did not exist."""
        model = self._model(table)
        identity = keys.identity_of(table, key)
        with self._translate_errors("delete", table):
            row = self._session.get(model, identity)
            if row is None:
                return False
            self._session.delete(row)
            self._session.commit()
        logger.debug("delete %s[%r]", table, key)
        return True

    def clear_table(self, table: str) -> None:
        model = self._model(table)
        with self._translate_errors("clear_table", table):
            self._session.execute(sa_delete(model))
            self._session.commit()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, table: str, key: str) -> GtfsRecord | None:
        model = self._model(table)
        identity = keys.identity_of(table, key)
        with self._translate_errors("get", table):
            row = self._session.get(model, identity, populate_existing=True)
            if row is None:
                return None
            return RECORD_TYPES[table].model_validate(row)

    def query(
        self,
        table: str,
        order_by: Sequence[str] | None = None,
        **filters: Any,
    ) -> Iterator[GtfsRecord]:
        """
        Lazily iterate the records of ``table`` matching every filter.

        A filter value that is a list, tuple or set matches any of its
        members; ``None`` matches NULL. Results are ordered by ``order_by``
        (default: the table's key fields) and fetched QUERY_CHUNK_SIZE rows
        at a time.
        """
        model = self._model(table)
        columns = set(columns_of(table))
        order = tuple(order_by) if order_by else keys.key_spec(table).fields
        unknown = sorted((set(filters) | set(order)) - columns)
        if unknown:
            raise UnknownFieldError(f"Table '{table}' has no column(s) {unknown}.")

        stmt = select(model)
        for name, value in filters.items():
            column = getattr(model, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            else:
                stmt = stmt.where(column == value) if value is not None else stmt.where(column.is_(None))
        stmt = stmt.order_by(*(getattr(model, name) for name in order)).execution_options(
            yield_per=self._chunk_size, populate_existing=True
        )
        return self._iterate(table, stmt)

    def _iterate(self, table: str, stmt) -> Iterator[GtfsRecord]:
        record_type = RECORD_TYPES[table]
        with self._translate_errors("query", table):
            for row in self._session.scalars(stmt):
                yield record_type.model_validate(row)

    def get_all_rows(self, table: str) -> list[GtfsRecord]:
        return list(self.query(table))

    def count(self, table: str) -> int:
        model = self._model(table)
        with self._translate_errors("count", table):
            return self._session.scalar(select(func.count()).select_from(model)) or 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _model(table: str) -> type[models.Base]:
        try:
            return ORM_MODELS[table]
        except KeyError:
            raise UnknownTableError(f"Unknown GTFS table '{table}'.") from None

    @staticmethod
    def _check_record(table: str, record: GtfsRecord) -> None:
        if not isinstance(record, RECORD_TYPES[table]):
            raise TypeError(
                f"Expected a {RECORD_TYPES[table].__name__} record for table '{table}', "
                f"got {type(record).__name__}."
            )

    @contextmanager
    def _translate_errors(self, operation: str, table: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error("Storage error during %s on %s: %s", operation, table, exc)
            raise _translate(exc, operation, table) from exc
        except ValidationError as exc:
            self._session.rollback()
            logger.error("Stored %s row failed validation during %s: %s", table, operation, exc)
            raise CorruptRecordError(
                f"{operation} on '{table}' read a row that is not a valid {table} record: {exc}"
            ) from exc
        except Exception:
            self._session.rollback()
            raise
