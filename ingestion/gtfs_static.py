"""
Downloads and parses a GTFS static feed into the keyed store.

Feed contents used (the whole feed is replaced in one transaction):
  agency.txt         → Agency
  stops.txt          → Stop
  routes.txt         → Route
  trips.txt          → Trip
  stop_times.txt     → StopTime
  calendar.txt       → Calendar
  calendar_dates.txt → CalendarDate
  shapes.txt         → ShapePoint
  frequencies.txt    → Frequency

Rows are assumed to be schema-valid already; this module only converts
column text to typed records and drops rows whose references do not resolve.
"""

import io
import logging
import zipfile

import httpx
import pandas as pd

from config import DATA_DIR, GTFS_DOWNLOAD_TIMEOUT_SECONDS, GTFS_STATIC_URL
from db.records import RECORD_TYPES, GtfsRecord, columns_of
from db.store import GtfsStore

logger = logging.getLogger(__name__)

GTFS_ZIP_PATH = DATA_DIR / "gtfs_static.zip"

# Parents before children so reference filtering sees the parent keys.
IMPORT_ORDER = (
    "agency", "stops", "routes", "trips", "stop_times",
    "calendar", "calendar_dates", "shapes", "frequencies",
)
REQUIRED_FILES = ("stops.txt", "routes.txt", "trips.txt", "stop_times.txt")
_REFERENCED_KEYS = {"stops": "stop_id", "routes": "route_id", "trips": "trip_id"}


async def download_gtfs_zip(url: str = GTFS_STATIC_URL) -> bytes:
    """Download GTFS zip from the given URL and cache it to disk."""
    if not url:
        raise ValueError("GTFS_STATIC_URL is not configured. Set it in your .env file.")
    logger.info("Downloading GTFS static feed from %s", url)
    async with httpx.AsyncClient(timeout=GTFS_DOWNLOAD_TIMEOUT_SECONDS) as client:
        response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
    GTFS_ZIP_PATH.write_bytes(response.content)
    logger.info("Saved GTFS zip to %s (%d bytes)", GTFS_ZIP_PATH, len(response.content))
    return response.content


def parse_and_store(zip_bytes: bytes, store: GtfsStore) -> dict[str, int]:
    """
    Extract a GTFS zip and replace the stored feed with it.

    The import is all-or-nothing: every table is cleared, tables whose file
    is absent from the zip end up empty, and a failure anywhere leaves the
    previous feed intact. Returns the number of rows stored per table found
    in the zip.
    """
    tables: dict[str, list[GtfsRecord]] = {}
    with zipfile.ZipFile(io.BytesIO(zip_bytes)) as zf:
        names = set(zf.namelist())
        logger.info("GTFS zip contains: %s", sorted(names))
        missing = [name for name in REQUIRED_FILES if name not in names]
        if missing:
            raise ValueError(f"GTFS zip is missing required file(s): {', '.join(missing)}")

        def read(filename: str) -> pd.DataFrame:
            with zf.open(filename) as f:
                return pd.read_csv(f, dtype=str, skipinitialspace=True).fillna("")

        known: dict[str, set[str]] = {}
        for table in IMPORT_ORDER:
            filename = f"{table}.txt"
            if filename not in names:
                continue
            records = _to_records(table, read(filename))
            tables[table] = _drop_dangling(table, records, known)
            if table in _REFERENCED_KEYS:
                key_field = _REFERENCED_KEYS[table]
                known[table] = {getattr(r, key_field) for r in tables[table]}
            logger.info("Parsed %d %s.", len(tables[table]), table)

    counts = store.replace_feed(tables)
    logger.info("GTFS static data committed to store.")
    return counts


def _to_records(table: str, df: pd.DataFrame) -> list[GtfsRecord]:
    record_type = RECORD_TYPES[table]
    columns = [c for c in columns_of(table) if c in df.columns]
    records = []
    for row in df[columns].to_dict(orient="records"):
        values = {name: (value.strip() or None) for name, value in row.items()}
        if table == "agency" and not values.get("agency_id"):
            # agency_id is optional in single-agency feeds
            values["agency_id"] = values.get("agency_name") or "agency"
        records.append(record_type.model_validate(values))
    return records


def _drop_dangling(
    table: str, records: list[GtfsRecord], known: dict[str, set[str]]
) -> list[GtfsRecord]:
    """
    Drop rows that reference trips, stops or routes absent from the feed.

    Feeds occasionally contain stop_times for trips that are not in
    trips.txt; keeping them would leave orphans the editor cannot reach.
    """
    checks: list[tuple[str, str]] = []
    if table == "trips":
        checks = [("route_id", "routes")]
    elif table == "stop_times":
        checks = [("trip_id", "trips"), ("stop_id", "stops")]
    elif table == "frequencies":
        checks = [("trip_id", "trips")]

    kept = [
        r for r in records
        if all(parent not in known or getattr(r, field) in known[parent] for field, parent in checks)
    ]
    skipped = len(records) - len(kept)
    if skipped:
        logger.warning("Skipped %d %s rows with unresolved references.", skipped, table)
    return kept


async def refresh_static_data(store: GtfsStore, url: str = GTFS_STATIC_URL) -> dict[str, int]:
    """Download and ingest a fresh copy of GTFS static data."""
    zip_bytes = await download_gtfs_zip(url)
    return parse_and_store(zip_bytes, store)
