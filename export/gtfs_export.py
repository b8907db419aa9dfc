"""
Serialises the store back into GTFS text files.

Columns are written in record field order. Optional columns that are empty
in every row are dropped; key columns are always written. Empty tables are
left out of the feed.
"""

import io
import logging
import zipfile

import pandas as pd

from db.keys import TABLE_KEYS
from db.records import RECORD_TYPES, columns_of
from db.store import GtfsStore

logger = logging.getLogger(__name__)


def table_to_csv(store: GtfsStore, table: str) -> str | None:
    """CSV text for one table, or None when the table has no rows."""
    rows = [record.model_dump() for record in store.get_all_rows(table)]
    if not rows:
        return None
    df = pd.DataFrame(rows, columns=columns_of(table))
    required = {
        name for name, info in RECORD_TYPES[table].model_fields.items() if info.is_required()
    } | set(TABLE_KEYS[table].fields)
    empty_optional = [c for c in df.columns if c not in required and df[c].isna().all()]
    df = df.drop(columns=empty_optional)
    # Integer columns with gaps would otherwise be written as floats ("1.0").
    for column in df.columns:
        if df[column].dtype == float and RECORD_TYPES[table].model_fields[column].annotation in (int, int | None):
            df[column] = df[column].astype("Int64")
    return df.to_csv(index=False)


def export_tables(store: GtfsStore) -> dict[str, str]:
    """Map of ``<table>.txt`` → CSV text for every non-empty table."""
    files: dict[str, str] = {}
    for table in RECORD_TYPES:
        content = table_to_csv(store, table)
        if content is not None:
            files[f"{table}.txt"] = content
    logger.info("Exported %d GTFS files: %s", len(files), sorted(files))
    return files


def build_gtfs_zip(store: GtfsStore) -> bytes:
    """Zip the exported tables into a GTFS feed archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for filename, content in export_tables(store).items():
            zf.writestr(filename, content)
    return buffer.getvalue()
