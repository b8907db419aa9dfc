"""
Tests for export.gtfs_export: store back to GTFS text files.
"""

import io
import zipfile

import pandas as pd

from conftest import stop_time
from editing.controller import TimetableEditor
from export.gtfs_export import build_gtfs_zip, export_tables, table_to_csv
from ingestion.gtfs_static import parse_and_store


def read_csv(text: str) -> pd.DataFrame:
    return pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)


class TestTableToCsv:
    def test_empty_table_is_none(self, store):
        assert table_to_csv(store, "shapes") is None

    def test_rows_in_key_order(self, feed):
        df = read_csv(table_to_csv(feed, "stop_times"))
        assert list(zip(df.trip_id, df.stop_sequence))[:4] == [("T1", "1"), ("T1", "2"), ("T1", "3"), ("T1", "4")]
        assert len(df) == 11

    def test_empty_optional_columns_dropped(self, feed):
        header = table_to_csv(feed, "stop_times").splitlines()[0].split(",")
        assert header == ["trip_id", "stop_sequence", "stop_id", "arrival_time", "departure_time"]

    def test_required_columns_kept_when_empty(self, feed):
        header = table_to_csv(feed, "routes").splitlines()[0].split(",")
        assert "route_id" in header and "route_type" in header

    def test_integer_columns_not_written_as_floats(self, feed):
        # direction_id is set on every trip, pickup_type on only one row
        feed.put("stop_times", stop_time("T1", 1, "A", "08:00:00").model_copy(update={"pickup_type": 1}))
        df = read_csv(table_to_csv(feed, "stop_times"))
        assert set(df.pickup_type) == {"1", ""}
        assert set(read_csv(table_to_csv(feed, "trips")).direction_id) == {"0", "1"}

    def test_edits_are_exported(self, feed):
        editor = TimetableEditor(feed)
        editor.update_time("T1", "C", "both", "25:10:00")
        editor.skip_stop("T1", "B")
        df = read_csv(table_to_csv(feed, "stop_times"))
        t1 = df[df.trip_id == "T1"]
        assert list(t1.stop_id) == ["A", "C", "D"]
        assert t1[t1.stop_id == "C"].arrival_time.item() == "25:10:00"


class TestExport:
    def test_export_tables_skips_empty(self, feed):
        files = export_tables(feed)
        assert set(files) == {
            "stops.txt", "routes.txt", "trips.txt", "stop_times.txt", "calendar.txt", "calendar_dates.txt",
        }

    def test_zip_round_trips_through_import(self, feed):
        archive = build_gtfs_zip(feed)
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            assert "stop_times.txt" in zf.namelist()

        before = {table: feed.get_all_rows(table) for table in ("stops", "trips", "stop_times")}
        parse_and_store(archive, feed)
        for table, rows in before.items():
            assert feed.get_all_rows(table) == rows
