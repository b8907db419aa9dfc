"""
Typed GTFS records returned by the store.

Each GTFS table has exactly one record type, discriminated by its ``table``
literal, and ``RECORD_TYPES`` is the single table-name → type mapping.
Records are frozen pydantic models: the store hands out copies, and callers
derive changed versions with ``model_copy(update=...)`` before putting them
back.

The ``table`` discriminator is excluded from ``model_dump()`` so dumped
records contain only GTFS columns.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class GtfsRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


class Agency(GtfsRecord):
    table: Literal["agency"] = Field("agency", exclude=True)
    agency_id: str
    agency_name: str
    agency_url: str
    agency_timezone: str
    agency_lang: str | None = None
    agency_phone: str | None = None


class Stop(GtfsRecord):
    table: Literal["stops"] = Field("stops", exclude=True)
    stop_id: str
    stop_name: str | None = None
    stop_lat: float | None = None
    stop_lon: float | None = None
    stop_code: str | None = None
    location_type: int | None = None
    parent_station: str | None = None


class Route(GtfsRecord):
    table: Literal["routes"] = Field("routes", exclude=True)
    route_id: str
    agency_id: str | None = None
    route_short_name: str | None = None
    route_long_name: str | None = None
    route_type: int
    route_color: str | None = None
    route_text_color: str | None = None


class Trip(GtfsRecord):
    table: Literal["trips"] = Field("trips", exclude=True)
    trip_id: str
    route_id: str
    service_id: str
    trip_headsign: str | None = None
    trip_short_name: str | None = None
    direction_id: int | None = None
    block_id: str | None = None
    shape_id: str | None = None


class StopTime(GtfsRecord):
    table: Literal["stop_times"] = Field("stop_times", exclude=True)
    trip_id: str
    stop_sequence: int
    stop_id: str
    arrival_time: str | None = None    # HH:MM:SS, may exceed 24:00:00
    departure_time: str | None = None  # HH:MM:SS, may exceed 24:00:00
    stop_headsign: str | None = None
    pickup_type: int | None = None
    drop_off_type: int | None = None
    timepoint: int | None = None


class Calendar(GtfsRecord):
    table: Literal["calendar"] = Field("calendar", exclude=True)
    service_id: str
    monday: int
    tuesday: int
    wednesday: int
    thursday: int
    friday: int
    saturday: int
    sunday: int
    start_date: str  # YYYYMMDD
    end_date: str    # YYYYMMDD


class CalendarDate(GtfsRecord):
    table: Literal["calendar_dates"] = Field("calendar_dates", exclude=True)
    service_id: str
    date: str  # YYYYMMDD
    exception_type: int


class ShapePoint(GtfsRecord):
    table: Literal["shapes"] = Field("shapes", exclude=True)
    shape_id: str
    shape_pt_sequence: int
    shape_pt_lat: float
    shape_pt_lon: float
    shape_dist_traveled: float | None = None


class Frequency(GtfsRecord):
    table: Literal["frequencies"] = Field("frequencies", exclude=True)
    trip_id: str
    start_time: str
    end_time: str
    headway_secs: int
    exact_times: int | None = None


AnyRecord = Annotated[
    Union[
        Agency, Stop, Route, Trip, StopTime,
        Calendar, CalendarDate, ShapePoint, Frequency,
    ],
    Field(discriminator="table"),
]

RECORD_TYPES: dict[str, type[GtfsRecord]] = {
    "agency": Agency,
    "stops": Stop,
    "routes": Route,
    "trips": Trip,
    "stop_times": StopTime,
    "calendar": Calendar,
    "calendar_dates": CalendarDate,
    "shapes": ShapePoint,
    "frequencies": Frequency,
}


def columns_of(table: str) -> list[str]:
    """GTFS column names of a table, in declaration order."""
    return [name for name in RECORD_TYPES[table].model_fields if name != "table"]
