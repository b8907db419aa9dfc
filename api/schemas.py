from __future__ import annotations
from typing import Literal
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared building blocks
# ---------------------------------------------------------------------------

class StopResult(BaseModel):
    stop_id: str
    stop_name: str | None
    lat: float | None
    lon: float | None


class TripResult(BaseModel):
    trip_id: str
    route_id: str
    service_id: str
    trip_headsign: str | None
    direction_id: int | None


class StopTimeResult(BaseModel):
    trip_id: str
    stop_id: str
    stop_sequence: int
    arrival_time: str | None     # HH:MM:SS, may exceed 24:00:00
    departure_time: str | None   # HH:MM:SS, may exceed 24:00:00


# ---------------------------------------------------------------------------
# GET /routes/{route_id}/services, /directions
# ---------------------------------------------------------------------------

class CalendarResult(BaseModel):
    monday: bool
    tuesday: bool
    wednesday: bool
    thursday: bool
    friday: bool
    saturday: bool
    sunday: bool
    start_date: str
    end_date: str


class CalendarDateResult(BaseModel):
    date: str
    exception_type: int


class ServiceResult(BaseModel):
    service_id: str
    calendar: CalendarResult | None
    calendar_dates: list[CalendarDateResult]
    trip_count: int


class DirectionResult(BaseModel):
    direction_id: int | None
    name: str
    trip_count: int


# ---------------------------------------------------------------------------
# GET /routes/{route_id}/timetable
# ---------------------------------------------------------------------------

class TimetableCell(BaseModel):
    served: bool
    stop_sequence: int | None = None
    arrival_time: str | None = None
    departure_time: str | None = None
    linked: bool = False  # arrival and departure show one value


class TimetableTrip(BaseModel):
    trip_id: str
    trip_headsign: str | None
    cells: list[TimetableCell]


class TimetableResponse(BaseModel):
    route_id: str
    service_id: str
    direction_id: int | None
    direction_name: str
    stops: list[StopResult]
    trips: list[TimetableTrip]
    show_arrival_departure: bool


# ---------------------------------------------------------------------------
# Edits
# ---------------------------------------------------------------------------

class TimeUpdateRequest(BaseModel):
    field: Literal["arrival", "departure", "both"]
    value: str = Field(..., description="HH:MM:SS; hours may exceed 23")
    stop_sequence: int | None = None


class UnskipRequest(BaseModel):
    stop_sequence: int = Field(..., ge=0)


class EditResponse(BaseModel):
    status: Literal["ok"]
    key: str
    stop_time: StopTimeResult


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: Literal["ok"]
    timestamp: str
    tables: dict[str, int]


# ---------------------------------------------------------------------------
# POST /ingest/*
# ---------------------------------------------------------------------------

class IngestResponse(BaseModel):
    status: Literal["ok"]
    tables: dict[str, int]
    message: str
