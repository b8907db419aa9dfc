"""
FastAPI application entry point.

On startup the database schema is created if missing. Every request gets
its own session-backed GtfsStore; nothing is cached between requests, so
each response reflects the last committed edit.

Endpoints (v1):
  GET    /health
  GET    /routes/{route_id}/services
  GET    /routes/{route_id}/directions?service_id=<id>
  GET    /routes/{route_id}/stops
  GET    /routes/{route_id}/trips
  GET    /routes/{route_id}/timetable?service_id=<id>&direction_id=<0|1>
  PATCH  /trips/{trip_id}/stops/{stop_id}/times          (update_time)
  DELETE /trips/{trip_id}/stops/{stop_id}                (skip_stop)
  POST   /trips/{trip_id}/stops/{stop_id}                (unskip_stop)
  GET    /tables/{table}/rows/{key}
  POST   /ingest/gtfs-static
  GET    /export/gtfs.zip
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader

from api.schemas import (
    DirectionResult,
    EditResponse,
    HealthResponse,
    IngestResponse,
    ServiceResult,
    StopResult,
    TimeUpdateRequest,
    TimetableResponse,
    TripResult,
    UnskipRequest,
)
from config import CORS_ORIGINS, EXPORT_FILENAME, INGEST_API_KEY
from db.errors import (
    KeyConflictError,
    MalformedKeyError,
    QuotaExceededError,
    StorageError,
    StorageUnavailableError,
    UnknownFieldError,
    UnknownTableError,
)
from db.keys import key_for
from db.records import RECORD_TYPES, Stop, StopTime
from db.session import get_store, init_db
from db.store import GtfsStore
from editing.controller import TimetableEditor
from editing.errors import EditValidationError, NotFoundError
from export.gtfs_export import build_gtfs_zip
from ingestion.gtfs_static import refresh_static_data
from relationships.resolver import RelationshipResolver
from timetable.alignment import NOT_SERVED
from timetable.builder import get_timetable

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_ingest_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _require_ingest_key(key: str | None = Security(_ingest_key_header)) -> None:
    """
    Optional API-key guard for the ingest endpoint.

    If INGEST_API_KEY is not set the endpoint is open (local dev / testing).
    If it is set, the request must include the matching X-API-Key header.
    """
    if not INGEST_API_KEY:
        return  # no key configured → open
    if key != INGEST_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid or missing X-API-Key header.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database initialised.")
    yield


app = FastAPI(
    title="GTFS Timetable Editor",
    description="Aligned timetables and direct stop-time editing for GTFS feeds.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error mapping: edits and storage failures are surfaced, never masked
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR: list[tuple[type[Exception], int]] = [
    (NotFoundError, 404),
    (UnknownTableError, 404),
    (EditValidationError, 422),
    (MalformedKeyError, 400),
    (UnknownFieldError, 400),
    (KeyConflictError, 409),
    (QuotaExceededError, 507),
    (StorageUnavailableError, 503),
    (StorageError, 500),
]


@app.exception_handler(NotFoundError)
@app.exception_handler(EditValidationError)
@app.exception_handler(StorageError)
async def _editor_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status = next((code for kind, code in _STATUS_BY_ERROR if isinstance(exc, kind)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), "error": type(exc).__name__})


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _stop_result(stop: Stop | None, stop_id: str) -> dict[str, Any]:
    if stop is None:
        return {"stop_id": stop_id, "stop_name": None, "lat": None, "lon": None}
    return {"stop_id": stop.stop_id, "stop_name": stop.stop_name, "lat": stop.stop_lat, "lon": stop.stop_lon}


def _stop_time_result(stop_time: StopTime) -> dict[str, Any]:
    return {
        "trip_id": stop_time.trip_id,
        "stop_id": stop_time.stop_id,
        "stop_sequence": stop_time.stop_sequence,
        "arrival_time": stop_time.arrival_time,
        "departure_time": stop_time.departure_time,
    }


def _edit_response(stop_time: StopTime) -> dict[str, Any]:
    return {"status": "ok", "key": key_for(stop_time), "stop_time": _stop_time_result(stop_time)}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health", response_model=HealthResponse)
async def health(store: GtfsStore = Depends(get_store)) -> HealthResponse:
    """Liveness check with per-table row counts (0 when no feed is loaded)."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "tables": {table: store.count(table) for table in RECORD_TYPES},
    }


@app.get("/routes/{route_id}/services", response_model=list[ServiceResult])
async def route_services(route_id: str, store: GtfsStore = Depends(get_store)) -> list[ServiceResult]:
    resolver = RelationshipResolver(store)
    resolver.require_route(route_id)
    results = []
    for summary in resolver.services_for_route(route_id):
        calendar = None
        if summary.calendar is not None:
            c = summary.calendar
            calendar = {
                "monday": c.monday == 1, "tuesday": c.tuesday == 1,
                "wednesday": c.wednesday == 1, "thursday": c.thursday == 1,
                "friday": c.friday == 1, "saturday": c.saturday == 1,
                "sunday": c.sunday == 1,
                "start_date": c.start_date, "end_date": c.end_date,
            }
        results.append({
            "service_id": summary.service_id,
            "calendar": calendar,
            "calendar_dates": [
                {"date": d.date, "exception_type": d.exception_type} for d in summary.calendar_dates
            ],
            "trip_count": summary.trip_count,
        })
    return results


@app.get("/routes/{route_id}/directions", response_model=list[DirectionResult])
async def route_directions(
    route_id: str,
    service_id: str = Query(..., description="GTFS service_id"),
    store: GtfsStore = Depends(get_store),
) -> list[DirectionResult]:
    resolver = RelationshipResolver(store)
    resolver.require_route(route_id)
    return [
        {"direction_id": d.direction_id, "name": d.name, "trip_count": d.trip_count}
        for d in resolver.directions_for_route(route_id, service_id)
    ]


@app.get("/routes/{route_id}/stops", response_model=list[StopResult])
async def route_stops(route_id: str, store: GtfsStore = Depends(get_store)) -> list[StopResult]:
    resolver = RelationshipResolver(store)
    resolver.require_route(route_id)
    return [_stop_result(stop, stop.stop_id) for stop in resolver.stops_for_route(route_id)]


@app.get("/routes/{route_id}/trips", response_model=list[TripResult])
async def route_trips(route_id: str, store: GtfsStore = Depends(get_store)) -> list[TripResult]:
    resolver = RelationshipResolver(store)
    resolver.require_route(route_id)
    return [
        {
            "trip_id": t.trip_id, "route_id": t.route_id, "service_id": t.service_id,
            "trip_headsign": t.trip_headsign, "direction_id": t.direction_id,
        }
        for t in resolver.trips_for_route(route_id)
    ]


@app.get("/routes/{route_id}/timetable", response_model=TimetableResponse)
async def route_timetable(
    route_id: str,
    service_id: str = Query(..., description="GTFS service_id"),
    direction_id: int | None = Query(None, description="GTFS direction_id; omit for all directions"),
    store: GtfsStore = Depends(get_store),
) -> TimetableResponse:
    """
    Aligned timetable: one column per global stop position and one row per
    trip, ordered by first departure. Cells a trip does not serve are
    returned with ``served: false``.
    """
    timetable = get_timetable(store, route_id, service_id, direction_id)
    trips = []
    for aligned in timetable.trips_by_departure():
        cells = []
        for cell in aligned.cells:
            if cell is NOT_SERVED:
                cells.append({"served": False})
                continue
            cells.append({
                "served": True,
                "stop_sequence": cell.stop_sequence,
                "arrival_time": cell.arrival_time,
                "departure_time": cell.departure_time,
                "linked": cell.arrival_time == cell.departure_time,
            })
        trips.append({
            "trip_id": aligned.trip_id,
            "trip_headsign": aligned.trip.trip_headsign,
            "cells": cells,
        })
    return {
        "route_id": timetable.route_id,
        "service_id": timetable.service_id,
        "direction_id": timetable.direction_id,
        "direction_name": timetable.direction_name,
        "stops": [
            _stop_result(stop, stop_id) for stop_id, stop in zip(timetable.stop_ids, timetable.stops)
        ],
        "trips": trips,
        "show_arrival_departure": timetable.has_distinct_arrivals,
    }


@app.patch("/trips/{trip_id}/stops/{stop_id}/times", response_model=EditResponse)
async def update_stop_time(
    trip_id: str,
    stop_id: str,
    body: TimeUpdateRequest,
    store: GtfsStore = Depends(get_store),
) -> EditResponse:
    """Set arrival, departure or both (linked) times; persisted immediately."""
    stop_time = TimetableEditor(store).update_time(
        trip_id, stop_id, body.field, body.value, stop_sequence=body.stop_sequence
    )
    return _edit_response(stop_time)


@app.delete("/trips/{trip_id}/stops/{stop_id}", response_model=EditResponse)
async def skip_stop(
    trip_id: str,
    stop_id: str,
    stop_sequence: int | None = Query(None, description="Disambiguates repeat visits"),
    store: GtfsStore = Depends(get_store),
) -> EditResponse:
    """Skip a stop on a trip by deleting its stop_times row."""
    return _edit_response(TimetableEditor(store).skip_stop(trip_id, stop_id, stop_sequence))


@app.post("/trips/{trip_id}/stops/{stop_id}", response_model=EditResponse, status_code=201)
async def unskip_stop(
    trip_id: str,
    stop_id: str,
    body: UnskipRequest,
    store: GtfsStore = Depends(get_store),
) -> EditResponse:
    """Re-add a skipped stop at ``stop_sequence`` with empty placeholder times."""
    return _edit_response(TimetableEditor(store).unskip_stop(trip_id, stop_id, body.stop_sequence))


@app.get("/tables/{table}/rows/{key:path}")
async def get_row(table: str, key: str, store: GtfsStore = Depends(get_store)) -> dict[str, Any]:
    """Raw keyed lookup; ``key`` is the encoded primary key of the table."""
    record = store.get(table, key)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No {table} row with key {key!r}.")
    return record.model_dump()


@app.post("/ingest/gtfs-static", response_model=IngestResponse)
async def trigger_gtfs_ingest(
    store: GtfsStore = Depends(get_store),
    _: None = Depends(_require_ingest_key),
) -> IngestResponse:
    """Download the configured GTFS static feed and replace the stored tables."""
    try:
        counts = await refresh_static_data(store)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=502, detail=f"GTFS download failed: {exc}")
    return {
        "status": "ok",
        "tables": counts,
        "message": f"Imported {sum(counts.values())} rows across {len(counts)} tables.",
    }


@app.get("/export/gtfs.zip")
async def export_gtfs(store: GtfsStore = Depends(get_store)) -> Response:
    """Serialise the stored tables back into a GTFS zip."""
    return Response(
        content=build_gtfs_zip(store),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


if __name__ == "__main__":
    import uvicorn

    from config import API_HOST, API_PORT

    uvicorn.run("api.main:app", host=API_HOST, port=API_PORT)
