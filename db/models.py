"""
SQLAlchemy ORM models for the editable GTFS tables.

Every table uses its GTFS primary key as the database primary key, so
composite-keyed tables (stop_times, calendar_dates, shapes, frequencies)
have multi-column primary keys rather than a surrogate autoincrement id.

GTFS time fields (arrival_time, departure_time, start_time, end_time) are
stored as HH:MM:SS strings because the GTFS reference allows values >= 24:00:00
for trips crossing midnight. Application code converts to integer
seconds-past-midnight when it needs to compare them.

There are no ForeignKey constraints: references between tables are checked
by the relationship resolver at edit time, not by the database.
"""

from sqlalchemy import Column, Float, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Agency(Base):
    __tablename__ = "agency"

    agency_id = Column(String, primary_key=True)
    agency_name = Column(String, nullable=False)
    agency_url = Column(String, nullable=False)
    agency_timezone = Column(String, nullable=False)
    agency_lang = Column(String, nullable=True)
    agency_phone = Column(String, nullable=True)


class Stop(Base):
    __tablename__ = "stops"

    stop_id = Column(String, primary_key=True)
    stop_name = Column(String, nullable=True)
    stop_lat = Column(Float, nullable=True)
    stop_lon = Column(Float, nullable=True)
    stop_code = Column(String, nullable=True)
    location_type = Column(Integer, nullable=True)
    parent_station = Column(String, nullable=True, index=True)


class Route(Base):
    __tablename__ = "routes"

    route_id = Column(String, primary_key=True)
    agency_id = Column(String, nullable=True, index=True)
    route_short_name = Column(String, nullable=True)
    route_long_name = Column(String, nullable=True)
    route_type = Column(Integer, nullable=False)  # 3 = bus
    route_color = Column(String, nullable=True)
    route_text_color = Column(String, nullable=True)


class Trip(Base):
    __tablename__ = "trips"

    trip_id = Column(String, primary_key=True)
    route_id = Column(String, nullable=False, index=True)
    service_id = Column(String, nullable=False, index=True)
    trip_headsign = Column(String, nullable=True)
    trip_short_name = Column(String, nullable=True)
    direction_id = Column(Integer, nullable=True, index=True)
    block_id = Column(String, nullable=True)
    shape_id = Column(String, nullable=True, index=True)


class StopTime(Base):
    __tablename__ = "stop_times"

    trip_id = Column(String, primary_key=True)
    stop_sequence = Column(Integer, primary_key=True)
    stop_id = Column(String, nullable=False, index=True)
    arrival_time = Column(String, nullable=True)    # HH:MM:SS (may exceed 24:00:00)
    departure_time = Column(String, nullable=True)  # HH:MM:SS (may exceed 24:00:00)
    stop_headsign = Column(String, nullable=True)
    pickup_type = Column(Integer, nullable=True)
    drop_off_type = Column(Integer, nullable=True)
    timepoint = Column(Integer, nullable=True)


class ServiceCalendar(Base):
    __tablename__ = "calendar"

    service_id = Column(String, primary_key=True)
    monday = Column(Integer, nullable=False)
    tuesday = Column(Integer, nullable=False)
    wednesday = Column(Integer, nullable=False)
    thursday = Column(Integer, nullable=False)
    friday = Column(Integer, nullable=False)
    saturday = Column(Integer, nullable=False)
    sunday = Column(Integer, nullable=False)
    start_date = Column(String, nullable=False)  # YYYYMMDD
    end_date = Column(String, nullable=False)    # YYYYMMDD


class ServiceCalendarDate(Base):
    __tablename__ = "calendar_dates"

    service_id = Column(String, primary_key=True)
    date = Column(String, primary_key=True)     # YYYYMMDD
    exception_type = Column(Integer, nullable=False)  # 1 = service added, 2 = service removed


class ShapePoint(Base):
    __tablename__ = "shapes"

    shape_id = Column(String, primary_key=True)
    shape_pt_sequence = Column(Integer, primary_key=True)
    shape_pt_lat = Column(Float, nullable=False)
    shape_pt_lon = Column(Float, nullable=False)
    shape_dist_traveled = Column(Float, nullable=True)


class Frequency(Base):
    __tablename__ = "frequencies"

    trip_id = Column(String, primary_key=True)
    start_time = Column(String, primary_key=True)  # HH:MM:SS
    end_time = Column(String, nullable=False)      # HH:MM:SS
    headway_secs = Column(Integer, nullable=False)
    exact_times = Column(Integer, nullable=True)
