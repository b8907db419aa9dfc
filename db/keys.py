"""
Primary key definitions for every GTFS table the editor stores.

Keys follow the GTFS reference (https://gtfs.org/schedule/reference/):
single-field keys for entity tables, ordered composite keys for tables such
as stop_times (trip_id, stop_sequence) or calendar_dates (service_id, date).

A key is encoded as the key field values, in declared order, joined with the
ASCII unit separator. The separator never appears in GTFS text, and values
containing it are rejected, so decode_key(table, encode_key(table, fields))
returns exactly ``fields`` for every valid input. Integer key fields are
converted back to int on decode.

This module is the only place keys are built or parsed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import BaseModel

from db.errors import MalformedKeyError, UnknownTableError

KEY_SEPARATOR = "\x1f"


@dataclass(frozen=True)
class KeySpec:
    table: str
    fields: tuple[str, ...]
    types: tuple[type, ...]

    @property
    def is_composite(self) -> bool:
        return len(self.fields) > 1


TABLE_KEYS: dict[str, KeySpec] = {
    entry.table: entry
    for entry in (
        KeySpec("agency", ("agency_id",), (str,)),
        KeySpec("stops", ("stop_id",), (str,)),
        KeySpec("routes", ("route_id",), (str,)),
        KeySpec("trips", ("trip_id",), (str,)),
        KeySpec("stop_times", ("trip_id", "stop_sequence"), (str, int)),
        KeySpec("calendar", ("service_id",), (str,)),
        KeySpec("calendar_dates", ("service_id", "date"), (str, str)),
        KeySpec("shapes", ("shape_id", "shape_pt_sequence"), (str, int)),
        KeySpec("frequencies", ("trip_id", "start_time"), (str, str)),
    )
}


def key_spec(table: str) -> KeySpec:
    try:
        return TABLE_KEYS[table]
    except KeyError:
        raise UnknownTableError(f"Unknown GTFS table '{table}'.") from None


def _encode_part(table: str, field: str, kind: type, value: Any) -> str:
    if value is None or value == "":
        raise MalformedKeyError(
            f"Missing required key field '{field}' for table '{table}'."
        )
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedKeyError(
                f"Key field '{field}' of table '{table}' must be an integer, got {value!r}."
            )
        return str(value)
    if not isinstance(value, str):
        raise MalformedKeyError(
            f"Key field '{field}' of table '{table}' must be a string, got {value!r}."
        )
    if KEY_SEPARATOR in value:
        raise MalformedKeyError(
            f"Key field '{field}' of table '{table}' contains the reserved key separator."
        )
    return value


def encode_key(table: str, fields: Mapping[str, Any]) -> str:
    """Encode the key fields of ``table`` into its canonical key string."""
    layout = key_spec(table)
    return KEY_SEPARATOR.join(
        _encode_part(table, name, kind, fields.get(name))
        for name, kind in zip(layout.fields, layout.types)
    )


def decode_key(table: str, key: str) -> dict[str, Any]:
    """Inverse of encode_key: split a key string back into typed fields."""
    layout = key_spec(table)
    if not isinstance(key, str) or key == "":
        raise MalformedKeyError(f"Empty or non-string key for table '{table}'.")
    parts = key.split(KEY_SEPARATOR)
    if len(parts) != len(layout.fields):
        raise MalformedKeyError(
            f"Invalid key for table '{table}': expected {len(layout.fields)} part(s), "
            f"got {len(parts)}."
        )
    decoded: dict[str, Any] = {}
    for name, kind, part in zip(layout.fields, layout.types, parts):
        if part == "":
            raise MalformedKeyError(f"Empty key field '{name}' for table '{table}'.")
        if kind is int:
            try:
                decoded[name] = int(part)
            except ValueError:
                raise MalformedKeyError(
                    f"Key field '{name}' of table '{table}' is not an integer: {part!r}."
                ) from None
            if str(decoded[name]) != part:
                # "007" would decode to 7 and re-encode to "7"
                raise MalformedKeyError(
                    f"Key field '{name}' of table '{table}' is not canonical: {part!r}."
                )
        else:
            decoded[name] = part
    return decoded


def key_for(record: BaseModel) -> str:
    """Derive the encoded key of a typed record."""
    table = getattr(record, "table", None)
    return encode_key(table, {name: getattr(record, name) for name in key_spec(table).fields})


def identity_of(table: str, key: str) -> tuple[Any, ...]:
    """Decode a key into the primary-key tuple SQLAlchemy's Session.get expects."""
    fields = decode_key(table, key)
    return tuple(fields[name] for name in key_spec(table).fields)
