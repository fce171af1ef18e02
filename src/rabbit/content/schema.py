from __future__ import annotations

from typing import Any

from rabbit.sim.forest import TrackDirection
from rabbit.sim.rabbit import PLAYING_STATES, RabbitState

SUPPORTED_SCHEMA_VERSIONS = {1}
REQUIRED_RABBIT_FIELDS = {"location", "last_moved", "state"}
COUNTER_FIELDS = ("spotted_count", "caught_count", "killed_count")
VALID_RABBIT_STATES = {state.value for state in RabbitState}
PLAYING_STATE_NAMES = {state.value for state in PLAYING_STATES}
VALID_TRACK_DIRECTIONS = {direction.value for direction in TrackDirection}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_optional_str(value: Any, *, field_name: str) -> None:
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string or null")


def _validate_rabbit_record(location: str, record: Any, *, field_name: str) -> None:
    if not isinstance(record, dict):
        raise ValueError(f"{field_name} must be an object")

    missing = REQUIRED_RABBIT_FIELDS - set(record.keys())
    if missing:
        raise ValueError(f"{field_name} missing fields: {sorted(missing)}")

    state = record["state"]
    if state not in VALID_RABBIT_STATES:
        raise ValueError(f"{field_name}.state invalid: {state}")
    if state not in PLAYING_STATE_NAMES:
        raise ValueError(f"{field_name}.state {state} is not allowed in the registry")

    if record["location"] != location:
        raise ValueError(f"{field_name}.location does not match its registry key")

    _validate_optional_str(record.get("tag"), field_name=f"{field_name}.tag")
    _validate_optional_str(record.get("last_location"), field_name=f"{field_name}.last_location")

    if not _is_number(record["last_moved"]):
        raise ValueError(f"{field_name}.last_moved must be a number")
    last_spotted = record.get("last_spotted")
    if last_spotted is not None and not _is_number(last_spotted):
        raise ValueError(f"{field_name}.last_spotted must be a number or null")

    for duration_field in ("idle_duration", "flee_duration"):
        if duration_field not in record:
            continue
        value = record[duration_field]
        if not _is_number(value) or value < 0:
            raise ValueError(f"{field_name}.{duration_field} must be a non-negative number")


def _validate_track_record(record: Any, *, field_name: str) -> None:
    if not isinstance(record, dict):
        raise ValueError(f"{field_name} must be an object")
    if record.get("direction") not in VALID_TRACK_DIRECTIONS:
        raise ValueError(f"{field_name}.direction invalid: {record.get('direction')}")
    if not _is_number(record.get("timestamp")):
        raise ValueError(f"{field_name}.timestamp must be a number")


def validate_forest_payload(payload: Any, *, field_prefix: str = "forest_state") -> None:
    if not isinstance(payload, dict):
        raise ValueError(f"{field_prefix} must be an object")

    rabbits = payload.get("rabbits")
    if not isinstance(rabbits, dict):
        raise ValueError(f"{field_prefix}.rabbits must be an object")
    for location, record in rabbits.items():
        if not isinstance(location, str) or not location:
            raise ValueError(f"{field_prefix}.rabbits keys must be non-empty strings")
        _validate_rabbit_record(location, record, field_name=f"{field_prefix}.rabbits[{location}]")

    tracks = payload.get("tracks", {})
    if not isinstance(tracks, dict):
        raise ValueError(f"{field_prefix}.tracks must be an object when present")
    for location, record in tracks.items():
        _validate_track_record(record, field_name=f"{field_prefix}.tracks[{location}]")

    for counter in COUNTER_FIELDS:
        value = payload.get(counter)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"{field_prefix}.{counter} must be a non-negative integer")


def validate_save_payload(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise ValueError("save payload must be an object")
    if "schema_version" not in payload:
        raise ValueError("save payload missing schema_version")
    if payload["schema_version"] not in SUPPORTED_SCHEMA_VERSIONS:
        raise ValueError(f"unsupported schema_version: {payload['schema_version']}")
    if "forest_state" not in payload:
        raise ValueError("save payload missing forest_state")
    validate_forest_payload(payload["forest_state"])
