"""Coerce raw slot records into canonical :class:`Slot` values.

Slots arrive from free-form client input, so normalization never rejects a
record: every missing or malformed field falls back to the entry in
``SLOT_DEFAULTS``. The only user-facing rejection on the write path is an
inverted time range, which :func:`validate_slot_times` reports before a slot
is normalized and persisted.
"""

import math
import uuid
from collections.abc import Mapping
from datetime import datetime, time, timezone
from typing import Any

from pydantic import BaseModel

from availability_backend.core import config
from availability_backend.schemas.availability import Location, Slot

DAYS_OF_WEEK = (
    'monday',
    'tuesday',
    'wednesday',
    'thursday',
    'friday',
    'saturday',
    'sunday',
)

SLOT_DEFAULTS: dict[str, Any] = {
    'day': 'monday',
    'startTime': '18:00',
    'endTime': '21:00',
    'notes': '',
    'radiusMiles': config.DEFAULT_RADIUS_MILES,
}


class SlotValidationError(ValueError):
    """Raised when a slot submitted for saving cannot be accepted."""


def new_slot_id() -> str:
    return f'slot_{uuid.uuid4().hex}'


def day_sort_index(day: str) -> int:
    # Monday-first display order; unknown days sort last.
    if day in DAYS_OF_WEEK:
        return DAYS_OF_WEEK.index(day)
    return len(DAYS_OF_WEEK)


def pad_time(value: Any) -> str | None:
    """Return ``value`` as a zero-padded ``HH:MM`` string, or ``None`` if it is not a time of day."""
    if isinstance(value, time):
        return value.strftime('%H:%M')
    if not isinstance(value, str):
        return None

    parts = value.strip().split(':')
    if len(parts) == 3 and parts[2].isdigit():
        parts = parts[:2]
    if len(parts) != 2:
        return None

    hours, minutes = parts[0].strip(), parts[1].strip() or '0'
    if not (hours.isdigit() and minutes.isdigit()):
        return None
    if int(hours) > 23 or int(minutes) > 59:
        return None

    return f'{int(hours):02d}:{int(minutes):02d}'


def time_to_minutes(value: Any) -> int | None:
    padded = pad_time(value)
    if padded is None:
        return None
    hours, minutes = padded.split(':')
    return int(hours) * 60 + int(minutes)


def coerce_radius(value: Any, fallback: float) -> float:
    if isinstance(value, bool):
        return fallback
    try:
        radius = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(radius) or radius <= 0:
        return fallback
    return radius


def coerce_coordinate(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def as_mapping(raw: Any) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, BaseModel):
        return raw.model_dump(by_alias=True)
    if isinstance(raw, Mapping):
        return raw
    return {}


def pick(record: Mapping[str, Any], *keys: str) -> Any:
    """Return the first non-``None`` value among ``keys`` (camelCase and snake_case spellings)."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def as_text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


def parse_timestamp(value: Any, fallback: datetime | None) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return fallback
    return fallback


def _normalize_day(value: Any) -> str:
    if isinstance(value, str):
        day = value.strip().lower()
        if day in DAYS_OF_WEEK:
            return day
    return SLOT_DEFAULTS['day']


def resolve_default_radius(default_radius: Any) -> float:
    return coerce_radius(default_radius, SLOT_DEFAULTS['radiusMiles'])


def normalize_location(raw_location: Any, default_radius: Any = None) -> Location:
    record = as_mapping(raw_location)
    label = as_text(record.get('label'))
    postal_code = as_text(pick(record, 'postalCode', 'postal_code'))

    return Location(
        query=as_text(record.get('query')) or label or postal_code,
        label=label,
        postal_code=postal_code,
        lat=coerce_coordinate(record.get('lat')),
        lng=coerce_coordinate(record.get('lng')),
        radius_miles=coerce_radius(
            pick(record, 'radiusMiles', 'radius_miles'),
            resolve_default_radius(default_radius),
        ),
    )


def normalize_slot(raw: Any, default_radius: Any = None, *, now: datetime | None = None) -> Slot:
    """Build a canonical slot from a possibly partial record.

    Args:
        raw: Mapping (camelCase or snake_case keys), pydantic model, or ``None``.
        default_radius: Radius applied when the slot's location omits one.
        now: Timestamp used for ``updatedAt`` and a missing ``createdAt``.
    """
    record = as_mapping(raw)
    now = now or datetime.now(timezone.utc)

    slot_id = as_text(record.get('id')) or new_slot_id()
    start_time = pad_time(pick(record, 'startTime', 'start_time')) or SLOT_DEFAULTS['startTime']
    end_time = pad_time(pick(record, 'endTime', 'end_time')) or SLOT_DEFAULTS['endTime']
    notes = record.get('notes')

    return Slot(
        id=slot_id,
        day=_normalize_day(record.get('day')),
        start_time=start_time,
        end_time=end_time,
        location=normalize_location(record.get('location'), default_radius),
        notes=str(notes) if notes else SLOT_DEFAULTS['notes'],
        created_at=parse_timestamp(pick(record, 'createdAt', 'created_at'), now),
        updated_at=now,
    )


def validate_slot_times(raw: Any) -> tuple[str, str]:
    """Return the start and end times a save would persist, rejecting inverted ranges."""
    record = as_mapping(raw)
    start_time = pad_time(pick(record, 'startTime', 'start_time')) or SLOT_DEFAULTS['startTime']
    end_time = pad_time(pick(record, 'endTime', 'end_time')) or SLOT_DEFAULTS['endTime']

    if time_to_minutes(end_time) <= time_to_minutes(start_time):
        raise SlotValidationError(f'End time ({end_time}) must be after start time ({start_time}).')

    return start_time, end_time
