"""Read-modify-write operations on one user's availability profile."""

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from availability_backend.core import config
from availability_backend.schemas.availability import Owner, Preferences, Profile
from availability_backend.services.location_resolver import LocationStrategy, resolve_location
from availability_backend.services.slot_normalizer import (
    as_mapping,
    as_text,
    coerce_radius,
    normalize_slot,
    parse_timestamp,
    pick,
    resolve_default_radius,
    validate_slot_times,
)

if TYPE_CHECKING:
    from availability_backend.services.profile_store import ProfileStore

logger = logging.getLogger(__name__)

OWNER_FIELDS = {
    'display_name': ('displayName', 'display_name'),
    'location': ('location',),
    'bio': ('bio',),
    'photo_url': ('photoURL', 'photoUrl', 'photo_url'),
}


def _owner_from_record(user_id: str, raw_owner: Any) -> Owner:
    record = as_mapping(raw_owner)
    return Owner(
        user_id=user_id,
        **{field: as_text(pick(record, *keys)) for field, keys in OWNER_FIELDS.items()},
    )


def merge_owner(current: Owner, update: Any) -> Owner:
    """Overlay the non-empty display fields of ``update`` onto ``current``."""
    incoming = _owner_from_record(current.user_id, update)
    changes = {field: getattr(incoming, field) for field in OWNER_FIELDS if getattr(incoming, field)}
    return current.model_copy(update=changes)


def normalize_profile(user_id: str, data: Any) -> Profile:
    record = as_mapping(data)
    preferences = as_mapping(record.get('preferences'))
    default_radius = resolve_default_radius(pick(preferences, 'defaultRadiusMiles', 'default_radius_miles'))

    raw_slots = record.get('slots')
    if not isinstance(raw_slots, (list, tuple)):
        raw_slots = []

    slots = []
    seen_ids: set[str] = set()
    for raw_slot in raw_slots:
        if raw_slot is None:
            continue
        stored_updated_at = parse_timestamp(pick(as_mapping(raw_slot), 'updatedAt', 'updated_at'), None)
        slot = normalize_slot(raw_slot, default_radius, now=stored_updated_at)
        if slot.id in seen_ids:
            continue
        seen_ids.add(slot.id)
        slots.append(slot)

    is_looking = pick(record, 'isLooking', 'is_looking')

    return Profile(
        user_id=user_id,
        slots=slots,
        is_looking=True if is_looking is None else bool(is_looking),
        owner=_owner_from_record(user_id, record.get('owner')),
        preferences=Preferences(default_radius_miles=default_radius),
        updated_at=parse_timestamp(pick(record, 'updatedAt', 'updated_at'), None),
    )


def profile_to_document(profile: Profile) -> dict[str, Any]:
    return {
        'slots': [slot.model_dump(mode='json', by_alias=True) for slot in profile.slots],
        'isLooking': profile.is_looking,
        'owner': profile.owner.model_dump(mode='json', by_alias=True),
        'preferences': profile.preferences.model_dump(mode='json', by_alias=True),
        'updatedAt': profile.updated_at,
    }


def new_profile(user_id: str, owner: Any = None) -> Profile:
    return Profile(
        user_id=user_id,
        owner=merge_owner(Owner(user_id=user_id), owner),
        preferences=Preferences(default_radius_miles=config.DEFAULT_RADIUS_MILES),
    )


def _load_for_update(store: 'ProfileStore', user_id: str, owner: Any) -> Profile:
    profile = store.get_profile(user_id)
    if profile is None:
        return new_profile(user_id, owner)
    if owner is not None:
        return profile.model_copy(update={'owner': merge_owner(profile.owner, owner)})
    return profile


def _write(store: 'ProfileStore', profile: Profile, now: datetime | None = None) -> Profile:
    updated = profile.model_copy(update={'updated_at': now or datetime.now(timezone.utc)})
    saved = store.persist_profile(profile.user_id, profile_to_document(updated), merge=True)
    logger.info('Saved availability profile %s (%d slots).', saved.user_id, len(saved.slots))
    return saved


async def save_slot(
    store: 'ProfileStore',
    user_id: str,
    slot_input: Any,
    *,
    owner: Any = None,
    strategies: Sequence[LocationStrategy] | None = None,
    now: datetime | None = None,
) -> Profile:
    """Validate, geo-resolve and upsert one slot into the user's profile.

    Raises:
        SlotValidationError: The slot's end time is not after its start time.
    """
    record = dict(as_mapping(slot_input))
    validate_slot_times(record)

    profile = _load_for_update(store, user_id, owner)
    default_radius = profile.preferences.default_radius_miles
    now = now or datetime.now(timezone.utc)

    record['location'] = await resolve_location(
        record.get('location'),
        strategies=strategies,
        default_radius=default_radius,
    )
    slot = normalize_slot(record, default_radius, now=now)

    slots = list(profile.slots)
    for index, existing in enumerate(slots):
        if existing.id == slot.id:
            slots[index] = slot.model_copy(update={'created_at': existing.created_at})
            break
    else:
        slots.append(slot)

    return _write(store, profile.model_copy(update={'slots': slots}), now)


def delete_slot(store: 'ProfileStore', user_id: str, slot_id: str | None, *, owner: Any = None) -> Profile | None:
    if not slot_id:
        return store.get_profile(user_id)

    profile = _load_for_update(store, user_id, owner)
    slots = [slot for slot in profile.slots if slot.id != slot_id]
    return _write(store, profile.model_copy(update={'slots': slots}))


def set_looking_for_matches(store: 'ProfileStore', user_id: str, is_looking: Any, *, owner: Any = None) -> Profile:
    profile = _load_for_update(store, user_id, owner)
    return _write(store, profile.model_copy(update={'is_looking': bool(is_looking)}))


def set_default_radius(store: 'ProfileStore', user_id: str, radius_miles: Any, *, owner: Any = None) -> Profile:
    profile = _load_for_update(store, user_id, owner)
    preferences = Preferences(default_radius_miles=coerce_radius(radius_miles, config.DEFAULT_RADIUS_MILES))
    return _write(store, profile.model_copy(update={'preferences': preferences}))
