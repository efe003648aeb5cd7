"""Overlap detection, mutual-radius proximity and match aggregation.

Everything here is a pure function of the profiles passed in, so it can be
re-run on every snapshot the profile feed delivers.
"""

import math
from collections.abc import Iterable
from typing import NamedTuple

from availability_backend.schemas.availability import Location, MatchGroup, Overlap, Profile, Slot
from availability_backend.services.slot_normalizer import day_sort_index, time_to_minutes

EARTH_RADIUS_MILES = 3958.8


class Proximity(NamedTuple):
    qualifies: bool
    distance_miles: float | None


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def slots_overlap(slot_a: Slot, slot_b: Slot) -> bool:
    if slot_a.day != slot_b.day:
        return False

    start_a = time_to_minutes(slot_a.start_time)
    end_a = time_to_minutes(slot_a.end_time)
    start_b = time_to_minutes(slot_b.start_time)
    end_b = time_to_minutes(slot_b.end_time)

    if None in (start_a, end_a, start_b, end_b):
        return False
    # A stored slot with an inverted range must never match anything.
    if end_a <= start_a or end_b <= start_b:
        return False

    return start_a < end_b and start_b < end_a


def check_proximity(location_a: Location, location_b: Location) -> Proximity:
    """Decide whether two locations fall inside each other's radius.

    With coordinates on both sides the haversine distance must be within
    *both* radii. Without coordinates on either side, an identical non-empty
    postal code qualifies with an unknown distance. Any other combination
    does not qualify.
    """
    if location_a.has_coordinates and location_b.has_coordinates:
        distance = haversine_miles(location_a.lat, location_a.lng, location_b.lat, location_b.lng)
        qualifies = distance <= location_a.radius_miles and distance <= location_b.radius_miles
        return Proximity(qualifies, distance)

    if (
        not location_a.has_coordinates
        and not location_b.has_coordinates
        and location_a.postal_code
        and location_a.postal_code == location_b.postal_code
    ):
        return Proximity(True, None)

    return Proximity(False, None)


def within_mutual_radius(location_a: Location, location_b: Location) -> bool:
    return check_proximity(location_a, location_b).qualifies


def _overlap_sort_key(overlap: Overlap) -> tuple[int, int]:
    return (
        day_sort_index(overlap.my_slot.day),
        time_to_minutes(overlap.my_slot.start_time) or 0,
    )


def compute_matches(my_profile: Profile | None, other_profiles: Iterable[Profile]) -> list[MatchGroup]:
    """Group every time- and space-compatible slot pair by counterpart user.

    Counterparts that are not looking, and the querying user's own profile,
    are skipped. Groups keep first-encountered order; overlaps inside a group
    are ordered Monday first, then by the start of my slot.
    """
    if my_profile is None or not my_profile.slots:
        return []

    other_profiles = list(other_profiles)
    groups: dict[str, MatchGroup] = {}

    for my_slot in my_profile.slots:
        for profile in other_profiles:
            if not profile.is_looking or profile.user_id == my_profile.user_id:
                continue

            for other_slot in profile.slots:
                if not slots_overlap(my_slot, other_slot):
                    continue

                proximity = check_proximity(my_slot.location, other_slot.location)
                if not proximity.qualifies:
                    continue

                overlap = Overlap(
                    user_id=profile.user_id,
                    owner=profile.owner,
                    my_slot=my_slot,
                    other_slot=other_slot,
                    distance_miles=proximity.distance_miles,
                )
                group = groups.get(profile.user_id)
                if group is None:
                    groups[profile.user_id] = MatchGroup(
                        user_id=profile.user_id,
                        owner=profile.owner,
                        overlaps=[overlap],
                    )
                else:
                    group.overlaps.append(overlap)

    for group in groups.values():
        group.overlaps.sort(key=_overlap_sort_key)

    return list(groups.values())


def matches_for_user(snapshot: Iterable[Profile], user_id: str) -> list[MatchGroup]:
    profiles = list(snapshot)
    my_profile = next((profile for profile in profiles if profile.user_id == user_id), None)
    other_profiles = [profile for profile in profiles if profile.user_id != user_id]
    return compute_matches(my_profile, other_profiles)
