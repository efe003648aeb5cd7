"""Tiered resolution of raw location references into coordinates and a label.

Each tier is a strategy with an async ``resolve(request)`` that returns a
resolved :class:`Location` or ``None`` to defer to the next tier. The first
tier to answer wins; when none does, the location is saved unresolved so a
user is never blocked on geocoding.
"""

import asyncio
import logging
import re
from collections.abc import Callable, Sequence
from typing import Any, Protocol

from pydantic import ValidationError

from availability_backend.core import config
from availability_backend.schemas.availability import Location
from availability_backend.services.geocoding import (
    GeocodeResult,
    Geocoder,
    NominatimGeocoder,
    PostalCodeRecord,
    get_coordinates_for_postal_code,
)
from availability_backend.services.slot_normalizer import normalize_location

logger = logging.getLogger(__name__)

POSTAL_CODE_PATTERN = re.compile(r'\d{5}')
UNKNOWN_AREA_LABEL = 'Unknown area'


class LocationStrategy(Protocol):
    async def resolve(self, request: Location) -> Location | None:
        ...


def is_postal_code(value: str) -> bool:
    return bool(POSTAL_CODE_PATTERN.fullmatch(value or ''))


def _build_location(
    request: Location,
    *,
    lat: float | None,
    lng: float | None,
    label: str = '',
    postal_code: str = '',
) -> Location:
    # Caller-supplied label and postal code take precedence over tier results.
    query = request.query or label or postal_code
    return Location(
        query=query,
        label=request.label or label or query or request.postal_code or UNKNOWN_AREA_LABEL,
        postal_code=request.postal_code or postal_code,
        lat=lat,
        lng=lng,
        radius_miles=request.radius_miles,
    )


class KnownCoordinatesStrategy:
    async def resolve(self, request: Location) -> Location | None:
        if not request.has_coordinates:
            return None
        return _build_location(request, lat=request.lat, lng=request.lng)


class PostalCodeStrategy:
    def __init__(self, lookup: Callable[[str], PostalCodeRecord | None] = get_coordinates_for_postal_code) -> None:
        self.lookup = lookup

    async def resolve(self, request: Location) -> Location | None:
        if not is_postal_code(request.query):
            return None

        record = self.lookup(request.query)
        if record is None:
            return None

        label = ', '.join(part for part in (record.city, record.state) if part)
        location = _build_location(request, lat=record.lat, lng=record.lng, label=label)
        # The matched table entry is authoritative for the postal code.
        return location.model_copy(update={'postal_code': request.query})


class GeocodingStrategy:
    def __init__(self, geocoder: Geocoder, *, timeout: float = config.GEOCODER_TIMEOUT_SECONDS) -> None:
        self.geocoder = geocoder
        self.timeout = timeout

    async def resolve(self, request: Location) -> Location | None:
        if not request.query:
            return None

        try:
            results = await asyncio.wait_for(self.geocoder.geocode(request.query), timeout=self.timeout)
        except Exception:
            logger.warning('Geocoding failed for %r; location left unresolved.', request.query, exc_info=True)
            return None

        if not results:
            logger.warning('Geocoding returned no results for %r.', request.query)
            return None

        primary = results[0]
        if not isinstance(primary, GeocodeResult):
            try:
                primary = GeocodeResult.model_validate(primary)
            except ValidationError:
                logger.warning('Geocoding returned an unusable result for %r.', request.query, exc_info=True)
                return None
        if primary.lat is None or primary.lng is None:
            return None

        name_parts = [
            part for part in (primary.name, primary.city, primary.region, primary.iso_country_code) if part
        ]
        return _build_location(
            request,
            lat=primary.lat,
            lng=primary.lng,
            label=', '.join(name_parts) or request.query,
            postal_code=primary.postal_code or (request.query if is_postal_code(request.query) else ''),
        )


def default_strategies() -> list[LocationStrategy]:
    strategies: list[LocationStrategy] = [KnownCoordinatesStrategy(), PostalCodeStrategy()]
    if config.GEOCODING_ENABLED:
        strategies.append(GeocodingStrategy(NominatimGeocoder()))
    return strategies


async def resolve_location(
    raw_location: Any = None,
    *,
    strategies: Sequence[LocationStrategy] | None = None,
    default_radius: Any = None,
) -> Location:
    request = normalize_location(raw_location, default_radius)

    if strategies is None:
        strategies = default_strategies()

    for strategy in strategies:
        location = await strategy.resolve(request)
        if location is not None:
            return location

    return _build_location(request, lat=None, lng=None)
