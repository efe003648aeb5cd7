"""Postal-code table and geocoding provider used by the location resolver."""

import logging
from typing import Any, Protocol

import httpx
import zipcodes
from pydantic import BaseModel, field_validator

from availability_backend.core import config
from availability_backend.schemas.availability import CamelModel

logger = logging.getLogger(__name__)


class PostalCodeRecord(BaseModel):
    lat: float
    lng: float
    city: str = ''
    state: str = ''


class GeocodeResult(CamelModel):
    lat: float | None = None
    lng: float | None = None
    name: str = ''
    city: str = ''
    region: str = ''
    postal_code: str = ''
    iso_country_code: str = ''

    @field_validator('name', 'city', 'region', 'postal_code', 'iso_country_code', mode='before')
    @classmethod
    def blank_missing_text(cls, value: Any) -> Any:
        return '' if value is None else value


class Geocoder(Protocol):
    async def geocode(self, query: str) -> list[GeocodeResult]:
        ...


def get_coordinates_for_postal_code(code: str) -> PostalCodeRecord | None:
    """Look up a five-digit US postal code in the bundled ``zipcodes`` table."""
    try:
        records = zipcodes.matching(code)
    except (TypeError, ValueError):
        return None

    for record in records:
        try:
            return PostalCodeRecord(
                lat=float(record['lat']),
                lng=float(record['long']),
                city=record.get('city') or '',
                state=record.get('state') or '',
            )
        except (KeyError, TypeError, ValueError):
            continue

    return None


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_nominatim_item(item: dict) -> GeocodeResult:
    address = item.get('address') or {}
    city = (
        address.get('city')
        or address.get('town')
        or address.get('village')
        or address.get('hamlet')
        or ''
    )
    return GeocodeResult(
        lat=_to_float(item.get('lat')),
        lng=_to_float(item.get('lon')),
        name=item.get('name') or '',
        city=city,
        region=address.get('state') or address.get('county') or '',
        postal_code=address.get('postcode') or '',
        iso_country_code=(address.get('country_code') or '').upper(),
    )


class NominatimGeocoder:
    """Free-text geocoding against a Nominatim-compatible search endpoint."""

    def __init__(
        self,
        base_url: str = config.GEOCODER_URL,
        *,
        user_agent: str = config.GEOCODER_USER_AGENT,
        timeout: float = config.GEOCODER_TIMEOUT_SECONDS,
        limit: int = config.GEOCODER_RESULT_LIMIT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.user_agent = user_agent
        self.timeout = timeout
        self.limit = limit
        self.transport = transport

    async def geocode(self, query: str) -> list[GeocodeResult]:
        params = {
            'q': query,
            'format': 'jsonv2',
            'addressdetails': 1,
            'limit': self.limit,
        }
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={'User-Agent': self.user_agent},
            transport=self.transport,
        ) as client:
            response = await client.get(self.base_url, params=params)
            response.raise_for_status()
            payload = response.json()

        if not isinstance(payload, list):
            logger.warning('Unexpected geocoder payload for %r: %s', query, type(payload).__name__)
            return []

        return [parse_nominatim_item(item) for item in payload if isinstance(item, dict)]
