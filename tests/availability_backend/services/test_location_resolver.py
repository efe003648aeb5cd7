import asyncio

import httpx
import pytest

from availability_backend.services.geocoding import (
    GeocodeResult,
    NominatimGeocoder,
    PostalCodeRecord,
    get_coordinates_for_postal_code,
)
from availability_backend.services.location_resolver import (
    GeocodingStrategy,
    KnownCoordinatesStrategy,
    PostalCodeStrategy,
    resolve_location,
)


class _RecordingGeocoder:
    def __init__(self, results=None, error: Exception | None = None):
        self.results = results or []
        self.error = error
        self.queries: list[str] = []

    async def geocode(self, query: str):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.results


class _SlowGeocoder:
    async def geocode(self, query: str):
        await asyncio.sleep(5)
        return [GeocodeResult(lat=1.0, lng=1.0)]


def _lookup_bellingham(code: str) -> PostalCodeRecord | None:
    if code == '98225':
        return PostalCodeRecord(lat=48.75, lng=-122.48, city='Bellingham', state='WA')
    return None


def _strategies(geocoder, lookup=_lookup_bellingham, timeout: float = 1.0):
    return [
        KnownCoordinatesStrategy(),
        PostalCodeStrategy(lookup=lookup),
        GeocodingStrategy(geocoder, timeout=timeout),
    ]


def test_resolve_location_keeps_known_coordinates_without_network_calls() -> None:
    geocoder = _RecordingGeocoder()

    location = asyncio.run(
        resolve_location(
            {'query': 'Home', 'lat': 47.0, 'lng': -122.0, 'radiusMiles': 8},
            strategies=_strategies(geocoder),
        )
    )

    assert (location.lat, location.lng) == (47.0, -122.0)
    assert location.label == 'Home'
    assert location.radius_miles == 8
    assert geocoder.queries == []


def test_resolve_location_uses_postal_code_table_for_five_digit_query() -> None:
    geocoder = _RecordingGeocoder()

    location = asyncio.run(resolve_location({'query': '98225'}, strategies=_strategies(geocoder)))

    assert (location.lat, location.lng) == (48.75, -122.48)
    assert location.label == 'Bellingham, WA'
    assert location.postal_code == '98225'
    assert geocoder.queries == []


def test_resolve_location_takes_postal_code_from_matched_table_entry() -> None:
    location = asyncio.run(
        resolve_location({'query': '98225', 'postalCode': '10001'}, strategies=_strategies(_RecordingGeocoder()))
    )

    assert location.postal_code == '98225'
    assert location.label == 'Bellingham, WA'


def test_resolve_location_falls_through_to_geocoder_on_postal_code_miss() -> None:
    geocoder = _RecordingGeocoder(
        results=[GeocodeResult(lat=40.0, lng=-75.0, city='Somewhere', region='PA', postal_code='19000')]
    )

    location = asyncio.run(resolve_location({'query': '19000'}, strategies=_strategies(geocoder)))

    assert geocoder.queries == ['19000']
    assert (location.lat, location.lng) == (40.0, -75.0)
    assert location.postal_code == '19000'


def test_resolve_location_builds_label_from_first_geocoder_result() -> None:
    geocoder = _RecordingGeocoder(
        results=[
            GeocodeResult(
                lat=47.61,
                lng=-122.33,
                name='Pike Place Market',
                city='Seattle',
                region='Washington',
                postal_code='98101',
                iso_country_code='US',
            ),
            GeocodeResult(lat=0.0, lng=0.0, name='Ignored'),
        ]
    )

    location = asyncio.run(
        resolve_location({'query': 'pike place', 'radiusMiles': 3}, strategies=_strategies(geocoder))
    )

    assert location.label == 'Pike Place Market, Seattle, Washington, US'
    assert location.query == 'pike place'
    assert location.postal_code == '98101'
    assert (location.lat, location.lng) == (47.61, -122.33)
    assert location.radius_miles == 3


def test_resolve_location_accepts_plain_geocoder_dicts() -> None:
    geocoder = _RecordingGeocoder(
        results=[{'lat': 45.5, 'lng': -122.6, 'city': 'Portland', 'region': 'OR', 'isoCountryCode': 'US'}]
    )

    location = asyncio.run(resolve_location({'query': 'portland'}, strategies=_strategies(geocoder)))

    assert location.label == 'Portland, OR, US'


def test_resolve_location_prefers_caller_label() -> None:
    geocoder = _RecordingGeocoder(results=[GeocodeResult(lat=45.5, lng=-122.6, city='Portland')])

    location = asyncio.run(
        resolve_location({'query': 'portland', 'label': 'Game store'}, strategies=_strategies(geocoder))
    )

    assert location.label == 'Game store'


def test_resolve_location_degrades_when_geocoder_raises() -> None:
    geocoder = _RecordingGeocoder(error=RuntimeError('provider down'))

    location = asyncio.run(resolve_location({'query': '???'}, strategies=_strategies(geocoder)))

    assert location.lat is None
    assert location.lng is None
    assert location.label == '???'
    assert location.query == '???'
    assert location.radius_miles == 5


@pytest.mark.parametrize('results', [[], [GeocodeResult(name='No coordinates')]])
def test_resolve_location_degrades_when_geocoder_has_nothing_usable(results) -> None:
    geocoder = _RecordingGeocoder(results=results)

    location = asyncio.run(resolve_location({'query': 'nowhere'}, strategies=_strategies(geocoder)))

    assert (location.lat, location.lng) == (None, None)
    assert location.label == 'nowhere'


@pytest.mark.parametrize(
    'results',
    [
        [{'lat': 'n/a', 'lng': -122.6}],
        ['garbage'],
        [{'lat': 45.5, 'lng': -122.6, 'city': ['Portland']}],
    ],
)
def test_resolve_location_degrades_when_geocoder_result_is_malformed(results) -> None:
    geocoder = _RecordingGeocoder(results=results)

    location = asyncio.run(resolve_location({'query': 'portland'}, strategies=_strategies(geocoder)))

    assert (location.lat, location.lng) == (None, None)
    assert location.label == 'portland'


def test_resolve_location_ignores_missing_geocoder_name() -> None:
    geocoder = _RecordingGeocoder(results=[{'lat': 45.5, 'lng': -122.6, 'name': None, 'city': 'Portland'}])

    location = asyncio.run(resolve_location({'query': 'portland'}, strategies=_strategies(geocoder)))

    assert (location.lat, location.lng) == (45.5, -122.6)
    assert location.label == 'Portland'


def test_resolve_location_times_out_slow_geocoder() -> None:
    location = asyncio.run(
        resolve_location({'query': 'slow town'}, strategies=_strategies(_SlowGeocoder(), timeout=0.01))
    )

    assert location.lat is None
    assert location.label == 'slow town'


def test_resolve_location_labels_empty_input_as_unknown_area() -> None:
    location = asyncio.run(resolve_location(None, strategies=_strategies(_RecordingGeocoder())))

    assert location.label == 'Unknown area'
    assert location.query == ''


def test_resolve_location_applies_default_radius() -> None:
    location = asyncio.run(resolve_location({'query': 'x'}, strategies=[], default_radius=25))

    assert location.radius_miles == 25


def test_get_coordinates_for_postal_code_reads_zipcodes_table() -> None:
    record = get_coordinates_for_postal_code('98225')

    assert record is not None
    assert record.city == 'Bellingham'
    assert record.state == 'WA'
    assert 48 < record.lat < 49
    assert -123 < record.lng < -122


@pytest.mark.parametrize('code', ['abcde', '00000'])
def test_get_coordinates_for_postal_code_returns_none_for_unknown_codes(code: str) -> None:
    assert get_coordinates_for_postal_code(code) is None


def test_nominatim_geocoder_parses_search_results() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured['params'] = dict(request.url.params)
        captured['user_agent'] = request.headers['user-agent']
        return httpx.Response(
            200,
            json=[
                {
                    'lat': '48.7519',
                    'lon': '-122.4787',
                    'name': 'Bellingham',
                    'address': {
                        'city': 'Bellingham',
                        'state': 'Washington',
                        'postcode': '98225',
                        'country_code': 'us',
                    },
                }
            ],
        )

    geocoder = NominatimGeocoder(
        'https://geocoder.test/search',
        user_agent='availability-tests',
        transport=httpx.MockTransport(handler),
    )

    results = asyncio.run(geocoder.geocode('Bellingham'))

    assert captured['params']['q'] == 'Bellingham'
    assert captured['params']['format'] == 'jsonv2'
    assert captured['user_agent'] == 'availability-tests'
    assert results == [
        GeocodeResult(
            lat=48.7519,
            lng=-122.4787,
            name='Bellingham',
            city='Bellingham',
            region='Washington',
            postal_code='98225',
            iso_country_code='US',
        )
    ]


def test_nominatim_geocoder_raises_on_http_error() -> None:
    geocoder = NominatimGeocoder(
        'https://geocoder.test/search',
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(geocoder.geocode('anywhere'))
