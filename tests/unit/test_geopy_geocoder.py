from types import SimpleNamespace

from geopy.exc import GeocoderTimedOut

from src.geo.domain.value_objects import Coordinate
from src.geo.infrastructure.geocoder import GeopyGeocoder


class FakeProvider:
    def __init__(self, result=None, error=None):
        self.result, self.error, self.queries = result, error, []

    def geocode(self, query, exactly_one=True):
        self.queries.append(query)
        if self.error:
            raise self.error
        return self.result


def geocoder_with(*providers) -> GeopyGeocoder:
    g = GeopyGeocoder(user_agent="bloodlink-tests")
    g._providers = list(providers)
    return g


async def test_first_provider_hit_wins():
    first = FakeProvider(SimpleNamespace(latitude=12.97, longitude=77.59))
    second = FakeProvider(SimpleNamespace(latitude=0, longitude=0))

    assert await geocoder_with(first, second).geocode(" MG Road ") == Coordinate(12.97, 77.59)
    assert first.queries == ["MG Road"]
    assert second.queries == []


async def test_falls_back_after_timeout_or_miss():
    timed_out = FakeProvider(error=GeocoderTimedOut("slow"))
    miss = FakeProvider(None)
    hit = FakeProvider(SimpleNamespace(latitude=13.0, longitude=77.6))

    assert await geocoder_with(timed_out, miss, hit).geocode("Koramangala") == Coordinate(13.0, 77.6)


async def test_nothing_resolves_to_none():
    bogus = FakeProvider(SimpleNamespace(latitude=123.0, longitude=0.0))
    assert await geocoder_with(FakeProvider(None), bogus).geocode("Atlantis") is None
    assert await geocoder_with(FakeProvider(None)).geocode("   ") is None
