from __future__ import annotations

import asyncio
from typing import List, Optional

from geopy.exc import GeopyError
from geopy.geocoders import GoogleV3, Nominatim
from geopy.geocoders.base import Geocoder as GeocoderProvider

from src.geo.domain.repositories import Geocoder
from src.geo.domain.value_objects import Coordinate
from src.shared.exceptions import InvalidCoordinate
from src.shared.logging import get_logger

logger = get_logger(__name__)


class GeopyGeocoder(Geocoder):
    """
    OpenStreetMap Nominatim first, Google as a fallback when an API key is set.

    geopy's geocoders are blocking, so each lookup runs in a worker thread.
    Every failure mode ends in None; callers decide what a missing
    location means for them.
    """

    def __init__(
        self,
        *,
        user_agent: str,
        timeout: float = 5.0,
        google_api_key: Optional[str] = None,
    ) -> None:
        self._providers: List[GeocoderProvider] = [Nominatim(user_agent=user_agent, timeout=timeout)]
        if google_api_key:
            self._providers.append(GoogleV3(api_key=google_api_key, timeout=timeout))

    async def geocode(self, address: str) -> Optional[Coordinate]:
        query = (address or "").strip()
        if not query:
            return None
        for provider in self._providers:
            name = type(provider).__name__
            try:
                location = await asyncio.to_thread(provider.geocode, query, exactly_one=True)
            except GeopyError as e:
                logger.warning("geocode_provider_failed", provider=name, error=str(e))
                continue
            if location is None:
                logger.info("geocode_no_match", provider=name)
                continue
            try:
                return Coordinate(location.latitude, location.longitude)
            except InvalidCoordinate:
                logger.warning("geocode_bad_coordinate", provider=name)
        return None
