# src/core/geo/service.py
"""
Geo helpers.
Great-circle distance and address geocoding through Nominatim.
"""

from __future__ import annotations

import math
from typing import Protocol

import httpx

from src.common.constants import TypeMsg
from src.common.exceptions import GeocodingFailed
from src.common.logger import log_error, log_info
from src.shared.models.request import LocationDTO


EARTH_RADIUS_KM = 6371.0


class HasCoordinates(Protocol):
    lat: float
    lng: float


def distance_km(a: HasCoordinates, b: HasCoordinates) -> float:
    """
    Haversine distance between two points in km.
    Symmetric, zero for identical points.
    """
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)

    h = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2)

    # clamp against float drift for antipodal points
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def service_hub() -> LocationDTO:
    """Hub every request distance is priced from."""
    from src.config import settings
    return LocationDTO(
        address="service hub",
        lat=settings.fares.SERVICE_HUB_LAT,
        lng=settings.fares.SERVICE_HUB_LNG,
    )


class GeocodingClient:
    """
    Forward geocoding (address -> coordinates) via Nominatim.

    Zero results, HTTP errors and timeouts raise GeocodingFailed, the caller
    asks the customer for coordinates or to retry.
    """

    def __init__(
        self,
        url: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            url: Nominatim search endpoint (config if None)
            user_agent: User-Agent header, required by Nominatim's usage policy
            timeout: Request timeout in seconds
            client: Preconfigured httpx client (tests)
        """
        if url is None or user_agent is None or timeout is None:
            from src.config import settings
            url = url or settings.geocoding.GEOCODING_URL
            user_agent = user_agent or settings.geocoding.GEOCODING_USER_AGENT
            timeout = timeout if timeout is not None else settings.geocoding.GEOCODING_TIMEOUT

        self._url = url
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def geocode(self, address: str) -> LocationDTO:
        """
        Resolves a free-text address.

        Raises:
            GeocodingFailed: no result, HTTP error or timeout
        """
        if not address or not address.strip():
            raise GeocodingFailed("Address is empty", address=address)

        try:
            response = await self._client.get(
                self._url,
                params={"format": "json", "q": address, "limit": 1},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            await log_error(f"Geocoding timed out for '{address}': {e}")
            raise GeocodingFailed("Geocoding timed out, supply coordinates or retry", address=address) from e
        except (httpx.HTTPError, ValueError) as e:
            await log_error(f"Geocoding error for '{address}': {e}")
            raise GeocodingFailed("Geocoding service error, supply coordinates or retry", address=address) from e

        if not data:
            await log_info(f"No geocoding results for: {address}", type_msg=TypeMsg.WARNING)
            raise GeocodingFailed("No results found for this address", address=address)

        first = data[0]
        try:
            return LocationDTO(
                address=first.get("display_name", address),
                lat=float(first["lat"]),
                lng=float(first["lon"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodingFailed("Malformed geocoding result", address=address) from e
