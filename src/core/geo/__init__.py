# src/core/geo/__init__.py
"""
Geo helpers: haversine distance and Nominatim geocoding.
"""

from src.core.geo.service import GeocodingClient, distance_km, service_hub

__all__ = [
    "GeocodingClient",
    "distance_km",
    "service_hub",
]
