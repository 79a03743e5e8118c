from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Protocol

import httpx
import reverse_geocode

from qmedia.config import GeoConfig
from qmedia.errors import ExtractionError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Place:
    city: str = ""
    province: str = ""
    country: str = ""


class Geocoder(Protocol):
    def lookup(self, latitude: float, longitude: float) -> Place: ...


def format_location(place: Place) -> str:
    """Compose "<city>, <province> <country>", dropping empty parts."""
    city = place.city.strip()
    province = place.province.strip()
    if not city and province:
        city = f"{province},"
    elif city and province:
        city = f"{city}, {province},"
    elif city and place.country:
        city = f"{city},"
    return f"{city} {place.country.strip()}".strip().rstrip(",")


class OfflineGeocoder:
    """Nearest-city lookup against the bundled reverse_geocode dataset."""

    def lookup(self, latitude: float, longitude: float) -> Place:
        result = reverse_geocode.get((latitude, longitude))
        return Place(
            city=str(result.get("city") or ""),
            province=str(result.get("state") or ""),
            country=str(result.get("country") or ""),
        )


class RemoteGeocoder:
    def __init__(self, base_url: str, timeout: float = 10.0, client: httpx.Client | None = None):
        self._http = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    def lookup(self, latitude: float, longitude: float) -> Place:
        try:
            resp = self._http.get("/", params={"lon": longitude, "lat": latitude})
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ExtractionError(f"location service failed for ({latitude}, {longitude}): {exc}") from exc
        if not isinstance(data, dict):
            return Place()

        def pick(*keys: str) -> str:
            for key in keys:
                value = data.get(key)
                if value:
                    return str(value)
            return ""

        return Place(
            city=pick("City", "city"),
            province=pick("Province", "province", "state"),
            country=pick("Country", "country"),
        )

    def close(self) -> None:
        self._http.close()


def geocoder_from_config(cfg: GeoConfig) -> Geocoder | None:
    if not cfg.enabled:
        return None
    if cfg.location_service:
        logger.info("using location service %s", cfg.location_service)
        return RemoteGeocoder(cfg.location_service)
    return OfflineGeocoder()


def resolve_location(geocoder: Geocoder | None, latitude: float, longitude: float) -> str:
    if geocoder is None or latitude == 0 or longitude == 0:
        return ""
    return format_location(geocoder.lookup(latitude, longitude))
