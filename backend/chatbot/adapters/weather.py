"""Weather tool using Nominatim geocoding and the Open-Meteo API (both keyless)."""

import logging
from typing import Any

import httpx

from backend.chatbot.config import Settings, get_settings

logger = logging.getLogger(__name__)


async def geocode(
    location: str,
    settings: Settings,
    client: httpx.AsyncClient,
) -> dict[str, float] | None:
    """Resolve a place name to coordinates.

    Returns:
        ``{"latitude": ..., "longitude": ...}`` or None when nothing matched
    """
    response = await client.get(
        settings.geocode_url,
        params={"q": location, "format": "json", "limit": 1},
        headers={"User-Agent": settings.weather_user_agent},
    )
    response.raise_for_status()
    data = response.json()

    if not data:
        return None

    coords = {"latitude": float(data[0]["lat"]), "longitude": float(data[0]["lon"])}
    logger.info("Geocoded coordinates", extra={"structured": {"location": location, **coords}})
    return coords


async def get_weather(
    location: str,
    latitude: float | None = None,
    longitude: float | None = None,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Get the current weather at a location.

    Args:
        location: Place name, e.g. "London, UK"
        latitude: Exact latitude, if known
        longitude: Exact longitude, if known
        client: Optional httpx client (for testing with mocks)
        settings: Optional settings override

    Returns:
        The Open-Meteo payload plus ``location`` and ``coordinates``, or
        ``{"error": ...}`` when the location cannot be geocoded

    Raises:
        httpx.HTTPError: On network or HTTP errors
    """
    settings = settings or get_settings()

    close_client = False
    if client is None:
        client = httpx.AsyncClient(timeout=settings.weather_timeout_s)
        close_client = True

    try:
        # Coordinates are used only when both are given
        if latitude is None or longitude is None:
            coords = await geocode(location, settings, client)
            if coords is None:
                return {"error": f"Could not find coordinates for location: {location}"}
        else:
            coords = {"latitude": latitude, "longitude": longitude}

        # Docs: https://open-meteo.com/en/docs
        response = await client.get(
            settings.forecast_url,
            params={
                "latitude": coords["latitude"],
                "longitude": coords["longitude"],
                "current": "temperature_2m",
                "hourly": "temperature_2m",
                "daily": "sunrise,sunset",
                "timezone": "auto",
            },
        )
        response.raise_for_status()

        return {**response.json(), "location": location, "coordinates": coords}
    finally:
        if close_client:
            await client.aclose()
