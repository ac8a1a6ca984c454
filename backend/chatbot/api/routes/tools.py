"""Tool endpoints callable outside a chat."""

from collections.abc import AsyncGenerator
from typing import Annotated, Any

import httpx
from fastapi import APIRouter, Depends, Query

from backend.chatbot.adapters.weather import get_weather
from backend.chatbot.config import Settings, get_settings

router = APIRouter(prefix="/tools", tags=["tools"])


async def get_http_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """FastAPI dependency for the outbound HTTP client."""
    async with httpx.AsyncClient(timeout=settings.weather_timeout_s) as client:
        yield client


@router.get("/weather")
async def weather(
    location: Annotated[str, Query(min_length=1, description='e.g. "London, UK"')],
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    settings: Annotated[Settings, Depends(get_settings)],
    latitude: Annotated[float | None, Query(ge=-90, le=90)] = None,
    longitude: Annotated[float | None, Query(ge=-180, le=180)] = None,
) -> dict[str, Any]:
    """Get the current weather at a location or at exact coordinates."""
    return await get_weather(
        location, latitude=latitude, longitude=longitude, client=client, settings=settings
    )
