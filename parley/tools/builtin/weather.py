"""Current weather via Open-Meteo (geocoding, then current conditions)."""

import json
from typing import Any

import httpx

from parley.config.logging import get_logger
from parley.tools.base import BuiltinTool, ToolContext, ToolHandler, require_str

logger = get_logger(__name__)

GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,weather_code,wind_speed_10m"


class WeatherTool(ToolHandler):
    tool = BuiltinTool.GET_WEATHER
    description = "Get current weather for a location."
    parameters = {
        "type": "object",
        "properties": {
            "location": {"type": "string", "description": "City name, e.g. 'London' or 'Cairo'"}
        },
        "required": ["location"],
    }

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def call(self, arguments: dict[str, Any], context: ToolContext) -> str:
        location = require_str(arguments, "location")

        geo = await self._client.get(
            GEOCODING_URL, params={"name": location, "count": 1, "language": "en", "format": "json"}
        )
        geo.raise_for_status()
        places = geo.json().get("results") or []
        if not places:
            return "Location not found."
        place = places[0]

        forecast = await self._client.get(
            FORECAST_URL,
            params={
                "latitude": place["latitude"],
                "longitude": place["longitude"],
                "current": CURRENT_FIELDS,
            },
        )
        forecast.raise_for_status()
        current = forecast.json().get("current", {})

        return json.dumps({
            "location": place.get("name", location),
            "country": place.get("country"),
            "temperature": current.get("temperature_2m"),
            "humidity": current.get("relative_humidity_2m"),
            "weather_code": current.get("weather_code"),
            "wind_speed": current.get("wind_speed_10m"),
        })
