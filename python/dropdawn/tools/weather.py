"""Current weather via wttr.in."""

from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field

from dropdawn.logging import get_logger
from dropdawn.tools.base import Tool, ToolContext

logger = get_logger(__name__)

WTTR_URL = "https://wttr.in/{location}"


class WeatherParams(BaseModel):
    location: str = Field(
        ..., min_length=1, description='The name of the city and country (e.g., "London, UK")'
    )


async def get_weather(params: WeatherParams, ctx: ToolContext) -> dict:
    url = WTTR_URL.format(location=quote(params.location, safe=""))
    try:
        response = await ctx.http_client.get(
            url, params={"format": "j1"}, timeout=httpx.Timeout(15.0, connect=5.0)
        )
        response.raise_for_status()
        current = response.json()["current_condition"][0]
        return {
            "location": params.location,
            "temperature": f"{current['temp_C']}°C / {current['temp_F']}°F",
            "condition": current["weatherDesc"][0]["value"],
            "humidity": f"{current['humidity']}%",
            "wind": f"{current['windspeedKmph']} km/h",
        }
    except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
        logger.warning("tool.weather.failed", error_type=type(e).__name__)
        return {"error": "Failed to fetch weather data"}


WEATHER_TOOL = Tool(
    name="weather",
    description="Get the current weather for a specific location.",
    params_model=WeatherParams,
    handler=get_weather,
)
