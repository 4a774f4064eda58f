"""
Weather Plugin - Current conditions for a city from OpenWeather.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from .base import Plugin, PluginResult

logger = logging.getLogger(__name__)


class WeatherPlugin(Plugin):
    """/weather <city>"""

    name = "weather"
    description = "Fetches current weather for a city. Usage: /weather [city]"
    trigger = re.compile(r"^/weather\s+(.+)", re.IGNORECASE)
    loading_message = "Fetching weather..."

    API_URL = "https://api.openweathermap.org/data/2.5/weather"
    ICON_URL = "https://openweathermap.org/img/wn/{icon}@2x.png"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 10.0):
        """
        Args:
            api_key: OpenWeather API key; without it every call is a reported failure
            timeout: HTTP timeout in seconds
        """
        self.api_key = api_key
        self.timeout = timeout

    async def execute(self, args: List[str]) -> PluginResult:
        city = args[0] if args else ""
        if not city:
            return PluginResult.fail("Please provide a valid city name.")

        if not self.api_key:
            logger.error("OpenWeather API key is not set")
            return PluginResult.fail("Weather service is currently unavailable (key not set).")

        params = {"q": city, "appid": self.api_key, "units": "metric"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self.API_URL, params=params)
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Weather request for '{city}' failed: {e}")
            return PluginResult.fail(
                "Failed to fetch weather data. Check your connection or the city name."
            )

        if not isinstance(data, dict):
            logger.error(f"Unexpected weather payload type for '{city}': {type(data).__name__}")
            return PluginResult.fail("Received an unexpected response from the weather service.")

        # OpenWeather reports "cod" as int or str depending on the endpoint
        if resp.status_code != 200 or str(data.get("cod", 200)) != "200":
            logger.warning(f"Weather provider rejected '{city}': status={resp.status_code}")
            return PluginResult.fail(data.get("message") or f"Could not find weather for {city}")

        try:
            weather = {
                "city": data["name"],
                "country": data.get("sys", {}).get("country"),
                "temp": data["main"]["temp"],
                "description": data["weather"][0]["description"],
                "icon": data["weather"][0].get("icon"),
                "humidity": data["main"].get("humidity"),
                "wind_speed": data.get("wind", {}).get("speed"),
            }
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"Unexpected weather payload for '{city}': {e}")
            return PluginResult.fail("Received an unexpected response from the weather service.")

        return PluginResult.ok(
            display_text=(
                f"Weather in {weather['city']}: {weather['temp']}°C, {weather['description']}."
            ),
            data=weather,
        )

    def render_result(self, data: Dict[str, Any]) -> Dict[str, Any]:
        props = dict(data)
        if data.get("icon"):
            props["icon_url"] = self.ICON_URL.format(icon=data["icon"])
        return {"component": "WeatherCard", "props": props}
