"""
Joke Plugin - Random safe-for-work joke from JokeAPI.
"""

import logging
import re
from typing import Any, Dict, List

import httpx

from .base import Plugin, PluginResult

logger = logging.getLogger(__name__)


class JokePlugin(Plugin):
    """/joke"""

    name = "joke"
    description = "Tells a random joke. Usage: /joke"
    trigger = re.compile(r"^/joke$", re.IGNORECASE)
    loading_message = "Finding a good joke..."

    API_URL = "https://v2.jokeapi.dev/joke/Any"
    BLACKLIST_FLAGS = "nsfw,religious,political,racist,sexist,explicit"

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    async def execute(self, args: List[str]) -> PluginResult:
        params = {"blacklistFlags": self.BLACKLIST_FLAGS, "type": "twopart"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self.API_URL, params=params)
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Joke request failed: {e}")
            return PluginResult.fail("Failed to fetch a joke. The joke gods are asleep.")

        if not isinstance(data, dict):
            logger.error(f"Unexpected joke payload type: {type(data).__name__}")
            return PluginResult.fail("Received an unexpected joke format.")

        if data.get("error"):
            return PluginResult.fail(data.get("message") or "Could not fetch a joke at this time.")

        if data.get("type") == "single" and data.get("joke"):
            display_text = data["joke"]
        elif data.get("type") == "twopart" and data.get("setup") and data.get("delivery"):
            display_text = f"{data['setup']}\n... {data['delivery']}"
        else:
            return PluginResult.fail("Received an unexpected joke format.")

        return PluginResult.ok(display_text=display_text, data=data)

    def render_result(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "component": "JokeCard",
            "props": {
                "category": data.get("category"),
                "type": data.get("type"),
                "joke": data.get("joke"),
                "setup": data.get("setup"),
                "delivery": data.get("delivery"),
            },
        }
