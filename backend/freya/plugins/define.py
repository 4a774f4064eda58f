"""
Dictionary Plugin - English word definitions from dictionaryapi.dev.
"""

import logging
import re
from typing import Any, Dict, List
from urllib.parse import quote

import httpx

from .base import Plugin, PluginResult

logger = logging.getLogger(__name__)


class DefinePlugin(Plugin):
    """/define <word>"""

    name = "define"
    description = "Fetches dictionary definitions for a word. Usage: /define [word]"
    trigger = re.compile(r"^/define\s+(.+)", re.IGNORECASE)
    loading_message = "Looking up definition..."

    API_URL = "https://api.dictionaryapi.dev/api/v2/entries/en/{word}"

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    async def execute(self, args: List[str]) -> PluginResult:
        word = args[0] if args else ""
        if not word:
            return PluginResult.fail("Please provide a valid word.")

        url = self.API_URL.format(word=quote(word, safe=""))
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url)
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Dictionary request for '{word}' failed: {e}")
            return PluginResult.fail("Failed to fetch definition. Check your connection or the word.")

        if resp.status_code != 200 or not isinstance(data, list):
            body = data if isinstance(data, dict) else {}
            return PluginResult.fail(
                body.get("title") or body.get("message") or f'Could not find a definition for "{word}".'
            )

        return PluginResult.ok(
            display_text=f"Definition for {word}: {self._first_definition(data) or 'Found. See card.'}",
            data=data,
        )

    @staticmethod
    def _first_definition(entries: List[Dict[str, Any]]) -> str:
        try:
            return entries[0]["meanings"][0]["definitions"][0]["definition"]
        except (IndexError, KeyError, TypeError):
            return ""

    def render_result(self, data: List[Dict[str, Any]]) -> Dict[str, Any]:
        entries = []
        for entry in data:
            meanings = []
            for meaning in entry.get("meanings", []):
                meanings.append({
                    "part_of_speech": meaning.get("partOfSpeech"),
                    "definitions": [
                        {"definition": d.get("definition"), "example": d.get("example")}
                        for d in meaning.get("definitions", [])[:3]
                    ],
                    "synonyms": meaning.get("synonyms", [])[:5],
                })
            entries.append({
                "word": entry.get("word"),
                "phonetic": entry.get("phonetic"),
                "meanings": meanings,
            })
        return {"component": "DefinitionCard", "props": {"entries": entries}}
