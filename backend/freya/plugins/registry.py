"""
Plugin Registry - Ordered plugin roster and trigger matching.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from .base import Plugin
from ..models import Message

logger = logging.getLogger(__name__)


@dataclass
class PluginMatch:
    """A plugin whose trigger matched, with the extracted arguments."""
    plugin: Plugin
    args: List[str]


def find_plugin_for_message(text: str, plugins: Iterable[Plugin]) -> Optional[PluginMatch]:
    """
    Find the first plugin whose trigger matches the text.

    Registration order breaks ties: an earlier plugin wins even if a later
    one would also match. Captured groups are stripped and empty ones dropped.

    Returns:
        PluginMatch, or None when nothing matches
    """
    for plugin in plugins:
        match = plugin.trigger.search(text)
        if match:
            args = [group.strip() for group in match.groups() if group and group.strip()]
            logger.debug(f"Matched plugin '{plugin.name}' with {len(args)} argument(s)")
            return PluginMatch(plugin=plugin, args=args)

    logger.debug("No plugin matched message")
    return None


class PluginRegistry:
    """Plugins in registration order, addressable by name."""

    def __init__(self, plugins: Optional[Sequence[Plugin]] = None):
        self._plugins: List[Plugin] = []
        for plugin in plugins or []:
            self.register(plugin)

    def register(self, plugin: Plugin) -> None:
        if not plugin.name:
            raise ValueError("Plugin must have a name")
        if self.get(plugin.name) is not None:
            raise ValueError(f"Plugin '{plugin.name}' is already registered")
        self._plugins.append(plugin)

    def get(self, name: Optional[str]) -> Optional[Plugin]:
        for plugin in self._plugins:
            if plugin.name == name:
                return plugin
        return None

    def match(self, text: str) -> Optional[PluginMatch]:
        return find_plugin_for_message(text, self._plugins)

    def catalogue(self) -> List[Dict[str, Any]]:
        return [plugin.describe() for plugin in self._plugins]

    def __iter__(self) -> Iterator[Plugin]:
        return iter(list(self._plugins))

    def __len__(self) -> int:
        return len(self._plugins)


def render_message(message: Message, registry: PluginRegistry) -> Optional[Dict[str, Any]]:
    """
    Look up the plugin renderer for a message.

    Only plugin-type messages with data, whose plugin is registered and has a
    renderer, produce a card. Renderer failures fall back to plain text.
    """
    if message.type != "plugin" or message.plugin_data is None:
        return None

    plugin = registry.get(message.plugin_name)
    if plugin is None or not plugin.has_renderer:
        return None

    try:
        return plugin.render_result(message.plugin_data)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Renderer for plugin '{plugin.name}' failed on message {message.id}: {e}")
        return None
