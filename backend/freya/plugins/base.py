"""
Plugin Base - The contract every chat command handler satisfies.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Pattern

logger = logging.getLogger(__name__)

DEFAULT_LOADING_MESSAGE = "Processing..."


@dataclass
class PluginResult:
    """
    Result of a plugin execution.

    Expected failures (bad input, provider said no) come back with
    success=False and an error text; they are never raised.
    """
    success: bool
    display_text: Optional[str] = None
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, display_text: Optional[str] = None, data: Any = None) -> "PluginResult":
        return cls(success=True, display_text=display_text, data=data)

    @classmethod
    def fail(cls, error: str) -> "PluginResult":
        return cls(success=False, error=error)


class Plugin(ABC):
    """
    Base class for chat plugins.

    Subclasses set name, description, trigger and (optionally)
    loading_message, and implement execute(). A plugin that can present its
    data as a card overrides render_result with a method; plugins without a
    renderer leave it as None and their results are shown as plain text.
    """

    name: str = ""
    description: str = ""
    trigger: Pattern[str]
    loading_message: Optional[str] = None
    render_result: Optional[Callable[[Any], Dict[str, Any]]] = None

    @abstractmethod
    async def execute(self, args: List[str]) -> PluginResult:
        """
        Run the command.

        Args:
            args: Trimmed, non-empty capture groups from the trigger match

        Returns:
            PluginResult describing success or an expected failure
        """
        pass

    @property
    def has_renderer(self) -> bool:
        return self.render_result is not None

    @property
    def loading_label(self) -> str:
        return self.loading_message or DEFAULT_LOADING_MESSAGE

    def describe(self) -> Dict[str, Any]:
        """Catalogue entry for this plugin."""
        return {
            "name": self.name,
            "description": self.description,
            "loading_message": self.loading_label,
            "has_renderer": self.has_renderer,
        }
