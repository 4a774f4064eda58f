"""
Execution Pipeline - Turns one user utterance into transcript messages.

    user message -> (fallback reply | loading placeholder -> final message)

The final message reuses the placeholder's id and replaces it in place.
"""

import asyncio
import logging
from typing import Callable, Optional, Union

from .errors import NoActiveSessionError
from .logging_config import ChatLogAdapter
from .state import ChatStore, add_message, replace_message, set_assistant_processing
from ..models import Message
from ..plugins import Plugin, PluginRegistry

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I didn't understand that."
CRITICAL_ERROR_CONTENT = "Critical Plugin Execution Error"
PLUGIN_ERROR_FALLBACK = "Plugin Error"


class ExecutionPipeline:
    """Runs commands against a ChatStore using the plugins of a registry."""

    def __init__(
        self,
        store: ChatStore,
        registry: PluginRegistry,
        plugin_timeout: Optional[float] = None,
        log: Optional[Union[logging.Logger, ChatLogAdapter]] = None,
    ):
        """
        Args:
            store: Store holding the chat window state
            registry: Plugins in dispatch order
            plugin_timeout: Seconds allowed per plugin call; None means unbounded
            log: Logger to report through (defaults to the module logger)
        """
        self.store = store
        self.registry = registry
        self.plugin_timeout = plugin_timeout
        self.log = log or logger

    async def run(self, text: str, is_stale: Optional[Callable[[], bool]] = None) -> Optional[Message]:
        """
        Process one command.

        Args:
            text: Non-blank user input
            is_stale: Extra check consulted before the final message is applied

        Returns:
            Message: The assistant message that resolved the command, or None
            if the result was discarded because the context moved on

        Raises:
            NoActiveSessionError: If no session is active
        """
        session_id = self.store.state.active_session_id
        if session_id is None:
            raise NoActiveSessionError()

        self.store.dispatch(add_message(Message(sender="user", content=text)))
        self.store.dispatch(set_assistant_processing(True))

        discarded = False
        try:
            match = self.registry.match(text)
            if match is None:
                reply = Message(sender="assistant", content=FALLBACK_REPLY)
                self.store.dispatch(add_message(reply))
                return reply

            plugin = match.plugin
            placeholder = Message(
                sender="assistant",
                type="loading",
                content=plugin.loading_label,
                plugin_name=plugin.name,
            )
            self.store.dispatch(add_message(placeholder))

            final = await self._execute(plugin, match.args, placeholder.id)

            if self.store.state.active_session_id != session_id or (is_stale is not None and is_stale()):
                self.log.warning(
                    f"Discarding result of '{plugin.name}' for session {session_id}: context changed while it ran"
                )
                discarded = True
                return None

            self.store.dispatch(replace_message(final))
            return final
        finally:
            # A discarded command belongs to a context that has already been reset
            if not discarded:
                self.store.dispatch(set_assistant_processing(False))

    async def _execute(self, plugin: Plugin, args, message_id: str) -> Message:
        """Call the plugin and convert whatever happens into the final message."""
        try:
            if self.plugin_timeout:
                result = await asyncio.wait_for(plugin.execute(args), timeout=self.plugin_timeout)
            else:
                result = await plugin.execute(args)
        except asyncio.TimeoutError:
            self.log.error(f"Plugin '{plugin.name}' timed out after {self.plugin_timeout}s")
            return self._critical_error(plugin, message_id, f"Plugin timed out after {self.plugin_timeout} seconds")
        except Exception as e:
            self.log.error(f"Plugin '{plugin.name}' raised an exception: {e}", exc_info=True)
            return self._critical_error(plugin, message_id, str(e) or type(e).__name__)

        if not result.success:
            self.log.warning(f"Plugin '{plugin.name}' reported a failure: {result.error}")
            return Message(
                id=message_id,
                sender="assistant",
                type="error",
                content=result.error or PLUGIN_ERROR_FALLBACK,
                plugin_name=plugin.name,
                error_message=result.error,
            )

        message_type = "plugin" if result.data is not None and plugin.has_renderer else "text"
        self.log.info(f"Plugin '{plugin.name}' succeeded ({message_type})")
        return Message(
            id=message_id,
            sender="assistant",
            type=message_type,
            content=result.display_text or "",
            plugin_name=plugin.name,
            plugin_data=result.data,
        )

    @staticmethod
    def _critical_error(plugin: Plugin, message_id: str, reason: str) -> Message:
        return Message(
            id=message_id,
            sender="assistant",
            type="error",
            content=CRITICAL_ERROR_CONTENT,
            plugin_name=plugin.name,
            error_message=reason,
        )
