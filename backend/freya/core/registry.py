"""
Chat Client Registry - One lifecycle controller per browser client.

Controllers that have not been used for idle_ttl seconds are flushed and
torn down by evict_idle, which the application runs periodically.
"""

import asyncio
import logging
import time
from typing import Dict, Optional

from .lifecycle import SessionLifecycleController
from ..plugins import PluginRegistry
from ..services.chat_service import ChatServiceFactory

logger = logging.getLogger(__name__)


class ChatClientRegistry:
    """Creates controllers on first use and tears them down when idle or on request."""

    def __init__(
        self,
        services: ChatServiceFactory,
        plugins: PluginRegistry,
        plugin_timeout: Optional[float] = None,
        idle_ttl: Optional[float] = None,
    ):
        self.services = services
        self.plugins = plugins
        self.plugin_timeout = plugin_timeout
        self.idle_ttl = idle_ttl
        self._controllers: Dict[str, SessionLifecycleController] = {}
        self._last_seen: Dict[str, float] = {}

    def get(self, client_id: str) -> Optional[SessionLifecycleController]:
        controller = self._controllers.get(client_id)
        if controller is not None:
            self._last_seen[client_id] = time.monotonic()
        return controller

    def get_or_create(self, client_id: str) -> SessionLifecycleController:
        controller = self._controllers.get(client_id)
        if controller is None:
            controller = SessionLifecycleController(
                self.services,
                self.plugins,
                client_id=client_id,
                plugin_timeout=self.plugin_timeout,
            )
            self._controllers[client_id] = controller
            logger.info(f"Registered chat client {client_id} ({len(self._controllers)} active)")
        self._last_seen[client_id] = time.monotonic()
        return controller

    async def teardown(self, client_id: str) -> bool:
        controller = self._controllers.pop(client_id, None)
        self._last_seen.pop(client_id, None)
        if controller is None:
            return False
        await controller.teardown()
        return True

    async def evict_idle(self, now: Optional[float] = None) -> int:
        """
        Flush and tear down controllers idle for longer than idle_ttl.

        Busy controllers are skipped until a later sweep.

        Returns:
            int: Number of controllers evicted
        """
        if self.idle_ttl is None:
            return 0
        now = time.monotonic() if now is None else now

        expired = [
            client_id
            for client_id, seen in self._last_seen.items()
            if now - seen > self.idle_ttl and not self._controllers[client_id].is_busy
        ]
        for client_id in expired:
            controller = self._controllers.pop(client_id)
            del self._last_seen[client_id]
            await controller.flush()
            await controller.teardown()

        if expired:
            logger.info(f"Evicted {len(expired)} idle chat client(s), {len(self._controllers)} active")
        return len(expired)

    async def run_sweeper(self, interval: float) -> None:
        """Evict idle controllers every interval seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            await self.evict_idle()

    async def shutdown(self) -> None:
        """Flush outstanding saves, then tear every controller down."""
        for client_id in list(self._controllers):
            controller = self._controllers.pop(client_id)
            self._last_seen.pop(client_id, None)
            await controller.flush()
            await controller.teardown()
        logger.info("All chat clients shut down")

    def __len__(self) -> int:
        return len(self._controllers)
