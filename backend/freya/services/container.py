"""
Service Container - Wires storage, identity, plugins and chat clients together.

Built once per application in the lifespan handler and reachable from
request handlers as request.app.state.services.
"""

import logging
from dataclasses import dataclass

from fastapi import Request

from .chat_service import ChatServiceFactory
from .identity import IdentityProvider
from ..config import Settings
from ..core.registry import ChatClientRegistry
from ..plugins import NewsClient, PluginRegistry, build_default_registry
from ..storage import KeyValueStore, LocalStorage, SessionRepository, UserStorage

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    settings: Settings
    storage: LocalStorage
    users: UserStorage
    sessions: SessionRepository
    key_value: KeyValueStore
    identity: IdentityProvider
    plugins: PluginRegistry
    news: NewsClient
    chat_services: ChatServiceFactory
    clients: ChatClientRegistry


def build_services(config: Settings) -> AppServices:
    storage = LocalStorage(base_dir=config.local_storage_path)
    users = UserStorage(storage)
    sessions = SessionRepository(storage)
    key_value = KeyValueStore(storage)
    plugins = build_default_registry(config)
    chat_services = ChatServiceFactory(sessions, key_value)

    logger.info(
        f"Services ready: storage={storage.base_dir}, "
        f"plugins={[plugin.name for plugin in plugins]}"
    )
    return AppServices(
        settings=config,
        storage=storage,
        users=users,
        sessions=sessions,
        key_value=key_value,
        identity=IdentityProvider(users, config),
        plugins=plugins,
        news=NewsClient(
            api_key=config.newsapi_key,
            timeout=config.http_timeout_seconds,
            page_size=config.news_page_size,
        ),
        chat_services=chat_services,
        clients=ChatClientRegistry(
            chat_services,
            plugins,
            plugin_timeout=config.plugin_timeout_seconds,
            idle_ttl=config.client_idle_ttl_seconds,
        ),
    )


def get_services(request: Request) -> AppServices:
    """Dependency returning the application's service container."""
    return request.app.state.services
