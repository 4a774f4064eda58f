"""Plugins module - chat command handlers and their registry."""

from typing import Any

from .base import Plugin, PluginResult, DEFAULT_LOADING_MESSAGE
from .registry import PluginMatch, PluginRegistry, find_plugin_for_message, render_message
from .weather import WeatherPlugin
from .calc import CalcPlugin
from .define import DefinePlugin
from .joke import JokePlugin
from .news import NewsClient, NewsPlugin, NewsServiceError


def build_default_registry(config: Any) -> PluginRegistry:
    """
    Build the registry in dispatch order: weather, calc, define, joke, news.

    Args:
        config: Settings object with the provider keys and timeouts
    """
    timeout = config.http_timeout_seconds
    news_client = NewsClient(
        api_key=config.newsapi_key, timeout=timeout, page_size=config.news_page_size
    )
    return PluginRegistry([
        WeatherPlugin(api_key=config.openweather_api_key, timeout=timeout),
        CalcPlugin(),
        DefinePlugin(timeout=timeout),
        JokePlugin(timeout=timeout),
        NewsPlugin(news_client),
    ])


__all__ = [
    'Plugin', 'PluginResult', 'DEFAULT_LOADING_MESSAGE',
    'PluginMatch', 'PluginRegistry', 'find_plugin_for_message', 'render_message',
    'WeatherPlugin', 'CalcPlugin', 'DefinePlugin', 'JokePlugin',
    'NewsClient', 'NewsPlugin', 'NewsServiceError',
    'build_default_registry',
]
