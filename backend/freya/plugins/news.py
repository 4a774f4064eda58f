"""
News Plugin - Headlines and topic search from NewsAPI.org.

NewsClient is shared with the /plugins/news proxy endpoint.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from .base import Plugin, PluginResult

logger = logging.getLogger(__name__)

VALID_NEWS_CATEGORIES = [
    "business",
    "entertainment",
    "general",
    "health",
    "science",
    "sports",
    "technology",
    "ai",
]

# NewsAPI has no "ai" category; it is served as a topic search
CATEGORY_TOPICS = {"ai": "artificial intelligence"}


class NewsServiceError(Exception):
    """The news provider could not be reached or refused the request."""


class NewsClient:
    """Thin async client for NewsAPI.org."""

    BASE_URL = "https://newsapi.org/v2"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 10.0, page_size: int = 7):
        self.api_key = api_key
        self.timeout = timeout
        self.page_size = page_size

    async def fetch_articles(
        self,
        topic: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch articles, formatted for display.

        Args:
            topic: Free-text search; takes precedence over category
            category: One of VALID_NEWS_CATEGORIES

        Returns:
            List of articles with title, description, url, image_url, source_name, published_at

        Raises:
            NewsServiceError: When the key is missing or the provider fails
        """
        if not self.api_key:
            logger.error("NewsAPI key is not configured")
            raise NewsServiceError("News service is currently unavailable.")

        if not topic and category in CATEGORY_TOPICS:
            topic, category = CATEGORY_TOPICS[category], None

        params: Dict[str, Any] = {"apiKey": self.api_key, "language": "en", "pageSize": self.page_size}
        if topic:
            url = f"{self.BASE_URL}/everything"
            params.update({"q": topic, "sortBy": "publishedAt"})
        else:
            url = f"{self.BASE_URL}/top-headlines"
            params["country"] = "us"
            if category:
                params["category"] = category

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params)
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"NewsAPI request failed: {e}")
            raise NewsServiceError("Failed to fetch news data. Please try again.") from e

        if not isinstance(data, dict):
            logger.error(f"Unexpected NewsAPI payload type: {type(data).__name__}")
            raise NewsServiceError("Received an unexpected response from the news service.")

        if resp.status_code != 200 or data.get("status") == "error":
            logger.warning(f"NewsAPI returned an error: status={resp.status_code}, message={data.get('message')}")
            raise NewsServiceError(
                data.get("message") or f"News API request failed with status {resp.status_code}"
            )

        return [self._format_article(article) for article in data.get("articles") or []]

    @staticmethod
    def _format_article(article: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "title": article.get("title"),
            "description": article.get("description"),
            "url": article.get("url"),
            "image_url": article.get("urlToImage"),
            "source_name": (article.get("source") or {}).get("name"),
            "published_at": article.get("publishedAt"),
        }


class NewsPlugin(Plugin):
    """/news [topic|category]"""

    name = "news"
    description = (
        "Fetches top news headlines. Usage: /news [optional_keyword_or_category] "
        "(e.g., /news or /news technology)"
    )
    trigger = re.compile(r"^/news(?:\s+(.+))?$", re.IGNORECASE)
    loading_message = "Fetching latest news..."

    def __init__(self, client: NewsClient):
        self.client = client

    async def execute(self, args: List[str]) -> PluginResult:
        query = args[0] if args else None
        topic: Optional[str] = None
        category: Optional[str] = None
        if query:
            if query.lower() in VALID_NEWS_CATEGORIES:
                category = query.lower()
            else:
                topic = query

        try:
            articles = await self.client.fetch_articles(topic=topic, category=category)
        except NewsServiceError as e:
            return PluginResult.fail(str(e) or "Could not fetch news at this time.")

        data = {"articles": articles, "query": query}
        if not articles:
            return PluginResult.ok(
                display_text=f'No news found for "{query}".' if query else "No top headlines found right now.",
                data=data,
            )

        scope = f'related to "{query}"' if query else "(Top Headlines)"
        return PluginResult.ok(
            display_text=f"Found {len(articles)} articles {scope}. See card for details.",
            data=data,
        )

    def render_result(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "component": "NewsFeedCard",
            "props": {"articles": data.get("articles", []), "query": data.get("query")},
        }
