"""
Plugin API endpoints - Catalogue of chat commands and the news proxy.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..plugins import NewsServiceError
from ..plugins.news import VALID_NEWS_CATEGORIES
from ..services.container import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/plugins", tags=["plugins"])


@router.get("")
async def list_plugins(services: AppServices = Depends(get_services)):
    """Registered plugins in dispatch order."""
    return {"plugins": services.plugins.catalogue()}


@router.get("/news")
async def get_news(
    topic: Optional[str] = Query(None, description="Free-text search"),
    category: Optional[str] = Query(None, description="One of the supported news categories"),
    services: AppServices = Depends(get_services),
):
    """
    Fetch articles by topic or category.

    Raises:
        HTTPException: 400 for an unknown category, 502 if the provider fails
    """
    if category is not None:
        category = category.lower()
        if category not in VALID_NEWS_CATEGORIES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid category. Valid categories are: {', '.join(VALID_NEWS_CATEGORIES)}",
            )

    try:
        articles = await services.news.fetch_articles(topic=topic, category=category)
    except NewsServiceError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return {"articles": articles, "total": len(articles)}
