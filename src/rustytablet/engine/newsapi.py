from __future__ import annotations

import logging
from typing import Any

from ..config import Config
from ..httpclient import HttpCallError, request_json
from ..models import NEWS_TAILORED, NewsResult
from ..utils import log_event

REGION_MAP = {
    "US": "http://en.wikipedia.org/wiki/United_States",
    "IN": "http://en.wikipedia.org/wiki/India",
    "UK": "http://en.wikipedia.org/wiki/United_Kingdom",
    "JP": "http://en.wikipedia.org/wiki/Japan",
    "EU": "http://en.wikipedia.org/wiki/Europe",
    "Global": "",
}

CATEGORY_MAP = {
    "Business": "dmoz/Business",
    "Technology": "dmoz/Computers",
    "Science": "dmoz/Science",
    "Health": "dmoz/Health",
    "Politics": "dmoz/Society/Politics",
    "Entertainment": "dmoz/Arts/Entertainment",
    "Sports": "dmoz/Sports",
}


def build_news_request(
    api_key: str,
    config: Config,
    *,
    news_mode: str | None,
    region: str | None = None,
    category: str | None = None,
    topic: str | None = None,
) -> dict[str, Any]:
    engine = config.engine
    body: dict[str, Any] = {
        "apiKey": api_key,
        "articleBodyLen": -1,
        "includeArticleImage": True,
        "includeArticleConcepts": True,
        "includeSourceTitle": True,
        "recentActivityArticlesMaxArticleCount": engine.news_max_articles,
        "lang": ["eng"],
        "isDuplicateFilter": "skipDuplicates",
        "hasBody": True,
    }
    if news_mode == NEWS_TAILORED and topic:
        body["recentActivityArticlesUpdatesAfterMinsAgo"] = engine.tailored_window_minutes
        body["keyword"] = topic
        body["keywordOper"] = "or"
        body["keywordLoc"] = "title"
        return body
    # everything else browses the automatic stream
    body["recentActivityArticlesUpdatesAfterMinsAgo"] = engine.automatic_window_minutes
    if region and REGION_MAP.get(region):
        body["sourceLocationUri"] = [REGION_MAP[region]]
    if category and CATEGORY_MAP.get(category):
        body["categoryUri"] = [CATEGORY_MAP[category]]
    return body


def fetch_news_context(
    api_key: str,
    config: Config,
    logger: logging.Logger,
    *,
    news_mode: str | None,
    region: str | None = None,
    category: str | None = None,
    topic: str | None = None,
) -> NewsResult | None:
    body = build_news_request(
        api_key, config, news_mode=news_mode, region=region, category=category, topic=topic
    )
    log_event(logger, logging.INFO, "news_query", mode=news_mode, region=region, topic=topic)
    try:
        data = request_json(
            "POST", config.engine.news_api_url, payload=body, timeout=config.http.timeout_seconds
        )
    except HttpCallError as exc:
        log_event(logger, logging.ERROR, "news_query_failed", mode=news_mode, error=str(exc))
        raise
    articles = (data.get("recentActivityArticles") or {}).get("activity") or []
    if not articles:
        log_event(logger, logging.WARNING, "news_query_empty", mode=news_mode)
        return None
    article = articles[0]
    return NewsResult(
        title=str(article.get("title") or "Untitled"),
        body=str(article.get("body") or ""),
        url=article.get("url"),
        source=str((article.get("source") or {}).get("title") or "News Wire"),
        image=article.get("image") or None,
    )
