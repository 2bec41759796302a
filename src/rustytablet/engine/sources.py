from __future__ import annotations

import logging
import random
from typing import Any

from ..config import Config
from ..models import MODE_MANUAL, MODE_NEWS_API_AI, MODE_SPECIFIC_RSS, SourceContext
from ..services.credentials import require_credential
from ..utils import log_event, truncate
from .content_fetch import fetch_article_content
from .errors import GenerationError
from .feeds import fetch_feed_items, filter_items
from .newsapi import fetch_news_context

MANUAL_SOURCE_URL = "Manual Input"


def resolve_source(
    conn,
    config: Config,
    mode: str | None,
    job_config: dict[str, Any],
    *,
    logger: logging.Logger,
    rng: random.Random | None = None,
) -> SourceContext:
    if mode == MODE_MANUAL:
        return _manual_source(job_config)
    if mode == MODE_SPECIFIC_RSS:
        return _rss_source(config, job_config, logger, rng)
    if mode == MODE_NEWS_API_AI:
        return _news_source(conn, config, job_config, logger)
    raise GenerationError(f"Invalid mode: {mode}")


def _manual_source(job_config: dict[str, Any]) -> SourceContext:
    text = str(job_config.get("content_input") or "").strip()
    if not text:
        raise GenerationError("Content input required for Manual mode")
    return SourceContext(text=text, source_url=MANUAL_SOURCE_URL)


def _rss_source(
    config: Config,
    job_config: dict[str, Any],
    logger: logging.Logger,
    rng: random.Random | None,
) -> SourceContext:
    url = job_config.get("rss_url")
    if not url:
        raise GenerationError("RSS URL required")
    items = fetch_feed_items(str(url), config, config.engine.rss_item_limit, logger)
    items = filter_items(items, job_config.get("topic_search"))
    if not items:
        raise GenerationError("No RSS items found matching criteria")
    item = (rng or random).choice(items)
    text = f"Headline: {item.title}. Snippet: {item.snippet}"
    if config.engine.fetch_full_text and item.link:
        full_text = _fetch_full_text(item.link, config, logger)
        if full_text:
            text = f"{text}\n\nFull text: {full_text}"
    return SourceContext(text=text, source_url=item.link, headline=item.title)


def _fetch_full_text(url: str, config: Config, logger: logging.Logger) -> str | None:
    try:
        result = fetch_article_content(
            url,
            timeout_seconds=config.http.timeout_seconds,
            user_agent=config.http.user_agent,
            logger=logger,
        )
    except Exception:  # noqa: BLE001
        # optional; the snippet still stands
        return None
    text = str(result.get("content_text") or "")
    return truncate(text, config.engine.context_char_limit) if text else None


def _news_source(
    conn,
    config: Config,
    job_config: dict[str, Any],
    logger: logging.Logger,
) -> SourceContext:
    api_key = require_credential(conn, "NEWSAPI_AI_KEY")
    result = fetch_news_context(
        api_key,
        config,
        logger,
        news_mode=job_config.get("news_mode"),
        region=job_config.get("target_region"),
        category=job_config.get("news_category"),
        topic=job_config.get("news_topic"),
    )
    if result is None:
        raise GenerationError("No news articles found for query")
    log_event(logger, logging.INFO, "news_source_selected", title=result.title, source=result.source)
    text = f"Headline: {result.title}. Source: {result.source}. Body: {result.body}"
    return SourceContext(
        text=text,
        source_url=result.url,
        source_image=result.image,
        headline=result.title,
    )
