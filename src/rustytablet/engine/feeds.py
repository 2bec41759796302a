from __future__ import annotations

import logging

import feedparser

from ..config import Config
from ..httpclient import fetch_url
from ..models import FeedItem
from ..utils import log_event
from .content_fetch import html_to_text
from .errors import GenerationError

FEED_ACCEPT = "application/rss+xml, application/xml, text/xml; q=0.1"


def fetch_feed_items(
    url: str, config: Config, limit: int, logger: logging.Logger
) -> list[FeedItem]:
    http_cfg = config.http
    status, content, error = fetch_url(
        url,
        headers={"User-Agent": http_cfg.user_agent, "Accept": FEED_ACCEPT},
        timeout=http_cfg.timeout_seconds,
        max_retries=http_cfg.max_retries,
        backoff_seconds=http_cfg.backoff_seconds,
    )
    if error or not content:
        log_event(
            logger,
            logging.ERROR,
            "feed_fetch_failed",
            url=url,
            http_status=status,
            error=error or "empty response",
        )
        raise GenerationError(f"RSS fetch failed for {url}: {error or 'empty response'}")
    items = parse_feed_items(content, limit)
    log_event(logger, logging.INFO, "feed_parsed", url=url, items=len(items))
    return items


def parse_feed_items(content: bytes | str, limit: int) -> list[FeedItem]:
    parsed = feedparser.parse(content)
    items: list[FeedItem] = []
    for entry in (parsed.entries or [])[:limit]:
        snippet = entry.get("summary") or entry.get("description") or ""
        if not snippet and entry.get("content"):
            snippet = entry["content"][0].get("value") or ""
        items.append(
            FeedItem(
                title=(entry.get("title") or "Untitled").strip(),
                link=entry.get("link") or None,
                snippet=html_to_text(snippet),
                published_at=entry.get("published") or entry.get("updated"),
            )
        )
    return items


def filter_items(items: list[FeedItem], term: str | None) -> list[FeedItem]:
    if not term:
        return list(items)
    needle = term.lower()
    return [
        item
        for item in items
        if needle in item.title.lower() or needle in item.snippet.lower()
    ]
