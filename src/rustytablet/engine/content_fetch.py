from __future__ import annotations

import logging
import re
import urllib.request
from typing import Any

from bs4 import BeautifulSoup

from ..utils import log_event


def fetch_article_content(
    url: str,
    *,
    timeout_seconds: int,
    user_agent: str,
    logger: logging.Logger,
) -> dict[str, Any]:
    request = urllib.request.Request(url, headers={"User-Agent": user_agent})
    try:
        with urllib.request.urlopen(request, timeout=timeout_seconds) as response:
            raw = response.read()
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.WARNING, "content_fetch_failed", url=url, error=str(exc))
        raise
    html = raw.decode("utf-8", errors="replace")
    text = extract_readable_text(html)
    return {"content_text": text, "content_html": html}


def extract_readable_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "footer", "header", "aside", "form"]):
        tag.decompose()
    article = soup.find("article")
    if article:
        return normalize_text(article.get_text(" ", strip=True))
    paragraphs = [p.get_text(" ", strip=True) for p in soup.find_all("p")]
    joined = " ".join(text for text in paragraphs if len(text) > 40)
    if joined:
        return normalize_text(joined)
    return normalize_text(soup.get_text(" ", strip=True))


def html_to_text(fragment: str) -> str:
    if not fragment or "<" not in fragment:
        return normalize_text(fragment or "")
    return normalize_text(BeautifulSoup(fragment, "html.parser").get_text(" ", strip=True))


def normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()
