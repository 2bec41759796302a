import logging

import pytest

from rustytablet.engine import newsapi
from rustytablet.engine.errors import GenerationError
from rustytablet.engine.newsapi import build_news_request, fetch_news_context
from rustytablet.engine.sources import resolve_source
from rustytablet.config import CredentialMissingError

LOGGER = logging.getLogger("rustytablet.tests")


def test_tailored_request_searches_titles(config):
    body = build_news_request("key", config, news_mode="TAILORED", topic="Fusion")
    assert body["keyword"] == "Fusion"
    assert body["keywordLoc"] == "title"
    assert body["recentActivityArticlesUpdatesAfterMinsAgo"] == 2880
    assert "sourceLocationUri" not in body


def test_automatic_request_filters_region_and_category(config):
    body = build_news_request(
        "key", config, news_mode="AUTOMATIC", region="UK", category="Science"
    )
    assert body["recentActivityArticlesUpdatesAfterMinsAgo"] == 1440
    assert body["sourceLocationUri"] == ["http://en.wikipedia.org/wiki/United_Kingdom"]
    assert body["categoryUri"] == ["dmoz/Science"]
    assert "keyword" not in body


def test_global_region_is_unfiltered(config):
    body = build_news_request("key", config, news_mode="AUTOMATIC", region="Global")
    assert "sourceLocationUri" not in body


def test_first_article_wins(config, monkeypatch):
    captured = {}

    def _fake_request(method, url, *, headers=None, payload=None, timeout=30):
        captured["url"] = url
        captured["payload"] = payload
        return {
            "recentActivityArticles": {
                "activity": [
                    {
                        "title": "Reactor Online",
                        "body": "It works.",
                        "url": "https://wire.example/reactor",
                        "image": "https://wire.example/reactor.jpg",
                        "source": {"title": "Wire"},
                    },
                    {"title": "Second", "body": "Ignored"},
                ]
            }
        }

    monkeypatch.setattr(newsapi, "request_json", _fake_request)
    result = fetch_news_context("key", config, LOGGER, news_mode="TAILORED", topic="Fusion")

    assert result.title == "Reactor Online"
    assert result.source == "Wire"
    assert result.image == "https://wire.example/reactor.jpg"
    assert captured["url"] == config.engine.news_api_url
    assert captured["payload"]["apiKey"] == "key"


def test_empty_stream_returns_none(config, monkeypatch):
    monkeypatch.setattr(newsapi, "request_json", lambda *args, **kwargs: {})
    assert fetch_news_context("key", config, LOGGER, news_mode="AUTOMATIC") is None


def test_news_source_requires_key(conn, config):
    with pytest.raises(CredentialMissingError):
        resolve_source(conn, config, "NEWS_API_AI", {"news_mode": "AUTOMATIC"}, logger=LOGGER)


def test_news_source_without_articles(conn, config, monkeypatch):
    monkeypatch.setenv("NEWSAPI_AI_KEY", "n-key")
    monkeypatch.setattr(newsapi, "request_json", lambda *args, **kwargs: {})
    with pytest.raises(GenerationError, match="No news articles found for query"):
        resolve_source(conn, config, "NEWS_API_AI", {"news_mode": "AUTOMATIC"}, logger=LOGGER)
