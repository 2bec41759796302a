import random

from rustytablet.models import DrawnParameters, EditorialStrategy
from rustytablet.pulse.descriptor import (
    NEWS_CATEGORIES,
    RSS_FEEDS,
    build_job_descriptor,
    validate_job_descriptor,
)
from rustytablet.strategy import DEFAULT_STRATEGY


def _strategy(**overrides):
    values = dict(DEFAULT_STRATEGY)
    values.update(overrides)
    return EditorialStrategy(**values)


def _drawn(source_mode):
    return DrawnParameters(
        source_mode=source_mode, region="UK", sentiment="Cynical", image_source="unsplash"
    )


def test_rss_descriptor():
    payload = build_job_descriptor(_drawn("rss"), _strategy(), random.Random(1))
    assert payload["mode"] == "SPECIFIC_RSS"
    config = payload["config"]
    assert config["rss_url"] in RSS_FEEDS
    assert config["target_region"] == "UK"
    assert config["article_sentiment"] == "Cynical"
    assert config["preferred_image_source"] == "unsplash"
    assert config["word_count"] == 800
    assert validate_job_descriptor(payload) == []


def test_tailored_news_descriptor_uses_topic_list():
    strategy = _strategy(topic_list=["Fusion"])
    payload = build_job_descriptor(_drawn("news_api_tailored"), strategy, random.Random(1))
    assert payload["mode"] == "NEWS_API_AI"
    assert payload["config"]["news_mode"] == "TAILORED"
    assert payload["config"]["news_topic"] == "Fusion"
    assert validate_job_descriptor(payload) == []


def test_tailored_news_descriptor_without_topics_uses_default():
    payload = build_job_descriptor(
        _drawn("news_api_tailored"), _strategy(topic_list=[]), random.Random(1)
    )
    assert payload["config"]["news_topic"] == "Technology"


def test_automatic_news_descriptor():
    payload = build_job_descriptor(_drawn("news_api_automatic"), _strategy(), random.Random(2))
    assert payload["mode"] == "NEWS_API_AI"
    assert payload["config"]["news_mode"] == "AUTOMATIC"
    assert payload["config"]["news_category"] in NEWS_CATEGORIES


def test_validate_rejects_manual_without_content():
    errors = validate_job_descriptor({"mode": "MANUAL", "config": {}})
    assert errors
    assert any("content_input" in error for error in errors)


def test_validate_rejects_unknown_mode():
    assert validate_job_descriptor({"mode": "CARRIER_PIGEON", "config": {}})


def test_validate_rejects_incomplete_config():
    errors = validate_job_descriptor({"mode": "SPECIFIC_RSS", "config": {"rss_url": "https://x/feed"}})
    assert errors
    for field in ("target_region", "article_sentiment", "word_count", "complexity"):
        assert any(field in error for error in errors)


def test_built_descriptors_validate():
    rng = random.Random(7)
    for source_mode in ("rss", "news_api_automatic", "news_api_tailored"):
        payload = build_job_descriptor(_drawn(source_mode), _strategy(), rng)
        assert validate_job_descriptor(payload) == []
