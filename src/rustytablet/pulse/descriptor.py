from __future__ import annotations

import random
from typing import Any

import jsonschema

from ..models import (
    GENERATION_MODES,
    MODE_MANUAL,
    MODE_NEWS_API_AI,
    MODE_SPECIFIC_RSS,
    NEWS_AUTOMATIC,
    NEWS_TAILORED,
    DrawnParameters,
    EditorialStrategy,
)
from .selector import pick_uniform

DEFAULT_WORD_COUNT = 800
DEFAULT_COMPLEXITY = "GENERAL"
DEFAULT_TOPIC = "Technology"

RSS_FEEDS = [
    "https://www.theverge.com/rss/index.xml",
    "https://hackaday.com/blog/feed/",
    "https://techcrunch.com/feed/",
]

NEWS_CATEGORIES = ["Technology", "Business", "Science", "Politics"]

SOURCE_NEWS_TAILORED = "news_api_tailored"
SOURCE_NEWS_AUTOMATIC = "news_api_automatic"

JOB_DESCRIPTOR_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["mode", "config"],
    "additionalProperties": False,
    "properties": {
        "mode": {"enum": list(GENERATION_MODES)},
        "config": {
            "type": "object",
            "required": [
                "target_region",
                "article_sentiment",
                "word_count",
                "complexity",
                "include_sidebar",
                "generate_social",
            ],
            "properties": {
                "target_region": {"type": "string"},
                "article_sentiment": {"type": "string"},
                "word_count": {"type": "integer", "minimum": 50, "maximum": 5000},
                "complexity": {"enum": ["EASY", "GENERAL", "TECHNICAL"]},
                "layout_instructions": {"type": "string"},
                "include_sidebar": {"type": "boolean"},
                "generate_social": {"type": "boolean"},
                "preferred_image_source": {"type": "string"},
                "content_input": {"type": "string", "minLength": 1},
                "rss_url": {"type": "string", "minLength": 1},
                "topic_search": {"type": "string"},
                "news_mode": {"enum": [NEWS_AUTOMATIC, NEWS_TAILORED]},
                "news_category": {"type": "string"},
                "news_topic": {"type": "string"},
            },
        },
    },
    "allOf": [
        {
            "if": {"properties": {"mode": {"const": MODE_MANUAL}}},
            "then": {"properties": {"config": {"required": ["content_input"]}}},
        },
        {
            "if": {"properties": {"mode": {"const": MODE_SPECIFIC_RSS}}},
            "then": {"properties": {"config": {"required": ["rss_url"]}}},
        },
        {
            "if": {"properties": {"mode": {"const": MODE_NEWS_API_AI}}},
            "then": {"properties": {"config": {"required": ["news_mode"]}}},
        },
    ],
}


def build_job_descriptor(
    drawn: DrawnParameters,
    strategy: EditorialStrategy,
    rng: random.Random | None = None,
) -> dict[str, Any]:
    """Turn one set of drawn parameters into a self-contained job payload.

    The result holds only plain values so it stays executable after the
    strategy changes.
    """
    config: dict[str, Any] = {
        "target_region": drawn.region,
        "article_sentiment": drawn.sentiment,
        "word_count": DEFAULT_WORD_COUNT,
        "complexity": DEFAULT_COMPLEXITY,
        "include_sidebar": True,
        "generate_social": True,
    }
    if drawn.source_mode == SOURCE_NEWS_TAILORED:
        mode = MODE_NEWS_API_AI
        config["news_mode"] = NEWS_TAILORED
        topics = list(strategy.topic_list)
        config["news_topic"] = pick_uniform(topics, rng) if topics else DEFAULT_TOPIC
    elif drawn.source_mode == SOURCE_NEWS_AUTOMATIC:
        mode = MODE_NEWS_API_AI
        config["news_mode"] = NEWS_AUTOMATIC
        config["news_category"] = pick_uniform(NEWS_CATEGORIES, rng)
    else:
        mode = MODE_SPECIFIC_RSS
        config["rss_url"] = pick_uniform(RSS_FEEDS, rng)
    # soft hint only; the image chain may still use any tier
    config["preferred_image_source"] = drawn.image_source
    return {"mode": mode, "config": config}


def validate_job_descriptor(payload: Any) -> list[str]:
    validator = jsonschema.Draft202012Validator(JOB_DESCRIPTOR_SCHEMA)
    errors = []
    found = sorted(validator.iter_errors(payload), key=lambda e: [str(p) for p in e.path])
    for error in found:
        location = ".".join(str(part) for part in error.path) or "job_params"
        errors.append(f"{location}: {error.message}")
    return errors
