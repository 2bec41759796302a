from __future__ import annotations

import json
import logging
from typing import Any

import jsonschema

from .config import StrategyMissingError
from .models import EditorialStrategy
from .storage import get_setting, get_setting_updated_at, set_setting
from .utils import log_event

STRATEGY_KEY = "pulse.strategy"

WEIGHT_FIELDS = (
    "source_weights",
    "image_weights",
    "region_weights",
    "sentiment_weights",
    "complexity_weights",
)

DEFAULT_STRATEGY: dict[str, Any] = {
    "is_active": True,
    "articles_per_day": 12,
    "source_weights": {"rss": 40, "news_api_automatic": 30, "news_api_tailored": 30},
    "image_weights": {"imagen": 50, "unsplash": 40, "fallback": 10},
    "region_weights": {"US": 40, "Global": 25, "UK": 15, "IN": 10, "EU": 10},
    "sentiment_weights": {"Objective": 50, "Optimistic": 20, "Investigative": 20, "Cynical": 10},
    "complexity_weights": {"GENERAL": 70, "EASY": 20, "TECHNICAL": 10},
    "topic_list": [
        "Artificial Intelligence",
        "Climate Tech",
        "Space Exploration",
        "Cybersecurity",
        "Electric Vehicles",
    ],
}

_WEIGHT_MAP_SCHEMA: dict[str, Any] = {
    "type": "object",
    "minProperties": 1,
    "additionalProperties": {"type": "number", "minimum": 0},
}

STRATEGY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["is_active", "articles_per_day", *WEIGHT_FIELDS, "topic_list"],
    "properties": {
        "is_active": {"type": "boolean"},
        # one job per minute is the finest spacing the scheduler supports
        "articles_per_day": {"type": "integer", "minimum": 1, "maximum": 1440},
        **{name: _WEIGHT_MAP_SCHEMA for name in WEIGHT_FIELDS},
        "topic_list": {"type": "array", "items": {"type": "string", "minLength": 1}},
    },
}


class StrategyValidationError(ValueError):
    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


def validate_strategy(payload: Any) -> list[str]:
    validator = jsonschema.Draft202012Validator(STRATEGY_SCHEMA)
    errors = []
    found = sorted(validator.iter_errors(payload), key=lambda e: [str(p) for p in e.path])
    for error in found:
        location = ".".join(str(part) for part in error.path) or "strategy"
        errors.append(f"{location}: {error.message}")
    return errors


class StrategyStore:
    """Persistence for the singleton editorial strategy.

    The strategy lives as one JSON document in ``settings``. Weights are stored
    exactly as saved; relative weights are resolved at draw time.
    """

    def __init__(self, conn, logger: logging.Logger | None = None) -> None:
        self.conn = conn
        self.logger = logger or logging.getLogger("rustytablet.pulse")

    def load(self) -> EditorialStrategy | None:
        raw = get_setting(self.conn, STRATEGY_KEY, None)
        if raw is None:
            return None
        errors = validate_strategy(raw)
        if errors:
            raise StrategyValidationError(errors)
        return _to_strategy(raw, get_setting_updated_at(self.conn, STRATEGY_KEY))

    def require(self) -> EditorialStrategy:
        strategy = self.load()
        if strategy is None:
            raise StrategyMissingError("editorial strategy is not configured; seed it first")
        return strategy

    def seed(self, force: bool = False) -> EditorialStrategy:
        if not force:
            existing = self.load()
            if existing is not None:
                return existing
        set_setting(self.conn, STRATEGY_KEY, _copy(DEFAULT_STRATEGY))
        log_event(self.logger, logging.INFO, "strategy_seeded", force=force)
        return self.require()

    def load_or_seed(self) -> EditorialStrategy:
        strategy = self.load()
        if strategy is None:
            return self.seed()
        return strategy

    def save(self, updates: dict[str, Any]) -> EditorialStrategy:
        if not isinstance(updates, dict):
            raise StrategyValidationError(["strategy: must be an object"])
        current = self.load()
        merged = strategy_to_dict(current) if current else _copy(DEFAULT_STRATEGY)
        merged.pop("updated_at", None)
        updates = {key: value for key, value in updates.items() if key != "updated_at"}
        merged.update(updates)
        errors = validate_strategy(merged)
        if errors:
            raise StrategyValidationError(errors)
        set_setting(self.conn, STRATEGY_KEY, merged)
        log_event(
            self.logger,
            logging.INFO,
            "strategy_saved",
            fields=",".join(sorted(updates.keys())) or "none",
            articles_per_day=merged["articles_per_day"],
            is_active=merged["is_active"],
        )
        return self.require()


def strategy_to_dict(strategy: EditorialStrategy) -> dict[str, Any]:
    return {
        "is_active": strategy.is_active,
        "articles_per_day": strategy.articles_per_day,
        "source_weights": dict(strategy.source_weights),
        "image_weights": dict(strategy.image_weights),
        "region_weights": dict(strategy.region_weights),
        "sentiment_weights": dict(strategy.sentiment_weights),
        "complexity_weights": dict(strategy.complexity_weights),
        "topic_list": list(strategy.topic_list),
        "updated_at": strategy.updated_at,
    }


def _to_strategy(raw: dict[str, Any], updated_at: str | None) -> EditorialStrategy:
    return EditorialStrategy(
        is_active=bool(raw["is_active"]),
        articles_per_day=int(raw["articles_per_day"]),
        source_weights=dict(raw["source_weights"]),
        image_weights=dict(raw["image_weights"]),
        region_weights=dict(raw["region_weights"]),
        sentiment_weights=dict(raw["sentiment_weights"]),
        complexity_weights=dict(raw["complexity_weights"]),
        topic_list=list(raw["topic_list"]),
        updated_at=updated_at,
    )


def _copy(value: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(value))
