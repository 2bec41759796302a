from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

from .storage import get_setting, set_setting


class ConfigError(ValueError):
    pass


class StrategyMissingError(ConfigError):
    pass


class CredentialMissingError(ConfigError):
    pass


@dataclass(frozen=True)
class AppConfig:
    name: str
    timezone: str


@dataclass(frozen=True)
class PathsConfig:
    data_dir: str
    output_dir: str
    media_dir: str
    state_db: str


@dataclass(frozen=True)
class PublishingConfig:
    write_markdown: bool
    format: str
    hugo_section: str
    language: str


@dataclass(frozen=True)
class HttpConfig:
    timeout_seconds: int
    user_agent: str
    max_retries: int
    backoff_seconds: int


@dataclass(frozen=True)
class PulseConfig:
    low_water_mark: int
    max_retries: int
    retry_delay_minutes: int
    due_batch_limit: int
    queue_view_limit: int
    log_view_limit: int
    daily_plan_interval_hours: int


@dataclass(frozen=True)
class EngineConfig:
    endpoint_url: str
    rss_item_limit: int
    context_char_limit: int
    fetch_full_text: bool
    news_api_url: str
    tailored_window_minutes: int
    automatic_window_minutes: int
    news_max_articles: int


@dataclass(frozen=True)
class LlmConfig:
    provider: str
    model: str
    base_url: str
    temperature: float
    max_output_tokens: int
    timeout_seconds: int


@dataclass(frozen=True)
class ImagesConfig:
    imagen_model: str
    imagen_aspect_ratio: str
    media_url_prefix: str
    unsplash_url: str
    fallback_images: list[str]


@dataclass(frozen=True)
class Config:
    app: AppConfig
    paths: PathsConfig
    publishing: PublishingConfig
    http: HttpConfig
    pulse: PulseConfig
    engine: EngineConfig
    llm: LlmConfig
    images: ImagesConfig


DEFAULT_CONFIG: dict[str, Any] = {
    "app": {
        "name": "Rusty Tablet",
        "timezone": "UTC",
    },
    "paths": {
        "data_dir": "/data",
        "output_dir": "/site/content/posts",
        "media_dir": "/data/media",
        "state_db": "/data/state.sqlite3",
    },
    "publishing": {
        "write_markdown": False,
        "format": "hugo_markdown",
        "hugo_section": "posts",
        "language": "en",
    },
    "http": {
        "timeout_seconds": 20,
        "user_agent": "RustyTablet/0.1",
        "max_retries": 2,
        "backoff_seconds": 2,
    },
    "pulse": {
        "low_water_mark": 2,
        "max_retries": 3,
        "retry_delay_minutes": 15,
        "due_batch_limit": 1,
        "queue_view_limit": 100,
        "log_view_limit": 50,
        "daily_plan_interval_hours": 24,
    },
    "engine": {
        "endpoint_url": "",
        "rss_item_limit": 15,
        "context_char_limit": 10000,
        "fetch_full_text": False,
        "news_api_url": "http://eventregistry.org/api/v1/minuteStreamArticles",
        "tailored_window_minutes": 2880,
        "automatic_window_minutes": 1440,
        "news_max_articles": 50,
    },
    "llm": {
        "provider": "google",
        "model": "gemini-2.5-flash",
        "base_url": "",
        "temperature": 0.7,
        "max_output_tokens": 8192,
        "timeout_seconds": 120,
    },
    "images": {
        "imagen_model": "imagen-4.0-generate-001",
        "imagen_aspect_ratio": "16:9",
        "media_url_prefix": "/media",
        "unsplash_url": "https://api.unsplash.com/search/photos",
        "fallback_images": [
            "https://images.unsplash.com/photo-1486718448742-163732cd1544?w=1200&q=80",
            "https://images.unsplash.com/photo-1518770660439-4636190af475?w=1200&q=80",
            "https://images.unsplash.com/photo-1550751827-4bd374c3f58b?w=1200&q=80",
            "https://images.unsplash.com/photo-1565610222536-ef125c59da2c?w=1200&q=80",
            "https://images.unsplash.com/photo-1529101091760-61df51603096?w=1200&q=80",
            "https://images.unsplash.com/photo-1517457373958-b7bdd4587205?w=1200&q=80",
        ],
    },
}

CONFIG_KEY = "config.runtime"


def get_state_db_path() -> str:
    data_dir = os.environ.get("RT_DATA_DIR", DEFAULT_CONFIG["paths"]["data_dir"])
    return os.path.join(data_dir, "state.sqlite3")


def get_cron_secret() -> str | None:
    secret = os.environ.get("RT_CRON_SECRET", "").strip()
    return secret or None


def default_config_dict() -> dict[str, Any]:
    return _deep_copy(DEFAULT_CONFIG)


def bootstrap_runtime_config(conn) -> dict[str, Any]:
    cfg = get_setting(conn, CONFIG_KEY, None)
    if cfg is None:
        set_setting(conn, CONFIG_KEY, _deep_copy(DEFAULT_CONFIG))
        cfg = get_setting(conn, CONFIG_KEY, None)
    if not isinstance(cfg, dict):
        raise ConfigError("config.runtime must be a JSON object")
    return cfg


def get_runtime_config(conn) -> dict[str, Any]:
    cfg = bootstrap_runtime_config(conn)
    errors = validate_runtime_config(cfg)
    if errors:
        raise ConfigError("Invalid config.runtime: " + "; ".join(errors))
    return cfg


def set_runtime_config(conn, cfg: dict[str, Any]) -> None:
    errors = validate_runtime_config(cfg)
    if errors:
        raise ConfigError("Invalid config.runtime: " + "; ".join(errors))
    set_setting(conn, CONFIG_KEY, _deep_copy(cfg))


def load_runtime_config(conn) -> Config:
    cfg = get_runtime_config(conn)
    return build_config(cfg)


def validate_runtime_config(cfg: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    _validate_dict(cfg, DEFAULT_CONFIG, "config.runtime", errors)
    if not errors:
        _validate_ranges(cfg, errors)
    return errors


def _validate_dict(value: dict[str, Any], schema: dict[str, Any], path: str, errors: list[str]) -> None:
    if not isinstance(value, dict):
        errors.append(f"{path} must be an object")
        return
    for key in schema.keys():
        if key not in value:
            errors.append(f"missing {path}.{key}")
    for key in value.keys():
        if key not in schema:
            errors.append(f"unknown {path}.{key}")
    for key, default in schema.items():
        if key not in value:
            continue
        _validate_value(value[key], default, f"{path}.{key}", errors)


def _validate_value(value: Any, default: Any, path: str, errors: list[str]) -> None:
    if isinstance(default, dict):
        if not isinstance(value, dict):
            errors.append(f"{path} must be an object")
            return
        _validate_dict(value, default, path, errors)
        return
    if isinstance(default, list):
        if not isinstance(value, list):
            errors.append(f"{path} must be a list")
            return
        for item in value:
            if not isinstance(item, str):
                errors.append(f"{path} must be a list of strings")
                break
        return
    if isinstance(default, bool):
        if not isinstance(value, bool):
            errors.append(f"{path} must be a boolean")
        return
    if isinstance(default, int):
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"{path} must be an integer")
        return
    if isinstance(default, float):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            errors.append(f"{path} must be a number")
        return
    if isinstance(default, str):
        if not isinstance(value, str):
            errors.append(f"{path} must be a string")
        return


def _validate_ranges(cfg: dict[str, Any], errors: list[str]) -> None:
    pulse = cfg["pulse"]
    for key in ("max_retries", "due_batch_limit", "queue_view_limit", "log_view_limit"):
        if pulse[key] < 1:
            errors.append(f"config.runtime.pulse.{key} must be >= 1")
    for key in ("low_water_mark", "retry_delay_minutes"):
        if pulse[key] < 0:
            errors.append(f"config.runtime.pulse.{key} must be >= 0")
    if pulse["daily_plan_interval_hours"] < 1:
        errors.append("config.runtime.pulse.daily_plan_interval_hours must be >= 1")
    if cfg["engine"]["rss_item_limit"] < 1:
        errors.append("config.runtime.engine.rss_item_limit must be >= 1")
    if cfg["llm"]["provider"] not in {"google", "openai_compatible", "anthropic"}:
        errors.append("config.runtime.llm.provider must be google, openai_compatible or anthropic")
    if not cfg["images"]["fallback_images"]:
        errors.append("config.runtime.images.fallback_images must not be empty")


def build_config(cfg: dict[str, Any]) -> Config:
    app_cfg = cfg.get("app") or {}
    paths_cfg = cfg.get("paths") or {}
    publishing_cfg = cfg.get("publishing") or {}
    http_cfg = cfg.get("http") or {}
    pulse_cfg = cfg.get("pulse") or {}
    engine_cfg = cfg.get("engine") or {}
    llm_cfg = cfg.get("llm") or {}
    images_cfg = cfg.get("images") or {}

    app = AppConfig(
        name=str(app_cfg.get("name")),
        timezone=str(app_cfg.get("timezone")),
    )

    paths = PathsConfig(
        data_dir=str(paths_cfg.get("data_dir")),
        output_dir=str(paths_cfg.get("output_dir")),
        media_dir=str(paths_cfg.get("media_dir")),
        state_db=str(paths_cfg.get("state_db")),
    )

    publishing = PublishingConfig(
        write_markdown=bool(publishing_cfg.get("write_markdown")),
        format=str(publishing_cfg.get("format")),
        hugo_section=str(publishing_cfg.get("hugo_section")),
        language=str(publishing_cfg.get("language")),
    )

    http = HttpConfig(
        timeout_seconds=int(http_cfg.get("timeout_seconds")),
        user_agent=str(http_cfg.get("user_agent")),
        max_retries=int(http_cfg.get("max_retries")),
        backoff_seconds=int(http_cfg.get("backoff_seconds")),
    )

    pulse = PulseConfig(
        low_water_mark=int(pulse_cfg.get("low_water_mark")),
        max_retries=int(pulse_cfg.get("max_retries")),
        retry_delay_minutes=int(pulse_cfg.get("retry_delay_minutes")),
        due_batch_limit=int(pulse_cfg.get("due_batch_limit")),
        queue_view_limit=int(pulse_cfg.get("queue_view_limit")),
        log_view_limit=int(pulse_cfg.get("log_view_limit")),
        daily_plan_interval_hours=int(pulse_cfg.get("daily_plan_interval_hours")),
    )

    engine = EngineConfig(
        endpoint_url=str(engine_cfg.get("endpoint_url") or ""),
        rss_item_limit=int(engine_cfg.get("rss_item_limit")),
        context_char_limit=int(engine_cfg.get("context_char_limit")),
        fetch_full_text=bool(engine_cfg.get("fetch_full_text")),
        news_api_url=str(engine_cfg.get("news_api_url")),
        tailored_window_minutes=int(engine_cfg.get("tailored_window_minutes")),
        automatic_window_minutes=int(engine_cfg.get("automatic_window_minutes")),
        news_max_articles=int(engine_cfg.get("news_max_articles")),
    )

    llm = LlmConfig(
        provider=str(llm_cfg.get("provider")),
        model=str(llm_cfg.get("model")),
        base_url=str(llm_cfg.get("base_url") or ""),
        temperature=float(llm_cfg.get("temperature")),
        max_output_tokens=int(llm_cfg.get("max_output_tokens")),
        timeout_seconds=int(llm_cfg.get("timeout_seconds")),
    )

    images = ImagesConfig(
        imagen_model=str(images_cfg.get("imagen_model")),
        imagen_aspect_ratio=str(images_cfg.get("imagen_aspect_ratio")),
        media_url_prefix=str(images_cfg.get("media_url_prefix")),
        unsplash_url=str(images_cfg.get("unsplash_url")),
        fallback_images=list(images_cfg.get("fallback_images")),
    )

    return Config(
        app=app,
        paths=paths,
        publishing=publishing,
        http=http,
        pulse=pulse,
        engine=engine,
        llm=llm,
        images=images,
    )


def _deep_copy(value: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(value))
