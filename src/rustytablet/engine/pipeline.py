from __future__ import annotations

import logging
import random
import time
from typing import Any

from ..config import Config
from ..models import GENERATION_MODES, ImageAsset
from ..publish import write_post_markdown
from ..storage import (
    get_or_create_author,
    insert_post,
    insert_post_image,
    post_slug_exists,
)
from ..utils import log_event, utc_now_iso
from .errors import GenerationError
from .images import ImageResolver
from .sources import resolve_source
from .writer import write_draft


def generate_article(
    conn,
    config: Config,
    job_params: dict[str, Any],
    *,
    logger: logging.Logger | None = None,
    rng: random.Random | None = None,
) -> dict[str, Any]:
    """Run one job descriptor end to end and persist the article.

    Every stage failure is raised as ``GenerationError``; nothing is kept from
    a failed run except images already written to the media directory.
    """
    logger = logger or logging.getLogger("rustytablet.engine")
    mode = job_params.get("mode") if isinstance(job_params, dict) else None
    started = time.monotonic()
    try:
        result = _generate(conn, config, job_params, logger, rng)
    except GenerationError as exc:
        log_event(logger, logging.WARNING, "generation_failed", mode=mode, error=str(exc))
        raise
    except Exception as exc:  # noqa: BLE001
        message = str(exc) or exc.__class__.__name__
        log_event(logger, logging.WARNING, "generation_failed", mode=mode, error=message)
        raise GenerationError(message) from exc
    log_event(
        logger,
        logging.INFO,
        "article_generated",
        mode=mode,
        post_id=result["post_id"],
        title=result["title"],
        elapsed_ms=int((time.monotonic() - started) * 1000),
    )
    return result


def _generate(
    conn,
    config: Config,
    job_params: dict[str, Any],
    logger: logging.Logger,
    rng: random.Random | None,
) -> dict[str, Any]:
    if not isinstance(job_params, dict):
        raise GenerationError("job_params must be an object")
    mode = job_params.get("mode")
    if mode not in GENERATION_MODES:
        raise GenerationError(f"Invalid mode: {mode}")
    job_config = job_params.get("config") or {}
    if not isinstance(job_config, dict):
        raise GenerationError("job_params.config must be an object")

    source = resolve_source(conn, config, mode, job_config, logger=logger, rng=rng)
    draft = write_draft(conn, config, source.text, job_config, logger)

    resolver = ImageResolver(
        conn,
        config,
        preferred=job_config.get("preferred_image_source"),
        logger=logger,
        rng=rng,
    )
    cover_keyword = (draft.get("image_keywords") or draft["title"]).strip()
    cover = resolver.resolve(cover_keyword, source_image=source.source_image)
    content, inline_assets = resolver.fill_placeholders(draft["content"])

    region = job_config.get("target_region") or "Global"
    author_id = get_or_create_author(
        conn, draft["author_name"], draft["author_role"], f"Reporting from {region}."
    )
    post = {
        "title": draft["title"],
        "slug": _unique_slug(conn, draft["slug"]),
        "excerpt": draft.get("excerpt"),
        "content": content,
        "author_id": author_id,
        "category": draft["category"],
        "language": config.publishing.language,
        "featured_image": cover.url,
        "source_url": source.source_url,
        "generation_mode": mode,
        "nut_graph": draft.get("nut_graph"),
        "sidebar_content": draft.get("sidebar_content"),
        "meta_description": draft.get("meta_description"),
        "social_text": draft.get("social_text"),
        "alt_headlines": draft.get("alt_headlines"),
        "chart_data": draft.get("chart_data"),
        "is_published": True,
        "created_at": utc_now_iso(),
    }
    try:
        post_id = insert_post(conn, post)
        _record_images(conn, post_id, cover, inline_assets)
        if config.publishing.write_markdown:
            write_post_markdown(
                {**post, "id": post_id, "author_name": draft["author_name"]},
                config.paths.output_dir,
            )
        conn.commit()
    except Exception:
        conn.rollback()
        raise

    return {
        "success": True,
        "post_id": post_id,
        "title": draft["title"],
        "author": draft["author_name"],
        "category": draft["category"],
        "has_chart": bool(draft.get("chart_data")),
        "tabloid_features": {
            "has_sidebar": bool(draft.get("sidebar_content")),
            "has_social": bool(draft.get("social_text")),
        },
    }


def _record_images(
    conn, post_id: int, cover: ImageAsset, inline_assets: list[ImageAsset]
) -> None:
    insert_post_image(
        conn, post_id, "cover", cover.tier, cover.url, cover.keyword, cover.storage_path
    )
    for asset in inline_assets:
        insert_post_image(
            conn, post_id, "inline", asset.tier, asset.url, asset.keyword, asset.storage_path
        )


def _unique_slug(conn, base: str) -> str:
    suffix = str(int(time.time() * 1000))[-4:]
    slug = f"{base}-{suffix}"
    counter = 2
    while post_slug_exists(conn, slug):
        slug = f"{base}-{suffix}-{counter}"
        counter += 1
    return slug
