from __future__ import annotations

import base64
import binascii
import logging
import os
import random
import re
import urllib.parse
import uuid
from typing import Callable

from ..config import Config
from ..httpclient import HttpCallError, request_json
from ..models import ImageAsset
from ..services.credentials import get_credential
from ..utils import log_event, slugify

TIER_SOURCE = "source"
TIER_AI = "ai"
TIER_STOCK = "stock"
TIER_FALLBACK = "fallback"

PLACEHOLDER_RE = re.compile(r"\[IMAGE:\s*([^\]]+?)\s*\]")

IMAGEN_STYLE = "Photorealistic, cinematic, high contrast, industrial journalism style"

_PREFERENCE_TIERS = {
    "imagen": TIER_AI,
    "ai": TIER_AI,
    "unsplash": TIER_STOCK,
    "stock": TIER_STOCK,
}


def tier_order(preferred: str | None) -> list[str]:
    """Order of the generated tiers for one image.

    The preferred source only moves its tier to the front; no tier is ever
    dropped, and the static fallback always comes last.
    """
    order = [TIER_AI, TIER_STOCK]
    hinted = _PREFERENCE_TIERS.get((preferred or "").strip().lower())
    if hinted:
        order.remove(hinted)
        order.insert(0, hinted)
    return order


def generate_imagen(
    config: Config, api_key: str, prompt: str, logger: logging.Logger
) -> bytes | None:
    base_url = "https://generativelanguage.googleapis.com/v1beta"
    model = urllib.parse.quote(config.images.imagen_model)
    url = f"{base_url}/models/{model}:predict?key={urllib.parse.quote(api_key)}"
    payload = {
        "instances": [{"prompt": f"{IMAGEN_STYLE}: {prompt}. 8k resolution, highly detailed."}],
        "parameters": {"sampleCount": 1, "aspectRatio": config.images.imagen_aspect_ratio},
    }
    try:
        data = request_json("POST", url, payload=payload, timeout=config.llm.timeout_seconds)
    except HttpCallError as exc:
        log_event(logger, logging.WARNING, "imagen_failed", error=str(exc)[:200])
        return None
    predictions = data.get("predictions") or []
    encoded = predictions[0].get("bytesBase64Encoded") if predictions else None
    if not encoded:
        log_event(logger, logging.WARNING, "imagen_empty", prompt=prompt[:80])
        return None
    try:
        return base64.b64decode(encoded, validate=True)
    except (ValueError, binascii.Error) as exc:
        log_event(logger, logging.WARNING, "imagen_decode_failed", error=str(exc)[:200])
        return None


def store_image_bytes(config: Config, data: bytes, keyword: str) -> tuple[str, str]:
    os.makedirs(config.paths.media_dir, exist_ok=True)
    filename = f"{slugify(keyword, max_length=40)}-{uuid.uuid4().hex[:8]}.png"
    path = os.path.join(config.paths.media_dir, filename)
    with open(path, "wb") as handle:
        handle.write(data)
    url = f"{config.images.media_url_prefix.rstrip('/')}/{filename}"
    return path, url


def search_unsplash(
    config: Config, api_key: str, query: str, logger: logging.Logger
) -> str | None:
    params = urllib.parse.urlencode(
        {"query": query, "orientation": "landscape", "per_page": 1}
    )
    url = f"{config.images.unsplash_url}?{params}"
    try:
        data = request_json(
            "GET",
            url,
            headers={"Authorization": f"Client-ID {api_key}"},
            timeout=config.http.timeout_seconds,
        )
    except HttpCallError as exc:
        log_event(logger, logging.WARNING, "unsplash_failed", error=str(exc)[:200])
        return None
    results = data.get("results") or []
    if not results:
        log_event(logger, logging.WARNING, "unsplash_empty", query=query)
        return None
    return (results[0].get("urls") or {}).get("regular")


def pick_fallback_image(config: Config, rng: random.Random | None = None) -> str:
    return (rng or random).choice(config.images.fallback_images)


class ImageResolver:
    """Walks the image tiers for one article.

    Credentials are looked up once; a tier without its key is skipped.
    """

    def __init__(
        self,
        conn,
        config: Config,
        *,
        preferred: str | None = None,
        logger: logging.Logger | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.logger = logger or logging.getLogger("rustytablet.engine")
        self.rng = rng
        self.order = tier_order(preferred)
        self.gemini_key = get_credential(conn, "GEMINI_API_KEY")
        self.unsplash_key = get_credential(conn, "UNSPLASH_ACCESS_KEY")

    def resolve(self, keyword: str, source_image: str | None = None) -> ImageAsset:
        if source_image:
            return ImageAsset(url=source_image, tier=TIER_SOURCE, keyword=keyword)
        handlers: dict[str, Callable[[str], ImageAsset | None]] = {
            TIER_AI: self._from_ai,
            TIER_STOCK: self._from_stock,
        }
        for tier in self.order:
            asset = handlers[tier](keyword)
            if asset is not None:
                return asset
        log_event(self.logger, logging.INFO, "image_fallback_used", keyword=keyword)
        return ImageAsset(
            url=pick_fallback_image(self.config, self.rng), tier=TIER_FALLBACK, keyword=keyword
        )

    def _from_ai(self, keyword: str) -> ImageAsset | None:
        if not self.gemini_key:
            return None
        data = generate_imagen(self.config, self.gemini_key, keyword, self.logger)
        if not data:
            return None
        path, url = store_image_bytes(self.config, data, keyword)
        return ImageAsset(url=url, tier=TIER_AI, keyword=keyword, storage_path=path)

    def _from_stock(self, keyword: str) -> ImageAsset | None:
        if not self.unsplash_key:
            return None
        url = search_unsplash(self.config, self.unsplash_key, keyword, self.logger)
        if not url:
            return None
        return ImageAsset(url=url, tier=TIER_STOCK, keyword=keyword)

    def fill_placeholders(self, content: str) -> tuple[str, list[ImageAsset]]:
        assets: list[ImageAsset] = []

        def _replace(match: re.Match[str]) -> str:
            keyword = match.group(1).strip()
            asset = self.resolve(keyword)
            assets.append(asset)
            return f"![{keyword}]({asset.url})"

        return PLACEHOLDER_RE.sub(_replace, content), assets
