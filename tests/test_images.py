import random

from rustytablet.engine import images
from rustytablet.engine.images import ImageResolver, store_image_bytes, tier_order


def test_tier_order_hint_moves_tier_first():
    assert tier_order(None) == ["ai", "stock"]
    assert tier_order("unsplash") == ["stock", "ai"]
    assert tier_order("imagen") == ["ai", "stock"]
    assert tier_order("fallback") == ["ai", "stock"]


def test_source_image_wins(conn, config):
    resolver = ImageResolver(conn, config)
    asset = resolver.resolve("harbor", source_image="https://wire.example/a.jpg")
    assert asset.tier == "source"
    assert asset.url == "https://wire.example/a.jpg"


def test_no_credentials_uses_fallback(conn, config):
    resolver = ImageResolver(conn, config, rng=random.Random(4))
    asset = resolver.resolve("harbor")
    assert asset.tier == "fallback"
    assert asset.url in config.images.fallback_images


def test_stock_preferred_over_ai(conn, config, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    monkeypatch.setenv("UNSPLASH_ACCESS_KEY", "u-key")
    calls = []

    def _imagen(config, key, prompt, logger):
        calls.append("ai")
        return b"png"

    def _unsplash(config, key, query, logger):
        calls.append("stock")
        return "https://stock.example/photo"

    monkeypatch.setattr(images, "generate_imagen", _imagen)
    monkeypatch.setattr(images, "search_unsplash", _unsplash)

    asset = ImageResolver(conn, config, preferred="unsplash").resolve("harbor")

    assert asset.tier == "stock"
    assert calls == ["stock"]


def test_preferred_tier_failure_falls_through(conn, config, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    monkeypatch.setenv("UNSPLASH_ACCESS_KEY", "u-key")
    monkeypatch.setattr(images, "search_unsplash", lambda *args: None)
    monkeypatch.setattr(images, "generate_imagen", lambda *args: b"png")

    asset = ImageResolver(conn, config, preferred="unsplash").resolve("harbor")

    assert asset.tier == "ai"
    assert asset.storage_path is not None


def test_fill_placeholders(conn, config):
    resolver = ImageResolver(conn, config, rng=random.Random(1))
    content, assets = resolver.fill_placeholders("A\n[IMAGE: dock cranes ]\nB\n[IMAGE:tug boat]")

    assert len(assets) == 2
    assert f"![dock cranes]({assets[0].url})" in content
    assert f"![tug boat]({assets[1].url})" in content
    assert "[IMAGE" not in content


def test_store_image_bytes(config):
    path, url = store_image_bytes(config, b"data", "Rusty Bolt!")
    assert url.startswith("/media/rusty-bolt-")
    with open(path, "rb") as handle:
        assert handle.read() == b"data"


def test_network_timeouts_fall_back_to_static(conn, config, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    monkeypatch.setenv("UNSPLASH_ACCESS_KEY", "u-key")

    def _timeout(request, timeout=None):
        raise TimeoutError("The read operation timed out")

    monkeypatch.setattr("rustytablet.httpclient.urlopen", _timeout)

    asset = ImageResolver(conn, config, rng=random.Random(2)).resolve("robots")

    assert asset.tier == "fallback"
    assert asset.url in config.images.fallback_images


def test_corrupt_imagen_payload_falls_through_to_stock(conn, config, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    monkeypatch.setenv("UNSPLASH_ACCESS_KEY", "u-key")
    monkeypatch.setattr(
        images,
        "request_json",
        lambda *args, **kwargs: {"predictions": [{"bytesBase64Encoded": "not*base64!"}]},
    )
    monkeypatch.setattr(images, "search_unsplash", lambda *args: "https://stock.example/photo")

    asset = ImageResolver(conn, config).resolve("robots")

    assert asset.tier == "stock"
