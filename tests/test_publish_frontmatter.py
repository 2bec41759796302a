from pathlib import Path

import yaml

from rustytablet.publish import write_post_markdown

POST = {
    "title": "Rust Belt Revival",
    "slug": "rust-belt-revival-1234",
    "created_at": "2025-03-01T08:00:00.000+00:00",
    "category": "Business",
    "author_name": "Marta Okafor",
    "excerpt": "Factories reopen.",
    "meta_description": "Factories reopen across the region.",
    "is_published": True,
    "featured_image": "https://images.example/cover.jpg",
    "source_url": "https://wire.example/story",
    "generation_mode": "NEWS_API_AI",
    "nut_graph": "Jobs are coming back.",
    "content": "## Heading\n\nBody text.",
    "sidebar_content": {"title": "By the Numbers", "items": ["3 plants", "1,200 jobs"]},
    "social_text": "Factories are back.",
}


def _split(path):
    content = Path(path).read_text(encoding="utf-8")
    parts = content.split("---\n")
    assert len(parts) >= 3
    return yaml.safe_load(parts[1]), "---\n".join(parts[2:])


def test_frontmatter_fields(tmp_path):
    path = write_post_markdown(POST, str(tmp_path / "posts"))
    assert Path(path).name == "2025-03-01-rust-belt-revival-1234.md"

    frontmatter, _ = _split(path)
    assert frontmatter["title"] == "Rust Belt Revival"
    assert frontmatter["categories"] == ["Business"]
    assert frontmatter["source_url"] == "https://wire.example/story"
    assert frontmatter["draft"] is False
    assert frontmatter["social_text"] == "Factories are back."
    assert "chart" not in frontmatter


def test_body_carries_nut_graph_and_sidebar(tmp_path):
    path = write_post_markdown(POST, str(tmp_path))
    _, body = _split(path)
    assert "> **Why it matters:** Jobs are coming back." in body
    assert "## By the Numbers" in body
    assert "- 1,200 jobs" in body
