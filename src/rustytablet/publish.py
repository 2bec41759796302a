from __future__ import annotations

import os
from typing import Any

import yaml


def _safe_filename(post: dict[str, Any]) -> str:
    date_part = str(post.get("created_at") or "").split("T")[0] or "undated"
    return f"{date_part}-{post['slug']}.md"


def write_post_markdown(
    post: dict[str, Any], output_dir: str, extra_frontmatter: dict[str, object] | None = None
) -> str:
    os.makedirs(output_dir, exist_ok=True)
    filename = _safe_filename(post)
    path = os.path.join(output_dir, filename)
    frontmatter: dict[str, object] = {
        "title": post["title"],
        "date": post.get("created_at"),
        "slug": post["slug"],
        "categories": [post["category"]] if post.get("category") else [],
        "author": post.get("author_name"),
        "summary": post.get("excerpt") or "",
        "description": post.get("meta_description") or "",
        "draft": not post.get("is_published", True),
        "featured_image": post.get("featured_image"),
        "source_url": post.get("source_url"),
        "generation_mode": post.get("generation_mode"),
    }
    if post.get("alt_headlines"):
        frontmatter["alt_headlines"] = list(post["alt_headlines"])
    if post.get("social_text"):
        frontmatter["social_text"] = post["social_text"]
    if post.get("chart_data"):
        frontmatter["chart"] = post["chart_data"]
    if extra_frontmatter:
        frontmatter.update(extra_frontmatter)

    lines: list[str] = []
    nut_graph = (post.get("nut_graph") or "").strip()
    if nut_graph:
        lines.extend([f"> **Why it matters:** {nut_graph}", ""])
    lines.append(str(post.get("content") or "").strip())
    sidebar = post.get("sidebar_content") or {}
    items = (sidebar.get("items") or []) if isinstance(sidebar, dict) else []
    if items:
        lines.extend(["", f"## {sidebar.get('title') or 'Fast Facts'}", ""])
        lines.extend(f"- {item}" for item in items)
    body = "\n".join(lines) + "\n"

    content = "---\n"
    content += yaml.safe_dump(
        frontmatter, sort_keys=False, allow_unicode=False, default_flow_style=False
    )
    content += "---\n\n"
    content += body
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(content)
    return path
