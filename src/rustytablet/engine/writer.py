from __future__ import annotations

import json
import logging
import re
from typing import Any

import jsonschema

from ..config import Config
from ..llm.router import generate_text
from ..services.credentials import LLM_PROVIDER_CREDENTIALS, require_credential
from ..utils import log_event, slugify, truncate
from .errors import GenerationError

DEFAULT_AUTHOR = "Rusty Tablet Staff"
DEFAULT_ROLE = "Contributor"
DEFAULT_CATEGORY = "Dispatches"

DEFAULT_LAYOUT = """
    - Start with a "Nut Graph" (Why this matters).
    - Use a "Key Takeaways" bullet list.
    - Main Analysis (Broken into subsections).
    - "Public Sentiment" section (Synthesized quotes).
    - Conclusion.
"""

DRAFT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["title", "content"],
    "properties": {
        "author_name": {"type": ["string", "null"]},
        "author_role": {"type": ["string", "null"]},
        "title": {"type": "string", "minLength": 1},
        "alt_headlines": {"type": ["array", "null"], "items": {"type": "string"}},
        "slug": {"type": ["string", "null"]},
        "category": {"type": ["string", "null"]},
        "excerpt": {"type": ["string", "null"]},
        "nut_graph": {"type": ["string", "null"]},
        "content": {"type": "string", "minLength": 1},
        "sidebar_content": {
            "type": ["object", "null"],
            "properties": {
                "title": {"type": "string"},
                "items": {"type": "array", "items": {"type": "string"}},
            },
        },
        "meta_description": {"type": ["string", "null"]},
        "social_text": {"type": ["string", "null"]},
        "image_keywords": {"type": ["string", "null"]},
        "chart_data": {
            "type": ["object", "null"],
            "required": ["type", "data"],
            "properties": {
                "type": {"enum": ["BAR", "PIE", "LINE"]},
                "title": {"type": "string"},
                "data": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["label", "value"],
                        "properties": {
                            "label": {"type": "string"},
                            "value": {"type": "number"},
                        },
                    },
                },
            },
        },
    },
}

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def build_prompt(context: str, job_config: dict[str, Any], char_limit: int = 10000) -> str:
    word_count = job_config.get("word_count") or 800
    region = job_config.get("target_region") or "Global"
    sentiment = job_config.get("article_sentiment") or "Objective"
    complexity = job_config.get("complexity") or "GENERAL"
    layout = job_config.get("layout_instructions") or DEFAULT_LAYOUT
    include_sidebar = job_config.get("include_sidebar", True)
    generate_social = job_config.get("generate_social", True)

    sidebar_rule = (
        '5. **Sidebar:** Create a "Fast Facts" or "Timeline" sidebar box content.'
        if include_sidebar
        else "5. **Sidebar:** Not needed. Return null for sidebar_content."
    )
    social_rule = (
        "6. **SEO/Social:** Write a Google Meta Description and a Viral Tweet."
        if generate_social
        else "6. **SEO/Social:** Write a Google Meta Description. Return null for social_text."
    )

    return f"""
    You are a senior editor for "Rusty Tablet", a prestigious digital newspaper.

    SOURCE CONTEXT:
    "{truncate(context, char_limit)}"

    CONFIGURATION:
    - Region/Persona: {region}
    - Word Count: ~{word_count} words
    - Sentiment: {sentiment}
    - Reading Level: {complexity} (EASY = Grade 8, GENERAL = NYT Style, TECHNICAL = Academic)

    MANDATORY INSTRUCTIONS (THE TABLOID METHOD):
    1. **Persona:** Create a fictional Author Name & Role based on the Region.
    2. **Headlines:** Generate a main headline that is catchy/viral but accurate. Also generate 3 alternative headlines.
    3. **Nut Graph:** Explicitly write a "Why it matters" paragraph explaining the impact of this story.
    4. **Public Sentiment:** Synthesize a realistic "Public Reaction" based on typical discourse on this topic (do not invent specific real people, summarize the mood).
    {sidebar_rule}
    {social_rule}
    7. **Visuals:**
       - **Inline Images:** Insert exactly 2 placeholders in the markdown body where an image would be relevant. Format: [IMAGE: keyword for photo search].
       - **Data Chart:** If numerical data exists in the context (percentages, years, comparisons), generate a JSON object for a chart (BAR, LINE, or PIE). If no data, return null for chart_data.

    LAYOUT INSTRUCTIONS:
    {layout}

    Output Format: JSON ONLY.

    JSON SCHEMA:
    {{
      "author_name": "String",
      "author_role": "String",
      "title": "String (Main Headline)",
      "alt_headlines": ["String", "String", "String"],
      "slug": "kebab-case-string",
      "category": "String (Single Word Only, No slashes, e.g. 'Politics', 'Technology')",
      "excerpt": "String (2 sentences)",
      "nut_graph": "String (Why it matters)",
      "content": "Markdown String (The main article body with [IMAGE: keyword] placeholders)",
      "sidebar_content": {{"title": "String", "items": ["String", "String", "String"]}},
      "meta_description": "String (SEO)",
      "social_text": "String (Viral Post)",
      "image_keywords": "String (photo search query for the cover image)",
      "chart_data": {{"type": "BAR" | "PIE" | "LINE", "title": "String", "data": [{{"label": "String", "value": Number}}]}} | null
    }}
    """


def clean_json_text(raw: str) -> str:
    return _FENCE_RE.sub("", raw).strip()


def parse_draft(raw: str) -> dict[str, Any]:
    if not raw or not raw.strip():
        raise GenerationError("LLM produced no text")
    cleaned = clean_json_text(raw)
    try:
        draft = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise GenerationError("Failed to parse AI response as JSON") from exc
    if not isinstance(draft, dict):
        raise GenerationError("AI response is not a JSON object")
    try:
        jsonschema.validate(draft, DRAFT_SCHEMA)
    except jsonschema.ValidationError as exc:
        raise GenerationError(f"AI draft failed validation: {exc.message}") from exc
    return normalize_draft(draft)


def normalize_draft(draft: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(draft)
    normalized["author_name"] = (draft.get("author_name") or "").strip() or DEFAULT_AUTHOR
    normalized["author_role"] = (draft.get("author_role") or "").strip() or DEFAULT_ROLE
    category = (draft.get("category") or "").strip()
    # single word, no slashes
    category = category.replace("/", " ").split()[0] if category else ""
    normalized["category"] = category or DEFAULT_CATEGORY
    normalized["slug"] = slugify(draft.get("slug") or draft["title"])
    normalized["alt_headlines"] = list(draft.get("alt_headlines") or [])
    normalized["chart_data"] = draft.get("chart_data") or None
    normalized["sidebar_content"] = draft.get("sidebar_content") or None
    return normalized


def write_draft(
    conn,
    config: Config,
    context: str,
    job_config: dict[str, Any],
    logger: logging.Logger,
) -> dict[str, Any]:
    credential_name = LLM_PROVIDER_CREDENTIALS.get(config.llm.provider)
    if credential_name is None:
        raise GenerationError(f"Unsupported LLM provider: {config.llm.provider}")
    api_key = require_credential(conn, credential_name)
    prompt = build_prompt(context, job_config, config.engine.context_char_limit)
    raw = generate_text(config.llm, api_key, prompt, logger=logger)
    draft = parse_draft(raw)
    log_event(
        logger,
        logging.INFO,
        "draft_written",
        title=draft["title"],
        category=draft["category"],
        has_chart=bool(draft.get("chart_data")),
    )
    return draft
