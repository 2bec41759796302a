import json

import pytest

from rustytablet.engine.errors import GenerationError
from rustytablet.engine.writer import build_prompt, clean_json_text, parse_draft


def test_parse_draft_strips_fences_and_fills_defaults():
    raw = "```json\n" + json.dumps({"title": "Bridges Rust Faster", "content": "Body"}) + "\n```"
    draft = parse_draft(raw)

    assert draft["title"] == "Bridges Rust Faster"
    assert draft["author_name"] == "Rusty Tablet Staff"
    assert draft["author_role"] == "Contributor"
    assert draft["category"] == "Dispatches"
    assert draft["slug"] == "bridges-rust-faster"
    assert draft["alt_headlines"] == []
    assert draft["chart_data"] is None


def test_category_is_single_word():
    draft = parse_draft(json.dumps({"title": "T", "content": "C", "category": "Tech/Science"}))
    assert draft["category"] == "Tech"


def test_missing_content_is_rejected():
    with pytest.raises(GenerationError, match="validation"):
        parse_draft(json.dumps({"title": "Only a title"}))


def test_bad_chart_is_rejected():
    payload = {"title": "T", "content": "C", "chart_data": {"type": "DONUT", "data": []}}
    with pytest.raises(GenerationError):
        parse_draft(json.dumps(payload))


@pytest.mark.parametrize("raw", ["", "   ", "not json", "[1, 2]"])
def test_unusable_text_is_rejected(raw):
    with pytest.raises(GenerationError):
        parse_draft(raw)


def test_clean_json_text():
    assert clean_json_text("```JSON\n{}\n```") == "{}"


def test_build_prompt_carries_configuration():
    prompt = build_prompt(
        "x" * 50,
        {
            "target_region": "JP",
            "word_count": 1200,
            "article_sentiment": "Cynical",
            "complexity": "TECHNICAL",
            "include_sidebar": False,
        },
        char_limit=10,
    )
    assert "Region/Persona: JP" in prompt
    assert "~1200 words" in prompt
    assert "Sentiment: Cynical" in prompt
    assert "Reading Level: TECHNICAL" in prompt
    assert "Return null for sidebar_content" in prompt
    assert "[IMAGE: keyword for photo search]" in prompt
    assert "x" * 11 not in prompt
