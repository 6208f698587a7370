from __future__ import annotations

import pytest

from catfish.services import classifier
from catfish.services.classifier import ContentCategory, analyze


DOCUMENT_TEXT = (
    "The quarterly review went better than anyone expected this year. "
    "Our team shipped the new onboarding flow and customers noticed right away. "
    "Next quarter we want to focus on reliability and documentation."
)


@pytest.mark.parametrize(
    ("text", "category", "confidence"),
    [
        ("def handler(event):\n    return event", ContentCategory.CODE, 0.8),
        (DOCUMENT_TEXT, ContentCategory.DOCUMENT, 0.7),
        ("Revenue: 1200 on 2024-01-31", ContentCategory.DATA, 0.7),
        ("Permission denied while opening the file", ContentCategory.ERROR, 0.9),
        ("hello there", ContentCategory.GENERAL, 0.5),
        ("", ContentCategory.GENERAL, 0.5),
    ],
)
def test_screen_text_rules(text: str, category: ContentCategory, confidence: float) -> None:
    analysis = analyze(text)

    assert analysis.category == category
    assert analysis.confidence == pytest.approx(confidence)


def test_first_matching_rule_wins() -> None:
    # Code and error patterns both match; code is earlier in the rule list.
    analysis = analyze("const value = undefined;")

    assert analysis.category == ContentCategory.CODE


def test_question_transcript_boosts_confidence_and_prepends_action() -> None:
    analysis = analyze("Permission denied", transcript="how do I fix this?")

    assert analysis.suggested_actions[0] == "answer question"
    assert analysis.confidence == pytest.approx(1.0)


def test_command_transcript_prepends_before_question() -> None:
    analysis = analyze("hello there", transcript="explain what happened?")

    assert analysis.suggested_actions[:2] == ["execute command", "answer question"]
    assert analysis.confidence == pytest.approx(0.8)


def test_clipboard_adds_url_and_code_actions_without_duplicates() -> None:
    analysis = analyze(
        "print(x)",
        clipboard="https://example.com/docs",
    )
    assert analysis.suggested_actions[-1] == "analyze URL"

    code_clip = analyze("hello there", clipboard="let x = 1")
    assert code_clip.suggested_actions == ["analyze copied code"]

    assert len(analysis.suggested_actions) == len(set(analysis.suggested_actions))


def test_predicates() -> None:
    assert classifier.is_question("Can you summarize this")
    assert not classifier.is_question("Summarize this")
    assert classifier.is_command("  search for flights")
    assert classifier.is_url("https://example.com")
    assert not classifier.is_url("just some words")
    assert not classifier.is_document("short. text.")



def test_analysis_as_dict_uses_wire_names() -> None:
    payload = analyze("def f(x): pass").as_dict()

    assert payload["contentType"] == "code"
    assert payload["primaryContext"] == "code analysis and debugging"
    assert "explain code" in payload["suggestedActions"]
