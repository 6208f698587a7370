"""Heuristic content classification for assistant prompts.

Screen text is matched against an ordered rule list; the first rule whose
predicate fires decides the category. Transcript and clipboard text only
adjust the suggested actions and confidence.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence
from urllib.parse import urlsplit


class ContentCategory(str, Enum):
    CODE = "code"
    DOCUMENT = "document"
    DATA = "data"
    ERROR = "error"
    GENERAL = "general"


_CODE_PATTERNS = [
    re.compile(r"function\s+\w+\("),
    re.compile(r"class\s+\w+"),
    re.compile(r"import\s+.*from"),
    re.compile(r"const\s+\w+\s*="),
    re.compile(r"let\s+\w+\s*="),
    re.compile(r"var\s+\w+\s*="),
    re.compile(r"def\s+\w+\("),
    re.compile(r"public\s+class"),
    re.compile(r"private\s+\w+"),
    re.compile(r"\{[\s\S]*\}"),
    re.compile(r"\[\s*\w+\s*\]"),
    re.compile(r"console\.log\("),
    re.compile(r"print\("),
    re.compile(r"if\s*\(.*\)\s*\{"),
    re.compile(r"for\s*\(.*\)\s*\{"),
    re.compile(r"while\s*\(.*\)\s*\{"),
]

_DATA_PATTERNS = [
    re.compile(r"\d+[\s,]\d+[\s,]\d+"),
    re.compile(r"\|\s*\w+\s*\|\s*\w+\s*\|"),
    re.compile(r"\w+:\s*\d+"),
    re.compile(r"\d+\.\d+%"),
    re.compile(r"\$\d+"),
    re.compile(r"\d{4}-\d{2}-\d{2}"),
]

_ERROR_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"error:",
        r"exception:",
        r"failed",
        r"cannot",
        r"unable to",
        r"not found",
        r"permission denied",
        r"syntax error",
        r"undefined",
        r"null pointer",
        r"stack trace",
    )
]

_COMMAND_PATTERNS = [
    re.compile(r"^(show|open|close|create|delete|run|execute|help)", re.IGNORECASE),
    re.compile(r"^(explain|analyze|debug|fix|improve)", re.IGNORECASE),
    re.compile(r"^(find|search|look for)", re.IGNORECASE),
]

_QUESTION_PREFIXES = ("what", "how", "why", "when", "where", "can you")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def is_code(text: str) -> bool:
    return any(pattern.search(text) for pattern in _CODE_PATTERNS)


def is_document(text: str) -> bool:
    sentences = [s for s in _SENTENCE_SPLIT_RE.split(text) if len(s.strip()) > 10]
    words = len(text.split())
    return len(sentences) >= 2 and words >= 20 and not is_code(text)


def is_data(text: str) -> bool:
    return any(pattern.search(text) for pattern in _DATA_PATTERNS)


def is_error(text: str) -> bool:
    return any(pattern.search(text) for pattern in _ERROR_PATTERNS)


def is_question(text: str) -> bool:
    lowered = text.lower()
    return text.strip().endswith("?") or lowered.startswith(_QUESTION_PREFIXES)


def is_command(text: str) -> bool:
    stripped = text.strip()
    return any(pattern.search(stripped) for pattern in _COMMAND_PATTERNS)


def is_url(text: str) -> bool:
    parts = urlsplit(text.strip())
    return bool(parts.scheme and (parts.netloc or parts.scheme in {"mailto", "file", "data"}))


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    predicate: Callable[[str], bool]
    category: ContentCategory
    confidence: float
    primary_context: str
    suggested_actions: tuple[str, ...]


# Evaluated in order; the first matching rule wins.
SCREEN_RULES: Sequence[ClassificationRule] = (
    ClassificationRule(
        is_code,
        ContentCategory.CODE,
        0.8,
        "code analysis and debugging",
        ("explain code", "find bugs", "suggest improvements", "add comments"),
    ),
    ClassificationRule(
        is_document,
        ContentCategory.DOCUMENT,
        0.7,
        "document editing and analysis",
        ("improve writing", "check grammar", "summarize content", "suggest edits"),
    ),
    ClassificationRule(
        is_data,
        ContentCategory.DATA,
        0.7,
        "data analysis and interpretation",
        ("analyze data", "find patterns", "suggest visualizations", "explain trends"),
    ),
    ClassificationRule(
        is_error,
        ContentCategory.ERROR,
        0.9,
        "error diagnosis and troubleshooting",
        ("diagnose error", "suggest fixes", "explain cause", "provide solutions"),
    ),
)

_INSTRUCTIONS = {
    ContentCategory.CODE: (
        "Focus on code analysis, debugging, and improvement suggestions. "
        "Be specific about potential issues and provide actionable fixes."
    ),
    ContentCategory.DOCUMENT: (
        "Focus on content improvement, grammar, clarity, and structure. "
        "Provide specific editing suggestions."
    ),
    ContentCategory.DATA: (
        "Focus on data interpretation, patterns, and insights. "
        "Suggest ways to analyze or visualize the data."
    ),
    ContentCategory.ERROR: (
        "Focus on error diagnosis and resolution. Provide step-by-step troubleshooting guidance."
    ),
    ContentCategory.GENERAL: (
        "Provide helpful, contextual assistance based on the content. Be concise and actionable."
    ),
}


@dataclass(slots=True)
class ContentAnalysis:
    category: ContentCategory = ContentCategory.GENERAL
    primary_context: str = "general assistance"
    suggested_actions: list[str] = field(default_factory=list)
    confidence: float = 0.5

    def as_dict(self) -> dict:
        return {
            "contentType": self.category.value,
            "primaryContext": self.primary_context,
            "suggestedActions": list(self.suggested_actions),
            "confidence": round(self.confidence, 3),
        }


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def analyze(screen_text: str, transcript: str = "", clipboard: str = "") -> ContentAnalysis:
    analysis = ContentAnalysis()
    if screen_text:
        for rule in SCREEN_RULES:
            if rule.predicate(screen_text):
                analysis.category = rule.category
                analysis.primary_context = rule.primary_context
                analysis.suggested_actions = list(rule.suggested_actions)
                analysis.confidence = rule.confidence
                break

    if transcript:
        if is_question(transcript):
            analysis.suggested_actions.insert(0, "answer question")
            analysis.confidence = min(analysis.confidence + 0.2, 1.0)
        if is_command(transcript):
            analysis.suggested_actions.insert(0, "execute command")
            analysis.confidence = min(analysis.confidence + 0.1, 1.0)

    if clipboard:
        if is_url(clipboard):
            analysis.suggested_actions.append("analyze URL")
        if is_code(clipboard):
            analysis.suggested_actions.append("analyze copied code")

    analysis.suggested_actions = _dedupe(analysis.suggested_actions)
    return analysis


def instructions_for(category: ContentCategory) -> str:
    return _INSTRUCTIONS[category]
