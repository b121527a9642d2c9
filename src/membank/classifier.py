"""Content classifier.

Assigns free-form text to a content category using ordered keyword rules.
Rules are checked most specific first and the first rule with any match
wins. Project-overview language overlaps with nearly everything, so the
brief rule is checked last.

Matching is boundary-aware: a pattern must appear as a whole word or phrase,
optionally followed by a plural/verb suffix (s, es, ed, ing). "build" matches
"builds" and "building" but not "rebuild" or "buildkite".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache

from .models import ClassificationResult, ContentCategory


@dataclass(frozen=True)
class CategoryRule:
    category: ContentCategory
    content_patterns: tuple[str, ...]
    filename_patterns: tuple[str, ...]


# Priority order: first match wins
CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(
        ContentCategory.PROGRESS,
        (
            "progress", "status", "done", "completed", "milestone", "phase",
            "what works", "what's left", "current status", "known issues",
            "timeline", "roadmap", "next steps", "todo", "remaining work",
        ),
        ("progress", "status", "roadmap", "timeline"),
    ),
    CategoryRule(
        ContentCategory.TECHNICAL,
        (
            "javascript", "typescript", "react", "vue", "angular", "node.js",
            "html", "css", "framework", "library", "dependency", "package.json",
            "npm", "yarn", "webpack", "vite", "build", "deployment", "ci/cd",
            "browser support", "performance", "lighthouse", "optimization",
        ),
        ("tech", "technology", "stack", "setup", "config", "env"),
    ),
    CategoryRule(
        ContentCategory.ARCHITECTURAL,
        (
            "architecture", "design pattern", "component", "module", "class",
            "interface", "api design", "data flow", "system design", "mvc",
            "mvvm", "microservices", "monolith", "database schema",
            "authentication", "authorization", "security", "scalability",
        ),
        ("architecture", "design", "pattern", "system", "api"),
    ),
    CategoryRule(
        ContentCategory.PRODUCT,
        (
            "user problem", "pain point", "user experience", "ux", "ui",
            "persona", "user journey", "workflow", "use case", "user story",
            "target audience", "market need", "business value", "customer",
        ),
        ("user", "ux", "product", "customer", "market"),
    ),
    CategoryRule(
        ContentCategory.PROJECT,
        (
            "project brief", "project overview", "core requirements",
            "project goals", "success criteria", "project scope",
            "definition of done",
        ),
        ("brief", "overview", "requirements", "goals"),
    ),
)

ANALYSIS_PATTERNS = ("analysis", "comparison", "assessment", "evaluation")

COMMON_WORDS = frozenset(
    {
        "this", "that", "with", "have", "will", "from", "they", "know",
        "want", "been", "good", "much", "some", "time", "very", "when",
        "come", "here", "just", "like", "long", "make", "many", "over",
        "such", "take", "than", "them", "well", "were",
    }
)

_NON_WORD = re.compile(r"[^\w\s]")
_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_FILENAME_SEPARATORS = re.compile(r"[^a-z0-9]+")


@lru_cache(maxsize=512)
def _pattern_regex(pattern: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(pattern)}(?:s|es|ed|ing)?(?!\w)")


def find_matches(text: str, patterns: tuple[str, ...]) -> list[str]:
    """Patterns that occur in text (already lowercased) on word boundaries."""
    return [p for p in patterns if _pattern_regex(p).search(text)]


def _filename_text(file_name: str) -> str:
    # "userStories.md" -> "user stories md"
    spaced = _CAMEL_BOUNDARY.sub(r"\1 \2", file_name)
    return _FILENAME_SEPARATORS.sub(" ", spaced.lower()).strip()


def extract_keywords(text: str) -> set[str]:
    """Significant words: longer than three characters and not common English."""
    words = _NON_WORD.sub(" ", text.lower()).split()
    return {w for w in words if len(w) > 3 and w not in COMMON_WORDS}


def is_analysis(file_name: str, content: str) -> bool:
    """True when the text presents itself as an analysis, comparison or evaluation."""
    return bool(
        find_matches(_filename_text(file_name), ANALYSIS_PATTERNS)
        or find_matches(content.lower(), ANALYSIS_PATTERNS)
    )


def classify_content(file_name: str, content: str) -> ClassificationResult:
    """Classify text into a content category.

    Args:
        file_name: Candidate filename supplied by the caller (may be empty).
        content: The text to classify.

    Returns:
        ClassificationResult. Text that matches no rule is `active`.
    """
    lowered = content.lower()
    name_text = _filename_text(file_name or "")

    category = ContentCategory.ACTIVE
    matched: list[str] = []
    for rule in CATEGORY_RULES:
        matched = find_matches(lowered, rule.content_patterns)
        matched += [
            p for p in find_matches(name_text, rule.filename_patterns) if p not in matched
        ]
        if matched:
            category = rule.category
            break

    return ClassificationResult(
        category=category,
        keywords=extract_keywords(content),
        is_analysis=is_analysis(file_name or "", content),
        matched_terms=matched,
    )
