"""Merge new text into an existing canonical file.

Strategies:
- replace: new text verbatim
- append: existing + separator + new
- structural_merge: merge "## " sections by name, new wins on collision;
  texts that share too few words are appended under "## Additional Content"
  instead, since merging unrelated sections produces noise

Non-replace strategies skip text that is already one of the file's blocks (an
appended entry, the preamble or a section body), so writing the same content
repeatedly converges instead of growing without bound. A fragment that only
occurs inside a longer block is still merged.
"""

from __future__ import annotations

import re

from .config import APPEND_SEPARATOR, MERGE_SIMILARITY_THRESHOLD
from .models import MergeStrategy
from .templates import TEMPLATE_MARKER

ADDITIONAL_CONTENT_HEADING = "## Additional Content"

_SECTION_HEADING = re.compile(r"^## +(.+?)\s*$")

Section = tuple[str | None, str]


def jaccard_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the lowercase whitespace-token sets of a and b."""
    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    if not words_a and not words_b:
        return 1.0
    return len(words_a & words_b) / len(words_a | words_b)


def extract_sections(text: str) -> list[Section]:
    """Split text into ordered (name, body) pairs on "## " headings.

    Text before the first heading becomes a section named None. Bodies keep
    their inner formatting but are stripped of surrounding blank lines.
    """
    sections: list[Section] = []
    name: str | None = None
    lines: list[str] = []

    for line in text.splitlines():
        match = _SECTION_HEADING.match(line)
        if match:
            if name is not None or "\n".join(lines).strip():
                sections.append((name, "\n".join(lines).strip("\n")))
            name = match.group(1)
            lines = []
        else:
            lines.append(line)

    if name is not None or "\n".join(lines).strip():
        sections.append((name, "\n".join(lines).strip("\n")))
    return sections


def render_sections(sections: list[Section]) -> str:
    parts = []
    for name, body in sections:
        if name is None:
            parts.append(body)
        elif body:
            parts.append(f"## {name}\n\n{body}")
        else:
            parts.append(f"## {name}")
    return "\n\n".join(part for part in parts if part) + "\n"


def _structural_merge(existing: str, new: str) -> str:
    if jaccard_similarity(existing, new) < MERGE_SIMILARITY_THRESHOLD:
        return f"{existing.rstrip()}\n\n{ADDITIONAL_CONTENT_HEADING}\n\n{new.strip()}\n"

    merged = extract_sections(existing)
    index = {name: i for i, (name, _) in enumerate(merged)}

    for name, body in extract_sections(new):
        if name in index:
            merged[index[name]] = (name, body)
        else:
            index[name] = len(merged)
            merged.append((name, body))
    return render_sections(merged)


def _blocks(text: str) -> set[str]:
    blocks = {text.strip()}
    for entry in text.split(APPEND_SEPARATOR):
        blocks.add(entry.strip())
        for name, body in extract_sections(entry):
            blocks.add(body.strip())
            if name is not None:
                blocks.add(render_sections([(name, body)]).strip())
    blocks.discard("")
    return blocks


def _is_duplicate(existing: str, new: str) -> bool:
    return new.strip() in _blocks(existing)


def merge_content(existing: str, new: str, strategy: MergeStrategy) -> str:
    """Combine new text with a destination file's current body."""
    if strategy == MergeStrategy.REPLACE or not existing.strip():
        return new

    if _is_duplicate(existing, new):
        return existing

    if strategy == MergeStrategy.APPEND:
        return existing.rstrip() + APPEND_SEPARATOR + new.strip() + "\n"
    return _structural_merge(existing, new)


def is_template_content(text: str) -> bool:
    """True for a canonical file nobody has written into yet."""
    return text.lstrip().startswith(TEMPLATE_MARKER)
