"""Content router: pick the canonical file and merge strategy for new text."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .classifier import classify_content
from .config import (
    LARGE_CONTENT_WORDS,
    ROUTING_ALIGNMENT_BONUS,
    ROUTING_ANALYSIS_BONUS,
    ROUTING_BASE_CONFIDENCE,
    ROUTING_CONFIDENCE_FLOOR,
)
from .models import CanonicalFile, ContentCategory, MergeStrategy, RoutingDecision

log = logging.getLogger(__name__)

CATEGORY_TO_FILE: dict[ContentCategory, CanonicalFile] = {
    ContentCategory.PROGRESS: CanonicalFile.PROGRESS,
    ContentCategory.TECHNICAL: CanonicalFile.TECH_CONTEXT,
    ContentCategory.ARCHITECTURAL: CanonicalFile.SYSTEM_PATTERNS,
    ContentCategory.PRODUCT: CanonicalFile.PRODUCT_CONTEXT,
    ContentCategory.PROJECT: CanonicalFile.BRIEF,
    ContentCategory.ACTIVE: CanonicalFile.ACTIVE_CONTEXT,
}


def _existing_canonical(existing_files: Iterable[str]) -> list[CanonicalFile]:
    found = []
    for name in existing_files:
        member = CanonicalFile.from_filename(name)
        if member is not None and member not in found:
            found.append(member)
    return found


def route_content(
    file_name: str, content: str, existing_files: Iterable[str] = ()
) -> RoutingDecision:
    """Decide where content goes. Always returns a canonical target.

    Args:
        file_name: Filename the caller asked for; may be anything.
        content: Text to be stored.
        existing_files: Filenames already present in the project.
    """
    canonical = CanonicalFile.from_filename(file_name)
    if canonical is not None:
        return RoutingDecision(
            target_file=canonical,
            merge_strategy=MergeStrategy.STRUCTURAL_MERGE,
            confidence=100,
            reasoning=f"Direct write to core file {canonical}",
        )

    word_count = len(content.split())
    if word_count > LARGE_CONTENT_WORDS:
        log.warning(
            "Large content routed (%d words from %s); consider splitting it", word_count, file_name
        )

    classification = classify_content(file_name, content)
    target = CATEGORY_TO_FILE[classification.category]
    reasons = [f"Classified as {classification.category}"]
    if classification.matched_terms:
        reasons.append(f"matched: {', '.join(classification.matched_terms[:5])}")

    existing = _existing_canonical(existing_files)
    # Unclassified text lands in activeContext by default, not by a match
    aligned = bool(classification.matched_terms)
    if existing and target not in existing:
        aligned = False
        fallback = (
            CanonicalFile.ACTIVE_CONTEXT
            if CanonicalFile.ACTIVE_CONTEXT in existing
            else existing[0]
        )
        reasons.append(f"{target} not initialized, falling back to {fallback}")
        target = fallback

    confidence = ROUTING_BASE_CONFIDENCE
    if aligned:
        confidence += ROUTING_ALIGNMENT_BONUS
    if classification.is_analysis:
        confidence += ROUTING_ANALYSIS_BONUS
        reasons.append("analytical content")
    confidence = max(ROUTING_CONFIDENCE_FLOOR, min(100, confidence))

    strategy = (
        MergeStrategy.STRUCTURAL_MERGE if classification.is_analysis else MergeStrategy.APPEND
    )

    decision = RoutingDecision(
        target_file=target,
        merge_strategy=strategy,
        confidence=confidence,
        reasoning="; ".join(reasons),
    )
    log.debug("Routed %s -> %s (%d%%, %s)", file_name, target, confidence, strategy)
    return decision
