"""Pydantic models for project identity and content routing."""

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field


class SignalKind(StrEnum):
    """Where a piece of identity evidence came from."""

    VCS = "vcs"
    MANIFEST = "manifest"
    ACTIVITY = "activity"
    STRUCTURE = "structure"
    MARKER = "marker"
    SMART_DEFAULT = "smart_default"
    AUTO_SELECT = "auto_select"
    EXPLICIT = "explicit"


class CanonicalFile(StrEnum):
    """The six documents a project's knowledge is organized into.

    Hierarchy: brief -> (product, system patterns, tech) -> active -> progress.
    This set is closed; routing always resolves to one of these members.
    """

    BRIEF = "projectbrief.md"
    PRODUCT_CONTEXT = "productContext.md"
    SYSTEM_PATTERNS = "systemPatterns.md"
    TECH_CONTEXT = "techContext.md"
    ACTIVE_CONTEXT = "activeContext.md"
    PROGRESS = "progress.md"

    @classmethod
    def from_filename(cls, name: str) -> "CanonicalFile | None":
        """Return the member whose filename is exactly `name`, else None."""
        try:
            return cls(name)
        except ValueError:
            return None


class ContentCategory(StrEnum):
    """Classifier output categories."""

    PROGRESS = "progress"
    TECHNICAL = "technical"
    ARCHITECTURAL = "architectural"
    PRODUCT = "product"
    PROJECT = "project"
    ACTIVE = "active"


class MergeStrategy(StrEnum):
    """How new text is combined with a destination file."""

    REPLACE = "replace"
    APPEND = "append"
    STRUCTURAL_MERGE = "structural_merge"


class IdentitySignal(BaseModel):
    """A single piece of evidence about project identity."""

    kind: SignalKind
    candidate_name: str  # Raw, not yet normalized
    confidence: int = Field(ge=0, le=100)
    evidence: list[str] = Field(default_factory=list)


class ProjectDetection(BaseModel):
    """Outcome of one resolver pass over the collected signals."""

    project_name: str
    confidence: int = Field(ge=0, le=100)
    detection_method: str
    working_directory: str
    signals: list[IdentitySignal] = Field(default_factory=list)


class ProjectContext(BaseModel):
    """The active project for this server session."""

    project_name: str  # Always normalizer output
    working_directory: str
    detection_method: str
    confidence: int = Field(ge=0, le=100)
    resolved_at: datetime
    session_id: str


class PersistedContextRecord(ProjectContext):
    """Durable counterpart of ProjectContext, keyed by session id."""

    expires_at: datetime
    last_accessed: datetime

    def to_context(self, session_id: str | None = None) -> ProjectContext:
        """Rehydrate as a ProjectContext, optionally rebinding the session."""
        return ProjectContext(
            project_name=self.project_name,
            working_directory=self.working_directory,
            detection_method=self.detection_method,
            confidence=self.confidence,
            resolved_at=self.resolved_at,
            session_id=session_id or self.session_id,
        )


class CurrentProjectRecord(BaseModel):
    """Durable singleton naming the most recently resolved project."""

    type: Literal["current_project"] = "current_project"
    project_name: str
    resolved_at: datetime
    expires_at: datetime


class IsolationReport(BaseModel):
    """Advisory check of a project name against existing projects."""

    project_name: str
    conflicting_names: list[str] = Field(default_factory=list)
    isolation_score: int = Field(ge=0, le=100)
    is_valid: bool
    warnings: list[str] = Field(default_factory=list)


class ClassificationResult(BaseModel):
    """Category and keywords derived from a piece of text."""

    category: ContentCategory
    keywords: set[str] = Field(default_factory=set)
    is_analysis: bool = False
    matched_terms: list[str] = Field(default_factory=list)  # Patterns that decided the category


class RoutingDecision(BaseModel):
    """Where content goes and how it is merged."""

    target_file: CanonicalFile
    merge_strategy: MergeStrategy
    confidence: int = Field(ge=0, le=100)
    reasoning: str


class RouteAndMergeResult(BaseModel):
    """Routing decision plus the final content of the destination file."""

    target_file: CanonicalFile
    merged_content: str
    decision: RoutingDecision


class ContextDetectionReport(BaseModel):
    """Result of an explicit project-context detection request."""

    detection: ProjectDetection
    isolation: IsolationReport | None = None
    exists_in_bank: bool = False


class SaveResult(BaseModel):
    """Result of writing content into a project's memory bank."""

    project_name: str
    target_file: CanonicalFile
    action: Literal["created", "replaced", "appended", "merged", "unchanged"]
    decision: RoutingDecision
    content_length: int = 0
    warnings: list[str] = Field(default_factory=list)


class ProjectInitResult(BaseModel):
    """Result of creating a project's canonical files."""

    project_name: str
    created_files: list[str] = Field(default_factory=list)
    existing_files: list[str] = Field(default_factory=list)
