"""Starter bodies for the six canonical memory-bank files.

Each template carries TEMPLATE_MARKER on its first line. The write path uses
the marker to tell a pristine template (safe to replace) from a file someone
has already written into (must be merged).
"""

from .models import CanonicalFile

TEMPLATE_MARKER = "<!-- membank:template -->"

PROJECT_BRIEF_TEMPLATE = """{marker}
# Project Brief: {project}

## Project Overview
**What We're Building**: [Brief description of the project]
**Why It Matters**: [Business/user value proposition]
**Timeline**: [Expected completion timeframe]

## Core Requirements
**Must-Have Features**:
- Requirement 1: [specific functionality]
- Requirement 2: [specific capability]

**Technical Requirements**:
- Performance: [speed/scale requirements]
- Security: [security standards]

## Project Goals
- Goal 1: [measurable outcome]
- Goal 2: [specific achievement]

## Scope
**In Scope**: [what we're building, for whom]
**Out of Scope** (for now): [future enhancements]

## Success Criteria
- [ ] All core requirements implemented
- [ ] Performance targets met
- [ ] Documentation ready

---
*This is the foundation document. All other memory files build upon this.*
"""

PRODUCT_CONTEXT_TEMPLATE = """{marker}
# Product Context: {project}

## Why This Project Exists
**Problem Statement**: Users struggle with [specific problem]
**Business Value**: This project delivers [specific value]

## User Problems & Pain Points
- Users can't easily [specific task]
- Current solutions are [limitation]

## Solution Approach
**Core Solution**: We solve this by [approach]

## User Experience Goals
- Eliminate [specific friction point]
- Make [complex process] intuitive

## Target Users
**Primary Persona**: [Name] - [Role]

---
*User problems, solution approach, UX goals, and target personas belong here.*
"""

SYSTEM_PATTERNS_TEMPLATE = """{marker}
# System Patterns: {project}

## System Architecture
**Pattern**: [MVC/Component-based/Modular/Microservices]
**Structure**: [Describe folder/module organization]
**Data Flow**: [How data moves through the system]

## Key Technical Decisions
**API Design**: [REST/GraphQL/RPC patterns]
**Error Handling**: [Global/Local error handling strategy]

## Design Patterns
- [Patterns used and where]

## Component Relationships
- [How components and services interact]

## Critical Implementation Paths
- [Authentication, persistence, performance-critical flows]

---
*Code architecture, design patterns, and system structure details belong here.*
"""

TECH_CONTEXT_TEMPLATE = """{marker}
# Tech Context: {project}

## Technologies Used
**Languages**: [Languages and versions]
**Frameworks**: [Frameworks and libraries]
**Build Tools**: [Build and packaging tools]

## Development Setup
**Prerequisites**: [Required tools]
**Installation**: [Install command]

## Technical Constraints
- [Platform, performance and compatibility constraints]

## Dependencies
**Production**: [List runtime dependencies]
**Development**: [List dev dependencies]

## Tool Usage Patterns
**Code Quality**: [Linters, formatters]
**Testing**: [Test frameworks]
**Deployment**: [CI/CD pipeline details]

---
*Technical implementation details and development environment specifics belong here.*
"""

ACTIVE_CONTEXT_TEMPLATE = """{marker}
# Active Context: {project}

## Current Work Focus
- [What we're currently working on]

## Recent Changes
- [Recent changes and updates]

## Next Steps
- [Immediate next steps]

## Active Decisions
- [Decisions currently being made]

## Learnings & Insights
- [Key learnings and project insights]

---
*Builds on: productContext.md, systemPatterns.md, techContext.md*
"""

PROGRESS_TEMPLATE = """{marker}
# Progress: {project}

## What Works
- [List what's currently working]

## What's Left to Build
- [List remaining work]

## Current Status
- [Overall project status]

## Known Issues
- [List known issues and bugs]

## Milestones
- [Key milestones and achievements]

---
*Builds on: activeContext.md*
"""

CORE_TEMPLATES: dict[CanonicalFile, str] = {
    CanonicalFile.BRIEF: PROJECT_BRIEF_TEMPLATE,
    CanonicalFile.PRODUCT_CONTEXT: PRODUCT_CONTEXT_TEMPLATE,
    CanonicalFile.SYSTEM_PATTERNS: SYSTEM_PATTERNS_TEMPLATE,
    CanonicalFile.TECH_CONTEXT: TECH_CONTEXT_TEMPLATE,
    CanonicalFile.ACTIVE_CONTEXT: ACTIVE_CONTEXT_TEMPLATE,
    CanonicalFile.PROGRESS: PROGRESS_TEMPLATE,
}


def core_file_template(file: CanonicalFile, project: str) -> str:
    """Render the starter body of a canonical file for a project."""
    return CORE_TEMPLATES[file].format(marker=TEMPLATE_MARKER, project=project)
