"""Reference catalog of the conventions the specialists work to."""

from __future__ import annotations

PATTERNS: dict[str, list[str]] = {
    "Directory Structure": [
        "src/core/ - Framework-agnostic business logic",
        "src/features/{feature}/ - Self-contained feature modules",
        "src/infrastructure/ - Framework implementations",
        "src/shared/ - Shared utilities and types",
    ],
    "Core Patterns": [
        "Framework-agnostic business logic in core/",
        "Repository pattern: interfaces in core, implementations in infrastructure",
        "Result<T, E> pattern for error handling",
        "Dependency injection for loose coupling",
    ],
    "Feature Modules": [
        "Each feature has: core/, fragments/, api/, components/, tests/",
        "Feature modules export unified interface",
        "Business logic separated from presentation",
        "Server-rendered fragments for interactive UI",
    ],
    "Specialists": [
        "Orchestrator - Plans workflows and dispatches tasks",
        "Development - Core business logic implementation",
        "Markup - Fragment and component development",
        "Style - Design tokens, theming and accessibility",
        "Schema - Data model, migrations and repositories",
        "Authorization - Authentication and RBAC",
        "Interface - HTTP endpoint implementation",
        "Testing - Test generation and verification",
    ],
    "Git Workflow": [
        "Automatic branch creation for features, specs and bugs",
        "Branch naming: {kind}/{name} or {kind}/{issue}-{name}",
        "Pre-merge validation and testing",
        "Conventional commit messages",
        "Quality gates before merge",
    ],
    "Testing Strategy": [
        "Unit tests for core business logic",
        "Fragment tests for HTML output validation",
        "API integration tests",
        "E2E tests for user flows",
        "Snapshot testing for templates",
    ],
    "Fragment Integration": [
        "Fragments return HTML only",
        "Conditional rendering for partial vs full-page requests",
        "Server-Sent Events for real-time updates",
    ],
    "Authentication & Security": [
        "Strategy-based authentication",
        "RBAC middleware for authorization",
        "Secure password hashing (bcrypt/argon2)",
        "CSRF protection and security headers",
    ],
    "API Design": [
        "RESTful endpoints with proper HTTP methods",
        "API versioning strategy",
        "OpenAPI documentation",
        "Consistent response formats",
        "Input validation and error handling",
    ],
}


def format_patterns() -> str:
    lines: list[str] = []
    for category, items in PATTERNS.items():
        lines.append(f"{category}:")
        lines.extend(f"  - {item}" for item in items)
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"
