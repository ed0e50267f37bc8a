"""Routing of verification failures to the specialist that should fix them."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from maestro.models import Domain

# Checked in order; the first bucket with a matching keyword wins.
FAILURE_BUCKETS: tuple[tuple[Domain, tuple[str, ...]], ...] = (
    (
        Domain.INTERFACE,
        ("api", "endpoint", "rest", "status code", "response", "router", "route"),
    ),
    (
        Domain.MARKUP,
        ("htmx", "fragment", "component", "render", "html", "template"),
    ),
    (
        Domain.SCHEMA,
        ("database", "prisma", "schema", "migration", "repository", "query", "sql"),
    ),
    (
        Domain.AUTHORIZATION,
        (
            "auth",
            "login",
            "session",
            "rbac",
            "permission",
            "unauthorized",
            "forbidden",
            "passport",
        ),
    ),
    (
        Domain.DEVELOPMENT,
        ("unit test", "business logic", "service", "domain", "core", "validation"),
    ),
)

DEFAULT_FIX_DOMAIN = Domain.DEVELOPMENT


def _flatten(value: Any) -> Iterable[str]:
    if value is None:
        return
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _flatten(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _flatten(item)
    else:
        yield str(value)


def _explicit_domain(details: dict[str, Any]) -> Domain | None:
    tagged = details.get("failure_domain")
    if not isinstance(tagged, str):
        return None
    try:
        domain = Domain(tagged.strip().lower())
    except ValueError:
        return None
    if domain == Domain.TESTING:
        return None
    return domain


def classify_failure(
    description: str,
    message: str = "",
    details: dict[str, Any] | None = None,
    errors: list[str] | None = None,
) -> Domain:
    """Pick the domain responsible for a failed verification task.

    Never returns ``Domain.TESTING``; text that matches no bucket falls back to
    development.
    """

    details = details or {}
    explicit = _explicit_domain(details)
    if explicit is not None:
        return explicit

    fragments = [description, message]
    for key in ("message", "stack", "failures"):
        fragments.extend(_flatten(details.get(key)))
    fragments.extend(errors or [])
    haystack = "\n".join(fragment for fragment in fragments if fragment).lower()

    for domain, keywords in FAILURE_BUCKETS:
        if any(keyword in haystack for keyword in keywords):
            return domain
    return DEFAULT_FIX_DOMAIN
