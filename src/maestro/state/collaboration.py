from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

logger = logging.getLogger(__name__)

MessageType = Literal["request", "response", "update", "error"]
BROADCAST = "all"
MARKUP_AGENT = "markup"
STYLE_AGENT = "style"
MESSAGE_TYPES: set[str] = {"request", "response", "update", "error"}


@dataclass(slots=True)
class CollaborationStatus:
    markup_ready: bool = False
    style_ready: bool = False
    integration_complete: bool = False


@dataclass(slots=True)
class SharedContext:
    component: str
    feature: str
    variables: dict[str, dict[str, Any]] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    fragments: list[str] = field(default_factory=list)
    fragment_paths: dict[str, str] = field(default_factory=dict)
    structure: dict[str, Any] = field(default_factory=dict)
    breakpoints: list[str] = field(default_factory=lambda: ["mobile", "tablet", "desktop"])
    mobile_first: bool = True
    accessibility_features: list[str] = field(
        default_factory=lambda: ["focus-visible", "high-contrast", "keyboard-navigation"]
    )
    status: CollaborationStatus = field(default_factory=CollaborationStatus)

    def to_dict(self) -> dict[str, Any]:
        return {
            "component": self.component,
            "feature": self.feature,
            "variables": {name: dict(value) for name, value in self.variables.items()},
            "tags": list(self.tags),
            "fragments": list(self.fragments),
            "fragment_paths": dict(self.fragment_paths),
            "structure": dict(self.structure),
            "breakpoints": list(self.breakpoints),
            "mobile_first": self.mobile_first,
            "accessibility_features": list(self.accessibility_features),
            "status": {
                "markup_ready": self.status.markup_ready,
                "style_ready": self.status.style_ready,
                "integration_complete": self.status.integration_complete,
            },
        }


@dataclass(slots=True)
class CollaborationMessage:
    sender: str
    recipient: str
    type: MessageType
    payload: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.sender,
            "to": self.recipient,
            "type": self.type,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class CollaborationStore:
    """Shared design state and a turn-based mailbox between specialists.

    Constructed once per engine and handed to every specialist adapter. There is
    no blocking receive: consumers poll with `receive` and acknowledge with
    `clear`.
    """

    def __init__(self) -> None:
        self._contexts: dict[str, SharedContext] = {}
        self._messages: list[CollaborationMessage] = []

    def create_context(self, component: str, feature: str) -> SharedContext:
        existing = self._contexts.get(component)
        if existing is not None:
            return existing
        context = SharedContext(component=component, feature=feature)
        self._contexts[component] = context
        return context

    def get_context(self, component: str) -> SharedContext | None:
        return self._contexts.get(component)

    def update_context(self, component: str, **changes: Any) -> SharedContext | None:
        context = self._contexts.get(component)
        if context is None:
            return None
        for key, value in changes.items():
            if key == "component" or not hasattr(context, key):
                raise AttributeError(f"Unknown shared context field: {key}")
            setattr(context, key, value)
        return context

    def components(self) -> list[str]:
        return sorted(self._contexts)

    def add_variable(self, component: str, name: str, value: dict[str, Any]) -> None:
        context = self._contexts.get(component)
        if context is not None and name not in context.variables:
            context.variables[name] = dict(value)

    def get_variables(self, component: str) -> list[dict[str, Any]]:
        context = self._contexts.get(component)
        if context is None:
            return []
        return [{"name": name, **value} for name, value in context.variables.items()]

    def register_tag(self, component: str, tag: str) -> None:
        context = self._contexts.get(component)
        if context is not None and tag not in context.tags:
            context.tags.append(tag)

    def register_fragment(self, component: str, fragment: str, path: str) -> None:
        context = self._contexts.get(component)
        if context is None:
            return
        if fragment not in context.fragments:
            context.fragments.append(fragment)
        context.fragment_paths.setdefault(fragment, path)

    def mark_markup_ready(self, component: str) -> None:
        context = self._contexts.get(component)
        if context is not None:
            context.status.markup_ready = True

    def mark_style_ready(self, component: str) -> None:
        context = self._contexts.get(component)
        if context is not None:
            context.status.style_ready = True

    def mark_integration_complete(self, component: str) -> None:
        context = self._contexts.get(component)
        if context is not None:
            context.status.integration_complete = True

    def is_ready_for_integration(self, component: str) -> bool:
        context = self._contexts.get(component)
        if context is None:
            return False
        return context.status.markup_ready and context.status.style_ready

    def send(self, message: CollaborationMessage) -> None:
        if message.type not in MESSAGE_TYPES:
            raise ValueError(f"Unsupported collaboration message type: {message.type}")
        self._messages.append(message)
        logger.debug(f"Message from {message.sender} to {message.recipient}: {message.type}")

    def receive(self, for_agent: str) -> list[CollaborationMessage]:
        return [
            message
            for message in self._messages
            if message.recipient in {for_agent, BROADCAST}
        ]

    def clear(self, for_agent: str) -> None:
        self._messages = [
            message
            for message in self._messages
            if message.recipient not in {for_agent, BROADCAST}
        ]

    def pending(self) -> int:
        return len(self._messages)

    def request_variables(self, component: str, sender: str) -> None:
        self.send(
            CollaborationMessage(
                sender=sender,
                recipient=STYLE_AGENT,
                type="request",
                payload={"component": component, "request_type": "variables"},
            )
        )

    def provide_variables(self, component: str, variables: list[dict[str, Any]]) -> None:
        self.send(
            CollaborationMessage(
                sender=STYLE_AGENT,
                recipient=MARKUP_AGENT,
                type="response",
                payload={
                    "component": component,
                    "response_type": "variables",
                    "variables": variables,
                },
            )
        )

    def request_tags(self, component: str, sender: str) -> None:
        self.send(
            CollaborationMessage(
                sender=sender,
                recipient=STYLE_AGENT,
                type="request",
                payload={"component": component, "request_type": "tags"},
            )
        )

    def provide_tags(self, component: str, tags: list[str]) -> None:
        self.send(
            CollaborationMessage(
                sender=STYLE_AGENT,
                recipient=MARKUP_AGENT,
                type="response",
                payload={"component": component, "response_type": "tags", "tags": tags},
            )
        )

    def notify_structure_ready(
        self, component: str, sender: str, structure: dict[str, Any]
    ) -> None:
        recipient = STYLE_AGENT if sender == MARKUP_AGENT else MARKUP_AGENT
        self.send(
            CollaborationMessage(
                sender=sender,
                recipient=recipient,
                type="update",
                payload={
                    "component": component,
                    "update_type": "structure-ready",
                    "structure": structure,
                },
            )
        )

    def validate_consistency(self, component: str) -> list[str]:
        context = self._contexts.get(component)
        if context is None:
            return ["Component context not found"]
        errors: list[str] = []
        for fragment in context.fragments:
            if fragment not in context.fragment_paths:
                errors.append(f"Fragment '{fragment}' has no registered path")
        if context.status.integration_complete and not (
            context.status.markup_ready and context.status.style_ready
        ):
            errors.append("Integration marked complete before markup and style were ready")
        return errors

    def summary(self, component: str) -> str:
        context = self._contexts.get(component)
        if context is None:
            return "No context found for component"
        lines = [
            f"Component: {context.component}",
            f"Feature: {context.feature}",
            "",
            f"Variables: {len(context.variables)}",
            f"Tags: {len(context.tags)}",
            f"Fragments: {len(context.fragments)}",
            "",
            "Collaboration status:",
            f"- Markup ready: {context.status.markup_ready}",
            f"- Style ready: {context.status.style_ready}",
            f"- Integration complete: {context.status.integration_complete}",
            "",
            f"Breakpoints: {', '.join(context.breakpoints)}",
            f"Accessibility: {', '.join(context.accessibility_features)}",
        ]
        return "\n".join(lines)
