from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from maestro.backends.base import AgentBackend
from maestro.models import Domain
from maestro.state.collaboration import (
    MARKUP_AGENT,
    STYLE_AGENT,
    CollaborationMessage,
    CollaborationStore,
)

logger = logging.getLogger(__name__)

DOMAIN_BRIEFS: dict[Domain, str] = {
    Domain.DEVELOPMENT: "You are the development specialist. Implement framework-agnostic business logic in the core layer.",
    Domain.MARKUP: "You are the markup specialist. Build server-rendered templates and interactive fragments.",
    Domain.SCHEMA: "You are the schema specialist. Own the data model, migrations and repository implementations.",
    Domain.TESTING: "You are the testing specialist. Write and run tests, and report failures precisely.",
    Domain.AUTHORIZATION: "You are the authorization specialist. Handle authentication, sessions and permissions.",
    Domain.INTERFACE: "You are the interface specialist. Design and implement the HTTP endpoints and routing.",
    Domain.STYLE: "You are the style specialist. Own visual design tokens, layout and accessibility.",
    Domain.ANALYSIS: "You are the analysis specialist. Inspect the project and report what needs to change.",
    Domain.REPOSITORY_STATE: "You are responsible for repository bookkeeping for this workflow.",
    Domain.PERFORMANCE: "You are the performance specialist. Measure and improve response times and resource use.",
    Domain.SECURITY: "You are the security specialist. Review the change for vulnerabilities and fix them.",
    Domain.DOCUMENTATION: "You are the documentation specialist. Keep user and developer docs accurate.",
    Domain.DEPLOYMENT: "You are the deployment specialist. Own build, release and runtime configuration.",
}

RESPONSE_INSTRUCTIONS = (
    "When you are done, print one line containing a JSON object with the keys "
    '"success" (boolean), "message" (string) and optionally "details" (object), '
    '"errors" (list of strings) and "warnings" (list of strings). For a failing '
    'verification you may set details.failure_domain to the domain that must fix it. '
    "To message another specialist, add details.messages as a list of "
    '{"to", "type", "payload"} objects.'
)

# Mailbox names for the two specialists that share design state.
MAILBOX_NAMES: dict[Domain, str] = {
    Domain.MARKUP: MARKUP_AGENT,
    Domain.STYLE: STYLE_AGENT,
}


@dataclass(slots=True)
class SpecialistRequest:
    domain: Domain
    description: str
    workflow_id: str
    workflow_name: str
    subject: str | None
    project_root: str
    current_step: int
    collaboration: dict[str, Any] | None = None
    messages: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain.value,
            "task": self.description,
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "subject": self.subject,
            "project_root": self.project_root,
            "current_step": self.current_step,
            "collaboration": self.collaboration,
            "messages": list(self.messages),
        }


@dataclass(slots=True)
class SpecialistResult:
    success: bool
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SpecialistResult:
        details = payload.get("details")
        return cls(
            success=payload.get("success") is True,
            message=str(payload.get("message", "")),
            details=details if isinstance(details, dict) else {},
            errors=[str(item) for item in payload.get("errors") or []],
            warnings=[str(item) for item in payload.get("warnings") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "details": dict(self.details),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def extract_json_objects(raw_text: str) -> list[dict[str, Any]]:
    payloads: list[dict[str, Any]] = []
    for raw_line in raw_text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if not (line.startswith("{") and line.endswith("}")):
            continue
        try:
            parsed = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            payloads.append(parsed)
    if payloads:
        return payloads

    # Some agents pretty-print their report over several lines.
    text = raw_text.strip()
    start = text.rfind("\n{")
    candidate = text[start + 1 :] if start >= 0 else text
    if candidate.startswith("{") and candidate.endswith("}"):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            return []
        if isinstance(parsed, dict):
            return [parsed]
    return []


def parse_result(raw_text: str) -> SpecialistResult:
    reports = [payload for payload in extract_json_objects(raw_text) if "success" in payload]
    if not reports:
        tail = raw_text.strip().splitlines()[-1:] or [""]
        return SpecialistResult(
            success=False,
            message="Specialist did not return a structured result",
            errors=[tail[0][:500]] if tail[0] else [],
        )
    return SpecialistResult.from_payload(reports[-1])


class Specialist:
    """Adapter between one domain and the agent process that serves it."""

    def __init__(
        self,
        domain: Domain,
        agent: str,
        backend: AgentBackend,
        store: CollaborationStore | None = None,
    ) -> None:
        self.domain = domain
        self.agent = agent
        self.backend = backend
        self.store = store

    @property
    def mailbox(self) -> str:
        return MAILBOX_NAMES.get(self.domain, self.domain.value)

    def build_prompt(self, request: SpecialistRequest) -> str:
        lines = [DOMAIN_BRIEFS[self.domain], "", f"Task: {request.description}"]
        if request.subject:
            lines.append(f"Subject: {request.subject}")
        lines.extend(["", RESPONSE_INSTRUCTIONS])
        return "\n".join(lines)

    def _attach_collaboration(self, request: SpecialistRequest) -> None:
        if self.store is None:
            return
        if request.subject and self.domain in MAILBOX_NAMES:
            context = self.store.create_context(request.subject, request.workflow_name)
            request.collaboration = context.to_dict()
        inbox = self.store.receive(self.mailbox)
        if inbox:
            request.messages = [message.to_dict() for message in inbox]
            self.store.clear(self.mailbox)

    def _publish_collaboration(self, request: SpecialistRequest, result: SpecialistResult) -> None:
        if self.store is None:
            return
        for item in result.details.get("messages") or []:
            if not isinstance(item, dict) or "to" not in item:
                continue
            try:
                self.store.send(
                    CollaborationMessage(
                        sender=self.mailbox,
                        recipient=str(item["to"]),
                        type=item.get("type", "update"),
                        payload=item.get("payload"),
                    )
                )
            except ValueError as exc:
                result.warnings.append(str(exc))

        if not (result.success and request.subject):
            return
        if self.domain == Domain.MARKUP:
            self.store.mark_markup_ready(request.subject)
        elif self.domain == Domain.STYLE:
            self.store.mark_style_ready(request.subject)

    async def run(self, request: SpecialistRequest) -> SpecialistResult:
        self._attach_collaboration(request)
        chunks: list[str] = []
        async for chunk in self.backend.execute(
            self.agent,
            self.build_prompt(request),
            request.to_dict(),
        ):
            chunks.append(chunk)
        result = parse_result("".join(chunks))
        logger.debug(
            f"Specialist {self.agent} ({self.domain.value}) finished: success={result.success}"
        )
        self._publish_collaboration(request, result)
        return result
