from __future__ import annotations

from maestro.backends.base import AgentBackend
from maestro.config import MaestroConfig
from maestro.models import Domain
from maestro.specialists.base import (
    Specialist,
    SpecialistRequest,
    SpecialistResult,
    extract_json_objects,
    parse_result,
)
from maestro.state.collaboration import CollaborationStore


def build_specialists(
    backend: AgentBackend,
    config: MaestroConfig,
    store: CollaborationStore | None = None,
) -> dict[Domain, Specialist]:
    return {
        domain: Specialist(domain, config.agent_for(domain), backend, store)
        for domain in Domain
    }


__all__ = [
    "Specialist",
    "SpecialistRequest",
    "SpecialistResult",
    "build_specialists",
    "extract_json_objects",
    "parse_result",
]
