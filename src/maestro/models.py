from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

Priority = Literal["high", "medium", "low"]


def _utcnow_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


class Domain(str, Enum):
    DEVELOPMENT = "development"
    MARKUP = "markup"
    SCHEMA = "schema"
    TESTING = "testing"
    AUTHORIZATION = "authorization"
    INTERFACE = "interface"
    STYLE = "style"
    ANALYSIS = "analysis"
    REPOSITORY_STATE = "repository-state"
    PERFORMANCE = "performance"
    SECURITY = "security"
    DOCUMENTATION = "documentation"
    DEPLOYMENT = "deployment"


class WorkflowKind(str, Enum):
    NEW_FEATURE = "new-feature"
    ANALYSIS = "analysis"
    FIX_VIOLATIONS = "fix-violations"
    GENERIC = "generic"


class WorkflowStatus(str, Enum):
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[WorkflowStatus, set[WorkflowStatus]] = {
    WorkflowStatus.PLANNING: {WorkflowStatus.EXECUTING, WorkflowStatus.FAILED},
    WorkflowStatus.EXECUTING: {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED},
    WorkflowStatus.COMPLETED: set(),
    # Resuming a failed workflow re-enters execution from its current step.
    WorkflowStatus.FAILED: {WorkflowStatus.EXECUTING},
}


class IllegalTransitionError(ValueError):
    pass


@dataclass(slots=True)
class WorkflowRequest:
    kind: WorkflowKind
    description: str
    subject: str | None = None


@dataclass(slots=True)
class Step:
    number: int
    description: str
    domain: Domain
    tasks: list[str] = field(default_factory=list)
    depends_on: list[int] = field(default_factory=list)


@dataclass(slots=True)
class Task:
    id: str
    description: str
    domain: Domain
    step: int
    priority: Priority = "medium"
    depends_on: list[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    result: Any = None
    fix_for: str | None = None
    created_at: str = field(default_factory=_utcnow_iso)
    completed_at: str | None = None

    @classmethod
    def create(
        cls,
        description: str,
        domain: Domain,
        step: int,
        *,
        priority: Priority = "high",
        depends_on: list[str] | None = None,
        fix_for: str | None = None,
    ) -> Task:
        return cls(
            id=f"{domain.value}-{uuid4().hex[:12]}",
            description=description,
            domain=domain,
            step=step,
            priority=priority,
            depends_on=list(depends_on or []),
            fix_for=fix_for,
        )

    def start(self) -> None:
        self.status = TaskStatus.IN_PROGRESS

    def complete(self, result: Any = None) -> None:
        self.status = TaskStatus.COMPLETED
        self.result = result
        self.completed_at = _utcnow_iso()

    def fail(self, result: Any = None) -> None:
        self.status = TaskStatus.FAILED
        self.result = result
        self.completed_at = _utcnow_iso()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "domain": self.domain.value,
            "step": self.step,
            "priority": self.priority,
            "depends_on": list(self.depends_on),
            "status": self.status.value,
            "result": self.result,
            "fix_for": self.fix_for,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }


@dataclass(slots=True)
class Workflow:
    id: str
    name: str
    description: str
    kind: WorkflowKind
    steps: list[Step] = field(default_factory=list)
    current_step: int = 1
    status: WorkflowStatus = WorkflowStatus.PLANNING
    tasks: list[Task] = field(default_factory=list)
    subject: str | None = None
    branch_name: str | None = None
    created_at: str = field(default_factory=_utcnow_iso)

    @staticmethod
    def new_id() -> str:
        return f"workflow-{datetime.now(UTC).strftime('%Y%m%d%H%M%S')}-{uuid4().hex[:9]}"

    def transition(self, to: WorkflowStatus) -> None:
        allowed = ALLOWED_TRANSITIONS.get(self.status, set())
        if to not in allowed:
            raise IllegalTransitionError(
                f"Illegal transition: {self.status.value} -> {to.value}"
            )
        self.status = to

    def step(self, number: int) -> Step | None:
        for step in self.steps:
            if step.number == number:
                return step
        return None

    def step_tasks(self, number: int) -> list[Task]:
        return [task for task in self.tasks if task.step == number]

    def step_completed(self, number: int) -> bool:
        """True when every task of the step has a completed latest attempt.

        Fix tasks are bookkeeping for the verification task they repair and do not
        count toward completion. Unknown step numbers are treated as satisfied.
        """
        step = self.step(number)
        if step is None:
            return True
        latest: dict[str, Task] = {}
        for task in self.step_tasks(number):
            if task.fix_for is not None:
                continue
            latest[task.description] = task
        return all(
            description in latest and latest[description].status == TaskStatus.COMPLETED
            for description in step.tasks
        )

    def completed_tasks(self) -> list[Task]:
        return [task for task in self.tasks if task.status == TaskStatus.COMPLETED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "kind": self.kind.value,
            "status": self.status.value,
            "current_step": self.current_step,
            "subject": self.subject,
            "branch_name": self.branch_name,
            "created_at": self.created_at,
            "steps": [
                {
                    "number": step.number,
                    "description": step.description,
                    "domain": step.domain.value,
                    "tasks": list(step.tasks),
                    "depends_on": list(step.depends_on),
                }
                for step in self.steps
            ],
            "tasks": [task.to_dict() for task in self.tasks],
        }


@dataclass(slots=True)
class WorkflowOutcome:
    workflow_id: str
    success: bool
    message: str
    tasks_completed: list[Task] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
