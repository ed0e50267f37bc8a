import asyncio
import json
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest

from maestro.backends import AgentBackend, CommandBackend
from maestro.config import MaestroConfig
from maestro.models import (
    Domain,
    Step,
    TaskStatus,
    Workflow,
    WorkflowKind,
    WorkflowRequest,
    WorkflowStatus,
)
from maestro.orchestrator import Orchestrator
from maestro.planning import Planner
from maestro.specialists import build_specialists
from maestro.state.analyzer import ProjectAnalyzer
from maestro.state.repository import RepositoryManager

Handler = Callable[[str, dict[str, Any]], dict[str, Any]]


class ScriptedBackend(AgentBackend):
    def __init__(self, handler: Handler | None = None, delay: float = 0.0) -> None:
        self.handler = handler or (lambda agent, context: {"success": True, "message": "ok"})
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    async def execute(
        self,
        agent: str,
        prompt: str,
        context: dict[str, Any],
    ) -> AsyncIterator[str]:
        _ = prompt
        self.calls.append((context["domain"], context["task"]))
        if self.delay:
            await asyncio.sleep(self.delay)
        yield json.dumps(self.handler(agent, context)) + "\n"


def _orchestrator(
    root: Path, backend: AgentBackend, timeout_seconds: float = 5.0
) -> Orchestrator:
    repository = RepositoryManager(root)
    config = MaestroConfig.default()
    return Orchestrator(
        planner=Planner(repository, ProjectAnalyzer(root)),
        repository=repository,
        specialists=build_specialists(backend, config),
        timeout_seconds=timeout_seconds,
    )


def _generic() -> WorkflowRequest:
    return WorkflowRequest(kind=WorkflowKind.GENERIC, description="add a footer")


def test_generic_workflow_completes(tmp_path: Path) -> None:
    backend = ScriptedBackend()
    orchestrator = _orchestrator(tmp_path, backend)

    outcome = asyncio.run(orchestrator.run(_generic()))

    workflow = orchestrator.get_workflow(outcome.workflow_id)
    assert outcome.success is True
    assert workflow.status == WorkflowStatus.COMPLETED
    assert len(outcome.tasks_completed) == 6
    assert [domain for domain, _ in backend.calls] == [
        "analysis",
        "analysis",
        "analysis",
        "development",
        "testing",
        "testing",
    ]
    assert "Consider running comprehensive test suite" in outcome.next_steps
    assert orchestrator.current_workflow() is workflow


def test_failed_verification_is_fixed_and_retried(tmp_path: Path) -> None:
    attempts: dict[str, int] = {}

    def handler(agent: str, context: dict[str, Any]) -> dict[str, Any]:
        if context["task"] == "Verify implementation":
            attempts["verify"] = attempts.get("verify", 0) + 1
            if attempts["verify"] == 1:
                return {
                    "success": False,
                    "message": "2 tests failed",
                    "details": {"message": "GET /users endpoint returned 500"},
                }
        return {"success": True, "message": f"{agent} ok"}

    backend = ScriptedBackend(handler)
    orchestrator = _orchestrator(tmp_path, backend)

    outcome = asyncio.run(orchestrator.run(_generic()))

    workflow = orchestrator.get_workflow(outcome.workflow_id)
    assert outcome.success is True
    verify = next(task for task in workflow.tasks if task.description == "Verify implementation")
    fix = next(task for task in workflow.tasks if task.fix_for == verify.id)
    assert verify.status == TaskStatus.COMPLETED
    assert verify.result["fix_domain"] == "interface"
    assert verify.result["result"] == "completed after interface fix cycle"
    assert fix.domain == Domain.INTERFACE
    assert fix.description == "Fix issues identified in tests: Verify implementation"
    assert backend.calls[4:7] == [
        ("testing", "Verify implementation"),
        ("interface", "Fix issues identified in tests: Verify implementation"),
        ("testing", "Verify implementation"),
    ]


def test_verification_failing_after_fix_aborts(tmp_path: Path) -> None:
    def handler(agent: str, context: dict[str, Any]) -> dict[str, Any]:
        if context["task"] == "Verify implementation":
            return {"success": False, "message": "still red", "errors": ["assertion failed"]}
        return {"success": True, "message": "ok"}

    backend = ScriptedBackend(handler)
    orchestrator = _orchestrator(tmp_path, backend)

    outcome = asyncio.run(orchestrator.run(_generic()))

    assert outcome.success is False
    assert outcome.message == "Tests still failing after development specialist fixes: still red"
    assert outcome.errors == ["assertion failed"]
    assert ("testing", "Create tests if needed") not in backend.calls
    assert orchestrator.get_workflow(outcome.workflow_id).status == WorkflowStatus.FAILED


def test_failed_fix_aborts_without_retry(tmp_path: Path) -> None:
    def handler(agent: str, context: dict[str, Any]) -> dict[str, Any]:
        if context["task"] == "Verify implementation":
            return {"success": False, "message": "red", "details": {"failure_domain": "schema"}}
        if context["task"].startswith("Fix issues"):
            return {"success": False, "message": "cannot fix"}
        return {"success": True, "message": "ok"}

    backend = ScriptedBackend(handler)
    orchestrator = _orchestrator(tmp_path, backend)

    outcome = asyncio.run(orchestrator.run(_generic()))

    assert outcome.success is False
    assert outcome.message == "Failed to fix test issues with schema specialist: cannot fix"
    assert backend.calls.count(("testing", "Verify implementation")) == 1


def test_non_verification_failure_aborts_immediately(tmp_path: Path) -> None:
    def handler(agent: str, context: dict[str, Any]) -> dict[str, Any]:
        if context["domain"] == "development":
            return {"success": False, "message": "compile error", "errors": ["boom"]}
        return {"success": True, "message": "ok"}

    backend = ScriptedBackend(handler)
    orchestrator = _orchestrator(tmp_path, backend)

    outcome = asyncio.run(orchestrator.run(_generic()))

    assert outcome.success is False
    assert outcome.message == "Task failed: compile error"
    assert outcome.errors == ["boom"]
    assert all(domain != "testing" for domain, _ in backend.calls)
    assert outcome.next_steps


def test_unmet_dependencies_block_dispatch(tmp_path: Path) -> None:
    backend = ScriptedBackend()
    orchestrator = _orchestrator(tmp_path, backend)
    workflow = Workflow(
        id=Workflow.new_id(),
        name="Out of order",
        description="x",
        kind=WorkflowKind.GENERIC,
        steps=[
            Step(number=1, description="one", domain=Domain.ANALYSIS, tasks=["a"]),
            Step(
                number=2,
                description="two",
                domain=Domain.DEVELOPMENT,
                tasks=["b"],
                depends_on=[3],
            ),
            Step(number=3, description="three", domain=Domain.SCHEMA, tasks=["c"]),
        ],
    )

    outcome = asyncio.run(orchestrator.execute(workflow))

    assert outcome.success is False
    assert outcome.message == "Step 2 has unmet dependencies: 3"
    assert backend.calls == [("analysis", "a")]


def test_timeout_is_a_task_failure(tmp_path: Path) -> None:
    backend = ScriptedBackend(delay=1.0)
    orchestrator = _orchestrator(tmp_path, backend, timeout_seconds=0.05)

    outcome = asyncio.run(orchestrator.run(_generic()))

    assert outcome.success is False
    assert "timed out" in outcome.message
    workflow = orchestrator.get_workflow(outcome.workflow_id)
    assert workflow.tasks[0].status == TaskStatus.FAILED


def test_second_concurrent_run_is_rejected(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, ScriptedBackend(delay=0.01))

    async def _both() -> bool:
        first = asyncio.create_task(orchestrator.run(_generic()))
        await asyncio.sleep(0)
        with pytest.raises(RuntimeError):
            await orchestrator.run(_generic())
        return (await first).success

    assert asyncio.run(_both()) is True


def test_resume_continues_from_failed_step(tmp_path: Path) -> None:
    broken = {"development": True}

    def handler(agent: str, context: dict[str, Any]) -> dict[str, Any]:
        if context["domain"] == "development" and broken["development"]:
            return {"success": False, "message": "not yet"}
        return {"success": True, "message": "ok"}

    backend = ScriptedBackend(handler)
    orchestrator = _orchestrator(tmp_path, backend)
    failed = asyncio.run(orchestrator.run(_generic()))
    broken["development"] = False

    resumed = asyncio.run(orchestrator.resume(failed.workflow_id))

    assert failed.success is False
    assert resumed.success is True
    assert backend.calls.count(("analysis", "Understand task requirements")) == 1
    with pytest.raises(ValueError):
        asyncio.run(orchestrator.resume(failed.workflow_id))


def test_new_feature_workflow_runs_on_feature_branch(git_repo: Path) -> None:
    backend = ScriptedBackend()
    orchestrator = _orchestrator(git_repo, backend)

    outcome = asyncio.run(orchestrator.run("create new feature named billing"))

    assert outcome.success is True
    assert "Merge when ready: maestro merge feature/billing" in outcome.next_steps
    assert "Manual test verification required before merge" in outcome.warnings
    assert backend.calls[0] == ("repository-state", "Create branch: feature/billing")


def test_new_feature_workflow_requires_feature_branch(git_repo: Path) -> None:
    (git_repo / "dirty.txt").write_text("x\n", encoding="utf-8")
    backend = ScriptedBackend()
    orchestrator = _orchestrator(git_repo, backend)

    outcome = asyncio.run(orchestrator.run("create new feature named billing"))

    assert outcome.success is False
    assert outcome.message == "Not on a feature branch. Please create feature branch first."
    assert outcome.errors == ["Current branch: main, expected feature/*"]
    assert backend.calls == []


def test_new_feature_workflow_fails_merge_validation(git_repo: Path) -> None:
    def handler(agent: str, context: dict[str, Any]) -> dict[str, Any]:
        if context["task"] == "Prepare merge request":
            (git_repo / "leftover.txt").write_text("oops\n", encoding="utf-8")
        return {"success": True, "message": "ok"}

    orchestrator = _orchestrator(git_repo, ScriptedBackend(handler))

    outcome = asyncio.run(orchestrator.run("create new feature named billing"))

    assert outcome.success is False
    assert outcome.message.startswith("Workflow completed but validation failed")
    assert "Commit or stash changes before merging" in outcome.next_steps


class ExplodingBackend(ScriptedBackend):
    async def execute(
        self,
        agent: str,
        prompt: str,
        context: dict[str, Any],
    ) -> AsyncIterator[str]:
        if context["domain"] == "development":
            raise KeyError("agent registry corrupted")
        async for line in super().execute(agent, prompt, context):
            yield line


def test_unexpected_specialist_error_fails_the_workflow(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, ExplodingBackend())

    outcome = asyncio.run(orchestrator.run(_generic()))

    workflow = orchestrator.get_workflow(outcome.workflow_id)
    assert outcome.success is False
    assert outcome.message.startswith("Workflow failed:")
    assert "agent registry corrupted" in outcome.errors[0]
    assert workflow.status == WorkflowStatus.FAILED
    assert workflow.tasks[-1].status == TaskStatus.FAILED


def test_unstartable_dispatch_command_is_a_task_failure(tmp_path: Path) -> None:
    script = tmp_path / "agent.sh"
    script.write_text("#!/bin/sh\necho '{}'\n", encoding="utf-8")
    script.chmod(0o644)
    orchestrator = _orchestrator(tmp_path, CommandBackend([str(script)], tmp_path))

    outcome = asyncio.run(orchestrator.run(_generic()))

    assert outcome.success is False
    assert outcome.message.startswith("Task failed: Specialist command could not be started")
    assert orchestrator.get_workflow(outcome.workflow_id).status == WorkflowStatus.FAILED
