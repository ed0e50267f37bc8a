from pathlib import Path

import pytest

from maestro.models import Domain, WorkflowKind, WorkflowRequest
from maestro.planning import Planner, classify_request, extract_subject, parse_request
from maestro.state.analyzer import ProjectAnalyzer
from maestro.state.repository import RepositoryManager


def _planner(root: Path) -> Planner:
    return Planner(RepositoryManager(root), ProjectAnalyzer(root))


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Create new feature named billing", WorkflowKind.NEW_FEATURE),
        ("please create feature cart", WorkflowKind.NEW_FEATURE),
        ("Analyze the project", WorkflowKind.ANALYSIS),
        ("review my layout", WorkflowKind.ANALYSIS),
        ("fix all violations", WorkflowKind.FIX_VIOLATIONS),
        ("add a footer", WorkflowKind.GENERIC),
    ],
)
def test_classify_request(text: str, expected: WorkflowKind) -> None:
    assert classify_request(text) == expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("create new feature named billing", "billing"),
        ("Create feature called 'orders' please", "orders"),
        ('Create new feature "cart": shopping cart', "cart"),
        ("create feature checkout", "checkout"),
        ("something new", "new-feature"),
    ],
)
def test_extract_subject(text: str, expected: str) -> None:
    assert extract_subject(text) == expected


def test_parse_request_only_extracts_subject_for_features() -> None:
    assert parse_request("create new feature named billing").subject == "billing"
    assert parse_request("analyze the project").subject is None


def test_new_feature_plan_creates_branch_and_numbers_steps(git_repo: Path) -> None:
    workflow = _planner(git_repo).plan(parse_request("create new feature named billing"))

    assert workflow.branch_name == "feature/billing"
    assert workflow.subject == "billing"
    assert workflow.name == "Create Feature: billing"
    assert [step.number for step in workflow.steps] == list(range(1, 13))
    assert workflow.steps[0].domain == Domain.REPOSITORY_STATE
    assert workflow.steps[0].tasks[0] == "Create branch: feature/billing"
    assert workflow.steps[1].depends_on == [1]
    assert "Create feature directory: src/features/billing" in workflow.steps[2].tasks
    assert all(dep < step.number for step in workflow.steps for dep in step.depends_on)


def test_new_feature_plan_without_branch_starts_at_one(git_repo: Path) -> None:
    (git_repo / "dirty.txt").write_text("x\n", encoding="utf-8")

    workflow = _planner(git_repo).plan(
        WorkflowRequest(kind=WorkflowKind.NEW_FEATURE, description="x", subject="billing")
    )

    assert workflow.branch_name is None
    assert workflow.steps[0].number == 1
    assert workflow.steps[0].domain == Domain.ANALYSIS
    assert workflow.steps[0].depends_on == []
    assert len(workflow.steps) == 11


def test_fix_violations_plan_lists_each_violation(tmp_path: Path) -> None:
    workflow = _planner(tmp_path).plan(
        WorkflowRequest(kind=WorkflowKind.FIX_VIOLATIONS, description="fix")
    )

    assert workflow.steps[1].tasks == [
        "Fix: Missing core directory for framework-agnostic business logic",
        "Fix: Missing features directory for feature-based modules",
        "Fix: Missing infrastructure directory for framework implementations",
    ]
    assert workflow.steps[1].depends_on == [1]


def test_generic_plan_ends_with_verification(tmp_path: Path) -> None:
    workflow = _planner(tmp_path).plan(
        WorkflowRequest(kind=WorkflowKind.GENERIC, description="add a footer")
    )

    assert [step.domain for step in workflow.steps] == [
        Domain.ANALYSIS,
        Domain.DEVELOPMENT,
        Domain.TESTING,
    ]
    assert workflow.steps[2].tasks == ["Verify implementation", "Create tests if needed"]


def test_analysis_next_steps_reflect_project_state(tmp_path: Path) -> None:
    planner = _planner(tmp_path)
    workflow = planner.plan(WorkflowRequest(kind=WorkflowKind.ANALYSIS, description="analyze"))

    steps = planner.next_steps(workflow)

    assert steps[0] == "Run the fix-violations workflow to address identified issues"
    assert steps[-1] == "Consider running comprehensive test suite"
