from __future__ import annotations

import logging
import re

from maestro.config import LayoutConfig
from maestro.models import Domain, Step, Workflow, WorkflowKind, WorkflowRequest
from maestro.state.analyzer import ProjectAnalysis, ProjectAnalyzer
from maestro.state.repository import BranchKind, BranchSpec, RepositoryManager

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "new-feature"

SUBJECT_PATTERNS = (
    re.compile(r"(?:named|called)\s+[\"']?([^\"'\s:]+)", re.IGNORECASE),
    re.compile(r"feature\s+[\"']?([^\"'\s:]+)", re.IGNORECASE),
    re.compile(r"create\s+[\"']?([^\"'\s:]+)", re.IGNORECASE),
)


def classify_request(text: str) -> WorkflowKind:
    lowered = text.lower()
    if "new feature" in lowered or "create feature" in lowered:
        return WorkflowKind.NEW_FEATURE
    if "analyze" in lowered or "review" in lowered:
        return WorkflowKind.ANALYSIS
    if "fix" in lowered or "violation" in lowered:
        return WorkflowKind.FIX_VIOLATIONS
    return WorkflowKind.GENERIC


def extract_subject(text: str) -> str:
    for pattern in SUBJECT_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return DEFAULT_SUBJECT


def parse_request(text: str) -> WorkflowRequest:
    kind = classify_request(text)
    subject = extract_subject(text) if kind == WorkflowKind.NEW_FEATURE else None
    return WorkflowRequest(kind=kind, description=text, subject=subject)


class Planner:
    """Turns a workflow request into an ordered, dependency-annotated plan."""

    def __init__(
        self,
        repository: RepositoryManager,
        analyzer: ProjectAnalyzer,
        layout: LayoutConfig | None = None,
    ) -> None:
        self.repository = repository
        self.analyzer = analyzer
        self.layout = layout or analyzer.layout

    def plan(self, request: WorkflowRequest) -> Workflow:
        if request.kind == WorkflowKind.NEW_FEATURE:
            return self._new_feature(request)
        if request.kind == WorkflowKind.ANALYSIS:
            return self._analysis()
        if request.kind == WorkflowKind.FIX_VIOLATIONS:
            return self._fix_violations(self.analyzer.analyze())
        return self._generic(request)

    def _new_feature(self, request: WorkflowRequest) -> Workflow:
        feature = request.subject or extract_subject(request.description)
        creation = self.repository.create_branch(
            BranchSpec(
                kind=BranchKind.FEATURE,
                name=feature,
                description=f"Implement {feature} feature",
            )
        )
        steps: list[Step] = []
        if creation.success:
            steps.append(
                Step(
                    number=1,
                    description="Create git branch for feature development",
                    domain=Domain.REPOSITORY_STATE,
                    tasks=[
                        f"Create branch: {creation.branch_name}",
                        "Initialize branch with base structure",
                    ],
                )
            )
        else:
            logger.warning(f"Planning {feature} without a feature branch: {creation.message}")

        base = 2 if creation.success else 1
        feature_dir = f"{self.layout.source_root}/features/{feature}"
        steps.extend(
            [
                Step(
                    number=base,
                    description="Analyze project structure and requirements",
                    domain=Domain.ANALYSIS,
                    tasks=[
                        "Analyze current project structure",
                        "Identify requirements for new feature",
                    ],
                    depends_on=[1] if creation.success else [],
                ),
                Step(
                    number=base + 1,
                    description="Create feature directory structure",
                    domain=Domain.DEVELOPMENT,
                    tasks=[
                        f"Create feature directory: {feature_dir}",
                        "Create core, fragments, api, components, tests subdirectories",
                    ],
                    depends_on=[base],
                ),
                Step(
                    number=base + 2,
                    description="Implement core business logic",
                    domain=Domain.DEVELOPMENT,
                    tasks=[
                        f"Create domain entities for {feature}",
                        f"Implement business services for {feature}",
                        "Create repository interfaces",
                        "Define DTOs and types",
                    ],
                    depends_on=[base + 1],
                ),
                Step(
                    number=base + 3,
                    description="Set up database entities",
                    domain=Domain.SCHEMA,
                    tasks=[
                        "Update schema definition if needed",
                        "Create database migrations",
                        "Implement repository classes",
                    ],
                    depends_on=[base + 2],
                ),
                Step(
                    number=base + 4,
                    description="Implement authentication if needed",
                    domain=Domain.AUTHORIZATION,
                    tasks=[
                        "Add authentication requirements analysis",
                        "Implement auth middleware if required",
                        "Set up RBAC permissions",
                    ],
                    depends_on=[base + 2],
                ),
                Step(
                    number=base + 5,
                    description="Create fragments and components",
                    domain=Domain.MARKUP,
                    tasks=[
                        f"Create fragments for {feature}",
                        "Implement UI components",
                        "Set up fragment routes",
                        "Coordinate with the style specialist",
                    ],
                    depends_on=[base + 1, base + 2],
                ),
                Step(
                    number=base + 6,
                    description="Implement styling and design",
                    domain=Domain.STYLE,
                    tasks=[
                        f"Create CSS components for {feature}",
                        "Implement variable-based theme system",
                        "Ensure responsive and accessible design",
                        "Coordinate CSS variables with fragments",
                    ],
                    depends_on=[base + 5],
                ),
                Step(
                    number=base + 7,
                    description="Implement API endpoints",
                    domain=Domain.INTERFACE,
                    tasks=[
                        f"Create API routes for {feature}",
                        "Implement request/response handlers",
                        "Set up API versioning",
                        "Create OpenAPI documentation",
                    ],
                    depends_on=[base + 2, base + 3, base + 4],
                ),
                Step(
                    number=base + 8,
                    description="Create comprehensive tests",
                    domain=Domain.TESTING,
                    tasks=[
                        f"Create unit tests for {feature} core logic",
                        "Create fragment tests for components",
                        "Create CSS styling tests",
                        "Create API integration tests",
                        "Create E2E tests for user flows",
                    ],
                    depends_on=[base + 2, base + 5, base + 6, base + 7],
                ),
                Step(
                    number=base + 9,
                    description="Verify layout compliance",
                    domain=Domain.ANALYSIS,
                    tasks=[
                        "Verify all code follows the project layout",
                        "Check directory structure compliance",
                        "Validate separation of concerns",
                        "Run automated tests",
                    ],
                    depends_on=list(range(base + 1, base + 9)),
                ),
                Step(
                    number=base + 10,
                    description="Validate and prepare for merge",
                    domain=Domain.REPOSITORY_STATE,
                    tasks=[
                        "Run final validation checks",
                        "Ensure all tests pass",
                        "Update documentation",
                        "Prepare merge request",
                    ],
                    depends_on=[base + 9],
                ),
            ]
        )
        return Workflow(
            id=Workflow.new_id(),
            name=f"Create Feature: {feature}",
            description=f'Create new feature "{feature}" following the project layout',
            kind=WorkflowKind.NEW_FEATURE,
            steps=steps,
            subject=feature,
            branch_name=creation.branch_name if creation.success else None,
        )

    def _analysis(self) -> Workflow:
        return Workflow(
            id=Workflow.new_id(),
            name="Project Analysis",
            description="Analyze project structure and provide recommendations",
            kind=WorkflowKind.ANALYSIS,
            steps=[
                Step(
                    number=1,
                    description="Comprehensive project analysis",
                    domain=Domain.ANALYSIS,
                    tasks=[
                        "Analyze directory structure",
                        "Check layout compliance",
                        "Identify violations and issues",
                        "Generate recommendations",
                    ],
                ),
                Step(
                    number=2,
                    description="Generate specialist suggestions",
                    domain=Domain.ANALYSIS,
                    tasks=[
                        f"Create {domain.value} specialist suggestions"
                        for domain in (
                            Domain.DEVELOPMENT,
                            Domain.MARKUP,
                            Domain.SCHEMA,
                            Domain.TESTING,
                            Domain.AUTHORIZATION,
                            Domain.INTERFACE,
                        )
                    ],
                    depends_on=[1],
                ),
            ],
        )

    def _fix_violations(self, analysis: ProjectAnalysis) -> Workflow:
        return Workflow(
            id=Workflow.new_id(),
            name="Fix Layout Violations",
            description="Fix identified layout violations and improve structure",
            kind=WorkflowKind.FIX_VIOLATIONS,
            steps=[
                Step(
                    number=1,
                    description="Analyze current violations",
                    domain=Domain.ANALYSIS,
                    tasks=[
                        "Review all layout violations",
                        "Prioritize fixes based on impact",
                        "Create fix plan",
                    ],
                ),
                Step(
                    number=2,
                    description="Execute fixes based on violation type",
                    domain=Domain.ANALYSIS,
                    tasks=[f"Fix: {violation.message}" for violation in analysis.violations],
                    depends_on=[1],
                ),
            ],
        )

    def _generic(self, request: WorkflowRequest) -> Workflow:
        return Workflow(
            id=Workflow.new_id(),
            name="Generic Development Task",
            description=request.description,
            kind=WorkflowKind.GENERIC,
            subject=request.subject,
            steps=[
                Step(
                    number=1,
                    description="Analyze task requirements",
                    domain=Domain.ANALYSIS,
                    tasks=[
                        "Understand task requirements",
                        "Identify affected components",
                        "Determine required specialists",
                    ],
                ),
                Step(
                    number=2,
                    description="Execute task with appropriate specialists",
                    domain=Domain.DEVELOPMENT,
                    tasks=[f"Execute main task: {request.description}"],
                    depends_on=[1],
                ),
                Step(
                    number=3,
                    description="Verify and test",
                    domain=Domain.TESTING,
                    tasks=["Verify implementation", "Create tests if needed"],
                    depends_on=[2],
                ),
            ],
        )

    def next_steps(self, workflow: Workflow) -> list[str]:
        steps: list[str] = []
        if workflow.kind == WorkflowKind.NEW_FEATURE:
            steps.extend(
                [
                    "Test the new feature thoroughly",
                    "Update documentation for the new feature",
                    "Consider adding additional functionality based on user feedback",
                ]
            )
            if workflow.branch_name:
                steps.append(f"Merge when ready: maestro merge {workflow.branch_name}")
        elif workflow.kind == WorkflowKind.ANALYSIS:
            analysis = self.analyzer.analyze()
            if analysis.violations:
                steps.append("Run the fix-violations workflow to address identified issues")
            if analysis.specialist_suggestions.get("development"):
                steps.append("Consider running development specialist tasks for business logic")
            if analysis.specialist_suggestions.get("markup"):
                steps.append("Consider running markup specialist tasks for UI improvements")
        steps.append("Run additional analysis to verify improvements")
        steps.append("Consider running comprehensive test suite")
        return steps
