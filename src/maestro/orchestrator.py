from __future__ import annotations

import asyncio
import logging

from maestro.backends.base import BackendExecutionError, BackendTimeoutError
from maestro.failures import classify_failure
from maestro.models import (
    Domain,
    Step,
    Task,
    TaskStatus,
    Workflow,
    WorkflowKind,
    WorkflowOutcome,
    WorkflowRequest,
    WorkflowStatus,
)
from maestro.planning import Planner, parse_request
from maestro.specialists.base import Specialist, SpecialistRequest, SpecialistResult
from maestro.state.repository import BranchKind, RepositoryManager

logger = logging.getLogger(__name__)

FAILURE_NEXT_STEPS = [
    "Review the reported errors and warnings",
    "Resolve the issues, then run the workflow again",
]


class Orchestrator:
    """Plans workflows and walks their steps, one task at a time.

    One engine runs one workflow at a time. Specialist failures become failed
    tasks; only a failing verification task gets a fix-and-retry cycle.
    """

    def __init__(
        self,
        planner: Planner,
        repository: RepositoryManager,
        specialists: dict[Domain, Specialist],
        *,
        timeout_seconds: float = 600.0,
    ) -> None:
        self.planner = planner
        self.repository = repository
        self.specialists = specialists
        self.timeout_seconds = timeout_seconds
        self._workflows: dict[str, Workflow] = {}
        self._current_id: str | None = None
        self._busy = False

    def workflows(self) -> list[Workflow]:
        return list(self._workflows.values())

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        return self._workflows.get(workflow_id)

    def current_workflow(self) -> Workflow | None:
        if self._current_id is None:
            return None
        return self._workflows.get(self._current_id)

    def plan(self, request: WorkflowRequest | str) -> Workflow:
        if isinstance(request, str):
            request = parse_request(request)
        workflow = self.planner.plan(request)
        self._workflows[workflow.id] = workflow
        self._current_id = workflow.id
        logger.info(f"Planned {workflow.id} ({workflow.name}) with {len(workflow.steps)} steps")
        return workflow

    async def run(self, request: WorkflowRequest | str) -> WorkflowOutcome:
        self._acquire()
        try:
            workflow = self.plan(request)
            return await self._execute(workflow)
        finally:
            self._busy = False

    async def execute(self, workflow: Workflow) -> WorkflowOutcome:
        self._acquire()
        try:
            self._workflows[workflow.id] = workflow
            self._current_id = workflow.id
            return await self._execute(workflow)
        finally:
            self._busy = False

    async def resume(self, workflow_id: str) -> WorkflowOutcome:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise KeyError(f"Unknown workflow: {workflow_id}")
        if workflow.status != WorkflowStatus.FAILED:
            raise ValueError(
                f"Only failed workflows can be resumed; {workflow_id} is {workflow.status.value}"
            )
        return await self.execute(workflow)

    def _acquire(self) -> None:
        if self._busy:
            raise RuntimeError("A workflow is already running on this engine")
        self._busy = True

    async def _execute(self, workflow: Workflow) -> WorkflowOutcome:
        workflow.transition(WorkflowStatus.EXECUTING)
        try:
            return await self._walk(workflow)
        except Exception as exc:
            if workflow.status != WorkflowStatus.EXECUTING:
                raise
            logger.exception(f"Workflow {workflow.id} raised")
            for task in workflow.tasks:
                if task.status == TaskStatus.IN_PROGRESS:
                    task.fail({"error": str(exc)})
            return self._fail(workflow, f"Workflow failed: {exc}", errors=[str(exc)])

    async def _walk(self, workflow: Workflow) -> WorkflowOutcome:
        logger.info(f"Executing {workflow.id} from step {workflow.current_step}")

        if workflow.kind == WorkflowKind.NEW_FEATURE:
            precheck = self._check_feature_branch(workflow)
            if precheck is not None:
                return precheck

        warnings: list[str] = []
        for step in sorted(workflow.steps, key=lambda item: item.number):
            if step.number < workflow.current_step:
                continue

            unmet = [dep for dep in step.depends_on if not workflow.step_completed(dep)]
            if unmet:
                listed = ", ".join(str(dep) for dep in unmet)
                return self._fail(
                    workflow,
                    f"Step {step.number} has unmet dependencies: {listed}",
                    errors=[f"Dependencies not met: {listed}"],
                )

            workflow.current_step = step.number
            logger.info(f"Step {step.number}: {step.description}")
            failure = await self._run_step(workflow, step, warnings)
            if failure is not None:
                return failure

        if workflow.kind == WorkflowKind.NEW_FEATURE:
            validation = self.repository.validate_for_merge()
            if not validation.valid:
                return self._fail(
                    workflow,
                    "Workflow completed but validation failed: "
                    + ", ".join(validation.errors),
                    errors=validation.errors,
                    warnings=validation.warnings,
                    next_steps=validation.suggestions,
                )
            warnings.extend(validation.warnings)

        workflow.transition(WorkflowStatus.COMPLETED)
        logger.info(f"Workflow {workflow.id} completed")
        return WorkflowOutcome(
            workflow_id=workflow.id,
            success=True,
            message=f'Workflow "{workflow.name}" completed successfully',
            tasks_completed=workflow.completed_tasks(),
            next_steps=self.planner.next_steps(workflow),
            warnings=warnings,
        )

    def _check_feature_branch(self, workflow: Workflow) -> WorkflowOutcome | None:
        if not self.repository.is_initialized() and not self.repository.initialize():
            return self._fail(
                workflow,
                "Failed to initialize git repository. Please initialize git manually.",
                errors=["Git repository initialization failed"],
            )
        prefix = f"{BranchKind.FEATURE.value}/"
        state = self.repository.current_state()
        if not state.current_branch.startswith(prefix):
            return self._fail(
                workflow,
                "Not on a feature branch. Please create feature branch first.",
                errors=[f"Current branch: {state.current_branch}, expected {prefix}*"],
            )
        if not state.is_clean:
            return self._fail(
                workflow,
                "Branch has uncommitted changes. Please commit or stash changes before proceeding.",
                errors=["Uncommitted changes detected"],
            )
        return None

    async def _run_step(
        self, workflow: Workflow, step: Step, warnings: list[str]
    ) -> WorkflowOutcome | None:
        for description in step.tasks:
            if self._already_completed(workflow, step.number, description):
                continue

            task = Task.create(description, step.domain, step.number)
            workflow.tasks.append(task)
            task.start()
            result = await self._dispatch(step.domain, description, workflow)
            warnings.extend(result.warnings)

            if result.success:
                task.complete({"result": "completed successfully", "details": result.details})
                logger.info(f"Task completed: {description}")
                continue

            if step.domain == Domain.TESTING:
                failure = await self._fix_and_retry(workflow, task, result, warnings)
                if failure is not None:
                    return failure
                continue

            task.fail(result.to_dict())
            return self._fail(
                workflow,
                f"Task failed: {result.message}",
                errors=result.errors,
                warnings=result.warnings,
            )
        return None

    async def _fix_and_retry(
        self,
        workflow: Workflow,
        task: Task,
        failure: SpecialistResult,
        warnings: list[str],
    ) -> WorkflowOutcome | None:
        fix_domain = classify_failure(
            task.description, failure.message, failure.details, failure.errors
        )
        logger.info(f"Verification failed: {failure.message}; routing fix to {fix_domain.value}")

        fix_task = Task.create(
            f"Fix issues identified in tests: {task.description}",
            fix_domain,
            task.step,
            fix_for=task.id,
        )
        workflow.tasks.append(fix_task)
        fix_task.start()
        fix_result = await self._dispatch(fix_domain, fix_task.description, workflow)
        warnings.extend(fix_result.warnings)
        if not fix_result.success:
            fix_task.fail(fix_result.to_dict())
            task.fail(failure.to_dict())
            return self._fail(
                workflow,
                f"Failed to fix test issues with {fix_domain.value} specialist: "
                f"{fix_result.message}",
                errors=fix_result.errors,
                warnings=fix_result.warnings,
            )
        fix_task.complete({"result": "completed successfully", "details": fix_result.details})

        logger.info(f"Retrying verification: {task.description}")
        retry = await self._dispatch(Domain.TESTING, task.description, workflow)
        warnings.extend(retry.warnings)
        if not retry.success:
            task.fail(retry.to_dict())
            return self._fail(
                workflow,
                f"Tests still failing after {fix_domain.value} specialist fixes: {retry.message}",
                errors=retry.errors,
                warnings=retry.warnings,
            )
        task.complete(
            {
                "result": f"completed after {fix_domain.value} fix cycle",
                "details": retry.details,
                "fix_domain": fix_domain.value,
            }
        )
        return None

    async def _dispatch(
        self, domain: Domain, description: str, workflow: Workflow
    ) -> SpecialistResult:
        specialist = self.specialists.get(domain)
        if specialist is None:
            message = f"No specialist registered for {domain.value}"
            return SpecialistResult(success=False, message=message, errors=[message])

        request = SpecialistRequest(
            domain=domain,
            description=description,
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            subject=workflow.subject,
            project_root=str(self.repository.repo_root),
            current_step=workflow.current_step,
        )
        logger.debug(f"Dispatching to {specialist.agent}: {description}")
        try:
            return await self._run_bounded(specialist, request)
        except BackendExecutionError as exc:
            logger.warning(f"Specialist {specialist.agent} failed: {exc}")
            return SpecialistResult(success=False, message=str(exc), errors=[str(exc)])

    async def _run_bounded(
        self, specialist: Specialist, request: SpecialistRequest
    ) -> SpecialistResult:
        try:
            return await asyncio.wait_for(specialist.run(request), timeout=self.timeout_seconds)
        except TimeoutError as exc:
            raise BackendTimeoutError(
                f"Specialist {specialist.agent} timed out after {self.timeout_seconds:g}s",
                backend=specialist.agent,
            ) from exc

    @staticmethod
    def _already_completed(workflow: Workflow, step: int, description: str) -> bool:
        attempts = [
            task
            for task in workflow.step_tasks(step)
            if task.fix_for is None and task.description == description
        ]
        return bool(attempts) and attempts[-1].status == TaskStatus.COMPLETED

    def _fail(
        self,
        workflow: Workflow,
        message: str,
        *,
        errors: list[str] | None = None,
        warnings: list[str] | None = None,
        next_steps: list[str] | None = None,
    ) -> WorkflowOutcome:
        workflow.transition(WorkflowStatus.FAILED)
        logger.error(f"Workflow {workflow.id} failed: {message}")
        return WorkflowOutcome(
            workflow_id=workflow.id,
            success=False,
            message=message,
            tasks_completed=workflow.completed_tasks(),
            next_steps=next_steps if next_steps is not None else list(FAILURE_NEXT_STEPS),
            warnings=list(warnings or []),
            errors=list(errors or []),
        )
