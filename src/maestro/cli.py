from __future__ import annotations

import asyncio
import tomllib
from dataclasses import dataclass
from pathlib import Path

import click

from maestro.backends import CommandBackend
from maestro.config import MaestroConfig, load_config
from maestro.logging import configure_logging
from maestro.models import WorkflowKind, WorkflowOutcome, WorkflowRequest
from maestro.orchestrator import Orchestrator
from maestro.patterns import format_patterns
from maestro.planning import Planner
from maestro.scaffold import CONFIG_FILENAME, Scaffolder, ScaffoldError
from maestro.specialists import build_specialists
from maestro.state import (
    BranchKind,
    BranchSpec,
    CollaborationStore,
    ProjectAnalyzer,
    RepositoryManager,
    format_analysis,
)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(slots=True)
class Settings:
    repo_root: Path
    config_path: Path
    config: MaestroConfig


@dataclass(slots=True)
class Runtime:
    repo_root: Path
    config: MaestroConfig
    repository: RepositoryManager
    analyzer: ProjectAnalyzer
    store: CollaborationStore
    orchestrator: Orchestrator


def _resolve_config_path(repo_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = repo_root / config_path
    return config_path.resolve()


def _build_repository(repo_root: Path, config: MaestroConfig) -> RepositoryManager:
    return RepositoryManager(
        repo_root,
        base_branch=config.git.base_branch,
        fallback_base_branch=config.git.fallback_base_branch,
        remote=config.git.remote,
        auto_init=config.git.auto_init,
        verification_commands=[
            config.project.test_command,
            config.project.lint_command,
            config.project.type_check_command,
        ],
    )


def _load_runtime(settings: Settings) -> Runtime:
    config = settings.config
    repository = _build_repository(settings.repo_root, config)
    analyzer = ProjectAnalyzer(settings.repo_root, config.layout)
    store = CollaborationStore()
    backend = CommandBackend(config.dispatch.command, working_directory=settings.repo_root)
    orchestrator = Orchestrator(
        planner=Planner(repository, analyzer, config.layout),
        repository=repository,
        specialists=build_specialists(backend, config, store),
        timeout_seconds=max(1.0, float(config.dispatch.timeout_seconds)),
    )
    return Runtime(
        repo_root=settings.repo_root,
        config=config,
        repository=repository,
        analyzer=analyzer,
        store=store,
        orchestrator=orchestrator,
    )


def _echo_list(title: str, items: list[str]) -> None:
    if not items:
        return
    click.echo(f"\n{title}:")
    for item in items:
        click.echo(f"   - {item}")


def _echo_outcome(outcome: WorkflowOutcome) -> None:
    click.echo(f"\n{outcome.message}")
    _echo_list("Completed tasks", [task.description for task in outcome.tasks_completed])
    _echo_list("Next steps", outcome.next_steps)
    _echo_list("Warnings", outcome.warnings)
    _echo_list("Errors", outcome.errors)


def _run_workflow(settings: Settings, request: WorkflowRequest | str) -> None:
    runtime = _load_runtime(settings)
    try:
        outcome = asyncio.run(runtime.orchestrator.run(request))
    except RuntimeError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_outcome(outcome)


@click.group()
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
@click.option(
    "--log-level",
    envvar="MAESTRO_LOG_LEVEL",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Overrides [logging] level from the config file.",
)
@click.pass_context
def cli(ctx: click.Context, config_value: str, log_level: str | None) -> None:
    """Maestro CLI."""
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    try:
        config = load_config(config_path)
    except (tomllib.TOMLDecodeError, TypeError, ValueError) as exc:
        raise click.ClickException(f"Invalid config {config_path}: {exc}") from exc
    configure_logging(log_level or config.logging.level, config.logging.format)
    ctx.obj = Settings(repo_root=repo_root, config_path=config_path, config=config)


@cli.command("analyze")
@click.pass_obj
def analyze_command(settings: Settings) -> None:
    analyzer = ProjectAnalyzer(settings.repo_root, settings.config.layout)
    click.echo(format_analysis(analyzer.analyze()))


@cli.command("new-feature")
@click.argument("name")
@click.option("-d", "--description", default=None, help="Feature description")
@click.pass_obj
def new_feature_command(settings: Settings, name: str, description: str | None) -> None:
    click.echo(f"Creating new feature: {name}")
    request = WorkflowRequest(
        kind=WorkflowKind.NEW_FEATURE,
        description=description or f'Create new feature "{name}"',
        subject=name,
    )
    _run_workflow(settings, request)


@cli.command("fix-violations")
@click.pass_obj
def fix_violations_command(settings: Settings) -> None:
    click.echo("Fixing layout violations...")
    request = WorkflowRequest(
        kind=WorkflowKind.FIX_VIOLATIONS, description="Fix all layout violations"
    )
    _run_workflow(settings, request)


@cli.command("run")
@click.argument("request")
@click.pass_obj
def run_command(settings: Settings, request: str) -> None:
    _run_workflow(settings, request)


@cli.command("workflows")
@click.pass_obj
def workflows_command(settings: Settings) -> None:
    runtime = _load_runtime(settings)
    workflows = runtime.orchestrator.workflows()
    if not workflows:
        click.echo("No workflows executed yet.")
        return
    for workflow in workflows:
        completed = len(workflow.completed_tasks())
        click.echo(workflow.id)
        click.echo(f"  Name: {workflow.name}")
        click.echo(f"  Description: {workflow.description}")
        click.echo(f"  Status: {workflow.status.value}")
        click.echo(f"  Current step: {workflow.current_step}/{len(workflow.steps)}")
        click.echo(f"  Completed tasks: {completed}/{len(workflow.tasks)}")
        click.echo("---")


@cli.command("git-status")
@click.pass_obj
def git_status_command(settings: Settings) -> None:
    status = _build_repository(settings.repo_root, settings.config).status()
    info = status.branch_info

    def flag(value: bool) -> str:
        return "yes" if value else "no"

    click.echo("Git workflow status:")
    click.echo(f"   Initialized: {flag(status.initialized)}")
    click.echo(f"   Current branch: {status.current_branch}")
    click.echo(f"   Clean working directory: {flag(info.is_clean)}")
    click.echo(f"   Remote configured: {flag(info.remote_exists)}")
    if info.ahead:
        click.echo(f"   Ahead of remote: {info.ahead} commit(s)")
    if info.behind:
        click.echo(f"   Behind remote: {info.behind} commit(s)")
    _echo_list("Recommendations", status.recommendations)


@cli.command("create-branch")
@click.argument("kind", type=click.Choice([item.value for item in BranchKind]))
@click.argument("name")
@click.option("-d", "--description", default=None, help="Branch description")
@click.option("-i", "--issue", default=None, help="Issue or PR id")
@click.pass_obj
def create_branch_command(
    settings: Settings, kind: str, name: str, description: str | None, issue: str | None
) -> None:
    repository = _build_repository(settings.repo_root, settings.config)
    result = repository.create_branch(
        BranchSpec(
            kind=BranchKind(kind),
            name=name,
            description=description or f"Implement {name}",
            issue=issue,
        )
    )
    if not result.success:
        click.echo(f"Failed: {result.message}")
        return
    click.echo(result.message)
    click.echo(f"   Branch: {result.branch_name}")
    _echo_list(
        "Next steps",
        [
            "Implement your change and commit regularly",
            f"Run tests: {settings.config.project.test_command}",
            "When ready, validate for merge: maestro validate-merge",
        ],
    )


@cli.command("validate-merge")
@click.pass_obj
def validate_merge_command(settings: Settings) -> None:
    validation = _build_repository(settings.repo_root, settings.config).validate_for_merge()
    if validation.valid:
        click.echo("Branch is ready for merge.")
    else:
        click.echo("Branch cannot be merged:")
        for error in validation.errors:
            click.echo(f"   - {error}")
    _echo_list("Warnings", validation.warnings)
    _echo_list("Suggestions", validation.suggestions)
    if validation.valid:
        click.echo("\nTo merge, run: maestro merge <branch-name>")


@cli.command("merge")
@click.argument("branch")
@click.option(
    "--strategy",
    type=click.Choice(["merge", "squash", "rebase"]),
    default="merge",
    show_default=True,
)
@click.pass_obj
def merge_command(settings: Settings, branch: str, strategy: str) -> None:
    result = _build_repository(settings.repo_root, settings.config).merge_to_main(
        branch, strategy  # type: ignore[arg-type]
    )
    click.echo(result.message)


@cli.command("patterns")
def patterns_command() -> None:
    click.echo(format_patterns())


@cli.command("init")
@click.option("--skip-git", is_flag=True, default=False, help="Skip git initialization")
@click.option("--skip-install", is_flag=True, default=False, help="Skip dependency install")
@click.option("--verbose", is_flag=True, default=False, help="Show detailed output")
@click.option("--name", default=None, help="Project name")
@click.option("--description", default=None, help="Project description")
@click.pass_obj
def init_command(
    settings: Settings,
    skip_git: bool,
    skip_install: bool,
    verbose: bool,
    name: str | None,
    description: str | None,
) -> None:
    config = settings.config
    if verbose:
        configure_logging("DEBUG", config.logging.format)
    if name:
        config.project.name = name
    if description:
        config.project.description = description

    try:
        result = Scaffolder(
            settings.repo_root, config, skip_git=skip_git, skip_install=skip_install
        ).run()
    except ScaffoldError as exc:
        raise click.ClickException(
            f"{exc}\nMake sure you are in an empty directory and have write permissions."
        ) from exc

    click.echo(f"Initialized {config.project.name} in {result.root}")
    click.echo(f"   Created {len(result.created_dirs)} directories")
    click.echo(f"   Generated {len(result.created_files)} files")
    if result.git_initialized:
        click.echo("   Git repository initialized")
    if result.dependencies_installed:
        click.echo("   Dependencies installed")
    _echo_list("Warnings", result.warnings)
