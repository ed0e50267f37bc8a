from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal

logger = logging.getLogger(__name__)

MergeStrategy = Literal["merge", "squash", "rebase"]

MAX_BRANCH_NAME_LENGTH = 100
BRANCH_NAME_PATTERN = re.compile(
    r"^(feature|bugfix|spec|hotfix|release)/[a-z0-9]+(-[a-z0-9]+)*$"
)
INVALID_CHARACTER_PATTERN = re.compile(r"[^a-z0-9/-]")
CONVENTIONAL_COMMIT_PATTERN = re.compile(
    r"^(feat|fix|docs|style|refactor|test|chore|hotfix|release)\([^)]+\):"
)
EMPTY_SLUG = "untitled"


class RepositoryError(RuntimeError):
    """Raised by git plumbing; public methods convert it into result objects."""


class BranchKind(str, Enum):
    FEATURE = "feature"
    BUGFIX = "bugfix"
    SPEC = "spec"
    HOTFIX = "hotfix"
    RELEASE = "release"


COMMIT_TYPES: dict[BranchKind, str] = {
    BranchKind.FEATURE: "feat",
    BranchKind.BUGFIX: "fix",
    BranchKind.SPEC: "docs",
    BranchKind.HOTFIX: "hotfix",
    BranchKind.RELEASE: "release",
}


@dataclass(slots=True)
class BranchSpec:
    kind: BranchKind
    name: str
    description: str
    issue: str | None = None
    base_branch: str | None = None


@dataclass(slots=True)
class BranchInfo:
    current_branch: str
    is_clean: bool
    has_changes: bool = False
    remote_exists: bool = False
    ahead: int = 0
    behind: int = 0


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass(slots=True)
class BranchCreation:
    success: bool
    branch_name: str
    message: str


@dataclass(slots=True)
class MergeResult:
    success: bool
    message: str


@dataclass(slots=True)
class RepositoryStatus:
    initialized: bool
    current_branch: str
    branch_info: BranchInfo
    recommendations: list[str] = field(default_factory=list)


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


class RepositoryManager:
    """Branch lifecycle for the working copy the workflows run against.

    Every public operation reports failure through its return value; git errors
    never propagate to the caller.
    """

    def __init__(
        self,
        repo_root: Path,
        *,
        base_branch: str = "main",
        fallback_base_branch: str = "master",
        remote: str = "origin",
        auto_init: bool = True,
        verification_commands: list[str] | None = None,
    ) -> None:
        self.repo_root = repo_root.resolve()
        self.base_branch = base_branch
        self.fallback_base_branch = fallback_base_branch
        self.remote = remote
        self.auto_init = auto_init
        self.verification_commands = [
            command for command in (verification_commands or []) if command.strip()
        ]

    def _run_git(self, args: list[str], check: bool = True) -> subprocess.CompletedProcess[str]:
        try:
            proc = subprocess.run(
                ["git", "--no-pager", *args],
                cwd=self.repo_root,
                text=True,
                capture_output=True,
            )
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise RepositoryError(f"Unable to run git in {self.repo_root}: {exc}") from exc
        if check and proc.returncode != 0:
            raise RepositoryError(proc.stderr.strip() or proc.stdout.strip())
        return proc

    def is_initialized(self) -> bool:
        try:
            proc = self._run_git(["rev-parse", "--is-inside-work-tree"], check=False)
        except RepositoryError:
            return False
        return proc.returncode == 0 and proc.stdout.strip() == "true"

    def initialize(self) -> bool:
        if self.is_initialized():
            return True
        try:
            self._run_git(["init"])
            self._run_git(["add", "--all"])
            self._run_git(
                ["commit", "--allow-empty", "-m", "chore(repo): initial commit"]
            )
        except RepositoryError as exc:
            logger.error(f"Failed to initialize git repository: {exc}")
            return False
        logger.info(f"Initialized git repository at {self.repo_root}")
        return True

    def _has_remote(self) -> bool:
        proc = self._run_git(["remote", "get-url", self.remote], check=False)
        return proc.returncode == 0

    def _current_branch(self) -> str:
        branch = self._run_git(["branch", "--show-current"]).stdout.strip()
        if branch:
            return branch
        # Detached HEAD.
        return self._run_git(["rev-parse", "--short", "HEAD"]).stdout.strip() or "HEAD"

    def _porcelain_status(self) -> str:
        return self._run_git(["status", "--porcelain"]).stdout.strip()

    def current_state(self) -> BranchInfo:
        try:
            current_branch = self._current_branch()
            is_clean = self._porcelain_status() == ""
            remote_exists = self._has_remote()
            ahead = 0
            behind = 0
            if remote_exists:
                counts = self._run_git(
                    [
                        "rev-list",
                        "--left-right",
                        "--count",
                        f"{self.remote}/{current_branch}...{current_branch}",
                    ],
                    check=False,
                )
                if counts.returncode == 0 and counts.stdout.strip():
                    behind_raw, _, ahead_raw = counts.stdout.strip().partition("\t")
                    behind = int(behind_raw or 0)
                    ahead = int(ahead_raw or 0)
        except (RepositoryError, ValueError) as exc:
            logger.warning(f"Failed to read branch state: {exc}")
            return BranchInfo(current_branch="unknown", is_clean=False)
        return BranchInfo(
            current_branch=current_branch,
            is_clean=is_clean,
            has_changes=not is_clean,
            remote_exists=remote_exists,
            ahead=ahead,
            behind=behind,
        )

    @staticmethod
    def name_branch(spec: BranchSpec) -> str:
        prefix = BranchKind(spec.kind).value
        slug = slugify(spec.name) or EMPTY_SLUG
        issue = slugify(spec.issue) if spec.issue else ""
        head = f"{prefix}/{issue}-" if issue else f"{prefix}/"
        budget = MAX_BRANCH_NAME_LENGTH - len(head)
        if budget < len(EMPTY_SLUG):
            # An oversized issue reference cannot fit; keep the name usable.
            head = f"{prefix}/"
            budget = MAX_BRANCH_NAME_LENGTH - len(head)
        slug = slug[:budget].strip("-") or EMPTY_SLUG
        return f"{head}{slug}"

    def _branch_exists(self, branch_name: str) -> bool:
        local = self._run_git(["branch", "--list", branch_name], check=False)
        if local.returncode == 0 and local.stdout.strip():
            return True
        remote = self._run_git(["branch", "-r", "--list", f"*/{branch_name}"], check=False)
        return remote.returncode == 0 and bool(remote.stdout.strip())

    def validate_name(self, branch_name: str) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []
        suggestions: list[str] = []

        if len(branch_name) > MAX_BRANCH_NAME_LENGTH:
            errors.append(f"Branch name too long (max {MAX_BRANCH_NAME_LENGTH} characters)")

        if not BRANCH_NAME_PATTERN.match(branch_name):
            errors.append(
                "Invalid branch name format. Expected: {kind}/{name} or {kind}/{issue}-{name}"
            )
            suggestions.append(
                "Use format: feature/user-authentication or feature/123-add-user-auth"
            )

        if INVALID_CHARACTER_PATTERN.search(branch_name):
            errors.append("Branch name contains invalid characters")
            suggestions.append(
                "Use only lowercase letters, numbers, hyphens, and forward slashes"
            )

        try:
            if self.is_initialized() and self._branch_exists(branch_name):
                warnings.append(f'Branch "{branch_name}" already exists')
        except RepositoryError as exc:
            logger.debug(f"Skipping branch collision check: {exc}")

        return ValidationResult(
            valid=not errors, errors=errors, warnings=warnings, suggestions=suggestions
        )

    @staticmethod
    def checkpoint_message(spec: BranchSpec) -> str:
        commit_type = COMMIT_TYPES[BranchKind(spec.kind)]
        scope = slugify(spec.name) or EMPTY_SLUG
        message = f"{commit_type}({scope}): {spec.description}"
        if spec.issue:
            message += f"\n\nRefs: {spec.issue}"
        return message

    def _checkout_base(self, preferred: str | None) -> str | None:
        candidates = [preferred or self.base_branch, self.fallback_base_branch]
        for candidate in candidates:
            proc = self._run_git(["checkout", candidate], check=False)
            if proc.returncode == 0:
                return candidate
        return None

    def _resolve_base(self) -> str | None:
        for candidate in (self.base_branch, self.fallback_base_branch):
            proc = self._run_git(
                ["rev-parse", "--verify", "--quiet", f"refs/heads/{candidate}"], check=False
            )
            if proc.returncode == 0:
                return candidate
        return None

    def create_branch(self, spec: BranchSpec) -> BranchCreation:
        if not self.is_initialized() and not (self.auto_init and self.initialize()):
            return BranchCreation(
                success=False,
                branch_name="",
                message="Git repository is not initialized",
            )

        branch_name = self.name_branch(spec)
        validation = self.validate_name(branch_name)
        if not validation.valid:
            return BranchCreation(
                success=False,
                branch_name=branch_name,
                message=f"Invalid branch name: {', '.join(validation.errors)}",
            )

        state = self.current_state()
        if not state.is_clean:
            return BranchCreation(
                success=False,
                branch_name=branch_name,
                message=(
                    "Current branch has uncommitted changes. Please commit or stash "
                    "changes before creating a new branch."
                ),
            )

        try:
            base = self._checkout_base(spec.base_branch)
            if base is None:
                logger.info(
                    f"No base branch found; branching {branch_name} from {state.current_branch}"
                )
            if self._has_remote():
                pull = self._run_git(["pull", "--ff-only"], check=False)
                if pull.returncode != 0:
                    logger.info(f"Skipping sync with {self.remote}: {pull.stderr.strip()}")
            self._run_git(["checkout", "-b", branch_name])
            self._run_git(["commit", "--allow-empty", "-m", self.checkpoint_message(spec)])
        except RepositoryError as exc:
            return BranchCreation(
                success=False,
                branch_name=branch_name,
                message=f"Failed to create branch: {exc}",
            )

        logger.info(f"Created branch {branch_name}")
        return BranchCreation(
            success=True,
            branch_name=branch_name,
            message=(
                f'Created branch "{branch_name}" for {BranchKind(spec.kind).value}: '
                f"{spec.description}"
            ),
        )

    def validate_for_merge(self, branch_name: str | None = None) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []
        suggestions: list[str] = []

        try:
            current_branch = branch_name or self._current_branch()
            dirty = self._porcelain_status() != ""
        except RepositoryError as exc:
            return ValidationResult(
                valid=False,
                errors=[f"Unable to inspect working copy: {exc}"],
                suggestions=["Initialize the repository: git init"],
            )

        if dirty:
            errors.append("Branch has uncommitted changes")
            suggestions.append("Commit or stash changes before merging")

        warnings.append("Manual test verification required before merge")
        if self.verification_commands:
            suggestions.append(f"Run: {' && '.join(self.verification_commands)}")
        else:
            suggestions.append("Run the project's test, lint and type-check commands")

        try:
            base_ref = self._merge_base_ref()
            if base_ref is not None:
                merge_base = self._run_git(["merge-base", base_ref, current_branch]).stdout.strip()
                base_head = self._run_git(["rev-parse", base_ref]).stdout.strip()
                if merge_base != base_head:
                    warnings.append(f"Branch is not up to date with {base_ref}")
                    suggestions.append(
                        f"Merge {base_ref} into branch before merging: git merge {base_ref}"
                    )

                subjects = self._run_git(
                    ["log", f"{base_ref}..{current_branch}", "--format=%s"]
                ).stdout.splitlines()
                invalid = [
                    subject
                    for subject in subjects
                    if subject.strip() and not CONVENTIONAL_COMMIT_PATTERN.match(subject)
                ]
                if invalid:
                    warnings.append("Some commits do not follow conventional commit format")
                    suggestions.append("Use format: type(scope): description")
        except RepositoryError as exc:
            logger.debug(f"Skipping divergence checks: {exc}")

        return ValidationResult(
            valid=not errors, errors=errors, warnings=warnings, suggestions=suggestions
        )

    def _merge_base_ref(self) -> str | None:
        if self._has_remote():
            fetch = self._run_git(["fetch", self.remote], check=False)
            if fetch.returncode != 0:
                logger.info(f"Fetch from {self.remote} failed: {fetch.stderr.strip()}")
            for candidate in (self.base_branch, self.fallback_base_branch):
                ref = f"{self.remote}/{candidate}"
                proc = self._run_git(["rev-parse", "--verify", "--quiet", ref], check=False)
                if proc.returncode == 0:
                    return ref
        return self._resolve_base()

    def merge_to_main(self, branch_name: str, strategy: MergeStrategy = "merge") -> MergeResult:
        if strategy not in {"merge", "squash", "rebase"}:
            return MergeResult(success=False, message=f"Unknown merge strategy: {strategy}")

        validation = self.validate_for_merge(branch_name)
        if not validation.valid:
            return MergeResult(
                success=False, message=f"Cannot merge: {', '.join(validation.errors)}"
            )

        try:
            base = self._resolve_base()
            if base is None:
                raise RepositoryError(
                    f"Neither {self.base_branch} nor {self.fallback_base_branch} exists"
                )
            remote_exists = self._has_remote()
            self._run_git(["checkout", base])
            if remote_exists:
                self._run_git(["pull", "--ff-only", self.remote, base])

            if strategy == "squash":
                self._run_git(["merge", "--squash", branch_name])
                self._run_git(
                    ["commit", "--allow-empty", "-m", f"chore(merge): squash {branch_name}"]
                )
            elif strategy == "rebase":
                self._run_git(["rebase", branch_name])
            else:
                self._run_git(["merge", "--no-ff", "--no-edit", branch_name])

            if remote_exists:
                self._run_git(["push", self.remote, base])

            # Squashed commits are not ancestors of base, so -d would refuse.
            delete_flag = "-D" if strategy == "squash" else "-d"
            self._run_git(["branch", delete_flag, branch_name])
        except RepositoryError as exc:
            self._abort_merge(strategy)
            return MergeResult(success=False, message=f"Merge failed: {exc}")

        logger.info(f"Merged {branch_name} into {base} using {strategy}")
        return MergeResult(
            success=True,
            message=f"Successfully merged {branch_name} into {base} using {strategy} strategy",
        )

    def _abort_merge(self, strategy: MergeStrategy) -> None:
        abort = {
            "merge": ["merge", "--abort"],
            "squash": ["reset", "--merge"],
            "rebase": ["rebase", "--abort"],
        }[strategy]
        proc = self._run_git(abort, check=False)
        if proc.returncode != 0:
            logger.debug(f"git {' '.join(abort)}: {proc.stderr.strip()}")

    def status(self) -> RepositoryStatus:
        initialized = self.is_initialized()
        if not initialized:
            info = BranchInfo(current_branch="unknown", is_clean=False)
            return RepositoryStatus(
                initialized=False,
                current_branch=info.current_branch,
                branch_info=info,
                recommendations=["Initialize git repository: git init"],
            )

        info = self.current_state()
        recommendations: list[str] = []
        if not info.remote_exists:
            recommendations.append(f"Add remote repository: git remote add {self.remote} <url>")
        elif info.behind > 0:
            recommendations.append(
                f"Branch is {info.behind} commit(s) behind {self.remote}. "
                f"Run: git pull {self.remote} {info.current_branch}"
            )
        if info.has_changes:
            recommendations.append("Commit or stash changes before creating new branch")
        return RepositoryStatus(
            initialized=True,
            current_branch=info.current_branch,
            branch_info=info,
            recommendations=recommendations,
        )
