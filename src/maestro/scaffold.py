from __future__ import annotations

import json
import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from maestro.config import MaestroConfig, save_config
from maestro.state.analyzer import ProjectAnalyzer
from maestro.state.repository import RepositoryManager

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "maestro.toml"
ALLOWED_EXISTING = {".git", ".gitignore", ".DS_Store", "Thumbs.db"}
INSTALL_TIMEOUT_SECONDS = 300

SKELETON_DIRS = [
    "core/domains",
    "core/services",
    "core/repositories",
    "core/events",
    "core/errors",
    "features/auth/core",
    "features/auth/fragments",
    "features/auth/api",
    "features/auth/components",
    "features/auth/tests/unit",
    "features/auth/tests/fragment",
    "features/auth/tests/e2e",
    "infrastructure/database/repositories",
    "infrastructure/auth/middleware",
    "infrastructure/auth/rbac",
    "infrastructure/http/middleware",
    "infrastructure/http/sse",
    "infrastructure/templates/engine",
    "infrastructure/templates/components",
    "shared/types",
    "shared/constants",
    "shared/utils",
    "shared/layouts",
]

ROOT_DIRS = [
    "public/css",
    "public/js",
    "public/assets",
    "tests/setup",
    "tests/fixtures",
    "prisma",
    "scripts",
]

GITIGNORE = """node_modules/
dist/
coverage/
.env
*.log
"""

SCHEMA = """datasource db {
  provider = "sqlite"
  url      = env("DATABASE_URL")
}

generator client {
  provider = "prisma-client-js"
}
"""


class ScaffoldError(RuntimeError):
    """Raised when the target directory cannot be scaffolded."""


@dataclass(slots=True)
class ScaffoldResult:
    root: Path
    created_dirs: list[str] = field(default_factory=list)
    created_files: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    git_initialized: bool = False
    dependencies_installed: bool = False


class Scaffolder:
    """Lays down a fresh project tree and its config in an empty directory."""

    def __init__(
        self,
        root: Path,
        config: MaestroConfig,
        *,
        skip_git: bool = False,
        skip_install: bool = False,
    ) -> None:
        self.root = root.resolve()
        self.config = config
        self.skip_git = skip_git
        self.skip_install = skip_install

    def run(self) -> ScaffoldResult:
        result = ScaffoldResult(root=self.root)
        self._check_target()
        self._create_dirs(result)
        self._write_files(result)
        if not self.skip_git:
            self._init_git(result)
        if not self.skip_install:
            self._install(result)
        self._validate()
        return result

    def _check_target(self) -> None:
        if not self.root.is_dir():
            raise ScaffoldError(f"Directory {self.root} does not exist")
        probe = self.root / ".maestro-write-test"
        try:
            probe.write_text("test", encoding="utf-8")
            probe.unlink()
        except OSError as exc:
            raise ScaffoldError(f"Directory {self.root} is not writable: {exc}") from exc

        unexpected = sorted(
            entry.name for entry in self.root.iterdir() if entry.name not in ALLOWED_EXISTING
        )
        if unexpected:
            raise ScaffoldError(
                f"Directory {self.root} is not empty ({', '.join(unexpected[:5])}). "
                "Please use an empty directory."
            )

    def _create_dirs(self, result: ScaffoldResult) -> None:
        source_root = self.config.layout.source_root
        layout_dirs = [*self.config.layout.required_dirs, *self.config.layout.optional_dirs]
        relative = list(
            dict.fromkeys(
                [f"{source_root}/{path}" for path in SKELETON_DIRS]
                + [f"{source_root}/{path}" for path in layout_dirs]
                + ROOT_DIRS
            )
        )
        for path in relative:
            (self.root / path).mkdir(parents=True, exist_ok=True)
            result.created_dirs.append(path)
            logger.debug(f"Created {path}")

    def _package_json(self) -> str:
        payload = {
            "name": self.config.project.name,
            "version": "1.0.0",
            "description": self.config.project.description,
            "private": True,
            "scripts": {
                "dev": "node dist/server.js",
                "test": "jest",
                "lint": "eslint src",
                "typecheck": "tsc --noEmit",
            },
            "dependencies": {"ejs": "^3.1.10", "express": "^4.19.2"},
            "devDependencies": {"jest": "^29.7.0", "typescript": "^5.4.0"},
        }
        return json.dumps(payload, indent=2) + "\n"

    def _write_files(self, result: ScaffoldResult) -> None:
        files = {
            CONFIG_FILENAME: None,
            "package.json": self._package_json(),
            ".gitignore": GITIGNORE,
            "prisma/schema.prisma": SCHEMA,
            "README.md": f"# {self.config.project.name}\n\n{self.config.project.description}\n",
        }
        for relative, content in files.items():
            target = self.root / relative
            if relative == ".gitignore" and target.exists():
                result.warnings.append("Kept existing .gitignore")
                continue
            if content is None:
                save_config(target, self.config)
            else:
                target.write_text(content, encoding="utf-8")
            result.created_files.append(relative)
            logger.debug(f"Generated {relative}")

    def _init_git(self, result: ScaffoldResult) -> None:
        repository = RepositoryManager(
            self.root,
            base_branch=self.config.git.base_branch,
            fallback_base_branch=self.config.git.fallback_base_branch,
            remote=self.config.git.remote,
        )
        if repository.initialize():
            result.git_initialized = True
        else:
            result.warnings.append("Git initialization failed; run git init manually")

    def _install(self, result: ScaffoldResult) -> None:
        command = shlex.split(self.config.project.install_command)
        if not command:
            result.warnings.append("No install command configured; skipped dependency install")
            return
        logger.info(f"Running {self.config.project.install_command}")
        try:
            proc = subprocess.run(
                command,
                cwd=self.root,
                text=True,
                capture_output=True,
                timeout=INSTALL_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ScaffoldError(f"Dependency installation failed: {exc}") from exc
        if proc.returncode != 0:
            raise ScaffoldError(
                f"Dependency installation failed: {proc.stderr.strip() or proc.stdout.strip()}"
            )
        result.dependencies_installed = True

    def _validate(self) -> None:
        analysis = ProjectAnalyzer(self.root, self.config.layout).analyze()
        if analysis.violations:
            listed = ", ".join(violation.path for violation in analysis.violations)
            raise ScaffoldError(f"Project structure validation failed: {listed}")
