from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from maestro.models import Domain

LogFormat = Literal["text", "json"]

DEFAULT_SPECIALISTS: dict[str, str] = {
    Domain.DEVELOPMENT.value: "webapp-development",
    Domain.MARKUP.value: "webapp-markup",
    Domain.SCHEMA.value: "webapp-schema",
    Domain.TESTING.value: "webapp-testing",
    Domain.AUTHORIZATION.value: "webapp-auth",
    Domain.INTERFACE.value: "webapp-api",
    Domain.STYLE.value: "webapp-web-designer",
    # Analysis and branch bookkeeping are handled by the development specialist.
    Domain.ANALYSIS.value: "webapp-development",
    Domain.REPOSITORY_STATE.value: "webapp-development",
    Domain.PERFORMANCE.value: "webapp-performance",
    Domain.SECURITY.value: "webapp-security",
    Domain.DOCUMENTATION.value: "webapp-documentation",
    Domain.DEPLOYMENT.value: "webapp-deployment",
}


@dataclass(slots=True)
class ProjectConfig:
    name: str = "my-webapp"
    description: str = "Server-rendered web application"
    test_command: str = "npm test"
    lint_command: str = "npm run lint"
    type_check_command: str = "npm run typecheck"
    install_command: str = "npm install"


@dataclass(slots=True)
class LayoutConfig:
    source_root: str = "src"
    required_dirs: list[str] = field(
        default_factory=lambda: ["core", "features", "infrastructure"]
    )
    optional_dirs: list[str] = field(default_factory=lambda: ["shared"])
    feature_parts: list[str] = field(default_factory=lambda: ["core", "fragments"])
    feature_suggested_parts: list[str] = field(default_factory=lambda: ["components"])
    schema_files: list[str] = field(
        default_factory=lambda: ["prisma/schema.prisma", "schema.sql"]
    )


@dataclass(slots=True)
class GitConfig:
    base_branch: str = "main"
    fallback_base_branch: str = "master"
    remote: str = "origin"
    auto_init: bool = True


@dataclass(slots=True)
class DispatchConfig:
    command: list[str] = field(
        default_factory=lambda: ["opencode", "run", "--agent", "{agent}"]
    )
    timeout_seconds: float = 600.0


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    format: LogFormat = "text"


@dataclass(slots=True)
class MaestroConfig:
    project: ProjectConfig = field(default_factory=ProjectConfig)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    git: GitConfig = field(default_factory=GitConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    specialists: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SPECIALISTS))
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> MaestroConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> MaestroConfig:
        specialists = dict(DEFAULT_SPECIALISTS)
        for key, value in data.get("specialists", {}).items():
            domain = Domain(key)
            specialists[domain.value] = str(value)
        return cls(
            project=ProjectConfig(**data.get("project", {})),
            layout=LayoutConfig(**data.get("layout", {})),
            git=GitConfig(**data.get("git", {})),
            dispatch=DispatchConfig(**data.get("dispatch", {})),
            specialists=specialists,
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def agent_for(self, domain: Domain) -> str:
        return self.specialists.get(domain.value) or DEFAULT_SPECIALISTS[domain.value]

    def to_dict(self) -> dict:
        return {
            "project": {
                "name": self.project.name,
                "description": self.project.description,
                "test_command": self.project.test_command,
                "lint_command": self.project.lint_command,
                "type_check_command": self.project.type_check_command,
                "install_command": self.project.install_command,
            },
            "layout": {
                "source_root": self.layout.source_root,
                "required_dirs": list(self.layout.required_dirs),
                "optional_dirs": list(self.layout.optional_dirs),
                "feature_parts": list(self.layout.feature_parts),
                "feature_suggested_parts": list(self.layout.feature_suggested_parts),
                "schema_files": list(self.layout.schema_files),
            },
            "git": {
                "base_branch": self.git.base_branch,
                "fallback_base_branch": self.git.fallback_base_branch,
                "remote": self.git.remote,
                "auto_init": self.git.auto_init,
            },
            "dispatch": {
                "command": list(self.dispatch.command),
                "timeout_seconds": self.dispatch.timeout_seconds,
            },
            "specialists": dict(self.specialists),
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
            },
        }


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        rendered = f"{value:.3f}".rstrip("0").rstrip(".")
        return rendered if rendered else "0"
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: MaestroConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    section_order = ["project", "layout", "git", "dispatch", "specialists", "logging"]
    for section in section_order:
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> MaestroConfig:
    if not path.exists():
        return MaestroConfig.default()
    return MaestroConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: MaestroConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
