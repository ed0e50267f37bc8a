from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from maestro.config import LayoutConfig

logger = logging.getLogger(__name__)

ViolationKind = Literal["directory", "file", "pattern", "dependency"]
UNKNOWN = "unknown"

TEMPLATE_ENGINES = ("ejs", "pug", "handlebars", "jinja2", "mako")
TEST_FRAMEWORKS = ("jest", "vitest", "mocha", "pytest")
SUGGESTION_DOMAINS = ("development", "markup", "schema", "testing")

# Remediation hints for the default top-level layout.
SUBTREE_HINTS: dict[str, tuple[str, str]] = {
    "core": (
        "Missing core directory for framework-agnostic business logic",
        "with domains/, services/, repositories/, events/, errors/ subdirectories",
    ),
    "features": (
        "Missing features directory for feature-based modules",
        "for organizing features",
    ),
    "infrastructure": (
        "Missing infrastructure directory for framework implementations",
        "with database/, auth/, http/, templates/ subdirectories",
    ),
}

FEATURE_PART_HINTS: dict[str, str] = {
    "core": "business logic",
    "fragments": "server-rendered fragments",
    "components": "UI components",
}


@dataclass(slots=True)
class ProjectStructure:
    source_exists: bool = False
    subtrees: dict[str, bool] = field(default_factory=dict)
    features: list[str] = field(default_factory=list)
    components: dict[str, list[str]] = field(default_factory=dict)
    schema_exists: bool = False
    template_engine: str = UNKNOWN
    test_framework: str = UNKNOWN

    def has(self, subtree: str) -> bool:
        return self.subtrees.get(subtree, False)


@dataclass(slots=True)
class Violation:
    kind: ViolationKind
    path: str
    message: str
    recommendation: str


@dataclass(slots=True)
class ProjectAnalysis:
    structure: ProjectStructure
    violations: list[Violation] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    specialist_suggestions: dict[str, list[str]] = field(
        default_factory=lambda: {domain: [] for domain in SUGGESTION_DOMAINS}
    )


class ProjectAnalyzer:
    """Read-only inspection of a working copy against the expected layout."""

    def __init__(self, root: Path, layout: LayoutConfig | None = None) -> None:
        self.root = root
        self.layout = layout or LayoutConfig()

    @property
    def source_root(self) -> Path:
        return self.root / self.layout.source_root

    def _source_path(self, *parts: str) -> str:
        return "/".join([self.layout.source_root, *parts])

    def analyze(self) -> ProjectAnalysis:
        structure = self.analyze_structure()
        violations = self.find_violations(structure)
        return ProjectAnalysis(
            structure=structure,
            violations=violations,
            recommendations=self.recommendations(structure, violations),
            specialist_suggestions=self.specialist_suggestions(structure),
        )

    def analyze_structure(self) -> ProjectStructure:
        dependencies = self._dependencies()
        structure = ProjectStructure(
            schema_exists=any((self.root / name).exists() for name in self.layout.schema_files),
            template_engine=_first_present(TEMPLATE_ENGINES, dependencies),
            test_framework=_first_present(TEST_FRAMEWORKS, dependencies),
        )
        if not self.source_root.is_dir():
            return structure

        structure.source_exists = True
        for subtree in [*self.layout.required_dirs, *self.layout.optional_dirs]:
            structure.subtrees[subtree] = (self.source_root / subtree).is_dir()
            if subtree != "features":
                structure.components[subtree] = _child_dirs(self.source_root / subtree)
        structure.features = _child_dirs(self.source_root / "features")
        return structure

    def find_violations(self, structure: ProjectStructure) -> list[Violation]:
        violations: list[Violation] = []
        for subtree in self.layout.required_dirs:
            if structure.has(subtree):
                continue
            path = self._source_path(subtree)
            message, detail = SUBTREE_HINTS.get(
                subtree, (f"Missing {subtree} directory", "")
            )
            violations.append(
                Violation(
                    kind="directory",
                    path=path,
                    message=message,
                    recommendation=f"Create {path}/ directory {detail}".rstrip(),
                )
            )

        for feature in structure.features:
            feature_root = self.source_root / "features" / feature
            for part in self.layout.feature_parts:
                if (feature_root / part).is_dir():
                    continue
                path = self._source_path("features", feature, part)
                purpose = FEATURE_PART_HINTS.get(part, part)
                violations.append(
                    Violation(
                        kind="directory",
                        path=path,
                        message=f'Feature "{feature}" missing {part} directory for {purpose}',
                        recommendation=f"Create {path}/ directory",
                    )
                )
        return violations

    def recommendations(
        self, structure: ProjectStructure, violations: list[Violation]
    ) -> list[str]:
        recommendations: list[str] = []
        if violations:
            recommendations.append("Fix directory structure violations to follow the project layout")
        if not structure.schema_exists:
            recommendations.append("Set up a schema definition for database management")
        if structure.template_engine == UNKNOWN:
            recommendations.append("Install a template engine (EJS recommended)")
        if structure.test_framework == UNKNOWN:
            recommendations.append("Set up a testing framework (Jest recommended)")
        if not structure.features:
            recommendations.append("Create at least one feature module to organize code")
        return recommendations

    def specialist_suggestions(self, structure: ProjectStructure) -> dict[str, list[str]]:
        suggestions: dict[str, list[str]] = {domain: [] for domain in SUGGESTION_DOMAINS}
        features_dir = self.source_root / "features"

        if not structure.has("core"):
            suggestions["development"].append("Create core directory structure for business logic")
        if not structure.features:
            suggestions["development"].append("Create initial feature module")
        for feature in structure.features:
            if not (features_dir / feature / "core").is_dir():
                suggestions["development"].append(f'Add core business logic to feature "{feature}"')

        for feature in structure.features:
            if not (features_dir / feature / "fragments").is_dir():
                suggestions["markup"].append(f'Create fragments for feature "{feature}"')
            for part in self.layout.feature_suggested_parts:
                if not (features_dir / feature / part).is_dir():
                    purpose = FEATURE_PART_HINTS.get(part, part)
                    suggestions["markup"].append(f'Create {purpose} for feature "{feature}"')

        if not structure.schema_exists:
            suggestions["schema"].append("Create schema definition and initial models")
        if structure.has("core") and (self.source_root / "core" / "repositories").is_dir():
            suggestions["schema"].append("Implement repository interfaces from core")

        if structure.test_framework != UNKNOWN:
            suggestions["testing"].append("Set up test structure for all features")
            for feature in structure.features:
                suggestions["testing"].append(f'Create tests for feature "{feature}"')
        return suggestions

    def _dependencies(self) -> set[str]:
        names: set[str] = set()
        package_json = self.root / "package.json"
        if package_json.is_file():
            try:
                data: Any = json.loads(package_json.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning(f"Ignoring unreadable package.json: {exc}")
                data = {}
            if not isinstance(data, dict):
                logger.warning("Ignoring package.json without a top-level object")
                data = {}
            for section in ("dependencies", "devDependencies"):
                value = data.get(section)
                if isinstance(value, dict):
                    names.update(name.lower() for name in value)

        pyproject = self.root / "pyproject.toml"
        if pyproject.is_file():
            try:
                project = tomllib.loads(pyproject.read_text(encoding="utf-8")).get("project", {})
            except (OSError, tomllib.TOMLDecodeError) as exc:
                logger.warning(f"Ignoring unreadable pyproject.toml: {exc}")
                project = {}
            if not isinstance(project, dict):
                logger.warning("Ignoring pyproject.toml whose [project] is not a table")
                project = {}
            requirements = _string_list(project.get("dependencies"))
            extras = project.get("optional-dependencies")
            if isinstance(extras, dict):
                for extra in extras.values():
                    requirements.extend(_string_list(extra))
            names.update(_requirement_name(requirement) for requirement in requirements)
        return names


def _child_dirs(path: Path) -> list[str]:
    if not path.is_dir():
        return []
    try:
        return sorted(child.name for child in path.iterdir() if child.is_dir())
    except OSError:
        return []


def _first_present(candidates: tuple[str, ...], dependencies: set[str]) -> str:
    for candidate in candidates:
        if candidate in dependencies:
            return candidate
    return UNKNOWN


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _requirement_name(requirement: str) -> str:
    name = requirement.strip()
    for separator in ("[", "<", ">", "=", "!", "~", ";", " "):
        name = name.split(separator, 1)[0]
    return name.lower()


def _present(flag: bool) -> str:
    return "present" if flag else "missing"


def format_analysis(analysis: ProjectAnalysis) -> str:
    structure = analysis.structure
    lines = ["# Project Analysis", "", "## Project Structure"]
    for subtree, exists in structure.subtrees.items():
        lines.append(f"- {subtree.capitalize()} Directory: {_present(exists)}")
    if not structure.source_exists:
        lines.append("- Source Root: missing")
    lines.extend(
        [
            f"- Features: {', '.join(structure.features) if structure.features else 'None'}",
            f"- Template Engine: {structure.template_engine}",
            f"- Test Framework: {structure.test_framework}",
            f"- Schema Definition: {_present(structure.schema_exists)}",
            "",
        ]
    )

    if analysis.violations:
        lines.append("## Layout Violations")
        for violation in analysis.violations:
            lines.append(f"### {violation.kind.upper()}: {violation.path}")
            lines.append(f"- **Message**: {violation.message}")
            lines.append(f"- **Recommendation**: {violation.recommendation}")
            lines.append("")

    if analysis.recommendations:
        lines.append("## Recommendations")
        lines.extend(f"- {item}" for item in analysis.recommendations)
        lines.append("")

    lines.append("## Specialist Suggestions")
    for domain in SUGGESTION_DOMAINS:
        items = analysis.specialist_suggestions.get(domain, [])
        if not items:
            continue
        lines.append(f"### {domain.capitalize()} specialist")
        lines.extend(f"- {item}" for item in items)
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"
