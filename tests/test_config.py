import tomllib
from pathlib import Path

import pytest

from maestro import __version__
from maestro.config import MaestroConfig, dumps_toml, load_config, save_config
from maestro.models import Domain


def test_config_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "maestro.toml"
    config = MaestroConfig.default()
    config.project.name = "shop"
    config.project.test_command = "pytest -q"
    config.layout.source_root = "app"
    config.layout.required_dirs = ["core", "features"]
    config.git.base_branch = "trunk"
    config.git.auto_init = False
    config.dispatch.command = ["my-agent", "--name", "{agent}"]
    config.dispatch.timeout_seconds = 42.5
    config.specialists["testing"] = "qa-bot"
    config.logging.format = "json"

    save_config(config_path, config)
    loaded = load_config(config_path)

    assert loaded.project.name == "shop"
    assert loaded.project.test_command == "pytest -q"
    assert loaded.layout.source_root == "app"
    assert loaded.layout.required_dirs == ["core", "features"]
    assert loaded.git.base_branch == "trunk"
    assert loaded.git.auto_init is False
    assert loaded.dispatch.command == ["my-agent", "--name", "{agent}"]
    assert loaded.dispatch.timeout_seconds == 42.5
    assert loaded.agent_for(Domain.TESTING) == "qa-bot"
    assert loaded.agent_for(Domain.MARKUP) == "webapp-markup"
    assert loaded.logging.format == "json"


def test_missing_config_file_yields_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.toml")

    assert config.git.base_branch == "main"
    assert config.git.fallback_base_branch == "master"
    assert config.dispatch.timeout_seconds == 600.0
    assert config.agent_for(Domain.ANALYSIS) == "webapp-development"


def test_toml_dump_contains_every_section() -> None:
    rendered = dumps_toml(MaestroConfig.default())
    parsed = tomllib.loads(rendered)

    assert list(parsed) == ["project", "layout", "git", "dispatch", "specialists", "logging"]
    assert parsed["specialists"]["repository-state"] == "webapp-development"
    assert "timeout_seconds" in rendered


def test_unknown_specialist_domain_is_rejected() -> None:
    with pytest.raises(ValueError):
        MaestroConfig.from_dict({"specialists": {"wizardry": "merlin"}})


def test_version_is_exposed() -> None:
    assert __version__ == "0.1.0"
