import subprocess
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def git_identity(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")


def run_git(repo: Path, *args: str) -> str:
    proc = subprocess.run(
        ["git", *args], cwd=repo, check=True, text=True, capture_output=True
    )
    return proc.stdout.strip()


def init_git_repo(repo_path: Path) -> None:
    run_git(repo_path, "init")
    (repo_path / "README.md").write_text("seed\n", encoding="utf-8")
    run_git(repo_path, "add", "README.md")
    run_git(repo_path, "commit", "-m", "chore(repo): seed")
    run_git(repo_path, "branch", "-M", "main")


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    init_git_repo(repo)
    return repo
