import asyncio
import json
import sys
from pathlib import Path

import pytest

from maestro.backends import CommandBackend
from maestro.backends.base import BackendExecutionError, BackendProcessError

ECHO_AGENT = """
import json, sys
request = json.load(sys.stdin)
print("working on", request["task"])
print()
print(json.dumps({"success": True, "message": sys.argv[1] + ":" + sys.argv[2]}))
"""

FAILING_AGENT = """
import sys
sys.stdin.read()
print("partial output")
sys.stderr.write("agent crashed")
sys.exit(3)
"""


def _collect(backend: CommandBackend, agent: str, prompt: str, context: dict) -> list[str]:
    async def _run() -> list[str]:
        parts: list[str] = []
        async for part in backend.execute(agent, prompt, context):
            parts.append(part)
        return parts

    return asyncio.run(_run())


def test_build_command_substitutes_agent_and_appends_prompt() -> None:
    backend = CommandBackend(["opencode", "run", "--agent", "{agent}"])

    command = backend.build_command("webapp-testing", "Run the suite")

    assert command == ["opencode", "run", "--agent", "webapp-testing", "Run the suite"]


def test_empty_command_is_rejected() -> None:
    with pytest.raises(ValueError):
        CommandBackend([])


def test_command_backend_streams_stdout_lines(tmp_path: Path) -> None:
    backend = CommandBackend([sys.executable, "-c", ECHO_AGENT, "{agent}"], tmp_path)

    lines = _collect(backend, "webapp-api", "do it", {"task": "Create API routes"})

    assert lines[0].strip() == "working on Create API routes"
    assert all(line.strip() for line in lines)
    assert json.loads(lines[-1]) == {"success": True, "message": "webapp-api:do it"}


def test_command_backend_raises_on_nonzero_exit(tmp_path: Path) -> None:
    backend = CommandBackend([sys.executable, "-c", FAILING_AGENT], tmp_path)

    with pytest.raises(BackendExecutionError) as excinfo:
        _collect(backend, "webapp-testing", "go", {})

    assert excinfo.value.exit_code == 3
    assert "agent crashed" in str(excinfo.value)


def test_missing_binary_is_a_process_error(tmp_path: Path) -> None:
    backend = CommandBackend(["definitely-not-a-real-binary-xyz"], tmp_path)

    with pytest.raises(BackendProcessError):
        _collect(backend, "webapp-testing", "go", {})


NOISY_AGENT = """
import json, sys
sys.stdin.read()
sys.stderr.write("x" * 200_000)
sys.stderr.flush()
print(json.dumps({"success": True, "message": "done"}))
"""


def test_non_executable_command_is_a_process_error(tmp_path: Path) -> None:
    script = tmp_path / "agent.sh"
    script.write_text("#!/bin/sh\necho '{}'\n", encoding="utf-8")
    script.chmod(0o644)
    backend = CommandBackend([str(script)], tmp_path)

    with pytest.raises(BackendProcessError, match="could not be started"):
        _collect(backend, "webapp-testing", "go", {})


def test_large_stderr_output_does_not_stall_the_agent(tmp_path: Path) -> None:
    backend = CommandBackend([sys.executable, "-c", NOISY_AGENT], tmp_path)

    async def _run() -> list[str]:
        parts: list[str] = []
        async for part in backend.execute("webapp-development", "go", {}):
            parts.append(part)
        return parts

    lines = asyncio.run(asyncio.wait_for(_run(), timeout=20))

    assert json.loads(lines[-1]) == {"success": True, "message": "done"}
