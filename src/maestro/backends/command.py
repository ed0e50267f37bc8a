from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from maestro.backends.base import AgentBackend, BackendExecutionError, BackendProcessError

logger = logging.getLogger(__name__)


class CommandBackend(AgentBackend):
    """Runs a specialist as an external command.

    The request context is written to stdin as JSON and stdout is streamed back
    line by line. `{agent}` in any command token is replaced by the agent name.
    """

    def __init__(self, command: list[str], working_directory: Path | None = None) -> None:
        if not command:
            raise ValueError("Dispatch command must not be empty")
        self.command = list(command)
        self.working_directory = working_directory

    def build_command(self, agent: str, prompt: str) -> list[str]:
        return [token.replace("{agent}", agent) for token in self.command] + [prompt]

    async def execute(
        self,
        agent: str,
        prompt: str,
        context: dict[str, Any],
    ) -> AsyncIterator[str]:
        command = self.build_command(agent, prompt)
        logger.debug(f"Spawning specialist process: {command[0]} (agent={agent})")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.working_directory) if self.working_directory else None,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise BackendProcessError(
                f"Specialist command not found: {command[0]}", backend=agent
            ) from exc
        except OSError as exc:
            raise BackendProcessError(
                f"Specialist command could not be started: {command[0]}: {exc}", backend=agent
            ) from exc

        if process.stdout is None or process.stdin is None or process.stderr is None:
            raise BackendProcessError(
                "Specialist process did not expose stdio pipes.", backend=agent
            )

        # stderr is drained concurrently with stdout.
        stderr_task = asyncio.create_task(process.stderr.read())

        payload = json.dumps(context, ensure_ascii=False, default=str).encode("utf-8")
        try:
            process.stdin.write(payload)
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug(f"Specialist {agent} closed stdin before reading the request")
        finally:
            process.stdin.close()

        try:
            async for raw_line in process.stdout:
                line = raw_line.decode("utf-8", errors="replace")
                if line.strip():
                    yield line
        except BaseException:
            # Abandoned mid-stream (for example by a timeout); do not leak the child.
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
            stderr_task.cancel()
            raise

        return_code = await process.wait()
        stderr_output = (await stderr_task).decode("utf-8", errors="replace").strip()
        if return_code != 0:
            raise BackendExecutionError(
                f"Specialist {agent} failed with exit code {return_code}: {stderr_output}",
                backend=agent,
                exit_code=return_code,
            )
