"""Subprocess handle — spawn, observe and terminate one server process."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from mcplink.manager.config import ServerConfig
from mcplink.protocol.errors import TransportError

logger = logging.getLogger(__name__)


class ProcessState(str, Enum):
    RUNNING = "running"
    EXITED = "exited"


class ServerProcess:
    """An owned server subprocess with piped stdin/stdout/stderr.

    stderr is not part of the protocol; it is drained line by line into the
    DEBUG log so a chatty server can never block on a full pipe.
    """

    def __init__(self, name: str, process: asyncio.subprocess.Process) -> None:
        self.name = name
        self.process = process
        self._state = ProcessState.RUNNING
        self._stderr_task: asyncio.Task[None] | None = None
        if process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr(process.stderr), name=f"{name}-stderr")

    @classmethod
    async def spawn(cls, name: str, config: ServerConfig) -> ServerProcess:
        """Launch *config*'s command with the merged environment.

        Raises:
            TransportError: If the executable cannot be started.
        """
        logger.info("Starting server %s: %s %s", name, config.command, " ".join(config.args))
        try:
            process = await asyncio.create_subprocess_exec(
                config.command,
                *config.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=config.merged_env(),
            )
        except OSError as exc:
            raise TransportError(f"Cannot spawn server {name!r} ({config.command}): {exc}") from exc
        return cls(name, process)

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        code = await self.process.wait()
        self._state = ProcessState.EXITED
        if self._stderr_task is not None:
            await asyncio.wait({self._stderr_task})
        return code

    async def terminate(self, grace: float = 5.0) -> int:
        """Send SIGTERM, escalate to SIGKILL after *grace* seconds, and reap."""
        if self.process.returncode is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(self.process.wait(), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning("Server %s ignored SIGTERM for %.1fs, killing it", self.name, grace)
                try:
                    self.process.kill()
                except ProcessLookupError:
                    pass
        return await self.wait()

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        async for line in stream:
            logger.debug("[%s stderr] %s", self.name, line.decode("utf-8", errors="replace").rstrip())
