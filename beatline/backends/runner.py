"""Subprocess runner abstraction and per-repository write serialization.

The CLI backend never spawns processes directly; it goes through a
:class:`ProcessRunner` so tests can substitute an in-memory fake.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from beatline.core.errors import BeatlineError


@dataclass
class CommandResult:
    """Captured outcome of one command invocation."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        return {"exit_code": self.exit_code, "stdout": self.stdout, "stderr": self.stderr}


class CommandTimeoutError(BeatlineError):
    """A command did not finish within its timeout."""

    def __init__(self, argv: list[str], timeout: float) -> None:
        super().__init__(f"{' '.join(argv)} timed out after {timeout:g}s")
        self.argv = argv
        self.timeout = timeout


class ProcessRunner(ABC):
    """Runs an external command and captures its output."""

    @abstractmethod
    async def run(
        self,
        argv: list[str],
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run ``argv`` to completion.

        Raises:
            CommandTimeoutError: If ``timeout`` elapses first.
            FileNotFoundError: If the executable does not exist.
        """
        pass


class AsyncioProcessRunner(ProcessRunner):
    """Runner backed by :func:`asyncio.create_subprocess_exec`."""

    async def run(
        self,
        argv: list[str],
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        logger.debug(f"Running: {' '.join(argv)} (cwd={cwd})")
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise CommandTimeoutError(argv, timeout or 0) from None

        return CommandResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace").strip(),
            stderr=stderr.decode("utf-8", errors="replace").strip(),
        )


class WriteSerializer:
    """
    Queues writes per repository path.

    Only one write per key runs at a time; the rest wait in FIFO order.
    Reads never go through the serializer.

    Example:
        >>> serializer = WriteSerializer()
        >>> async with serializer.hold("/repo"):
        ...     await runner.run(["bd", "update", "bd-1", "--title", "x"])
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._pending: dict[str, int] = {}

    def pending_write_count(self, key: str) -> int:
        """Writes queued or running for ``key``."""
        return self._pending.get(key, 0)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        self._pending[key] = self._pending.get(key, 0) + 1
        lock = self._locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                yield
        finally:
            self._pending[key] -= 1
            # Idle keys keep no lock; a lock stays bound to one event loop.
            if self._pending[key] == 0:
                del self._pending[key]
                self._locks.pop(key, None)


# Shared by every CLI backend in the process.
WRITE_SERIALIZER = WriteSerializer()
