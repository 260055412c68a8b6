"""
Backend port contract.

Every adapter implements :class:`BackendPort`. All operations are async and
return a :class:`BackendResult`; expected failures are reported through the
result, never raised. Adapters raise :class:`BackendFailure` internally and
rely on :func:`port_operation` to convert it at the boundary.
"""

from __future__ import annotations

import functools
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from loguru import logger

from beatline.backends.capabilities import BackendCapabilities, require_capability
from beatline.core.errors import (
    BackendFailure,
    BackendResult,
    internal,
    permission_denied,
)
from beatline.core.models import (
    Beat,
    BeatDependency,
    BeatListFilters,
    BeatQueryOptions,
    CreateBeatInput,
    DependencyListOptions,
    PollPromptOptions,
    PollPromptResult,
    TakePromptOptions,
    TakePromptResult,
    UpdateBeatInput,
)
from beatline.workflows.descriptors import WorkflowDescriptor

F = TypeVar("F", bound=Callable[..., Awaitable[BackendResult[Any]]])


def port_operation(capability: str | None = None) -> Callable[[F], F]:
    """Wrap an adapter method so it honours the port's error contract.

    Args:
        capability: Capability flag that must be enabled before the
            method runs. A disabled flag yields UNAVAILABLE.

    Returns:
        Decorator converting :class:`BackendFailure` and ``OSError`` into
        failed results.
    """

    def decorator(func: F) -> F:
        operation = func.__name__

        @functools.wraps(func)
        async def wrapper(self: BackendPort, *args: Any, **kwargs: Any) -> BackendResult[Any]:
            if capability is not None:
                error = require_capability(self.capabilities, capability, operation)
                if error is not None:
                    return BackendResult.failure(error)
            try:
                return await func(self, *args, **kwargs)
            except BackendFailure as exc:
                logger.debug(f"{type(self).__name__}.{operation} failed: {exc}")
                return BackendResult.failure(exc.error)
            except PermissionError as exc:
                logger.warning(f"{type(self).__name__}.{operation}: {exc}")
                return BackendResult.failure(permission_denied(str(exc)))
            except OSError as exc:
                logger.warning(f"{type(self).__name__}.{operation}: {exc}")
                return BackendResult.failure(internal(f"{operation} failed: {exc}"))

        return wrapper  # type: ignore[return-value]

    return decorator


class BackendPort(ABC):
    """
    Abstract interface for beat storage backends.

    Callers must consult :attr:`capabilities` before invoking a write,
    search, query or dependency operation; unsupported operations return
    UNAVAILABLE.
    """

    capabilities: BackendCapabilities

    # -------------------------------------------------------------------------
    # Workflows
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_workflows(self) -> BackendResult[list[WorkflowDescriptor]]:
        """List the workflow profiles available for this backend."""
        pass

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list(self, filters: BeatListFilters | None = None) -> BackendResult[list[Beat]]:
        """List beats matching ``filters``."""
        pass

    @abstractmethod
    async def list_ready(
        self, filters: BeatListFilters | None = None
    ) -> BackendResult[list[Beat]]:
        """List queued beats with no open blocker."""
        pass

    @abstractmethod
    async def search(
        self, query: str, filters: BeatListFilters | None = None
    ) -> BackendResult[list[Beat]]:
        """Case-insensitive text search over title and description."""
        pass

    @abstractmethod
    async def query(
        self, expression: str, options: BeatQueryOptions | None = None
    ) -> BackendResult[list[Beat]]:
        """Evaluate a ``field:value`` expression."""
        pass

    @abstractmethod
    async def get(self, beat_id: str) -> BackendResult[Beat]:
        """Fetch one beat; NOT_FOUND when absent."""
        pass

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create(self, data: CreateBeatInput) -> BackendResult[Beat]:
        pass

    @abstractmethod
    async def update(self, beat_id: str, data: UpdateBeatInput) -> BackendResult[Beat]:
        pass

    @abstractmethod
    async def delete(self, beat_id: str) -> BackendResult[None]:
        pass

    @abstractmethod
    async def close(self, beat_id: str, reason: str | None = None) -> BackendResult[Beat]:
        pass

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_dependencies(
        self, beat_id: str, options: DependencyListOptions | None = None
    ) -> BackendResult[list[BeatDependency]]:
        """List edges touching ``beat_id`` from either direction."""
        pass

    @abstractmethod
    async def add_dependency(self, blocker_id: str, blocked_id: str) -> BackendResult[None]:
        pass

    @abstractmethod
    async def remove_dependency(self, blocker_id: str, blocked_id: str) -> BackendResult[None]:
        pass

    # -------------------------------------------------------------------------
    # Prompts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def build_take_prompt(
        self, beat_id: str, options: TakePromptOptions | None = None
    ) -> BackendResult[TakePromptResult]:
        pass

    @abstractmethod
    async def build_poll_prompt(
        self, options: PollPromptOptions | None = None
    ) -> BackendResult[PollPromptResult]:
        pass
