"""Stub backend: empty reads, every write unavailable."""

from __future__ import annotations

from beatline.backends.capabilities import STUB_CAPABILITIES, BackendCapabilities
from beatline.backends.port import BackendPort
from beatline.core.errors import BackendError, BackendErrorCode, BackendResult, not_found
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
from beatline.workflows.descriptors import WorkflowDescriptor, builtin_workflow_descriptors


def _unsupported(operation: str) -> BackendResult:
    return BackendResult.failure(
        BackendError.create(
            BackendErrorCode.UNAVAILABLE,
            f"Stub backend does not support {operation}",
            retryable=False,
        )
    )


class StubBackend(BackendPort):
    """Placeholder used when no tracker is configured for a repository."""

    capabilities: BackendCapabilities = STUB_CAPABILITIES

    async def list_workflows(self) -> BackendResult[list[WorkflowDescriptor]]:
        return BackendResult.success(builtin_workflow_descriptors())

    async def list(self, filters: BeatListFilters | None = None) -> BackendResult[list[Beat]]:
        return BackendResult.success([])

    async def list_ready(
        self, filters: BeatListFilters | None = None
    ) -> BackendResult[list[Beat]]:
        return BackendResult.success([])

    async def search(
        self, query: str, filters: BeatListFilters | None = None
    ) -> BackendResult[list[Beat]]:
        return BackendResult.success([])

    async def query(
        self, expression: str, options: BeatQueryOptions | None = None
    ) -> BackendResult[list[Beat]]:
        return BackendResult.success([])

    async def get(self, beat_id: str) -> BackendResult[Beat]:
        return BackendResult.failure(not_found("Beat", beat_id))

    async def create(self, data: CreateBeatInput) -> BackendResult[Beat]:
        return _unsupported("create")

    async def update(self, beat_id: str, data: UpdateBeatInput) -> BackendResult[Beat]:
        return _unsupported("update")

    async def delete(self, beat_id: str) -> BackendResult[None]:
        return _unsupported("delete")

    async def close(self, beat_id: str, reason: str | None = None) -> BackendResult[Beat]:
        return _unsupported("close")

    async def list_dependencies(
        self, beat_id: str, options: DependencyListOptions | None = None
    ) -> BackendResult[list[BeatDependency]]:
        return BackendResult.success([])

    async def add_dependency(self, blocker_id: str, blocked_id: str) -> BackendResult[None]:
        return _unsupported("add_dependency")

    async def remove_dependency(self, blocker_id: str, blocked_id: str) -> BackendResult[None]:
        return _unsupported("remove_dependency")

    async def build_take_prompt(
        self, beat_id: str, options: TakePromptOptions | None = None
    ) -> BackendResult[TakePromptResult]:
        return _unsupported("build_take_prompt")

    async def build_poll_prompt(
        self, options: PollPromptOptions | None = None
    ) -> BackendResult[PollPromptResult]:
        return _unsupported("build_poll_prompt")
