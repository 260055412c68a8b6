"""
JSONL-file backend.

Beats live in ``<repo>/.beads/issues.jsonl``. The file is loaded lazily into
a process-wide index keyed by repository path and rewritten after every
mutation, so state survives :func:`reset_cache`. The backend is meant for a
single process; call ordering is the only protection for the index.
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from beatline.backends import prompts
from beatline.backends.capabilities import JSONL_CAPABILITIES, BackendCapabilities
from beatline.backends.filters import (
    apply_filters,
    apply_query_options,
    is_ready,
    search_matches,
)
from beatline.backends.mutations import (
    apply_close,
    apply_update,
    resolve_profile,
    sync_workflow_labels,
)
from beatline.backends.port import BackendPort, port_operation
from beatline.backends.records import (
    beat_to_record,
    issues_path,
    read_records,
    record_blockers,
    record_to_beat,
    utc_now,
    write_records,
)
from beatline.core.errors import (
    BackendFailure,
    BackendResult,
    InvalidRecordError,
    already_exists,
    invalid_input,
    not_found,
)
from beatline.core.models import (
    Beat,
    BeatDependency,
    BeatListFilters,
    BeatQueryOptions,
    BeatStatus,
    CreateBeatInput,
    DependencyListOptions,
    PollPromptOptions,
    PollPromptResult,
    TakePromptOptions,
    TakePromptResult,
    UpdateBeatInput,
)
from beatline.query.expression import filter_by_expression
from beatline.workflows.descriptors import WorkflowDescriptor, builtin_workflow_descriptors
from beatline.workflows.states import apply_workflow_state

_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class _RepoIndex:
    """In-memory view of one repository's JSONL file."""

    path: Path
    beats: dict[str, Beat] = field(default_factory=dict)
    # blocked id -> ids of the beats blocking it
    blockers: dict[str, list[str]] = field(default_factory=dict)


_CACHE: dict[str, _RepoIndex] = {}


def reset_cache(repo_path: str | Path | None = None) -> None:
    """Drop cached indexes so the next call reloads from disk."""
    if repo_path is None:
        _CACHE.clear()
        return
    _CACHE.pop(str(Path(repo_path).resolve()), None)


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_beat_id(prefix: str = "beads") -> str:
    """Create an id like ``beads-lq2x9k1a-4f7z``."""
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"{prefix}-{stamp}-{suffix}"


class JsonlBackend(BackendPort):
    """
    Backend over a repository-local JSONL file.

    Example:
        >>> backend = JsonlBackend("/path/to/repo")
        >>> result = await backend.create(CreateBeatInput(title="Write docs"))
        >>> result.ok
        True
    """

    capabilities: BackendCapabilities = JSONL_CAPABILITIES

    def __init__(self, repo_path: str | Path) -> None:
        self.repo_path = Path(repo_path)
        self._key = str(self.repo_path.resolve())

    # -------------------------------------------------------------------------
    # Index management
    # -------------------------------------------------------------------------

    def _index(self) -> _RepoIndex:
        index = _CACHE.get(self._key)
        if index is None:
            index = self._load()
            _CACHE[self._key] = index
        return index

    def _load(self) -> _RepoIndex:
        path = issues_path(self.repo_path)
        index = _RepoIndex(path=path)
        for raw in read_records(path):
            try:
                beat = record_to_beat(raw)
            except InvalidRecordError as exc:
                logger.warning(f"Skipping record in {path}: {exc}")
                continue
            index.beats[beat.id] = beat
            blockers = record_blockers(raw)
            if blockers:
                index.blockers[beat.id] = blockers
        logger.debug(f"Loaded {len(index.beats)} beats from {path}")
        return index

    def _flush(self, index: _RepoIndex) -> None:
        records = [
            beat_to_record(beat, index.blockers.get(beat_id))
            for beat_id, beat in index.beats.items()
        ]
        try:
            write_records(index.path, records)
        except Exception:
            # The cached index must never run ahead of the file.
            logger.warning(f"Write to {index.path} failed; dropping cached index")
            reset_cache(self.repo_path)
            raise

    def reset_cache(self) -> None:
        reset_cache(self.repo_path)

    def _require(self, index: _RepoIndex, beat_id: str) -> Beat:
        beat = index.beats.get(beat_id)
        if beat is None:
            raise BackendFailure(not_found("Beat", beat_id))
        return beat

    def _open_blockers(self, index: _RepoIndex, beat_id: str) -> set[str]:
        return {
            blocker
            for blocker in index.blockers.get(beat_id, [])
            if blocker in index.beats and index.beats[blocker].status != BeatStatus.CLOSED
        }

    def _ready(self, index: _RepoIndex) -> list[Beat]:
        return [
            beat
            for beat in index.beats.values()
            if is_ready(beat, self._open_blockers(index, beat.id))
        ]

    @staticmethod
    def _copies(beats: list[Beat]) -> list[Beat]:
        return [beat.model_copy(deep=True) for beat in beats]

    # -------------------------------------------------------------------------
    # Workflows and reads
    # -------------------------------------------------------------------------

    @port_operation()
    async def list_workflows(self) -> BackendResult[list[WorkflowDescriptor]]:
        return BackendResult.success(builtin_workflow_descriptors())

    @port_operation()
    async def list(self, filters: BeatListFilters | None = None) -> BackendResult[list[Beat]]:
        return BackendResult.success(
            self._copies(apply_filters(self._index().beats.values(), filters))
        )

    @port_operation("can_list_ready")
    async def list_ready(
        self, filters: BeatListFilters | None = None
    ) -> BackendResult[list[Beat]]:
        return BackendResult.success(
            self._copies(apply_filters(self._ready(self._index()), filters))
        )

    @port_operation("can_search")
    async def search(
        self, query: str, filters: BeatListFilters | None = None
    ) -> BackendResult[list[Beat]]:
        beats = [b for b in self._index().beats.values() if search_matches(b, query)]
        return BackendResult.success(self._copies(apply_filters(beats, filters)))

    @port_operation("can_query")
    async def query(
        self, expression: str, options: BeatQueryOptions | None = None
    ) -> BackendResult[list[Beat]]:
        beats = filter_by_expression(list(self._index().beats.values()), expression)
        return BackendResult.success(self._copies(apply_query_options(beats, options)))

    @port_operation()
    async def get(self, beat_id: str) -> BackendResult[Beat]:
        beat = self._require(self._index(), beat_id)
        return BackendResult.success(beat.model_copy(deep=True))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @port_operation("can_create")
    async def create(self, data: CreateBeatInput) -> BackendResult[Beat]:
        index = self._index()
        workflow = resolve_profile(data.profile_id)

        beat_id = generate_beat_id()
        while beat_id in index.beats:
            beat_id = generate_beat_id()

        now = utc_now()
        beat = Beat(
            id=beat_id,
            title=data.title,
            description=data.description,
            notes=data.notes,
            acceptance=data.acceptance,
            estimate=data.estimate,
            due=data.due,
            type=data.type,
            priority=data.priority,
            labels=list(dict.fromkeys(data.labels)),
            parent=data.parent,
            assignee=data.assignee,
            owner=data.owner,
            created=now,
            updated=now,
        )
        apply_workflow_state(beat, workflow, workflow.initial_state)
        sync_workflow_labels(beat)

        index.beats[beat_id] = beat
        self._flush(index)
        logger.debug(f"Created beat {beat_id} in {index.path}")
        return BackendResult.success(beat.model_copy(deep=True))

    @port_operation("can_update")
    async def update(self, beat_id: str, data: UpdateBeatInput) -> BackendResult[Beat]:
        index = self._index()
        updated = apply_update(self._require(index, beat_id), data)
        index.beats[beat_id] = updated
        self._flush(index)
        return BackendResult.success(updated.model_copy(deep=True))

    @port_operation("can_delete")
    async def delete(self, beat_id: str) -> BackendResult[None]:
        index = self._index()
        self._require(index, beat_id)
        del index.beats[beat_id]
        index.blockers.pop(beat_id, None)
        for blocked, blockers in list(index.blockers.items()):
            remaining = [b for b in blockers if b != beat_id]
            if remaining:
                index.blockers[blocked] = remaining
            else:
                del index.blockers[blocked]
        self._flush(index)
        return BackendResult.success(None)

    @port_operation("can_close")
    async def close(self, beat_id: str, reason: str | None = None) -> BackendResult[Beat]:
        index = self._index()
        closed = apply_close(self._require(index, beat_id), reason)
        index.beats[beat_id] = closed
        self._flush(index)
        return BackendResult.success(closed.model_copy(deep=True))

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    @port_operation("can_manage_dependencies")
    async def list_dependencies(
        self, beat_id: str, options: DependencyListOptions | None = None
    ) -> BackendResult[list[BeatDependency]]:
        index = self._index()
        self._require(index, beat_id)

        deps = [
            BeatDependency(id=blocker, source=blocker, target=beat_id)
            for blocker in index.blockers.get(beat_id, [])
        ]
        for blocked, blockers in index.blockers.items():
            if beat_id in blockers:
                deps.append(BeatDependency(id=blocked, source=beat_id, target=blocked))

        if options is not None and options.type:
            deps = [dep for dep in deps if dep.type == options.type]
        return BackendResult.success(deps)

    @port_operation("can_manage_dependencies")
    async def add_dependency(self, blocker_id: str, blocked_id: str) -> BackendResult[None]:
        index = self._index()
        self._require(index, blocker_id)
        self._require(index, blocked_id)
        if blocker_id == blocked_id:
            raise BackendFailure(invalid_input("A beat cannot block itself"))

        blockers = index.blockers.setdefault(blocked_id, [])
        if blocker_id in blockers:
            raise BackendFailure(
                already_exists("Dependency", f"{blocker_id} -> {blocked_id}")
            )
        blockers.append(blocker_id)
        self._flush(index)
        return BackendResult.success(None)

    @port_operation("can_manage_dependencies")
    async def remove_dependency(self, blocker_id: str, blocked_id: str) -> BackendResult[None]:
        index = self._index()
        blockers = index.blockers.get(blocked_id, [])
        if blocker_id not in blockers:
            raise BackendFailure(not_found("Dependency", f"{blocker_id} -> {blocked_id}"))
        blockers.remove(blocker_id)
        if not blockers:
            del index.blockers[blocked_id]
        self._flush(index)
        return BackendResult.success(None)

    # -------------------------------------------------------------------------
    # Prompts
    # -------------------------------------------------------------------------

    @port_operation()
    async def build_take_prompt(
        self, beat_id: str, options: TakePromptOptions | None = None
    ) -> BackendResult[TakePromptResult]:
        index = self._index()
        self._require(index, beat_id)
        options = options or TakePromptOptions()
        if options.is_parent and not options.child_beat_ids:
            children = [
                child.id
                for child in index.beats.values()
                if child.parent == beat_id and child.status != BeatStatus.CLOSED
            ]
            options = options.model_copy(update={"child_beat_ids": children})
        return BackendResult.success(prompts.build_take_prompt(beat_id, options))

    @port_operation("can_list_ready")
    async def build_poll_prompt(
        self, options: PollPromptOptions | None = None
    ) -> BackendResult[PollPromptResult]:
        ready = self._ready(self._index())
        return BackendResult.success(prompts.build_poll_prompt(ready, options))
