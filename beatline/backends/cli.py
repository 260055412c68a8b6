"""
Backend that shells out to the ``bd`` tracker CLI.

Each port operation becomes one or more ``bd`` invocations with ``--json``
output. Writes against one repository are serialized; reads run freely.
When ``bd list`` reports that its database is out of sync with the JSONL
export, the backend runs ``bd sync --import-only`` once and retries the
list once.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger

from beatline.backends import prompts
from beatline.backends.capabilities import CLI_CAPABILITIES, BackendCapabilities
from beatline.backends.filters import apply_filters, apply_query_options
from beatline.backends.mutations import (
    apply_close,
    apply_update,
    resolve_profile,
)
from beatline.backends.port import BackendPort, port_operation
from beatline.backends.records import record_to_beat
from beatline.backends.runner import (
    WRITE_SERIALIZER,
    AsyncioProcessRunner,
    CommandResult,
    CommandTimeoutError,
    ProcessRunner,
    WriteSerializer,
)
from beatline.core.errors import (
    BackendFailure,
    BackendResult,
    InvalidRecordError,
    error_from_message,
    internal,
    not_found,
    timeout,
    unavailable,
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
from beatline.workflows.labels import with_workflow_profile_label, with_workflow_state_label

OUT_OF_SYNC_SIGNATURE = "out of sync"

# UpdateBeatInput field -> bd flag
_UPDATE_FLAGS: dict[str, str] = {
    "title": "--title",
    "description": "--description",
    "notes": "--notes",
    "acceptance": "--acceptance",
    "estimate": "--estimate",
    "due": "--due",
    "type": "--type",
    "priority": "--priority",
    "parent": "--parent",
    "assignee": "--assignee",
    "owner": "--owner",
}


def _flag_value(value: Any) -> str:
    return str(getattr(value, "value", value))


def _failure_message(result: CommandResult, command: str) -> str:
    """Pick the most useful error text from a failed command."""
    if result.stderr:
        return result.stderr
    if result.stdout:
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError:
            return result.stdout
        if isinstance(payload, dict) and isinstance(payload.get("error"), str):
            return payload["error"]
        return result.stdout
    return f"bd {command} failed"


def is_out_of_sync(result: CommandResult) -> bool:
    if result.ok:
        return False
    return OUT_OF_SYNC_SIGNATURE in _failure_message(result, "").lower()


def parse_json_output(stdout: str, command: str) -> Any:
    try:
        return json.loads(stdout) if stdout.strip() else None
    except json.JSONDecodeError as exc:
        raise BackendFailure(internal(f"Failed to parse bd {command} output: {exc}")) from exc


def parse_beats(stdout: str, command: str) -> list[Beat]:
    payload = parse_json_output(stdout, command)
    if payload is None:
        return []
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        raise BackendFailure(internal(f"Unexpected bd {command} output"))
    try:
        return [
            record_to_beat(item) for item in payload if isinstance(item, dict) and item.get("id")
        ]
    except InvalidRecordError as exc:
        raise BackendFailure(internal(f"Unexpected bd {command} output: {exc}")) from exc


def parse_created_id(stdout: str) -> str:
    """Read the new id from JSON output, or from a bare id line."""
    try:
        payload = json.loads(stdout)
    except json.JSONDecodeError:
        payload = None
    if isinstance(payload, dict) and payload.get("id"):
        return str(payload["id"])
    for line in stdout.splitlines():
        line = line.strip()
        if line:
            return line.split()[-1]
    raise BackendFailure(internal("Failed to parse bd create output"))


def normalize_dependency(raw: dict[str, Any], beat_id: str) -> BeatDependency | None:
    """Map one ``bd dep list`` entry onto an edge relative to ``beat_id``.

    Accepts the tracker shape (``issue_id`` / ``depends_on_id``), edge
    records (``src`` / ``kind`` / ``dst`` with ``blocked_by`` or ``blocks``)
    and bare issue objects, which are blockers of ``beat_id``. Parent edges
    are not dependencies and yield ``None``.
    """
    dep_type = raw.get("type") or raw.get("dependency_type") or "blocks"

    if "src" in raw and "dst" in raw:
        kind = raw.get("kind") or "blocked_by"
        if kind == "blocked_by":
            blocked, blocker = str(raw["src"]), str(raw["dst"])
        elif kind == "blocks":
            blocker, blocked = str(raw["src"]), str(raw["dst"])
        else:
            return None
        dep_type = "blocks"
    elif "issue_id" in raw and "depends_on_id" in raw:
        blocked, blocker = str(raw["issue_id"]), str(raw["depends_on_id"])
    elif raw.get("id"):
        blocker, blocked = str(raw["id"]), beat_id
    else:
        return None

    if dep_type not in ("blocks", "blocked_by"):
        return None
    other = blocker if blocked == beat_id else blocked
    return BeatDependency(id=other, type="blocks", source=blocker, target=blocked)


class CliBackend(BackendPort):
    """
    Backend over the ``bd`` command-line tracker.

    Args:
        repo_path: Repository the commands run in.
        runner: Process runner; defaults to real subprocesses.
        binary: ``bd`` executable name or path.
        db_path: Optional database path passed as ``--db``.
        timeout_seconds: Per-command timeout.
        serializer: Shared write serializer; backends on the same
            repository should share one.
    """

    capabilities: BackendCapabilities = CLI_CAPABILITIES

    def __init__(
        self,
        repo_path: str | Path,
        runner: ProcessRunner | None = None,
        binary: str = "bd",
        db_path: str | None = None,
        timeout_seconds: float = 5.0,
        serializer: WriteSerializer | None = None,
    ) -> None:
        self.repo_path = Path(repo_path)
        self.runner = runner or AsyncioProcessRunner()
        self.binary = binary
        self.db_path = db_path
        self.timeout_seconds = timeout_seconds
        self.serializer = serializer or WRITE_SERIALIZER
        self._key = str(self.repo_path.resolve())

    def pending_write_count(self) -> int:
        return self.serializer.pending_write_count(self._key)

    # -------------------------------------------------------------------------
    # Command execution
    # -------------------------------------------------------------------------

    def _argv(self, args: list[str]) -> list[str]:
        argv = [self.binary]
        if self.db_path:
            argv.extend(["--db", self.db_path])
        return [*argv, *args]

    async def _exec(self, args: list[str]) -> CommandResult:
        """Run one command, translating runner exceptions into failures."""
        argv = self._argv(args)
        try:
            return await self.runner.run(argv, cwd=self.repo_path, timeout=self.timeout_seconds)
        except CommandTimeoutError as exc:
            logger.warning(str(exc))
            raise BackendFailure(timeout(str(exc))) from exc
        except FileNotFoundError as exc:
            raise BackendFailure(unavailable(f"{self.binary} executable not found")) from exc

    async def _run(self, args: list[str]) -> CommandResult:
        result = await self._exec(args)
        if not result.ok:
            message = _failure_message(result, args[0])
            logger.debug(f"bd {args[0]} exited {result.exit_code}: {message}")
            raise BackendFailure(error_from_message(message))
        return result

    async def _write(self, args: list[str]) -> CommandResult:
        async with self.serializer.hold(self._key):
            return await self._run(args)

    async def _list_with_sync_retry(self, args: list[str]) -> CommandResult:
        result = await self._exec(args)
        if is_out_of_sync(result):
            logger.info(f"bd reports out-of-sync database in {self.repo_path}; importing")
            await self._run(["sync", "--import-only"])
            result = await self._exec(args)
        if not result.ok:
            raise BackendFailure(error_from_message(_failure_message(result, args[0])))
        return result

    async def _fetch(self, beat_id: str) -> Beat:
        result = await self._run(["show", beat_id, "--json"])
        beats = parse_beats(result.stdout, "show")
        if not beats:
            raise BackendFailure(not_found("Beat", beat_id))
        return beats[0]

    async def _list_all(self, filters: BeatListFilters | None = None) -> list[Beat]:
        args = ["list", "--json", "--limit", "0", "--all"]
        if filters is not None:
            for flag, value in (
                ("--type", filters.type),
                ("--priority", filters.priority),
                ("--assignee", filters.assignee),
                ("--label", filters.label),
            ):
                if value is not None:
                    args.extend([flag, _flag_value(value)])
        result = await self._list_with_sync_retry(args)
        return parse_beats(result.stdout, "list")

    async def _write_labels(self, beat_id: str, labels: list[str]) -> None:
        await self._write(["update", beat_id, "--set-labels", ",".join(labels)])

    # -------------------------------------------------------------------------
    # Workflows and reads
    # -------------------------------------------------------------------------

    @port_operation()
    async def list_workflows(self) -> BackendResult[list[WorkflowDescriptor]]:
        return BackendResult.success(builtin_workflow_descriptors())

    @port_operation()
    async def list(self, filters: BeatListFilters | None = None) -> BackendResult[list[Beat]]:
        return BackendResult.success(apply_filters(await self._list_all(filters), filters))

    @port_operation("can_list_ready")
    async def list_ready(
        self, filters: BeatListFilters | None = None
    ) -> BackendResult[list[Beat]]:
        result = await self._run(["ready", "--json", "--limit", "0"])
        beats = [b for b in parse_beats(result.stdout, "ready") if b.status == BeatStatus.OPEN]
        return BackendResult.success(apply_filters(beats, filters))

    @port_operation("can_search")
    async def search(
        self, query: str, filters: BeatListFilters | None = None
    ) -> BackendResult[list[Beat]]:
        result = await self._run(["search", query, "--json"])
        return BackendResult.success(apply_filters(parse_beats(result.stdout, "search"), filters))

    @port_operation("can_query")
    async def query(
        self, expression: str, options: BeatQueryOptions | None = None
    ) -> BackendResult[list[Beat]]:
        # Evaluated locally so every backend shares one expression language.
        beats = filter_by_expression(await self._list_all(), expression)
        return BackendResult.success(apply_query_options(beats, options))

    @port_operation()
    async def get(self, beat_id: str) -> BackendResult[Beat]:
        return BackendResult.success(await self._fetch(beat_id))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @port_operation("can_create")
    async def create(self, data: CreateBeatInput) -> BackendResult[Beat]:
        workflow = resolve_profile(data.profile_id)
        labels = with_workflow_profile_label(
            with_workflow_state_label(list(data.labels), workflow.initial_state),
            workflow.id,
        )

        args = [
            "create",
            "--json",
            "--title",
            data.title,
            "--type",
            data.type.value,
            "--priority",
            str(data.priority),
            "--labels",
            ",".join(labels),
        ]
        for name in ("description", "notes", "acceptance", "estimate", "due", "parent", "assignee", "owner"):
            value = getattr(data, name)
            if value is not None and value != "":
                args.extend([_UPDATE_FLAGS[name], _flag_value(value)])

        result = await self._write(args)
        beat_id = parse_created_id(result.stdout)
        logger.debug(f"bd created {beat_id} in {self.repo_path}")
        return BackendResult.success(await self._fetch(beat_id))

    @port_operation("can_update")
    async def update(self, beat_id: str, data: UpdateBeatInput) -> BackendResult[Beat]:
        current = await self._fetch(beat_id)
        updated = apply_update(current, data)

        args = ["update", beat_id]
        for name, flag in _UPDATE_FLAGS.items():
            value = getattr(data, name)
            if value is not None:
                args.extend([flag, _flag_value(value)])
        if updated.status != current.status:
            args.extend(["--status", updated.status.value])
        args.extend(["--set-labels", ",".join(updated.labels)])

        await self._write(args)
        return BackendResult.success(await self._fetch(beat_id))

    @port_operation("can_delete")
    async def delete(self, beat_id: str) -> BackendResult[None]:
        await self._write(["delete", beat_id, "--force"])
        return BackendResult.success(None)

    @port_operation("can_close")
    async def close(self, beat_id: str, reason: str | None = None) -> BackendResult[Beat]:
        current = await self._fetch(beat_id)
        closed = apply_close(current, reason)

        args = ["close", beat_id]
        if reason:
            args.extend(["--reason", reason])
        await self._write(args)
        await self._write_labels(beat_id, closed.labels)
        return BackendResult.success(await self._fetch(beat_id))

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    @port_operation("can_manage_dependencies")
    async def list_dependencies(
        self, beat_id: str, options: DependencyListOptions | None = None
    ) -> BackendResult[list[BeatDependency]]:
        result = await self._run(["dep", "list", beat_id, "--json"])
        payload = parse_json_output(result.stdout, "dep list") or []
        if not isinstance(payload, list):
            raise BackendFailure(internal("Unexpected bd dep list output"))

        deps: list[BeatDependency] = []
        for raw in payload:
            if not isinstance(raw, dict):
                continue
            dep = normalize_dependency(raw, beat_id)
            if dep is not None and dep not in deps:
                deps.append(dep)

        if options is not None and options.type:
            deps = [dep for dep in deps if dep.type == options.type]
        return BackendResult.success(deps)

    @port_operation("can_manage_dependencies")
    async def add_dependency(self, blocker_id: str, blocked_id: str) -> BackendResult[None]:
        await self._write(["dep", blocker_id, "--blocks", blocked_id])
        return BackendResult.success(None)

    @port_operation("can_manage_dependencies")
    async def remove_dependency(self, blocker_id: str, blocked_id: str) -> BackendResult[None]:
        await self._write(["dep", "remove", blocked_id, blocker_id])
        return BackendResult.success(None)

    # -------------------------------------------------------------------------
    # Prompts
    # -------------------------------------------------------------------------

    @port_operation()
    async def build_take_prompt(
        self, beat_id: str, options: TakePromptOptions | None = None
    ) -> BackendResult[TakePromptResult]:
        options = options or TakePromptOptions()
        if options.is_parent and not options.child_beat_ids:
            children = [
                beat.id
                for beat in await self._list_all(BeatListFilters(parent=beat_id))
                if beat.parent == beat_id and beat.status != BeatStatus.CLOSED
            ]
            options = options.model_copy(update={"child_beat_ids": children})
        return BackendResult.success(
            prompts.build_take_prompt(beat_id, options, binary=self.binary)
        )

    @port_operation("can_list_ready")
    async def build_poll_prompt(
        self, options: PollPromptOptions | None = None
    ) -> BackendResult[PollPromptResult]:
        result = await self._run(["ready", "--json", "--limit", "0"])
        ready = [b for b in parse_beats(result.stdout, "ready") if b.status == BeatStatus.OPEN]
        return BackendResult.success(
            prompts.build_poll_prompt(ready, options, binary=self.binary)
        )
