"""Tracker record codec and JSONL file I/O.

Records use the tracker's snake_case field names (``issue_type``,
``acceptance_criteria``, ``created_at`` ...), both in ``issues.jsonl`` and
in the JSON printed by the ``bd`` CLI. Workflow state and profile are
stored as ``wf:state:`` / ``wf:profile:`` labels, and blocking
dependencies live on the blocked record as ``dependencies`` entries.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from beatline.core.errors import InvalidRecordError
from beatline.core.models import BEAT_STATUSES, BEAT_TYPES, Beat
from beatline.workflows.descriptors import builtin_profile_descriptor
from beatline.workflows.labels import with_workflow_profile_label, with_workflow_state_label
from beatline.workflows.states import (
    apply_workflow_state,
    derive_profile_id,
    derive_workflow_state,
    map_workflow_state_to_compat_status,
)

BEADS_DIR = ".beads"
ISSUES_FILE = "issues.jsonl"
BLOCKS_DEPENDENCY = "blocks"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def issues_path(repo_path: str | Path) -> Path:
    return Path(repo_path) / BEADS_DIR / ISSUES_FILE


def infer_parent(beat_id: str, explicit: Any = None) -> str | None:
    """Explicit parent, else the prefix of a dotted hierarchical id.

    Example:
        >>> infer_parent("bd-12.3")
        'bd-12'
    """
    if isinstance(explicit, str) and explicit:
        return explicit
    head, dot, _ = beat_id.rpartition(".")
    return head if dot and head else None


# =============================================================================
# RECORD <-> BEAT
# =============================================================================


def record_to_beat(raw: dict[str, Any]) -> Beat:
    """Normalize an on-disk record into a :class:`Beat`.

    Invalid types and statuses fall back to ``task`` and ``open``;
    out-of-range priorities fall back to 2. Non-string labels are dropped.

    Raises:
        InvalidRecordError: If a field has a shape no beat can hold.
    """
    try:
        return _record_to_beat(raw)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise InvalidRecordError(raw.get("id"), str(exc)) from exc


def _record_to_beat(raw: dict[str, Any]) -> Beat:
    beat_id = str(raw["id"])
    raw_type = raw.get("issue_type") or raw.get("type") or "task"
    raw_status = raw.get("status") or "open"
    labels = [
        label for label in raw.get("labels") or [] if isinstance(label, str) and label.strip()
    ]

    priority = raw.get("priority", 2)
    if isinstance(priority, bool) or not isinstance(priority, int) or not 0 <= priority <= 4:
        priority = 2

    metadata = dict(raw.get("metadata") or {})
    if raw.get("close_reason"):
        metadata["close_reason"] = raw["close_reason"]

    estimate = raw.get("estimated_minutes", raw.get("estimate"))
    if not isinstance(estimate, int) or isinstance(estimate, bool) or estimate <= 0:
        estimate = None

    profile_id = derive_profile_id(labels, metadata)
    workflow = builtin_profile_descriptor(profile_id)
    status = raw_status if raw_status in BEAT_STATUSES else "open"

    beat = Beat(
        id=beat_id,
        title=str(raw.get("title") or ""),
        description=raw.get("description"),
        notes=raw.get("notes"),
        acceptance=raw.get("acceptance_criteria", raw.get("acceptance")),
        estimate=estimate,
        due=raw.get("due"),
        type=raw_type if raw_type in BEAT_TYPES else "task",
        priority=priority,
        labels=labels,
        assignee=raw.get("assignee"),
        owner=raw.get("owner"),
        parent=infer_parent(beat_id, raw.get("parent")),
        created=raw.get("created_at") or raw.get("created") or utc_now(),
        updated=raw.get("updated_at") or raw.get("updated") or utc_now(),
        closed=raw.get("closed_at") or raw.get("closed"),
        metadata=metadata,
    )
    return apply_workflow_state(beat, workflow, derive_workflow_state(status, labels, workflow))


def beat_to_record(beat: Beat, blocker_ids: list[str] | None = None) -> dict[str, Any]:
    """Denormalize a beat into its on-disk record.

    ``status`` is always recomputed from ``state`` so the two cannot
    diverge on disk.
    """
    workflow = builtin_profile_descriptor(beat.profile_id or beat.workflow_id)
    state = beat.state or workflow.initial_state
    labels = with_workflow_profile_label(
        with_workflow_state_label(beat.labels, state),
        workflow.id,
    )

    record: dict[str, Any] = {
        "id": beat.id,
        "title": beat.title,
        "status": map_workflow_state_to_compat_status(state).value,
        "priority": beat.priority,
        "issue_type": beat.type.value,
        "labels": labels,
        "created_at": beat.created,
        "updated_at": beat.updated,
    }
    optional = {
        "description": beat.description,
        "notes": beat.notes,
        "acceptance_criteria": beat.acceptance,
        "assignee": beat.assignee,
        "owner": beat.owner,
        "parent": beat.parent,
        "due": beat.due,
        "estimated_minutes": beat.estimate,
        "closed_at": beat.closed,
    }
    record.update({key: value for key, value in optional.items() if value is not None})

    if beat.metadata.get("close_reason") is not None:
        record["close_reason"] = beat.metadata["close_reason"]
    if beat.metadata:
        record["metadata"] = dict(beat.metadata)
    if blocker_ids:
        record["dependencies"] = [
            {"issue_id": beat.id, "depends_on_id": blocker, "type": BLOCKS_DEPENDENCY}
            for blocker in blocker_ids
        ]
    return record


def record_blockers(raw: dict[str, Any]) -> list[str]:
    """Ids of the beats blocking this record."""
    blockers: list[str] = []
    deps = raw.get("dependencies")
    if not isinstance(deps, list):
        return blockers
    for dep in deps:
        if not isinstance(dep, dict):
            continue
        if (dep.get("type") or BLOCKS_DEPENDENCY) != BLOCKS_DEPENDENCY:
            continue
        blocker = dep.get("depends_on_id")
        if isinstance(blocker, str) and blocker and blocker not in blockers:
            blockers.append(blocker)
    return blockers


# =============================================================================
# FILE I/O
# =============================================================================


def read_records(path: Path) -> list[dict[str, Any]]:
    """Read every well-formed record; a missing file reads as empty."""
    if not path.exists():
        return []

    records: list[dict[str, Any]] = []
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError:
                logger.warning(f"Skipping malformed JSONL line {line_no} in {path}")
                continue
            if not isinstance(raw, dict) or not raw.get("id"):
                logger.warning(f"Skipping record without id on line {line_no} in {path}")
                continue
            records.append(raw)
    return records


def write_records(path: Path, records: list[dict[str, Any]]) -> None:
    """Atomically rewrite the file and flush it to disk."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        for record in records:
            f.write(json.dumps(record, ensure_ascii=False))
            f.write("\n")
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)
