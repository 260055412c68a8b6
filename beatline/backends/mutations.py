"""In-memory application of updates and closes to a beat.

Both adapters compute the post-write beat here, so workflow state, compat
status and ``wf:`` labels are recomputed together in one place.
"""

from beatline.core.errors import BackendFailure, invalid_input
from beatline.core.models import Beat, BeatStatus, UpdateBeatInput
from beatline.backends.records import utc_now
from beatline.workflows.descriptors import (
    WorkflowDescriptor,
    builtin_profile_descriptor,
    is_supported_profile_id,
    normalize_profile_id,
)
from beatline.workflows.labels import (
    STATE_LABEL_PREFIX,
    with_workflow_profile_label,
    with_workflow_state_label,
)
from beatline.workflows.states import (
    apply_workflow_state,
    derive_workflow_state,
    map_status_to_default_workflow_state,
    normalize_state_for_workflow,
)

UPDATABLE_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "notes",
    "acceptance",
    "estimate",
    "due",
    "type",
    "priority",
    "parent",
    "assignee",
    "owner",
)


def sync_workflow_labels(beat: Beat) -> Beat:
    """Rewrite the ``wf:state:`` and ``wf:profile:`` tags from the fields."""
    beat.labels = with_workflow_profile_label(
        with_workflow_state_label(beat.labels, beat.state),
        beat.profile_id,
    )
    return beat


def resolve_profile(profile_id: str | None) -> WorkflowDescriptor:
    """Descriptor for an explicitly requested profile.

    Raises:
        BackendFailure: INVALID_INPUT when the profile is not built in.
    """
    if profile_id is not None and not is_supported_profile_id(profile_id):
        raise BackendFailure(invalid_input(f"Unsupported profile: {profile_id}"))
    return builtin_profile_descriptor(profile_id)


def state_for_status(
    status: BeatStatus,
    labels: list[str],
    workflow: WorkflowDescriptor,
) -> str:
    if status in (BeatStatus.CLOSED, BeatStatus.DEFERRED):
        return map_status_to_default_workflow_state(status, workflow)
    # Stage labels (stage:retry, stage:verification) refine open statuses.
    untagged = [label for label in labels if not label.startswith(STATE_LABEL_PREFIX)]
    return derive_workflow_state(status, untagged, workflow)


def apply_update(beat: Beat, data: UpdateBeatInput) -> Beat:
    """Return a copy of ``beat`` with ``data`` applied.

    ``labels`` are merged in, ``remove_labels`` taken out. An explicit
    ``state`` wins over ``status``; a profile change alone re-normalizes
    the current state into the new profile.

    Raises:
        BackendFailure: INVALID_INPUT for an unsupported profile id.
    """
    updated = beat.model_copy(deep=True)

    workflow = builtin_profile_descriptor(updated.profile_id)
    profile_changed = False
    if data.profile_id is not None:
        workflow = resolve_profile(data.profile_id)
        profile_changed = normalize_profile_id(data.profile_id) != updated.profile_id

    for name in UPDATABLE_FIELDS:
        value = getattr(data, name)
        if value is not None:
            setattr(updated, name, value)

    labels = list(updated.labels)
    if data.labels is not None:
        labels = list(dict.fromkeys([*labels, *data.labels]))
    if data.remove_labels is not None:
        removed = set(data.remove_labels)
        labels = [label for label in labels if label not in removed]
    updated.labels = labels

    if data.state is not None:
        target = normalize_state_for_workflow(data.state, workflow)
    elif data.status is not None:
        target = state_for_status(data.status, labels, workflow)
    elif profile_changed:
        target = normalize_state_for_workflow(updated.state, workflow)
    else:
        target = updated.state

    apply_workflow_state(updated, workflow, target)
    sync_workflow_labels(updated)

    now = utc_now()
    updated.updated = now
    if updated.status == BeatStatus.CLOSED:
        updated.closed = updated.closed or now
    else:
        updated.closed = None
    return updated


def apply_close(beat: Beat, reason: str | None = None) -> Beat:
    """Return a copy of ``beat`` moved to its terminal state."""
    closed = beat.model_copy(deep=True)
    workflow = builtin_profile_descriptor(closed.profile_id)
    apply_workflow_state(
        closed, workflow, map_status_to_default_workflow_state(BeatStatus.CLOSED, workflow)
    )
    sync_workflow_labels(closed)

    now = utc_now()
    closed.updated = now
    closed.closed = now
    if reason:
        closed.metadata["close_reason"] = reason
    return closed
