"""State derivation between coarse statuses, labels and workflow states.

All functions here are pure. They translate in both directions between the
legacy coarse status (``open``, ``in_progress``, ``blocked``, ``deferred``,
``closed``) and the fine-grained state of a workflow profile, and compute
the runtime projection of a state (who acts next, whether an agent may
claim it).
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from beatline.core.models import Beat, BeatStatus, OwnerKind
from beatline.workflows.descriptors import (
    ACTION_STATES,
    DEFAULT_PROFILE_ID,
    QUEUE_PREFIX,
    StepPhase,
    WorkflowDescriptor,
    WorkflowStep,
    builtin_profile_descriptor,
    normalize_profile_id,
)
from beatline.workflows.labels import (
    STAGE_RETRY_LABEL,
    STAGE_VERIFICATION_LABEL,
    extract_workflow_profile_label,
    extract_workflow_state_label,
)

# =============================================================================
# STATE VOCABULARY
# =============================================================================

TERMINAL_STATUS_STATES: frozenset[str] = frozenset({"shipped", "abandoned", "closed"})
LEGACY_TERMINAL_STATES: frozenset[str] = frozenset({"closed", "done", "approved"})
LEGACY_RETAKE_STATES: frozenset[str] = frozenset(
    {"retake", "retry", "rejected", "refining", "rework"}
)
LEGACY_IN_PROGRESS_STATES: frozenset[str] = frozenset(
    {"in_progress", "implementing", "implemented", "reviewing"}
)
LEGACY_OPEN_STATES: frozenset[str] = frozenset({"open", "idea", "work_item"})
LEGACY_REVIEW_STATES: frozenset[str] = frozenset(
    {"verification", "ready_for_review", "reviewing"}
)

PROFILE_METADATA_KEYS: tuple[str, ...] = (
    "profileId",
    "fooleryProfileId",
    "workflowProfileId",
    "knotsProfileId",
)

_ACTION_STATE_SET = frozenset(ACTION_STATES)


@dataclass(frozen=True)
class ResolvedStep:
    """A state resolved to its pipeline step and phase."""

    step: WorkflowStep
    phase: StepPhase


@dataclass(frozen=True)
class WorkflowRuntimeState:
    """Runtime projection of a workflow state."""

    state: str
    compat_status: BeatStatus
    next_action_state: str | None
    next_action_owner_kind: OwnerKind
    requires_human_action: bool
    is_agent_claimable: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "compat_status": self.compat_status.value,
            "next_action_state": self.next_action_state,
            "next_action_owner_kind": self.next_action_owner_kind.value,
            "requires_human_action": self.requires_human_action,
            "is_agent_claimable": self.is_agent_claimable,
        }


_RESOLVED_STEPS: dict[str, ResolvedStep] = {}
for _step in WorkflowStep:
    _RESOLVED_STEPS[f"{QUEUE_PREFIX}{_step.value}"] = ResolvedStep(_step, StepPhase.QUEUED)
    _RESOLVED_STEPS[_step.value] = ResolvedStep(_step, StepPhase.ACTIVE)


def _normalize_state(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    return normalized or None


def _status_value(status: BeatStatus | str | None) -> str | None:
    if isinstance(status, BeatStatus):
        return status.value
    return _normalize_state(status)


def _first_action_state(workflow: WorkflowDescriptor | None) -> str:
    if workflow is not None and workflow.action_states:
        return workflow.action_states[0]
    if workflow is not None and "implementation" in workflow.states:
        return "implementation"
    return "in_progress"


def _terminal_state(workflow: WorkflowDescriptor | None) -> str:
    if workflow is None:
        return "closed"
    if "shipped" in workflow.states:
        return "shipped"
    if "closed" in workflow.terminal_states:
        return "closed"
    if workflow.terminal_states:
        return workflow.terminal_states[0]
    return "closed"


# =============================================================================
# STEP RESOLUTION
# =============================================================================


def resolve_step(state: str) -> ResolvedStep | None:
    """Map a queue or active state to its step and phase.

    Example:
        >>> resolve_step("ready_for_shipment")
        ResolvedStep(step=<WorkflowStep.SHIPMENT: 'shipment'>, phase=<StepPhase.QUEUED: 'queued'>)
        >>> resolve_step("shipped") is None
        True
    """
    return _RESOLVED_STEPS.get(state)


# =============================================================================
# STATUS <-> STATE
# =============================================================================


def map_workflow_state_to_compat_status(state: str | None) -> BeatStatus:
    """Collapse a workflow state into the legacy coarse status."""
    normalized = _normalize_state(state)
    if normalized is None:
        return BeatStatus.OPEN
    if normalized == "deferred":
        return BeatStatus.DEFERRED
    if normalized in ("blocked", "rejected"):
        return BeatStatus.BLOCKED
    if normalized in TERMINAL_STATUS_STATES or normalized in LEGACY_TERMINAL_STATES:
        return BeatStatus.CLOSED
    if normalized.startswith(QUEUE_PREFIX):
        return BeatStatus.OPEN
    if normalized in _ACTION_STATE_SET or normalized in LEGACY_IN_PROGRESS_STATES:
        return BeatStatus.IN_PROGRESS
    return BeatStatus.OPEN


def map_status_to_default_workflow_state(
    status: BeatStatus | str | None,
    workflow: WorkflowDescriptor | None = None,
) -> str:
    """Pick the default workflow state for a coarse status.

    Args:
        status: Coarse status; unknown values are treated as ``open``.
        workflow: Profile to resolve against. Without one, literal
            fallbacks are returned.

    Returns:
        The state name.
    """
    value = _status_value(status)
    if value == BeatStatus.CLOSED.value:
        return _terminal_state(workflow)
    if value == BeatStatus.DEFERRED.value:
        return "deferred"
    if value == BeatStatus.BLOCKED.value:
        return workflow.retake_state if workflow is not None else "open"
    if value == BeatStatus.IN_PROGRESS.value:
        return _first_action_state(workflow)
    return workflow.initial_state if workflow is not None else "open"


def normalize_state_for_workflow(raw: str | None, workflow: WorkflowDescriptor) -> str:
    """Coerce any raw or legacy state name into a state of ``workflow``.

    The result is always a member of ``workflow.states``; unrecognized
    input resolves to the initial state.
    """
    normalized = _normalize_state(raw)
    if normalized is None:
        return workflow.initial_state
    if normalized in workflow.states:
        return normalized

    if normalized in LEGACY_OPEN_STATES:
        return workflow.initial_state
    if normalized in LEGACY_IN_PROGRESS_STATES:
        return _ensure_member(_first_action_state(workflow), workflow)
    if normalized in LEGACY_REVIEW_STATES:
        if "ready_for_implementation_review" in workflow.states:
            return "ready_for_implementation_review"
        return _ensure_member(_first_action_state(workflow), workflow)
    if normalized in LEGACY_RETAKE_STATES:
        if workflow.retake_state in workflow.states:
            return workflow.retake_state
        return workflow.initial_state
    if normalized in LEGACY_TERMINAL_STATES:
        return _ensure_member(_terminal_state(workflow), workflow)
    return workflow.initial_state


def _ensure_member(state: str, workflow: WorkflowDescriptor) -> str:
    return state if state in workflow.states else workflow.initial_state


# =============================================================================
# DERIVATION FROM RECORDS
# =============================================================================


def derive_profile_id(
    labels: list[str] | None,
    metadata: Mapping[str, Any] | None = None,
) -> str:
    """Resolve the profile id of a record.

    Metadata keys win over the ``wf:profile:`` label, which wins over the
    default profile.
    """
    if metadata:
        for key in PROFILE_METADATA_KEYS:
            value = metadata.get(key)
            if isinstance(value, str) and value.strip():
                normalized = normalize_profile_id(value)
                if normalized:
                    return normalized
    return extract_workflow_profile_label(labels or []) or DEFAULT_PROFILE_ID


def derive_workflow_state(
    status: BeatStatus | str | None,
    labels: list[str] | None,
    workflow: WorkflowDescriptor | None = None,
) -> str:
    """Resolve the workflow state of a record from its status and labels.

    Precedence: explicit ``wf:state:`` label, then legacy stage labels,
    then the status mapping, then the initial state.
    """
    tags = labels or []
    descriptor = workflow or builtin_profile_descriptor(DEFAULT_PROFILE_ID)

    explicit = extract_workflow_state_label(tags)
    if explicit:
        return normalize_state_for_workflow(explicit, descriptor)
    if STAGE_VERIFICATION_LABEL in tags:
        return normalize_state_for_workflow("ready_for_implementation_review", descriptor)
    if STAGE_RETRY_LABEL in tags:
        return normalize_state_for_workflow(descriptor.retake_state, descriptor)
    if _status_value(status):
        return map_status_to_default_workflow_state(status, descriptor)
    return descriptor.initial_state


def derive_workflow_runtime_state(
    workflow: WorkflowDescriptor,
    state: str | None,
) -> WorkflowRuntimeState:
    """Compute who acts next on a state and whether an agent may claim it."""
    normalized = normalize_state_for_workflow(state, workflow)
    resolved = resolve_step(normalized)

    if resolved is None:
        next_action_state = None
        owner = OwnerKind.NONE
    else:
        next_action_state = resolved.step.value
        owner = workflow.owners.for_step(resolved.step)

    return WorkflowRuntimeState(
        state=normalized,
        compat_status=map_workflow_state_to_compat_status(normalized),
        next_action_state=next_action_state,
        next_action_owner_kind=owner,
        requires_human_action=owner == OwnerKind.HUMAN,
        is_agent_claimable=(
            resolved is not None
            and resolved.phase == StepPhase.QUEUED
            and owner == OwnerKind.AGENT
        ),
    )


def apply_workflow_state(beat: Beat, workflow: WorkflowDescriptor, state: str | None) -> Beat:
    """Set state, compat status and runtime fields on ``beat`` in place.

    This is the single write path adapters use so that ``status`` never
    drifts from ``state``.
    """
    runtime = derive_workflow_runtime_state(workflow, state)
    beat.workflow_id = workflow.id
    beat.profile_id = workflow.profile_id
    beat.workflow_mode = workflow.mode
    beat.state = runtime.state
    beat.status = runtime.compat_status
    beat.next_action_state = runtime.next_action_state
    beat.next_action_owner_kind = runtime.next_action_owner_kind
    beat.requires_human_action = runtime.requires_human_action
    beat.is_agent_claimable = runtime.is_agent_claimable
    return beat


# =============================================================================
# BEAT PREDICATES
# =============================================================================


def _workflow_for_beat(
    beat: Beat,
    workflows_by_id: Mapping[str, WorkflowDescriptor],
) -> WorkflowDescriptor | None:
    profile_id = normalize_profile_id(beat.profile_id)
    if profile_id and profile_id in workflows_by_id:
        return workflows_by_id[profile_id]
    if beat.workflow_id and beat.workflow_id in workflows_by_id:
        return workflows_by_id[beat.workflow_id]
    return None


def beat_requires_human_action(
    beat: Beat,
    workflows_by_id: Mapping[str, WorkflowDescriptor],
) -> bool:
    if beat.requires_human_action is not None:
        return beat.requires_human_action
    workflow = _workflow_for_beat(beat, workflows_by_id)
    if workflow is None:
        return False
    return derive_workflow_runtime_state(workflow, beat.state).requires_human_action


def beat_in_final_cut(
    beat: Beat,
    workflows_by_id: Mapping[str, WorkflowDescriptor],
) -> bool:
    """A beat is in final cut while it waits on a human."""
    return beat_requires_human_action(beat, workflows_by_id)


def beat_in_retake(
    beat: Beat,
    workflows_by_id: Mapping[str, WorkflowDescriptor],
) -> bool:
    normalized = _normalize_state(beat.state) or ""
    if normalized in LEGACY_RETAKE_STATES:
        return True
    workflow = _workflow_for_beat(beat, workflows_by_id)
    if workflow is None:
        return False
    return workflow.retake_state == normalized
