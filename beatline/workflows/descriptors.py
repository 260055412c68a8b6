"""Workflow descriptor registry.

Every built-in profile is a finite-state machine over the same six-step
pipeline (planning, plan review, implementation, implementation review,
shipment, shipment review). Profiles differ in whether planning exists,
what the output is, and which steps are owned by a human.

Historical profile ids are resolved through one alias table; unknown ids
fall back to the default profile instead of raising.
"""

import re
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from beatline.core.models import OwnerKind, WorkflowMode

DEFAULT_PROFILE_ID = "autopilot"

# =============================================================================
# ENUMS
# =============================================================================


class WorkflowStep(str, Enum):
    """The six canonical pipeline steps."""

    PLANNING = "planning"
    PLAN_REVIEW = "plan_review"
    IMPLEMENTATION = "implementation"
    IMPLEMENTATION_REVIEW = "implementation_review"
    SHIPMENT = "shipment"
    SHIPMENT_REVIEW = "shipment_review"


class StepPhase(str, Enum):
    """Whether a step is waiting for an owner or being worked on."""

    QUEUED = "queued"
    ACTIVE = "active"


ACTION_STATES: tuple[str, ...] = tuple(step.value for step in WorkflowStep)
QUEUE_PREFIX = "ready_for_"
TERMINAL_STATES: tuple[str, ...] = ("shipped", "abandoned")
PLANNING_STATES: frozenset[str] = frozenset(
    {"ready_for_planning", "planning", "ready_for_plan_review", "plan_review"}
)

_ALL_STATES: tuple[str, ...] = (
    "ready_for_planning",
    "planning",
    "ready_for_plan_review",
    "plan_review",
    "ready_for_implementation",
    "implementation",
    "ready_for_implementation_review",
    "implementation_review",
    "ready_for_shipment",
    "shipment",
    "ready_for_shipment_review",
    "shipment_review",
    "shipped",
    "deferred",
    "abandoned",
)

_CANONICAL_TRANSITIONS: tuple[tuple[str, str], ...] = (
    ("ready_for_planning", "planning"),
    ("planning", "ready_for_plan_review"),
    ("ready_for_plan_review", "plan_review"),
    ("plan_review", "ready_for_implementation"),
    ("plan_review", "ready_for_planning"),
    ("ready_for_implementation", "implementation"),
    ("implementation", "ready_for_implementation_review"),
    ("ready_for_implementation_review", "implementation_review"),
    ("implementation_review", "ready_for_shipment"),
    ("implementation_review", "ready_for_implementation"),
    ("ready_for_shipment", "shipment"),
    ("shipment", "ready_for_shipment_review"),
    ("ready_for_shipment_review", "shipment_review"),
    ("shipment_review", "shipped"),
    ("shipment_review", "ready_for_implementation"),
    ("shipment_review", "ready_for_shipment"),
    ("*", "deferred"),
    ("*", "abandoned"),
)

# Legacy profile ids mapped to their canonical replacement.
PROFILE_ALIASES: dict[str, str] = {
    "beads-coarse": "autopilot",
    "beads-coarse-human-gated": "semiauto",
    "knots-granular": "autopilot",
    "knots-granular-autonomous": "autopilot",
    "knots-coarse": "semiauto",
    "knots-coarse-human-gated": "semiauto",
}


# =============================================================================
# MODELS
# =============================================================================


class WorkflowOwners(BaseModel):
    """Owner kind of each pipeline step."""

    model_config = ConfigDict(frozen=True)

    planning: OwnerKind = OwnerKind.AGENT
    plan_review: OwnerKind = OwnerKind.AGENT
    implementation: OwnerKind = OwnerKind.AGENT
    implementation_review: OwnerKind = OwnerKind.AGENT
    shipment: OwnerKind = OwnerKind.AGENT
    shipment_review: OwnerKind = OwnerKind.AGENT

    def for_step(self, step: WorkflowStep | str) -> OwnerKind:
        key = step.value if isinstance(step, WorkflowStep) else step
        return getattr(self, key, OwnerKind.AGENT)

    def has_human(self) -> bool:
        return any(self.for_step(step) == OwnerKind.HUMAN for step in WorkflowStep)


class WorkflowTransition(BaseModel):
    """Allowed move between two states; ``*`` matches any source."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_state: str = Field(..., alias="from")
    to_state: str = Field(..., alias="to")


class WorkflowDescriptor(BaseModel):
    """A workflow profile as a finite-state machine.

    Example:
        >>> wf = builtin_profile_descriptor("semiauto")
        >>> wf.final_cut_state
        'ready_for_plan_review'
    """

    id: str
    profile_id: str
    backing_workflow_id: str
    label: str
    description: str = ""
    mode: WorkflowMode = WorkflowMode.GRANULAR_AUTONOMOUS
    planning_mode: Literal["required", "skipped"] = "required"
    output: Literal["remote_main", "pr"] = "remote_main"
    initial_state: str
    states: list[str]
    terminal_states: list[str]
    transitions: list[WorkflowTransition] = Field(default_factory=list)
    queue_states: list[str] = Field(default_factory=list)
    action_states: list[str] = Field(default_factory=list)
    review_queue_states: list[str] = Field(default_factory=list)
    human_queue_states: list[str] = Field(default_factory=list)
    retake_state: str
    final_cut_state: str | None = None
    prompt_profile_id: str
    owners: WorkflowOwners = Field(default_factory=WorkflowOwners)

    def can_transition(self, from_state: str, to_state: str) -> bool:
        """Whether the descriptor allows moving from one state to another."""
        return any(
            t.to_state == to_state and t.from_state in ("*", from_state)
            for t in self.transitions
        )


# =============================================================================
# BUILT-IN PROFILES
# =============================================================================

_AGENT_OWNERS = WorkflowOwners()
_SEMIAUTO_OWNERS = WorkflowOwners(
    plan_review=OwnerKind.HUMAN,
    implementation_review=OwnerKind.HUMAN,
)

_BUILTIN_PROFILES: tuple[dict, ...] = (
    {
        "profile_id": "autopilot",
        "description": "Agent-owned full flow with remote main output",
        "planning_mode": "required",
        "output": "remote_main",
        "owners": _AGENT_OWNERS,
    },
    {
        "profile_id": "autopilot_with_pr",
        "description": "Agent-owned full flow with PR output",
        "planning_mode": "required",
        "output": "pr",
        "owners": _AGENT_OWNERS,
    },
    {
        "profile_id": "semiauto",
        "description": "Human-gated plan and implementation reviews",
        "planning_mode": "required",
        "output": "remote_main",
        "owners": _SEMIAUTO_OWNERS,
    },
    {
        "profile_id": "autopilot_no_planning",
        "description": "Agent-owned flow starting at implementation",
        "planning_mode": "skipped",
        "output": "remote_main",
        "owners": _AGENT_OWNERS,
    },
    {
        "profile_id": "autopilot_with_pr_no_planning",
        "description": "Agent-owned flow with PR output and no planning",
        "planning_mode": "skipped",
        "output": "pr",
        "owners": _AGENT_OWNERS,
    },
    {
        "profile_id": "semiauto_no_planning",
        "description": "Human-gated implementation review with skipped planning",
        "planning_mode": "skipped",
        "output": "remote_main",
        "owners": _SEMIAUTO_OWNERS,
    },
)


def _step_owner(owners: WorkflowOwners, state: str) -> OwnerKind:
    step = state[len(QUEUE_PREFIX):] if state.startswith(QUEUE_PREFIX) else state
    return owners.for_step(step)


def _build_profile(
    profile_id: str,
    description: str,
    planning_mode: Literal["required", "skipped"],
    output: Literal["remote_main", "pr"],
    owners: WorkflowOwners,
) -> WorkflowDescriptor:
    skip_planning = planning_mode == "skipped"
    states = [
        s for s in _ALL_STATES if not (skip_planning and s in PLANNING_STATES)
    ]
    state_set = set(states)

    transitions = sorted(
        {
            (src, dst)
            for src, dst in _CANONICAL_TRANSITIONS
            if (src == "*" or src in state_set) and dst in state_set
        },
        key=lambda pair: (_ALL_STATES.index(pair[0]) if pair[0] != "*" else len(_ALL_STATES), pair[1]),
    )

    initial_state = "ready_for_implementation" if skip_planning else "ready_for_planning"
    queue_states = [s for s in states if s.startswith(QUEUE_PREFIX)]
    human_queue_states = [
        s for s in queue_states if _step_owner(owners, s) == OwnerKind.HUMAN
    ]

    return WorkflowDescriptor(
        id=profile_id,
        profile_id=profile_id,
        backing_workflow_id=profile_id,
        label=f"Workflow ({profile_id})",
        description=description,
        mode=(
            WorkflowMode.COARSE_HUMAN_GATED
            if owners.has_human()
            else WorkflowMode.GRANULAR_AUTONOMOUS
        ),
        planning_mode=planning_mode,
        output=output,
        initial_state=initial_state,
        states=states,
        terminal_states=list(TERMINAL_STATES),
        transitions=[WorkflowTransition(from_state=src, to_state=dst) for src, dst in transitions],
        queue_states=queue_states,
        action_states=[s for s in ACTION_STATES if s in state_set],
        review_queue_states=[s for s in queue_states if s.endswith("_review")],
        human_queue_states=human_queue_states,
        retake_state=(
            "ready_for_implementation"
            if "ready_for_implementation" in state_set
            else initial_state
        ),
        final_cut_state=human_queue_states[0] if human_queue_states else None,
        prompt_profile_id=profile_id,
        owners=owners,
    )


# Built once at import; callers only ever receive deep copies.
_REGISTRY: dict[str, WorkflowDescriptor] = {
    cfg["profile_id"]: _build_profile(**cfg) for cfg in _BUILTIN_PROFILES
}


# =============================================================================
# PUBLIC API
# =============================================================================


def normalize_profile_id(value: str | None) -> str | None:
    """Trim, lowercase and resolve legacy aliases.

    Returns ``None`` for blank input. Unknown ids are returned normalized
    but otherwise unchanged.

    Example:
        >>> normalize_profile_id(" Knots-Coarse-Human-Gated ")
        'semiauto'
    """
    if value is None:
        return None
    normalized = value.strip().lower()
    if not normalized:
        return None
    return PROFILE_ALIASES.get(normalized, normalized)


def is_supported_profile_id(value: str | None) -> bool:
    """Whether ``value`` resolves to a built-in profile."""
    normalized = normalize_profile_id(value)
    return normalized is not None and normalized in _REGISTRY


def builtin_workflow_descriptors() -> list[WorkflowDescriptor]:
    """Return fresh copies of every built-in profile in catalog order."""
    return [descriptor.model_copy(deep=True) for descriptor in _REGISTRY.values()]


def builtin_profile_descriptor(profile_id: str | None = None) -> WorkflowDescriptor:
    """Return a copy of the profile, falling back to the default one.

    Args:
        profile_id: Canonical or legacy profile id. ``None``, blank and
            unknown ids all resolve to the default profile.

    Returns:
        An independent deep copy of the descriptor.
    """
    normalized = normalize_profile_id(profile_id)
    descriptor = _REGISTRY.get(normalized or DEFAULT_PROFILE_ID, _REGISTRY[DEFAULT_PROFILE_ID])
    return descriptor.model_copy(deep=True)


def default_workflow_descriptor() -> WorkflowDescriptor:
    return builtin_profile_descriptor(DEFAULT_PROFILE_ID)


def workflow_descriptor_by_id(
    workflows: list[WorkflowDescriptor],
) -> dict[str, WorkflowDescriptor]:
    """Index descriptors by id, backing id, profile id and legacy alias.

    Aliases are only registered when their canonical target is present in
    ``workflows``.
    """
    index: dict[str, WorkflowDescriptor] = {}
    for workflow in workflows:
        index[workflow.id] = workflow
        index[workflow.backing_workflow_id] = workflow
        if workflow.profile_id:
            index[workflow.profile_id] = workflow

    for alias, target in PROFILE_ALIASES.items():
        if target in index and alias not in index:
            index[alias] = index[target]
    return index


# =============================================================================
# INFERENCE FOR EXTERNAL WORKFLOWS
# =============================================================================

_HUMAN_GATED_HINT = re.compile(r"(semiauto|coarse|human|gated|pull request|pr\b)")

_FINAL_CUT_CANDIDATES = (
    "ready_for_plan_review",
    "ready_for_implementation_review",
    "ready_for_shipment_review",
    "verification",
    "reviewing",
)

_RETAKE_CANDIDATES = ("ready_for_implementation", "retake", "retry", "rejected", "refining")


def infer_workflow_mode(
    workflow_id: str,
    description: str | None = None,
    states: list[str] | None = None,
) -> WorkflowMode:
    """Guess the mode of a workflow reported by an external tracker."""
    hint = " ".join([workflow_id, description or "", " ".join(states or [])]).lower()
    if _HUMAN_GATED_HINT.search(hint):
        return WorkflowMode.COARSE_HUMAN_GATED
    return WorkflowMode.GRANULAR_AUTONOMOUS


def infer_final_cut_state(states: list[str]) -> str | None:
    for candidate in _FINAL_CUT_CANDIDATES:
        if candidate in states:
            return candidate
    return None


def infer_retake_state(states: list[str], initial_state: str) -> str:
    for candidate in _RETAKE_CANDIDATES:
        if candidate in states:
            return candidate
    return initial_state


def build_external_descriptor(
    workflow_id: str,
    states: list[str],
    initial_state: str | None = None,
    terminal_states: list[str] | None = None,
    description: str | None = None,
) -> WorkflowDescriptor:
    """Build a descriptor for a workflow that is not one of the built-ins.

    Owners are inferred from the mode: human-gated workflows hand the
    review steps to a human, autonomous ones keep everything with agents.

    Raises:
        ValueError: If ``states`` is empty.
    """
    if not states:
        raise ValueError(f"Workflow {workflow_id} has no states")

    ordered = list(dict.fromkeys(s.strip().lower() for s in states if s.strip()))
    initial = (initial_state or ordered[0]).strip().lower()
    if initial not in ordered:
        ordered.insert(0, initial)
    terminals = [s for s in (terminal_states or []) if s in ordered] or [
        s for s in ordered if s in ("shipped", "abandoned", "closed", "done")
    ]

    mode = infer_workflow_mode(workflow_id, description, ordered)
    owners = _SEMIAUTO_OWNERS if mode == WorkflowMode.COARSE_HUMAN_GATED else _AGENT_OWNERS
    queue_states = [s for s in ordered if s.startswith(QUEUE_PREFIX)]
    final_cut = infer_final_cut_state(ordered)

    return WorkflowDescriptor(
        id=workflow_id,
        profile_id=workflow_id,
        backing_workflow_id=workflow_id,
        label=f"Workflow ({workflow_id})",
        description=description or "",
        mode=mode,
        initial_state=initial,
        states=ordered,
        terminal_states=terminals,
        queue_states=queue_states,
        action_states=[s for s in ordered if s in ACTION_STATES],
        review_queue_states=[s for s in queue_states if s.endswith("_review")],
        human_queue_states=[
            s for s in queue_states if _step_owner(owners, s) == OwnerKind.HUMAN
        ],
        retake_state=infer_retake_state(ordered, initial),
        final_cut_state=final_cut if mode == WorkflowMode.COARSE_HUMAN_GATED else None,
        prompt_profile_id=workflow_id,
        owners=owners,
    )
