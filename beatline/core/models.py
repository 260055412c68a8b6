"""Pydantic models for beats and backend requests.

A beat is one unit of trackable work. Its coarse ``status`` is always
derivable from the fine-grained workflow ``state``; adapters recompute both
together on every write.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================


class BeatType(str, Enum):
    """Kind of work a beat represents."""

    BUG = "bug"
    FEATURE = "feature"
    TASK = "task"
    EPIC = "epic"
    CHORE = "chore"
    MERGE_REQUEST = "merge-request"
    MOLECULE = "molecule"
    GATE = "gate"


class BeatStatus(str, Enum):
    """Legacy coarse status kept for compatibility."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DEFERRED = "deferred"
    CLOSED = "closed"


class OwnerKind(str, Enum):
    """Who is expected to act next on a beat."""

    AGENT = "agent"
    HUMAN = "human"
    NONE = "none"


class WorkflowMode(str, Enum):
    """Coarse classification of a workflow profile."""

    GRANULAR_AUTONOMOUS = "granular_autonomous"
    COARSE_HUMAN_GATED = "coarse_human_gated"


BEAT_TYPES: frozenset[str] = frozenset(t.value for t in BeatType)
BEAT_STATUSES: frozenset[str] = frozenset(s.value for s in BeatStatus)


# =============================================================================
# BEAT
# =============================================================================


class Beat(BaseModel):
    """A normalized task record as returned by every backend.

    Example:
        >>> beat = Beat(id="bd-1", title="Fix login", type=BeatType.BUG)
        >>> beat.status
        <BeatStatus.OPEN: 'open'>
    """

    model_config = ConfigDict(frozen=False)

    id: str = Field(..., min_length=1, description="Unique beat identifier")
    title: str = Field(..., description="Short title")
    description: str | None = Field(default=None, description="Long description")
    notes: str | None = Field(default=None, description="Free-form notes")
    acceptance: str | None = Field(default=None, description="Acceptance criteria")
    estimate: int | None = Field(default=None, gt=0, description="Estimate in minutes")
    due: str | None = Field(default=None, description="Due date (ISO 8601)")

    type: BeatType = Field(default=BeatType.TASK, description="Beat type")
    priority: int = Field(default=2, ge=0, le=4, description="0 (highest) to 4")
    labels: list[str] = Field(default_factory=list, description="Label tags")
    status: BeatStatus = Field(default=BeatStatus.OPEN, description="Compat status")

    workflow_id: str | None = Field(default=None, description="Workflow id")
    profile_id: str | None = Field(default=None, description="Workflow profile id")
    workflow_mode: WorkflowMode | None = Field(default=None, description="Profile mode")
    state: str = Field(default="open", description="Fine-grained workflow state")
    next_action_state: str | None = Field(default=None)
    next_action_owner_kind: OwnerKind = Field(default=OwnerKind.NONE)
    requires_human_action: bool | None = Field(default=None, description="None until projected")
    is_agent_claimable: bool = Field(default=False)

    parent: str | None = Field(default=None, description="Parent beat id")
    assignee: str | None = Field(default=None)
    owner: str | None = Field(default=None)

    created: str | None = Field(default=None, description="Creation time (ISO 8601)")
    updated: str | None = Field(default=None, description="Last update (ISO 8601)")
    closed: str | None = Field(default=None, description="Close time (ISO 8601)")
    metadata: dict[str, Any] = Field(default_factory=dict)


class BeatDependency(BaseModel):
    """One dependency edge as seen from a given endpoint.

    ``source`` blocks ``target``; ``id`` is the endpoint opposite the one
    that was queried.
    """

    id: str
    type: str = "blocks"
    source: str
    target: str


# =============================================================================
# REQUEST MODELS
# =============================================================================


class CreateBeatInput(BaseModel):
    """Fields accepted by ``create``."""

    title: str = Field(..., min_length=1)
    description: str | None = None
    notes: str | None = None
    acceptance: str | None = None
    estimate: int | None = Field(default=None, gt=0)
    due: str | None = None
    type: BeatType = BeatType.TASK
    priority: int = Field(default=2, ge=0, le=4)
    labels: list[str] = Field(default_factory=list)
    parent: str | None = None
    assignee: str | None = None
    owner: str | None = None
    profile_id: str | None = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v


class UpdateBeatInput(BaseModel):
    """Partial update for ``update``.

    ``None`` leaves a field untouched. ``labels`` are added to the existing
    set and ``remove_labels`` are removed from it.
    """

    title: str | None = None
    description: str | None = None
    notes: str | None = None
    acceptance: str | None = None
    estimate: int | None = Field(default=None, gt=0)
    due: str | None = None
    type: BeatType | None = None
    priority: int | None = Field(default=None, ge=0, le=4)
    status: BeatStatus | None = None
    state: str | None = None
    profile_id: str | None = None
    labels: list[str] | None = None
    remove_labels: list[str] | None = None
    parent: str | None = None
    assignee: str | None = None
    owner: str | None = None


class BeatListFilters(BaseModel):
    """Filters shared by the read operations.

    ``state`` accepts an exact workflow state or one of the pseudo values
    ``queued`` and ``in_action``.
    """

    type: BeatType | None = None
    status: BeatStatus | None = None
    priority: int | None = Field(default=None, ge=0, le=4)
    label: str | None = None
    assignee: str | None = None
    owner: str | None = None
    parent: str | None = None
    state: str | None = None
    next_owner_kind: OwnerKind | None = None
    requires_human_action: bool | None = None
    workflow_id: str | None = None
    profile_id: str | None = None


class BeatQueryOptions(BaseModel):
    """Options for ``query``."""

    limit: int | None = Field(default=None, ge=1)
    sort: str | None = Field(default=None, description="Field name, '-' prefix for descending")


class DependencyListOptions(BaseModel):
    """Options for ``list_dependencies``."""

    type: str | None = None


class TakePromptOptions(BaseModel):
    """Options for ``build_take_prompt``."""

    is_parent: bool = False
    child_beat_ids: list[str] = Field(default_factory=list)


class TakePromptResult(BaseModel):
    prompt: str
    claimed: bool = False


class PollPromptOptions(BaseModel):
    """Options for ``build_poll_prompt``."""

    agent_name: str | None = None


class PollPromptResult(BaseModel):
    prompt: str
    claimed_id: str
