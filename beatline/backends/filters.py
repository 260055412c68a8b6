"""Filtering, sorting and readiness helpers shared by the adapters."""

from collections.abc import Iterable

from beatline.core.models import Beat, BeatListFilters, BeatQueryOptions, BeatStatus
from beatline.workflows.descriptors import QUEUE_PREFIX, StepPhase
from beatline.workflows.states import resolve_step

QUEUED_STATE_FILTER = "queued"
IN_ACTION_STATE_FILTER = "in_action"


def _matches_state(beat: Beat, wanted: str) -> bool:
    if wanted == QUEUED_STATE_FILTER:
        return beat.state.startswith(QUEUE_PREFIX)
    if wanted == IN_ACTION_STATE_FILTER:
        resolved = resolve_step(beat.state)
        return resolved is not None and resolved.phase == StepPhase.ACTIVE
    return beat.state == wanted


def matches_filters(beat: Beat, filters: BeatListFilters) -> bool:
    if filters.type is not None and beat.type != filters.type:
        return False
    if filters.status is not None and beat.status != filters.status:
        return False
    if filters.priority is not None and beat.priority != filters.priority:
        return False
    if filters.label is not None and filters.label not in beat.labels:
        return False
    if filters.assignee is not None and beat.assignee != filters.assignee:
        return False
    if filters.owner is not None and beat.owner != filters.owner:
        return False
    if filters.parent is not None and beat.parent != filters.parent:
        return False
    if filters.state is not None and not _matches_state(beat, filters.state):
        return False
    if (
        filters.next_owner_kind is not None
        and beat.next_action_owner_kind != filters.next_owner_kind
    ):
        return False
    if (
        filters.requires_human_action is not None
        and bool(beat.requires_human_action) != filters.requires_human_action
    ):
        return False
    if filters.workflow_id is not None and beat.workflow_id != filters.workflow_id:
        return False
    if filters.profile_id is not None and beat.profile_id != filters.profile_id:
        return False
    return True


def apply_filters(beats: Iterable[Beat], filters: BeatListFilters | None) -> list[Beat]:
    if filters is None:
        return list(beats)
    return [beat for beat in beats if matches_filters(beat, filters)]


def apply_query_options(beats: list[Beat], options: BeatQueryOptions | None) -> list[Beat]:
    """Apply ``sort`` then ``limit``; unknown sort fields leave order intact."""
    if options is None:
        return beats
    result = beats
    if options.sort:
        field = options.sort.lstrip("-")
        descending = options.sort.startswith("-")
        if field in Beat.model_fields:
            present = [b for b in result if getattr(b, field) is not None]
            missing = [b for b in result if getattr(b, field) is None]
            present.sort(key=lambda b: _sort_key(getattr(b, field)), reverse=descending)
            result = present + missing
    if options.limit is not None:
        result = result[: options.limit]
    return result


def _sort_key(value: object) -> object:
    return getattr(value, "value", value)


def search_matches(beat: Beat, query: str) -> bool:
    """Case-insensitive substring match on title and description."""
    needle = query.strip().lower()
    if not needle:
        return True
    haystack = f"{beat.title}\n{beat.description or ''}".lower()
    return needle in haystack


def is_ready(beat: Beat, open_blocker_ids: set[str]) -> bool:
    """A beat is ready when it is queued, open and not blocked by open work."""
    return (
        beat.status == BeatStatus.OPEN
        and beat.state.startswith(QUEUE_PREFIX)
        and not open_blocker_ids
    )


def sort_for_pickup(beats: Iterable[Beat]) -> list[Beat]:
    """Order beats by priority, then creation time, then id."""
    return sorted(beats, key=lambda b: (b.priority, b.created or "", b.id))
