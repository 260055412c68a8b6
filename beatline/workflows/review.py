"""Update payloads for human review verdicts on a beat."""

from beatline.core.models import Beat, BeatStatus, UpdateBeatInput
from beatline.workflows.labels import (
    ATTEMPTS_LABEL_PREFIX,
    STAGE_RETRY_LABEL,
    STAGE_VERIFICATION_LABEL,
    attempts_from_labels,
)


def verify_beat_fields() -> UpdateBeatInput:
    """Accept a beat under verification and close it."""
    return UpdateBeatInput(
        status=BeatStatus.CLOSED,
        remove_labels=[STAGE_VERIFICATION_LABEL],
    )


def reject_beat_fields(beat: Beat) -> UpdateBeatInput:
    """Send a beat back for another attempt.

    Reopens the beat, swaps ``stage:verification`` for ``stage:retry`` and
    bumps the ``attempts:<n>`` counter.

    Example:
        >>> beat = Beat(id="b-1", title="x", labels=["attempts:3", "stage:verification"])
        >>> reject_beat_fields(beat).labels
        ['stage:retry', 'attempts:4']
    """
    attempts, stale_label = attempts_from_labels(beat.labels)
    remove = [STAGE_VERIFICATION_LABEL]
    if stale_label is not None:
        remove.append(stale_label)
    return UpdateBeatInput(
        status=BeatStatus.OPEN,
        remove_labels=remove,
        labels=[STAGE_RETRY_LABEL, f"{ATTEMPTS_LABEL_PREFIX}{attempts + 1}"],
    )
