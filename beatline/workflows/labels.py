"""Label codec for workflow state and profile tags.

State and profile travel through trackers as namespaced labels:
``wf:state:<state>`` and ``wf:profile:<profile>``. This module is the only
place that reads or writes those strings.
"""

from beatline.workflows.descriptors import DEFAULT_PROFILE_ID, normalize_profile_id

STATE_LABEL_PREFIX = "wf:state:"
PROFILE_LABEL_PREFIX = "wf:profile:"

STAGE_VERIFICATION_LABEL = "stage:verification"
STAGE_RETRY_LABEL = "stage:retry"
ATTEMPTS_LABEL_PREFIX = "attempts:"


def _dedupe(labels: list[str]) -> list[str]:
    return list(dict.fromkeys(labels))


def _first_tag_value(labels: list[str], prefix: str) -> str | None:
    # First non-empty match wins; later duplicates are ignored.
    for label in labels:
        if not label.startswith(prefix):
            continue
        value = label[len(prefix):].strip()
        if value:
            return value
    return None


def extract_workflow_state_label(labels: list[str]) -> str | None:
    """Return the lowercased state from the first non-empty state tag."""
    value = _first_tag_value(labels, STATE_LABEL_PREFIX)
    return value.lower() if value else None


def extract_workflow_profile_label(labels: list[str]) -> str | None:
    """Return the alias-resolved profile from the first non-empty profile tag."""
    return normalize_profile_id(_first_tag_value(labels, PROFILE_LABEL_PREFIX))


def with_workflow_state_label(labels: list[str], state: str | None) -> list[str]:
    """Replace every state tag with a single tag for ``state``.

    Example:
        >>> with_workflow_state_label(["a", "wf:state:planning", "a"], "shipped")
        ['a', 'wf:state:shipped']
    """
    normalized = (state or "").strip().lower() or "open"
    kept = [label for label in labels if not label.startswith(STATE_LABEL_PREFIX)]
    return _dedupe([*kept, f"{STATE_LABEL_PREFIX}{normalized}"])


def with_workflow_profile_label(labels: list[str], profile_id: str | None) -> list[str]:
    """Replace every profile tag with a single tag for ``profile_id``."""
    normalized = normalize_profile_id(profile_id) or DEFAULT_PROFILE_ID
    kept = [label for label in labels if not label.startswith(PROFILE_LABEL_PREFIX)]
    return _dedupe([*kept, f"{PROFILE_LABEL_PREFIX}{normalized}"])


def is_workflow_label(label: str) -> bool:
    return label.startswith((STATE_LABEL_PREFIX, PROFILE_LABEL_PREFIX))


def attempts_from_labels(labels: list[str]) -> tuple[int, str | None]:
    """Return the recorded attempt count and the label that carried it."""
    for label in labels:
        if not label.startswith(ATTEMPTS_LABEL_PREFIX):
            continue
        raw = label[len(ATTEMPTS_LABEL_PREFIX):]
        if raw.isdigit():
            return int(raw), label
    return 0, None
