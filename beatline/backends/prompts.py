"""Natural-language prompts handed to coding agents."""

import json

from beatline.core.errors import BackendFailure, unavailable
from beatline.core.models import (
    Beat,
    PollPromptOptions,
    PollPromptResult,
    TakePromptOptions,
    TakePromptResult,
)
from beatline.backends.filters import sort_for_pickup


def _show_command(binary: str, beat_id: str) -> str:
    return f"{binary} show {json.dumps(beat_id)}"


def build_take_prompt(
    beat_id: str,
    options: TakePromptOptions | None = None,
    binary: str = "bd",
) -> TakePromptResult:
    """Prompt asking an agent to take one beat, or a parent and its children.

    Example:
        >>> print(build_take_prompt("bd-7").prompt)
        Beat ID: bd-7
        Use `bd show "bd-7"` to inspect full details before starting.
    """
    options = options or TakePromptOptions()
    show = _show_command(binary, beat_id)

    if options.is_parent and options.child_beat_ids:
        lines = [
            f"Parent beat ID: {beat_id}",
            f'Use `{show}` and `{binary} show "<child-id>"` to inspect full details before starting.',
            "",
            "Open child beat IDs:",
            *(f"- {child_id}" for child_id in options.child_beat_ids),
        ]
    else:
        lines = [
            f"Beat ID: {beat_id}",
            f"Use `{show}` to inspect full details before starting.",
        ]
    return TakePromptResult(prompt="\n".join(lines), claimed=False)


def build_poll_prompt(
    ready: list[Beat],
    options: PollPromptOptions | None = None,
    binary: str = "bd",
) -> PollPromptResult:
    """Prompt for the most urgent agent-claimable beat among ``ready``.

    Raises:
        BackendFailure: UNAVAILABLE when no ready beat can be claimed.
    """
    options = options or PollPromptOptions()
    candidates = sort_for_pickup(b for b in ready if b.is_agent_claimable)
    if not candidates:
        raise BackendFailure(unavailable("No claimable beats are ready"))

    beat = candidates[0]
    lines = []
    if options.agent_name:
        lines.append(f"Agent: {options.agent_name}")
    lines.extend(
        [
            f"Beat ID: {beat.id}",
            f"Title: {beat.title}",
            f"Next step: {beat.next_action_state or beat.state}",
            f"Use `{_show_command(binary, beat.id)}` to inspect full details before starting.",
        ]
    )
    return PollPromptResult(prompt="\n".join(lines), claimed_id=beat.id)
