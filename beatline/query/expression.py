"""Query expression evaluator.

An expression is a whitespace separated list of ``field:value`` terms that
must all match. Terms without a colon or with an empty side, and terms on
unknown fields, always match so that newer clients can send fields older
adapters do not know about.

Example:
    >>> terms = parse_query_expression("type:task priority:1")
    >>> [(t.field, t.value) for t in terms]
    [('type', 'task'), ('priority', '1')]
"""

from collections.abc import Callable
from dataclasses import dataclass

from beatline.core.models import Beat


@dataclass(frozen=True)
class QueryTerm:
    """One ``field:value`` term; ``field`` is lowercased."""

    field: str
    value: str


def _text(value: object) -> str:
    if value is None:
        return ""
    enum_value = getattr(value, "value", None)
    return str(enum_value if enum_value is not None else value)


def _match_state(beat: Beat, value: str) -> bool:
    return value in (_text(beat.status), beat.state)


def _match_bool(actual: bool | None, value: str) -> bool:
    return str(bool(actual)).lower() == value.lower()


_MATCHERS: dict[str, Callable[[Beat, str], bool]] = {
    "status": _match_state,
    "state": _match_state,
    "workflowstate": _match_state,
    "type": lambda beat, v: _text(beat.type) == v,
    "priority": lambda beat, v: str(beat.priority) == v,
    "assignee": lambda beat, v: beat.assignee == v,
    "owner": lambda beat, v: beat.owner == v,
    "parent": lambda beat, v: beat.parent == v,
    "label": lambda beat, v: v in beat.labels,
    "id": lambda beat, v: beat.id == v,
    "nextowner": lambda beat, v: _text(beat.next_action_owner_kind) == v,
    "nextownerkind": lambda beat, v: _text(beat.next_action_owner_kind) == v,
    "requireshumanaction": lambda beat, v: _match_bool(beat.requires_human_action, v),
    "human": lambda beat, v: _match_bool(beat.requires_human_action, v),
    "workflow": lambda beat, v: beat.workflow_id == v,
    "workflowid": lambda beat, v: beat.workflow_id == v,
    "profile": lambda beat, v: beat.profile_id == v,
    "profileid": lambda beat, v: beat.profile_id == v,
}


def parse_query_expression(expression: str) -> list[QueryTerm]:
    """Split an expression into terms, dropping malformed ones.

    Only the first colon separates field from value, so label values may
    themselves contain colons (``label:wf:state:planning``).
    """
    terms: list[QueryTerm] = []
    for raw in expression.split():
        field, sep, value = raw.partition(":")
        if not sep or not field or not value:
            continue
        terms.append(QueryTerm(field=field.lower(), value=value))
    return terms


def matches_term(beat: Beat, term: QueryTerm) -> bool:
    matcher = _MATCHERS.get(term.field)
    if matcher is None:
        return True
    return matcher(beat, term.value)


def matches_expression(beat: Beat, expression: str) -> bool:
    """Whether ``beat`` satisfies every term of ``expression``."""
    return all(matches_term(beat, term) for term in parse_query_expression(expression))


def filter_by_expression(beats: list[Beat], expression: str) -> list[Beat]:
    terms = parse_query_expression(expression)
    return [beat for beat in beats if all(matches_term(beat, t) for t in terms)]
