"""Query module - field:value expression matching."""

from beatline.query.expression import (
    QueryTerm,
    filter_by_expression,
    matches_expression,
    parse_query_expression,
)

__all__ = [
    "QueryTerm",
    "filter_by_expression",
    "matches_expression",
    "parse_query_expression",
]
