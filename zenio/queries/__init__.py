"""Record lookup and list query package."""

from zenio.queries.criteria import CriteriaMatcher, MatchResult, MatchStatus, parse_amount
from zenio.queries.executor import (
    MAX_LIST_LIMIT,
    MIN_LIST_LIMIT,
    QueryExecutionError,
    QueryExecutor,
    QueryResult,
    clamp_limit,
    record_payload,
)

__all__ = [
    "CriteriaMatcher",
    "MatchResult",
    "MatchStatus",
    "parse_amount",
    "MAX_LIST_LIMIT",
    "MIN_LIST_LIMIT",
    "QueryExecutionError",
    "QueryExecutor",
    "QueryResult",
    "clamp_limit",
    "record_payload",
]
