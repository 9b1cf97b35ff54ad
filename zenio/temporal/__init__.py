"""Date parsing and relative-date rewriting."""

from zenio.temporal.normalizer import (
    TIMEZONE_OFFSETS,
    TemporalNormalizer,
    normalize_date,
    parse_date,
    project_local_midnight,
    timezone_offset,
)

__all__ = [
    "TIMEZONE_OFFSETS",
    "TemporalNormalizer",
    "normalize_date",
    "parse_date",
    "project_local_midnight",
    "timezone_offset",
]
