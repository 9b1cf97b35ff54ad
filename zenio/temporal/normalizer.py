"""
Temporal Normalizer

Turns the many ways a user (or the assistant) writes a date into the
canonical YYYY-MM-DD form, and rewrites relative words such as "hoy",
"ayer" or "pasado mañana" inside free text into concrete dates.

"Today" is computed in a fixed reference offset (UTC-4 by default), not
in the server's local time, so that the same message means the same day
wherever the engine runs.

For newly created records the canonical date is also projected to the
absolute instant of local midnight in the user's timezone. Criteria used
to find existing records never get that projection: they match on the
calendar day only.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

import structlog

from zenio.config import AppSettings, get_settings


logger = structlog.get_logger(__name__)


# Fixed offsets for the timezones chat clients send. Unknown names fall back to UTC.
TIMEZONE_OFFSETS: dict[str, int] = {
    "America/Santo_Domingo": -4,
    "America/Caracas": -4,
    "America/New_York": -5,
    "America/Chicago": -6,
    "America/Denver": -7,
    "America/Los_Angeles": -8,
    "America/Anchorage": -9,
    "Pacific/Honolulu": -10,
    "Europe/London": 0,
    "Europe/Paris": 1,
    "Europe/Berlin": 1,
    "Europe/Madrid": 1,
    "Europe/Rome": 1,
    "Europe/Moscow": 3,
    "Asia/Dubai": 4,
    "Asia/Shanghai": 8,
    "Asia/Tokyo": 9,
    "Asia/Seoul": 9,
    "Australia/Sydney": 10,
    "Pacific/Auckland": 12,
    "UTC": 0,
}

SPANISH_MONTHS: dict[str, int] = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

# Phrase -> day delta. Longer phrases must win over the words they contain
# ("pasado mañana" over "mañana"), so the alternation is built longest first.
RELATIVE_EXPRESSIONS: dict[str, int] = {
    "en el día de hoy": 0,
    "en el dia de hoy": 0,
    "en el día de ayer": -1,
    "en el dia de ayer": -1,
    "pasado mañana": 2,
    "pasado manana": 2,
    "day after tomorrow": 2,
    "day before yesterday": -2,
    "enhoy": 0,
    "hoy": 0,
    "anteayer": -2,
    "antier": -2,
    "ayer": -1,
    "mañana": 1,
    "manana": 1,
    "today": 0,
    "yesterday": -1,
    "tomorrow": 1,
}

_RELATIVE_PATTERN = re.compile(
    r"\b(?:"
    + "|".join(
        re.escape(phrase).replace(r"\ ", r"\s+")
        for phrase in sorted(RELATIVE_EXPRESSIONS, key=len, reverse=True)
    )
    + r")\b",
    re.IGNORECASE,
)

_ISO = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_YMD_SLASH = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")
_YMD_DOT = re.compile(r"^(\d{4})\.(\d{1,2})\.(\d{1,2})$")
_DMY = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})$")
_COMPACT = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_LONG_FORM = re.compile(
    r"(\d{1,2})\s*de\s*([a-záéíóúñ]+)(?:\s*(?:de|del)\s*(\d{4}))?",
    re.IGNORECASE,
)


def timezone_offset(tz_name: Optional[str]) -> int:
    """Hours from UTC for a timezone name; unknown names count as UTC."""
    return TIMEZONE_OFFSETS.get(tz_name or "UTC", 0)


def _build(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(value: str, default_year: int) -> Optional[date]:
    """
    Parse one date written in any supported format.

    Supported: YYYY-MM-DD, YYYY/MM/DD, YYYY.MM.DD, DD/MM/YYYY,
    DD-MM-YYYY, DD.MM.YYYY, YYYYMMDD and "12 de julio [de 2025]".
    Returns None when nothing matches or the date does not exist.
    """
    text = value.strip().lower()
    if not text:
        return None

    for pattern in (_ISO, _YMD_SLASH, _YMD_DOT, _COMPACT):
        match = pattern.match(text)
        if match:
            y, m, d = (int(g) for g in match.groups())
            return _build(y, m, d)

    match = _DMY.match(text)
    if match:
        d, m, y = (int(g) for g in match.groups())
        return _build(y, m, d)

    match = _LONG_FORM.search(text)
    if match:
        month = SPANISH_MONTHS.get(match.group(2))
        if month is None:
            return None
        year = int(match.group(3)) if match.group(3) else default_year
        return _build(year, month, int(match.group(1)))

    return None


def normalize_date(value: Optional[str], default_year: Optional[int] = None) -> Optional[str]:
    """Canonical YYYY-MM-DD for a date string, or None if unparseable."""
    if not value or not isinstance(value, str):
        return None
    parsed = parse_date(value, default_year or date.today().year)
    return parsed.isoformat() if parsed else None


def project_local_midnight(day: date, tz_name: Optional[str]) -> datetime:
    """
    The UTC instant at which `day` starts in the given timezone.

    UTC-4 midnight of 2025-07-20 is 2025-07-20T04:00Z; UTC+1 midnight is
    2025-07-19T23:00Z.
    """
    local_tz = timezone(timedelta(hours=timezone_offset(tz_name)))
    return datetime.combine(day, time.min, tzinfo=local_tz).astimezone(timezone.utc)


class TemporalNormalizer:
    """
    Date handling bound to a reference clock.

    Args:
        reference_offset_hours: Offset used to decide what "today" is.
        clock: Returns the current aware datetime. Tests inject a fixed one.
    """

    def __init__(
        self,
        reference_offset_hours: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        settings: Optional[AppSettings] = None,
    ):
        if reference_offset_hours is None:
            settings = settings or get_settings().app
            reference_offset_hours = settings.reference_utc_offset_hours
        self._offset = timedelta(hours=reference_offset_hours)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def today(self) -> date:
        """Current calendar day in the reference offset."""
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone(self._offset)).date()

    def relative_date(self, phrase: str) -> Optional[date]:
        """Date for a lone relative expression ("ayer"), or None."""
        key = " ".join(phrase.strip().lower().split())
        delta = RELATIVE_EXPRESSIONS.get(key)
        if delta is None:
            return None
        return self.today() + timedelta(days=delta)

    def replace_relative_expressions(self, text: str) -> str:
        """
        Rewrite every whole-word relative expression in free text.

        "gasté 500 en comida ayer" -> "gasté 500 en comida 2025-07-19"
        """
        if not text:
            return text
        today = self.today()

        def substitute(match: re.Match) -> str:
            key = " ".join(match.group(0).lower().split())
            return (today + timedelta(days=RELATIVE_EXPRESSIONS[key])).isoformat()

        rewritten = _RELATIVE_PATTERN.sub(substitute, text)
        if rewritten != text:
            logger.debug(
                "relative_dates_replaced",
                reference_date=today.isoformat(),
                original=text,
                rewritten=rewritten,
            )
        return rewritten

    def resolve(self, value: Optional[str]) -> Optional[date]:
        """
        Parse a date field value.

        Explicit formats are tried first, then a lone relative expression.
        """
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            return None
        parsed = parse_date(text, self.today().year)
        if parsed is not None:
            return parsed
        return self.relative_date(text)

    def normalize(self, value: Optional[str]) -> Optional[str]:
        resolved = self.resolve(value)
        return resolved.isoformat() if resolved else None

    def project(self, day: date, tz_name: Optional[str]) -> datetime:
        return project_local_midnight(day, tz_name)
