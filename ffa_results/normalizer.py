"""
Normalisation of free-text competition results.

Result rows scraped from the federation site carry dates such as "12 mars",
performances such as "42'59''", "11''45" or "6m45" and wind readings such as
"-0,8 m/s". The helpers below turn those into comparable values without ever
raising on malformed input: anything that cannot be interpreted becomes None.
`aggregate_event` then picks a record and a season best per event.
"""

from __future__ import annotations

import logging
import math
import re
import warnings
from datetime import date, datetime, time, timezone
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

from .disciplines import resolve_direction, strip_accents
from .models import (
    Direction,
    EventAggregate,
    NormalizedPerformancePoint,
    RawResultEntry,
    coerce_year,
)

LOGGER = logging.getLogger(__name__)

WIND_LEGAL_LIMIT = 2.0
NOON = time(12, 0)

FRENCH_MONTHS = {
    "janvier": 1,
    "janv": 1,
    "jan": 1,
    "fevrier": 2,
    "fevr": 2,
    "fev": 2,
    "mars": 3,
    "mar": 3,
    "avril": 4,
    "avr": 4,
    "mai": 5,
    "juin": 6,
    "juillet": 7,
    "juil": 7,
    "aout": 8,
    "septembre": 9,
    "sept": 9,
    "sep": 9,
    "octobre": 10,
    "oct": 10,
    "novembre": 11,
    "nov": 11,
    "decembre": 12,
    "dec": 12,
}

NON_RESULT_LABELS = ("dnf", "dns", "dsq", "dq", "nm", "np", "nr", "abd", "ab", "disq", "nc")

_DAY_MONTH_RE = re.compile(r"^(\d{1,2})(?:er)?\s+([a-z]+)(?:\s+(\d{4}))?$")
_NUMERIC_DATE_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})\b")
_HAS_YEAR_RE = re.compile(r"\d{4}")

_LABEL_RE = re.compile(r"^(?:%s)\b" % "|".join(NON_RESULT_LABELS))
_PAREN_RE = re.compile(r"\(([^)]*)\)")
_APOSTROPHE_TIME_RE = re.compile(
    r"(?<!\d)(?:(\d{1,2})\s*h\s*)?(\d{1,3})\s*'\s*(\d{1,2})(?:\s*(?:''|\"|'|[.,])\s*(\d{1,2}))?"
)
_SUB_MINUTE_RE = re.compile(r"(?<!\d)(\d{1,3})\s*(?:''|\")\s*(\d{1,2})?(?!\d)")
_COLON_TIME_RE = re.compile(r"(?<![\d:])(?:(\d{1,2}):)?(\d{1,3}):(\d{1,2}(?:[.,]\d+)?)(?![\d:])")
_METRIC_MARK_RE = re.compile(r"(?<!\d)(\d{1,3})\s*m\s*(\d{1,2})(?!\d)")
_NON_NUMERIC_RE = re.compile(r"[^0-9.,-]")

_WIND_UNIT_RE = re.compile(r"\s*m\s*/?\s*s\s*$", re.IGNORECASE)
_SIGNED_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def resolve_date(
    raw_date: str | None,
    year_hint: Any = None,
    *,
    default_year: int | None = None,
) -> datetime | None:
    """
    Resolve a free-text result date to a UTC instant.

    Tried in order: "<day> <French month>" (year taken from `year_hint`),
    "dd/mm/yyyy" or "dd-mm-yy", then a generic parse. Date-only values are
    placed at noon UTC so that the calendar day survives any display timezone.
    Returns None when nothing matches.
    """
    if raw_date is None:
        return None
    text = " ".join(str(raw_date).split())
    if not text:
        return None

    year = coerce_year(year_hint)
    if year is None:
        year = default_year if default_year is not None else date.today().year

    return (
        _parse_day_month(text, year)
        or _parse_numeric_date(text)
        or _parse_generic_date(text)
    )


def month_index(token: str) -> int | None:
    """Calendar month (1-12) for a French month name or abbreviation."""
    key = strip_accents(token.strip().lower()).rstrip(".")
    return FRENCH_MONTHS.get(key)


def _noon_utc(year: int, month: int, day: int) -> datetime | None:
    try:
        return datetime.combine(date(year, month, day), NOON, tzinfo=timezone.utc)
    except ValueError:
        return None


def _parse_day_month(text: str, year: int) -> datetime | None:
    candidate = strip_accents(text.lower()).replace(".", "")
    match = _DAY_MONTH_RE.match(candidate)
    if not match:
        return None
    day = int(match.group(1))
    month = FRENCH_MONTHS.get(match.group(2))
    if month is None or not 1 <= day <= 31:
        return None
    if match.group(3):
        year = int(match.group(3))
    return _noon_utc(year, month, day)


def _parse_numeric_date(text: str) -> datetime | None:
    match = _NUMERIC_DATE_RE.match(text)
    if not match:
        return None
    day, month, year = (int(group) for group in match.groups())
    if year < 100:
        year += 2000
    return _noon_utc(year, month, day)


def _parse_generic_date(text: str) -> datetime | None:
    # Without an explicit year the parser would borrow today's date.
    if not _HAS_YEAR_RE.search(text):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(text, errors="coerce")
        except (ValueError, OverflowError):
            return None
    if parsed is None or pd.isna(parsed):
        return None
    moment = parsed.to_pydatetime()
    if moment.tzinfo is not None:
        return moment.astimezone(timezone.utc)
    if moment.time() == time(0, 0):
        moment = datetime.combine(moment.date(), NOON)
    return moment.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Performances
# ---------------------------------------------------------------------------


def parse_performance_value(raw_value: Any) -> float | None:
    """
    Convert a performance string to seconds (timed events) or its native unit.

    Returns None for blanks and non-result labels such as "DNF" or "DSQ".
    A corrected time in parentheses, e.g. "42'59'' (41'16'')", wins over the
    time outside them.
    """
    if raw_value is None or isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, (int, float)):
        return float(raw_value) if math.isfinite(raw_value) else None

    text = _normalise_performance_text(str(raw_value))
    if not text or _LABEL_RE.match(text):
        return None

    paren = _PAREN_RE.search(text)
    outside = _PAREN_RE.sub(" ", text).strip() if paren else text
    scopes = [paren.group(1).strip(), outside] if paren else [text]

    for scope in scopes:
        for parser in (_parse_apostrophe_time, _parse_sub_minute_time, _parse_colon_time):
            value = parser(scope)
            if value is not None:
                return value

    value = _parse_metric_mark(outside)
    if value is not None:
        return value
    return _parse_plain_number(outside)


def _normalise_performance_text(value: str) -> str:
    text = value.replace("\u00a0", " ").strip().lower()
    text = text.replace("\u2032", "'").replace("\u2019", "'").replace("\u2018", "'")
    text = text.replace("\u2033", '"').replace("\u201d", '"').replace("\u201c", '"')
    return text


def _centis(token: str | None) -> float:
    if not token:
        return 0.0
    factor = 10 if len(token) == 1 else 100
    return int(token) / factor


def _parse_apostrophe_time(scope: str) -> float | None:
    match = _APOSTROPHE_TIME_RE.search(scope)
    if not match:
        return None
    hours, minutes, seconds, centis = match.groups()
    total = int(minutes) * 60 + int(seconds) + _centis(centis)
    if hours:
        total += int(hours) * 3600
    return total


def _parse_sub_minute_time(scope: str) -> float | None:
    match = _SUB_MINUTE_RE.search(scope)
    if not match:
        return None
    seconds, centis = match.groups()
    return int(seconds) + _centis(centis)


def _parse_colon_time(scope: str) -> float | None:
    match = _COLON_TIME_RE.search(scope)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    total = int(minutes) * 60 + float(seconds.replace(",", "."))
    if hours:
        total += int(hours) * 3600
    return total


def _parse_metric_mark(scope: str) -> float | None:
    match = _METRIC_MARK_RE.search(scope)
    if not match:
        return None
    metres, fraction = match.groups()
    return int(metres) + _centis(fraction)


def _parse_plain_number(scope: str) -> float | None:
    normalized = scope.replace("''", ".").replace('"', ".")
    normalized = _NON_NUMERIC_RE.sub("", normalized).replace(",", ".")
    if not normalized.strip(".-"):
        # Labels must not collapse to zero.
        return None
    if normalized.count(".") > 1:
        return None
    try:
        value = float(normalized)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


# ---------------------------------------------------------------------------
# Wind
# ---------------------------------------------------------------------------


def parse_wind_value(raw_wind: Any) -> float | None:
    """Signed wind reading in m/s, or None when missing or unreadable."""
    if raw_wind is None or isinstance(raw_wind, bool):
        return None
    if isinstance(raw_wind, (int, float)):
        return float(raw_wind) if math.isfinite(raw_wind) else None

    text = str(raw_wind).replace("\u00a0", " ").strip()
    text = text.replace(",", ".").replace("\u2212", "-").replace("\u2013", "-")
    text = _WIND_UNIT_RE.sub("", text)
    text = re.sub(r"^([+-])\s+", r"\1", text.strip())
    if not _SIGNED_NUMBER_RE.fullmatch(text):
        return None
    value = float(text)
    return value if math.isfinite(value) else None


def is_wind_legal(wind: float | None, limit: float = WIND_LEGAL_LIMIT) -> bool:
    """A result is wind-legal when the reading is missing or at most `limit`."""
    return wind is None or wind <= limit


# ---------------------------------------------------------------------------
# Entries and aggregation
# ---------------------------------------------------------------------------


def normalize_entry(
    entry: RawResultEntry,
    *,
    default_year: int | None = None,
) -> NormalizedPerformancePoint | None:
    """
    Turn one raw entry into a point.

    Degraded entries (no date, no numeric value) are kept. Only rows with
    neither a performance nor an event label are dropped.
    """
    raw_value = entry.performance if entry.performance is not None else ""
    if not raw_value.strip() and not (entry.event_label or "").strip():
        LOGGER.debug("Dropping empty result row (date=%r)", entry.date)
        return None

    timestamp = resolve_date(entry.date, entry.year_hint, default_year=default_year)
    numeric_value = parse_performance_value(raw_value)
    wind = parse_wind_value(entry.wind)

    if timestamp is None:
        LOGGER.debug("Unresolved date %r for %s", entry.date, entry.event_label)
    if numeric_value is None:
        LOGGER.debug("Non-numeric performance %r for %s", raw_value, entry.event_label)

    season = coerce_year(entry.year_hint)
    if season is None and timestamp is not None:
        season = timestamp.year

    return NormalizedPerformancePoint(
        event_label=entry.event_label,
        raw_value=raw_value,
        timestamp=timestamp,
        numeric_value=numeric_value,
        wind=wind,
        season=season,
        raw_date=entry.date,
        metadata=dict(entry.metadata),
    )


def sort_most_recent_first(
    points: Iterable[NormalizedPerformancePoint],
) -> tuple[NormalizedPerformancePoint, ...]:
    """Newest first; undated points sort as the oldest. Ties keep input order."""
    return tuple(sorted(points, key=_recency_key, reverse=True))


def _recency_key(point: NormalizedPerformancePoint) -> tuple[bool, datetime]:
    if point.timestamp is None:
        return (False, datetime.min.replace(tzinfo=timezone.utc))
    return (True, point.timestamp)


def _select_best(
    pools: Sequence[Sequence[NormalizedPerformancePoint]],
    direction: Direction,
) -> NormalizedPerformancePoint | None:
    # Pools are ordered most recent first, so the strict comparison keeps the
    # newest point on ties.
    for pool in pools:
        best: NormalizedPerformancePoint | None = None
        for point in pool:
            if point.numeric_value is None:
                continue
            if best is None or direction.is_better(point.numeric_value, best.numeric_value):
                best = point
        if best is not None:
            return best
    for pool in pools:
        if pool:
            return pool[0]
    return None


def aggregate_event(
    points: Iterable[NormalizedPerformancePoint],
    *,
    current_year: int,
    direction: Direction,
    wind_limit: float = WIND_LEGAL_LIMIT,
    event_label: str | None = None,
) -> EventAggregate:
    """
    Compute the record and season best for a single event.

    The record is the best wind-legal numeric value, falling back to every
    point when no legal one exists. The season best looks at `current_year`
    (legal points first) and falls back to the record. Points without a
    numeric value are only returned when no candidate has one.
    """
    ordered = sort_most_recent_first(points)
    legal = tuple(point for point in ordered if is_wind_legal(point.wind, wind_limit))
    label = event_label if event_label is not None else (ordered[0].event_label if ordered else "")

    season_all = tuple(point for point in ordered if point.season == current_year)
    season_legal = tuple(point for point in legal if point.season == current_year)

    return EventAggregate(
        event_label=label,
        direction=direction,
        current_year=current_year,
        all_points=ordered,
        legal_points=legal,
        best_legal_point=_select_best((legal, ordered), direction),
        best_current_season_point=_select_best((season_legal, season_all, legal, ordered), direction),
    )


def aggregate_events(
    entries: Iterable[RawResultEntry],
    *,
    current_year: int,
    directions: Mapping[str, Direction] | None = None,
    wind_limit: float = WIND_LEGAL_LIMIT,
    default_year: int | None = None,
) -> dict[str, EventAggregate]:
    """
    Normalise raw entries and aggregate them per event label, in first-seen order.

    Dates without a year or a year hint fall in `default_year`, or in
    `current_year` when no default is given.
    """
    if default_year is None:
        default_year = current_year
    grouped: dict[str, list[NormalizedPerformancePoint]] = {}
    for entry in entries:
        point = normalize_entry(entry, default_year=default_year)
        if point is None:
            continue
        grouped.setdefault(point.event_label, []).append(point)

    return {
        label: aggregate_event(
            points,
            current_year=current_year,
            direction=resolve_direction(label, directions),
            wind_limit=wind_limit,
            event_label=label,
        )
        for label, points in grouped.items()
    }
