from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .config import AppConfig
from .disciplines import normalize_discipline, sanitize_event_key
from .models import (
    Direction,
    EventAggregate,
    NormalizedPerformancePoint,
    RawResultEntry,
    optional_text,
)
from .normalizer import aggregate_events, normalize_entry

LOGGER = logging.getLogger(__name__)

ResultsByYear = Mapping[str, Mapping[str, Sequence[Mapping[str, Any]]]]


@dataclass(frozen=True)
class ResultsReport:
    """Everything derived from one athlete's results document."""

    current_year: int
    wind_limit: float
    aggregates: dict[str, EventAggregate]
    summaries: list[dict[str, Any]]
    records_by_points: dict[str, dict[str, Any]]
    timeline: list[dict[str, Any]]

    @property
    def total_points(self) -> int:
        return sum(len(aggregate.all_points) for aggregate in self.aggregates.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentYear": self.current_year,
            "windLimit": self.wind_limit,
            "performances": self.summaries,
            "recordsByEvent": self.records_by_points,
            "events": {key: aggregate.to_dict() for key, aggregate in self.aggregates.items()},
            "performanceTimeline": self.timeline,
        }


def iter_year_events(results_by_year: ResultsByYear):
    """Yield (year, event label, rows) triples, skipping malformed sections."""
    for year, events in (results_by_year or {}).items():
        if not isinstance(events, Mapping):
            LOGGER.warning("Skipping year %r: expected a mapping of events, got %s", year, type(events).__name__)
            continue
        for label, rows in events.items():
            if not isinstance(rows, (list, tuple)):
                LOGGER.warning("Skipping %r/%r: expected a list of rows", year, label)
                continue
            yield str(year), str(label), [row for row in rows if isinstance(row, Mapping)]


def merge_results_by_year(results_by_year: ResultsByYear) -> dict[str, list[RawResultEntry]]:
    """
    Merge per-year results into one list of entries per event.

    Event labels are sanitised into storage-safe keys; each entry keeps its
    year as the date's year hint and the original label as `epreuveOriginal`.
    """
    merged: dict[str, list[RawResultEntry]] = {}
    for year, label, rows in iter_year_events(results_by_year):
        key = sanitize_event_key(label)
        for row in rows:
            payload = dict(row)
            payload.setdefault("epreuveOriginal", label)
            entry = RawResultEntry.from_mapping(payload, event_label=key, year_hint=year)
            merged.setdefault(key, []).append(entry)
    return merged


def records_by_points(results_by_year: ResultsByYear) -> dict[str, dict[str, Any]]:
    """
    Pick, per event, the row carrying the most federation points.

    A row with numeric points always replaces one without; when no row has
    points the first row seen is kept.
    """
    records: dict[str, dict[str, Any]] = {}
    for _, label, rows in iter_year_events(results_by_year):
        key = sanitize_event_key(label)
        for row in rows:
            points = _as_points(row.get("points"))
            current = records.get(key)
            if current is None:
                records[key] = dict(row)
                continue
            current_points = _as_points(current.get("points"))
            if points is not None and (current_points is None or points > current_points):
                records[key] = dict(row)
    return records


def build_performance_summaries(aggregates: Mapping[str, EventAggregate]) -> list[dict[str, Any]]:
    """Record and season-best strings per event, as shown on the athlete profile."""
    summaries: list[dict[str, Any]] = []
    for key, aggregate in aggregates.items():
        if aggregate.is_empty:
            continue
        record = aggregate.best_legal_point
        season_best = aggregate.best_current_season_point
        summaries.append(
            {
                "epreuve": _original_label(aggregate) or key,
                "record": record.raw_value if record else None,
                "recordValue": record.numeric_value if record else None,
                "bestSeason": season_best.raw_value if season_best else None,
                "bestSeasonValue": season_best.numeric_value if season_best else None,
            }
        )
    return summaries


def build_performance_timeline(
    results_by_year: ResultsByYear,
    *,
    discipline: str | None = None,
    default_year: int | None = None,
) -> list[dict[str, Any]]:
    """
    Flatten every event into chart-ready points, oldest first.

    Only rows with both a resolved date and a numeric value are charted.
    """
    wanted = normalize_discipline(discipline) if discipline else None
    rows: list[tuple[NormalizedPerformancePoint, dict[str, Any]]] = []
    for year, label, entries in iter_year_events(results_by_year):
        if wanted and normalize_discipline(label) != wanted:
            continue
        for row in entries:
            entry = RawResultEntry.from_mapping(row, event_label=label, year_hint=year)
            point = normalize_entry(entry, default_year=default_year)
            if point is None or point.timestamp is None or point.numeric_value is None:
                continue
            rows.append((point, _timeline_payload(point)))

    rows.sort(key=lambda item: item[0].timestamp)
    return [payload for _, payload in rows]


def build_results_report(
    results_by_year: ResultsByYear,
    *,
    current_year: int,
    config: AppConfig,
    discipline: str | None = None,
) -> ResultsReport:
    """Run the whole pipeline over one results document."""
    merged = merge_results_by_year(results_by_year)
    entries = [entry for event_entries in merged.values() for entry in event_entries]
    aggregates = aggregate_events(
        entries,
        current_year=current_year,
        directions=config.directions,
        wind_limit=config.wind_limit,
        default_year=current_year,
    )
    points_records = records_by_points(results_by_year)
    if discipline:
        wanted = normalize_discipline(discipline)
        aggregates = {
            key: aggregate
            for key, aggregate in aggregates.items()
            if wanted in {normalize_discipline(key), normalize_discipline(_original_label(aggregate))}
        }
        points_records = {key: row for key, row in points_records.items() if key in aggregates}

    LOGGER.info(
        "Aggregated %s events from %s years (current_year=%s)",
        len(aggregates),
        len(results_by_year or {}),
        current_year,
    )
    return ResultsReport(
        current_year=current_year,
        wind_limit=config.wind_limit,
        aggregates=aggregates,
        summaries=build_performance_summaries(aggregates),
        records_by_points=points_records,
        timeline=build_performance_timeline(
            results_by_year,
            discipline=discipline,
            default_year=current_year,
        ),
    )


def format_value(value: float | None, direction: Direction) -> str:
    """Display seconds as m:ss.cc for timed events, marks with two decimals."""
    if value is None:
        return "n/a"
    if direction is Direction.HIGHER_IS_BETTER:
        return f"{value:.2f}"
    minutes, seconds = divmod(round(value, 2), 60)
    hours, minutes = divmod(int(minutes), 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:05.2f}"
    if minutes:
        return f"{minutes}:{seconds:05.2f}"
    return f"{seconds:.2f}"


def render_summary_table(report: ResultsReport) -> str:
    """Render a fixed-width table of records and season bests."""
    headers = ("event", "results", "legal", "record", "record_date", "season_best", "season_date")
    rows = []
    for key, aggregate in report.aggregates.items():
        record = aggregate.best_legal_point
        season_best = aggregate.best_current_season_point
        rows.append(
            {
                "event": _original_label(aggregate) or key,
                "results": str(len(aggregate.all_points)),
                "legal": str(len(aggregate.legal_points)),
                "record": _display_point(record, aggregate.direction),
                "record_date": _display_date(record),
                "season_best": _display_point(season_best, aggregate.direction),
                "season_date": _display_date(season_best),
            }
        )
    widths = {key: len(key) for key in headers}
    for row in rows:
        for key in headers:
            widths[key] = max(widths[key], len(row[key]))

    def _format_line(values: Mapping[str, str]) -> str:
        return "  ".join(values[key].rjust(widths[key]) for key in headers)

    header_line = "  ".join(key.upper().rjust(widths[key]) for key in headers)
    body = "\n".join(_format_line(row) for row in rows)
    return "\n".join(filter(None, [header_line, body]))


def describe_meeting(metadata: Mapping[str, Any]) -> str:
    """Compose "<round> (<level>), vent <wind>" from whatever is present."""
    text = optional_text(metadata.get("tour")) or ""
    level = optional_text(metadata.get("niveau"))
    wind = optional_text(metadata.get("vent"))
    if level:
        text += f" ({level})"
    if wind:
        text += f", vent {wind}"
    return text.strip()


def _timeline_payload(point: NormalizedPerformancePoint) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "discipline": point.event_label,
        "date": point.timestamp.isoformat() if point.timestamp else None,
        "value": point.numeric_value,
        "meeting": describe_meeting(point.metadata),
    }
    city = optional_text(point.metadata.get("lieu"))
    if city:
        payload["city"] = city
    points = _as_points(point.metadata.get("points"))
    if points is not None:
        payload["points"] = int(points)
    return payload


def _display_point(point: NormalizedPerformancePoint | None, direction: Direction) -> str:
    if point is None:
        return "n/a"
    if point.numeric_value is None:
        return point.raw_value or "n/a"
    return format_value(point.numeric_value, direction)


def _display_date(point: NormalizedPerformancePoint | None) -> str:
    if point is None or point.timestamp is None:
        return "n/a"
    return point.timestamp.date().isoformat()


def _original_label(aggregate: EventAggregate) -> str:
    for point in aggregate.all_points:
        label = optional_text(point.metadata.get("epreuveOriginal"))
        if label:
            return label
    return aggregate.event_label


def _as_points(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip().replace(",", "."))
    except ValueError:
        return None
    return number if math.isfinite(number) else None
