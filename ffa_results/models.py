from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

WIND_KEYS = ("anemometre", "anemo", "vent", "wind")
METADATA_KEYS = ("tour", "place", "niveau", "points", "lieu")

__all__ = [
    "coerce_year",
    "optional_text",
    "Direction",
    "RawResultEntry",
    "NormalizedPerformancePoint",
    "EventAggregate",
    "ValidationError",
]


class ValidationError(ValueError):
    """Raised when user-supplied data cannot be normalised safely."""


class Direction(str, Enum):
    """Comparison direction of an event's numeric values."""

    LOWER_IS_BETTER = "lower"
    HIGHER_IS_BETTER = "higher"

    @classmethod
    def from_text(cls, value: str) -> "Direction":
        text = (value or "").strip().lower()
        aliases = {
            "lower": cls.LOWER_IS_BETTER,
            "time": cls.LOWER_IS_BETTER,
            "higher": cls.HIGHER_IS_BETTER,
            "mark": cls.HIGHER_IS_BETTER,
            "distance": cls.HIGHER_IS_BETTER,
            "points": cls.HIGHER_IS_BETTER,
        }
        try:
            return aliases[text]
        except KeyError as exc:
            raise ValidationError(
                f"direction must be 'lower' or 'higher'; received {value!r}."
            ) from exc

    def is_better(self, candidate: float, incumbent: float) -> bool:
        if self is Direction.LOWER_IS_BETTER:
            return candidate < incumbent
        return candidate > incumbent


def coerce_year(value: Any) -> int | None:
    """
    Interpret a year hint ("2024", 2024, " 2024 ") as an integer.

    Anything that is not a whole number, including booleans, yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if not text.isdigit():
        return None
    return int(text)


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class RawResultEntry:
    """One competition appearance exactly as the results source reported it."""

    date: Optional[str]
    performance: Optional[str]
    event_label: str
    wind: Optional[Any] = None
    year_hint: Optional[Any] = None
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_mapping(
        cls,
        payload: Mapping[str, Any],
        *,
        event_label: str | None = None,
        year_hint: Any = None,
    ) -> "RawResultEntry":
        """
        Build an entry from an FFA result row.

        Rows carry `date`, `performance`, `vent`, `tour`, `place`, `niveau`,
        `points` and `lieu`. Wind is taken from the first wind key whose value
        reads as a number, else from the first wind key present.
        """
        from .normalizer import parse_wind_value

        present = [payload[key] for key in WIND_KEYS if payload.get(key) is not None]
        readable = [value for value in present if parse_wind_value(value) is not None]
        wind = (readable or present or [None])[0]
        label = event_label if event_label is not None else payload.get("epreuve", "")
        hint = year_hint if year_hint is not None else payload.get("year")
        metadata = {
            key: value
            for key, value in payload.items()
            if key not in {"date", "performance", "year", "epreuve", *WIND_KEYS}
        }
        if wind is not None:
            metadata["vent"] = wind
        raw_date = payload.get("date")
        raw_performance = payload.get("performance")
        return cls(
            date=str(raw_date) if raw_date is not None else None,
            performance=str(raw_performance) if raw_performance is not None else None,
            event_label=str(label or ""),
            wind=wind,
            year_hint=hint,
            metadata=metadata,
        )


@dataclass(frozen=True)
class NormalizedPerformancePoint:
    """Typed, comparable view of a single result."""

    event_label: str
    raw_value: str
    timestamp: Optional[datetime] = None
    numeric_value: Optional[float] = None
    wind: Optional[float] = None
    season: Optional[int] = None
    raw_date: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    @property
    def is_dated(self) -> bool:
        return self.timestamp is not None

    @property
    def is_numeric(self) -> bool:
        return self.numeric_value is not None

    def to_dict(self) -> Dict[str, Any]:
        """Make the point JSON serialisable."""
        payload: Dict[str, Any] = {
            "discipline": self.event_label,
            "date": self.timestamp.isoformat() if self.timestamp else None,
            "rawDate": self.raw_date,
            "year": self.season,
            "value": self.numeric_value,
            "rawPerformance": self.raw_value,
        }
        if self.wind is not None:
            payload["wind"] = self.wind
        for key in METADATA_KEYS:
            value = self.metadata.get(key)
            if value not in (None, ""):
                payload[key] = value
        return payload


@dataclass(frozen=True)
class EventAggregate:
    """Record, season best and ordered history for one event label."""

    event_label: str
    direction: Direction
    current_year: int
    all_points: Tuple[NormalizedPerformancePoint, ...] = ()
    legal_points: Tuple[NormalizedPerformancePoint, ...] = ()
    best_legal_point: Optional[NormalizedPerformancePoint] = None
    best_current_season_point: Optional[NormalizedPerformancePoint] = None

    @property
    def timeline(self) -> Tuple[NormalizedPerformancePoint, ...]:
        """Dated points, oldest first."""
        return tuple(point for point in reversed(self.all_points) if point.is_dated)

    @property
    def is_empty(self) -> bool:
        return not self.all_points

    def to_dict(self) -> Dict[str, Any]:
        record = self.best_legal_point
        season_best = self.best_current_season_point
        return {
            "epreuve": self.event_label,
            "direction": self.direction.value,
            "currentYear": self.current_year,
            "record": record.to_dict() if record else None,
            "bestSeason": season_best.to_dict() if season_best else None,
            "points": len(self.all_points),
            "legalPoints": len(self.legal_points),
            "timeline": [point.to_dict() for point in self.timeline],
        }
