from __future__ import annotations

from typing import Iterable, Mapping

import pandas as pd

from .models import Direction, EventAggregate, NormalizedPerformancePoint
from .normalizer import WIND_LEGAL_LIMIT, is_wind_legal

POINT_COLUMNS = [
    "event",
    "date",
    "season",
    "raw_date",
    "performance",
    "value",
    "wind",
    "wind_legal",
    "round",
    "place",
    "level",
    "points",
    "venue",
]


def points_to_dataframe(
    points: Iterable[NormalizedPerformancePoint],
    *,
    wind_limit: float = WIND_LEGAL_LIMIT,
) -> pd.DataFrame:
    """Normalise points into a pandas DataFrame, oldest first, undated rows last."""
    records: list[dict[str, object]] = []
    for point in points:
        metadata = point.metadata
        records.append(
            {
                "event": point.event_label,
                "date": pd.Timestamp(point.timestamp) if point.timestamp else pd.NaT,
                "season": point.season,
                "raw_date": point.raw_date or "",
                "performance": point.raw_value,
                "value": point.numeric_value if point.numeric_value is not None else float("nan"),
                "wind": point.wind if point.wind is not None else float("nan"),
                "wind_legal": is_wind_legal(point.wind, wind_limit),
                "round": metadata.get("tour") or "",
                "place": metadata.get("place") or "",
                "level": metadata.get("niveau") or "",
                "points": metadata.get("points") or "",
                "venue": metadata.get("lieu") or "",
            }
        )

    if not records:
        return pd.DataFrame(columns=POINT_COLUMNS)

    df = pd.DataFrame(records, columns=POINT_COLUMNS)
    df["value"] = df["value"].astype(float)
    df["wind"] = df["wind"].astype(float)
    df.sort_values(["event", "date"], inplace=True, na_position="last", kind="stable")
    df.reset_index(drop=True, inplace=True)
    return df


def aggregates_to_dataframe(
    aggregates: Mapping[str, EventAggregate],
    *,
    wind_limit: float = WIND_LEGAL_LIMIT,
) -> pd.DataFrame:
    points = [point for aggregate in aggregates.values() for point in aggregate.all_points]
    return points_to_dataframe(points, wind_limit=wind_limit)


def season_progression(
    aggregates: Mapping[str, EventAggregate],
    *,
    wind_limit: float = WIND_LEGAL_LIMIT,
) -> pd.DataFrame:
    """
    Best wind-legal value per event and season.

    The comparison direction of each event decides whether the minimum or the
    maximum value is kept. Points without a numeric value or a season are
    ignored.
    """
    columns = ["event", "season", "best_value", "results"]
    rows: list[dict[str, object]] = []
    for label, aggregate in aggregates.items():
        df = points_to_dataframe(aggregate.legal_points, wind_limit=wind_limit)
        df = df.dropna(subset=["value", "season"])
        if df.empty:
            continue
        how = "min" if aggregate.direction is Direction.LOWER_IS_BETTER else "max"
        grouped = (
            df.groupby("season")
            .agg(best_value=("value", how), results=("value", "count"))
            .reset_index()
        )
        for record in grouped.to_dict("records"):
            rows.append(
                {
                    "event": label,
                    "season": int(record["season"]),
                    "best_value": float(record["best_value"]),
                    "results": int(record["results"]),
                }
            )

    if not rows:
        return pd.DataFrame(columns=columns)
    progression = pd.DataFrame(rows, columns=columns)
    progression.sort_values(["event", "season"], inplace=True, kind="stable")
    progression.reset_index(drop=True, inplace=True)
    return progression


def build_export_dataframe(
    aggregates: Mapping[str, EventAggregate],
    *,
    wind_limit: float = WIND_LEGAL_LIMIT,
) -> pd.DataFrame:
    """Prepare a DataFrame ready for CSV/JSON export, flagging records and season bests."""
    df = aggregates_to_dataframe(aggregates, wind_limit=wind_limit)
    if df.empty:
        return df.assign(is_record=pd.Series(dtype=bool), is_season_best=pd.Series(dtype=bool))

    record_keys = {
        _point_key(aggregate.best_legal_point)
        for aggregate in aggregates.values()
        if aggregate.best_legal_point is not None
    }
    season_keys = {
        _point_key(aggregate.best_current_season_point)
        for aggregate in aggregates.values()
        if aggregate.best_current_season_point is not None
    }
    keys = list(zip(df["event"], df["raw_date"], df["performance"]))
    export_df = df.copy()
    export_df["is_record"] = [key in record_keys for key in keys]
    export_df["is_season_best"] = [key in season_keys for key in keys]
    export_df["date"] = export_df["date"].apply(lambda value: value.date().isoformat() if pd.notna(value) else "")
    return export_df


def _point_key(point: NormalizedPerformancePoint) -> tuple[str, str, str]:
    return (point.event_label, point.raw_date or "", point.raw_value)
