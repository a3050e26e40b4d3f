from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from ffa_results.models import RawResultEntry
from ffa_results.normalizer import (
    FRENCH_MONTHS,
    is_wind_legal,
    month_index,
    normalize_entry,
    parse_performance_value,
    parse_wind_value,
    resolve_date,
)


def _noon(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, 12, tzinfo=timezone.utc)


MONTH_SPELLINGS = [
    ("janvier", 1), ("janv", 1), ("janv.", 1), ("jan", 1), ("Janvier", 1),
    ("février", 2), ("fevrier", 2), ("févr.", 2), ("fevr", 2), ("fév", 2), ("fev.", 2), ("FEV", 2),
    ("mars", 3), ("mar", 3), ("mar.", 3),
    ("avril", 4), ("avr", 4), ("avr.", 4),
    ("mai", 5),
    ("juin", 6),
    ("juillet", 7), ("juil", 7), ("juil.", 7),
    ("août", 8), ("aout", 8), ("Août", 8),
    ("septembre", 9), ("sept", 9), ("sept.", 9), ("sep", 9),
    ("octobre", 10), ("oct", 10), ("oct.", 10),
    ("novembre", 11), ("nov", 11), ("nov.", 11),
    ("décembre", 12), ("decembre", 12), ("déc", 12), ("dec.", 12), ("déc.", 12),
]


@pytest.mark.parametrize(("token", "month"), MONTH_SPELLINGS)
def test_day_month_dates_resolve_every_month_spelling(token: str, month: int) -> None:
    assert month_index(token) == month
    assert resolve_date(f"5 {token}", 2023) == _noon(2023, month, 5)


def test_month_lexicon_entries_are_all_reachable() -> None:
    for key, month in FRENCH_MONTHS.items():
        assert resolve_date(f"1 {key}", "2022") == _noon(2022, month, 1)


def test_day_month_date_uses_year_hint_strings_and_default_year() -> None:
    assert resolve_date("12 mars", "2024") == _noon(2024, 3, 12)
    assert resolve_date("12 mars", None, default_year=2019) == _noon(2019, 3, 12)
    assert resolve_date("12 mars", "saison", default_year=2019) == _noon(2019, 3, 12)
    assert resolve_date("12 mars", None) == _noon(date.today().year, 3, 12)


def test_day_month_date_with_explicit_year() -> None:
    assert resolve_date("3 juin 2021", 2024) == _noon(2021, 6, 3)


def test_day_month_date_accepts_french_ordinal() -> None:
    assert resolve_date("1er mai", 2024) == _noon(2024, 5, 1)
    assert resolve_date("1er janv. 2023", 2024) == _noon(2023, 1, 1)


@pytest.mark.parametrize("raw", ["32 mars", "0 mars", "12 foo", "30 fev", "mars"])
def test_invalid_day_month_dates_are_unresolved(raw: str) -> None:
    assert resolve_date(raw, 2024) is None


def test_numeric_dates_with_slash_or_hyphen() -> None:
    assert resolve_date("12/03/2024") == _noon(2024, 3, 12)
    assert resolve_date("12-03-24") == _noon(2024, 3, 12)
    assert resolve_date("1/7/23", 1999) == _noon(2023, 7, 1)
    assert resolve_date("31/02/2024") is None


def test_generic_dates_fall_back_to_pandas_parsing() -> None:
    assert resolve_date("2024-03-12") == _noon(2024, 3, 12)
    assert resolve_date("2024-03-12T08:30:00+02:00") == datetime(2024, 3, 12, 6, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("raw", ["invalid", "", "   ", None, "12"])
def test_unparseable_dates_never_raise(raw) -> None:
    assert resolve_date(raw, 2024) is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("42'59''", 42 * 60 + 59),
        ('12"34', 12.34),
        ("12''34", 12.34),
        ("11''45", 11.45),
        ("1:02.34", 62.34),
        ("1:02,34", 62.34),
        ("2:05:30", 2 * 3600 + 5 * 60 + 30),
        ("1'02''5", 62.5),
        ("1'02''50", 62.5),
        ("3'45\"12", 225.12),
        ("2h05'30''", 2 * 3600 + 5 * 60 + 30),
        ("42'59'' (41'16'')", 41 * 60 + 16),
        ("12''", 12.0),
        ("6m45", 6.45),
        ("6,45", 6.45),
        ("15.20", 15.2),
        ("1′02″34", 62.34),
        ("1’02''34", 62.34),
        ("2:05.3 (q)", 125.3),
        ("1'02'34", 62.34),
        ("4'05.32", 245.32),
        ("4'05,3", 245.3),
        ("123'45''", 123 * 60 + 45),
        (7.5, 7.5),
    ],
)
def test_parse_performance_value(raw, expected: float) -> None:
    assert parse_performance_value(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["DNF", "DSQ", "dq r168.7", "NM", "np", "AB", "", "   ", None, "-", "abc", "1.2.3"])
def test_non_numeric_performances_are_absent_not_zero(raw) -> None:
    assert parse_performance_value(raw) is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("+1.2", 1.2),
        ("-0,8 m/s", -0.8),
        ("1.5MS", 1.5),
        ("+ 0,3 m/s", 0.3),
        ("−1.1", -1.1),
        ("0", 0.0),
        (2, 2.0),
        (-0.4, -0.4),
    ],
)
def test_parse_wind_value(raw, expected: float) -> None:
    assert parse_wind_value(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["", "   ", None, "NC", "m/s", "vent", float("nan"), True])
def test_unreadable_wind_is_absent(raw) -> None:
    assert parse_wind_value(raw) is None


def test_wind_legality_boundary() -> None:
    assert is_wind_legal(2.0)
    assert not is_wind_legal(2.1)
    assert is_wind_legal(None)
    assert is_wind_legal(-3.5)
    assert not is_wind_legal(1.0, limit=0.5)


def test_normalize_entry_keeps_degraded_points() -> None:
    entry = RawResultEntry(date="invalid", performance="DSQ", event_label="400m", wind="")
    point = normalize_entry(entry)
    assert point is not None
    assert point.timestamp is None
    assert point.numeric_value is None
    assert point.raw_value == "DSQ"
    assert point.wind is None
    assert point.event_label == "400m"
    assert point.season is None


def test_normalize_entry_drops_only_rows_without_value_and_label() -> None:
    assert normalize_entry(RawResultEntry(date="12 mars", performance="  ", event_label=" ")) is None
    kept = normalize_entry(RawResultEntry(date="12 mars", performance="", event_label="100m", year_hint=2024))
    assert kept is not None
    assert kept.raw_value == ""
    assert kept.numeric_value is None
    assert kept.timestamp == _noon(2024, 3, 12)


def test_normalize_entry_season_prefers_year_hint() -> None:
    hinted = normalize_entry(RawResultEntry(date="12/03/2023", performance="11''5", event_label="100m", year_hint="2024"))
    unhinted = normalize_entry(RawResultEntry(date="12/03/2023", performance="11''5", event_label="100m"))
    assert hinted.season == 2024
    assert unhinted.season == 2023


def test_from_mapping_reads_ffa_row_shape() -> None:
    row = {
        "date": "03 juin",
        "performance": "11''20",
        "vent": "+2,3",
        "tour": "Finale",
        "place": "1",
        "niveau": "IR",
        "points": "900",
        "lieu": "Lyon",
    }
    entry = RawResultEntry.from_mapping(row, event_label="100m", year_hint="2024")
    assert entry.wind == "+2,3"
    assert entry.metadata["lieu"] == "Lyon"
    assert "performance" not in entry.metadata

    point = normalize_entry(entry)
    assert point.wind == pytest.approx(2.3)
    assert point.numeric_value == pytest.approx(11.2)
    assert point.to_dict()["lieu"] == "Lyon"


def test_from_mapping_prefers_anemometer_reading() -> None:
    entry = RawResultEntry.from_mapping({"performance": "7m02", "anemometre": "+1,0", "vent": "+3.0"}, event_label="Longueur")
    assert parse_wind_value(entry.wind) == pytest.approx(1.0)


def test_from_mapping_skips_unreadable_wind_keys() -> None:
    row = {"performance": "11''10", "anemometre": "NC", "vent": "+2,4"}
    entry = RawResultEntry.from_mapping(row, event_label="100m")

    assert entry.wind == "+2,4"
    assert entry.metadata["vent"] == "+2,4"
    point = normalize_entry(entry)
    assert not is_wind_legal(point.wind)


def test_from_mapping_keeps_raw_wind_when_none_is_readable() -> None:
    entry = RawResultEntry.from_mapping({"performance": "11''10", "vent": "NC"}, event_label="100m")

    assert entry.wind == "NC"
    assert normalize_entry(entry).wind is None
