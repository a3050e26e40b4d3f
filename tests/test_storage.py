from __future__ import annotations

import json

import pytest

from ffa_results.storage import DEFAULT_RESULTS_FILE, load_results, results_file, save_json


def test_load_results_reads_file_from_env(monkeypatch, tmp_path):
    results_path = tmp_path / "athlete.json"
    monkeypatch.setenv("FFA_RESULTS_RESULTS_FILE", str(results_path))
    payload = {"2024": {"100m": [{"date": "12 mars", "performance": "11''45"}]}}
    results_path.write_text(json.dumps(payload), encoding="utf-8")

    assert results_file() == results_path
    assert load_results() == payload


def test_results_file_defaults(monkeypatch, tmp_path):
    monkeypatch.delenv("FFA_RESULTS_RESULTS_FILE", raising=False)
    assert results_file() == DEFAULT_RESULTS_FILE
    assert results_file(tmp_path / "x.json") == tmp_path / "x.json"


def test_load_results_unwraps_results_by_year(tmp_path):
    results_path = tmp_path / "wrapped.json"
    results_path.write_text(
        json.dumps({"resultsByYear": {2023: {"Longueur": [{"performance": "6m45"}]}}}),
        encoding="utf-8",
    )

    assert load_results(results_path) == {"2023": {"Longueur": [{"performance": "6m45"}]}}


def test_load_results_groups_flat_rows(tmp_path):
    results_path = tmp_path / "flat.json"
    rows = [
        {"year": "2024", "epreuve": "100m", "performance": "11''45"},
        {"year": 2023, "epreuve": "100m", "performance": "11''60"},
        {"year": "2024", "epreuve": "100m", "performance": "11''20"},
    ]
    results_path.write_text(json.dumps(rows), encoding="utf-8")

    grouped = load_results(results_path)
    assert list(grouped) == ["2024", "2023"]
    assert [row["performance"] for row in grouped["2024"]["100m"]] == ["11''45", "11''20"]


def test_load_results_rejects_rows_without_year(tmp_path):
    results_path = tmp_path / "flat.json"
    results_path.write_text(json.dumps([{"epreuve": "100m", "performance": "11''45"}]), encoding="utf-8")

    with pytest.raises(ValueError, match="missing 'year'"):
        load_results(results_path)


def test_load_results_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_results(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="Could not parse"):
        load_results(broken)

    wrong_shape = tmp_path / "shape.json"
    wrong_shape.write_text(json.dumps({"2024": ["100m"]}), encoding="utf-8")
    with pytest.raises(ValueError, match="must map event labels"):
        load_results(wrong_shape)


def test_load_results_empty_file_is_empty_document(tmp_path):
    empty = tmp_path / "empty.json"
    empty.write_text("", encoding="utf-8")

    assert load_results(empty) == {}


def test_save_json_writes_atomically(tmp_path):
    target = tmp_path / "nested" / "report.json"
    save_json(target, {"epreuve": "Poids 5.000kg", "lieu": "Orléans"})

    assert json.loads(target.read_text(encoding="utf-8")) == {"epreuve": "Poids 5.000kg", "lieu": "Orléans"}
    assert "Orléans" in target.read_text(encoding="utf-8")
    assert [path.name for path in target.parent.iterdir()] == ["report.json"]
