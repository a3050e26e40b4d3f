from __future__ import annotations

import json
import logging
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Mapping

from .env import get_env

DEFAULT_RESULTS_FILE = Path("data") / "results.json"
LOGGER = logging.getLogger(__name__)


def results_file(override: Path | None = None) -> Path:
    """Resolve the results document: explicit path, then env, then ./data/results.json."""
    if override is not None:
        return override.expanduser()
    env_override = get_env("RESULTS_FILE")
    if env_override:
        return Path(env_override).expanduser()
    return DEFAULT_RESULTS_FILE


def load_results(source: Path | None = None) -> dict[str, dict[str, list[dict[str, Any]]]]:
    """
    Load a results document grouped by year and event.

    Accepts the fetcher's `{year: {event: [rows]}}` shape, the same wrapped in
    a `resultsByYear` key, or a flat list of rows carrying `year` and
    `epreuve`.
    """
    path = results_file(source)
    if not path.exists():
        raise FileNotFoundError(f"Results file not found: {path}")

    raw = path.read_text(encoding="utf-8").strip() or "{}"
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Could not parse {path}: {exc}") from exc

    if isinstance(payload, list):
        return _group_flat_rows(payload, path)
    if not isinstance(payload, dict):
        raise ValueError(f"{path} must contain a JSON object or list")
    if isinstance(payload.get("resultsByYear"), dict):
        payload = payload["resultsByYear"]

    results: dict[str, dict[str, list[dict[str, Any]]]] = {}
    for year, events in payload.items():
        if not isinstance(events, dict):
            raise ValueError(f"{path}: year {year!r} must map event labels to result lists")
        results[str(year)] = {str(label): list(rows or []) for label, rows in events.items()}
    LOGGER.debug("Loaded %s years of results from %s", len(results), path)
    return results


def _group_flat_rows(rows: list[Any], path: Path) -> dict[str, dict[str, list[dict[str, Any]]]]:
    grouped: dict[str, dict[str, list[dict[str, Any]]]] = {}
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise ValueError(f"{path}: row {index} must be a JSON object")
        year = str(row.get("year") or "").strip()
        label = str(row.get("epreuve") or "").strip()
        if not year:
            raise ValueError(f"{path}: row {index} is missing 'year'")
        grouped.setdefault(year, {}).setdefault(label, []).append(dict(row))
    return grouped


def save_json(target: Path, payload: Any) -> Path:
    """Write JSON atomically next to the target file."""
    target = target.expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, indent=2, ensure_ascii=False, default=str) + "\n"

    with NamedTemporaryFile("w", dir=target.parent, delete=False, encoding="utf-8") as tmp:
        tmp.write(text)
        temp_path = Path(tmp.name)
    temp_path.replace(target)
    return target
