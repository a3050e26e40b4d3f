from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from .env import get_env
from .models import Direction, ValidationError

DEFAULT_WIND_LIMIT = 2.0


@dataclass(frozen=True)
class AppConfig:
    wind_limit: float = DEFAULT_WIND_LIMIT
    current_year: int | None = None
    directions: Mapping[str, Direction] = field(default_factory=dict)


def _config_path() -> Path | None:
    """Resolve the TOML configuration file, if present."""
    env_override = get_env("CONFIG")
    if env_override:
        path = Path(env_override).expanduser()
        return path if path.exists() else None

    default_path = Path("config/ffa_results.toml")
    if default_path.exists():
        return default_path
    return None


def _load_toml(path: Path) -> Mapping[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _coerce_wind_limit(raw: Any) -> float:
    if raw is None or isinstance(raw, bool):
        return DEFAULT_WIND_LIMIT
    try:
        return float(raw)
    except (TypeError, ValueError):
        return DEFAULT_WIND_LIMIT


def _coerce_current_year(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _coerce_directions(raw: Any) -> dict[str, Direction]:
    if not isinstance(raw, Mapping):
        return {}
    directions: dict[str, Direction] = {}
    for label, value in raw.items():
        name = str(label).strip()
        if not name:
            continue
        try:
            directions[name] = Direction.from_text(str(value))
        except ValidationError as exc:
            raise ValidationError(f"[directions] entry {name!r}: {exc}") from exc
    return directions


def _build_config(raw: Mapping[str, Any]) -> AppConfig:
    wind_limit = _coerce_wind_limit(get_env("WIND_LIMIT") or raw.get("wind_limit"))
    current_year = _coerce_current_year(get_env("CURRENT_YEAR") or raw.get("current_year"))
    directions = _coerce_directions(raw.get("directions"))
    return AppConfig(wind_limit=wind_limit, current_year=current_year, directions=directions)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load configuration once, falling back to built-in defaults."""
    path = _config_path()
    data = _load_toml(path) if path else {}
    return _build_config(data)


def as_dict() -> dict[str, Any]:
    """Return the effective configuration for debug/CLI display."""
    config = get_config()
    return {
        "wind_limit": config.wind_limit,
        "current_year": config.current_year,
        "directions": {label: direction.value for label, direction in config.directions.items()},
        "source": str(_config_path() or "defaults"),
    }
