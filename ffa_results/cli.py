from __future__ import annotations

import json
import logging
import platform
from datetime import date, datetime, timezone
from functools import lru_cache
from importlib import metadata
from pathlib import Path
from typing import Any, Optional

import typer

from .config import AppConfig, as_dict as config_as_dict, get_config
from .disciplines import resolve_direction
from .env import get_env
from .models import Direction, ValidationError, coerce_year
from .normalizer import parse_performance_value, parse_wind_value, resolve_date
from .services import (
    ResultsReport,
    build_results_report,
    format_value,
    render_summary_table,
)
from .storage import load_results, results_file, save_json
from .tables import build_export_dataframe, season_progression

app = typer.Typer(help="Normalise FFA competition results into records, season bests and timelines.")


def _fail(message: str, *, code: int = 1) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _configure_logger(log_path: Path | None) -> logging.Logger:
    log = logging.getLogger("ffa_results")
    if log_path is None:
        return log
    log.setLevel(logging.DEBUG)
    log.propagate = False

    for handler in list(log.handlers):
        log.removeHandler(handler)

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    log.addHandler(handler)
    return log


def _resolve_current_year(value: Optional[str], config: AppConfig) -> int:
    if value is not None:
        year = coerce_year(value)
        if year is None:
            raise typer.BadParameter(f"expected a year such as 2024; received {value!r}.", param_hint="--current-year")
        return year
    if config.current_year is not None:
        return config.current_year
    return date.today().year


def _build_report(
    source: Optional[Path],
    *,
    current_year: Optional[str],
    event: Optional[str],
    wind_limit: Optional[float],
    log_path: Optional[Path],
) -> ResultsReport:
    log = _configure_logger(log_path)
    try:
        config = get_config()
    except ValidationError as exc:
        _fail(f"Invalid configuration: {exc}")
    if wind_limit is not None:
        config = AppConfig(
            wind_limit=wind_limit,
            current_year=config.current_year,
            directions=config.directions,
        )
    year = _resolve_current_year(current_year, config)

    try:
        results = load_results(source)
    except (FileNotFoundError, ValueError) as exc:
        _fail(f"Could not read results: {exc}")

    log.info("CLI report source=%s current_year=%s event=%s", results_file(source), year, event)
    return build_results_report(results, current_year=year, config=config, discipline=event)


SOURCE_OPTION = typer.Option(
    None,
    "--source",
    "-s",
    help="Results JSON ({year: {event: [rows]}}); defaults to FFA_RESULTS_RESULTS_FILE or data/results.json.",
)
CURRENT_YEAR_OPTION = typer.Option(
    None,
    "--current-year",
    "-y",
    help="Season used for season bests (defaults to config, then the calendar year).",
)
EVENT_OPTION = typer.Option(
    None,
    "--event",
    "-e",
    help="Only include this event label (case-insensitive).",
)
WIND_LIMIT_OPTION = typer.Option(
    None,
    "--wind-limit",
    help="Override the wind-legal limit in m/s (default 2.0).",
)
LOG_PATH_OPTION = typer.Option(
    None,
    "--log-path",
    help="Append normalisation diagnostics to this log file.",
)


@app.command()
def summary(
    source: Optional[Path] = SOURCE_OPTION,
    current_year: Optional[str] = CURRENT_YEAR_OPTION,
    event: Optional[str] = EVENT_OPTION,
    wind_limit: Optional[float] = WIND_LIMIT_OPTION,
    log_path: Optional[Path] = LOG_PATH_OPTION,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show per-season bests and FFA points records.",
    ),
) -> None:
    """
    Summarise records and season bests per event.

    Examples:
        ffa-results summary --source data/results.json --current-year 2024
        ffa-results summary --event 100m --wind-limit 2.0
    """
    report = _build_report(
        source,
        current_year=current_year,
        event=event,
        wind_limit=wind_limit,
        log_path=log_path,
    )
    if not report.aggregates:
        typer.echo("No results matched the provided filters.")
        raise typer.Exit(code=0)

    typer.echo(render_summary_table(report))
    typer.echo(
        f"Totals: {report.total_points} results across {len(report.aggregates)} events "
        f"(season {report.current_year}, wind limit +{report.wind_limit:.1f} m/s)."
    )
    if not verbose:
        return

    progression = season_progression(report.aggregates, wind_limit=report.wind_limit)
    for record in progression.to_dict("records"):
        aggregate = report.aggregates[record["event"]]
        typer.echo(
            f"Season {record['season']} [{record['event']}] best "
            f"{format_value(record['best_value'], aggregate.direction)} "
            f"({record['results']} legal results)."
        )
    for label, row in report.records_by_points.items():
        typer.echo(f"Points record [{label}] {row.get('performance')} ({row.get('points') or 'n/a'} pts).")


@app.command()
def timeline(
    source: Optional[Path] = SOURCE_OPTION,
    current_year: Optional[str] = CURRENT_YEAR_OPTION,
    event: Optional[str] = EVENT_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Print the timeline as JSON."),
) -> None:
    """
    List dated, numeric results oldest first.

    Example:
        ffa-results timeline --event 100m
    """
    report = _build_report(
        source,
        current_year=current_year,
        event=event,
        wind_limit=None,
        log_path=None,
    )
    if as_json:
        typer.echo(json.dumps(report.timeline, indent=2, ensure_ascii=False))
        return
    if not report.timeline:
        typer.echo("No dated results available.")
        raise typer.Exit(code=0)
    for point in report.timeline:
        direction = resolve_direction(point["discipline"], get_config().directions)
        line = f"{point['date'][:10]}  {point['discipline']}  {format_value(point['value'], direction)}"
        details = ", ".join(filter(None, [point.get("meeting"), point.get("city")]))
        typer.echo(f"{line}  {details}".rstrip())


@app.command()
def parse(
    performance: Optional[str] = typer.Option(None, "--performance", "-p", help="Performance text, e.g. \"42'59''\"."),
    raw_date: Optional[str] = typer.Option(None, "--date", "-d", help="Result date, e.g. '12 mars'."),
    year: Optional[str] = typer.Option(None, "--year", help="Year hint for dates without a year."),
    wind: Optional[str] = typer.Option(None, "--wind", "-w", help="Wind reading, e.g. '-0,8 m/s'."),
) -> None:
    """
    Show how single values are interpreted.

    Example:
        ffa-results parse --performance "11''45" --date "12 mars" --year 2024 --wind "+1,5"
    """
    if performance is None and raw_date is None and wind is None:
        raise typer.BadParameter("provide at least one of --performance, --date or --wind.")
    if performance is not None:
        value = parse_performance_value(performance)
        typer.echo(f"performance {performance!r} -> {value if value is not None else 'absent'}")
    if raw_date is not None:
        resolved = resolve_date(raw_date, year)
        typer.echo(f"date {raw_date!r} -> {resolved.isoformat() if resolved else 'unresolved'}")
    if wind is not None:
        reading = parse_wind_value(wind)
        typer.echo(f"wind {wind!r} -> {reading if reading is not None else 'absent'}")


@app.command()
def export(
    to: Path = typer.Option(
        Path("export"),
        "--to",
        "-t",
        help="Destination directory or base file name (default: export/).",
    ),
    source: Optional[Path] = SOURCE_OPTION,
    current_year: Optional[str] = CURRENT_YEAR_OPTION,
    event: Optional[str] = EVENT_OPTION,
    wind_limit: Optional[float] = WIND_LIMIT_OPTION,
    log_path: Optional[Path] = LOG_PATH_OPTION,
) -> None:
    """
    Export normalised results and the aggregate report.

    Examples:
        ffa-results export --to export/athlete --current-year 2024
    """
    report = _build_report(
        source,
        current_year=current_year,
        event=event,
        wind_limit=wind_limit,
        log_path=log_path,
    )
    df = build_export_dataframe(report.aggregates, wind_limit=report.wind_limit)
    if df.empty:
        typer.echo("No results available for export.")
        raise typer.Exit(code=0)

    generated_at = datetime.now(timezone.utc).isoformat()
    paths = _resolve_export_paths(to)
    paths["csv"].parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(paths["csv"], index=False)
    save_json(paths["report"], report.to_dict())
    save_json(
        paths["metadata"],
        _build_export_metadata(
            row_count=len(df),
            columns=list(df.columns),
            generated_at=generated_at,
            report=report,
            source=results_file(source),
        ),
    )

    typer.echo(f"Exported {len(df)} results to:")
    typer.echo(f" • CSV: {paths['csv']}")
    typer.echo(f" • Report: {paths['report']}")
    typer.echo(f" • Metadata: {paths['metadata']}")


@app.command()
def plot(
    output_dir: Path = typer.Option(Path("plots"), "--output-dir", "-o", help="Directory for PNG files."),
    source: Optional[Path] = SOURCE_OPTION,
    current_year: Optional[str] = CURRENT_YEAR_OPTION,
    event: Optional[str] = EVENT_OPTION,
) -> None:
    """
    Draw one progression chart per event.

    Example:
        ffa-results plot --event 100m --output-dir plots/
    """
    report = _build_report(
        source,
        current_year=current_year,
        event=event,
        wind_limit=None,
        log_path=None,
    )
    try:
        paths = _plot_timelines(report, output_dir)
    except RuntimeError as exc:
        _fail(str(exc), code=2)
    if not paths:
        typer.echo("No dated results available to plot.")
        raise typer.Exit(code=0)
    for path in paths:
        typer.echo(f"Saved {path}")


@app.command("config")
def config_show() -> None:
    """
    Show the effective configuration (wind limit, season, event directions).
    """
    try:
        config = config_as_dict()
    except ValidationError as exc:
        _fail(f"Invalid configuration: {exc}")
    typer.echo(f"Config source: {config.get('source')}")
    typer.echo(f"Wind limit: +{config.get('wind_limit')} m/s")
    typer.echo(f"Current year: {config.get('current_year') or 'calendar year'}")
    directions = config.get("directions") or {}
    if directions:
        typer.echo("Directions: " + ", ".join(f"{label}={value}" for label, value in sorted(directions.items())))


def _plot_timelines(report: ResultsReport, output_dir: Path) -> list[Path]:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover - exercised via CLI
        raise RuntimeError("matplotlib is required to generate plots.") from exc

    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    paths: list[Path] = []
    for key, aggregate in report.aggregates.items():
        points = [point for point in aggregate.timeline if point.numeric_value is not None]
        if not points:
            continue
        path = output_dir / f"{_slug(key)}_{timestamp}.png"
        fig, ax = plt.subplots()
        ax.plot(
            [point.timestamp.date() for point in points],
            [point.numeric_value for point in points],
            marker="o",
            linewidth=2,
        )
        ax.set_title(f"{key} progression")
        ax.set_xlabel("Date")
        ax.set_ylabel("Time (s)" if aggregate.direction is Direction.LOWER_IS_BETTER else "Mark")
        fig.autofmt_xdate()
        fig.tight_layout()
        fig.savefig(path, dpi=150)
        plt.close(fig)
        paths.append(path)
    return paths


def _slug(value: str) -> str:
    text = "".join(char if char.isalnum() else "_" for char in value.strip())
    return text.strip("_") or "event"


def _resolve_export_paths(target: Path) -> dict[str, Path]:
    target = target.expanduser()
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")

    if target.suffix in {".csv", ".json"}:
        base = target.with_suffix("")
        directory = base.parent
        stem = base.name
    elif target.suffix:
        directory = target.parent
        stem = target.stem
    else:
        directory = target
        stem = f"results_{timestamp}"

    return {
        "csv": directory / f"{stem}.csv",
        "report": directory / f"{stem}_report.json",
        "metadata": directory / f"{stem}_metadata.json",
    }


@lru_cache(maxsize=1)
def _app_version() -> str:
    try:
        return metadata.version("ffa-results")
    except metadata.PackageNotFoundError:  # pragma: no cover - local dev fallback
        return "0.0.0"


def _build_export_metadata(
    *,
    row_count: int,
    columns: list[str],
    generated_at: str,
    report: ResultsReport,
    source: Path,
) -> dict[str, Any]:
    return {
        "application": "ffa-results",
        "version": _app_version(),
        "generated_at": generated_at,
        "rows": row_count,
        "columns": columns,
        "current_year": report.current_year,
        "wind_limit": report.wind_limit,
        "events": list(report.aggregates),
        "source": str(source),
        "environment": {
            "python_version": platform.python_version(),
            "ffa_results_config": get_env("CONFIG"),
        },
    }


def main() -> None:
    app()


if __name__ == "__main__":
    main()
