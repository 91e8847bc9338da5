"""
Validator Analytics: CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, import, scoring cycle, read query).
  5. Report result to stdout.

Install and run::

    pip install -e .
    validator-analytics --help
    validator-analytics init-db
    validator-analytics validate-config
    validator-analytics import-records --file data/raw/export.json
    validator-analytics run-scoring-cycle
    validator-analytics rankings --category overall --limit 20
    validator-analytics score-breakdown <vote_account>
    validator-analytics compare-cohorts --min-sample-size 5
    validator-analytics recommend <user_id> --count 10 --strategy maximize_yield
    validator-analytics start-scheduler --interval-minutes 60
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="validator-analytics",
    help="Validator scoring, ranking and delegation recommendation CLI.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None, db_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from validator_analytics.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        config = load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)

    if db_path:
        config = config.model_copy(
            update={"database": config.database.model_copy(update={"db_path": db_path})}
        )
    return config


def _configure_logging(config):
    """Set up logging from config."""
    from validator_analytics.utils.logging import configure_logging
    configure_logging(config.logging)


def _service(config):
    from validator_analytics.service import ValidatorAnalyticsService
    return ValidatorAnalyticsService(config)


_DB_PATH_HELP = "Override DB path from config (e.g. data/db/test.db)."
_CONFIG_HELP = "Path to TOML config file."


# ── Setup commands ────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times: all DDL uses IF NOT EXISTS.
    Also runs pending schema migrations.
    """
    from validator_analytics.db.database import Database
    from validator_analytics.db.schema import ALL_TABLE_NAMES
    from validator_analytics.errors import StorageUnavailableError

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    typer.echo(f"Initializing database at: {config.database.db_path}")
    Path(config.database.db_path).parent.mkdir(parents=True, exist_ok=True)
    try:
        migrations_applied = Database(config.database).initialize()
    except StorageUnavailableError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo(f"  Migrations applied: {migrations_applied}")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:     {config.database.db_path}")
    typer.echo(f"  Min epochs:        {config.gathering.min_epochs}")
    typer.echo(f"  Scoring weights:   {config.scoring.weights.as_dict()}")
    typer.echo(f"  Strategies:        {', '.join(config.recommendations.strategies)}")
    typer.echo(f"  Risk profiles:     {', '.join(config.recommendations.risk_profiles)}")
    typer.echo(f"  Cache TTL:         {config.recommendations.cache_ttl_seconds:.0f}s")
    typer.echo(f"  Cycle interval:    {config.scheduler.interval_minutes}m")
    typer.echo(f"  Log level:         {config.logging.level}")
    typer.echo(f"  Debug mode:        {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("import-records")
def import_records(
    records_file: str = typer.Option(
        ...,
        "--file",
        "-f",
        help="Path to a JSON export (validators, commission_history, performance, mev, profiles).",
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Import validator telemetry and user profiles from a JSON file.

    The file is validated as a whole; a rejected file writes nothing.
    Validators, MEV aggregates and profiles are upserted.
    """
    from validator_analytics.errors import StorageUnavailableError
    from validator_analytics.pipeline.import_records import ImportStage

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    path = Path(records_file)
    if not path.exists():
        typer.echo(f"[ERROR] Records file not found: {path}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Importing records from: {path}")
    try:
        run = ImportStage(config).run(path=path)
    except (ValueError, StorageUnavailableError) as exc:
        typer.echo(f"[ERROR] Import failed: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  Rows written: {run.rows_processed}")
    typer.echo(f"[OK] Import complete. run_slug={run.run_slug}")


# ── Scoring ───────────────────────────────────────────────────────────────────

@app.command("run-scoring-cycle")
def run_scoring_cycle(
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
    start_epoch: Optional[int] = typer.Option(None, "--start-epoch", help="First epoch of the window."),
    end_epoch: Optional[int] = typer.Option(None, "--end-epoch", help="Last epoch of the window."),
) -> None:
    """Gather, score and rank every validator, then publish one snapshot.

    On failure nothing is published and the previous snapshot stays current.
    Exits with code 1 on failure so the scheduler can log it.
    """
    from validator_analytics.models.features import EpochWindow
    from validator_analytics.pipeline.scoring_cycle import ScoringCycleStage

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    try:
        window = EpochWindow(start_epoch=start_epoch, end_epoch=end_epoch)
    except ValueError as exc:
        typer.echo(f"[ERROR] Invalid epoch window: {exc}", err=True)
        raise typer.Exit(code=1)

    try:
        run = ScoringCycleStage(config).run(window=window)
    except Exception as exc:
        typer.echo(f"[ERROR] Scoring cycle failed: {exc}", err=True)
        raise typer.Exit(code=1)

    if run.status == "skipped":
        typer.echo("[SKIPPED] No validators in storage; nothing published.")
        return
    typer.echo(f"  Validators scored: {run.rows_processed}")
    typer.echo(f"  Snapshot:          {run.snapshot_id}")
    typer.echo(f"[OK] Scoring cycle complete. run_slug={run.run_slug}")


# ── Read commands ─────────────────────────────────────────────────────────────

@app.command("rankings")
def rankings(
    category: str = typer.Option("overall", "--category", "-c", help="Ranking category."),
    limit: Optional[int] = typer.Option(20, "--limit", "-n", help="Max rows to show."),
    min_score: Optional[float] = typer.Option(None, "--min-score"),
    max_commission: Optional[float] = typer.Option(None, "--max-commission"),
    min_confidence: Optional[float] = typer.Option(None, "--min-confidence"),
    mev_only: bool = typer.Option(False, "--mev-only", help="Only MEV-enabled validators."),
    exclude_insufficient: bool = typer.Option(
        False, "--exclude-insufficient", help="Hide Insufficient Data validators."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Show a ranking from the latest published snapshot."""
    from validator_analytics.errors import StorageUnavailableError, ValidationError
    from validator_analytics.models.ranking import RankingFilters

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    filters = RankingFilters(
        min_score=min_score,
        max_commission=max_commission,
        min_confidence=min_confidence,
        mev_enabled=True if mev_only else None,
        exclude_insufficient_data=exclude_insufficient,
    )
    try:
        page = _service(config).get_validator_rankings(category, limit, filters)
    except (ValidationError, StorageUnavailableError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps([e.model_dump() for e in page.entries], indent=2, default=str))
        return
    if page.snapshot_id is None:
        typer.echo("No published rankings yet. Run: validator-analytics run-scoring-cycle")
        return

    typer.echo(
        f"Ranking '{page.category}' | snapshot {page.snapshot_id} | "
        f"{page.total_validators} validators | generated {page.generated_at}"
    )
    typer.echo(f"{'Rank':>5}  {'Validator':<46} {'Score':>6}  {'Grade':<17} {'Comm%':>6}")
    for e in page.entries:
        commission = f"{e.commission_rate:.1f}" if e.commission_rate is not None else "-"
        typer.echo(
            f"{e.rank:>5}  {e.validator_id:<46} {e.composite_score:>6.2f}  "
            f"{e.grade:<17} {commission:>6}"
        )


@app.command("score-breakdown")
def score_breakdown(
    validator_id: str = typer.Argument(..., help="Validator vote account."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Print sub-scores, composite, confidence and grade for one validator."""
    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    score = _service(config).get_validator_score_breakdown(validator_id)
    if score is None:
        typer.echo(f"[ERROR] No score for '{validator_id}' in the latest snapshot.", err=True)
        raise typer.Exit(code=1)
    typer.echo(score.model_dump_json(indent=2))


@app.command("compare-cohorts")
def compare_cohorts(
    min_sample_size: Optional[int] = typer.Option(
        None, "--min-sample-size", help="Minimum validators per cohort."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Compare MEV-enabled and standard validators in the latest snapshot."""
    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    comparison = _service(config).get_cohort_comparison(min_sample_size)
    typer.echo(json.dumps(comparison.summary(), indent=2, default=str, allow_nan=False))
    if not comparison.sufficient_sample:
        typer.echo(f"[WARN] {comparison.message}", err=True)
        return
    for insight in comparison.insights:
        typer.echo(f"  - {insight}")


@app.command("recommend")
def recommend(
    user_id: str = typer.Argument(..., help="User identifier."),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Number of validators."),
    strategy: Optional[str] = typer.Option(None, "--strategy", help="Strategy preset name."),
    risk_tolerance: Optional[str] = typer.Option(
        None, "--risk", help="conservative / balanced / aggressive."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Personalized delegation recommendations for a user."""
    from validator_analytics.errors import StorageUnavailableError, ValidationError
    from validator_analytics.models.recommendation import RecommendationOptions

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    options = RecommendationOptions(
        count=count, strategy=strategy, risk_tolerance=risk_tolerance
    )
    try:
        result = _service(config).get_personalized_recommendations(user_id, options)
    except (ValidationError, StorageUnavailableError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(result.model_dump_json(indent=2))


@app.command("start-scheduler")
def start_scheduler(
    interval_minutes: Optional[int] = typer.Option(
        None, "--interval-minutes", help="Minutes between scoring cycles."
    ),
    skip_initial: bool = typer.Option(
        False, "--skip-initial", help="Wait one interval before the first cycle."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help=_DB_PATH_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help=_CONFIG_HELP),
) -> None:
    """Run the scoring cycle on a fixed interval until interrupted."""
    from validator_analytics.scheduler import SchedulerDaemon

    config = _load_config_or_exit(config_path, db_path)
    _configure_logging(config)

    try:
        daemon = SchedulerDaemon(
            db_path=config.database.db_path,
            interval_minutes=interval_minutes or config.scheduler.interval_minutes,
            step_timeout_seconds=config.scheduler.step_timeout_seconds,
            skip_initial_run=skip_initial,
            config_path=config_path,
        )
    except RuntimeError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    daemon.start()


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
