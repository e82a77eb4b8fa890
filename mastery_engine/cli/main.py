"""
Typer CLI for the mastery engine.

Commands:
    mastery reward              - Reward and calibration for a single answer
    mastery calibration         - Normalize a raw calibration score
    mastery schedule            - Next review date for a calibration score
    mastery record              - Record a graded response in the database
    mastery trend               - Trend metrics for a score sequence
    mastery transfer            - Knowledge transfer from a mastered topic
    mastery keystones           - Rank keystone topics in a graph file
    mastery evaluate            - Advance / maintain / review / regress decision
    mastery recalculate         - Replay stored histories into mastery records
    mastery irt calibrate       - Batch IRT calibration of stored responses
    mastery irt defaults        - Bloom-level default IRT parameters
    mastery db init             - Initialize database tables

Usage:
    mastery --help
    mastery reward --correct --confidence 5 --latency 20
    mastery schedule 0.6
    mastery calibration -- -1.5
    mastery transfer graph.json tcp 75
    mastery evaluate --level 3 --mastery 85 --attempts 8
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from mastery_engine.adaptive.progression import ProgressionEvaluator, ProgressionRules, UserProgress, load_progress
from mastery_engine.analytics.trend import TrendAnalyzer, scores_from_responses
from mastery_engine.core.calibration import (
    calibration_priority,
    calibration_score,
    calibration_status,
    normalize_calibration,
)
from mastery_engine.core.exceptions import MasteryEngineError
from mastery_engine.core.mastery import MasteryLevel
from mastery_engine.core.models import BLOOM_LEVEL_NAMES, Response, RetrievalMethod
from mastery_engine.core.rewards import compute_reward
from mastery_engine.db.database import init_db
from mastery_engine.db.store import SqlAlchemyRecordStore
from mastery_engine.graph.keystone import KeystoneScorer
from mastery_engine.graph.knowledge_transfer import KnowledgeTransferInferencer
from mastery_engine.graph.service import InMemoryTopicGraph
from mastery_engine.irt.defaults import GUESSING_BY_QUESTION_TYPE, adjust_for_question_type, get_default_parameters
from mastery_engine.jobs.irt_calibration import IRTCalibrationJob
from mastery_engine.jobs.mastery_recalculation import MasteryRecalculationJob, RecalculationScope
from mastery_engine.learning.mastery_tracker import MasteryTracker
from mastery_engine.study.spaced_repetition import (
    INTERVAL_TABLE_VERSION,
    INTERVAL_TIERS,
    describe_interval,
    format_time_until_review,
    schedule_next_review,
    select_tier,
)

app = typer.Typer(help="bloom-mastery-engine CLI: mastery, calibration and scheduling")
console = Console()


def _configure_logging(verbose: bool) -> None:
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Adaptive mastery estimation and scheduling engine."""
    _configure_logging(verbose)


def _load_graph(path: Path) -> InMemoryTopicGraph:
    try:
        return InMemoryTopicGraph.from_json_file(path)
    except MasteryEngineError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)


# ========================================
# SINGLE-RESPONSE COMMANDS
# ========================================


@app.command("reward")
def reward(
    correct: bool = typer.Option(..., "--correct/--incorrect", help="Whether the answer was correct"),
    confidence: int = typer.Option(3, "--confidence", "-c", min=1, max=5, help="Stated confidence (1-5)"),
    latency: float = typer.Option(0.0, "--latency", "-l", min=0.0, help="Seconds taken to answer"),
    method: RetrievalMethod | None = typer.Option(None, "--method", "-m", help="How the answer was retrieved"),
) -> None:
    """Compute reward and calibration for a single answer."""
    value = compute_reward(correct, confidence, latency)

    table = Table(title="Response Evaluation", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Reward", f"{value:+.2f}")

    if method is not None:
        raw = calibration_score(correct, confidence, method)
        normalized = normalize_calibration(raw)
        status = calibration_status(raw)
        table.add_row("Calibration (raw)", f"{raw:+.2f}")
        table.add_row("Calibration (normalized)", f"{normalized:.3f}")
        table.add_row("Status", f"[{status.color}]{status.label}[/{status.color}]")
        table.add_row("Next review in", describe_interval(select_tier(normalized).hours))

    console.print(table)


@app.command("calibration")
def calibration(raw: float = typer.Argument(..., help="Raw calibration score (-1.5 to 1.5)")) -> None:
    """Normalize a raw calibration score and show its status."""
    status = calibration_status(raw)
    normalized = normalize_calibration(raw)

    console.print(
        Panel(
            f"Normalized: [bold]{normalized:.3f}[/bold]\n"
            f"Priority:   {calibration_priority(raw):.3f}\n"
            f"Status:     [{status.color}]{status.label}[/{status.color}] - {status.description}",
            title=f"Calibration {raw:+.2f}",
            border_style=status.color,
        )
    )


@app.command("schedule")
def schedule(
    score: float = typer.Argument(..., help="Calibration score (normalized 0-1 unless --raw)"),
    raw: bool = typer.Option(False, "--raw", help="Treat the score as raw (-1.5 to 1.5)"),
    show_table: bool = typer.Option(False, "--table", help="Print the full interval table"),
) -> None:
    """Show the next review date for a calibration score."""
    normalized = normalize_calibration(score) if raw else score
    now = datetime.now(timezone.utc)
    tier = select_tier(normalized)
    next_review = schedule_next_review(normalized, now)

    rprint(
        f"[cyan]Tier:[/cyan] {tier.label} (>= {tier.threshold:.2f})\n"
        f"[cyan]Interval:[/cyan] {describe_interval(tier.hours)} ({tier.hours}h)\n"
        f"[cyan]Next review:[/cyan] {next_review.isoformat(timespec='minutes')} "
        f"({format_time_until_review(next_review, now)})"
    )

    if show_table:
        table = Table(title=f"Interval table {INTERVAL_TABLE_VERSION}")
        table.add_column("Threshold", justify="right")
        table.add_column("Hours", justify="right")
        table.add_column("Interval")
        table.add_column("Scenario", style="dim")
        for t in INTERVAL_TIERS:
            marker = "[bold green]" if t == tier else ""
            table.add_row(f"{marker}{t.threshold:.2f}", str(t.hours), describe_interval(t.hours), t.label)
        console.print(table)


@app.command("record")
def record(
    user_id: str = typer.Argument(..., help="Learner id"),
    topic_id: str = typer.Argument(..., help="Topic id"),
    level: int = typer.Option(1, "--level", min=1, max=6, help="Bloom level"),
    correct: bool = typer.Option(..., "--correct/--incorrect"),
    confidence: int = typer.Option(3, "--confidence", "-c", min=1, max=5),
    latency: float = typer.Option(0.0, "--latency", "-l", min=0.0),
    method: RetrievalMethod | None = typer.Option(None, "--method", "-m"),
    question_id: str | None = typer.Option(None, "--question", "-q"),
) -> None:
    """Record a graded response and update mastery in the database."""
    response = Response(
        user_id=user_id,
        topic_id=topic_id,
        bloom_level=level,
        is_correct=correct,
        confidence=confidence,
        latency_seconds=latency,
        retrieval_method=method,
        question_id=question_id,
    )
    tracker = MasteryTracker(SqlAlchemyRecordStore())
    try:
        update = tracker.record_response(response)
    except MasteryEngineError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    level_info = MasteryLevel.from_score(update.new_mastery)
    rprint(
        f"[green]✓[/green] {update.key}: mastery {update.old_mastery:.1f} -> "
        f"[{level_info.color}]{update.new_mastery:.1f}[/{level_info.color}] ({level_info.display_name})"
    )
    if update.schedule is not None:
        rprint(f"  Next review: {update.schedule.next_review_date.isoformat(timespec='minutes')}")


# ========================================
# ANALYTICS COMMANDS
# ========================================


@app.command("trend")
def trend(
    scores: list[float] | None = typer.Argument(None, help="Chronological scores"),
    user_id: str | None = typer.Option(None, "--user", help="Load history from the database"),
    topic_id: str | None = typer.Option(None, "--topic"),
) -> None:
    """Trend metrics (slope, std dev, R²) for a score sequence."""
    analyzer = TrendAnalyzer.from_settings()
    if user_id is not None:
        history = SqlAlchemyRecordStore().get_response_history(user_id, topic_id)
        values = scores_from_responses(history, analyzer.history_limit)
    else:
        values = list(scores or [])

    metrics, direction = analyzer.analyze_scores(values)

    table = Table(title=f"Calibration trend: {direction.value}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Points", str(metrics.count))
    table.add_row("Mean", f"{metrics.mean:.3f}")
    table.add_row("Std dev", f"{metrics.std_dev:.3f}")
    table.add_row("Slope", f"{metrics.slope:+.4f}")
    table.add_row("Intercept", f"{metrics.intercept:.3f}")
    table.add_row("R²", f"{metrics.r_squared:.3f}")
    console.print(table)


# ========================================
# GRAPH COMMANDS
# ========================================


@app.command("transfer")
def transfer(
    graph_file: Path = typer.Argument(..., help="JSON topic graph"),
    topic_id: str = typer.Argument(..., help="Mastered source topic"),
    mastery: float = typer.Argument(..., help="Mastery of the source topic (0-100)"),
) -> None:
    """Show knowledge transfer from a mastered topic to its neighbours."""
    settings = get_settings()
    inferencer = KnowledgeTransferInferencer.from_settings(_load_graph(graph_file), settings)
    inferred = inferencer.infer_transfer(topic_id, mastery)

    if not inferred:
        rprint(f"[yellow]No transfer[/yellow] (source mastery must be >= {settings.transfer_source_threshold:g})")
        return

    table = Table(title=f"Knowledge transfer from {topic_id} ({mastery:g}%)")
    table.add_column("Topic")
    table.add_column("Relationship", style="cyan")
    table.add_column("Boost", justify="right")
    for item in inferred:
        table.add_row(item.target_name, item.relationship.value, f"{item.boost:.2f}%")
    console.print(table)


@app.command("keystones")
def keystones(
    graph_file: Path = typer.Argument(..., help="JSON topic graph"),
    limit: int = typer.Option(10, "--limit", "-n", help="Topics to show"),
) -> None:
    """Rank topics by number of transitive dependents."""
    settings = get_settings()
    scorer = KeystoneScorer(_load_graph(graph_file), threshold=settings.keystone_dependent_threshold)

    table = Table(title="Keystone topics")
    table.add_column("Topic")
    table.add_column("Dependents", justify="right")
    table.add_column("Children", justify="right")
    table.add_column("Keystone")
    for score in scorer.top_keystones(limit):
        table.add_row(
            score.topic_id,
            str(score.dependent_count),
            str(score.child_count),
            "[green]yes[/green]" if score.is_keystone else "[dim]no[/dim]",
        )
    console.print(table)


# ========================================
# PROGRESSION
# ========================================


@app.command("evaluate")
def evaluate(
    level: int = typer.Option(1, "--level", min=1, max=6, help="Current Bloom level"),
    mastery: float = typer.Option(0.0, "--mastery", help="Mastery at the current level"),
    attempts: int = typer.Option(0, "--attempts", min=0, help="Attempts at the current level"),
    calibration_error: float = typer.Option(0.0, "--calibration-error", help="Mean calibration error (0-1)"),
    topic_id: str = typer.Option("topic", "--topic", help="Topic id"),
    user_id: str | None = typer.Option(None, "--user", help="Load progress from the database"),
    graph_file: Path | None = typer.Option(None, "--graph", help="JSON topic graph for transfer and keystones"),
) -> None:
    """Recommend whether to advance, maintain, review or regress."""
    settings = get_settings()
    graph = _load_graph(graph_file) if graph_file else None
    store = SqlAlchemyRecordStore() if user_id else None

    evaluator = ProgressionEvaluator(
        rules=ProgressionRules.from_settings(settings),
        transfer=KnowledgeTransferInferencer.from_settings(graph, settings) if graph else None,
        keystones=KeystoneScorer(graph, settings.keystone_dependent_threshold) if graph else None,
        store=store,
        history_limit=settings.calibration_history_limit,
    )

    history = None
    if store is not None:
        progress, history = load_progress(store, user_id, topic_id)
    else:
        progress = UserProgress(
            user_id="cli",
            topic_id=topic_id,
            current_bloom_level=level,
            total_attempts=attempts,
            mastery_scores={level: mastery},
            calibration_error=calibration_error,
        )

    decision = evaluator.evaluate(progress, history)
    color = {"advance": "green", "maintain": "cyan", "review": "yellow", "regress": "red"}[decision.action.value]
    target = f"Level {decision.target_level} ({BLOOM_LEVEL_NAMES[decision.target_level]})"

    console.print(
        Panel(
            f"[bold {color}]{decision.action.value.upper()}[/bold {color}] -> {target}\n"
            f"Confidence: {decision.confidence:.2f}\n"
            f"{decision.reason}",
            title=f"Progression: {progress.topic_id}",
            border_style=color,
        )
    )
    if decision.degraded:
        rprint("[yellow]Graph signals unavailable; decision made without them[/yellow]")


# ========================================
# BATCH COMMANDS
# ========================================


@app.command("recalculate")
def recalculate(
    user_id: str | None = typer.Option(None, "--user", help="Limit to one learner"),
    topic_id: str | None = typer.Option(None, "--topic", help="Limit to one topic"),
) -> None:
    """Replay stored response histories into mastery records."""
    job = MasteryRecalculationJob(SqlAlchemyRecordStore())
    try:
        summary = job.run(RecalculationScope(user_id=user_id, topic_id=topic_id))
    except MasteryEngineError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    status = "[green]✓[/green]" if summary.succeeded else "[yellow]![/yellow]"
    rprint(
        f"{status} Updated {summary.total_updated} records for {summary.users_processed} users "
        f"({summary.users_failed} users failed, {summary.keys_failed} keys failed)"
    )
    for error in summary.errors:
        rprint(f"  [red]{error['user_id']} {error['key']}[/red]: {error['error']}")


irt_app = typer.Typer(help="Item response theory parameters")
app.add_typer(irt_app, name="irt")


@irt_app.command("calibrate")
def irt_calibrate(
    question_ids: list[str] | None = typer.Option(None, "--question", "-q", help="Questions to calibrate"),
) -> None:
    """Calibrate IRT parameters from stored responses."""
    job = IRTCalibrationJob(SqlAlchemyRecordStore())
    try:
        summary = job.run(question_ids or None)
    except MasteryEngineError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    table = Table(title="IRT calibration")
    table.add_column("Question")
    table.add_column("n", justify="right")
    table.add_column("Users", justify="right")
    table.add_column("a", justify="right")
    table.add_column("b", justify="right")
    table.add_column("c", justify="right")
    table.add_column("Method")
    for params in summary.results:
        if params.is_empirical:
            a, b, c = f"{params.discrimination:.2f}", f"{params.difficulty:+.2f}", f"{params.guessing:.2f}"
        else:
            a = b = c = "-"
        table.add_row(
            params.question_id or "",
            str(params.sample_size),
            str(params.unique_user_count),
            a,
            b,
            c,
            params.calibration_method.value,
        )
    console.print(table)
    rprint(f"Calibrated {summary.calibrated}, skipped {summary.skipped}, persisted {summary.persisted}")


@irt_app.command("defaults")
def irt_defaults(
    level: int = typer.Argument(..., help="Bloom level (1-6)"),
    question_type: str | None = typer.Option(
        None, "--type", "-t", help=f"Question type ({', '.join(GUESSING_BY_QUESTION_TYPE)})"
    ),
) -> None:
    """Show default IRT parameters for a Bloom level."""
    params = adjust_for_question_type(get_default_parameters(level), question_type)
    rprint(f"a={params.discrimination:.2f} b={params.difficulty:+.2f} c={params.guessing:.2f}")


# ========================================
# DATABASE COMMANDS
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


if __name__ == "__main__":
    app()
