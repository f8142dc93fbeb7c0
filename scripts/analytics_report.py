# ABOUTME: Provides a CLI that runs the success-prediction, learning, and integrity pipelines on exported tables.
# ABOUTME: Renders summaries as Rich tables and optionally writes the full result as JSON.

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from src.common.config import ScoringPolicy, load_policy
from src.common.data_source import AnalyticsComputationError, ParquetDataSource
from src.common.export import write_json
from src.integrity.report import generate_integrity_report
from src.success_risk.learning import run_learning_analytics
from src.success_risk.pipeline import run_success_prediction

console = Console()
app = typer.Typer(help="Score student success risk and academic integrity from platform exports.")

RISK_COLORS = {"LOW": "green", "MEDIUM": "yellow", "HIGH": "red"}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline progress.")) -> None:
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(message)s", handlers=[RichHandler(console=console)])


def _load_policy(config: Optional[Path]) -> ScoringPolicy:
    try:
        return load_policy(config)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc


@app.command()
def predict(
    data_dir: Path = typer.Option(..., "--data-dir", exists=True, file_okay=False, help="Directory of exported parquet tables."),
    time_range: int = typer.Option(90, "--time-range", help="Window length in days."),
    quiz_id: Optional[str] = typer.Option(None, "--quiz-id", help="Restrict attempts and messages to one quiz."),
    config: Optional[Path] = typer.Option(None, "--config", exists=True, dir_okay=False, help="Scoring policy YAML."),
    output: Optional[Path] = typer.Option(None, "--output", help="Write the full result as JSON."),
    top: int = typer.Option(20, "--top", help="Number of highest-risk students to display."),
) -> None:
    """
    Predict student success and list the students most at risk.
    """
    policy = _load_policy(config)
    typer.echo(f"[predict] Scoring students from {data_dir} over the last {time_range} days")
    try:
        result = run_success_prediction(ParquetDataSource(data_dir), time_range, quiz_id=quiz_id, policy=policy)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except AnalyticsComputationError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    summary = result.summary
    console.rule("[bold blue]Student Success Prediction[/bold blue]")
    console.print(
        f"[bold]Students:[/] {summary.total_students}  "
        f"[red]High:[/] {summary.high_risk_count}  "
        f"[yellow]Medium:[/] {summary.medium_risk_count}  "
        f"[green]Low:[/] {summary.low_risk_count}  "
        f"[bold]Avg success:[/] {summary.average_success_probability:.1f}%"
    )

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Student")
    table.add_column("Success %")
    table.add_column("Risk")
    table.add_column("Next quiz %")
    table.add_column("Risk factors")
    for prediction in result.predictions[:top]:
        color = RISK_COLORS.get(prediction.risk_level, "white")
        table.add_row(
            prediction.student_name,
            str(prediction.success_probability),
            f"[{color}]{prediction.risk_level}[/{color}]",
            str(prediction.next_quiz_success_rate),
            ", ".join(f.type for f in prediction.risk_factors) or "-",
        )
    console.print(table)

    correlation = result.cohort_insights.correlation
    console.print(f"[bold]Engagement vs performance:[/] r={correlation.value:.2f} ({correlation.strength})")
    for warning in result.early_warnings:
        color = RISK_COLORS.get(warning.severity, "white")
        console.print(f"[{color}]{warning.type}[/{color}] {warning.message}")

    if output is not None:
        write_json(result, output)
        typer.echo(f"[predict] Wrote result to {output}")


@app.command()
def learning(
    data_dir: Path = typer.Option(..., "--data-dir", exists=True, file_okay=False, help="Directory of exported parquet tables."),
    time_range: int = typer.Option(30, "--time-range", help="Window length in days."),
    quiz_id: Optional[str] = typer.Option(None, "--quiz-id", help="Restrict messages and attempts to one quiz."),
    config: Optional[Path] = typer.Option(None, "--config", exists=True, dir_okay=False, help="Scoring policy YAML."),
    output: Optional[Path] = typer.Option(None, "--output", help="Write the full result as JSON."),
) -> None:
    """
    Relate discussion activity to quiz scores and rate study-group effectiveness.
    """
    policy = _load_policy(config)
    typer.echo(f"[learning] Analyzing discussion activity from {data_dir} over the last {time_range} days")
    try:
        result = run_learning_analytics(ParquetDataSource(data_dir), time_range, quiz_id=quiz_id, policy=policy)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except AnalyticsComputationError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    summary = result.summary
    console.rule("[bold blue]Learning Analytics[/bold blue]")
    console.print(
        f"[bold]Active users:[/] {summary.total_users}  "
        f"[bold]Study messages:[/] {summary.total_messages}  "
        f"[bold]Avg messages per poster:[/] {summary.average_engagement:.1f}"
    )
    console.print(
        f"[bold]Messages vs score:[/] r={summary.correlation.value:.2f} ({summary.correlation.strength})"
    )

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Group")
    table.add_column("Members")
    table.add_column("Avg score")
    table.add_column("Pass rate")
    table.add_column("Msgs/member")
    for group in result.study_group_effectiveness:
        table.add_row(
            group.group_name or group.group_id,
            str(group.member_count),
            f"{group.average_score:.1f}",
            f"{group.pass_rate:.0%}",
            f"{group.messages_per_member:.1f}",
        )
    console.print(table)

    if output is not None:
        write_json(result, output)
        typer.echo(f"[learning] Wrote result to {output}")


@app.command()
def integrity(
    data_dir: Path = typer.Option(..., "--data-dir", exists=True, file_okay=False, help="Directory of exported parquet tables."),
    time_range: int = typer.Option(30, "--time-range", help="Window length in days."),
    quiz_id: Optional[str] = typer.Option(None, "--quiz-id", help="Restrict the report to one quiz."),
    user_id: Optional[str] = typer.Option(None, "--user-id", help="Restrict the report to one user."),
    config: Optional[Path] = typer.Option(None, "--config", exists=True, dir_okay=False, help="Scoring policy YAML."),
    output: Optional[Path] = typer.Option(None, "--output", help="Write the full report as JSON."),
) -> None:
    """
    Summarize flagged discussion activity into an academic-integrity report.
    """
    policy = _load_policy(config)
    typer.echo(f"[integrity] Analyzing flagged activity from {data_dir} over the last {time_range} days")
    try:
        report = generate_integrity_report(
            ParquetDataSource(data_dir), time_range, quiz_id=quiz_id, user_id=user_id, policy=policy
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except AnalyticsComputationError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    score = report.integrity_score
    console.rule("[bold blue]Academic Integrity Report[/bold blue]")
    console.print(f"[bold]Integrity score:[/] {score.score} ({score.level}) - {score.description}")
    console.print(f"[bold]Summary:[/] {report.summary.headline}")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("User")
    table.add_column("High")
    table.add_column("Medium")
    table.add_column("Low")
    table.add_column("Risk score")
    table.add_column("Risk")
    for assessment in report.user_risk_assessment:
        color = RISK_COLORS.get(assessment.risk_level, "white")
        table.add_row(
            assessment.user_name or assessment.user_id,
            str(assessment.violations.high),
            str(assessment.violations.medium),
            str(assessment.violations.low),
            f"{assessment.risk_score:.2f}",
            f"[{color}]{assessment.risk_level}[/{color}]",
        )
    console.print(table)

    if report.quiz_analysis is not None:
        quiz = report.quiz_analysis
        console.print(
            f"[bold]Quiz {quiz.quiz_title}:[/] {quiz.compromised_attempts}/{quiz.total_attempts} attempts compromised "
            f"(integrity {quiz.integrity_score:.1f})"
        )
    for recommendation in report.recommendations:
        console.print(f"  - {recommendation}")

    if output is not None:
        write_json(report, output)
        typer.echo(f"[integrity] Wrote report to {output}")


if __name__ == "__main__":
    app()
