"""Rendering and file helpers shared by the CLI commands."""

import json
from pathlib import Path
from typing import Any, Dict, List

import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..core.types import AnalysisResult, Experiment, Recommendation
from ..experiments.recommendation import OptimizationRecommendation

STATUS_COLORS = {
    "draft": "blue",
    "running": "yellow",
    "stopped": "magenta",
    "completed": "green",
}

RECOMMENDATION_COLORS = {
    Recommendation.IMPLEMENT_WINNER: "green",
    Recommendation.CONTINUE_TESTING: "yellow",
    Recommendation.INCONCLUSIVE: "white",
    Recommendation.STOP_TEST: "red",
}


def load_definition(file_path: str) -> Any:
    """Load a JSON or YAML document from disk."""
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    with open(path, "r") as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(f)
        return json.load(f)


def colored_status(status: str) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"


def analysis_to_dict(analysis: AnalysisResult) -> Dict[str, Any]:
    return analysis.model_dump(mode="json")


def render_analysis(console: Console, analysis: AnalysisResult) -> None:
    """Print an analysis as a summary panel plus a per-variant table."""
    color = RECOMMENDATION_COLORS.get(analysis.recommendation, "white")
    summary = (
        f"[bold]Experiment: {analysis.experiment_id}[/bold]\n"
        f"[cyan]Status:[/cyan] {colored_status(analysis.status.value)}\n"
        f"[cyan]Primary metric:[/cyan] {analysis.primary_metric or 'N/A'}\n"
        f"[cyan]Participants:[/cyan] {analysis.total_participants}\n"
        f"[cyan]Significant:[/cyan] {'yes' if analysis.statistical_significance else 'no'}\n"
        f"[cyan]Confidence:[/cyan] {analysis.confidence:.2f}%\n"
        f"[cyan]p-value:[/cyan] {analysis.p_value:.4f}\n"
        f"[cyan]Recommendation:[/cyan] [{color}]{analysis.recommendation.value}[/{color}]\n"
        f"[cyan]Winner:[/cyan] {analysis.winner or 'none'}"
    )
    if analysis.stop_reason:
        summary += f"\n[cyan]Stop reason:[/cyan] {analysis.stop_reason}"
    console.print(Panel.fit(summary, title="Experiment Results"))

    table = Table(title="Variant Performance")
    table.add_column("Variant", style="cyan", no_wrap=True)
    table.add_column("Participants", justify="right")
    table.add_column("Value", justify="right")
    table.add_column("95% CI", justify="right")
    table.add_column("Improvement", justify="right")
    table.add_column("p-value", justify="right")
    table.add_column("Significant", justify="center")

    for result in analysis.variant_results:
        name = result.variant_id
        if result.is_control:
            name += " (control)"
        if result.is_winner:
            name = f"[bold green]{name} *[/bold green]"
        lower, upper = result.confidence_interval
        table.add_row(
            name,
            str(result.participants),
            f"{result.value:.4f}",
            f"[{lower:.4f}, {upper:.4f}]",
            "-" if result.is_control else f"{result.improvement:+.2f}%",
            "-" if result.is_control else f"{result.p_value:.4f}",
            "-" if result.is_control else ("[green]yes[/green]" if result.is_significant else "no"),
        )
    console.print(table)

    if analysis.next_steps:
        console.print("[bold]Next steps:[/bold]")
        for step in analysis.next_steps:
            console.print(f"  • {step}")


def render_experiments(console: Console, experiments: List[Experiment]) -> None:
    """Print experiments as a table."""
    if not experiments:
        console.print("[yellow]No experiments found[/yellow]")
        return

    table = Table(title="Experiments")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Status")
    table.add_column("Variants", justify="right")
    table.add_column("Primary Metric", style="blue")
    table.add_column("Created", style="blue")
    table.add_column("Winner", style="green")

    for experiment in experiments:
        table.add_row(
            experiment.id,
            experiment.name,
            colored_status(experiment.status.value),
            str(len(experiment.variants)),
            experiment.primary_metric_name or "N/A",
            experiment.created_at.strftime("%Y-%m-%d %H:%M"),
            experiment.winner_variant_id or "-",
        )
    console.print(table)


def render_recommendations(console: Console, recommendations: List[OptimizationRecommendation]) -> None:
    """Print optimization recommendations."""
    if not recommendations:
        console.print("[yellow]No recommendations[/yellow]")
        return

    for recommendation in recommendations:
        console.print(Panel.fit(
            f"{recommendation.description}\n"
            f"[cyan]Priority:[/cyan] {recommendation.priority.value}  "
            f"[cyan]Confidence:[/cyan] {recommendation.confidence:.1f}%",
            title=recommendation.title,
        ))


def render_monitor_summary(console: Console, summary: Dict[str, Any]) -> None:
    console.print(f"[green]Checked {summary['checked']} running experiment(s)[/green]")
    for experiment_id, reason in summary["stopped"].items():
        console.print(f"  • Stopped {experiment_id}: {reason}")
    if summary["errors"]:
        console.print(f"[red]{summary['errors']} experiment(s) failed to check[/red]")


__all__ = [
    "load_definition",
    "render_analysis",
    "render_experiments",
    "render_recommendations",
    "render_monitor_summary",
]
