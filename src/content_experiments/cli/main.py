"""Main CLI application for Content-Experiments."""

import asyncio
import json
from typing import Awaitable, Callable, Optional

import typer
from rich.console import Console
from rich.panel import Panel

from ..config import ConfigManager
from ..core.exceptions import ExperimentError
from ..core.types import ExperimentStatus
from ..experiments import ExperimentManager
from ..observability import setup_logging
from . import commands

# Initialize console for rich output
console = Console()

# Create main Typer app
app = typer.Typer(
    name="cxp",
    help="Content-Experiments - A/B and multivariate testing for content",
    add_completion=False,
)

# Global manager instance
_manager: Optional[ExperimentManager] = None
_config_file: Optional[str] = None


def get_experiment_manager() -> ExperimentManager:
    """Get or create the global experiment manager instance.

    The CLI runs one command per process, so the background monitor is
    disabled; use ``cxp monitor`` to run a check explicitly.
    """
    global _manager
    if _manager is None:
        config = ConfigManager()
        if _config_file:
            config.load_from_file(_config_file)
        config.set("scheduler.enabled", False)
        _manager = ExperimentManager(config)
    return _manager


def run_command(command: Callable[[ExperimentManager], Awaitable[None]], json_output: bool = False) -> None:
    """Run an async command against the manager and map failures to exit code 1."""
    async def _run():
        manager = get_experiment_manager()
        try:
            await command(manager)
        finally:
            await manager.shutdown()

    try:
        asyncio.run(_run())
    except typer.Exit:
        raise
    except ExperimentError as e:
        if json_output:
            console.print_json(data={"error": e.to_dict()})
        else:
            console.print(f"[red]Error: {e.message}[/red]")
            for violation in getattr(e, "violations", []):
                console.print(f"  • {violation}")
        raise typer.Exit(1)
    except Exception as e:
        if json_output:
            console.print_json(data={"error": str(e)})
        else:
            console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_file: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
):
    """Content-Experiments CLI."""
    global _config_file
    _config_file = config_file

    setup_logging(level="DEBUG" if verbose else "WARNING")

    # Store options in context for subcommands
    ctx.obj = {
        "config_file": config_file,
        "verbose": verbose,
    }


@app.command()
def create(
    definition_file: str = typer.Argument(..., help="JSON or YAML experiment definition"),
    auto_start: bool = typer.Option(False, "--start", help="Start the experiment right away"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Create an experiment from a definition file."""
    async def _create(manager: ExperimentManager):
        definition = commands.load_definition(definition_file)
        result = await manager.create_experiment(definition, auto_start=auto_start)

        if json_output:
            console.print_json(data={"experiment_id": result.experiment_id, "status": result.status.value})
        else:
            console.print(f"[green]Created experiment:[/green] {result.experiment_id}")
            console.print(f"[cyan]Status:[/cyan] {commands.colored_status(result.status.value)}")

    run_command(_create, json_output)


@app.command()
def start(experiment_id: str = typer.Argument(..., help="Experiment ID")):
    """Start a draft experiment."""
    async def _start(manager: ExperimentManager):
        await manager.start_experiment(experiment_id)
        console.print(f"[green]Started experiment:[/green] {experiment_id}")

    run_command(_start)


@app.command()
def stop(
    experiment_id: str = typer.Argument(..., help="Experiment ID"),
    reason: str = typer.Option("manual", "--reason", "-r", help="Why the experiment is stopped"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Stop a running experiment and show its final results."""
    async def _stop(manager: ExperimentManager):
        analysis = await manager.stop_experiment(experiment_id, reason)

        if json_output:
            console.print_json(data=commands.analysis_to_dict(analysis))
        else:
            console.print(f"[green]Stopped experiment:[/green] {experiment_id}")
            commands.render_analysis(console, analysis)

    run_command(_stop, json_output)


@app.command()
def complete(experiment_id: str = typer.Argument(..., help="Experiment ID")):
    """Archive a stopped experiment."""
    async def _complete(manager: ExperimentManager):
        await manager.complete_experiment(experiment_id)
        console.print(f"[green]Completed experiment:[/green] {experiment_id}")

    run_command(_complete)


@app.command()
def assign(
    experiment_id: str = typer.Argument(..., help="Experiment ID"),
    visitor_id: str = typer.Argument(..., help="Visitor ID"),
):
    """Assign a visitor to a variant and print the variant ID."""
    async def _assign(manager: ExperimentManager):
        variant_id = await manager.assign_visitor(experiment_id, visitor_id)
        console.print(variant_id)

    run_command(_assign)


@app.command()
def record(
    experiment_id: str = typer.Argument(..., help="Experiment ID"),
    variant_id: str = typer.Argument(..., help="Variant the visitor saw"),
    visitor_id: str = typer.Argument(..., help="Visitor ID"),
    metric: str = typer.Option("conversion_rate", "--metric", "-m", help="Success metric name"),
    value: float = typer.Option(1.0, "--value", help="Observed value"),
):
    """Record a conversion for a visitor."""
    async def _record(manager: ExperimentManager):
        await manager.record_conversion(experiment_id, variant_id, visitor_id, metric, value)
        console.print(f"[green]Recorded {metric}={value:g} for {visitor_id} on {variant_id}[/green]")

    run_command(_record)


@app.command()
def results(
    experiment_id: str = typer.Argument(..., help="Experiment ID"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Show the current statistical results of an experiment."""
    async def _results(manager: ExperimentManager):
        analysis = await manager.get_results(experiment_id)

        if json_output:
            console.print_json(data=commands.analysis_to_dict(analysis))
        else:
            commands.render_analysis(console, analysis)

    run_command(_results, json_output)


@app.command()
def recommendations(
    experiment_id: str = typer.Argument(..., help="Experiment ID"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Show optimization recommendations derived from an experiment."""
    async def _recommendations(manager: ExperimentManager):
        items = await manager.generate_optimization_recommendations(experiment_id)

        if json_output:
            console.print_json(data={"recommendations": [item.to_dict() for item in items]})
        else:
            commands.render_recommendations(console, items)

    run_command(_recommendations, json_output)


@app.command(name="list")
def list_experiments(
    status_filter: Optional[str] = typer.Option(
        None,
        "--status",
        help="Status filter (draft, running, stopped, completed)",
    ),
    limit: int = typer.Option(100, "--limit", help="Maximum number of experiments"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """List experiments, newest first."""
    async def _list(manager: ExperimentManager):
        status = ExperimentStatus(status_filter) if status_filter else None
        experiments = await manager.list_experiments(status=status, limit=limit)

        if json_output:
            console.print_json(data={"experiments": [e.model_dump(mode="json") for e in experiments]})
        else:
            commands.render_experiments(console, experiments)

    run_command(_list, json_output)


@app.command()
def multivariate(
    name: str = typer.Argument(..., help="Experiment name"),
    factors_file: str = typer.Argument(..., help="JSON or YAML list of {name, values} factors"),
    base_file: Optional[str] = typer.Option(
        None,
        "--base",
        "-b",
        help="Definition whose metrics and settings the generated experiment inherits",
    ),
    auto_start: bool = typer.Option(False, "--start", help="Start the experiment right away"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Create a multivariate experiment covering every factor combination."""
    async def _multivariate(manager: ExperimentManager):
        factors = commands.load_definition(factors_file)
        if isinstance(factors, dict):
            factors = factors.get("factors", [])
        base = commands.load_definition(base_file) if base_file else None

        result = await manager.generate_multivariate_test(name, factors, base, auto_start=auto_start)

        if json_output:
            console.print_json(data={"experiment_id": result.experiment_id, "status": result.status.value})
        else:
            console.print(f"[green]Created multivariate experiment:[/green] {result.experiment_id}")
            console.print(f"[cyan]Status:[/cyan] {commands.colored_status(result.status.value)}")

    run_command(_multivariate, json_output)


@app.command()
def monitor(json_output: bool = typer.Option(False, "--json", help="Output in JSON format")):
    """Run one monitoring pass over all running experiments."""
    async def _monitor(manager: ExperimentManager):
        summary = await manager.run_monitor_tick()

        if json_output:
            console.print_json(data=summary)
        else:
            commands.render_monitor_summary(console, summary)

    run_command(_monitor, json_output)


@app.command()
def config(
    ctx: typer.Context,
    action: str = typer.Argument(
        ...,
        help="Action to perform: show, validate, create-default",
    ),
    file_path: Optional[str] = typer.Option(
        None,
        "--file",
        "-f",
        help="Path to configuration file",
    ),
):
    """Manage configuration."""
    try:
        config_manager = ConfigManager()
        config_path = file_path or (ctx.obj or {}).get("config_file")

        if action == "show":
            if config_path:
                config_manager.load_from_file(config_path)

            console.print(Panel.fit(
                "[bold cyan]Current Configuration[/bold cyan]\n" +
                json.dumps(config_manager.get_all(), indent=2, default=str),
                title="Configuration"
            ))

        elif action == "validate":
            if config_path:
                config_manager.load_from_file(config_path)

            errors = config_manager.validate_config()

            if errors:
                console.print("[red]Configuration validation failed:[/red]")
                for error in errors:
                    console.print(f"  • {error}")
                raise typer.Exit(1)
            else:
                console.print("[green]Configuration is valid[/green]")

        elif action == "create-default":
            if not file_path:
                console.print("[red]Error: --file is required for create-default action[/red]")
                raise typer.Exit(1)

            config_manager.create_default_config(file_path)
            console.print(f"[green]Created default configuration file: {file_path}[/green]")

        else:
            console.print(f"[red]Unknown action: {action}[/red]")
            console.print("[cyan]Available actions: show, validate, create-default[/cyan]")
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    from .. import __version__
    console.print(f"[bold cyan]Content-Experiments[/bold cyan] v{__version__}")
    console.print("[dim]A/B and multivariate testing for content[/dim]")


if __name__ == "__main__":
    app()
