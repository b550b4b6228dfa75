"""CLI for AggForge."""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from aggforge.config import get_settings
from aggforge.models.series import QueryResponse
from aggforge.models.target import QueryTarget
from aggforge.parser.loader import load_response, load_targets
from aggforge.store import QueryEngine

app = typer.Typer(
    name="aggforge",
    help="AggForge - time-series aggregation query CLI",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_engine() -> QueryEngine:
    return QueryEngine()


def _load(targets_file: Path) -> list[QueryTarget]:
    try:
        targets = load_targets(targets_file)
    except Exception as e:
        console.print(f"[red]Error loading targets: {e}[/red]")
        raise typer.Exit(1)

    if not targets:
        console.print("[yellow]No targets defined[/yellow]")
        raise typer.Exit(1)
    return targets


@app.command("compile")
def compile_targets(
    targets_file: Annotated[Path, typer.Argument(help="YAML or JSON file with query targets")],
    ndjson: Annotated[
        bool, typer.Option("--ndjson", "-n", help="Print the raw multi-search body")
    ] = False,
) -> None:
    """Show the multi-search request for a targets file."""
    targets = _load(targets_file)
    engine = get_engine()

    try:
        request = engine.build(targets)
    except Exception as e:
        console.print(f"[red]Compile error: {e}[/red]")
        raise typer.Exit(1)

    if ndjson:
        # plain echo, this is meant to be piped into curl
        typer.echo(request.encode(), nl=False)
        return

    for target, search in zip(targets, request.requests):
        console.print(f"[cyan]Target {target.ref_id}[/cyan] [dim]index={search.index}[/dim]")
        # round trip through the encoded body so the interval placeholders are filled in
        body = json.loads(search.encode_body())
        syntax = Syntax(json.dumps(body, indent=2), "json", theme="monokai", line_numbers=True)
        console.print(syntax)
        console.print()


@app.command()
def parse(
    targets_file: Annotated[Path, typer.Argument(help="YAML or JSON file with query targets")],
    response_file: Annotated[Path, typer.Argument(help="Raw multi-search response (JSON)")],
    output: Annotated[
        str, typer.Option("--output", "-o", help="Output format: table, json")
    ] = "table",
) -> None:
    """Parse a multi-search response into named series."""
    targets = _load(targets_file)
    engine = get_engine()

    try:
        raw = load_response(response_file)
        response = engine.parse(raw, targets)
    except Exception as e:
        console.print(f"[red]Parse error: {e}[/red]")
        raise typer.Exit(1)

    _output_result(response, output)

    # other targets still render, but the exit code should tell
    if response.errors:
        raise typer.Exit(1)


def _output_result(response: QueryResponse, output_format: str) -> None:
    """Output parsed series in the specified format."""
    if output_format == "json":
        typer.echo(json.dumps(response.model_dump(mode="json"), indent=2))
        return

    for ref_id, result in response.results.items():
        if result.error is not None:
            console.print(f"[yellow]Target {ref_id}: {result.error}[/yellow]")
            continue

        if not result.series:
            console.print(f"[yellow]Target {ref_id}: no series[/yellow]")
            continue

        table = Table(title=f"Target {ref_id} ({len(result.series)} series)")
        table.add_column("Series", style="cyan")
        table.add_column("Points", justify="right")
        table.add_column("Last")
        table.add_column("Last value", justify="right", style="green")

        for series in result.series:
            last = series.timestamps[-1].isoformat() if series.timestamps and series.timestamps[-1] else "-"
            value = series.values[-1] if series.values else None
            table.add_row(
                series.name,
                str(len(series)),
                last,
                "-" if value is None else f"{value:g}",
            )

        console.print(table)


@app.command()
def validate(
    targets_file: Annotated[Path, typer.Argument(help="YAML or JSON file with query targets")],
) -> None:
    """Validate that every target compiles."""
    targets = _load(targets_file)
    errors = get_engine().validate(targets)

    if errors:
        console.print("[red]Validation failed:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        raise typer.Exit(1)
    else:
        console.print(f"[green]Validated {len(targets)} targets successfully![/green]")


if __name__ == "__main__":
    app()
