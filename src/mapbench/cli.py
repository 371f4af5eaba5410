"""
Command line interface of the mapbench suite.
"""

from pathlib import Path
from typing import List, Optional
from typing_extensions import Annotated
import logging
import shlex
import signal

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from mapbench import __version__
from mapbench.config import (
    DEFAULT_CONFIG_FILE,
    CigarOutput,
    DatasetSelection,
    Queries,
    Reference,
    SuiteConfig,
    load_suite_config,
    setup_logging,
)
from mapbench.engine import Mode
from mapbench.errors import ConfigError, DefinitionError, UnknownBenchmarkError
from mapbench.layout import OutputLayout
from mapbench.readmappers import build_steps
from mapbench.registry import CATALOG, BenchmarkName, BenchmarkRegistry
from mapbench.runner import resolve_names, run_benchmarks

logger = logging.getLogger(__name__)

console = Console()

EXIT_FAILURES = 1
EXIT_CONFIG_ERROR = 2

app = typer.Typer(
    help="mapbench: parameterized benchmarks for read mappers.",
    add_completion=False,
)


def print_error(message: str, title: str = "Configuration Error") -> None:
    console.print(
        Panel(
            f"[red]Error:[/red] {message}",
            title=title,
            border_style="red",
        )
    )


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"mapbench {__version__}")
        raise typer.Exit()


def _raise_on_sigterm(signum, frame):
    raise SystemExit(128 + signum)


def print_catalog(registry: BenchmarkRegistry, tag: Optional[str]) -> None:
    table = Table(title="Benchmarks", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Runs", justify="right")
    table.add_column("Description", style="dim")

    for name in BenchmarkName:
        try:
            runs = str(len(registry.sweep(name, tag)))
        except DefinitionError as e:
            runs = f"[red]invalid: {e}[/red]"
        table.add_row(name.value, runs, CATALOG[name].description)
    console.print(table)


def print_dry_run(
    names: List[BenchmarkName],
    registry: BenchmarkRegistry,
    layout: OutputLayout,
    tag: Optional[str],
) -> None:
    """Show every run that would execute and its commands. Spawns nothing."""
    console.print(
        Panel(
            "[bold]Dry Run Mode[/bold]\n[dim]Expanding benchmarks without running them[/dim]",
            border_style="yellow",
        )
    )
    table = Table(show_header=True)
    table.add_column("Benchmark", style="cyan")
    table.add_column("Run Folder", style="dim")
    table.add_column("Commands")

    for name in names:
        try:
            sweep = registry.sweep(name, tag)
        except DefinitionError as e:
            table.add_row(name.value, "-", f"[red]invalid definition: {e}[/red]")
            continue
        for run in sweep:
            folder = layout.folder_for(run)
            try:
                commands = "\n".join(shlex.join(step.argv) for step in build_steps(run, folder))
            except ValueError as e:
                commands = f"[red]{e}[/red]"
            table.add_row(name.value, str(folder.path), commands)
    console.print(table)


@app.command()
def main_command(
    benchmarks: Annotated[
        Optional[List[BenchmarkName]],
        typer.Argument(
            help="Benchmarks to run. Runs all benchmarks if none are given.",
            show_default=False,
        )] = None,
    config_file: Annotated[
        Path,
        typer.Option("--config-file",
                     "-c",
                     help="Suite configuration file (TOML, or YAML by suffix)")] = DEFAULT_CONFIG_FILE,
    only_analysis: Annotated[
        bool,
        typer.Option("--only-analysis",
                     help=(
                         "Skip execution and analyze the results of a previous run. "
                         "Fails for benchmarks that were not executed before."
                     ))] = False,
    tag: Annotated[
        Optional[str],
        typer.Option("--tag",
                     help="Label separating repeated executions of the same benchmark")] = None,
    reference: Annotated[
        Reference,
        typer.Option("--reference",
                     help="Reference dataset the mappers are run against")] = Reference.HUMAN_GENOME_HG38,
    queries: Annotated[
        Queries,
        typer.Option("--queries",
                     help="Query reads to map")] = Queries.HUMAN_WGS_NANOPORE,
    cigar_output: Annotated[
        CigarOutput,
        typer.Option("--cigar-output",
                     help="Whether mappers write alignment (CIGAR) strings")] = CigarOutput.OFF,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run",
                     help="Print the expanded runs and their commands without running them")] = False,
    list_benchmarks: Annotated[
        bool,
        typer.Option("--list",
                     help="List the available benchmarks and exit")] = False,
    verbose: Annotated[
        int,
        typer.Option("--verbose",
                     "-v",
                     count=True,
                     help="Increase verbosity (-v for info, -vv for debug)")] = 0,
    log_file: Annotated[
        Optional[Path],
        typer.Option("--log-file",
                     help="Also write log messages to this file")] = None,
    version: Annotated[
        Optional[bool],
        typer.Option("--version",
                     callback=_version_callback,
                     is_eager=True,
                     help="Show the version and exit")] = None,
) -> None:
    """Run parameterized read mapper benchmarks and analyze their results."""
    setup_logging(verbose, log_file)

    try:
        config = load_suite_config(config_file)
        names = resolve_names(benchmarks)
    except (ConfigError, UnknownBenchmarkError) as e:
        print_error(str(e))
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    selection = DatasetSelection(reference=reference, queries=queries, cigar_output=cigar_output)
    registry = BenchmarkRegistry(config, selection)

    if list_benchmarks:
        print_catalog(registry, tag)
        return
    if dry_run:
        print_dry_run(names, registry, OutputLayout(config.output_folder, selection.input_tag), tag)
        return

    mode = Mode.ANALYSIS_ONLY if only_analysis else Mode.EXECUTE_AND_ANALYZE
    if mode == Mode.EXECUTE_AND_ANALYZE:
        try:
            config.validate_inputs(selection)
        except ConfigError as e:
            print_error(str(e))
            raise typer.Exit(code=EXIT_CONFIG_ERROR)

    exit_code = execute(names, config, selection, tag, mode)
    if exit_code:
        raise typer.Exit(code=exit_code)


def execute(
    names: List[BenchmarkName],
    config: SuiteConfig,
    selection: DatasetSelection,
    tag: Optional[str],
    mode: Mode,
) -> int:
    """Run the sweep, print the summary and return the process exit code."""
    config.setup()

    previous_handler = signal.signal(signal.SIGTERM, _raise_on_sigterm)
    try:
        summary = run_benchmarks(names, config, selection, tag=tag, mode=mode)
    finally:
        signal.signal(signal.SIGTERM, previous_handler)

    summary.render(console)
    if summary.ok:
        return 0
    logger.info(f"{summary.num_failures} failure(s) during this invocation")
    return EXIT_FAILURES


def main() -> None:
    """Entry point for the mapbench CLI."""
    app()


if __name__ == "__main__":
    main()
