"""
Result tables and the end-of-sweep summary.
"""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import pandas as pd
from rich.console import Console
from rich.table import Table

from mapbench.analysis import AnalysisRecord
from mapbench.engine import RunResult
from mapbench.layout import RunFolder
from mapbench.readmappers import Mapper
from mapbench.readmappers.floxer import read_stats

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "benchmark",
    "tag",
    "run",
    "mapper",
    "succeeded",
    "exit_status",
    "wall_clock_seconds",
    "user_cpu_seconds",
    "system_cpu_seconds",
    "peak_memory_kilobytes",
    "error",
]

ANALYSIS_COLUMNS = ["label", "kind", "succeeded", "exit_status", "missed_queries", "error"]


def floxer_stats(result: RunResult) -> dict[str, Any]:
    """floxer's own statistics of a successful run, prefixed with ``stats_``."""
    stats_path = RunFolder(result.folder).stats_path
    if not result.succeeded or result.run.mapper != Mapper.FLOXER.value or not stats_path.is_file():
        return {}
    try:
        return {f"stats_{k}": v for k, v in read_stats(stats_path).items()}
    except (OSError, tomllib.TOMLDecodeError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Could not read floxer stats {stats_path}: {e}")
        return {}


def results_frame(results: Sequence[RunResult]) -> pd.DataFrame:
    """One row per run, swept parameters and floxer stats appended as extra columns."""
    rows = []
    for result in results:
        metrics = result.resource_metrics
        row = {
            "benchmark": result.run.benchmark,
            "tag": result.run.tag,
            "run": result.folder.name,
            "mapper": result.run.mapper,
            "succeeded": result.succeeded,
            "exit_status": result.exit_status,
            "wall_clock_seconds": result.wall_clock_seconds,
            "user_cpu_seconds": None if metrics is None else metrics.user_cpu_seconds,
            "system_cpu_seconds": None if metrics is None else metrics.system_cpu_seconds,
            "peak_memory_kilobytes": None if metrics is None else metrics.peak_memory_kilobytes,
            "error": result.error,
        }
        for name, value in result.run.assignments:
            row[f"param_{name}"] = value.value if isinstance(value, Enum) else value
        row.update(floxer_stats(result))
        rows.append(row)

    df = pd.DataFrame(rows)
    if df.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    return df


def write_summary(results: Sequence[RunResult], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    results_frame(results).to_csv(path, sep="\t", index=False)
    return path


def analyses_frame(records: Sequence[AnalysisRecord]) -> pd.DataFrame:
    """One row per analysis invocation with the counts parsed from its output."""
    rows = []
    for record in records:
        row = {
            "label": record.label,
            "kind": record.kind,
            "succeeded": record.succeeded,
            "exit_status": record.exit_status,
            "missed_queries": len(record.missed_queries),
            "error": record.error,
        }
        row.update(record.summary)
        rows.append(row)

    df = pd.DataFrame(rows)
    if df.empty:
        return pd.DataFrame(columns=ANALYSIS_COLUMNS)
    return df


def write_analysis_summary(records: Sequence[AnalysisRecord], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    analyses_frame(records).to_csv(path, sep="\t", index=False)
    return path


def describe_analysis(record: AnalysisRecord) -> str:
    s = record.summary
    if not s:
        return ""
    if record.kind == "comparison":
        total = s["number_of_queries"]
        return (
            f"floxer mapped {s['floxer_mapped']}/{total}, "
            f"minimap mapped {s['minimap_mapped']}/{total}, "
            f"only minimap {s['floxer_unmapped_and_minimap_mapped']}"
        )
    return (
        f"{s['num_optimal_mapped']} optimal, {s['num_suboptimal_mapped']} suboptimal, "
        f"{s['num_unmapped']} not found"
    )


@dataclass
class BenchmarkOutcome:
    """Everything one benchmark produced during an invocation."""

    name: str
    results: list[RunResult] = field(default_factory=list)
    analyses: list[AnalysisRecord] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed_runs(self) -> list[RunResult]:
        return [r for r in self.results if not r.succeeded]

    @property
    def failed_analyses(self) -> list[AnalysisRecord]:
        return [a for a in self.analyses if not a.succeeded]

    @property
    def missed_queries(self) -> int:
        return sum(len(a.missed_queries) for a in self.analyses)

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed_runs and not self.failed_analyses


@dataclass
class SweepSummary:
    outcomes: list[BenchmarkOutcome] = field(default_factory=list)

    def add(self, outcome: BenchmarkOutcome) -> BenchmarkOutcome:
        self.outcomes.append(outcome)
        return outcome

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def num_failures(self) -> int:
        return sum(
            (o.error is not None) + len(o.failed_runs) + len(o.failed_analyses)
            for o in self.outcomes
        )

    def render(self, console: Optional[Console] = None) -> None:
        console = console or Console()

        table = Table(title="Benchmark Summary", show_header=True)
        table.add_column("Benchmark", style="cyan")
        table.add_column("Runs", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Analyses", justify="right")
        table.add_column("Missed Queries", justify="right")
        table.add_column("Status")

        for o in self.outcomes:
            if o.error is not None:
                status = f"[red]✗ {o.error}[/red]"
            elif o.ok:
                status = "[green]✓ OK[/green]"
            else:
                status = "[yellow]partial[/yellow]"
            table.add_row(
                o.name,
                str(len(o.results)),
                str(len(o.failed_runs)),
                f"{len(o.analyses) - len(o.failed_analyses)}/{len(o.analyses)}",
                str(o.missed_queries),
                status,
            )
        console.print(table)

        analyzed = [(o.name, a) for o in self.outcomes for a in o.analyses if a.summary]
        if analyzed:
            results_table = Table(title="Analysis Results", show_header=True)
            results_table.add_column("Benchmark", style="cyan")
            results_table.add_column("Analysis")
            results_table.add_column("Result")
            for name, record in analyzed:
                results_table.add_row(name, record.label, describe_analysis(record))
            console.print(results_table)

        for o in self.outcomes:
            for result in o.failed_runs:
                console.print(f"[red]✗[/red] {result.run.describe()}: {result.error}")
                if result.stderr_path is not None:
                    console.print(f"    [dim]stderr: {result.stderr_path}[/dim]")
            for record in o.failed_analyses:
                console.print(f"[red]✗[/red] analysis {record.label}: {record.error}")
            for record in o.analyses:
                if record.missed_queries:
                    console.print(
                        f"[yellow]![/yellow] {record.label}: missed {', '.join(record.missed_queries)}"
                    )
