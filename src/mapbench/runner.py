"""
Sweep driver: registry, engine, dispatcher and reporting wired together.

Benchmarks are processed one after another, runs strictly in sweep order.
Problems that invalidate a whole benchmark (an invalid definition, missing
artifacts in analysis-only mode) abort only that benchmark; everything is
collected into a SweepSummary.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Callable, Optional, Union

from mapbench.analysis import AnalysisDispatcher
from mapbench.config import DatasetSelection, SuiteConfig
from mapbench.engine import ExecutionEngine, Mode
from mapbench.errors import DefinitionError, MissingArtifactsError
from mapbench.expand import ResolvedRun
from mapbench.layout import OutputLayout, RunFolder, tag_folder_name
from mapbench.plots import plot_resource_metrics
from mapbench.readmappers import Step, build_steps
from mapbench.registry import BenchmarkName, BenchmarkRegistry, parse_benchmark_name
from mapbench.report import BenchmarkOutcome, SweepSummary, write_analysis_summary, write_summary

logger = logging.getLogger(__name__)


def resolve_names(names: Optional[Iterable[Union[str, BenchmarkName]]]) -> list[BenchmarkName]:
    """Parse requested benchmark names; nothing requested means all of them.

    Duplicates are dropped, first occurrence wins.
    """
    if not names:
        return list(BenchmarkName)
    resolved: list[BenchmarkName] = []
    for name in names:
        key = parse_benchmark_name(name)
        if key not in resolved:
            resolved.append(key)
    return resolved


def run_benchmarks(
    names: Optional[Iterable[Union[str, BenchmarkName]]],
    config: SuiteConfig,
    selection: Optional[DatasetSelection] = None,
    tag: Optional[str] = None,
    mode: Mode = Mode.EXECUTE_AND_ANALYZE,
    step_builder: Callable[[ResolvedRun, RunFolder], list[Step]] = build_steps,
    plot: bool = True,
) -> SweepSummary:
    """Execute (or load) and analyze the requested benchmarks.

    Args:
        names: Benchmark names; empty or None selects the whole catalog
        config: Suite configuration
        selection: Datasets and output options of this invocation
        tag: Optional label separating repeated executions
        mode: Execute and analyze, or analyze stored results only
        step_builder: Turns a run into the child processes to spawn
        plot: Whether to draw resource plots

    Returns:
        SweepSummary with one outcome per requested benchmark

    Raises:
        UnknownBenchmarkError: If a requested name is not in the catalog
    """
    selection = selection if selection is not None else DatasetSelection()
    requested = resolve_names(names)

    registry = BenchmarkRegistry(config, selection)
    layout = OutputLayout(config.output_folder, selection.input_tag)
    engine = ExecutionEngine(config, layout, step_builder=step_builder)
    dispatcher = AnalysisDispatcher(config, layout)

    summary = SweepSummary()
    for name in requested:
        outcome = summary.add(BenchmarkOutcome(name.value))
        logger.info(f"Benchmark '{name.value}' ({mode.value})")

        try:
            definition = registry.lookup(name)
            sweep = registry.sweep(name, tag)
        except DefinitionError as e:
            logger.error(f"Benchmark '{name.value}' is invalid: {e}")
            outcome.error = f"invalid definition: {e}"
            continue

        try:
            for run in sweep:
                outcome.results.append(engine.execute(run, mode))
        except MissingArtifactsError as e:
            logger.error(f"Cannot analyze '{name.value}': {e}")
            outcome.error = str(e)
            continue

        outcome.analyses = dispatcher.analyze(
            name.value, tag, outcome.results, comparison=definition.is_comparison
        )
        write_summary(outcome.results, layout.summary_path(name, tag))
        if outcome.analyses:
            write_analysis_summary(outcome.analyses, layout.analysis_summary_path(name, tag))
        if plot:
            _plot(name, tag, outcome, config, layout)

    return summary


def _plot(
    name: BenchmarkName,
    tag: Optional[str],
    outcome: BenchmarkOutcome,
    config: SuiteConfig,
    layout: OutputLayout,
) -> None:
    copy_name = f"{name.value}__{layout.input_tag}__{tag_folder_name(tag)}.png"
    try:
        plot_resource_metrics(
            name.value,
            outcome.results,
            layout.plot_folder(name, tag) / "resource_metrics.png",
            copy_to=config.all_plots_folder() / copy_name,
        )
    except (OSError, ValueError, RuntimeError) as e:
        logger.warning(f"Could not plot resource metrics for '{name.value}': {e}")

