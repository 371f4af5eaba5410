"""
Analysis dispatch.

After a sweep (or instead of it, in analysis-only mode) the collected run
artifacts are handed to the external analysis binaries:

- comparison benchmarks pair every candidate mapper run with the minimap run
  of the same configuration and invoke ``compare_aligner_outputs``
- runs on the simulated dataset are checked with ``<simulation tool> verify``

Both tools print TOML. Every invocation is recorded with its exit status,
output location and the counts parsed from that output. One failing
invocation never blocks the others.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import time
import tomllib
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from mapbench.config import SuiteConfig
from mapbench.engine import RunResult, terminate_process
from mapbench.layout import OutputLayout
from mapbench.readmappers import Mapper
from mapbench.readmappers.floxer import DEFAULT_ERROR_RATE

logger = logging.getLogger(__name__)

BASELINE_MAPPER = Mapper.MINIMAP.value
SIMULATED_REFERENCE = "simulated"
SIMULATED_QUERIES = ("simulated", "simulated_small")


# Counts reported in the general_stats table of compare_aligner_outputs
COMPARISON_COUNTS = (
    "number_of_queries",
    "both_mapped",
    "both_unmapped",
    "floxer_mapped",
    "floxer_unmapped",
    "minimap_mapped",
    "minimap_unmapped",
    "floxer_unmapped_and_minimap_mapped",
    "minimap_unmapped_and_floxer_mapped",
)


class MappingStatus(str, Enum):
    NOT_FOUND = "NotFound"
    FOUND_OPTIMAL = "FoundOptimal"
    FOUND_SUBOPTIMAL = "FoundSuboptimal"

    @classmethod
    def parse(cls, raw: Any) -> "MappingStatus":
        # FoundSuboptimal carries its details in a single-key table
        if isinstance(raw, dict) and len(raw) == 1:
            (raw,) = raw
        return cls(raw)


@dataclass(frozen=True)
class VerificationSummary:
    """Outcome of ``<simulation tool> verify`` for one run."""

    num_optimal_mapped: int
    suboptimal_mapped_queries: tuple[str, ...]
    unmapped_queries: tuple[str, ...]

    @classmethod
    def from_output(cls, data: dict[str, Any]) -> "VerificationSummary":
        optimal = 0
        suboptimal, unmapped = [], []
        for query in data.get("queries", []):
            status = MappingStatus.parse(query["status"])
            if status == MappingStatus.FOUND_OPTIMAL:
                optimal += 1
            elif status == MappingStatus.FOUND_SUBOPTIMAL:
                suboptimal.append(str(query["id"]))
            else:
                unmapped.append(str(query["id"]))
        return cls(optimal, tuple(suboptimal), tuple(unmapped))

    @property
    def missed_queries(self) -> tuple[str, ...]:
        return self.unmapped_queries + self.suboptimal_mapped_queries

    def counts(self) -> dict[str, int]:
        return {
            "num_optimal_mapped": self.num_optimal_mapped,
            "num_suboptimal_mapped": len(self.suboptimal_mapped_queries),
            "num_unmapped": len(self.unmapped_queries),
        }


def summarize_comparison(data: dict[str, Any]) -> dict[str, int]:
    general = data["general_stats"]
    return {key: int(general[key]) for key in COMPARISON_COUNTS}


@dataclass(frozen=True)
class AnalysisInvocation:
    label: str
    kind: str
    argv: tuple[str, ...]
    inputs: tuple[Path, ...]


@dataclass(frozen=True)
class AnalysisRecord:
    label: str
    kind: str
    argv: tuple[str, ...]
    exit_status: Optional[int]
    output_path: Optional[Path]
    stderr_path: Optional[Path]
    wall_clock_seconds: float = 0.0
    error: Optional[str] = None
    summary: dict[str, Any] = field(default_factory=dict)
    missed_queries: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.exit_status == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "kind": self.kind,
            "argv": list(self.argv),
            "exit_status": self.exit_status,
            "output": None if self.output_path is None else str(self.output_path),
            "stderr": None if self.stderr_path is None else str(self.stderr_path),
            "wall_clock_seconds": self.wall_clock_seconds,
            "error": self.error,
            "summary": self.summary,
            "missed_queries": list(self.missed_queries),
        }


def _is_simulated(result: RunResult) -> bool:
    inputs = result.run.inputs
    return (
        inputs is not None
        and inputs.reference == SIMULATED_REFERENCE
        and inputs.queries in SIMULATED_QUERIES
    )


def _comparison_key(result: RunResult) -> tuple:
    return tuple((k, v) for k, v in result.run.assignments if k != "mapper")


class AnalysisDispatcher:
    """Invokes the external analysis tools over collected run results."""

    def __init__(self, config: SuiteConfig, layout: OutputLayout) -> None:
        self.config = config
        self.layout = layout

    def plan(self, results: Sequence[RunResult], comparison: bool = False) -> list[AnalysisInvocation]:
        """Derive the analysis invocations for a set of run results.

        Parameters
        ----------
        results : sequence of RunResult
            Results of one benchmark and tag.
        comparison : bool
            Whether the benchmark compares mapper implementations.

        Returns
        -------
        list of AnalysisInvocation
            In run order; comparisons first, then dataset verifications.
        """
        usable = []
        for result in results:
            if result.succeeded:
                usable.append(result)
            else:
                logger.info(f"Not analyzing failed run {result.run.describe()}")

        invocations: list[AnalysisInvocation] = []
        if comparison:
            invocations.extend(self._plan_comparisons(usable))

        for result in usable:
            if _is_simulated(result):
                reads = result.mapped_reads_path
                invocations.append(AnalysisInvocation(
                    label=f"verify__{result.folder.name}",
                    kind="verification",
                    argv=(str(self.config.simulated_dataset_binary), "verify", "--alignments", str(reads)),
                    inputs=(reads,),
                ))
        return invocations

    def _plan_comparisons(self, results: Iterable[RunResult]) -> list[AnalysisInvocation]:
        groups: dict[tuple, list[RunResult]] = defaultdict(list)
        for result in results:
            groups[_comparison_key(result)].append(result)

        invocations = []
        for group in groups.values():
            baseline = next((r for r in group if r.run.mapper == BASELINE_MAPPER), None)
            candidates = [r for r in group if r.run.mapper != BASELINE_MAPPER]
            if baseline is None:
                for candidate in candidates:
                    logger.warning(
                        f"No successful {BASELINE_MAPPER} run to compare {candidate.run.describe()} against"
                    )
                continue

            for candidate in candidates:
                error_rate = candidate.run.get("query_error_rate", DEFAULT_ERROR_RATE)
                invocations.append(AnalysisInvocation(
                    label=f"{candidate.folder.name}__vs__{baseline.folder.name}",
                    kind="comparison",
                    argv=(
                        str(self.config.compare_aligner_outputs_binary),
                        "--new", str(candidate.mapped_reads_path),
                        "--reference", str(baseline.mapped_reads_path),
                        "--error-rate", str(error_rate),
                    ),
                    inputs=(candidate.mapped_reads_path, baseline.mapped_reads_path),
                ))
        return invocations

    def analyze(
        self,
        benchmark_name: str,
        tag: Optional[str],
        results: Sequence[RunResult],
        comparison: bool = False,
    ) -> list[AnalysisRecord]:
        """Run every planned analysis and persist the records.

        Records are also written to ``analysis/analysis_records.json``.
        """
        invocations = self.plan(results, comparison=comparison)
        if not invocations:
            return []

        analysis_folder = self.layout.ensure(self.layout.analysis_folder(benchmark_name, tag))
        records = [self._invoke(inv, analysis_folder) for inv in invocations]

        with open(analysis_folder / "analysis_records.json", "w") as f:
            json.dump([r.to_dict() for r in records], f, indent=2)

        failed = sum(not r.succeeded for r in records)
        if failed:
            logger.warning(f"{failed} of {len(records)} analysis invocation(s) failed for {benchmark_name}")
        return records

    def _invoke(self, invocation: AnalysisInvocation, analysis_folder: Path) -> AnalysisRecord:
        out_dir = self.layout.ensure(analysis_folder / invocation.label)
        output_path = out_dir / "output.toml"
        stderr_path = out_dir / "stderr.txt"

        if shutil.which(invocation.argv[0]) is None:
            return AnalysisRecord(invocation.label, invocation.kind, invocation.argv, None, None, None,
                                  error=f"binary not found: {invocation.argv[0]}")
        missing = [p for p in invocation.inputs if not p.exists()]
        if missing:
            return AnalysisRecord(invocation.label, invocation.kind, invocation.argv, None, None, None,
                                  error=f"missing input: {missing[0]}")

        logger.info(f"Analyzing {invocation.label}")
        error = None
        t0 = time.perf_counter()
        with open(output_path, "wb") as out, open(stderr_path, "wb") as err:
            try:
                proc = subprocess.Popen(invocation.argv, stdout=out, stderr=err, start_new_session=True)
            except OSError as e:
                return AnalysisRecord(invocation.label, invocation.kind, invocation.argv, None,
                                      output_path, stderr_path, error=f"could not start: {e}")
            try:
                exit_status = proc.wait(timeout=self.config.run_timeout_seconds)
            except subprocess.TimeoutExpired:
                terminate_process(proc)
                exit_status = proc.returncode
                error = f"timed out after {self.config.run_timeout_seconds:g}s"
            except BaseException:
                terminate_process(proc)
                raise
        wall_clock_seconds = time.perf_counter() - t0

        if error is None and exit_status != 0:
            error = f"{invocation.kind} exited with status {exit_status}"
            logger.warning(f"Analysis {invocation.label} failed: {error}")

        summary: dict[str, Any] = {}
        missed: tuple[str, ...] = ()
        if error is None:
            try:
                summary, missed = self._read_output(invocation, output_path)
            except (tomllib.TOMLDecodeError, KeyError, TypeError, ValueError) as e:
                error = f"unreadable {invocation.kind} output: {e}"
                logger.warning(f"Analysis {invocation.label} failed: {error}")

        return AnalysisRecord(
            label=invocation.label,
            kind=invocation.kind,
            argv=invocation.argv,
            exit_status=exit_status,
            output_path=output_path,
            stderr_path=stderr_path,
            wall_clock_seconds=wall_clock_seconds,
            error=error,
            summary=summary,
            missed_queries=missed,
        )

    def _read_output(
        self, invocation: AnalysisInvocation, output_path: Path
    ) -> tuple[dict[str, Any], tuple[str, ...]]:
        with open(output_path, "rb") as f:
            data = tomllib.load(f)

        if invocation.kind == "comparison":
            return summarize_comparison(data), ()

        verification = VerificationSummary.from_output(data)
        for query_id in verification.unmapped_queries:
            logger.warning(f"{invocation.label}: query {query_id} not found")
        for query_id in verification.suboptimal_mapped_queries:
            logger.warning(f"{invocation.label}: query {query_id} found suboptimally")
        return verification.counts(), verification.missed_queries
