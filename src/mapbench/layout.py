"""
Output folder layout.

    <output_folder>/<benchmark>/<queries>_in_<reference>/<tag level>/<run folder>/

The tag level is ``untagged`` or ``tagged-<tag>``. The run folder spells out the
ordered parameter assignments (``thread_count=4+pex_seed_errors=2``) or is
``default`` for a run without swept axes. Path derivation is a pure function of
benchmark name, tag and assignments, so analysis-only mode finds the artifacts
of an earlier execution by recomputing the same paths.
"""

import os
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

from mapbench.expand import Assignment, ResolvedRun
from mapbench.params import scalar_kind

RUN_RECORD_NAME = "run_result.json"
MOST_RECENT_LINK = "most_recent"
DEFAULT_RUN_FOLDER = "default"
UNTAGGED = "untagged"

_SAFE = "-_."


def render_value(value) -> str:
    """Render a parameter value for use inside a folder name.

    The rendering is injective within each scalar kind; '+', '=' and '/' never
    survive unescaped.
    """
    kind = scalar_kind(value)
    if kind == "bool":
        return "true" if value else "false"
    if kind == "enum":
        return quote(str(value.value), safe=_SAFE)
    if kind == "int":
        return str(value)
    if kind == "float":
        return quote(repr(value), safe=_SAFE)
    return quote(value, safe=_SAFE)


def run_folder_name(assignments: Iterable[tuple[str, object]]) -> str:
    parts = [f"{name}={render_value(value)}" for name, value in assignments]
    return "+".join(parts) if parts else DEFAULT_RUN_FOLDER


def tag_folder_name(tag: Optional[str]) -> str:
    if tag is None:
        return UNTAGGED
    return "tagged-" + quote(tag, safe=_SAFE)


@dataclass(frozen=True)
class RunFolder:
    """Artifact paths of a single run."""

    path: Path

    def stdout_path(self, step: str) -> Path:
        return self.path / f"{step}.stdout"

    def stderr_path(self, step: str) -> Path:
        return self.path / f"{step}.stderr"

    def timing_path(self, step: str) -> Path:
        return self.path / f"{step}.timing.toml"

    @property
    def mapped_reads_bam_path(self) -> Path:
        return self.path / "mapped_reads.bam"

    @property
    def mapped_reads_sam_path(self) -> Path:
        return self.path / "mapped_reads.sam"

    @property
    def stats_path(self) -> Path:
        return self.path / "stats.toml"

    @property
    def logfile_path(self) -> Path:
        return self.path / "mapper.log"

    @property
    def artifact_paths(self) -> tuple[Path, ...]:
        """Files a mapper run may leave behind."""
        return (self.mapped_reads_bam_path, self.mapped_reads_sam_path, self.stats_path, self.logfile_path)

    @property
    def record_path(self) -> Path:
        return self.path / RUN_RECORD_NAME

    @property
    def is_complete(self) -> bool:
        return self.record_path.is_file()


class OutputLayout:
    """Derives every output path below one output folder for one dataset pair."""

    def __init__(self, output_folder: Path, input_tag: str) -> None:
        self.output_folder = Path(output_folder)
        self.input_tag = input_tag

    def benchmark_folder(self, benchmark_name: Union[str, Enum]) -> Path:
        name = getattr(benchmark_name, "value", benchmark_name)
        return self.output_folder / name / self.input_tag

    def tag_folder(self, benchmark_name: Union[str, Enum], tag: Optional[str]) -> Path:
        return self.benchmark_folder(benchmark_name) / tag_folder_name(tag)

    def path_for(
        self,
        benchmark_name: Union[str, Enum],
        tag: Optional[str],
        run_identity: Assignment,
    ) -> Path:
        """Folder of the run with the given ordered axis assignments."""
        return self.tag_folder(benchmark_name, tag) / run_folder_name(run_identity)

    def folder_for(self, run: ResolvedRun) -> RunFolder:
        return RunFolder(self.path_for(run.benchmark, run.tag, run.assignments))

    def analysis_folder(self, benchmark_name: Union[str, Enum], tag: Optional[str]) -> Path:
        return self.tag_folder(benchmark_name, tag) / "analysis"

    def plot_folder(self, benchmark_name: Union[str, Enum], tag: Optional[str]) -> Path:
        return self.tag_folder(benchmark_name, tag) / "plots"

    def summary_path(self, benchmark_name: Union[str, Enum], tag: Optional[str]) -> Path:
        return self.tag_folder(benchmark_name, tag) / "summary.tsv"

    def analysis_summary_path(self, benchmark_name: Union[str, Enum], tag: Optional[str]) -> Path:
        return self.analysis_folder(benchmark_name, tag) / "analysis_summary.tsv"

    @staticmethod
    def ensure(path: Path) -> Path:
        """Create a directory (and parents) if needed. Never removes anything."""
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def link_most_recent(self, benchmark_name: Union[str, Enum], tag: Optional[str]) -> Path:
        """Point ``<benchmark folder>/most_recent`` at the last executed tag level."""
        benchmark_folder = self.ensure(self.benchmark_folder(benchmark_name))
        link = benchmark_folder / MOST_RECENT_LINK
        tmp_link = benchmark_folder / f".{MOST_RECENT_LINK}.tmp"
        if tmp_link.is_symlink() or tmp_link.exists():
            tmp_link.unlink()
        os.symlink(tag_folder_name(tag), tmp_link)
        os.replace(tmp_link, link)
        return link
