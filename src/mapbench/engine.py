"""
Execution engine.

Runs one ResolvedRun at a time: spawns the mapper steps as child processes,
redirects their output into the run folder, measures wall clock and resource
usage, and persists a RunResult record. A failing run is recorded and returned,
never raised, so the surrounding sweep keeps going.
"""

from __future__ import annotations

import json
import logging
import os
import resource
import shutil
import signal
import subprocess
import time
import tomllib
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from mapbench.config import SuiteConfig
from mapbench.errors import MissingArtifactsError
from mapbench.expand import ResolvedRun
from mapbench.layout import OutputLayout, RunFolder, run_folder_name
from mapbench.readmappers import Step, build_steps, mapped_reads_path

logger = logging.getLogger(__name__)

TIME_TOOL_FORMAT = """wall_clock_seconds = %e
user_cpu_seconds = %U
system_cpu_seconds = %S
peak_memory_kilobytes = %M"""

TERMINATE_GRACE_SECONDS = 10.0


class Mode(str, Enum):
    EXECUTE_AND_ANALYZE = "execute-and-analyze"
    ANALYSIS_ONLY = "analysis-only"


@dataclass(frozen=True)
class ResourceMetrics:
    wall_clock_seconds: float
    user_cpu_seconds: float
    system_cpu_seconds: float
    peak_memory_kilobytes: Optional[int] = None

    @classmethod
    def from_timing_file(cls, path: Path) -> "ResourceMetrics":
        """Parse the TOML-shaped output of GNU time with TIME_TOOL_FORMAT."""
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return cls(
            wall_clock_seconds=float(data["wall_clock_seconds"]),
            user_cpu_seconds=float(data["user_cpu_seconds"]),
            system_cpu_seconds=float(data["system_cpu_seconds"]),
            peak_memory_kilobytes=int(data["peak_memory_kilobytes"]),
        )

    @property
    def peak_memory_gibibytes(self) -> Optional[float]:
        if self.peak_memory_kilobytes is None:
            return None
        return self.peak_memory_kilobytes / 1024 ** 2


@dataclass(frozen=True)
class StepResult:
    name: str
    argv: tuple[str, ...]
    exit_status: Optional[int]
    stdout_path: Optional[Path]
    stderr_path: Optional[Path]
    wall_clock_seconds: float = 0.0
    resource_metrics: Optional[ResourceMetrics] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.exit_status == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "argv": list(self.argv),
            "exit_status": self.exit_status,
            "stdout": None if self.stdout_path is None else str(self.stdout_path),
            "stderr": None if self.stderr_path is None else str(self.stderr_path),
            "wall_clock_seconds": self.wall_clock_seconds,
            "resource_metrics": None if self.resource_metrics is None else asdict(self.resource_metrics),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepResult":
        metrics = data.get("resource_metrics")
        return cls(
            name=data["name"],
            argv=tuple(data["argv"]),
            exit_status=data["exit_status"],
            stdout_path=None if data.get("stdout") is None else Path(data["stdout"]),
            stderr_path=None if data.get("stderr") is None else Path(data["stderr"]),
            wall_clock_seconds=float(data.get("wall_clock_seconds", 0.0)),
            resource_metrics=None if metrics is None else ResourceMetrics(**metrics),
            error=data.get("error"),
        )


def _jsonable(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class RunResult:
    """Outcome of one run. Written once to ``run_result.json``, never updated."""

    run: ResolvedRun
    folder: Path
    steps: tuple[StepResult, ...]
    artifacts: tuple[Path, ...] = ()
    started_at: str = ""
    finished_at: str = ""

    @property
    def succeeded(self) -> bool:
        return bool(self.steps) and all(s.succeeded for s in self.steps)

    @property
    def failed_step(self) -> Optional[StepResult]:
        return next((s for s in self.steps if not s.succeeded), None)

    @property
    def exit_status(self) -> Optional[int]:
        failed = self.failed_step
        if failed is not None:
            return failed.exit_status
        return self.steps[-1].exit_status if self.steps else None

    @property
    def error(self) -> Optional[str]:
        failed = self.failed_step
        if failed is None:
            return None
        return failed.error or f"step '{failed.name}' exited with status {failed.exit_status}"

    @property
    def wall_clock_seconds(self) -> float:
        return sum(s.wall_clock_seconds for s in self.steps)

    @property
    def resource_metrics(self) -> Optional[ResourceMetrics]:
        """Metrics of the mapping step, the one benchmarks compare."""
        for step in reversed(self.steps):
            if step.name == "map":
                return step.resource_metrics
        return None

    @property
    def stdout_path(self) -> Optional[Path]:
        return self.steps[-1].stdout_path if self.steps else None

    @property
    def stderr_path(self) -> Optional[Path]:
        return self.steps[-1].stderr_path if self.steps else None

    @property
    def mapped_reads_path(self) -> Path:
        return mapped_reads_path(self.run, RunFolder(self.folder))

    def to_dict(self) -> dict[str, Any]:
        return {
            "benchmark": self.run.benchmark,
            "tag": self.run.tag,
            "run_folder": self.folder.name,
            "assignments": [[k, _jsonable(v)] for k, v in self.run.assignments],
            "parameters": {k: _jsonable(v) for k, v in self.run.parameters.items()},
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "succeeded": self.succeeded,
            "steps": [s.to_dict() for s in self.steps],
            "artifacts": [str(p) for p in self.artifacts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], run: ResolvedRun, folder: Path) -> "RunResult":
        return cls(
            run=run,
            folder=folder,
            steps=tuple(StepResult.from_dict(s) for s in data["steps"]),
            artifacts=tuple(Path(p) for p in data.get("artifacts", [])),
            started_at=data.get("started_at", ""),
            finished_at=data.get("finished_at", ""),
        )


def terminate_process(proc: subprocess.Popen) -> None:
    """Stop a child process group, escalating to SIGKILL after a grace period."""
    if proc.poll() is not None:
        return
    try:
        os.killpg(proc.pid, signal.SIGTERM)
    except ProcessLookupError:
        return
    try:
        proc.wait(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        proc.wait()


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


class ExecutionEngine:
    """Executes resolved runs sequentially, one child process at a time."""

    def __init__(
        self,
        config: SuiteConfig,
        layout: OutputLayout,
        step_builder: Callable[[ResolvedRun, RunFolder], list[Step]] = build_steps,
    ) -> None:
        self.config = config
        self.layout = layout
        self.step_builder = step_builder

    def execute(self, run: ResolvedRun, mode: Mode = Mode.EXECUTE_AND_ANALYZE) -> RunResult:
        """Execute a run, or load its record in analysis-only mode.

        Raises:
            MissingArtifactsError: In analysis-only mode, when no completed run
                exists at the expected path
        """
        if mode == Mode.ANALYSIS_ONLY:
            return self.load(run)

        folder = self.layout.folder_for(run)
        self.layout.ensure(folder.path)
        # neither a stale record nor stale artifacts may outlive this execution
        folder.record_path.unlink(missing_ok=True)
        for stale in folder.artifact_paths:
            stale.unlink(missing_ok=True)

        started_at = _now()
        logger.info(f"Running {run.describe()}")

        try:
            steps = self.step_builder(run, folder)
        except ValueError as e:
            step_results = [StepResult("setup", (), None, None, None, error=str(e))]
        else:
            step_results = []
            for step in steps:
                result = self._run_step(step, folder)
                step_results.append(result)
                if not result.succeeded:
                    break

        artifacts = tuple(
            p for p in (mapped_reads_path(run, folder), folder.stats_path, folder.logfile_path)
            if p.exists()
        )
        run_result = RunResult(
            run=run,
            folder=folder.path,
            steps=tuple(step_results),
            artifacts=artifacts,
            started_at=started_at,
            finished_at=_now(),
        )
        self._write_record(run_result, folder)
        self.layout.link_most_recent(run.benchmark, run.tag)

        if run_result.succeeded:
            logger.info(f"Finished {run.describe()} in {run_result.wall_clock_seconds:.2f}s")
        else:
            logger.warning(f"Run {run.describe()} failed: {run_result.error}")
        return run_result

    def load(self, run: ResolvedRun) -> RunResult:
        """Load the RunResult of a previous execution of this run."""
        folder = self.layout.folder_for(run)
        if not folder.path.is_dir():
            raise MissingArtifactsError(folder.path, "no output from a previous execution")
        if not folder.is_complete:
            raise MissingArtifactsError(folder.record_path, "run did not complete")

        try:
            with open(folder.record_path) as f:
                data = json.load(f)
            if data["benchmark"] != run.benchmark or data["run_folder"] != run_folder_name(run.assignments):
                raise ValueError("record belongs to a different run")
            return RunResult.from_dict(data, run, folder.path)
        except (OSError, KeyError, TypeError, ValueError) as e:
            raise MissingArtifactsError(folder.record_path, f"unreadable run record ({e})") from e

    def _write_record(self, run_result: RunResult, folder: RunFolder) -> None:
        tmp_path = folder.record_path.with_name(folder.record_path.name + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(run_result.to_dict(), f, indent=2)
        os.replace(tmp_path, folder.record_path)

    def _run_step(self, step: Step, folder: RunFolder) -> StepResult:
        stdout_path = folder.stdout_path(step.name)
        stderr_path = folder.stderr_path(step.name)
        timing_path = folder.timing_path(step.name)
        timing_path.unlink(missing_ok=True)

        if not step.argv or shutil.which(step.argv[0]) is None:
            program = step.argv[0] if step.argv else "<empty command>"
            return StepResult(step.name, step.argv, None, None, None,
                              error=f"binary not found: {program}")

        argv = list(step.argv)
        time_binary = self.config.time_binary
        if time_binary is not None:
            argv = [str(time_binary), "--output", str(timing_path), "--format", TIME_TOOL_FORMAT] + argv

        logger.debug(f"Spawning: {' '.join(argv)}")
        usage_before = resource.getrusage(resource.RUSAGE_CHILDREN)
        error = None
        t0 = time.perf_counter()
        with open(stdout_path, "wb") as out, open(stderr_path, "wb") as err:
            try:
                proc = subprocess.Popen(
                    argv, stdout=out, stderr=err, cwd=folder.path, start_new_session=True,
                )
            except OSError as e:
                return StepResult(step.name, step.argv, None, stdout_path, stderr_path,
                                  error=f"could not start {argv[0]}: {e}")
            try:
                exit_status = proc.wait(timeout=self.config.run_timeout_seconds)
            except subprocess.TimeoutExpired:
                terminate_process(proc)
                exit_status = proc.returncode
                error = f"timed out after {self.config.run_timeout_seconds:g}s"
            except BaseException:
                logger.warning(f"Interrupted, terminating step '{step.name}' (pid {proc.pid})")
                terminate_process(proc)
                raise
        wall_clock_seconds = time.perf_counter() - t0
        usage_after = resource.getrusage(resource.RUSAGE_CHILDREN)

        metrics = None
        if time_binary is not None and timing_path.is_file():
            try:
                metrics = ResourceMetrics.from_timing_file(timing_path)
            except (tomllib.TOMLDecodeError, KeyError, ValueError) as e:
                logger.debug(f"Could not parse timing file {timing_path}: {e}")
        if metrics is None:
            metrics = ResourceMetrics(
                wall_clock_seconds=wall_clock_seconds,
                user_cpu_seconds=usage_after.ru_utime - usage_before.ru_utime,
                system_cpu_seconds=usage_after.ru_stime - usage_before.ru_stime,
            )

        if error is None and exit_status != 0:
            error = f"step '{step.name}' exited with status {exit_status}"

        return StepResult(
            name=step.name,
            argv=step.argv,
            exit_status=exit_status,
            stdout_path=stdout_path,
            stderr_path=stderr_path,
            wall_clock_seconds=wall_clock_seconds,
            resource_metrics=metrics,
            error=error,
        )
