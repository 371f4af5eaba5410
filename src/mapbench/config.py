"""
mapbench configuration management.

The suite configuration holds everything that stays the same across benchmark
invocations: the output folder, the analysis binaries, the mapper binaries and
the dataset paths. It is read once from a TOML (or YAML) file into frozen
dataclasses and passed explicitly to the registry, engine and dispatcher.
"""

from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Optional
import logging
import shutil
import tomllib

import yaml

from mapbench.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("benchmark_config.toml")
DEFAULT_TIME_BINARY = Path("/usr/bin/time")


class Reference(str, Enum):
    """Reference datasets selectable on the command line."""

    HUMAN_GENOME_HG38 = "human-genome-hg38"
    MASKED_HUMAN_GENOME_HG38 = "masked-human-genome-hg38"
    DEBUG = "debug"
    SIMULATED = "simulated"

    @property
    def label(self) -> str:
        """Folder and config-key form of the name."""
        return self.value.replace("-", "_")


class Queries(str, Enum):
    """Query read datasets selectable on the command line."""

    HUMAN_WGS_NANOPORE = "human-wgs-nanopore"
    HUMAN_WGS_NANOPORE_SMALL = "human-wgs-nanopore-small"
    DEBUG = "debug"
    PROBLEM_QUERY = "problem-query"
    SIMULATED = "simulated"
    SIMULATED_SMALL = "simulated-small"

    @property
    def label(self) -> str:
        return self.value.replace("-", "_")

    @property
    def minimap_preset(self) -> str:
        # all current datasets are nanopore or nanopore-like simulations
        return "map-ont"

    @property
    def stats_input_hint(self) -> Optional[str]:
        if self in (Queries.HUMAN_WGS_NANOPORE, Queries.HUMAN_WGS_NANOPORE_SMALL):
            return "real_nanopore"
        if self in (Queries.SIMULATED, Queries.SIMULATED_SMALL):
            return "simulated"
        return None

    @property
    def is_simulated(self) -> bool:
        return self in (Queries.SIMULATED, Queries.SIMULATED_SMALL)

    def smaller_equivalent(self) -> "Queries":
        """Return the subsampled variant of this dataset, if one exists."""
        if self in (Queries.HUMAN_WGS_NANOPORE, Queries.HUMAN_WGS_NANOPORE_SMALL):
            return Queries.HUMAN_WGS_NANOPORE_SMALL
        if self.is_simulated:
            return Queries.SIMULATED_SMALL
        return self


class CigarOutput(str, Enum):
    ON = "on"
    OFF = "off"


@dataclass(frozen=True)
class ReadmapperBinaries:
    floxer: Path
    minimap: Path


@dataclass(frozen=True)
class ReferencePaths:
    human_genome_hg38: Path
    masked_human_genome_hg38: Path
    debug: Path
    simulated: Path


@dataclass(frozen=True)
class QueryPaths:
    human_wgs_nanopore: Path
    human_wgs_nanopore_small: Path
    debug: Path
    problem_query: Path
    simulated: Path
    simulated_small: Path


@dataclass(frozen=True)
class DatasetSelection:
    """Per-invocation choice of datasets and output options.

    Attributes:
        reference: Reference dataset the mappers are run against
        queries: Query reads to map
        cigar_output: Whether mappers write alignment strings
    """

    reference: Reference = Reference.HUMAN_GENOME_HG38
    queries: Queries = Queries.HUMAN_WGS_NANOPORE
    cigar_output: CigarOutput = CigarOutput.OFF

    @property
    def input_tag(self) -> str:
        return f"{self.queries.label}_in_{self.reference.label}"

    @property
    def is_simulated(self) -> bool:
        return self.reference == Reference.SIMULATED and self.queries.is_simulated


@dataclass(frozen=True)
class SuiteConfig:
    """Benchmark suite configuration.

    Attributes:
        output_folder: Root of all benchmark output
        compare_aligner_outputs_binary: Tool comparing two mappers' alignments
        simulated_dataset_binary: Tool that simulates and verifies datasets
        readmapper_binaries: Executables of the benchmarked mappers
        reference_paths: Reference dataset paths by name
        query_paths: Query dataset paths by name
        time_binary: GNU time used for resource metrics (None = rusage only)
        run_timeout_seconds: Per-step timeout (None = no timeout)
    """

    output_folder: Path
    compare_aligner_outputs_binary: Path
    simulated_dataset_binary: Path
    readmapper_binaries: ReadmapperBinaries
    reference_paths: ReferencePaths
    query_paths: QueryPaths
    time_binary: Optional[Path] = DEFAULT_TIME_BINARY
    run_timeout_seconds: Optional[float] = None

    def index_folder(self) -> Path:
        return self.output_folder / "indices"

    def all_plots_folder(self) -> Path:
        return self.output_folder / "all_plots"

    def setup(self) -> None:
        """Create the shared index and plot folders."""
        self.index_folder().mkdir(parents=True, exist_ok=True)
        self.all_plots_folder().mkdir(parents=True, exist_ok=True)

    def reference_path(self, reference: Reference) -> Path:
        return getattr(self.reference_paths, reference.label)

    def query_path(self, queries: Queries) -> Path:
        return getattr(self.query_paths, queries.label)

    def mapper_binaries(self) -> tuple[tuple[str, Path], ...]:
        return tuple((f.name, getattr(self.readmapper_binaries, f.name))
                     for f in fields(self.readmapper_binaries))

    def validate_inputs(self, selection: DatasetSelection) -> None:
        """Check that the selected datasets exist before any run starts.

        Raises:
            ConfigError: If the reference or query path is missing, or the
                configured time tool is not an executable
        """
        for description, path in (
            (f"reference '{selection.reference.value}'", self.reference_path(selection.reference)),
            (f"queries '{selection.queries.value}'", self.query_path(selection.queries)),
        ):
            if not path.exists():
                raise ConfigError(f"{description} not found: {path}")

        if self.time_binary is not None and shutil.which(str(self.time_binary)) is None:
            raise ConfigError(
                f"time tool not found: {self.time_binary} (set time_binary = \"\" to disable it)"
            )


def _read_raw(path: Path) -> dict:
    if not path.is_file():
        raise ConfigError(f"config file not found: {path}")

    try:
        if path.suffix in (".yaml", ".yml"):
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        else:
            with open(path, "rb") as f:
                data = tomllib.load(f)
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"could not parse config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a table at top level")
    return data


def _as_path(value: Any, key: str, base_dir: Path) -> Path:
    if not isinstance(value, (str, Path)) or str(value) == "":
        raise ConfigError(f"'{key}' must be a non-empty path, got {value!r}")
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def _path_section(data: dict, key: str, cls: type, base_dir: Path):
    section = data.get(key)
    if not isinstance(section, dict):
        raise ConfigError(f"missing table [{key}] in config file")

    names = [f.name for f in fields(cls)]
    missing = [n for n in names if n not in section]
    if missing:
        raise ConfigError(f"[{key}] is missing: {', '.join(missing)}")
    for extra in sorted(set(section) - set(names)):
        logger.warning(f"Ignoring unknown key '{extra}' in [{key}]")

    return cls(**{n: _as_path(section[n], f"{key}.{n}", base_dir) for n in names})


def load_suite_config(path: Path = DEFAULT_CONFIG_FILE) -> SuiteConfig:
    """Load and validate the suite configuration.

    Relative paths inside the file are resolved against the file's directory.

    Raises:
        ConfigError: If the file is missing, unparsable or incomplete
    """
    path = Path(path)
    data = _read_raw(path)
    base_dir = path.resolve().parent

    for key in ("output_folder", "compare_aligner_outputs_binary", "simulated_dataset_binary"):
        if key not in data:
            raise ConfigError(f"missing key '{key}' in config file {path}")

    time_binary: Optional[Path] = DEFAULT_TIME_BINARY
    if "time_binary" in data:
        raw = data["time_binary"]
        time_binary = None if raw in ("", None, False) else _as_path(raw, "time_binary", base_dir)

    timeout = data.get("run_timeout_seconds", 0)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout < 0:
        raise ConfigError(f"'run_timeout_seconds' must be a non-negative number, got {timeout!r}")

    config = SuiteConfig(
        output_folder=_as_path(data["output_folder"], "output_folder", base_dir),
        compare_aligner_outputs_binary=_as_path(
            data["compare_aligner_outputs_binary"], "compare_aligner_outputs_binary", base_dir
        ),
        simulated_dataset_binary=_as_path(
            data["simulated_dataset_binary"], "simulated_dataset_binary", base_dir
        ),
        readmapper_binaries=_path_section(data, "readmapper_binaries", ReadmapperBinaries, base_dir),
        reference_paths=_path_section(data, "reference_paths", ReferencePaths, base_dir),
        query_paths=_path_section(data, "query_paths", QueryPaths, base_dir),
        time_binary=time_binary,
        run_timeout_seconds=float(timeout) or None,
    )
    logger.debug(f"Loaded suite config from {path}")
    return config


# Verbosity level mapping for CLI
VERBOSITY_LEVELS = {
    0: logging.WARNING,   # Default: warnings and errors only
    1: logging.INFO,      # -v: info messages
    2: logging.DEBUG,     # -vv: debug messages
}


def setup_logging(verbosity: int = 0, log_file: Optional[Path] = None) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbosity: 0 = WARNING, 1 = INFO, 2+ = DEBUG
        log_file: Optional file to write logs to
    """
    level = VERBOSITY_LEVELS.get(verbosity, logging.DEBUG)

    if verbosity >= 2:
        fmt = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s"
    elif verbosity >= 1:
        fmt = "%(levelname)s: %(message)s"
    else:
        fmt = "%(message)s"

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=handlers,
        force=True,
    )
