"""
Command builders for the benchmarked read mappers.

Each builder turns a ResolvedRun into the ordered steps (argument vectors) the
execution engine spawns. Arguments are derived deterministically from the
run's parameters and its run folder.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from mapbench.expand import ResolvedRun
from mapbench.layout import RunFolder

# Thread count used unless a benchmark sweeps it
NUM_THREADS_FOR_READMAPPERS = 32


class Mapper(str, Enum):
    FLOXER = "floxer"
    MINIMAP = "minimap"


class IndexStrategy(str, Enum):
    ALWAYS_REBUILD = "always_rebuild"
    READ_FROM_DISK_IF_STORED = "read_from_disk_if_stored"


@dataclass(frozen=True)
class Step:
    """One child process invocation of a run."""

    name: str
    argv: tuple[str, ...]


def as_arg(value) -> str:
    """Render a parameter value as a command line argument."""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def mapped_reads_path(run: ResolvedRun, folder: RunFolder) -> Path:
    if run.mapper == Mapper.MINIMAP.value:
        return folder.mapped_reads_sam_path
    return folder.mapped_reads_bam_path


def build_steps(run: ResolvedRun, folder: RunFolder) -> list[Step]:
    """Return the steps needed to execute a run with its mapper.

    Raises:
        ValueError: If the run has no inputs or names an unknown mapper
    """
    from mapbench.readmappers import floxer, minimap

    if run.inputs is None:
        raise ValueError(f"run {run.describe()} has no resolved inputs")
    if run.binary is None:
        raise ValueError(f"no binary configured for mapper '{run.mapper}'")

    if run.mapper == Mapper.FLOXER.value:
        return floxer.build_steps(run, folder)
    if run.mapper == Mapper.MINIMAP.value:
        return minimap.build_steps(run, folder)
    raise ValueError(f"unknown mapper '{run.mapper}'")
