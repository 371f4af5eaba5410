"""minimap index and map command lines."""

from mapbench.expand import ResolvedRun
from mapbench.layout import RunFolder
from mapbench.readmappers import (
    NUM_THREADS_FOR_READMAPPERS,
    IndexStrategy,
    Step,
    as_arg,
)


def index_path(run: ResolvedRun, folder: RunFolder):
    inputs = run.inputs
    base = inputs.index_folder if inputs.index_folder is not None else folder.path
    return base / f"minimap-index-{inputs.reference}-{inputs.queries}.mmi"


def build_steps(run: ResolvedRun, folder: RunFolder) -> list[Step]:
    params = run.parameters
    inputs = run.inputs
    threads = as_arg(params.get("thread_count", NUM_THREADS_FOR_READMAPPERS))
    preset = as_arg(params.get("minimap_preset", "map-ont"))
    index = index_path(run, folder)

    steps = []
    strategy = params.get("index_strategy", IndexStrategy.READ_FROM_DISK_IF_STORED)
    if strategy == IndexStrategy.ALWAYS_REBUILD or not index.exists():
        steps.append(Step("index", (
            str(run.binary),
            "-x", preset,
            "-d", str(index),
            str(inputs.reference_path),
            "-t", threads,
        )))

    steps.append(Step("map", (
        str(run.binary),
        "-a", str(index),
        str(inputs.queries_path),
        "-t", threads,
        "-o", str(folder.mapped_reads_sam_path),
    )))
    return steps
