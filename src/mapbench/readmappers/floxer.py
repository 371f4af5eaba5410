"""floxer parameters, defaults, command line and run statistics."""

import tomllib
from enum import Enum
from pathlib import Path
from typing import Union

from mapbench.config import CigarOutput
from mapbench.expand import ResolvedRun
from mapbench.layout import RunFolder
from mapbench.readmappers import (
    NUM_THREADS_FOR_READMAPPERS,
    IndexStrategy,
    Step,
    as_arg,
)

DEFAULT_ERROR_RATE = 0.09
HIGH_ERROR_RATE = 0.15
UNLIMITED_ANCHORS = 2**64 - 1


class AnchorGroupOrder(str, Enum):
    COUNT_FIRST = "count_first"
    ERRORS_FIRST = "errors_first"


class AnchorChoiceStrategy(str, Enum):
    ROUND_ROBIN = "round_robin"
    FULL_GROUPS = "full_groups"


class PexTreeConstruction(str, Enum):
    BOTTOM_UP = "bottom_up"
    TOP_DOWN = "top_down"


class VerificationAlgorithm(str, Enum):
    HIERARCHICAL = "hierarchical"
    DIRECT_FULL = "direct_full"


# Baseline algorithm configuration; benchmarks override single entries
FLOXER_DEFAULTS = {
    "index_strategy": IndexStrategy.READ_FROM_DISK_IF_STORED,
    "query_error_rate": DEFAULT_ERROR_RATE,
    "pex_seed_errors": 2,
    "max_anchors_hard": UNLIMITED_ANCHORS,
    "max_anchors_soft": 100,
    "anchor_group_order": AnchorGroupOrder.COUNT_FIRST,
    "anchor_choice_strategy": AnchorChoiceStrategy.ROUND_ROBIN,
    "seed_sampling_step_size": 1,
    "pex_tree_construction": PexTreeConstruction.BOTTOM_UP,
    "interval_optimization": True,
    "extra_verification_ratio": 0.1,
    "verification_algorithm": VerificationAlgorithm.HIERARCHICAL,
    "num_anchors_per_verification_task": 3_000,
    "thread_count": NUM_THREADS_FOR_READMAPPERS,
}


def _param(params: dict, name: str):
    return params.get(name, FLOXER_DEFAULTS[name])


def build_steps(run: ResolvedRun, folder: RunFolder) -> list[Step]:
    params = run.parameters
    inputs = run.inputs

    argv = [
        str(run.binary),
        "--reference", str(inputs.reference_path),
        "--queries", str(inputs.queries_path),
        "--output", str(folder.mapped_reads_bam_path),
        "--logfile", str(folder.logfile_path),
        "--stats", str(folder.stats_path),
    ]

    if (
        _param(params, "index_strategy") == IndexStrategy.READ_FROM_DISK_IF_STORED
        and inputs.index_folder is not None
    ):
        index_path = inputs.index_folder / f"floxer-index-{inputs.reference}.flxi"
        argv += ["--index", str(index_path)]

    # exact error count takes precedence over the error rate
    if "query_errors" in params:
        argv += ["--query-errors", as_arg(params["query_errors"])]
    else:
        argv += ["--error-probability", as_arg(_param(params, "query_error_rate"))]

    argv += [
        "--seed-errors", as_arg(_param(params, "pex_seed_errors")),
        "--max-anchors-hard", as_arg(_param(params, "max_anchors_hard")),
        "--max-anchors-soft", as_arg(_param(params, "max_anchors_soft")),
        "--anchor-group-order", as_arg(_param(params, "anchor_group_order")),
        "--anchor-choice-strategy", as_arg(_param(params, "anchor_choice_strategy")),
        "--seed-sampling-step-size", as_arg(_param(params, "seed_sampling_step_size")),
        "--extra-verification-ratio", as_arg(_param(params, "extra_verification_ratio")),
        "--threads", as_arg(_param(params, "thread_count")),
        "--num-anchors-per-task", as_arg(_param(params, "num_anchors_per_verification_task")),
    ]

    if _param(params, "pex_tree_construction") == PexTreeConstruction.BOTTOM_UP:
        argv.append("--bottom-up-pex-tree")
    if _param(params, "interval_optimization"):
        argv.append("--interval-optimization")
    if _param(params, "verification_algorithm") == VerificationAlgorithm.DIRECT_FULL:
        argv.append("--direct-full-verification")
    if "stats_input_hint" in params:
        argv += ["--stats-input-hint", as_arg(params["stats_input_hint"])]
    if params.get("cigar_output", CigarOutput.OFF) == CigarOutput.OFF:
        argv.append("--without-cigar")

    return [Step("map", tuple(argv))]


def read_stats(path: Path) -> dict[str, Union[int, float]]:
    """Flatten the file floxer writes to ``--stats`` into scalar values.

    Top-level counts are kept under their own name. Every histogram table
    contributes ``<name>_num_values`` and, when floxer reported descriptive
    statistics for it, ``<name>_mean``.

    Raises:
        tomllib.TOMLDecodeError: If the file is not valid TOML
        KeyError: If a histogram has no ``num_values``
    """
    with open(path, "rb") as f:
        data = tomllib.load(f)

    flat: dict[str, Union[int, float]] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            flat[f"{key}_num_values"] = int(value["num_values"])
            if "mean" in value:
                flat[f"{key}_mean"] = float(value["mean"])
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            flat[key] = value
    return flat
