"""
Resource usage plots for a benchmark's runs.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402

from mapbench.engine import RunResult  # noqa: E402

logger = logging.getLogger(__name__)

TIME_METRICS = ["Wall Time", "User CPU Time", "System CPU Time"]


def plot_resource_metrics(
    benchmark_name: str,
    results: Sequence[RunResult],
    out_path: Path,
    copy_to: Optional[Path] = None,
) -> Optional[Path]:
    """Grouped bars of run times plus peak memory, one bar per run.

    Only successful runs with metrics are drawn. Returns None when nothing
    could be plotted.
    """
    measured = [r for r in results if r.succeeded and r.resource_metrics is not None]
    if not measured:
        logger.info(f"No resource metrics to plot for {benchmark_name}")
        return None

    fig, (ax_time, ax_mem) = plt.subplots(
        1, 2, figsize=(14, 6), gridspec_kw={"width_ratios": [3, 1]}
    )
    width = 0.8 / len(measured)
    x = np.arange(len(TIME_METRICS))

    for i, result in enumerate(measured):
        m = result.resource_metrics
        label = result.folder.name
        offset = (i - (len(measured) - 1) / 2) * width
        ax_time.bar(
            x + offset,
            [m.wall_clock_seconds, m.user_cpu_seconds, m.system_cpu_seconds],
            width,
            label=label,
        )
        ax_mem.bar(offset, m.peak_memory_gibibytes or 0.0, width, label=label)

    ax_time.set_xticks(x)
    ax_time.set_xticklabels(TIME_METRICS)
    ax_time.set_ylabel("Seconds", fontsize=12)
    ax_time.grid(True, axis="y", alpha=0.3)

    ax_mem.set_xticks([0])
    ax_mem.set_xticklabels(["Peak Memory Usage"])
    ax_mem.set_ylabel("Gibibytes", fontsize=12)
    ax_mem.grid(True, axis="y", alpha=0.3)

    fig.suptitle(f"Resource usage: {benchmark_name}", fontsize=14)
    ax_time.legend(fontsize=9)
    plt.tight_layout()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(out_path, dpi=150)
    plt.close(fig)
    logger.info(f"Saved: {out_path}")

    if copy_to is not None:
        copy_to.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(out_path, copy_to)
    return out_path
