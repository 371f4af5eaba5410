"""
Pytest configuration and shared fixtures for mapbench tests.

This module provides:
- Fake mapper and analysis executables (shell scripts)
- Dataset files and a written suite configuration
- Loaded SuiteConfig objects
"""

import logging
from pathlib import Path

import pytest

from mapbench.config import (
    DatasetSelection,
    Queries,
    Reference,
    SuiteConfig,
    load_suite_config,
)
from mapbench.layout import OutputLayout


# ============================================================================
# Fake executables
# ============================================================================

# Writes the files passed to --output and --stats; crashes when run with two threads
FAKE_FLOXER = """\
#!/bin/sh
out=""
stats=""
prev=""
for arg in "$@"; do
  if [ "$prev" = "--output" ]; then out="$arg"; fi
  if [ "$prev" = "--stats" ]; then stats="$arg"; fi
  if [ "$prev" = "--threads" ] && [ "$arg" = "2" ]; then
    echo "floxer: simulated crash" >&2
    exit 3
  fi
  prev="$arg"
done
echo "mapped" > "$out"
if [ -n "$stats" ]; then
  cat > "$stats" <<'STATS'
completely_excluded_queries = 1

[query_lengths]
num_values = 3
thresholds = [100, 1000]
occurrences = [0, 2, 1]
min_value = 150
mean = 700.5
max_value = 1500

[seeds_per_query]
num_values = 3
thresholds = [10]
occurrences = [1, 2]
min_value = 4
mean = 12.0
max_value = 20
STATS
fi
echo "floxer done"
"""

# Writes the files passed to -d (index) and -o (alignments)
FAKE_MINIMAP = """\
#!/bin/sh
prev=""
for arg in "$@"; do
  if [ "$prev" = "-d" ] || [ "$prev" = "-o" ]; then echo "minimap" > "$arg"; fi
  prev="$arg"
done
"""

FAKE_COMPARE = """\
#!/bin/sh
cat <<'COMPARISON'
[general_stats]
number_of_queries = 3
both_mapped = 2
both_unmapped = 0
floxer_mapped = 2
floxer_unmapped = 1
minimap_mapped = 3
minimap_unmapped = 0
floxer_unmapped_and_minimap_mapped = 1
minimap_unmapped_and_floxer_mapped = 0

[floxer_stats_if_floxer_mapped]
num_queries = 2
average_error_rate_of_primary_basic_alignments = 0.05
COMPARISON
"""

# One optimally found, one missed and one suboptimally found query
FAKE_SIMULATE = """\
#!/bin/sh
if [ "$1" != "verify" ]; then exit 64; fi
cat <<'VERIFIED'
[[queries]]
id = "read1"
status = "FoundOptimal"

[[queries]]
id = "read2"
status = "NotFound"

[[queries]]
id = "read3"
status = { FoundSuboptimal = { pos_diff_expected_num_errors = 1, pos_diff_higher_num_errors = 0 } }
VERIFIED
"""

# Stands in for GNU time: runs the command, then writes fixed TOML to --output
FAKE_TIME = """\
#!/bin/sh
out=""
if [ "$1" = "--output" ]; then out="$2"; shift 2; fi
if [ "$1" = "--format" ]; then shift 2; fi
"$@"
status=$?
printf 'wall_clock_seconds = 1.5\\nuser_cpu_seconds = 1.0\\nsystem_cpu_seconds = 0.25\\npeak_memory_kilobytes = 2048\\n' > "$out"
exit $status
"""

SLEEPER = """\
#!/bin/sh
sleep 30
"""

# Records its pid in the file given as first argument before sleeping
PID_SLEEPER = """\
#!/bin/sh
echo $$ > "$1"
exec sleep 30
"""

FAILING = """\
#!/bin/sh
echo "boom" >&2
exit 1
"""


def write_executable(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    path.chmod(0o755)
    return path


@pytest.fixture
def bin_dir(tmp_path) -> Path:
    """Directory holding every fake executable."""
    d = tmp_path / "bin"
    write_executable(d / "floxer", FAKE_FLOXER)
    write_executable(d / "minimap2", FAKE_MINIMAP)
    write_executable(d / "compare_aligner_outputs", FAKE_COMPARE)
    write_executable(d / "simulate_dataset", FAKE_SIMULATE)
    write_executable(d / "sleeper", SLEEPER)
    write_executable(d / "pid_sleeper", PID_SLEEPER)
    write_executable(d / "time", FAKE_TIME)
    write_executable(d / "failing", FAILING)
    return d


# ============================================================================
# Datasets and configuration
# ============================================================================

REFERENCE_NAMES = ["human_genome_hg38", "masked_human_genome_hg38", "debug", "simulated"]
QUERY_NAMES = [
    "human_wgs_nanopore",
    "human_wgs_nanopore_small",
    "debug",
    "problem_query",
    "simulated",
    "simulated_small",
]


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """Tiny reference and query files for every dataset name."""
    d = tmp_path / "data"
    d.mkdir()
    for name in REFERENCE_NAMES:
        (d / f"{name}.fa").write_text(">chr1\nACGTACGTACGT\n")
    for name in QUERY_NAMES:
        (d / f"{name}.fq").write_text("@read1\nACGT\n+\nIIII\n")
    return d


def render_config(bin_dir: Path, data_dir: Path, output_folder: str = "benchmark_output") -> str:
    lines = [
        f'output_folder = "{output_folder}"',
        f'compare_aligner_outputs_binary = "{bin_dir / "compare_aligner_outputs"}"',
        f'simulated_dataset_binary = "{bin_dir / "simulate_dataset"}"',
        'time_binary = ""',
        "",
        "[readmapper_binaries]",
        f'floxer = "{bin_dir / "floxer"}"',
        f'minimap = "{bin_dir / "minimap2"}"',
        "",
        "[reference_paths]",
    ]
    lines += [f'{name} = "{data_dir / (name + ".fa")}"' for name in REFERENCE_NAMES]
    lines += ["", "[query_paths]"]
    lines += [f'{name} = "{data_dir / (name + ".fq")}"' for name in QUERY_NAMES]
    return "\n".join(lines) + "\n"


@pytest.fixture
def config_file(tmp_path, bin_dir, data_dir) -> Path:
    """A complete TOML suite configuration; output goes below tmp_path."""
    path = tmp_path / "benchmark_config.toml"
    path.write_text(render_config(bin_dir, data_dir))
    return path


@pytest.fixture
def suite_config(config_file) -> SuiteConfig:
    config = load_suite_config(config_file)
    config.setup()
    return config


@pytest.fixture
def debug_selection() -> DatasetSelection:
    return DatasetSelection(reference=Reference.DEBUG, queries=Queries.DEBUG)


@pytest.fixture
def simulated_selection() -> DatasetSelection:
    return DatasetSelection(reference=Reference.SIMULATED, queries=Queries.SIMULATED)


@pytest.fixture
def layout(suite_config, debug_selection) -> OutputLayout:
    return OutputLayout(suite_config.output_folder, debug_selection.input_tag)


# ============================================================================
# Logging isolation
# ============================================================================

@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo handlers installed by setup_logging during CLI tests."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
