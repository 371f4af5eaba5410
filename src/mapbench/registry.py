"""
Benchmark catalog and registry.

The catalog is a fixed enumeration of benchmark names, each mapped to the axes
it sweeps and the policy used to expand them. Everything not swept is pinned to
the floxer defaults. The registry combines the catalog with the suite
configuration and the dataset selection of one invocation.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional, Union
import logging

from mapbench.config import DatasetSelection, SuiteConfig
from mapbench.errors import DefinitionError, UnknownBenchmarkError
from mapbench.expand import Curated, ExpansionPolicy, Full, RunInputs, RunSweep, SingleAxis, expand
from mapbench.params import ParameterSpace, define
from mapbench.readmappers import IndexStrategy, Mapper
from mapbench.readmappers.floxer import (
    FLOXER_DEFAULTS,
    AnchorChoiceStrategy,
    AnchorGroupOrder,
    PexTreeConstruction,
    VerificationAlgorithm,
)

logger = logging.getLogger(__name__)


class BenchmarkName(str, Enum):
    DEFAULT_PARAMS = "default-params"
    THREADS = "threads"
    INDEX_BUILD = "index-build"
    QUERY_ERROR_RATE = "query-error-rate"
    PEX_SEED_ERRORS = "pex-seed-errors"
    MAX_ANCHORS = "max-anchors"
    ANCHOR_GROUP_ORDER = "anchor-group-order"
    ANCHOR_INTERACTION = "anchor-interaction"
    PEX_TREE_CONSTRUCTION = "pex-tree-construction"
    INTERVAL_OPTIMIZATION = "interval-optimization"
    VERIFICATION_ALGORITHM = "verification-algorithm"
    SEED_SAMPLING = "seed-sampling"
    FLOXER_VS_MINIMAP = "floxer-vs-minimap"
    DEBUG = "debug"


@dataclass(frozen=True)
class BenchmarkSpec:
    """Catalog entry: what a benchmark sweeps and how.

    Attributes:
        description: One-line summary shown by ``--list``
        axes: Swept axes in declaration order, baseline value first
        policy: Expansion policy over those axes
        fixed: Extra fixed parameters overriding the floxer defaults
        drop: Default parameters that do not apply to this benchmark
    """

    description: str
    axes: Mapping[str, tuple] = field(default_factory=dict)
    policy: ExpansionPolicy = field(default_factory=Full)
    fixed: Mapping[str, Any] = field(default_factory=dict)
    drop: tuple[str, ...] = ()


@dataclass(frozen=True)
class BenchmarkDefinition:
    name: BenchmarkName
    space: ParameterSpace
    policy: ExpansionPolicy
    description: str = ""

    @property
    def is_comparison(self) -> bool:
        """True when the benchmark compares mapper implementations."""
        return self.space.has_axis("mapper")


CATALOG: Mapping[BenchmarkName, BenchmarkSpec] = MappingProxyType({
    BenchmarkName.DEFAULT_PARAMS: BenchmarkSpec(
        "floxer with its default parameters",
    ),
    BenchmarkName.THREADS: BenchmarkSpec(
        "scaling with the number of threads",
        axes={"thread_count": (1, 2, 4, 8)},
        policy=SingleAxis("thread_count"),
    ),
    BenchmarkName.INDEX_BUILD: BenchmarkSpec(
        "index construction versus reading a stored index",
        axes={"index_strategy": (IndexStrategy.ALWAYS_REBUILD, IndexStrategy.READ_FROM_DISK_IF_STORED)},
    ),
    BenchmarkName.QUERY_ERROR_RATE: BenchmarkSpec(
        "allowed error rate of the queries",
        axes={"query_error_rate": (0.03, 0.05, 0.07, 0.09)},
        policy=SingleAxis("query_error_rate"),
    ),
    BenchmarkName.PEX_SEED_ERRORS: BenchmarkSpec(
        "errors allowed in the PEX seeds",
        axes={"pex_seed_errors": (0, 1, 2, 3)},
        policy=SingleAxis("pex_seed_errors"),
    ),
    BenchmarkName.MAX_ANCHORS: BenchmarkSpec(
        "soft cap on the number of anchors per query",
        axes={
            "max_anchors_soft": (100, 10, 1000, 10000),
            "anchor_choice_strategy": (AnchorChoiceStrategy.ROUND_ROBIN, AnchorChoiceStrategy.FULL_GROUPS),
        },
        policy=SingleAxis("max_anchors_soft"),
    ),
    BenchmarkName.ANCHOR_GROUP_ORDER: BenchmarkSpec(
        "order in which anchor groups are chosen",
        axes={"anchor_group_order": (AnchorGroupOrder.COUNT_FIRST, AnchorGroupOrder.ERRORS_FIRST)},
    ),
    BenchmarkName.ANCHOR_INTERACTION: BenchmarkSpec(
        "hand-picked combinations of the anchor heuristics",
        axes={
            "anchor_group_order": (AnchorGroupOrder.COUNT_FIRST, AnchorGroupOrder.ERRORS_FIRST),
            "anchor_choice_strategy": (AnchorChoiceStrategy.ROUND_ROBIN, AnchorChoiceStrategy.FULL_GROUPS),
            "max_anchors_soft": (100, 1000),
        },
        policy=Curated((
            {"anchor_group_order": AnchorGroupOrder.COUNT_FIRST,
             "anchor_choice_strategy": AnchorChoiceStrategy.ROUND_ROBIN,
             "max_anchors_soft": 100},
            {"anchor_group_order": AnchorGroupOrder.ERRORS_FIRST,
             "anchor_choice_strategy": AnchorChoiceStrategy.FULL_GROUPS,
             "max_anchors_soft": 100},
            {"anchor_group_order": AnchorGroupOrder.COUNT_FIRST,
             "anchor_choice_strategy": AnchorChoiceStrategy.FULL_GROUPS,
             "max_anchors_soft": 1000},
            {"anchor_group_order": AnchorGroupOrder.ERRORS_FIRST,
             "anchor_choice_strategy": AnchorChoiceStrategy.ROUND_ROBIN,
             "max_anchors_soft": 1000},
        )),
    ),
    BenchmarkName.PEX_TREE_CONSTRUCTION: BenchmarkSpec(
        "bottom-up versus top-down PEX tree construction",
        axes={"pex_tree_construction": (PexTreeConstruction.BOTTOM_UP, PexTreeConstruction.TOP_DOWN)},
    ),
    BenchmarkName.INTERVAL_OPTIMIZATION: BenchmarkSpec(
        "interval optimization on and off",
        axes={"interval_optimization": (True, False)},
    ),
    BenchmarkName.VERIFICATION_ALGORITHM: BenchmarkSpec(
        "hierarchical versus direct full verification",
        axes={"verification_algorithm": (VerificationAlgorithm.HIERARCHICAL, VerificationAlgorithm.DIRECT_FULL)},
    ),
    BenchmarkName.SEED_SAMPLING: BenchmarkSpec(
        "step size of the seed sampling",
        axes={"seed_sampling_step_size": (1, 2, 4)},
        policy=SingleAxis("seed_sampling_step_size"),
    ),
    BenchmarkName.FLOXER_VS_MINIMAP: BenchmarkSpec(
        "floxer compared against minimap on the same inputs",
        axes={"mapper": (Mapper.FLOXER, Mapper.MINIMAP)},
        fixed={"minimap_preset": "map-ont"},
    ),
    BenchmarkName.DEBUG: BenchmarkSpec(
        "small single-threaded configuration for debugging",
        axes={"pex_tree_construction": (PexTreeConstruction.BOTTOM_UP, PexTreeConstruction.TOP_DOWN)},
        fixed={
            "extra_verification_ratio": 2.0,
            "thread_count": 1,
            "pex_seed_errors": 1,
            "query_errors": 2,
        },
        drop=("query_error_rate",),
    ),
})


def parse_benchmark_name(name: Union[str, BenchmarkName]) -> BenchmarkName:
    """Accept enum members and kebab- or snake-case strings."""
    if isinstance(name, BenchmarkName):
        return name
    try:
        return BenchmarkName(str(name).strip().replace("_", "-"))
    except ValueError:
        known = ", ".join(b.value for b in BenchmarkName)
        raise UnknownBenchmarkError(f"unknown benchmark '{name}' (known: {known})") from None


def build_definition(
    name: BenchmarkName,
    spec: BenchmarkSpec,
    selection: DatasetSelection,
) -> BenchmarkDefinition:
    """Resolve a catalog entry into a validated BenchmarkDefinition.

    Raises:
        DefinitionError: If the resulting parameter space or policy is invalid
    """
    fixed = {k: v for k, v in FLOXER_DEFAULTS.items() if k not in spec.drop}
    fixed.update(spec.fixed)
    fixed["mapper"] = Mapper.FLOXER
    fixed["cigar_output"] = selection.cigar_output
    hint = selection.queries.stats_input_hint
    if hint is not None:
        fixed["stats_input_hint"] = hint
    for axis_name in spec.axes:
        fixed.pop(axis_name, None)

    space = define(axes=spec.axes, fixed=fixed, benchmark=name.value)
    # validates the policy against the space without expanding anything
    RunSweep(space, spec.policy)
    return BenchmarkDefinition(name=name, space=space, policy=spec.policy, description=spec.description)


class BenchmarkRegistry:
    """Read-only lookup of benchmark definitions for one invocation."""

    def __init__(
        self,
        config: SuiteConfig,
        selection: Optional[DatasetSelection] = None,
        catalog: Mapping[BenchmarkName, BenchmarkSpec] = CATALOG,
    ) -> None:
        self.config = config
        self.selection = selection if selection is not None else DatasetSelection()

        missing = set(BenchmarkName) - set(catalog)
        if missing:
            raise RuntimeError(
                "benchmark catalog is missing: " + ", ".join(sorted(b.value for b in missing))
            )

        self.inputs = RunInputs(
            reference=self.selection.reference.label,
            queries=self.selection.queries.label,
            reference_path=config.reference_path(self.selection.reference),
            queries_path=config.query_path(self.selection.queries),
            binaries=config.mapper_binaries(),
            index_folder=config.index_folder(),
        )

        definitions: dict[BenchmarkName, BenchmarkDefinition] = {}
        broken: dict[BenchmarkName, DefinitionError] = {}
        for name in BenchmarkName:
            try:
                definitions[name] = build_definition(name, catalog[name], self.selection)
            except DefinitionError as e:
                logger.debug(f"Benchmark '{name.value}' has an invalid definition: {e}")
                broken[name] = e
        self._definitions = MappingProxyType(definitions)
        self._broken = MappingProxyType(broken)

    def lookup(self, name: Union[str, BenchmarkName]) -> BenchmarkDefinition:
        """Return the definition of a catalog benchmark.

        Raises:
            UnknownBenchmarkError: If the name is not in the catalog
            DefinitionError: If the benchmark's definition is invalid
        """
        key = parse_benchmark_name(name)
        if key in self._broken:
            raise self._broken[key]
        return self._definitions[key]

    def all_names(self) -> set[BenchmarkName]:
        return set(BenchmarkName)

    def sweep(self, name: Union[str, BenchmarkName], tag: Optional[str] = None) -> RunSweep:
        definition = self.lookup(name)
        return expand(definition.space, definition.policy, inputs=self.inputs, tag=tag)
