"""Tests for the benchmark catalog and registry."""

import dataclasses

import pytest

from mapbench.config import CigarOutput, DatasetSelection, Queries, Reference
from mapbench.errors import EmptyAxisError, UnknownBenchmarkError
from mapbench.expand import SingleAxis
from mapbench.registry import (
    CATALOG,
    BenchmarkName,
    BenchmarkRegistry,
    BenchmarkSpec,
    parse_benchmark_name,
)
from mapbench.readmappers import Mapper


@pytest.fixture
def registry(suite_config, debug_selection):
    return BenchmarkRegistry(suite_config, debug_selection)


class TestBenchmarkNames:
    """Test parsing of benchmark names."""

    def test_kebab_case(self):
        assert parse_benchmark_name("floxer-vs-minimap") == BenchmarkName.FLOXER_VS_MINIMAP

    def test_snake_case(self):
        assert parse_benchmark_name("pex_seed_errors") == BenchmarkName.PEX_SEED_ERRORS

    def test_enum_passthrough(self):
        assert parse_benchmark_name(BenchmarkName.DEBUG) is BenchmarkName.DEBUG

    def test_unknown_name(self):
        with pytest.raises(UnknownBenchmarkError, match="unknown benchmark 'nope'"):
            parse_benchmark_name("nope")


class TestCatalog:
    """Test that every catalog entry resolves to a valid definition."""

    def test_catalog_is_complete(self):
        assert set(CATALOG) == set(BenchmarkName)

    @pytest.mark.parametrize("name", list(BenchmarkName))
    def test_every_benchmark_expands(self, registry, name):
        definition = registry.lookup(name)
        sweep = registry.sweep(name)
        assert definition.name == name
        assert len(sweep) >= 1
        assert len(list(sweep)) == len(sweep)

    def test_all_names(self, registry):
        assert registry.all_names() == set(BenchmarkName)


class TestBenchmarkDefinitions:
    """Test individual benchmark definitions."""

    def test_default_params_single_run(self, registry):
        """default-params has no axes and yields one run."""
        runs = list(registry.sweep("default-params"))
        assert len(runs) == 1
        assert runs[0].assignments == ()
        assert runs[0].mapper == Mapper.FLOXER.value

    def test_threads_sweep(self, registry):
        definition = registry.lookup("threads")
        runs = list(registry.sweep("threads"))
        assert definition.policy == SingleAxis("thread_count")
        assert [run.get("thread_count") for run in runs] == [1, 2, 4, 8]

    def test_swept_axis_not_fixed(self, registry):
        definition = registry.lookup("threads")
        assert "thread_count" not in definition.space.fixed_values

    def test_max_anchors_pins_choice_strategy(self, registry):
        runs = list(registry.sweep("max-anchors"))
        assert len(runs) == 4
        assert len({run.get("anchor_choice_strategy") for run in runs}) == 1

    def test_anchor_interaction_is_curated(self, registry):
        runs = list(registry.sweep("anchor-interaction"))
        assert len(runs) == 4
        assert len({run.assignments for run in runs}) == 4

    def test_floxer_vs_minimap_is_comparison(self, registry):
        definition = registry.lookup("floxer-vs-minimap")
        assert definition.is_comparison
        assert [run.mapper for run in registry.sweep("floxer-vs-minimap")] == ["floxer", "minimap"]
        assert not registry.lookup("threads").is_comparison

    def test_debug_uses_error_count(self, registry):
        run = registry.sweep("debug")[0]
        assert run.get("query_errors") == 2
        assert "query_error_rate" not in run.parameters
        assert run.get("thread_count") == 1

    def test_selection_flows_into_runs(self, suite_config):
        selection = DatasetSelection(
            reference=Reference.SIMULATED,
            queries=Queries.SIMULATED_SMALL,
            cigar_output=CigarOutput.ON,
        )
        registry = BenchmarkRegistry(suite_config, selection)
        run = registry.sweep("default-params", tag="v1")[0]
        assert run.get("cigar_output") == CigarOutput.ON
        assert run.get("stats_input_hint") == "simulated"
        assert run.tag == "v1"
        assert run.inputs.reference_path == suite_config.reference_paths.simulated
        assert run.inputs.queries_path == suite_config.query_paths.simulated_small
        assert run.binary == suite_config.readmapper_binaries.floxer

    def test_no_stats_hint_for_debug_queries(self, registry):
        assert "stats_input_hint" not in registry.sweep("default-params")[0].parameters


class TestRegistryErrors:
    """Test handling of broken catalogs."""

    def test_incomplete_catalog(self, suite_config):
        catalog = {k: v for k, v in CATALOG.items() if k != BenchmarkName.DEBUG}
        with pytest.raises(RuntimeError, match="debug"):
            BenchmarkRegistry(suite_config, catalog=catalog)

    def test_broken_definition_only_affects_its_benchmark(self, suite_config):
        """An empty axis surfaces on lookup of that benchmark alone."""
        catalog = dict(CATALOG)
        catalog[BenchmarkName.THREADS] = dataclasses.replace(
            CATALOG[BenchmarkName.THREADS], axes={"thread_count": ()}
        )
        registry = BenchmarkRegistry(suite_config, catalog=catalog)
        with pytest.raises(EmptyAxisError):
            registry.lookup("threads")
        assert len(registry.sweep("default-params")) == 1

    def test_unknown_lookup(self, registry):
        with pytest.raises(UnknownBenchmarkError):
            registry.lookup("bogus")

    def test_spec_defaults(self):
        spec = BenchmarkSpec("description only")
        assert dict(spec.axes) == {}
        assert spec.drop == ()
