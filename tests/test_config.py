"""Tests for suite configuration loading."""

import dataclasses
import logging
import tomllib
from pathlib import Path

import pytest
import yaml

from mapbench.config import (
    DEFAULT_TIME_BINARY,
    CigarOutput,
    DatasetSelection,
    Queries,
    Reference,
    load_suite_config,
    setup_logging,
)
from mapbench.errors import ConfigError


def rewrite(config_file: Path, old: str, new: str) -> Path:
    text = config_file.read_text()
    assert old in text
    config_file.write_text(text.replace(old, new))
    return config_file


class TestLoadSuiteConfig:
    """Test reading the TOML configuration."""

    def test_load_valid_config(self, config_file, bin_dir, data_dir):
        config = load_suite_config(config_file)
        assert config.readmapper_binaries.floxer == bin_dir / "floxer"
        assert config.readmapper_binaries.minimap == bin_dir / "minimap2"
        assert config.reference_paths.debug == data_dir / "debug.fa"
        assert config.query_paths.simulated_small == data_dir / "simulated_small.fq"

    def test_relative_output_folder_resolved_against_config_dir(self, config_file):
        config = load_suite_config(config_file)
        assert config.output_folder == config_file.parent / "benchmark_output"
        assert config.index_folder() == config.output_folder / "indices"
        assert config.all_plots_folder() == config.output_folder / "all_plots"

    def test_empty_time_binary_disables_time_tool(self, config_file):
        assert load_suite_config(config_file).time_binary is None

    def test_time_binary_defaults(self, config_file):
        rewrite(config_file, 'time_binary = ""\n', "")
        assert load_suite_config(config_file).time_binary == DEFAULT_TIME_BINARY

    def test_timeout(self, config_file):
        assert load_suite_config(config_file).run_timeout_seconds is None
        rewrite(config_file, 'time_binary = ""', 'time_binary = ""\nrun_timeout_seconds = 5')
        assert load_suite_config(config_file).run_timeout_seconds == 5.0

    def test_negative_timeout_rejected(self, config_file):
        rewrite(config_file, 'time_binary = ""', 'time_binary = ""\nrun_timeout_seconds = -1')
        with pytest.raises(ConfigError, match="run_timeout_seconds"):
            load_suite_config(config_file)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_suite_config(tmp_path / "nope.toml")

    def test_unparsable_file(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("output_folder = \n")
        with pytest.raises(ConfigError, match="could not parse"):
            load_suite_config(path)

    def test_missing_top_level_key(self, config_file):
        rewrite(config_file, "simulated_dataset_binary", "simulated_dataset_tool")
        with pytest.raises(ConfigError, match="simulated_dataset_binary"):
            load_suite_config(config_file)

    def test_missing_dataset_key(self, config_file):
        rewrite(config_file, "problem_query =", "problem_queries =")
        with pytest.raises(ConfigError, match="problem_query"):
            load_suite_config(config_file)

    def test_missing_section(self, tmp_path):
        path = tmp_path / "partial.toml"
        path.write_text(
            'output_folder = "out"\n'
            'compare_aligner_outputs_binary = "compare"\n'
            'simulated_dataset_binary = "simulate"\n'
        )
        with pytest.raises(ConfigError, match="readmapper_binaries"):
            load_suite_config(path)

    def test_wrong_type(self, config_file):
        rewrite(config_file, 'output_folder = "benchmark_output"', "output_folder = 3")
        with pytest.raises(ConfigError, match="output_folder"):
            load_suite_config(config_file)

    def test_unknown_key_warns(self, config_file, caplog):
        rewrite(config_file, "[readmapper_binaries]\n", '[readmapper_binaries]\nbwa = "bwa"\n')
        with caplog.at_level(logging.WARNING):
            load_suite_config(config_file)
        assert "bwa" in caplog.text

    def test_yaml_config(self, tmp_path, config_file):
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(data))

        config = load_suite_config(path)
        assert config == load_suite_config(config_file)


class TestValidateInputs:
    """Test dataset path checks before execution."""

    def test_existing_inputs(self, suite_config, debug_selection):
        suite_config.validate_inputs(debug_selection)

    def test_missing_reference(self, suite_config, data_dir, debug_selection):
        (data_dir / "debug.fa").unlink()
        with pytest.raises(ConfigError, match="reference 'debug'"):
            suite_config.validate_inputs(debug_selection)

    def test_missing_queries(self, suite_config, data_dir):
        (data_dir / "problem_query.fq").unlink()
        selection = DatasetSelection(reference=Reference.DEBUG, queries=Queries.PROBLEM_QUERY)
        with pytest.raises(ConfigError, match="problem-query"):
            suite_config.validate_inputs(selection)

    def test_missing_time_tool(self, suite_config, debug_selection, tmp_path):
        """A configured time tool that does not exist is a configuration error."""
        config = dataclasses.replace(suite_config, time_binary=tmp_path / "no_time")
        with pytest.raises(ConfigError, match="time tool not found"):
            config.validate_inputs(debug_selection)

    def test_time_tool_must_be_executable(self, suite_config, debug_selection, data_dir):
        config = dataclasses.replace(suite_config, time_binary=data_dir / "debug.fa")
        with pytest.raises(ConfigError, match="time tool"):
            config.validate_inputs(debug_selection)

    def test_fake_time_tool_accepted(self, suite_config, debug_selection, bin_dir):
        dataclasses.replace(suite_config, time_binary=bin_dir / "time").validate_inputs(debug_selection)

    def test_setup_creates_shared_folders(self, suite_config):
        assert suite_config.index_folder().is_dir()
        assert suite_config.all_plots_folder().is_dir()


class TestDatasets:
    """Test dataset enums and the per-invocation selection."""

    def test_labels(self):
        assert Reference.MASKED_HUMAN_GENOME_HG38.label == "masked_human_genome_hg38"
        assert Queries.HUMAN_WGS_NANOPORE_SMALL.label == "human_wgs_nanopore_small"

    def test_input_tag(self):
        selection = DatasetSelection(reference=Reference.SIMULATED, queries=Queries.SIMULATED_SMALL)
        assert selection.input_tag == "simulated_small_in_simulated"
        assert selection.is_simulated

    def test_defaults(self):
        selection = DatasetSelection()
        assert selection.reference == Reference.HUMAN_GENOME_HG38
        assert selection.queries == Queries.HUMAN_WGS_NANOPORE
        assert selection.cigar_output == CigarOutput.OFF
        assert not selection.is_simulated

    def test_smaller_equivalent(self):
        assert Queries.HUMAN_WGS_NANOPORE.smaller_equivalent() == Queries.HUMAN_WGS_NANOPORE_SMALL
        assert Queries.SIMULATED.smaller_equivalent() == Queries.SIMULATED_SMALL
        assert Queries.DEBUG.smaller_equivalent() == Queries.DEBUG

    def test_stats_input_hint(self):
        assert Queries.HUMAN_WGS_NANOPORE.stats_input_hint == "real_nanopore"
        assert Queries.SIMULATED_SMALL.stats_input_hint == "simulated"
        assert Queries.PROBLEM_QUERY.stats_input_hint is None


class TestSetupLogging:
    """Test verbosity mapping."""

    @pytest.mark.parametrize("verbosity, level", [
        (0, logging.WARNING),
        (1, logging.INFO),
        (2, logging.DEBUG),
        (5, logging.DEBUG),
    ])
    def test_levels(self, verbosity, level):
        setup_logging(verbosity)
        assert logging.getLogger().level == level

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "mapbench.log"
        setup_logging(1, log_file)
        logging.getLogger("mapbench.test").info("hello from the test")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello from the test" in log_file.read_text()
