"""Tests for the mapbench CLI module."""

import pytest
from typer.testing import CliRunner

from mapbench import __version__
from mapbench.cli import EXIT_CONFIG_ERROR, EXIT_FAILURES, app


runner = CliRunner()


def debug_args(config_file):
    return ["--config-file", str(config_file), "--reference", "debug", "--queries", "debug"]


class TestCliBasics:
    """Test basic CLI functionality."""

    def test_help_shows_options(self):
        """Test that --help lists the main options."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "--only-analysis" in result.output
        assert "--config-file" in result.output
        assert "--cigar-output" in result.output

    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_unknown_benchmark_rejected(self, config_file):
        result = runner.invoke(app, ["no-such-benchmark", *debug_args(config_file)])
        assert result.exit_code != 0

    def test_invalid_reference_rejected(self, config_file):
        result = runner.invoke(app, ["threads", "--config-file", str(config_file), "--reference", "hg19"])
        assert result.exit_code != 0


class TestConfigErrors:
    """Test exit code 2 for configuration problems."""

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["threads", "--config-file", str(tmp_path / "missing.toml")])
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Configuration Error" in result.output

    def test_missing_dataset(self, config_file, data_dir):
        (data_dir / "debug.fq").unlink()
        result = runner.invoke(app, ["threads", *debug_args(config_file)])
        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_missing_time_tool(self, config_file, tmp_path):
        """The default time tool is checked before any run starts."""
        text = config_file.read_text().replace('time_binary = ""', f'time_binary = "{tmp_path / "no_time"}"')
        config_file.write_text(text)
        result = runner.invoke(app, ["default-params", *debug_args(config_file)])
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "time tool" in result.output
        assert not (tmp_path / "benchmark_output" / "default-params").exists()

    def test_missing_dataset_ignored_in_analysis_mode(self, config_file, data_dir):
        """Dataset paths are only checked before executing."""
        (data_dir / "debug.fq").unlink()
        result = runner.invoke(app, ["default-params", "--only-analysis", *debug_args(config_file)])
        assert result.exit_code == EXIT_FAILURES


class TestRunCommand:
    """Test executing benchmarks from the command line."""

    def test_successful_benchmark(self, config_file, tmp_path):
        result = runner.invoke(app, ["default-params", *debug_args(config_file)])
        assert result.exit_code == 0, result.output
        assert "Benchmark Summary" in result.output
        run_folder = tmp_path / "benchmark_output" / "default-params" / "debug_in_debug" / "untagged" / "default"
        assert (run_folder / "run_result.json").exists()

    def test_failing_run_exits_one(self, config_file, tmp_path):
        """Failures are reported after the whole sweep ran."""
        result = runner.invoke(app, ["threads", *debug_args(config_file)])
        assert result.exit_code == EXIT_FAILURES
        tag_folder = tmp_path / "benchmark_output" / "threads" / "debug_in_debug" / "untagged"
        assert len(list(tag_folder.glob("thread_count=*/run_result.json"))) == 4

    def test_tag_option(self, config_file, tmp_path):
        result = runner.invoke(app, ["default-params", "--tag", "v1", *debug_args(config_file)])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "benchmark_output" / "default-params" / "debug_in_debug" / "tagged-v1").is_dir()

    def test_only_analysis_before_execution(self, config_file):
        result = runner.invoke(app, ["default-params", "--only-analysis", *debug_args(config_file)])
        assert result.exit_code == EXIT_FAILURES

    def test_only_analysis_after_execution(self, config_file):
        first = runner.invoke(app, ["default-params", *debug_args(config_file)])
        assert first.exit_code == 0, first.output
        second = runner.invoke(app, ["default-params", "--only-analysis", *debug_args(config_file)])
        assert second.exit_code == 0, second.output

    @pytest.mark.parametrize("cigar", ["on", "off"])
    def test_cigar_output_option(self, config_file, cigar):
        result = runner.invoke(app, ["default-params", "--cigar-output", cigar, *debug_args(config_file)])
        assert result.exit_code == 0, result.output

    def test_log_file(self, config_file, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        result = runner.invoke(
            app, ["default-params", "-v", "--log-file", str(log_file), *debug_args(config_file)]
        )
        assert result.exit_code == 0, result.output
        assert "Running default-params" in log_file.read_text()

    def test_time_tool_used(self, config_file, bin_dir):
        text = config_file.read_text().replace('time_binary = ""', f'time_binary = "{bin_dir / "time"}"')
        config_file.write_text(text)
        result = runner.invoke(app, ["default-params", *debug_args(config_file)])
        assert result.exit_code == 0, result.output


class TestInspectionOptions:
    """Test --list and --dry-run."""

    def test_list(self, config_file):
        result = runner.invoke(app, ["--list", *debug_args(config_file)])
        assert result.exit_code == 0
        assert "threads" in result.output
        assert "floxer-vs-minimap" in result.output

    def test_dry_run_spawns_nothing(self, config_file, tmp_path):
        result = runner.invoke(app, ["threads", "--dry-run", *debug_args(config_file)])
        assert result.exit_code == 0
        assert "Dry Run Mode" in result.output
        assert not (tmp_path / "benchmark_output" / "threads").exists()
