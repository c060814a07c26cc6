"""Tests for the command-line interface."""

import pytest
import yaml
from click.testing import CliRunner

from tests.helpers import FakeEngine, make_page
from wanderer import cli as cli_module
from wanderer.cli import CONFIG_ERROR_EXIT_CODE, cli
from wanderer.container import DependencyContainer


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "wanderer.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "crawler": {
                    "mode": "strict",
                    "profile_overrides": {"min_delay": 0, "max_delay": 0},
                },
                "storage": {"db_path": str(tmp_path / "w.db"), "pool_size": 1},
                "batch": {"flush_delay": 0.05},
                "monitoring": {"log_file": str(tmp_path / "wanderer.log")},
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def offline_engine(monkeypatch):
    engine = FakeEngine(default=lambda url: make_page(url, title="Hello", text="Nothing special."))

    class OfflineContainer(DependencyContainer):
        async def initialize(self):
            await super().initialize()
            self.override("engine", engine)

    monkeypatch.setattr(cli_module, "DependencyContainer", OfflineContainer)
    return engine


@pytest.mark.unit
class TestCli:
    def test_modes_lists_both_profiles(self):
        result = CliRunner().invoke(cli, ["modes"])
        assert result.exit_code == 0
        assert "wander" in result.output
        assert "strict" in result.output
        assert "max_requests" in result.output

    def test_unknown_mode_exits_with_config_error(self, config_file):
        result = CliRunner().invoke(
            cli, ["--config", str(config_file), "run", "--mode", "explore", "--target", "https://example.com/"]
        )
        assert result.exit_code == CONFIG_ERROR_EXIT_CODE
        assert "Configuration error" in result.output

    def test_invalid_config_file_exits_with_config_error(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"crawler": {"mode": "sideways"}}), encoding="utf-8")
        result = CliRunner().invoke(cli, ["--config", str(path), "modes"])
        assert result.exit_code == 0
        result = CliRunner().invoke(cli, ["--config", str(path), "stats"])
        assert result.exit_code == CONFIG_ERROR_EXIT_CODE

    def test_run_without_seeds_fails(self, config_file):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "run"])
        assert result.exit_code == 1
        assert "no seed URLs" in result.output

    def test_dry_run_prints_plan(self, config_file):
        result = CliRunner().invoke(
            cli,
            [
                "--config",
                str(config_file),
                "run",
                "--mode",
                "wander",
                "--target",
                "https://example.com/",
                "--topic",
                "github",
                "--max-depth",
                "2",
                "--dry-run",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "WANDER mode" in result.output
        assert "https://github.com/trending" in result.output
        assert '"max_depth": 2' in result.output

    def test_run_and_stats(self, config_file, offline_engine):
        result = CliRunner().invoke(
            cli,
            ["--config", str(config_file), "run", "--target", "https://example.com/", "--target", "https://example.org/"],
        )
        assert result.exit_code == 0, result.output
        assert sorted(offline_engine.calls) == ["https://example.com/", "https://example.org/"]
        assert "succeeded" in result.output

        result = CliRunner().invoke(cli, ["--config", str(config_file), "stats", "--mode", "strict", "--json"])
        assert result.exit_code == 0, result.output
        assert '"total": 2' in result.output
        assert '"total_products": 0' in result.output

        result = CliRunner().invoke(cli, ["--config", str(config_file), "stats"])
        assert result.exit_code == 0, result.output
        assert "Total items scraped" in result.output
        assert "general" in result.output
