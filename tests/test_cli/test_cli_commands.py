"""
Tests for validator_analytics/cli.py via typer's CliRunner.

What we test
------------
  - validate-config accepts a TOML file and rejects a missing one.
  - init-db creates the database file.
  - run-scoring-cycle on an empty database is skipped.
  - import-records -> run-scoring-cycle -> rankings / score-breakdown /
    compare-cohorts / recommend, end to end against one temp database.
  - Unknown ranking category and unknown validator exit with code 1.
"""

from __future__ import annotations

import json
import logging

import pytest
from typer.testing import CliRunner

from validator_analytics.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _restore_logging(monkeypatch):
    for var in ("VALIDATOR_ANALYTICS_DB_PATH", "VALIDATOR_ANALYTICS_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def cli_config(tmp_path) -> str:
    """A config file pointing every path into ``tmp_path``."""
    path = tmp_path / "test.toml"
    path.write_text(
        "[database]\n"
        f'db_path = "{(tmp_path / "cli.db").as_posix()}"\n'
        "[logging]\n"
        'level = "ERROR"\n'
        f'log_file = "{(tmp_path / "cli.log").as_posix()}"\n',
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def records_file(tmp_path, sample_records) -> str:
    path = tmp_path / "records.json"
    path.write_text(json.dumps(sample_records), encoding="utf-8")
    return str(path)


@pytest.fixture
def scored(cli_config, records_file) -> str:
    """Initialize, import and score; returns the config path."""
    assert runner.invoke(app, ["init-db", "--config", cli_config]).exit_code == 0
    result = runner.invoke(app, ["import-records", "--file", records_file, "--config", cli_config])
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["run-scoring-cycle", "--config", cli_config])
    assert result.exit_code == 0, result.output
    return cli_config


class TestSetupCommands:
    def test_validate_config(self, cli_config):
        result = runner.invoke(app, ["validate-config", "--config", cli_config])
        assert result.exit_code == 0
        assert "[OK] Config valid." in result.output

    def test_validate_missing_config(self, tmp_path):
        result = runner.invoke(app, ["validate-config", "--config", str(tmp_path / "nope.toml")])
        assert result.exit_code == 1

    def test_init_db(self, cli_config, tmp_path):
        result = runner.invoke(app, ["init-db", "--config", cli_config])
        assert result.exit_code == 0
        assert (tmp_path / "cli.db").exists()

    def test_empty_cycle_skipped(self, cli_config):
        runner.invoke(app, ["init-db", "--config", cli_config])
        result = runner.invoke(app, ["run-scoring-cycle", "--config", cli_config])
        assert result.exit_code == 0
        assert "[SKIPPED]" in result.output

    def test_missing_records_file(self, cli_config, tmp_path):
        result = runner.invoke(
            app, ["import-records", "--file", str(tmp_path / "none.json"), "--config", cli_config]
        )
        assert result.exit_code == 1

    def test_inverted_epoch_window(self, cli_config):
        runner.invoke(app, ["init-db", "--config", cli_config])
        result = runner.invoke(
            app,
            ["run-scoring-cycle", "--config", cli_config, "--start-epoch", "10", "--end-epoch", "5"],
        )
        assert result.exit_code == 1


class TestReadCommands:
    def test_rankings_json(self, scored):
        result = runner.invoke(app, ["rankings", "--config", scored, "--json", "--limit", "3"])
        assert result.exit_code == 0, result.output
        entries = json.loads(result.output)
        assert [e["rank"] for e in entries] == [1, 2, 3]

    def test_rankings_table(self, scored):
        result = runner.invoke(app, ["rankings", "--config", scored, "--exclude-insufficient"])
        assert result.exit_code == 0
        assert "vote-a" in result.output
        assert "vote-f" not in result.output

    def test_unknown_category(self, scored):
        result = runner.invoke(app, ["rankings", "--config", scored, "--category", "vibes"])
        assert result.exit_code == 1

    def test_score_breakdown(self, scored):
        result = runner.invoke(app, ["score-breakdown", "vote-d", "--config", scored])
        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["validator_id"] == "vote-d"
        assert payload["trend_analysis"]["trend_direction"] == "decreasing"

    def test_score_breakdown_unknown(self, scored):
        result = runner.invoke(app, ["score-breakdown", "ghost", "--config", scored])
        assert result.exit_code == 1

    def test_compare_cohorts(self, scored):
        result = runner.invoke(
            app, ["compare-cohorts", "--config", scored, "--min-sample-size", "3"]
        )
        assert result.exit_code == 0
        assert '"status": "ok"' in result.output

    def test_recommend(self, scored):
        result = runner.invoke(app, ["recommend", "alice", "--config", scored])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["strategy_used"] == "maximize_yield"
        assert payload["data_quality"] == "fresh"
