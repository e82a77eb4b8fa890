"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


def run_cli_command(args: list[str], database_url: str = "sqlite://", timeout: int = 30) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        args: Arguments after 'python -m mastery_engine.cli.main'
        database_url: Database for commands that touch the record store
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    env = {**os.environ, "DATABASE_URL": database_url, "COLUMNS": "200"}
    result = subprocess.run(
        [sys.executable, "-m", "mastery_engine.cli.main", *args],
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=timeout,
        env=env,
    )

    return result.returncode, result.stdout, result.stderr


@pytest.fixture
def graph_file(tmp_path, graph_data):
    path = tmp_path / "graph.json"
    path.write_text(json.dumps(graph_data), encoding="utf-8")
    return path


@pytest.fixture
def database_url(tmp_path):
    """File-backed SQLite so state survives between CLI invocations."""
    url = f"sqlite:///{tmp_path / 'mastery.db'}"
    code, _, stderr = run_cli_command(["db", "init"], url)
    assert code == 0, f"db init failed: {stderr}"
    return url


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        """Main help should display without errors."""
        code, stdout, stderr = run_cli_command(["--help"])

        assert code == 0, f"Help failed: {stderr}"
        assert "Commands" in stdout
        assert "evaluate" in stdout

    @pytest.mark.parametrize("command", ["reward", "schedule", "record", "irt", "db"])
    def test_command_help(self, command):
        code, _, stderr = run_cli_command([command, "--help"])
        assert code == 0, f"{command} help failed: {stderr}"


class TestSingleResponseCommands:
    """Commands that need no database."""

    def test_reward(self):
        code, stdout, stderr = run_cli_command(
            ["reward", "--correct", "--confidence", "5", "--latency", "20", "--method", "memory"]
        )

        assert code == 0, f"reward failed: {stderr}"
        assert "+1.00" in stdout
        assert "2 weeks" in stdout

    def test_calibration(self):
        code, stdout, stderr = run_cli_command(["calibration", "--", "-1.5"])

        assert code == 0, f"calibration failed: {stderr}"
        assert "0.000" in stdout
        assert "Critical" in stdout

    def test_schedule(self):
        code, stdout, stderr = run_cli_command(["schedule", "0.6", "--table"])

        assert code == 0, f"schedule failed: {stderr}"
        assert "3 days" in stdout
        assert "2024.1-24" in stdout

    def test_trend(self):
        code, stdout, stderr = run_cli_command(["trend", "--", "-1", "-0.5", "0", "0.5", "1"])

        assert code == 0, f"trend failed: {stderr}"
        assert "improving" in stdout

    def test_irt_defaults(self):
        code, stdout, stderr = run_cli_command(["irt", "defaults", "4", "--type", "true_false"])

        assert code == 0, f"irt defaults failed: {stderr}"
        assert "c=0.50" in stdout


class TestGraphCommands:
    def test_transfer(self, graph_file):
        code, stdout, stderr = run_cli_command(["transfer", str(graph_file), "tcp", "75"])

        assert code == 0, f"transfer failed: {stderr}"
        assert "UDP" in stdout
        assert "16.67%" in stdout

    def test_transfer_below_threshold(self, graph_file):
        code, stdout, _ = run_cli_command(["transfer", str(graph_file), "tcp", "50"])
        assert code == 0
        assert "No transfer" in stdout

    def test_keystones(self, graph_file):
        code, stdout, stderr = run_cli_command(["keystones", str(graph_file), "--limit", "3"])

        assert code == 0, f"keystones failed: {stderr}"
        assert "networking" in stdout

    def test_missing_graph_file(self, tmp_path):
        code, stdout, _ = run_cli_command(["keystones", str(tmp_path / "missing.json")])
        assert code == 1
        assert "Cannot load topic graph" in stdout

    def test_evaluate_with_graph(self, graph_file):
        code, stdout, stderr = run_cli_command(
            ["evaluate", "--level", "3", "--mastery", "85", "--attempts", "8", "--topic", "networking",
             "--graph", str(graph_file)]
        )

        assert code == 0, f"evaluate failed: {stderr}"
        assert "ADVANCE" in stdout
        assert "Keystone" in stdout


class TestDatabaseCommands:
    """Commands backed by the record store."""

    def test_record_and_recalculate(self, database_url):
        for confidence in ("5", "4", "2"):
            code, stdout, stderr = run_cli_command(
                ["record", "u1", "tcp", "--correct", "-c", confidence, "-m", "memory", "-q", "q1"],
                database_url,
            )
            assert code == 0, f"record failed: {stderr}"
            assert "u1:tcp@L1" in stdout

        code, stdout, stderr = run_cli_command(["recalculate", "--user", "u1"], database_url)
        assert code == 0, f"recalculate failed: {stderr}"
        assert "Updated 1 records" in stdout

        code, stdout, stderr = run_cli_command(["trend", "--user", "u1"], database_url)
        assert code == 0, f"trend failed: {stderr}"
        assert "Points" in stdout

        code, stdout, stderr = run_cli_command(["evaluate", "--user", "u1", "--topic", "tcp"], database_url)
        assert code == 0, f"evaluate failed: {stderr}"
        assert "Progression: tcp" in stdout

    def test_irt_calibrate(self, database_url):
        run_cli_command(["record", "u1", "tcp", "--incorrect", "-q", "q1"], database_url)

        code, stdout, stderr = run_cli_command(["irt", "calibrate"], database_url)

        assert code == 0, f"irt calibrate failed: {stderr}"
        assert "insufficient_data" in stdout
        assert "Calibrated 0" in stdout
