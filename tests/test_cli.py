"""Tests for the command line interface."""

import pytest
from click.testing import CliRunner
from conftest import PASSWORD, ROUTE_B_ID

from broute import __version__
from broute.cli import cli


@pytest.fixture
def runner():
    """Create a Click test runner."""
    return CliRunner()


class TestCli:
    """Tests for the broute command group."""

    def test_help(self, runner):
        """Test that both commands are listed."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "pairing" in result.output
        assert "run" in result.output

    def test_version(self, runner):
        """Test the version option."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestPairingCommand:
    """Tests for the pairing command."""

    @pytest.mark.parametrize(
        "args",
        [
            ["--id", "0" * 31, "--password", PASSWORD],
            ["--id", ROUTE_B_ID, "--password", "short"],
            ["--id", "é" * 32, "--password", PASSWORD],
            ["--id", ROUTE_B_ID, "--password", PASSWORD, "-T", "15"],
            ["--id", ROUTE_B_ID, "--password", PASSWORD, "-T", "0"],
            ["--password", PASSWORD],
        ],
    )
    def test_invalid_arguments(self, runner, tmp_path, args):
        """Test that bad credentials and durations are usage errors."""
        result = runner.invoke(cli, ["-S", str(tmp_path / "settings.json"), "pairing", *args])
        assert result.exit_code == 2
        assert not (tmp_path / "settings.json").exists()


class TestRunCommand:
    """Tests for the run command."""

    def test_missing_settings(self, runner, tmp_path):
        """Test that a missing settings file is reported as an error."""
        result = runner.invoke(cli, ["-S", str(tmp_path / "missing.json"), "run"])
        assert result.exit_code == 1
        assert "Cannot read settings file" in result.output

    def test_negative_polls(self, runner, tmp_path):
        """Test that a negative poll count is a usage error."""
        result = runner.invoke(cli, ["-S", str(tmp_path / "settings.json"), "run", "--polls", "-1"])
        assert result.exit_code == 2
