"""Tests for the seed-intel CLI."""

from pathlib import Path

from click.testing import CliRunner

from seed_intel.cli.main import cli
from seed_intel.config import CONFIG_FILENAME, Config

UNREACHABLE_URL = "postgresql://127.0.0.1:1/none?connect_timeout=1"


class TestInitCommand:
    """Tests for `seed-intel init`."""

    def test_creates_config(self, tmp_path: Path) -> None:
        """Test init writes a loadable default config."""
        result = CliRunner().invoke(cli, ["init", "--path", str(tmp_path)])

        assert result.exit_code == 0
        assert "Created" in result.output
        config = Config.from_toml(tmp_path / CONFIG_FILENAME)
        assert config.detection.architecture_strategy == "comprehensive"

    def test_refuses_to_overwrite(self, tmp_path: Path) -> None:
        """Test init fails when the file exists."""
        runner = CliRunner()
        runner.invoke(cli, ["init", "--path", str(tmp_path)])

        result = runner.invoke(cli, ["init", "--path", str(tmp_path)])

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_force_overwrites(self, tmp_path: Path) -> None:
        """Test --force replaces an existing file."""
        target = tmp_path / CONFIG_FILENAME
        target.write_text("# stale\n")

        result = CliRunner().invoke(cli, ["init", "--path", str(tmp_path), "--force"])

        assert result.exit_code == 0
        assert "# stale" not in target.read_text()


class TestDatabaseCommands:
    """Tests for commands that need a database."""

    def test_detect_unreachable_database(self) -> None:
        """Test detect reports connection failures and exits 1."""
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["--database-url", UNREACHABLE_URL, "detect"])

        assert result.exit_code == 1
        assert "Error: Could not connect to database" in result.output

    def test_order_unreachable_database(self) -> None:
        """Test order reports connection failures and exits 1."""
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["--database-url", UNREACHABLE_URL, "order"])

        assert result.exit_code == 1
        assert "Error: Could not connect to database" in result.output
