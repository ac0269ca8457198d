"""
Tests for the CLI — global options, manifest check, mock runs and status.
"""

import json
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from autorpi.adapters.registry import mock_capabilities
from autorpi.core.units import UNIT_ORDER
from autorpi.core.use_cases.run import RunResult
from autorpi.main import cli, health


@pytest.fixture
def manifest(tmp_path: Path) -> Path:
    content = textwrap.dedent("""\
        hostname: pi-lab
        username: pi
        user_password: changeme-please
        timezone: Europe/Paris
        enable_desktop: false
        container_runtime: podman
        3dprinter_services: octoprint, fluidd
    """)
    path = tmp_path / "config.yml"
    path.write_text(content)
    return path


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Raspberry Pi" in result.output

    def test_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_list_units(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--list-units"])
        assert result.exit_code == 0
        assert "3dprinter" in result.output

    def test_list_units_json(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--list-units", "--json", "-q"])
        assert result.exit_code == 0
        assert [u["name"] for u in json.loads(result.output)] == list(UNIT_ORDER)


# ── --check ──────────────────────────────────────────────────────────


class TestCheck:
    def test_valid(self, manifest: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["--check", str(manifest)])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_invalid(self, tmp_path: Path):
        bad = tmp_path / "bad.yml"
        bad.write_text("hostname: [oops\n")
        runner = CliRunner()
        result = runner.invoke(cli, ["--check", str(bad)])
        assert result.exit_code == 1
        assert "Configuration errors" in result.output

    def test_json(self, manifest: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["--check", "--json", "-q", str(manifest)])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["valid"] is True

    def test_missing_file(self, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["--check", str(tmp_path / "nope.yml")])
        assert result.exit_code == 1


# ── Mock runs ────────────────────────────────────────────────────────


class TestMockRun:
    def test_summary(self, manifest: Path, tmp_path: Path):
        runner = CliRunner()
        state_dir = tmp_path / "state"
        result = runner.invoke(
            cli, ["--mock", "--no-reboot", "--state-dir", str(state_dir), str(manifest)]
        )
        assert "[mock] Provisioning summary" in result.output
        assert "✓ system" in result.output
        assert "⊘ desktop" in result.output
        assert (state_dir / "system_configured").exists()

    def test_container_services_skipped_without_runtime(self, manifest: Path, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(
            cli, ["--mock", "--no-reboot", "-v", "--state-dir", str(tmp_path / "s"), str(manifest)]
        )
        assert result.exit_code == 0
        assert "configured: fluidd" in result.output
        assert "Skipping 'octoprint'" in result.output

    def test_default_state_dir_is_temporary(self, manifest: Path, monkeypatch):
        monkeypatch.delenv("AUTORPI_STATE_DIR", raising=False)
        runner = CliRunner()
        result = runner.invoke(cli, ["--mock", "--no-reboot", "--only", "network", str(manifest)])
        assert result.exit_code == 0
        assert not Path("/var/lib/rpi-config/state/network_configured").exists()

    def test_json(self, manifest: Path, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["--mock", "--no-reboot", "--json", "-q", "--only", "network", "--state-dir", str(tmp_path / "s"), str(manifest)],
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [r["unit"] for r in data["report"]["results"]] == ["network"]
        assert data["rebooted"] is False

    def test_unknown_only(self, manifest: Path, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(
            cli, ["--mock", "--only", "bogus", "--state-dir", str(tmp_path / "s"), str(manifest)]
        )
        assert result.exit_code == 1
        assert "bogus" in result.output

    def test_missing_manifest(self, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["--mock", "--state-dir", str(tmp_path / "s"), str(tmp_path / "nope.yml")])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_state_dir_from_env(self, manifest: Path, tmp_path: Path):
        state_dir = tmp_path / "env-state"
        runner = CliRunner(env={"AUTORPI_STATE_DIR": str(state_dir)})
        runner.invoke(cli, ["--mock", "--no-reboot", "--only", "network", str(manifest)])
        assert (state_dir / "network_configured").exists()

    def test_missing_report_exits_nonzero(self, manifest: Path, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(
            "autorpi.core.use_cases.run.run_provision", lambda **kwargs: RunResult(config_path=manifest)
        )
        runner = CliRunner()
        result = runner.invoke(cli, ["--mock", "--state-dir", str(tmp_path / "s"), str(manifest)])
        assert result.exit_code == 1
        assert "No provisioning report produced" in result.output


# ── --status ─────────────────────────────────────────────────────────


class TestStatus:
    def test_after_run(self, manifest: Path, tmp_path: Path):
        state_dir = tmp_path / "state"
        runner = CliRunner()
        runner.invoke(cli, ["--mock", "--no-reboot", "--only", "network", "--state-dir", str(state_dir), str(manifest)])

        result = runner.invoke(cli, ["--status", "--state-dir", str(state_dir)])
        assert result.exit_code == 0
        assert "✓ network" in result.output
        assert "Last run" in result.output

    def test_json(self, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["--status", "--json", "-q", "--state-dir", str(tmp_path / "empty")])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["markers"] == []
        assert data["last_run"] is None


# ── autorpi-health ───────────────────────────────────────────────────


class TestHealthCommand:
    def _caps(self, monkeypatch, disk: str):
        caps = mock_capabilities()
        caps.runner.set_output("df", f"Use%\n {disk}%")
        monkeypatch.setattr("autorpi.adapters.registry.system_capabilities", lambda: caps)
        return caps

    def test_healthy(self, monkeypatch):
        self._caps(monkeypatch, "12")
        runner = CliRunner()
        result = runner.invoke(health, [])
        assert result.exit_code == 0
        assert "System Health Check" in result.output
        assert "Overall: HEALTHY" in result.output

    def test_unhealthy_exit_code(self, monkeypatch):
        self._caps(monkeypatch, "91")
        runner = CliRunner()
        result = runner.invoke(health, ["--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["status"] == "unhealthy"
