"""
Tests for the state tracker (completion markers) and the audit ledger.
"""

from pathlib import Path

from autorpi.core.models.report import RunReport
from autorpi.core.models.result import UnitResult
from autorpi.core.persistence.audit import AuditEntry, AuditWriter
from autorpi.core.persistence.markers import StateTracker, default_state_dir, marker_key

# ── Markers ──────────────────────────────────────────────────────────


class TestMarkerKey:
    def test_unit_only(self):
        assert marker_key("system") == "system"

    def test_qualified(self):
        assert marker_key("3dprinter", "octoprint") == "3dprinter_octoprint"

    def test_sanitised(self):
        assert marker_key("3dprinter", "../etc") == "3dprinter_..-etc"


class TestStateTracker:
    def test_mark_and_query(self, tmp_state_dir: Path):
        state = StateTracker(tmp_state_dir)
        assert not state.is_done("system")
        state.mark_done("system")
        assert state.is_done("system")
        assert (tmp_state_dir / "system_configured").is_file()

    def test_creates_missing_directory(self, tmp_path: Path):
        state = StateTracker(tmp_path / "deep" / "state")
        state.mark_done("network")
        assert state.is_done("network")

    def test_no_temp_files_left(self, tmp_state_dir: Path):
        StateTracker(tmp_state_dir).mark_done("nvme")
        assert [p.name for p in tmp_state_dir.iterdir()] == ["nvme_configured"]

    def test_force_ignores_markers_without_deleting(self, tmp_state_dir: Path):
        StateTracker(tmp_state_dir).mark_done("system")
        forced = StateTracker(tmp_state_dir, force=True)
        assert not forced.is_done("system")
        assert StateTracker(tmp_state_dir).is_done("system")

    def test_per_call_force(self, state: StateTracker):
        state.mark_done("3dprinter_octoprint")
        assert not state.is_done("3dprinter_octoprint", force=True)
        assert state.is_done("3dprinter_octoprint")

    def test_clear(self, state: StateTracker):
        state.mark_done("k3s")
        assert state.clear("k3s")
        assert not state.clear("k3s")
        assert not state.is_done("k3s")

    def test_list_markers(self, state: StateTracker):
        state.mark_done("system")
        state.mark_done("3dprinter_fluidd")
        assert state.list_markers() == ["3dprinter_fluidd", "system"]

    def test_default_dir_from_env(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("AUTORPI_STATE_DIR", str(tmp_path))
        assert default_state_dir() == tmp_path
        assert StateTracker().state_dir == tmp_path


# ── Audit ────────────────────────────────────────────────────────────


class TestAuditWriter:
    def _report(self) -> RunReport:
        report = RunReport(operation_id="run-test")
        report.add(UnitResult.success("system", reboot_required=True))
        report.add(UnitResult.failure("nvme", "install NVMe tools: boom"))
        report.add(UnitResult.skip("desktop", "enable_desktop=false"))
        return report

    def test_default_path_next_to_state_dir(self, tmp_state_dir: Path):
        writer = AuditWriter(state_dir=tmp_state_dir)
        assert writer.path == tmp_state_dir.parent / "audit.ndjson"

    def test_write_and_read(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        writer.write(AuditEntry.from_report(self._report(), config_path="config.yml"))
        entries = writer.read_all()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.operation_id == "run-test"
        assert entry.status == "partial"
        assert entry.units_failed == 1
        assert entry.applied == ["system"]
        assert entry.errors == ["nvme: install NVMe tools: boom"]
        assert entry.reboot_required

    def test_overrides_take_precedence(self):
        entry = AuditEntry.from_report(self._report(), reboot_required=False, duration_ms=12)
        assert entry.reboot_required is False
        assert entry.duration_ms == 12

    def test_append_only(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        for _ in range(3):
            writer.write(AuditEntry.from_report(self._report()))
        assert len(writer.read_all()) == 3
        assert len(writer.read_recent(2)) == 2

    def test_corrupt_line_skipped(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path)
        writer.write(AuditEntry.from_report(self._report()))
        with path.open("a") as f:
            f.write("not json\n")
        assert len(writer.read_all()) == 1

    def test_missing_file(self, tmp_path: Path):
        assert AuditWriter(tmp_path / "none.ndjson").read_all() == []
