"""
Tests for the orchestrator — ordering, toggles, markers, failure
isolation, critical abort and reboot handling.
"""

import pytest

from autorpi.core.engine.orchestrator import REBOOT_REQUIRED_FLAG, Orchestrator, Phase
from autorpi.core.engine.unit import Unit, UnitContext, UnitFailure
from autorpi.core.models.config import Config
from autorpi.core.models.result import UnitResult
from autorpi.core.persistence.markers import StateTracker
from autorpi.core.units import UNIT_ORDER, default_units


class FakeUnit(Unit):
    """Records every execution into a shared list."""

    def __init__(self, name, log, fail=False, critical=False, reboot=False, toggle=None, crash=False):
        self.name = name
        self.log = log
        self.fail = fail
        self.critical = critical
        self.reboot = reboot
        self.toggle = toggle
        self.crash = crash

    def enabled(self, config: Config) -> bool:
        if self.toggle is None:
            return True
        return config.get_bool(self.toggle)

    def disabled_reason(self, config: Config) -> str:
        return f"{self.toggle}=false"

    def apply(self, ctx: UnitContext) -> UnitResult:
        self.log.append(self.name)
        if self.crash:
            raise RuntimeError("boom")
        if self.fail:
            raise UnitFailure(f"{self.name} broke")
        if self.reboot:
            ctx.request_reboot("kernel changed")
        return ctx.success()


@pytest.fixture
def log():
    return []


def _orchestrator(units, caps, state, values=None):
    return Orchestrator(units, Config(values or {}), caps, state)


# ── Construction ─────────────────────────────────────────────────────


class TestConstruction:
    def test_duplicate_names_rejected(self, caps, state, log):
        with pytest.raises(ValueError, match="Duplicate"):
            _orchestrator([FakeUnit("a", log), FakeUnit("a", log)], caps, state)

    def test_unnamed_unit_rejected(self, caps, state, log):
        with pytest.raises(ValueError):
            _orchestrator([FakeUnit("", log)], caps, state)

    def test_default_units_order(self):
        assert tuple(u.name for u in default_units()) == UNIT_ORDER

    def test_phases(self, caps, state, log):
        orch = _orchestrator([FakeUnit("a", log)], caps, state)
        assert orch.phase is Phase.INIT
        report = orch.run()
        assert orch.phase is Phase.FINALIZING
        orch.finalize(report)
        assert orch.phase is Phase.DONE


# ── Execution ────────────────────────────────────────────────────────


class TestRun:
    def test_runs_in_order_and_marks(self, caps, state, log):
        report = _orchestrator([FakeUnit("a", log), FakeUnit("b", log)], caps, state).run()
        assert log == ["a", "b"]
        assert [r.unit for r in report.results] == ["a", "b"]
        assert report.all_ok
        assert state.is_done("a") and state.is_done("b")
        assert report.operation_id.startswith("run-")

    def test_disabled_unit_skipped(self, caps, state, log):
        report = _orchestrator([FakeUnit("a", log, toggle="enable_a")], caps, state).run()
        assert log == []
        assert report.get("a").skipped
        assert report.get("a").message == "enable_a=false"
        assert not state.is_done("a")

    def test_disable_modules_wins_over_toggle(self, caps, state, log):
        units = [FakeUnit("a", log, toggle="enable_a"), FakeUnit("b", log)]
        values = {"enable_a": True, "disable_modules": "a, zzz"}
        report = _orchestrator(units, caps, state, values).run()
        assert log == ["b"]
        assert report.get("a").message == "listed in disable_modules"

    def test_marker_skips_unit(self, caps, state, log):
        state.mark_done("a")
        report = _orchestrator([FakeUnit("a", log)], caps, state).run()
        assert log == []
        assert report.get("a").message == "already configured"

    def test_force_reapplies(self, caps, tmp_state_dir, log):
        StateTracker(tmp_state_dir).mark_done("a")
        forced = StateTracker(tmp_state_dir, force=True)
        _orchestrator([FakeUnit("a", log)], caps, forced).run()
        assert log == ["a"]

    def test_failure_does_not_block_later_units(self, caps, state, log):
        units = [FakeUnit("a", log, fail=True), FakeUnit("b", log, crash=True), FakeUnit("c", log)]
        report = _orchestrator(units, caps, state).run()

        assert log == ["a", "b", "c"]
        assert report.failed_units == ["a", "b"]
        assert report.get("a").message == "a broke"
        assert "Unexpected error: boom" in report.get("b").message
        assert report.get("c").ok
        assert not state.is_done("a")
        assert report.exit_code == 1
        assert report.status == "partial"

    def test_critical_failure_aborts(self, caps, state, log):
        units = [FakeUnit("a", log, fail=True, critical=True), FakeUnit("b", log)]
        report = _orchestrator(units, caps, state).run()
        assert log == ["a"]
        assert report.aborted_by == "a"
        assert report.get("b").skipped
        assert "critical unit 'a'" in report.get("b").message

    def test_only_filters(self, caps, state, log):
        units = [FakeUnit("a", log), FakeUnit("b", log), FakeUnit("c", log)]
        report = _orchestrator(units, caps, state).run(only=["c", "a"])
        assert log == ["a", "c"]
        assert report.get("b") is None

    def test_only_unknown_name(self, caps, state, log):
        with pytest.raises(ValueError, match="nope"):
            _orchestrator([FakeUnit("a", log)], caps, state).run(only=["nope"])

    def test_tracks_own_state_gets_no_marker(self, caps, state, log):
        unit = FakeUnit("3dprinter", log)
        unit.tracks_own_state = True
        orch = _orchestrator([unit], caps, state)
        orch.run()
        orch.run()
        assert log == ["3dprinter", "3dprinter"]
        assert not state.is_done("3dprinter")


# ── Reboot ───────────────────────────────────────────────────────────


class TestReboot:
    def test_unit_requests_reboot(self, caps, state, log):
        orch = _orchestrator([FakeUnit("a", log, reboot=True)], caps, state)
        report = orch.run()
        assert orch.finalize(report) is True
        assert caps.rebooter.reboots == 1

    def test_os_flag_triggers_reboot(self, caps, state, log):
        caps.files.files[REBOOT_REQUIRED_FLAG] = "*** System restart required ***\n"
        orch = _orchestrator([FakeUnit("a", log)], caps, state)
        assert orch.finalize(orch.run()) is True
        assert caps.rebooter.reboots == 1

    def test_reboot_suppressed(self, caps, state, log):
        orch = _orchestrator([FakeUnit("a", log, reboot=True)], caps, state)
        assert orch.finalize(orch.run(), allow_reboot=False) is True
        assert caps.rebooter.reboots == 0

    def test_no_reboot_needed(self, caps, state, log):
        orch = _orchestrator([FakeUnit("a", log)], caps, state)
        assert orch.finalize(orch.run()) is False
        assert caps.rebooter.reboots == 0

    def test_failed_unit_reboot_request_still_counts(self, caps, state, log):
        class HalfDone(FakeUnit):
            def apply(self, ctx):
                ctx.request_reboot("cmdline changed")
                raise UnitFailure("installer failed")

        orch = _orchestrator([HalfDone("k3s", log)], caps, state)
        report = orch.run()
        assert report.get("k3s").failed
        assert orch.reboot_required(report)


# ── Full unit set against mock capabilities ──────────────────────────


class TestProvisioningScenarios:
    BASE = {"hostname": "pi-lab", "username": "pi", "user_password": "pw", "timezone": "UTC"}

    def test_minimal_manifest(self, caps, state):
        report = Orchestrator(default_units(), Config(self.BASE), caps, state).run()
        assert report.all_ok
        applied = [r.unit for r in report.results if r.ok]
        assert applied == ["system", "network", "security", "development"]
        assert report.get("containers").skipped
        assert "podman" not in caps.packages.installed

    def test_rerun_is_idempotent(self, caps, state):
        Orchestrator(default_units(), Config(self.BASE), caps, state).run()
        calls = len(caps.runner.call_log)
        writes = len(caps.files.writes)

        report = Orchestrator(default_units(), Config(self.BASE), caps, state).run()
        assert report.succeeded == 0
        assert report.get("system").message == "already configured"
        assert len(caps.runner.call_log) == calls
        assert len(caps.files.writes) == writes

    def test_partial_printer_services_retried(self, caps, state):
        caps.runner.add_program("podman", "git")
        caps.runner.set_failure("podman create --name octoprint")
        values = {**self.BASE, "3dprinter_services": "octoprint,badname,fluidd"}

        first = Orchestrator(default_units(), Config(values), caps, state).run()
        assert first.failed_units == ["3dprinter"]
        assert first.get("monitoring").skipped
        assert first.exit_code == 1

        caps.runner.clear_response("podman create --name octoprint")
        second = Orchestrator(default_units(), Config(values), caps, state).run()
        printer = second.get("3dprinter")
        assert printer.ok
        assert printer.details == {"octoprint": "configured", "badname": "unknown", "fluidd": "already configured"}
        assert second.exit_code == 0

    def test_bogus_runtime_is_podman(self, caps, state):
        values = {**self.BASE, "container_runtime": "bogus"}
        report = Orchestrator(default_units(), Config(values), caps, state).run()
        containers = report.get("containers")
        assert containers.ok
        assert containers.details["runtime"] == "podman"
        assert containers.warnings

    def test_missing_username_fails_dependent_units_only(self, caps, state):
        values = {"hostname": "pi-lab", "enable_desktop": True}
        report = Orchestrator(default_units(), Config(values), caps, state).run()
        assert report.get("system").ok
        assert report.get("desktop").failed
        assert report.get("development").failed
        assert report.get("network").ok

    def test_printer_services_resume_once_runtime_appears(self, caps, state):
        values = {**self.BASE, "3dprinter_services": "octoprint,badname,fluidd"}

        first = Orchestrator(default_units(), Config(values), caps, state).run()
        assert first.get("3dprinter").details == {"octoprint": "skipped", "badname": "unknown", "fluidd": "configured"}
        assert state.is_done("3dprinter_fluidd")
        assert not state.is_done("3dprinter_octoprint")

        caps.runner.add_program("podman")
        caps.runner.reset()
        second = Orchestrator(default_units(), Config(values), caps, state).run()
        printer = second.get("3dprinter")
        assert printer.details == {"octoprint": "configured", "badname": "unknown", "fluidd": "already configured"}
        assert state.is_done("3dprinter_octoprint")
        assert caps.runner.calls_matching("git") == []

    def test_manifest_without_runtime_installs_no_containers(self, caps, state):
        report = Orchestrator(default_units(), Config({"username": "pi"}), caps, state).run()
        assert report.get("containers").skipped
        assert not state.is_done("containers")
        assert not {"podman", "fuse-overlayfs", "slirp4netns", "docker.io"} & caps.packages.installed

    def test_nvme_without_device_leaves_no_marker(self, caps, state):
        values = {**self.BASE, "nvme_enable": True}
        report = Orchestrator(default_units(), Config(values), caps, state).run()
        assert report.get("nvme").skipped
        assert not state.is_done("nvme")
