"""
Orchestrator — the central provisioning loop.

Takes the fixed, ordered unit list and a loaded Config, and for each
unit: checks its toggle, checks its completion marker, executes it,
records the result and moves on. A failing unit never blocks the
next one ("best effort, maximize provisioned surface"); only a unit
flagged ``critical`` stops the run.

Flow:
    config → for each unit: enabled? → marker? → execute → mark → report
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from enum import Enum

from autorpi.adapters.registry import Capabilities
from autorpi.core.engine.unit import Unit, UnitContext
from autorpi.core.models.config import Config
from autorpi.core.models.report import RunReport
from autorpi.core.models.result import UnitResult
from autorpi.core.observability.logging_config import log_step
from autorpi.core.persistence.markers import StateTracker, marker_key

logger = logging.getLogger(__name__)

# OS-level flag written by apt when an upgrade needs a reboot
REBOOT_REQUIRED_FLAG = "/var/run/reboot-required"


class Phase(str, Enum):
    INIT = "init"
    LOADING = "loading"
    EXECUTING = "executing"
    FINALIZING = "finalizing"
    DONE = "done"


class Orchestrator:
    """Runs registered units in order against one Config.

    Args:
        units: Units in execution order. Names must be unique.
        config: Loaded, read-only configuration.
        caps: Capability bundle passed to every unit.
        state: Completion-marker tracker.
    """

    def __init__(
        self,
        units: Sequence[Unit],
        config: Config,
        caps: Capabilities,
        state: StateTracker,
    ):
        names = [u.name for u in units]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate unit names: {', '.join(dupes)}")
        if any(not n for n in names):
            raise ValueError("Every unit needs a name")

        self._units = list(units)
        self._config = config
        self._caps = caps
        self._state = state
        self._phase = Phase.INIT

    @property
    def units(self) -> list[Unit]:
        return list(self._units)

    @property
    def unit_names(self) -> list[str]:
        return [u.name for u in self._units]

    @property
    def phase(self) -> Phase:
        return self._phase

    def _enter(self, phase: Phase) -> None:
        logger.debug("Orchestrator phase: %s → %s", self._phase.value, phase.value)
        self._phase = phase

    # ── Executing ────────────────────────────────────────────────

    def run(self, only: Iterable[str] | None = None) -> RunReport:
        """Execute every unit in order and collect the results.

        Args:
            only: Optional unit names to restrict the run to. Units not
                listed are not reported at all.

        Raises:
            ValueError: If ``only`` names a unit that isn't registered.
        """
        selected = set(only) if only else None
        if selected is not None:
            unknown = sorted(selected - set(self.unit_names))
            if unknown:
                raise ValueError(f"Unknown unit(s): {', '.join(unknown)}")

        report = RunReport(operation_id=generate_operation_id())
        disabled_modules = set(self._config.get_list("disable_modules"))

        self._enter(Phase.EXECUTING)
        for unit in self._units:
            if selected is not None and unit.name not in selected:
                continue

            if report.aborted_by:
                report.add(UnitResult.skip(unit.name, f"not run: critical unit '{report.aborted_by}' failed"))
                continue

            result = self._run_unit(unit, disabled_modules)
            report.add(result)
            self._log_result(result)

            if result.failed and unit.critical:
                logger.error("Critical unit %s failed; remaining units will not run", unit.name)
                report.aborted_by = unit.name

        self._enter(Phase.FINALIZING)
        return report

    def _run_unit(self, unit: Unit, disabled_modules: set[str]) -> UnitResult:
        if unit.name in disabled_modules:
            logger.info("Skipping unit: %s (listed in disable_modules)", unit.name)
            return UnitResult.skip(unit.name, "listed in disable_modules")

        if not unit.enabled(self._config):
            reason = unit.disabled_reason(self._config)
            logger.info("Skipping unit: %s (%s)", unit.name, reason)
            return UnitResult.skip(unit.name, reason)

        key = marker_key(unit.name)
        if not unit.tracks_own_state and self._state.is_done(key):
            logger.info("Skipping unit: %s (already configured)", unit.name)
            return UnitResult.skip(unit.name, "already configured")

        log_step(logger, "Configuring %s", unit.description or unit.name)
        ctx = UnitContext(unit=unit.name, config=self._config, caps=self._caps, state=self._state)
        result = unit.execute(ctx)

        if result.ok and not unit.tracks_own_state:
            try:
                self._state.mark_done(key)
            except OSError as e:
                logger.warning("Could not record completion of %s: %s", unit.name, e)

        return result

    @staticmethod
    def _log_result(result: UnitResult) -> None:
        if result.failed:
            logger.error("Unit %s FAILED: %s", result.unit, result.message)

    # ── Finalizing ───────────────────────────────────────────────

    def reboot_required(self, report: RunReport) -> bool:
        """Any unit asked for a reboot, or the OS flag file exists."""
        if report.reboot_required:
            return True
        return self._caps.files.exists(REBOOT_REQUIRED_FLAG)

    def finalize(self, report: RunReport, allow_reboot: bool = True) -> bool:
        """Reboot the host if required.

        Returns:
            Whether a reboot was required.
        """
        required = self.reboot_required(report)
        if required and allow_reboot:
            log_step(logger, "System requires reboot - rebooting immediately")
            receipt = self._caps.rebooter.reboot()
            if receipt.failed:
                logger.error("Reboot failed: %s", receipt.reason)
        elif required:
            logger.warning("A reboot is required to finish provisioning")
        self._enter(Phase.DONE)
        return required


def generate_operation_id() -> str:
    """Generate a unique run identifier."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"
