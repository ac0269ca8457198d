"""
Run use case — provision the host from a manifest.

This is the top-level flow: resolve and load the manifest, run every
unit through the orchestrator, write the audit entry, then reboot if
anything asked for it. The full vertical slice from manifest to
provisioned host.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from autorpi.adapters.registry import Capabilities, system_capabilities
from autorpi.core.config.loader import ConfigError, load_config, resolve_config_path
from autorpi.core.engine.orchestrator import Orchestrator, Phase
from autorpi.core.engine.unit import Unit
from autorpi.core.models.report import RunReport
from autorpi.core.persistence.audit import AuditEntry, AuditWriter
from autorpi.core.persistence.markers import StateTracker
from autorpi.core.units import default_units

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Result of a provisioning run."""

    report: RunReport | None = None
    config_path: Path | None = None
    error: str | None = None
    reboot_required: bool = False
    rebooted: bool = False

    @property
    def exit_code(self) -> int:
        if self.error or self.report is None:
            return 1
        return self.report.exit_code

    def to_dict(self) -> dict:
        result: dict = {"config_path": str(self.config_path) if self.config_path else None}
        if self.error:
            result["error"] = self.error
            return result
        result["reboot_required"] = self.reboot_required
        result["rebooted"] = self.rebooted
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def run_provision(
    config_path: Path | str | None = None,
    state_dir: Path | str | None = None,
    caps: Capabilities | None = None,
    only: Iterable[str] | None = None,
    force: bool = False,
    reboot: bool = True,
    units: Sequence[Unit] | None = None,
) -> RunResult:
    """Provision the host described by a manifest.

    Args:
        config_path: Manifest path; defaults to ``config.yml``.
        state_dir: Marker directory; defaults to the system state dir.
        caps: Capability bundle; defaults to the real host adapters.
        only: Restrict the run to these unit names.
        force: Ignore completion markers and re-apply every unit.
        reboot: Reboot when required. When False the need is only reported.
        units: Unit list override (defaults to ``default_units()``).

    Returns:
        RunResult with the run report and reboot outcome.
    """
    start = time.monotonic()
    result = RunResult()

    # ── Init ─────────────────────────────────────────────────────
    logger.debug("Run phase: %s", Phase.INIT.value)
    path = resolve_config_path(config_path)
    result.config_path = path

    # ── Loading ──────────────────────────────────────────────────
    logger.debug("Run phase: %s", Phase.LOADING.value)
    try:
        config = load_config(path)
    except ConfigError as e:
        logger.error("%s", e)
        result.error = str(e)
        return result

    if caps is None:
        caps = system_capabilities()
    state = StateTracker(state_dir, force=force)

    # ── Executing ────────────────────────────────────────────────
    try:
        orchestrator = Orchestrator(units if units is not None else default_units(), config, caps, state)
        report = orchestrator.run(only=only)
    except ValueError as e:
        logger.error("%s", e)
        result.error = str(e)
        return result
    result.report = report

    # ── Audit ────────────────────────────────────────────────────
    required = orchestrator.reboot_required(report)
    AuditWriter(state_dir=state.state_dir).write(
        AuditEntry.from_report(
            report,
            config_path=str(path),
            duration_ms=int((time.monotonic() - start) * 1000),
            reboot_required=required,
            context={"forced": force, "only": sorted(only) if only else []},
        )
    )

    # ── Finalizing ───────────────────────────────────────────────
    result.reboot_required = orchestrator.finalize(report, allow_reboot=reboot)
    result.rebooted = result.reboot_required and reboot
    return result
