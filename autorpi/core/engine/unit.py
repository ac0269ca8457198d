"""
Unit — one named, independently toggled provisioning step.

A unit declares when it is enabled (a pure predicate over the Config)
and how to apply itself through the capability ports. ``apply`` must
converge: running it again on an already-provisioned host leaves the
same end state.

Inside ``apply`` every capability call is classified at the call site:

    ctx.require(receipt, "write resolved.conf")   # central → UnitFailure
    ctx.attempt(receipt, "restart resolved")      # optional → soft warning

``Unit.execute`` is the only way the orchestrator runs a unit. It turns
UnitFailure, and anything unexpected, into a Failed UnitResult, so no
exception ever escapes a unit.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from autorpi.adapters.registry import Capabilities
from autorpi.core.models.config import Config
from autorpi.core.models.receipt import Receipt
from autorpi.core.models.result import UnitResult
from autorpi.core.observability.logging_config import log_success
from autorpi.core.persistence.markers import StateTracker

logger = logging.getLogger(__name__)


class UnitFailure(Exception):
    """A unit could not achieve its primary objective."""


@dataclass
class UnitContext:
    """Everything a unit needs to apply itself.

    The config is shared read-only; the state tracker is only used by
    units that track their own sub-resources. Warnings and reboot
    requests are collected here and folded into the UnitResult.
    """

    unit: str
    config: Config
    caps: Capabilities
    state: StateTracker
    warnings: list[str] = field(default_factory=list)
    reboot_reasons: list[str] = field(default_factory=list)

    @property
    def reboot_required(self) -> bool:
        return bool(self.reboot_reasons)

    def warn(self, message: str) -> None:
        """Record a soft warning: logged, never fails the unit."""
        logger.warning("[%s] %s", self.unit, message)
        self.warnings.append(message)

    def request_reboot(self, reason: str) -> None:
        logger.info("[%s] Reboot required: %s", self.unit, reason)
        self.reboot_reasons.append(reason)

    def require(self, receipt: Receipt, what: str) -> Receipt:
        """Fail the unit if ``receipt`` failed."""
        if receipt.failed:
            raise UnitFailure(f"{what}: {receipt.reason}")
        return receipt

    def attempt(self, receipt: Receipt, what: str) -> bool:
        """Warn (but carry on) if ``receipt`` failed."""
        if receipt.failed:
            self.warn(f"{what}: {receipt.reason}")
            return False
        return True

    def success(self, message: str = "", details: dict[str, str] | None = None) -> UnitResult:
        return UnitResult.success(
            self.unit,
            message,
            reboot_required=self.reboot_required,
            warnings=tuple(self.warnings),
            details=details or {},
        )

    def skipped(self, reason: str, details: dict[str, str] | None = None) -> UnitResult:
        return UnitResult.skip(
            self.unit,
            reason,
            reboot_required=self.reboot_required,
            warnings=tuple(self.warnings),
            details=details or {},
        )

    def failure(self, error: str, details: dict[str, str] | None = None) -> UnitResult:
        return UnitResult.failure(
            self.unit,
            error,
            reboot_required=self.reboot_required,
            warnings=tuple(self.warnings),
            details=details or {},
        )


class Unit(ABC):
    """Abstract base class for provisioning units.

    To create a new unit:
        1. Subclass Unit and set ``name`` / ``description``
        2. Override ``enabled`` if the unit has a toggle
        3. Implement ``apply`` using only ``ctx.caps``
        4. Add it to ``default_units()`` at the right position
    """

    name: str = ""
    description: str = ""
    # A failing critical unit stops the run
    critical: bool = False
    # Units that keep per-sub-resource markers skip the unit-level marker
    tracks_own_state: bool = False

    def enabled(self, config: Config) -> bool:
        """Whether the manifest turns this unit on. Defaults to enabled."""
        return True

    def disabled_reason(self, config: Config) -> str:
        """Human-readable reason shown when ``enabled`` is False."""
        return "disabled by configuration"

    @abstractmethod
    def apply(self, ctx: UnitContext) -> UnitResult:
        """Converge the host to this unit's desired state."""

    def execute(self, ctx: UnitContext) -> UnitResult:
        """Run ``apply`` and return a result. MUST never raise."""
        start = time.monotonic()
        try:
            result = self.apply(ctx)
        except UnitFailure as e:
            result = ctx.failure(str(e))
        except Exception as e:
            logger.exception("Unit %s raised unexpectedly", self.name)
            result = ctx.failure(f"Unexpected error: {e}")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.ok:
            log_success(logger, "%s: %s", self.name, result.message or "done")
        return result.with_duration(elapsed_ms)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
