"""
RunReport — the ordered results of one provisioning run.

Built once per process invocation by the orchestrator and consumed
only for the summary output, the audit ledger and the exit code.
Never persisted as state.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from autorpi.core.models.result import UnitResult


@dataclass
class RunReport:
    """Result of executing every registered unit."""

    operation_id: str = ""
    results: list[UnitResult] = field(default_factory=list)
    aborted_by: str | None = None  # name of a critical unit that failed

    def add(self, result: UnitResult) -> None:
        self.results.append(result)

    def get(self, unit: str) -> UnitResult | None:
        for result in self.results:
            if result.unit == unit:
                return result
        return None

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def failed_units(self) -> list[str]:
        return [r.unit for r in self.results if r.failed]

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    @property
    def reboot_required(self) -> bool:
        """Whether any unit asked for a reboot."""
        return any(r.reboot_required for r in self.results)

    @property
    def status(self) -> str:
        if self.failed == 0:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    @property
    def exit_code(self) -> int:
        """0 only when no unit failed."""
        return 0 if self.all_ok else 1

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "reboot_required": self.reboot_required,
            "aborted_by": self.aborted_by,
            "results": [r.model_dump(mode="json") for r in self.results],
        }
