"""
Status use case — what has been provisioned on this host.

Reads completion markers and the audit ledger; never touches the
manifest or the host configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from autorpi.core.persistence.audit import AuditEntry, AuditWriter
from autorpi.core.persistence.markers import StateTracker
from autorpi.core.units import UNIT_ORDER, default_units

_SELF_TRACKED = frozenset(unit.name for unit in default_units() if unit.tracks_own_state)


@dataclass
class StatusResult:
    """Provisioning state of the host."""

    state_dir: Path | None = None
    markers: list[str] = field(default_factory=list)
    last_run: AuditEntry | None = None

    def _is_configured(self, name: str) -> bool:
        if name in self.markers:
            return True
        # Units tracking their own state only leave per-resource markers
        return name in _SELF_TRACKED and any(m.startswith(f"{name}_") for m in self.markers)

    @property
    def configured_units(self) -> list[str]:
        return [name for name in UNIT_ORDER if self._is_configured(name)]

    @property
    def pending_units(self) -> list[str]:
        return [name for name in UNIT_ORDER if not self._is_configured(name)]

    def to_dict(self) -> dict:
        return {
            "state_dir": str(self.state_dir) if self.state_dir else None,
            "markers": self.markers,
            "configured_units": self.configured_units,
            "last_run": self.last_run.model_dump(mode="json") if self.last_run else None,
        }


def get_status(state_dir: Path | str | None = None) -> StatusResult:
    """Collect markers and the most recent audit entry."""
    state = StateTracker(state_dir)
    recent = AuditWriter(state_dir=state.state_dir).read_recent(1)
    return StatusResult(
        state_dir=state.state_dir,
        markers=state.list_markers(),
        last_run=recent[-1] if recent else None,
    )
