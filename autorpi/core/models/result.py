"""
UnitResult — the outcome of one unit in one run.

Created fresh by every unit execution and never mutated afterwards
(the model is frozen). The orchestrator only ever *reads* these;
a unit never signals the orchestrator by raising.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Outcome(str, Enum):
    """Terminal state of a unit execution."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class UnitResult(BaseModel):
    """Result of applying (or not applying) a unit."""

    model_config = ConfigDict(frozen=True)

    unit: str
    outcome: Outcome
    reboot_required: bool = False
    message: str = ""

    # Soft warnings raised while applying
    warnings: tuple[str, ...] = ()
    # Per sub-resource outcome, e.g. {"octoprint": "success"}
    details: dict[str, str] = Field(default_factory=dict)

    finished_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.SUCCESS

    @property
    def failed(self) -> bool:
        return self.outcome == Outcome.FAILED

    @property
    def skipped(self) -> bool:
        return self.outcome == Outcome.SKIPPED

    @classmethod
    def success(cls, unit: str, message: str = "", **kwargs: Any) -> UnitResult:
        """Create a success result."""
        return cls(unit=unit, outcome=Outcome.SUCCESS, message=message, **kwargs)

    @classmethod
    def skip(cls, unit: str, reason: str = "", **kwargs: Any) -> UnitResult:
        """Create a skipped result."""
        return cls(unit=unit, outcome=Outcome.SKIPPED, message=reason, **kwargs)

    @classmethod
    def failure(cls, unit: str, error: str, **kwargs: Any) -> UnitResult:
        """Create a failed result."""
        return cls(unit=unit, outcome=Outcome.FAILED, message=error, **kwargs)

    def with_duration(self, duration_ms: int) -> UnitResult:
        """Copy of this result with timing attached."""
        return self.model_copy(update={"duration_ms": duration_ms})
