"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from autorpi.adapters.registry import Capabilities, mock_capabilities
from autorpi.core.engine.unit import UnitContext
from autorpi.core.models.config import Config
from autorpi.core.persistence.markers import StateTracker


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for completion markers."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def state(tmp_state_dir: Path) -> StateTracker:
    return StateTracker(tmp_state_dir)


@pytest.fixture
def caps() -> Capabilities:
    """In-memory capabilities; nothing touches the host."""
    return mock_capabilities()


@pytest.fixture
def make_ctx(caps: Capabilities, state: StateTracker):
    """Build a UnitContext for a unit name and a config mapping."""

    def _make(unit: str, values: dict | None = None) -> UnitContext:
        return UnitContext(unit=unit, config=Config(values or {}), caps=caps, state=state)

    return _make
