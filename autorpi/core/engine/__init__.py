"""Provisioning engine — units and the orchestrator that runs them."""

from autorpi.core.engine.orchestrator import Orchestrator, Phase
from autorpi.core.engine.unit import Unit, UnitContext, UnitFailure

__all__ = ["Orchestrator", "Phase", "Unit", "UnitContext", "UnitFailure"]
