"""
Provisioning units in their fixed execution order.

The order matters: the system unit creates the user every later unit
configures, and the 3D-printer services need the runtimes the
containers unit installs.
"""

from __future__ import annotations

from autorpi.core.engine.unit import Unit
from autorpi.core.units.cluster import K3sUnit, TailscaleUnit
from autorpi.core.units.containers import ContainerRuntime, ContainersUnit
from autorpi.core.units.desktop import AutologinUnit, DesktopUnit
from autorpi.core.units.development import DevelopmentUnit
from autorpi.core.units.monitoring import MonitoringUnit
from autorpi.core.units.network import NetworkUnit
from autorpi.core.units.nvme import NvmeUnit
from autorpi.core.units.printing import KNOWN_SERVICES, PrinterService, PrinterUnit
from autorpi.core.units.security import SecurityUnit
from autorpi.core.units.system import SystemUnit

UNIT_ORDER = (
    "system",
    "nvme",
    "network",
    "security",
    "desktop",
    "autologin",
    "development",
    "containers",
    "tailscale",
    "k3s",
    "3dprinter",
    "monitoring",
)


def default_units() -> list[Unit]:
    """A fresh instance of every unit, in execution order."""
    return [
        SystemUnit(),
        NvmeUnit(),
        NetworkUnit(),
        SecurityUnit(),
        DesktopUnit(),
        AutologinUnit(),
        DevelopmentUnit(),
        ContainersUnit(),
        TailscaleUnit(),
        K3sUnit(),
        PrinterUnit(),
        MonitoringUnit(),
    ]


__all__ = [
    "KNOWN_SERVICES",
    "UNIT_ORDER",
    "ContainerRuntime",
    "PrinterService",
    "default_units",
]
