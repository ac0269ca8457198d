"""
Capability registry — the bundle of ports handed to every unit.

Units never construct adapters themselves; the entry point builds one
Capabilities bundle (real or mock) and the orchestrator passes it by
reference into every unit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from autorpi.adapters.base import (
    Adapter,
    Downloader,
    FileWriter,
    PackageInstaller,
    ProcessRunner,
    Rebooter,
    ServiceManager,
)
from autorpi.adapters.mock import (
    MockDownloader,
    MockFileWriter,
    MockPackageInstaller,
    MockProcessRunner,
    MockRebooter,
    MockServiceManager,
)
from autorpi.adapters.net.download import HttpDownloader
from autorpi.adapters.shell.command import SubprocessRunner
from autorpi.adapters.shell.filesystem import LocalFileWriter
from autorpi.adapters.system.apt import AptPackageInstaller
from autorpi.adapters.system.reboot import SystemRebooter
from autorpi.adapters.system.systemd import SystemdServiceManager

logger = logging.getLogger(__name__)


@dataclass
class Capabilities:
    """One adapter per capability port."""

    runner: ProcessRunner
    packages: PackageInstaller
    services: ServiceManager
    files: FileWriter
    downloader: Downloader
    rebooter: Rebooter

    def status(self) -> dict[str, dict[str, Any]]:
        """Availability of every adapter in the bundle."""
        status = {}
        for f in fields(self):
            adapter: Adapter = getattr(self, f.name)
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[f.name] = {
                "name": adapter.name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status


def system_capabilities(root: str | Path = "/") -> Capabilities:
    """Adapters that act on the real host."""
    runner = SubprocessRunner()
    caps = Capabilities(
        runner=runner,
        packages=AptPackageInstaller(runner),
        services=SystemdServiceManager(runner),
        files=LocalFileWriter(root),
        downloader=HttpDownloader(),
        rebooter=SystemRebooter(runner),
    )
    for name, info in caps.status().items():
        if not info["available"]:
            logger.debug("Adapter %s (%s) is not available on this host", name, info["name"])
    return caps


def mock_capabilities(programs: tuple[str, ...] = ()) -> Capabilities:
    """In-memory adapters: nothing touches the host.

    Args:
        programs: Executables the mock runner reports as present on PATH.
    """
    return Capabilities(
        runner=MockProcessRunner(programs),
        packages=MockPackageInstaller(),
        services=MockServiceManager(),
        files=MockFileWriter(),
        downloader=MockDownloader(),
        rebooter=MockRebooter(),
    )
