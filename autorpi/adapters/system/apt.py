"""
Apt adapter — Debian package installation.

Built on a ProcessRunner so it can be exercised without touching
the host. ``DEBIAN_FRONTEND=noninteractive`` keeps apt from prompting.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from autorpi.adapters.base import PackageInstaller, ProcessRunner
from autorpi.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class AptPackageInstaller(PackageInstaller):
    """Install packages with apt-get; query them with dpkg."""

    def __init__(self, runner: ProcessRunner):
        self._runner = runner

    @property
    def name(self) -> str:
        return "apt"

    def is_available(self) -> bool:
        return self._runner.which("apt-get")

    def update(self) -> Receipt:
        return self._runner.run(["apt-get", "update", "-qq"], env=_APT_ENV)

    def install(self, packages: Sequence[str], no_recommends: bool = True) -> Receipt:
        missing = [p for p in packages if not self.is_installed(p)]
        if not missing:
            return Receipt.success(
                adapter=self.name,
                operation=f"install {' '.join(packages)}",
                output="already installed",
            )

        argv = ["apt-get", "install", "-y"]
        if no_recommends:
            argv.append("--no-install-recommends")
        argv.extend(missing)

        logger.info("Installing packages: %s", ", ".join(missing))
        receipt = self._runner.run(argv, env=_APT_ENV)
        if receipt.failed:
            # Stale index is the usual cause; refresh once and retry
            self.update()
            receipt = self._runner.run(argv, env=_APT_ENV)
        return receipt

    def is_installed(self, package: str) -> bool:
        receipt = self._runner.run(["dpkg-query", "-W", "-f=${Status}", package])
        return receipt.ok and "install ok installed" in receipt.output

    def full_upgrade(self) -> Receipt:
        return self._runner.run(["apt-get", "full-upgrade", "-y"], env=_APT_ENV)
