"""
Capability ports — the contract between units and the host OS.

Units only ever touch the machine through these interfaces. Every
operation returns a Receipt and NEVER raises; failures are captured
in the receipt and classified by the calling unit.

To add a backend:
    1. Subclass the port
    2. Implement its abstract operations
    3. Wire it into a Capabilities bundle (see registry.py)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from pathlib import Path

from autorpi.core.models.receipt import Receipt


class Adapter(ABC):
    """Common base for all capability ports."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'apt', 'systemd', 'shell')."""

    def is_available(self) -> bool:
        """Whether the underlying tool exists. Should be fast and never raise."""
        return True

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class ProcessRunner(Adapter):
    """Execute external commands and capture their exit code."""

    @abstractmethod
    def run(
        self,
        argv: Sequence[str],
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: int | None = None,
        cwd: str | None = None,
    ) -> Receipt:
        """Run ``argv`` without a shell. ``return_code`` is set on the receipt."""

    @abstractmethod
    def shell(self, command: str, env: Mapping[str, str] | None = None) -> Receipt:
        """Run ``command`` through ``/bin/sh -c``."""

    @abstractmethod
    def which(self, program: str) -> bool:
        """Whether ``program`` is on PATH."""


class PackageInstaller(Adapter):
    """Install OS packages by name. Installing a present package is a no-op."""

    @abstractmethod
    def update(self) -> Receipt:
        """Refresh the package index."""

    @abstractmethod
    def install(self, packages: Sequence[str], no_recommends: bool = True) -> Receipt:
        """Install ``packages``."""

    @abstractmethod
    def is_installed(self, package: str) -> bool:
        """Whether ``package`` is installed."""

    @abstractmethod
    def full_upgrade(self) -> Receipt:
        """Upgrade every installed package."""


class ServiceManager(Adapter):
    """Control system services by unit name."""

    @abstractmethod
    def enable(self, unit: str, now: bool = False) -> Receipt:
        """Enable ``unit`` (and start it when ``now``)."""

    @abstractmethod
    def disable(self, unit: str, now: bool = False) -> Receipt:
        """Disable ``unit`` (and stop it when ``now``)."""

    @abstractmethod
    def restart(self, unit: str) -> Receipt:
        """Restart ``unit``."""

    @abstractmethod
    def is_active(self, unit: str) -> bool:
        """Whether ``unit`` is running."""

    @abstractmethod
    def daemon_reload(self) -> Receipt:
        """Reload unit files."""


class FileWriter(Adapter):
    """Write files and directories. Rewriting identical content is a no-op."""

    @abstractmethod
    def write(self, path: str | Path, content: str, mode: int | None = None) -> Receipt:
        """Write ``content`` to ``path``, creating parent directories."""

    @abstractmethod
    def append_line(self, path: str | Path, line: str) -> Receipt:
        """Append ``line`` unless the file already contains it."""

    @abstractmethod
    def mkdir(self, path: str | Path, mode: int | None = None) -> Receipt:
        """Create ``path`` and its parents."""

    @abstractmethod
    def exists(self, path: str | Path) -> bool:
        """Whether ``path`` exists."""

    @abstractmethod
    def is_dir(self, path: str | Path) -> bool:
        """Whether ``path`` is a directory."""

    @abstractmethod
    def read(self, path: str | Path) -> str | None:
        """Content of ``path``, or None when missing or unreadable."""


class Downloader(Adapter):
    """Fetch remote resources."""

    @abstractmethod
    def fetch(self, url: str, dest: str | Path) -> Receipt:
        """Download ``url`` to ``dest``."""

    @abstractmethod
    def fetch_text(self, url: str) -> Receipt:
        """Download ``url`` and return its body as the receipt output."""


class Rebooter(Adapter):
    """Request an immediate OS reboot."""

    @abstractmethod
    def reboot(self) -> Receipt:
        """Flush filesystems and reboot."""
