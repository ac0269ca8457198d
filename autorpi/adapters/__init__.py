"""Adapters — capability ports onto the host OS.

Public re-exports for convenient access.
"""

from autorpi.adapters.base import (
    Adapter,
    Downloader,
    FileWriter,
    PackageInstaller,
    ProcessRunner,
    Rebooter,
    ServiceManager,
)
from autorpi.adapters.registry import Capabilities, mock_capabilities, system_capabilities

__all__ = [
    "Adapter",
    "Capabilities",
    "Downloader",
    "FileWriter",
    "PackageInstaller",
    "ProcessRunner",
    "Rebooter",
    "ServiceManager",
    "mock_capabilities",
    "system_capabilities",
]
