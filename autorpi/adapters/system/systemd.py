"""
Systemd adapter — service enable/disable/restart via systemctl.
"""

from __future__ import annotations

from autorpi.adapters.base import ProcessRunner, ServiceManager
from autorpi.core.models.receipt import Receipt


class SystemdServiceManager(ServiceManager):
    """Service control through ``systemctl``."""

    def __init__(self, runner: ProcessRunner):
        self._runner = runner

    @property
    def name(self) -> str:
        return "systemd"

    def is_available(self) -> bool:
        return self._runner.which("systemctl")

    def enable(self, unit: str, now: bool = False) -> Receipt:
        argv = ["systemctl", "enable"] + (["--now"] if now else []) + [unit]
        return self._runner.run(argv)

    def disable(self, unit: str, now: bool = False) -> Receipt:
        argv = ["systemctl", "disable"] + (["--now"] if now else []) + [unit]
        return self._runner.run(argv)

    def restart(self, unit: str) -> Receipt:
        return self._runner.run(["systemctl", "restart", unit])

    def is_active(self, unit: str) -> bool:
        return self._runner.run(["systemctl", "is-active", "--quiet", unit]).ok

    def daemon_reload(self) -> Receipt:
        return self._runner.run(["systemctl", "daemon-reload"])
