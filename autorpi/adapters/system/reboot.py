"""
Reboot adapter — flush filesystems and restart the host.
"""

from __future__ import annotations

import logging

from autorpi.adapters.base import ProcessRunner, Rebooter
from autorpi.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class SystemRebooter(Rebooter):
    def __init__(self, runner: ProcessRunner):
        self._runner = runner

    @property
    def name(self) -> str:
        return "reboot"

    def is_available(self) -> bool:
        return self._runner.which("reboot")

    def reboot(self) -> Receipt:
        self._runner.run(["sync"])
        logger.warning("Rebooting now")
        return self._runner.run(["reboot"])
