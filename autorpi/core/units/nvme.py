"""
NVMe unit — I/O scheduler, power management, mount options and TRIM
for a Pi booting from NVMe.
"""

from __future__ import annotations

import re
from datetime import date

from autorpi.core.engine.unit import Unit, UnitContext
from autorpi.core.models.config import Config
from autorpi.core.models.result import UnitResult

NVME_DEVICE = "/dev/nvme0"

SCHEDULER_RULE = """\
# Set I/O scheduler to none for NVMe devices
ACTION=="add|change", KERNEL=="nvme*", ATTR{queue/scheduler}="none"
"""

POWER_RULE = """\
# Set NVMe power management for performance
ACTION=="add|change", KERNEL=="nvme*", SUBSYSTEM=="pci", ATTR{power/control}="performance"
"""

_ROOT_OPTIONS = ("noatime", "nodiratime", "discard")


def tune_root_mount(fstab: str) -> str:
    """Add noatime,nodiratime,discard to the root entry's ``defaults``.

    Options already present are not repeated, so the result is stable
    under repeated application.
    """
    lines = fstab.splitlines()
    for i, line in enumerate(lines):
        fields = line.split()
        if len(fields) < 4 or line.lstrip().startswith("#") or fields[1] != "/":
            continue
        options = fields[3].split(",")
        if "defaults" not in options:
            continue
        options += [opt for opt in _ROOT_OPTIONS if opt not in options]
        lines[i] = re.sub(re.escape(fields[3]), ",".join(options), line, count=1)
    return "\n".join(lines) + "\n"


class NvmeUnit(Unit):
    name = "nvme"
    description = "NVMe optimizations"

    def enabled(self, config: Config) -> bool:
        return config.get_bool("nvme_enable")

    def disabled_reason(self, config: Config) -> str:
        return "nvme_enable=false"

    def apply(self, ctx: UnitContext) -> UnitResult:
        if not ctx.caps.files.exists(NVME_DEVICE):
            ctx.warn("NVMe device not detected, skipping optimizations")
            return ctx.skipped("no NVMe device present")

        ctx.require(ctx.caps.packages.install(["nvme-cli", "smartmontools"]), "install NVMe tools")

        files = ctx.caps.files
        scheduler = ctx.require(
            files.write("/etc/udev/rules.d/60-nvme-scheduler.rules", SCHEDULER_RULE),
            "install NVMe scheduler rule",
        )
        if scheduler.metadata.get("changed"):
            ctx.request_reboot("NVMe I/O scheduler rule installed")
        power = ctx.require(
            files.write("/etc/udev/rules.d/61-nvme-power.rules", POWER_RULE),
            "install NVMe power rule",
        )
        if power.metadata.get("changed"):
            ctx.request_reboot("NVMe power management rule installed")

        self._configure_mount_options(ctx)
        ctx.attempt(ctx.caps.services.enable("fstrim.timer", now=True), "enable fstrim.timer")
        return ctx.success("NVMe optimizations applied")

    def _configure_mount_options(self, ctx: UnitContext) -> None:
        files = ctx.caps.files
        fstab = files.read("/etc/fstab")
        if fstab is None:
            ctx.warn("/etc/fstab not found; mount options unchanged")
            return

        mounts = ctx.caps.runner.run(["findmnt", "-n", "-o", "SOURCE", "/"])
        if not (mounts.ok and "nvme" in mounts.output):
            return

        tuned = tune_root_mount(fstab)
        if tuned == fstab:
            return
        backup = f"/etc/fstab.backup.{date.today():%Y%m%d}"
        ctx.attempt(files.write(backup, fstab), "back up /etc/fstab")
        ctx.require(files.write("/etc/fstab", tuned), "update /etc/fstab")
        ctx.request_reboot("root mount options changed")
