"""
Security unit — unattended upgrades, service trimming and SSH key access.
"""

from __future__ import annotations

from autorpi.core.engine.unit import Unit, UnitContext
from autorpi.core.models.result import UnitResult
from autorpi.core.units.common import chown, user_home

UNATTENDED_CONF = "/etc/apt/apt.conf.d/50unattended-upgrades"
NO_AUTO_REBOOT = 'Unattended-Upgrade::Automatic-Reboot "false";'

UNNECESSARY_SERVICES = ("bluetooth.service", "avahi-daemon.service")


class SecurityUnit(Unit):
    name = "security"
    description = "security settings"

    def apply(self, ctx: UnitContext) -> UnitResult:
        done = []
        if self._configure_auto_updates(ctx):
            done.append("auto-updates")
        if self._disable_services(ctx):
            done.append("services trimmed")
        if self._install_ssh_key(ctx):
            done.append("ssh key")
        return ctx.success(", ".join(done) or "nothing to do")

    def _configure_auto_updates(self, ctx: UnitContext) -> bool:
        if not ctx.config.get_bool("enable_auto_updates", default=True):
            return False

        ctx.require(ctx.caps.packages.install(["unattended-upgrades"]), "install unattended-upgrades")
        ctx.attempt(
            ctx.caps.runner.run(["dpkg-reconfigure", "-plow", "unattended-upgrades"]),
            "dpkg-reconfigure unattended-upgrades",
        )
        ctx.attempt(ctx.caps.files.append_line(UNATTENDED_CONF, NO_AUTO_REBOOT), "disable automatic reboot")
        return True

    def _disable_services(self, ctx: UnitContext) -> bool:
        if not ctx.config.get_bool("disable_unnecessary_services"):
            return False
        for service in UNNECESSARY_SERVICES:
            ctx.attempt(ctx.caps.services.disable(service), f"disable {service}")
        return True

    def _install_ssh_key(self, ctx: UnitContext) -> bool:
        key = ctx.config.get("ssh_public_key").strip()
        username = ctx.config.get("username").strip()
        if not key:
            return False
        if not username:
            ctx.warn("ssh_public_key is set but no username is configured")
            return False

        ssh_dir = f"{user_home(username)}/.ssh"
        files = ctx.caps.files
        ctx.require(files.mkdir(ssh_dir, mode=0o700), f"create {ssh_dir}")
        ctx.require(files.append_line(f"{ssh_dir}/authorized_keys", key), "install SSH public key")
        ctx.attempt(
            ctx.caps.runner.run(["chmod", "600", f"{ssh_dir}/authorized_keys"]),
            "restrict authorized_keys",
        )
        chown(ctx, ssh_dir, username)
        return True
