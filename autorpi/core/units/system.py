"""
System unit — hostname, primary user, sudo, timezone, keyboard, locale
and a full package upgrade.
"""

from __future__ import annotations

import re

from autorpi.core.engine.unit import Unit, UnitContext
from autorpi.core.models.result import UnitResult

_HOSTS_LOOPBACK = "127.0.1.1"


def rewrite_hosts(hosts: str, hostname: str) -> str:
    """Point the 127.0.1.1 entry of an /etc/hosts file at ``hostname``."""
    entry = f"{_HOSTS_LOOPBACK}\t{hostname}"
    lines = hosts.splitlines()
    replaced = False
    for i, line in enumerate(lines):
        if line.split() and line.split()[0] == _HOSTS_LOOPBACK:
            lines[i] = entry
            replaced = True
    if not replaced:
        lines.append(entry)
    return "\n".join(lines) + "\n"


def enable_locale(locale_gen: str, locale: str) -> str:
    """Uncomment ``locale`` in a locale.gen file (appending it if absent)."""
    pattern = re.compile(rf"^#\s*({re.escape(locale)}(\s.*)?)$", re.MULTILINE)
    updated = pattern.sub(r"\1", locale_gen)
    if not re.search(rf"^{re.escape(locale)}(\s|$)", updated, re.MULTILINE):
        updated = updated.rstrip("\n") + f"\n{locale} UTF-8\n"
    return updated


class SystemUnit(Unit):
    name = "system"
    description = "system settings"

    def apply(self, ctx: UnitContext) -> UnitResult:
        self._configure_hostname(ctx)
        username = self._create_user(ctx)
        self._configure_timezone(ctx)
        self._configure_keyboard(ctx)
        self._configure_locale(ctx)
        self._update_system(ctx)
        return ctx.success(f"system configured (user={username or '-'})")

    def _configure_hostname(self, ctx: UnitContext) -> None:
        hostname = ctx.config.get("hostname").strip()
        if not hostname:
            ctx.warn("No hostname configured; leaving hostname unchanged")
            return

        files = ctx.caps.files
        hosts = files.read("/etc/hosts")
        if hosts is not None:
            ctx.require(files.write("/etc/hosts", rewrite_hosts(hosts, hostname)), "update /etc/hosts")
        ctx.require(files.write("/etc/hostname", f"{hostname}\n"), "write /etc/hostname")
        ctx.attempt(
            ctx.caps.runner.run(["hostnamectl", "set-hostname", hostname]),
            "hostnamectl set-hostname",
        )

    def _create_user(self, ctx: UnitContext) -> str:
        username = ctx.config.get("username").strip()
        if not username:
            ctx.warn("No username configured; skipping user setup")
            return ""

        runner = ctx.caps.runner
        if runner.run(["id", "-u", username]).failed:
            ctx.require(
                runner.run(["useradd", "-m", "-G", "sudo", "-s", "/bin/bash", username]),
                f"create user {username}",
            )

        password = ctx.config.get("user_password")
        if password:
            ctx.require(
                runner.run(["chpasswd"], input=f"{username}:{password}\n"),
                f"set password for {username}",
            )
        else:
            ctx.warn(f"No user_password configured; password for {username} left unchanged")

        ctx.require(
            ctx.caps.files.write(
                f"/etc/sudoers.d/010_{username}-nopasswd",
                f"{username} ALL=(ALL) NOPASSWD: ALL\n",
                mode=0o440,
            ),
            "configure passwordless sudo",
        )
        return username

    def _configure_timezone(self, ctx: UnitContext) -> None:
        timezone = ctx.config.get("timezone").strip()
        if timezone:
            ctx.attempt(
                ctx.caps.runner.run(["timedatectl", "set-timezone", timezone]),
                f"set timezone {timezone}",
            )

    def _configure_keyboard(self, ctx: UnitContext) -> None:
        layout = ctx.config.get("keyboard_layout").strip()
        if not layout:
            return
        current = ctx.caps.files.read("/etc/default/keyboard")
        if current is None:
            ctx.warn("/etc/default/keyboard not found; keyboard layout not set")
            return
        line = f'XKBLAYOUT="{layout}"'
        if re.search(r"^XKBLAYOUT=.*$", current, re.MULTILINE):
            updated = re.sub(r"^XKBLAYOUT=.*$", line, current, flags=re.MULTILINE)
        else:
            updated = current.rstrip("\n") + f"\n{line}\n"
        ctx.attempt(ctx.caps.files.write("/etc/default/keyboard", updated), "set keyboard layout")

    def _configure_locale(self, ctx: UnitContext) -> None:
        locale = ctx.config.get("locale").strip()
        if not locale:
            return
        current = ctx.caps.files.read("/etc/locale.gen")
        if current is not None:
            ctx.attempt(
                ctx.caps.files.write("/etc/locale.gen", enable_locale(current, locale)),
                "update /etc/locale.gen",
            )
        runner = ctx.caps.runner
        if ctx.attempt(runner.run(["locale-gen"]), "locale-gen"):
            ctx.attempt(runner.run(["update-locale", f"LANG={locale}"]), "update-locale")

    def _update_system(self, ctx: UnitContext) -> None:
        packages = ctx.caps.packages
        if ctx.attempt(packages.update(), "refresh package index"):
            ctx.attempt(packages.full_upgrade(), "upgrade system packages")
