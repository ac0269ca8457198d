"""
Desktop units — a minimal LXQt/LabWC Wayland desktop, the Lite XL
editor, and optional SDDM autologin.
"""

from __future__ import annotations

import logging

from autorpi.adapters.net.download import latest_release_asset
from autorpi.core.engine.unit import Unit, UnitContext
from autorpi.core.models.config import Config
from autorpi.core.models.result import UnitResult
from autorpi.core.units.common import chown, require_username, user_home

logger = logging.getLogger(__name__)

DESKTOP_PACKAGES = ["lxqt-core", "labwc", "wayland-protocols", "xwayland", "firefox-esr"]

LITE_XL_REPO = "lite-xl/lite-xl"
LITE_XL_ASSET = r"aarch64.*tar\.gz$"
LITE_XL_STAGING = "/tmp/autorpi/lite-xl"

LITE_XL_DESKTOP_ENTRY = """\
[Desktop Entry]
Name=Lite XL
Comment=A lightweight text editor written in Lua
Exec=lite-xl
Icon=text-editor
Terminal=false
Type=Application
Categories=Development;TextEditor;
Keywords=text;editor;
"""

LABWC_RC = """\
<?xml version="1.0"?>
<labwc_config>
    <core>
        <gap>5</gap>
    </core>
    <theme>
        <name>default</name>
        <cornerRadius>4</cornerRadius>
    </theme>
    <keyboard>
        <keybind key="A-F4">
            <action name="Close"/>
        </keybind>
        <keybind key="A-Tab">
            <action name="NextWindow"/>
        </keybind>
        <keybind key="W-Return">
            <action name="Execute">
                <command>alacritty</command>
            </action>
        </keybind>
        <keybind key="W-e">
            <action name="Execute">
                <command>lite-xl</command>
            </action>
        </keybind>
        <keybind key="W-f">
            <action name="Execute">
                <command>firefox</command>
            </action>
        </keybind>
    </keyboard>
</labwc_config>
"""

START_APPS = """\
#!/bin/bash
# Simple app starter, works under any compositor
lite-xl &
firefox &
"""

LABWC_SESSION = """\
[Desktop Entry]
Name=LabWC
Comment=Lightweight Wayland compositor
Exec=labwc
Type=Application
"""


class DesktopUnit(Unit):
    name = "desktop"
    description = "desktop environment"

    def enabled(self, config: Config) -> bool:
        return config.get_bool("enable_desktop")

    def disabled_reason(self, config: Config) -> str:
        return "enable_desktop=false"

    def apply(self, ctx: UnitContext) -> UnitResult:
        username = require_username(ctx)
        ctx.require(ctx.caps.packages.install(DESKTOP_PACKAGES), "install desktop packages")

        editor = install_lite_xl(ctx)
        self._configure_compositor(ctx, username)
        return ctx.success(
            "desktop installed",
            details={"lite-xl": "installed" if editor else "skipped"},
        )

    def _configure_compositor(self, ctx: UnitContext, username: str) -> None:
        home = user_home(username)
        files = ctx.caps.files
        ctx.require(files.write(f"{home}/.config/labwc/rc.xml", LABWC_RC), "write LabWC rc.xml")
        ctx.require(
            files.write(f"{home}/.local/bin/start-apps", START_APPS, mode=0o755),
            "write start-apps",
        )
        chown(ctx, f"{home}/.config", username)
        chown(ctx, f"{home}/.local", username)


def install_lite_xl(ctx: UnitContext) -> bool:
    """Install the newest aarch64 Lite XL release. Every failure is soft."""
    caps = ctx.caps
    url = latest_release_asset(caps.downloader, LITE_XL_REPO, LITE_XL_ASSET)
    if not url:
        ctx.warn("Could not find a Lite XL download URL; editor not installed")
        return False

    logger.info("Downloading latest Lite XL: %s", url.rsplit("/", 1)[-1])
    archive = f"{LITE_XL_STAGING}.tar.gz"
    if not ctx.attempt(caps.downloader.fetch(url, archive), "download Lite XL"):
        return False

    runner = caps.runner
    steps = [
        (["mkdir", "-p", LITE_XL_STAGING, "/usr/local/share/lite-xl"], "prepare Lite XL directories"),
        (["tar", "-xzf", archive, "-C", LITE_XL_STAGING, "--strip-components=1"], "extract Lite XL"),
        (["install", "-m", "755", f"{LITE_XL_STAGING}/lite-xl", "/usr/local/bin/lite-xl"], "install lite-xl"),
        (["cp", "-r", f"{LITE_XL_STAGING}/data/.", "/usr/local/share/lite-xl/"], "install Lite XL data"),
    ]
    installed = all(ctx.attempt(runner.run(argv), what) for argv, what in steps)
    if installed:
        ctx.attempt(
            caps.files.write("/usr/share/applications/lite-xl.desktop", LITE_XL_DESKTOP_ENTRY),
            "write lite-xl.desktop",
        )
    runner.run(["rm", "-rf", LITE_XL_STAGING, archive])
    return installed


class AutologinUnit(Unit):
    name = "autologin"
    description = "desktop autologin"

    def enabled(self, config: Config) -> bool:
        return config.get_bool("enable_autologin")

    def disabled_reason(self, config: Config) -> str:
        return "Autologin disabled by configuration"

    def apply(self, ctx: UnitContext) -> UnitResult:
        username = require_username(ctx)
        files = ctx.caps.files
        session = ctx.require(
            files.write("/usr/share/wayland-sessions/labwc.desktop", LABWC_SESSION),
            "write LabWC session",
        )
        autologin = ctx.require(
            files.write(
                "/etc/sddm.conf.d/autologin.conf",
                f"[Autologin]\nUser={username}\nSession=labwc.desktop\n",
            ),
            "write SDDM autologin",
        )
        if session.metadata.get("changed") or autologin.metadata.get("changed"):
            ctx.request_reboot("autologin configured")
        return ctx.success(f"autologin configured for {username}")
