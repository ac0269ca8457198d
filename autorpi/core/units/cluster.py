"""
Remote-access and cluster units — Tailscale and a K3s node.

Both install through the vendor's shell installer, fetched with the
Downloader and run with ``sh``.
"""

from __future__ import annotations

from autorpi.core.engine.unit import Unit, UnitContext, UnitFailure
from autorpi.core.models.config import Config
from autorpi.core.models.result import UnitResult

TAILSCALE_INSTALLER = "https://tailscale.com/install.sh"
K3S_INSTALLER = "https://get.k3s.io"

BOOT_CMDLINE = "/boot/firmware/cmdline.txt"
CGROUP_FLAGS = "cgroup_memory=1 cgroup_enable=memory"

SCRIPT_DIR = "/tmp/autorpi"


def run_installer(ctx: UnitContext, url: str, args: list[str] | None = None, env: dict[str, str] | None = None) -> None:
    """Download an installer script and run it; any failure fails the unit."""
    script = f"{SCRIPT_DIR}/{ctx.unit}-install.sh"
    ctx.require(ctx.caps.downloader.fetch(url, script), f"download {url}")
    ctx.require(ctx.caps.runner.run(["sh", script, *(args or [])], env=env), f"{ctx.unit} installer")


class TailscaleUnit(Unit):
    name = "tailscale"
    description = "Tailscale"

    def enabled(self, config: Config) -> bool:
        return config.get_bool("install_tailscale")

    def disabled_reason(self, config: Config) -> str:
        return "install_tailscale=false"

    def apply(self, ctx: UnitContext) -> UnitResult:
        if ctx.caps.runner.which("tailscale"):
            return ctx.success("Tailscale already installed")
        run_installer(ctx, TAILSCALE_INSTALLER)
        return ctx.success("Tailscale installed")


def enable_memory_cgroup(cmdline: str) -> str:
    """Kernel command line with the memory cgroup flags appended once."""
    if "cgroup_memory=1" in cmdline:
        return cmdline
    return f"{cmdline.rstrip()} {CGROUP_FLAGS}\n"


class K3sUnit(Unit):
    name = "k3s"
    description = "K3s"

    def enabled(self, config: Config) -> bool:
        return config.get_bool("install_k3s")

    def disabled_reason(self, config: Config) -> str:
        return "K3s installation disabled by configuration"

    def apply(self, ctx: UnitContext) -> UnitResult:
        role = ctx.config.get("k3s_role", "agent").strip().lower() or "agent"
        if role not in ("agent", "server"):
            raise UnitFailure(f"Unknown k3s_role '{role}' (expected agent or server)")

        server = ctx.config.get("k3s_server").strip()
        token = ctx.config.get("k3s_token").strip()
        if not token or (role == "agent" and not server):
            ctx.warn("K3s install requested but k3s_server/k3s_token not provided")
            return ctx.skipped("k3s_server/k3s_token not provided")

        self._enable_cgroups(ctx)

        env = {"K3S_TOKEN": token}
        if server:
            env["K3S_URL"] = server
        run_installer(ctx, K3S_INSTALLER, args=[role], env=env)
        return ctx.success(f"K3s installed as {role}", details={"role": role})

    def _enable_cgroups(self, ctx: UnitContext) -> None:
        files = ctx.caps.files
        cmdline = files.read(BOOT_CMDLINE)
        if cmdline is None:
            ctx.warn(f"{BOOT_CMDLINE} not found; memory cgroup flags not set")
            return
        updated = enable_memory_cgroup(cmdline)
        if updated != cmdline:
            ctx.require(files.write(BOOT_CMDLINE, updated), "enable memory cgroup")
            ctx.request_reboot("kernel command line changed")
