"""
Monitoring unit — Prometheus node_exporter and a periodic health check.
"""

from __future__ import annotations

import logging

from autorpi.adapters.net.download import latest_release_asset
from autorpi.core.engine.unit import Unit, UnitContext
from autorpi.core.models.config import Config
from autorpi.core.models.result import UnitResult

logger = logging.getLogger(__name__)

NODE_EXPORTER_REPO = "prometheus/node_exporter"
NODE_EXPORTER_ASSET = r"linux-arm64\.tar\.gz$"
NODE_EXPORTER_STAGING = "/tmp/autorpi/node_exporter"
NODE_EXPORTER_USER = "node_exporter"
DEFAULT_PORT = 9100
DEFAULT_HEALTH_INTERVAL = 900

NODE_EXPORTER_UNIT = """\
[Unit]
Description=Prometheus Node Exporter
After=network.target

[Service]
User=node_exporter
Group=node_exporter
Type=simple
ExecStart=/usr/local/bin/node_exporter --web.listen-address=:{port}

[Install]
WantedBy=multi-user.target
"""

HEALTH_CHECK_SERVICE = """\
[Unit]
Description=System Health Check
After=network.target

[Service]
Type=oneshot
ExecStart=/usr/bin/env autorpi-health
User=root
"""

HEALTH_CHECK_TIMER = """\
[Unit]
Description=Run the system health check periodically

[Timer]
OnBootSec=5min
OnUnitActiveSec={interval}s
RandomizedDelaySec=30

[Install]
WantedBy=timers.target
"""


class MonitoringUnit(Unit):
    name = "monitoring"
    description = "monitoring"

    def enabled(self, config: Config) -> bool:
        return config.get_bool("install_node_exporter")

    def disabled_reason(self, config: Config) -> str:
        return "install_node_exporter=false"

    def apply(self, ctx: UnitContext) -> UnitResult:
        port = ctx.config.get_int("node_exporter_port", DEFAULT_PORT)
        source = self._install_node_exporter(ctx, port)
        self._schedule_health_checks(ctx)
        return ctx.success(
            f"node_exporter ({source}) on port {port}",
            details={"node_exporter": source},
        )

    def _install_node_exporter(self, ctx: UnitContext, port: int) -> str:
        runner = ctx.caps.runner
        if runner.run(["id", "-u", NODE_EXPORTER_USER]).failed:
            ctx.require(
                runner.run(["useradd", "-rs", "/bin/false", NODE_EXPORTER_USER]),
                "create node_exporter user",
            )

        url = latest_release_asset(ctx.caps.downloader, NODE_EXPORTER_REPO, NODE_EXPORTER_ASSET)
        if not url:
            ctx.warn("Could not find Node Exporter download URL; attempting package install")
            ctx.attempt(ctx.caps.packages.update(), "refresh package index")
            if not ctx.attempt(
                ctx.caps.packages.install(["prometheus-node-exporter"]),
                "Node exporter package not available",
            ):
                return "unavailable"
            return "package"

        logger.info("Downloading node_exporter: %s", url.rsplit("/", 1)[-1])
        archive = f"{NODE_EXPORTER_STAGING}.tar.gz"
        ctx.require(ctx.caps.downloader.fetch(url, archive), "download node_exporter")
        ctx.require(runner.run(["mkdir", "-p", NODE_EXPORTER_STAGING]), "prepare staging directory")
        ctx.require(
            runner.run(["tar", "-xzf", archive, "-C", NODE_EXPORTER_STAGING, "--strip-components=1"]),
            "extract node_exporter",
        )
        ctx.require(
            runner.run(
                ["install", "-m", "755", f"{NODE_EXPORTER_STAGING}/node_exporter", "/usr/local/bin/node_exporter"]
            ),
            "install node_exporter",
        )
        ctx.attempt(
            runner.run(["chown", f"{NODE_EXPORTER_USER}:{NODE_EXPORTER_USER}", "/usr/local/bin/node_exporter"]),
            "chown node_exporter",
        )
        runner.run(["rm", "-rf", NODE_EXPORTER_STAGING, archive])

        services = ctx.caps.services
        ctx.require(
            ctx.caps.files.write("/etc/systemd/system/node_exporter.service", NODE_EXPORTER_UNIT.format(port=port)),
            "write node_exporter.service",
        )
        ctx.require(services.daemon_reload(), "systemctl daemon-reload")
        ctx.attempt(services.enable("node_exporter", now=True), "start node_exporter")
        return "release"

    def _schedule_health_checks(self, ctx: UnitContext) -> None:
        interval = ctx.config.get_int("health_check_interval", DEFAULT_HEALTH_INTERVAL)
        files = ctx.caps.files
        ctx.require(
            files.write("/etc/systemd/system/health-check.service", HEALTH_CHECK_SERVICE),
            "write health-check.service",
        )
        ctx.require(
            files.write("/etc/systemd/system/health-check.timer", HEALTH_CHECK_TIMER.format(interval=interval)),
            "write health-check.timer",
        )
        ctx.attempt(ctx.caps.services.daemon_reload(), "systemctl daemon-reload")
        ctx.attempt(ctx.caps.services.enable("health-check.timer", now=True), "enable health-check.timer")
