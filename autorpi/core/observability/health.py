"""
Health checker — disk, temperature, NVMe wear and key services.

Run periodically by the health-check systemd timer the monitoring
unit installs, and on demand through ``autorpi-health``. Every check
goes through the capability ports, so the checks run the same against
the real host and against mocks.

Status vocabulary: healthy, degraded, unhealthy, unknown (a check
that could not run, e.g. no NVMe device present).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from autorpi.adapters.registry import Capabilities

logger = logging.getLogger(__name__)

NVME_DEVICE = "/dev/nvme0"
THERMAL_ZONE = "/sys/class/thermal/thermal_zone0/temp"
MONITORED_SERVICES = ("docker", "tailscaled", "node_exporter")


@dataclass
class ComponentHealth:
    """Health of a single component."""

    name: str
    status: str = "unknown"  # healthy, degraded, unhealthy, unknown
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class SystemHealth:
    """Aggregate health of the host."""

    status: str = "healthy"
    timestamp: str = ""
    components: list[ComponentHealth] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def add(self, component: ComponentHealth) -> None:
        self.components.append(component)
        self._recalculate()

    def _recalculate(self) -> None:
        """Worst component wins; unknown checks don't degrade the host."""
        statuses = [c.status for c in self.components]
        if any(s == "unhealthy" for s in statuses):
            self.status = "unhealthy"
        elif any(s == "degraded" for s in statuses):
            self.status = "degraded"
        elif any(s == "healthy" for s in statuses):
            self.status = "healthy"
        else:
            self.status = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "components": [c.to_dict() for c in self.components],
        }


def grade(value: float, ok: float, warn: float, higher_is_better: bool = False) -> str:
    """Map a reading onto healthy/degraded/unhealthy using two thresholds."""
    if higher_is_better:
        if value >= ok:
            return "healthy"
        return "degraded" if value >= warn else "unhealthy"
    if value <= ok:
        return "healthy"
    return "degraded" if value <= warn else "unhealthy"


# ── Checks ──────────────────────────────────────────────────────


def check_disk(caps: Capabilities) -> ComponentHealth:
    """Root filesystem usage: ≤25% healthy, ≤74% degraded."""
    receipt = caps.runner.run(["df", "/", "--output=pcent"])
    match = re.search(r"(\d+)%", receipt.output) if receipt.ok else None
    if not match:
        return ComponentHealth(name="disk", status="degraded", message="Unable to check")

    usage = int(match.group(1))
    return ComponentHealth(
        name="disk",
        status=grade(usage, 25, 74),
        message=f"{usage}%",
        details={"usage_percent": usage},
    )


def _read_celsius(caps: Capabilities) -> float | None:
    if caps.runner.which("vcgencmd"):
        receipt = caps.runner.run(["vcgencmd", "measure_temp"])
        match = re.search(r"temp=([\d.]+)", receipt.output) if receipt.ok else None
        if match:
            return float(match.group(1))

    raw = caps.files.read(THERMAL_ZONE)
    if raw and raw.strip().isdigit():
        return int(raw.strip()) / 1000
    return None


def check_temperature(caps: Capabilities) -> ComponentHealth:
    """CPU temperature in °F: below 120 healthy, below 140 degraded."""
    celsius = _read_celsius(caps)
    if celsius is None:
        return ComponentHealth(name="temperature", message="Temperature sensor not available")

    fahrenheit = round(celsius * 9 / 5 + 32, 1)
    if fahrenheit < 120:
        status = "healthy"
    elif fahrenheit < 140:
        status = "degraded"
    else:
        status = "unhealthy"
    return ComponentHealth(
        name="temperature",
        status=status,
        message=f"{fahrenheit}°F",
        details={"celsius": celsius, "fahrenheit": fahrenheit},
    )


def parse_smart_log(output: str) -> dict[str, int]:
    """Pull temperature, available_spare and percentage_used from ``nvme smart-log``."""
    values: dict[str, int] = {}
    for line in output.splitlines():
        if ":" not in line:
            continue
        key, _, rest = line.partition(":")
        key = key.strip().lower()
        number = re.match(r"\s*(\d+)", rest)
        if number is None:
            continue
        if key == "temperature" and "temperature" not in values:
            values["temperature"] = int(number.group(1))
        elif key in ("available_spare", "percentage_used"):
            values[key] = int(number.group(1))
    return values


def check_nvme(caps: Capabilities) -> ComponentHealth:
    """NVMe temperature (°C), spare capacity and wear."""
    if not caps.files.exists(NVME_DEVICE):
        return ComponentHealth(name="nvme", message="Not detected")
    if not caps.runner.which("nvme"):
        return ComponentHealth(name="nvme", message="nvme-cli not installed")

    receipt = caps.runner.run(["nvme", "smart-log", NVME_DEVICE])
    values = parse_smart_log(receipt.output) if receipt.ok else {}
    if set(values) != {"temperature", "available_spare", "percentage_used"}:
        return ComponentHealth(name="nvme", message="Health data unavailable")

    grades = [
        grade(values["temperature"], 60, 70),
        grade(values["available_spare"], 90, 80, higher_is_better=True),
        grade(values["percentage_used"], 50, 80),
    ]
    for worst in ("unhealthy", "degraded", "healthy"):
        if worst in grades:
            status = worst
            break
    return ComponentHealth(
        name="nvme",
        status=status,
        message=(
            f"temp {values['temperature']}°C, spare {values['available_spare']}%, "
            f"used {values['percentage_used']}%"
        ),
        details=values,
    )


def check_service(caps: Capabilities, service: str) -> ComponentHealth:
    """RUNNING, NOT RUNNING (installed but inactive) or not installed."""
    if caps.services.is_active(service):
        return ComponentHealth(name=service, status="healthy", message="RUNNING")

    receipt = caps.runner.run(["systemctl", "list-unit-files", f"{service}.service"])
    if receipt.ok and f"{service}.service" in receipt.output:
        return ComponentHealth(name=service, status="unhealthy", message="NOT RUNNING")
    return ComponentHealth(name=service, message="Not installed")


def check_system_health(caps: Capabilities, services: tuple[str, ...] = MONITORED_SERVICES) -> SystemHealth:
    """Run every check and return the aggregate status."""
    health = SystemHealth()
    health.add(check_disk(caps))
    health.add(check_temperature(caps))
    health.add(check_nvme(caps))
    for service in services:
        health.add(check_service(caps, service))
    logger.debug("Health check complete: %s", health.status)
    return health
