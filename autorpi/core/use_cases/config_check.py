"""
Config check use case — validate a manifest and report issues.

Nothing on the host is touched. Errors make the manifest unusable;
warnings flag values that load fine but probably don't do what the
author intended.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from autorpi.core.config.loader import ConfigError, load_config, resolve_config_path
from autorpi.core.models.config import Config
from autorpi.core.units import KNOWN_SERVICES, UNIT_ORDER

REQUIRED_KEYS = ("hostname", "username", "timezone", "locale")

BOOLEAN_KEYS = (
    "nvme_enable",
    "install_tailscale",
    "enable_auto_updates",
    "enable_desktop",
    "enable_autologin",
    "install_k3s",
    "install_node_exporter",
    "disable_unnecessary_services",
    "install_alacritty",
    "3dprinter_force_reconfigure",
)

VALID_RUNTIMES = ("none", "podman", "docker", "both")

HOSTNAME_RE = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")
WEAK_PASSWORD_RE = re.compile(r"^(changeme.*|password)$", re.IGNORECASE)


@dataclass
class ConfigCheckResult:
    """Result of manifest validation."""

    valid: bool = False
    config: Config | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "key_count": len(self.config) if self.config is not None else 0,
        }


def check_config(config_path: Path | str | None = None) -> ConfigCheckResult:
    """Validate a provisioning manifest.

    Args:
        config_path: Optional explicit path; defaults to ``config.yml``.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult(config_path=resolve_config_path(config_path))

    try:
        config = load_config(result.config_path)
    except ConfigError as e:
        result.errors.append(str(e))
        return result
    result.config = config

    # Required keys
    for key in REQUIRED_KEYS:
        if not config.get(key).strip():
            result.errors.append(f"Missing required field: {key}")

    hostname = config.get("hostname").strip()
    if hostname and not HOSTNAME_RE.match(hostname):
        result.errors.append(
            f"Invalid hostname '{hostname}': use lowercase letters, digits and hyphens (max 63 chars)"
        )

    if "container_runtime" in config:
        runtime = config.get("container_runtime").strip().lower()
        if runtime not in VALID_RUNTIMES:
            result.errors.append(
                f"Invalid container_runtime '{runtime}' (expected one of: {', '.join(VALID_RUNTIMES)})"
            )

    # Booleans
    for key in BOOLEAN_KEYS:
        if key in config and config.get(key) not in ("true", "false"):
            result.warnings.append(f"{key} should be true or false, got '{config.get(key)}'")

    # 3D printer services
    for service in config.get_list("3dprinter_services"):
        if service.lower() not in KNOWN_SERVICES:
            result.warnings.append(
                f"Unknown 3dprinter service '{service}' (known: {', '.join(KNOWN_SERVICES)})"
            )

    # WiFi
    has_ssid = bool(config.get("wifi_ssid").strip())
    has_password = bool(config.get("wifi_password"))
    if has_ssid and not has_password:
        result.warnings.append("wifi_ssid is set without wifi_password; an open network will be configured")
    elif has_password and not has_ssid:
        result.warnings.append("wifi_password is set without wifi_ssid; WiFi will not be configured")

    # Passwords
    for key in ("user_password", "wifi_password"):
        if WEAK_PASSWORD_RE.match(config.get(key)):
            result.warnings.append(f"{key} looks like a default password; change it before deploying")

    # Modules
    for name in config.get_list("disable_modules"):
        if name not in UNIT_ORDER:
            result.warnings.append(f"disable_modules names unknown module '{name}'")

    if config.get_bool("install_k3s"):
        role = config.get("k3s_role", "agent").strip().lower() or "agent"
        if not config.get("k3s_token").strip() or (role == "agent" and not config.get("k3s_server").strip()):
            result.warnings.append("install_k3s is true but k3s_server/k3s_token are not both set")

    result.valid = len(result.errors) == 0
    return result
