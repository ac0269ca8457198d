"""
Network unit — privacy-focused DNS and an optional WiFi backup link.
"""

from __future__ import annotations

from autorpi.core.engine.unit import Unit, UnitContext
from autorpi.core.models.result import UnitResult

RESOLVED_CONF = """\
[Resolve]
DNS=9.9.9.9 84.200.69.80 1.1.1.1
DNSOverTLS=opportunistic
DNSSEC=allow-downgrade
Cache=yes
"""

WPA_SUPPLICANT_CONF = "/etc/wpa_supplicant/wpa_supplicant.conf"


def render_wpa_supplicant(ssid: str, password: str, country: str = "US") -> str:
    """wpa_supplicant.conf for one network; no password means an open network."""
    if password:
        network = f'    ssid="{ssid}"\n    psk="{password}"\n    key_mgmt=WPA-PSK\n'
    else:
        network = f'    ssid="{ssid}"\n    key_mgmt=NONE\n'
    return (
        f"country={country}\n"
        "ctrl_interface=DIR=/var/run/wpa_supplicant GROUP=netdev\n"
        "update_config=1\n"
        "\n"
        "network={\n"
        f"{network}"
        "}\n"
    )


class NetworkUnit(Unit):
    name = "network"
    description = "network settings"

    def apply(self, ctx: UnitContext) -> UnitResult:
        self._configure_dns(ctx)
        wifi = self._configure_wifi(ctx)
        return ctx.success("DNS configured" + (", WiFi configured" if wifi else ""))

    def _configure_dns(self, ctx: UnitContext) -> None:
        ctx.require(ctx.caps.files.write("/etc/systemd/resolved.conf", RESOLVED_CONF), "write resolved.conf")
        ctx.attempt(ctx.caps.services.restart("systemd-resolved"), "restart systemd-resolved")

    def _configure_wifi(self, ctx: UnitContext) -> bool:
        ssid = ctx.config.get("wifi_ssid").strip()
        if not ssid:
            return False

        password = ctx.config.get("wifi_password")
        if not password:
            ctx.warn("wifi_ssid is set but wifi_password is empty; configuring an open network")

        country = ctx.config.get("wifi_country", "US").strip() or "US"
        ctx.require(
            ctx.caps.files.write(
                WPA_SUPPLICANT_CONF,
                render_wpa_supplicant(ssid, password, country),
                mode=0o600,
            ),
            "write wpa_supplicant.conf",
        )
        ctx.attempt(ctx.caps.services.enable("wpa_supplicant@wlan0.service"), "enable wpa_supplicant")
        return True
