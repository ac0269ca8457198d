"""auto-rpi-config — declarative Raspberry Pi provisioning."""

__version__ = "0.1.0"
