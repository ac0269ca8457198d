"""
Config — the read-only key/value view of a provisioning manifest.

Every lookup has a defined default: a missing key is never an error,
only an implicitly disabled feature. Values are stored in their
authored text form (``true``, ``9100``, ``a, b``) so that boolean
and list parsing behave the same whatever YAML type was written.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

logger = logging.getLogger(__name__)

ConfigValue = str | list[str]


def _scalar_text(value: Any) -> str:
    """Render a YAML scalar the way it was authored."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, ConfigValue]:
    """Flatten nested mappings into dotted keys.

    ``{"k3s": {"server": "x"}}`` becomes ``{"k3s.server": "x"}``.
    Sequences are kept as lists of strings.
    """
    flat: dict[str, ConfigValue] = {}
    for raw_key, value in data.items():
        key = f"{prefix}{raw_key}"
        if isinstance(value, Mapping):
            flat.update(flatten(value, prefix=f"{key}."))
        elif isinstance(value, (list, tuple)):
            flat[key] = [_scalar_text(v) for v in value]
        else:
            flat[key] = _scalar_text(value)
    return flat


class Config:
    """Immutable configuration store shared by all units."""

    def __init__(self, values: Mapping[str, Any] | None = None, source: Path | None = None):
        self._values: Mapping[str, ConfigValue] = MappingProxyType(flatten(values or {}))
        self._source = source

    @property
    def source(self) -> Path | None:
        """Manifest the values were loaded from (None when built in memory)."""
        return self._source

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"<Config keys={len(self._values)} source={self._source!s}>"

    def keys(self) -> list[str]:
        return list(self._values)

    def as_dict(self) -> dict[str, ConfigValue]:
        """A mutable copy of the values."""
        return {k: list(v) if isinstance(v, list) else v for k, v in self._values.items()}

    # ── Typed accessors ──────────────────────────────────────────

    def get(self, key: str, default: str = "") -> str:
        """String value of ``key``, or ``default`` when absent."""
        value = self._values.get(key)
        if value is None:
            return default
        if isinstance(value, list):
            return ",".join(value)
        return value

    def get_bool(self, key: str, default: bool = False) -> bool:
        """True only for the literal ``"true"``; absent keys yield ``default``."""
        if key not in self._values:
            return default
        return self.get(key) == "true"

    def get_list(self, key: str) -> list[str]:
        """Comma-separated list, each element trimmed, empties dropped."""
        value = self._values.get(key)
        if value is None:
            return []
        items = value if isinstance(value, list) else value.split(",")
        return [item.strip() for item in items if item.strip()]

    def get_int(self, key: str, default: int) -> int:
        """Integer value of ``key``; non-numeric text falls back to ``default``."""
        raw = self.get(key).strip()
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning("Config key '%s' is not an integer (%r), using %d", key, raw, default)
            return default
