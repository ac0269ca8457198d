"""
State tracker — completion markers on disk.

A marker is a file in the state directory whose existence means
"this unit (or sub-resource) was applied successfully". Markers
survive restarts and reboots and are never expired automatically;
removing one is an explicit administrative action.

Writes are atomic (write to temp file, then rename): a crash leaves
either no marker (the unit is redone, which is safe because units are
idempotent) or a complete one.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = "/var/lib/rpi-config/state"
MARKER_SUFFIX = "_configured"

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


def marker_key(unit: str, qualifier: str | None = None) -> str:
    """Build the opaque marker key for a unit and optional sub-resource.

    >>> marker_key("3dprinter", "octoprint")
    '3dprinter_octoprint'
    """
    key = unit if not qualifier else f"{unit}_{qualifier}"
    return _UNSAFE.sub("-", key)


def default_state_dir() -> Path:
    """State directory from ``AUTORPI_STATE_DIR`` or the system default."""
    return Path(os.environ.get("AUTORPI_STATE_DIR", DEFAULT_STATE_DIR))


class StateTracker:
    """Sole reader and writer of completion markers.

    Args:
        state_dir: Directory holding the marker files.
        force: When True, ``is_done`` always reports False. Markers are
            left in place so a later un-forced run still finds them.
    """

    def __init__(self, state_dir: Path | str | None = None, force: bool = False):
        self._dir = Path(state_dir) if state_dir is not None else default_state_dir()
        self._force = force

    @property
    def state_dir(self) -> Path:
        return self._dir

    @property
    def force(self) -> bool:
        return self._force

    def path_for(self, key: str) -> Path:
        return self._dir / f"{_UNSAFE.sub('-', key)}{MARKER_SUFFIX}"

    def is_done(self, key: str, force: bool = False) -> bool:
        """Whether ``key`` has a marker (always False when forced)."""
        if force or self._force:
            return False
        return self.path_for(key).is_file()

    def mark_done(self, key: str) -> None:
        """Record ``key`` as applied (atomic write)."""
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        content = datetime.now(UTC).isoformat() + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".marker_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(path)
            logger.debug("Marker written: %s", path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise

    def clear(self, key: str) -> bool:
        """Remove a marker. Returns whether one existed."""
        path = self.path_for(key)
        if path.is_file():
            path.unlink()
            logger.info("Marker cleared: %s", key)
            return True
        return False

    def list_markers(self) -> list[str]:
        """Keys of all markers currently present, sorted."""
        if not self._dir.is_dir():
            return []
        return sorted(
            p.name[: -len(MARKER_SUFFIX)]
            for p in self._dir.iterdir()
            if p.is_file() and p.name.endswith(MARKER_SUFFIX)
        )
