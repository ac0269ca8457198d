"""
Filesystem adapter — file and directory operations.

Provides a receipt-returning interface for the file writes units make
(config files, unit files, udev rules). Writes are converge-style:
identical content is left untouched, and ``append_line`` never adds a
line twice, so re-applying a unit does not accumulate drift.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from autorpi.adapters.base import FileWriter
from autorpi.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class LocalFileWriter(FileWriter):
    """File operations on the local filesystem.

    Args:
        root: Prefix for absolute paths. ``/`` (the default) writes to the
            real host; any other directory stages the files underneath it.
    """

    def __init__(self, root: str | Path = "/"):
        self._root = Path(root)

    @property
    def name(self) -> str:
        return "filesystem"

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, path: str | Path) -> Path:
        target = Path(path)
        if target.is_absolute() and self._root != Path("/"):
            return self._root / target.relative_to("/")
        return target

    def write(self, path: str | Path, content: str, mode: int | None = None) -> Receipt:
        target = self.resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            changed = not (target.is_file() and target.read_text(encoding="utf-8") == content)
            if changed:
                self._replace(target, content, mode)
            elif mode is not None:
                os.chmod(target, mode)
        except (OSError, UnicodeDecodeError) as e:
            return Receipt.failure(
                adapter=self.name,
                operation=f"write {path}",
                error=f"Filesystem error: {e}",
                metadata={"path": str(target)},
            )
        return Receipt.success(
            adapter=self.name,
            operation=f"write {path}",
            output=f"Written {len(content)} bytes to {target}" if changed else "unchanged",
            metadata={"path": str(target), "changed": changed},
        )

    @staticmethod
    def _replace(target: Path, content: str, mode: int | None) -> None:
        """Write ``content`` beside ``target`` and rename it into place.

        A new file keeps the mode of the file it replaces unless ``mode``
        is given.
        """
        if mode is None and target.exists():
            mode = target.stat().st_mode & 0o7777
        fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp, mode if mode is not None else 0o644)
            tmp.replace(target)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise

    def append_line(self, path: str | Path, line: str) -> Receipt:
        target = self.resolve(path)
        try:
            existing = target.read_text(encoding="utf-8") if target.is_file() else ""
            if line in existing.splitlines():
                return Receipt.success(
                    adapter=self.name,
                    operation=f"append {path}",
                    output="unchanged",
                    metadata={"path": str(target), "changed": False},
                )
            target.parent.mkdir(parents=True, exist_ok=True)
            prefix = "" if not existing or existing.endswith("\n") else "\n"
            with target.open("a", encoding="utf-8") as f:
                f.write(f"{prefix}{line}\n")
        except (OSError, UnicodeDecodeError) as e:
            return Receipt.failure(
                adapter=self.name,
                operation=f"append {path}",
                error=f"Filesystem error: {e}",
                metadata={"path": str(target)},
            )
        return Receipt.success(
            adapter=self.name,
            operation=f"append {path}",
            output=f"Appended to {target}",
            metadata={"path": str(target), "changed": True},
        )

    def mkdir(self, path: str | Path, mode: int | None = None) -> Receipt:
        target = self.resolve(path)
        try:
            target.mkdir(parents=True, exist_ok=True)
            if mode is not None:
                os.chmod(target, mode)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation=f"mkdir {path}",
                error=f"Filesystem error: {e}",
            )
        return Receipt.success(
            adapter=self.name,
            operation=f"mkdir {path}",
            output=f"Directory created: {target}",
        )

    def exists(self, path: str | Path) -> bool:
        return self.resolve(path).exists()

    def is_dir(self, path: str | Path) -> bool:
        return self.resolve(path).is_dir()

    def read(self, path: str | Path) -> str | None:
        target = self.resolve(path)
        if not target.is_file():
            return None
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Cannot read %s: %s", target, e)
            return None
